"""Typed records tracked in the per-document agent memory."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

MAX_MEMORY_ENTRIES = 20


def utc_now() -> datetime:
    """Return a timezone-aware UTC timestamp."""
    return datetime.now(timezone.utc)


class RecordModel(BaseModel):
    """Base Pydantic model with strict field handling.

    Fields are declared in snake_case and exchanged with the agent runtime
    under their camelCase names.
    """

    model_config = ConfigDict(
        extra="forbid",
        frozen=False,
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_wire(self) -> dict:
        """Return the JSON-compatible camelCase payload for this record."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ToolOutputModel(RecordModel):
    """Record decoded from a tool output; unknown keys are tolerated."""

    model_config = ConfigDict(extra="ignore")


class ActionStatus(str, Enum):
    """Outcome of a single executed (or simulated) action."""

    SUCCESS = "success"
    FAILED = "failed"
    PARTIAL = "partial"


class NoteImportance(str, Enum):
    """Priority attached to a free-form memory note."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AgentActionLogEntry(RecordModel):
    """Single action the agent performed or simulated against a document."""

    id: str
    timestamp: datetime = Field(default_factory=utc_now)
    description: str
    target_range: Optional[str] = None
    target_scope: Optional[str] = None
    kind: str
    status: ActionStatus = ActionStatus.SUCCESS


class AgentErrorLogEntry(RecordModel):
    """Failure recorded while validating or executing a plan."""

    id: str
    timestamp: datetime = Field(default_factory=utc_now)
    message: str
    operation: Optional[str] = None
    details: Optional[str] = None


class AgentNote(RecordModel):
    id: str
    timestamp: datetime = Field(default_factory=utc_now)
    text: str
    importance: NoteImportance = NoteImportance.LOW


class AgentMemory(RecordModel):
    """Bounded record of recent actions, errors, and notes for a document."""

    recent_actions: List[AgentActionLogEntry] = Field(default_factory=list)
    recent_errors: List[AgentErrorLogEntry] = Field(default_factory=list)
    notes: List[AgentNote] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "AgentMemory":
        return cls()

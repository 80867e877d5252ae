"""Plan, snapshot, and safety models shared by the validator and executor."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Literal, Mapping, Optional

from pydantic import AliasChoices, Field

from ..config import section
from ..memory.schema import AgentMemory, RecordModel, ToolOutputModel, utc_now


class TaskStatus(str, Enum):
    """Lifecycle states for an entry in the agent's task list."""

    NEW = "new"
    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    DONE = "done"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Task(ToolOutputModel):
    """Single line of the task list shown to the user."""

    text: str
    status: TaskStatus


class TodoList(ToolOutputModel):
    """Output shape shared by the task-list and plan-approval tools."""

    todos: List[Task]


class PlanStep(ToolOutputModel):
    """One proposed operation against the document."""

    id: str = Field(min_length=1)
    kind: str = Field(min_length=1)
    description: str = Field(min_length=1)
    target_scope: str = Field(
        min_length=1,
        validation_alias=AliasChoices("targetScope", "targetWorksheet", "target_scope"),
    )
    target_range: str = Field(min_length=1)
    parameters: Optional[Dict[str, Any]] = None


class Plan(ToolOutputModel):
    """Ordered steps proposed against a specific document snapshot."""

    snapshot_id: str = Field(min_length=1)
    steps: List[PlanStep] = Field(min_length=1)


class ResearchStep(ToolOutputModel):
    id: Optional[str] = None
    kind: Optional[str] = None
    description: Optional[str] = None
    query: Optional[str] = None
    notes: Optional[str] = None


class ResearchPlan(ToolOutputModel):
    """Research steps proposed for an external question."""

    question: str = Field(min_length=1)
    steps: List[ResearchStep]


class RiskAssessment(RecordModel):
    """Coarse classification of how much of the document a change touches."""

    level: RiskLevel
    reasons: List[str] = Field(default_factory=list)
    estimated_units_affected: Optional[int] = Field(
        default=None,
        validation_alias=AliasChoices(
            "estimatedUnitsAffected", "estimatedCellsAffected", "estimated_units_affected"
        ),
    )
    touches_formulas: Optional[bool] = None
    touches_tables: Optional[bool] = None
    touches_named_ranges: Optional[bool] = None

    @classmethod
    def low(cls) -> "RiskAssessment":
        return cls(level=RiskLevel.LOW, reasons=[])


class SafetyLimits(RecordModel):
    """Configured caps on how much a single plan may change."""

    max_units_to_write: int = Field(
        default=10_000,
        validation_alias=AliasChoices("maxUnitsToWrite", "maxCellsToWrite", "max_units_to_write"),
    )
    max_rows_to_delete: int = 100
    max_columns_to_delete: int = 10
    require_confirmation_for_whole_document_ops: bool = Field(
        default=True,
        validation_alias=AliasChoices(
            "requireConfirmationForWholeDocumentOps",
            "requireConfirmationForWholeSheetOps",
            "require_confirmation_for_whole_document_ops",
        ),
    )
    require_backup_before_destructive_ops: bool = True

    @classmethod
    def from_config(cls, config: Mapping[str, Any] | None) -> "SafetyLimits":
        safety_cfg = section(config, "safety")
        known = {name: safety_cfg[name] for name in cls.model_fields if name in safety_cfg}
        return cls(**known)


class SafetyFlags(RecordModel):
    read_only_mode: bool = False
    experimental_features_enabled: bool = False

    @classmethod
    def from_config(cls, config: Mapping[str, Any] | None) -> "SafetyFlags":
        safety_cfg = section(config, "safety")
        known = {name: safety_cfg[name] for name in cls.model_fields if name in safety_cfg}
        return cls(**known)


class SafetyContext(RecordModel):
    limits: SafetyLimits = Field(default_factory=SafetyLimits)
    current_risk: Optional[RiskAssessment] = None
    flags: SafetyFlags = Field(default_factory=SafetyFlags)


class Selection(ToolOutputModel):
    """Shape of the user's active selection in the document."""

    type: Literal["range", "table", "none"] = "none"
    scope: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("scope", "worksheetName"),
    )
    range_address: Optional[str] = None
    row_count: Optional[int] = None
    column_count: Optional[int] = None
    table_name: Optional[str] = None


class ScopeSummary(ToolOutputModel):
    """Summary of a worksheet (or comparable top-level scope) in the document."""

    id: str
    name: str
    position: int = 0
    visibility: Literal["visible", "hidden", "veryHidden"] = "visible"


class DocumentShape(ToolOutputModel):
    """Structural overview of the document a snapshot describes."""

    scopes: List[ScopeSummary] = Field(
        default_factory=list,
        validation_alias=AliasChoices("scopes", "worksheets"),
    )
    active_scope: Optional[str] = None
    tables: List[Any] = Field(default_factory=list)
    named_ranges: List[Any] = Field(default_factory=list)


class SnapshotMeta(ToolOutputModel):
    snapshot_id: str
    snapshot_version: int = 1
    created_at: datetime = Field(default_factory=utc_now)
    document_id: str = Field(validation_alias=AliasChoices("documentId", "workbookId", "document_id"))
    document_name: str = Field(
        default="",
        validation_alias=AliasChoices("documentName", "workbookName", "document_name"),
    )


class Snapshot(ToolOutputModel):
    """Point-in-time view of the document used to validate and execute plans."""

    meta: SnapshotMeta
    document: DocumentShape = Field(
        default_factory=DocumentShape,
        validation_alias=AliasChoices("document", "workbook"),
    )
    selection: Optional[Selection] = None
    memory: AgentMemory = Field(default_factory=AgentMemory)
    safety: SafetyContext = Field(default_factory=SafetyContext)

    @property
    def id(self) -> str:
        return self.meta.snapshot_id


class ValidationVerdict(RecordModel):
    """Result of checking a plan against the snapshot it targets."""

    is_valid: bool
    risk: RiskAssessment
    issues: List[str] = Field(default_factory=list)

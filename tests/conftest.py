from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"

if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from plangate.planning.schemas import (  # noqa: E402
    RiskAssessment,
    SafetyContext,
    SafetyFlags,
    SafetyLimits,
    Selection,
    Snapshot,
    SnapshotMeta,
)


def tool_result_turn(tool_name: str, value: Any, *, call_id: str = "call-1") -> Dict[str, Any]:
    """Build an assistant turn carrying a single completed tool result."""
    return {
        "role": "tool",
        "content": [
            {
                "type": "tool-result",
                "toolName": tool_name,
                "toolCallId": call_id,
                "output": {"type": "json", "value": value},
            }
        ],
    }


def tool_call_turn(
    tool_name: str,
    *,
    call_id: str = "call-1",
    args: Optional[Dict[str, Any]] = None,
    result: Any = None,
) -> Dict[str, Any]:
    part: Dict[str, Any] = {
        "type": "tool-call",
        "toolName": tool_name,
        "toolCallId": call_id,
        "args": args or {},
    }
    if result is not None:
        part["result"] = result
    return {"role": "assistant", "content": [part]}


def text_turn(text: str, role: str = "user") -> Dict[str, Any]:
    return {"role": role, "content": [{"type": "text", "text": text}]}


class HistoryBuilder:
    """Fluent helper for assembling conversation histories in tests."""

    def __init__(self) -> None:
        self.turns: List[Dict[str, Any]] = []

    def text(self, text: str, role: str = "user") -> "HistoryBuilder":
        self.turns.append(text_turn(text, role))
        return self

    def result(self, tool_name: str, value: Any, *, call_id: str | None = None) -> "HistoryBuilder":
        call_id = call_id or f"call-{len(self.turns)}"
        self.turns.append(tool_result_turn(tool_name, value, call_id=call_id))
        return self

    def call(
        self,
        tool_name: str,
        *,
        call_id: str | None = None,
        args: Optional[Dict[str, Any]] = None,
        result: Any = None,
    ) -> "HistoryBuilder":
        call_id = call_id or f"call-{len(self.turns)}"
        self.turns.append(tool_call_turn(tool_name, call_id=call_id, args=args, result=result))
        return self


@pytest.fixture()
def history() -> HistoryBuilder:
    return HistoryBuilder()


SnapshotFactory = Callable[..., Snapshot]


@pytest.fixture()
def make_snapshot() -> SnapshotFactory:
    """Return a factory producing snapshots with sensible defaults."""

    def factory(
        *,
        snapshot_id: str = "snap-1",
        document_id: str = "doc-1",
        selection: Selection | None = None,
        current_risk: RiskAssessment | None = None,
        read_only: bool = False,
        limits: SafetyLimits | None = None,
    ) -> Snapshot:
        return Snapshot(
            meta=SnapshotMeta(snapshot_id=snapshot_id, document_id=document_id, document_name="Budget"),
            selection=selection,
            safety=SafetyContext(
                limits=limits or SafetyLimits(),
                current_risk=current_risk,
                flags=SafetyFlags(read_only_mode=read_only),
            ),
        )

    return factory


@pytest.fixture()
def plan_payload() -> Dict[str, Any]:
    return {
        "snapshotId": "snap-1",
        "steps": [
            {
                "id": "s1",
                "kind": "write_range",
                "description": "Fill totals",
                "targetScope": "Sheet1",
                "targetRange": "A1:B2",
            },
            {
                "id": "s2",
                "kind": "format_range",
                "description": "Bold header",
                "targetScope": "Sheet1",
                "targetRange": "A1:B1",
            },
        ],
    }

from __future__ import annotations

from typing import Optional

from plangate.context import ContextManager
from plangate.memory.schema import AgentActionLogEntry, AgentMemory
from plangate.memory.store import InMemoryMemoryRepository
from plangate.planning.risk import DefaultSafetyConfigProvider
from plangate.planning.schemas import (
    DocumentShape,
    RiskLevel,
    SafetyLimits,
    ScopeSummary,
    Selection,
    SnapshotMeta,
)


class StaticGateway:
    def __init__(self, selection: Optional[Selection]) -> None:
        self.selection = selection
        self.structure_calls = 0

    def get_structure(self) -> DocumentShape:
        self.structure_calls += 1
        return DocumentShape(scopes=[ScopeSummary(id="s1", name="Sheet1")], active_scope="Sheet1")

    def get_current_selection(self) -> Optional[Selection]:
        return self.selection


class CountingMeta:
    def __init__(self) -> None:
        self.calls = 0

    def get_meta(self) -> SnapshotMeta:
        self.calls += 1
        return SnapshotMeta(snapshot_id=f"snap-{self.calls}", document_id="doc-1", document_name="Budget")


def test_snapshot_combines_document_memory_and_risk() -> None:
    memory = AgentMemory(recent_actions=[AgentActionLogEntry(id="a1", description="x", kind="write_range")])
    selection = Selection(type="range", scope="Sheet1", range_address="A1:J200", row_count=200, column_count=10)
    manager = ContextManager(
        StaticGateway(selection),
        CountingMeta(),
        InMemoryMemoryRepository({"doc-1": memory}),
        DefaultSafetyConfigProvider(limits=SafetyLimits(max_units_to_write=1_000)),
    )

    snapshot = manager.get_snapshot()

    assert snapshot.id == "snap-1"
    assert snapshot.document.active_scope == "Sheet1"
    assert snapshot.memory.recent_actions[0].id == "a1"
    assert snapshot.safety.current_risk is not None
    assert snapshot.safety.current_risk.level == RiskLevel.HIGH
    assert snapshot.safety.limits.max_units_to_write == 1_000


def test_each_snapshot_is_fresh() -> None:
    gateway = StaticGateway(None)
    manager = ContextManager(gateway, CountingMeta(), InMemoryMemoryRepository())

    first = manager.get_snapshot()
    second = manager.get_snapshot()

    assert first.id != second.id
    assert gateway.structure_calls == 2
    assert first.selection is None
    assert first.safety.current_risk is None
    assert first.memory == AgentMemory.empty()

"""Execution engine for validated, approved plans.

Every exit path of :meth:`ExecutionEngine.execute` returns an
``ExecutionResult``. Validation failures, a missing action executor, executor
exceptions, and memory persistence failures are all reported as
``AgentErrorLogEntry`` items rather than raised.
"""

from __future__ import annotations

import logging
import secrets
import traceback
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Protocol

from ..memory.schema import (
    ActionStatus,
    AgentActionLogEntry,
    AgentErrorLogEntry,
    AgentMemory,
    utc_now,
)
from ..memory.updater import MemoryUpdater
from .schemas import Plan, RiskAssessment, Snapshot, ValidationVerdict
from .validator import BasicPlanValidator

LOGGER = logging.getLogger(__name__)

ExecutionMode = Literal["dry-run", "apply"]
EXECUTION_MODES: tuple[str, ...] = ("dry-run", "apply")


class ActionExecutor(Protocol):
    """Performs the real document mutation for a plan; may raise."""

    def execute(self, plan: Plan, snapshot: Snapshot) -> List[AgentActionLogEntry]: ...


@dataclass(slots=True)
class ExecutionResult:
    """Outcome of a single dry-run or apply call."""

    actions: List[AgentActionLogEntry] = field(default_factory=list)
    errors: List[AgentErrorLogEntry] = field(default_factory=list)
    summary: str = ""
    updated_memory: AgentMemory = field(default_factory=AgentMemory)
    risk: Optional[RiskAssessment] = None
    validation: Optional[ValidationVerdict] = None

    @property
    def ok(self) -> bool:
        return not self.errors

    @property
    def estimated_units_affected(self) -> Optional[int]:
        return self.risk.estimated_units_affected if self.risk else None

    def to_dict(self) -> Dict[str, Any]:
        """Return the wire payload recorded as the tool result."""
        payload: Dict[str, Any] = {
            "actions": [action.to_wire() for action in self.actions],
            "errors": [error.to_wire() for error in self.errors],
            "summary": self.summary,
            "updatedMemory": self.updated_memory.to_wire(),
        }
        if self.risk is not None:
            payload["risk"] = self.risk.to_wire()
            if self.risk.estimated_units_affected is not None:
                payload["estimatedUnitsAffected"] = self.risk.estimated_units_affected
        return payload


def _error_entry(prefix: str, message: str, *, details: str | None = None) -> AgentErrorLogEntry:
    now = utc_now()
    return AgentErrorLogEntry(
        id=f"{prefix}-{now.isoformat()}-{secrets.token_hex(4)}",
        timestamp=now,
        message=message,
        details=details,
    )


def synthesize_dry_run_actions(plan: Plan) -> List[AgentActionLogEntry]:
    """Build one successful action record per plan step without touching the document."""
    now = utc_now()
    return [
        AgentActionLogEntry(
            id=f"{step.id or f'step-{index}'}-dry-run",
            timestamp=now,
            description=step.description,
            target_range=step.target_range,
            target_scope=step.target_scope,
            kind=step.kind,
            status=ActionStatus.SUCCESS,
        )
        for index, step in enumerate(plan.steps)
    ]


class ExecutionEngine:
    """Run a plan as a dry run or a real mutation and record the outcome."""

    def __init__(
        self,
        *,
        memory_updater: MemoryUpdater | None = None,
        action_executor: ActionExecutor | None = None,
        validator: BasicPlanValidator | None = None,
    ) -> None:
        self.memory_updater = memory_updater
        self.action_executor = action_executor
        self.validator = validator or BasicPlanValidator()

    def execute(
        self,
        plan: Plan,
        snapshot: Snapshot,
        mode: ExecutionMode = "dry-run",
        require_validation: bool = True,
    ) -> ExecutionResult:
        if mode not in EXECUTION_MODES:
            return ExecutionResult(
                errors=[_error_entry("mode-invalid", f"Unsupported execution mode: {mode!r}.")],
                summary="Unsupported execution mode; no actions were executed.",
                updated_memory=snapshot.memory,
                risk=snapshot.safety.current_risk,
            )

        verdict: ValidationVerdict | None = None
        if require_validation:
            verdict = self.validator.validate(plan, snapshot)
            risk = verdict.risk
            if not verdict.is_valid:
                return self._rejected(snapshot, verdict)
        else:
            risk = snapshot.safety.current_risk

        if mode == "dry-run":
            result = self._dry_run(plan, snapshot)
        else:
            result = self._apply(plan, snapshot)
        result.risk = risk
        result.validation = verdict
        return result

    def _rejected(self, snapshot: Snapshot, verdict: ValidationVerdict) -> ExecutionResult:
        issues = "; ".join(verdict.issues) if verdict.issues else f"risk level is {verdict.risk.level.value}"
        error = _error_entry(
            "validation",
            f"Plan validation failed: {issues}",
            details=verdict.model_dump_json(by_alias=True),
        )
        return ExecutionResult(
            errors=[error],
            summary="Plan validation failed; no actions were executed.",
            updated_memory=snapshot.memory,
            risk=verdict.risk,
            validation=verdict,
        )

    def _dry_run(self, plan: Plan, snapshot: Snapshot) -> ExecutionResult:
        actions = synthesize_dry_run_actions(plan)
        errors: List[AgentErrorLogEntry] = []
        # Only the first synthesized action is folded into memory; the full
        # per-step list is carried by the result.
        updated_memory = self._record(snapshot, actions[0], None, errors)
        LOGGER.info("Dry run recorded %d planned action(s) for snapshot %s", len(actions), snapshot.id)
        return ExecutionResult(
            actions=actions,
            errors=errors,
            summary=(
                f"Dry-run execution recorded {len(actions)} planned action(s) "
                f"for snapshot {snapshot.id}."
            ),
            updated_memory=updated_memory,
        )

    def _apply(self, plan: Plan, snapshot: Snapshot) -> ExecutionResult:
        if self.action_executor is None:
            LOGGER.warning("Apply requested for snapshot %s without an action executor", snapshot.id)
            return ExecutionResult(
                errors=[
                    _error_entry(
                        "executor-missing",
                        "No action executor is configured. Cannot apply plan to the document.",
                    )
                ],
                summary="Failed to execute plan because no action executor was provided.",
                updated_memory=snapshot.memory,
            )

        actions: List[AgentActionLogEntry] = []
        errors: List[AgentErrorLogEntry] = []
        try:
            actions = [
                entry if isinstance(entry, AgentActionLogEntry) else AgentActionLogEntry.model_validate(entry)
                for entry in self.action_executor.execute(plan, snapshot)
            ]
        except Exception as error:  # noqa: BLE001 - executor failures are reported, not raised
            LOGGER.warning("Action executor failed for snapshot %s: %s", snapshot.id, error)
            errors.append(
                _error_entry(
                    "execution-error",
                    str(error) or type(error).__name__,
                    details="".join(traceback.format_exception(error)),
                )
            )

        updated_memory = snapshot.memory
        if actions:
            updated_memory = self._record(snapshot, actions[0], errors[0] if errors else None, errors)

        if errors:
            summary = (
                f"Applied plan with {len(actions)} action(s) and {len(errors)} error(s) "
                f"for snapshot {snapshot.id}."
            )
        else:
            summary = f"Successfully applied {len(actions)} action(s) for snapshot {snapshot.id}."
            LOGGER.info(summary)
        return ExecutionResult(
            actions=actions,
            errors=errors,
            summary=summary,
            updated_memory=updated_memory,
        )

    def _record(
        self,
        snapshot: Snapshot,
        action: AgentActionLogEntry,
        error: AgentErrorLogEntry | None,
        errors: List[AgentErrorLogEntry],
    ) -> AgentMemory:
        """Route a memory update through the updater, reporting persistence failures."""
        if self.memory_updater is None:
            return snapshot.memory
        try:
            return self.memory_updater.apply_action_update(snapshot, action, error)
        except Exception as failure:  # noqa: BLE001 - persistence failures are reported
            LOGGER.warning("Failed to persist memory for snapshot %s: %s", snapshot.id, failure)
            errors.append(
                _error_entry(
                    "memory-save",
                    f"Failed to persist agent memory: {failure}",
                    details="".join(traceback.format_exception(failure)),
                )
            )
            return snapshot.memory

"""Plan validation against the snapshot a plan was proposed for.

Rules run in a fixed order and each contributes zero or more human-readable
issues. Risk is evaluated after the rules and acts as a hard gate: a plan
with no issues is still invalid when the snapshot's assessed risk is high.

``PLAN_RULES``
    Registry of rule codes with a short description of each check.

``BasicPlanValidator``
    Callable validator returning a ``ValidationVerdict``.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from typing import Dict, List

from .schemas import Plan, RiskAssessment, RiskLevel, Snapshot, ValidationVerdict

LOGGER = logging.getLogger(__name__)

STALE_SNAPSHOT_ISSUE = "Plan was created for a different snapshot."
READ_ONLY_ISSUE = "Document is in read-only mode; write operations are not allowed."


@dataclass(slots=True)
class RuleDefinition:
    """Metadata describing a validation rule."""

    code: str
    title: str
    detail: str


def _check_snapshot(plan: Plan, snapshot: Snapshot) -> Iterable[str]:
    if plan.snapshot_id != snapshot.id:
        return [STALE_SNAPSHOT_ISSUE]
    return []


def _check_read_only(plan: Plan, snapshot: Snapshot) -> Iterable[str]:
    if snapshot.safety.flags.read_only_mode:
        return [READ_ONLY_ISSUE]
    return []


PLAN_RULES: Dict[str, RuleDefinition] = {
    "SNAP001": RuleDefinition(
        code="SNAP001",
        title="Snapshot freshness",
        detail="The plan must target the snapshot currently observed; a mismatch means the "
        "document changed since the plan was proposed and the agent must re-fetch.",
    ),
    "SAFE001": RuleDefinition(
        code="SAFE001",
        title="Read-only mode",
        detail="No plan may be executed while the document is flagged read-only.",
    ),
}


RuleHandler = Callable[[Plan, Snapshot], Iterable[str]]

RULE_DISPATCH: Dict[str, RuleHandler] = {
    "SNAP001": _check_snapshot,
    "SAFE001": _check_read_only,
}


class BasicPlanValidator:
    """Check a plan against snapshot identity, safety flags, and assessed risk."""

    def __init__(self, rules: Iterable[str] | None = None) -> None:
        self.rules: List[str] = list(rules) if rules is not None else list(RULE_DISPATCH)

    def validate(self, plan: Plan, snapshot: Snapshot) -> ValidationVerdict:
        issues: List[str] = []
        for code in self.rules:
            handler = RULE_DISPATCH[code]
            issues.extend(handler(plan, snapshot))

        risk = snapshot.safety.current_risk or RiskAssessment.low()
        is_valid = not issues and risk.level != RiskLevel.HIGH

        if not is_valid:
            LOGGER.warning(
                "Plan for snapshot %s rejected (risk=%s): %s",
                plan.snapshot_id,
                risk.level.value,
                "; ".join(issues) or "risk gate",
            )
        return ValidationVerdict(is_valid=is_valid, risk=risk, issues=issues)

    __call__ = validate


def validate(plan: Plan, snapshot: Snapshot) -> ValidationVerdict:
    """Validate ``plan`` against ``snapshot`` using the default rule set."""
    return BasicPlanValidator().validate(plan, snapshot)

"""Approval gate: nothing executes until a human decision is in history."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from pydantic import Field, ValidationError

from .history import Turn, iter_completed_results, iter_pending_calls
from .memory.schema import ToolOutputModel
from .planning.proposals import latest_plan
from .planning.schemas import Task
from .planning.todos import PLAN_APPROVAL_TOOL_NAMES

LOGGER = logging.getLogger(__name__)


class ApprovalDecision(ToolOutputModel):
    """Result the user attaches to a plan-approval request."""

    approved: bool
    todos: List[Task] = Field(default_factory=list)


@dataclass(slots=True)
class ApprovalCheck:
    """Whether execution may proceed, and why not when it may not."""

    approved: bool
    reason: str
    todos: List[Task] = field(default_factory=list)
    turn_index: Optional[int] = None


def latest_decision(history: Sequence[Turn] | None) -> Optional[tuple[int, ApprovalDecision]]:
    """Return ``(turn_index, decision)`` for the newest completed approval result."""
    for result in iter_completed_results(history, PLAN_APPROVAL_TOOL_NAMES):
        try:
            return result.turn_index, ApprovalDecision.model_validate(result.value)
        except ValidationError:
            LOGGER.debug("Ignoring malformed approval result in turn %s", result.turn_index)
            continue
    return None


def require_approval(history: Sequence[Turn] | None) -> ApprovalCheck:
    """Check that the newest approval request was approved and no plan has been proposed since."""
    decided = latest_decision(history)

    pending = next(iter(iter_pending_calls(history, PLAN_APPROVAL_TOOL_NAMES)), None)
    if pending is not None and (decided is None or pending[0] > decided[0]):
        return ApprovalCheck(
            approved=False,
            reason="Plan approval is still pending; wait for the user's decision.",
            turn_index=pending[0],
        )

    if decided is None:
        return ApprovalCheck(
            approved=False,
            reason="No plan approval found in history; request approval before executing.",
        )

    turn_index, decision = decided
    if not decision.approved:
        return ApprovalCheck(
            approved=False,
            reason="The plan was rejected; revise it and request approval again.",
            turn_index=turn_index,
        )

    proposal = latest_plan(history)
    if proposal is not None and proposal.turn_index is not None and proposal.turn_index > turn_index:
        LOGGER.warning(
            "Plan proposed in turn %s supersedes the approval in turn %s",
            proposal.turn_index,
            turn_index,
        )
        return ApprovalCheck(
            approved=False,
            reason="A newer plan was proposed after the last approval; request approval again.",
            turn_index=proposal.turn_index,
        )

    return ApprovalCheck(
        approved=True,
        reason="Plan approved by the user.",
        todos=list(decision.todos),
        turn_index=turn_index,
    )

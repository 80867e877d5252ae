"""Decode proposed plans out of tool outputs.

A plan proposal reaches history either wrapped as ``{"plan": ..., "summary": ...}``
or, for the known propose tools, as the bare plan object. Each candidate is
parsed strictly against the known plan variants in turn; the first variant
that parses wins and anything else is simply not a plan.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Literal, Mapping, Optional, Sequence, Union

from pydantic import ValidationError

from ..history import Turn, iter_completed_results
from .schemas import Plan, ResearchPlan

LOGGER = logging.getLogger(__name__)

DOCUMENT_PLAN_TOOL = "excel_planning.propose_plan"
RESEARCH_PLAN_TOOL = "research_planning.propose_plan"
PROPOSE_PLAN_TOOL_NAMES: tuple[str, ...] = (DOCUMENT_PLAN_TOOL, RESEARCH_PLAN_TOOL)

PlanKind = Literal["excel", "research"]

_VARIANTS: tuple[tuple[PlanKind, type[Plan] | type[ResearchPlan]], ...] = (
    ("excel", Plan),
    ("research", ResearchPlan),
)


@dataclass(slots=True)
class PlanProposal:
    """A decoded plan together with the tool that proposed it."""

    kind: PlanKind
    plan: Union[Plan, ResearchPlan]
    tool_name: str
    summary: Optional[str] = None
    turn_index: Optional[int] = None


def _normalise_tool_name(tool_name: str) -> str:
    return tool_name[len("tool-"):] if tool_name.startswith("tool-") else tool_name


def extract_plan(tool_name: str, output: Any) -> Optional[PlanProposal]:
    """Decode ``output`` as a plan proposal, returning ``None`` when it is not one."""
    if not isinstance(output, Mapping):
        return None
    name = _normalise_tool_name(tool_name)

    summary = output.get("summary") if isinstance(output.get("summary"), str) else None
    if isinstance(output.get("plan"), Mapping):
        candidate: Any = output["plan"]
    elif name in PROPOSE_PLAN_TOOL_NAMES:
        candidate = output
    else:
        return None

    for kind, model in _VARIANTS:
        try:
            plan = model.model_validate(candidate)
        except ValidationError:
            continue
        return PlanProposal(kind=kind, plan=plan, tool_name=name, summary=summary)

    LOGGER.debug("Output from %s looked like a plan but matched no known variant", name)
    return None


def latest_plan(history: Sequence[Turn] | None) -> Optional[PlanProposal]:
    """Return the newest plan proposal found in ``history``."""
    for result in iter_completed_results(history):
        proposal = extract_plan(result.tool_name, result.value)
        if proposal is not None:
            proposal.turn_index = result.turn_index
            return proposal
    return None

"""Dispatch an approved plan execution request to the matching backend."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Protocol, Sequence

from pydantic import ValidationError

from ..approval import require_approval
from ..history import Turn
from .executor import EXECUTION_MODES, ExecutionEngine
from .schemas import Plan, ResearchPlan, Snapshot

LOGGER = logging.getLogger(__name__)


class ResearchRunner(Protocol):
    """Agent runtime able to carry out a research prompt and return its answer."""

    def run(self, prompt: str) -> str: ...


@dataclass(slots=True)
class DispatchResult:
    """HTTP-shaped outcome of an execution request."""

    status: int
    body: Dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.status == 200


def _error(status: int, message: str) -> DispatchResult:
    return DispatchResult(status=status, body={"error": message})


def build_research_prompt(plan: ResearchPlan) -> str:
    """Render a research plan into the instruction handed to the research agent."""
    lines = [
        "Execute the following research plan and synthesize the findings.",
        "",
        f"Question: {plan.question}",
        "",
        "Plan steps:",
    ]
    for index, step in enumerate(plan.steps, start=1):
        parts = [step.description or "Research step"]
        if step.kind:
            parts.append(f"kind={step.kind}")
        if step.query:
            parts.append(f"query={step.query}")
        if step.notes:
            parts.append(f"notes={step.notes}")
        lines.append(f"{index}. {' | '.join(parts)}")
    lines.extend(
        [
            "",
            "Follow the steps in order, use appropriate research tools, and then provide a "
            "concise answer followed by a short bullet list of key findings.",
        ]
    )
    return "\n".join(lines)


def _dispatch_document(payload: Mapping[str, Any], engine: ExecutionEngine) -> DispatchResult:
    try:
        plan = Plan.model_validate(payload.get("plan"))
    except ValidationError:
        return _error(400, "Invalid document plan payload.")
    try:
        snapshot = Snapshot.model_validate(payload.get("snapshot"))
    except ValidationError:
        return _error(400, "Invalid snapshot payload.")

    mode = payload.get("mode") or "dry-run"
    if mode not in EXECUTION_MODES:
        return _error(400, f"Unsupported execution mode: {mode}.")
    require_validation = payload.get("requireValidation")
    if require_validation is None:
        require_validation = True

    result = engine.execute(plan, snapshot, mode=mode, require_validation=bool(require_validation))
    return DispatchResult(status=200, body={"kind": "excel", "mode": mode, "result": result.to_dict()})


def _dispatch_research(payload: Mapping[str, Any], runner: ResearchRunner | None) -> DispatchResult:
    try:
        plan = ResearchPlan.model_validate(payload.get("plan"))
    except ValidationError:
        return _error(400, "Invalid research plan payload.")
    if runner is None:
        return _error(500, "No research runner is configured.")

    try:
        answer = runner.run(build_research_prompt(plan))
    except Exception as error:  # noqa: BLE001 - runner failures become error responses
        LOGGER.warning("Research plan execution failed: %s", error)
        return _error(500, str(error) or "Failed to execute research plan.")

    return DispatchResult(
        status=200,
        body={"kind": "research", "result": {"answer": answer, "stepsRun": len(plan.steps)}},
    )


def execute_plan_request(
    payload: Any,
    *,
    engine: ExecutionEngine,
    research_runner: ResearchRunner | None = None,
    history: Sequence[Turn] | None = None,
) -> DispatchResult:
    """Route ``payload`` by its ``kind`` tag; unknown kinds are rejected.

    When ``history`` is given, the request is refused unless it records an
    approval of the latest plan.
    """
    if not isinstance(payload, Mapping):
        return _error(400, "Invalid JSON body.")
    if history is not None:
        check = require_approval(history)
        if not check.approved:
            LOGGER.warning("Refusing plan execution: %s", check.reason)
            return _error(403, check.reason)
    kind = payload.get("kind")
    if kind == "excel":
        return _dispatch_document(payload, engine)
    if kind == "research":
        return _dispatch_research(payload, research_runner)
    return _error(400, "Unsupported plan kind.")

"""
Plan validation, task-list projection, and execution.
"""

from importlib import import_module
from typing import Any

_EXPORTS = {
    "BasicPlanValidator": "plangate.planning.validator",
    "ExecutionEngine": "plangate.planning.executor",
    "ExecutionResult": "plangate.planning.executor",
    "TodoUpdate": "plangate.planning.todos",
    "apply_todo_updates": "plangate.planning.todos",
    "assess_risk": "plangate.planning.risk",
    "latest_plan": "plangate.planning.proposals",
    "reconstruct": "plangate.planning.todos",
}

__all__ = sorted(_EXPORTS)


def __getattr__(name: str) -> Any:
    """Lazily import planning helpers so schema-only consumers stay lightweight."""
    if name in _EXPORTS:
        module = import_module(_EXPORTS[name])
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")

"""Task list reconstruction and mutation.

The current task list is never stored on its own. It is whatever the most
recent accepted task-list tool result in the conversation says it is, and the
next list is produced by applying a mutation request to that projection.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Sequence

from pydantic import Field, ValidationError

from ..history import Turn, iter_completed_results
from ..memory.schema import ToolOutputModel
from .schemas import Task, TaskStatus, TodoList

LOGGER = logging.getLogger(__name__)

UPDATE_TODOS_TOOL_NAMES: tuple[str, ...] = ("updateTodosTool", "update-todos")
PLAN_APPROVAL_TOOL_NAMES: tuple[str, ...] = ("askForPlanApprovalTool", "ask-for-plan-approval")
TASK_LIST_TOOL_NAMES: tuple[str, ...] = UPDATE_TODOS_TOOL_NAMES + PLAN_APPROVAL_TOOL_NAMES


class TodoUpdate(ToolOutputModel):
    """Mutation request accepted by the task-list tool."""

    new: List[str] = Field(default_factory=list)
    in_progress: List[int] = Field(default_factory=list)
    done: List[int] = Field(default_factory=list)
    clear_previously_done: bool = False
    insert_at: Optional[int] = None


def _is_rejected_approval(value: Any) -> bool:
    return isinstance(value, dict) and value.get("approved") is False


def reconstruct(history: Sequence[Turn] | None) -> List[Task]:
    """Return the current task list derived from ``history``.

    The newest completed task-list result wins and is returned as-is; older
    results are never replayed. Outputs that fail to parse are skipped.
    """
    for result in iter_completed_results(history, TASK_LIST_TOOL_NAMES):
        if result.tool_name in PLAN_APPROVAL_TOOL_NAMES and _is_rejected_approval(result.value):
            continue
        try:
            parsed = TodoList.model_validate(result.value)
        except ValidationError:
            LOGGER.debug(
                "Skipping malformed %s output in turn %s", result.tool_name, result.turn_index
            )
            continue
        return [task.model_copy() for task in parsed.todos]
    return []


def _resolve_indices(tasks: Sequence[Task], indices: Sequence[int]) -> List[Task]:
    return [tasks[index] for index in indices if 0 <= index < len(tasks)]


def apply_todo_updates(current: Sequence[Task], update: TodoUpdate) -> List[Task]:
    """Apply ``update`` to ``current`` and return the next task list.

    Index references are resolved against ``current`` before anything moves,
    so clearing completed tasks or inserting new ones never shifts which task
    an index points at.
    """
    tasks = [task.model_copy() for task in current]
    in_progress_targets = _resolve_indices(tasks, update.in_progress)
    done_targets = _resolve_indices(tasks, update.done)
    referenced = {id(task) for task in in_progress_targets + done_targets}

    for task in tasks:
        if id(task) not in referenced and task.status == TaskStatus.NEW:
            task.status = TaskStatus.PENDING

    if update.clear_previously_done:
        tasks = [task for task in tasks if task.status != TaskStatus.DONE]

    new_tasks = [Task(text=text, status=TaskStatus.NEW) for text in update.new]
    if update.insert_at is not None and update.insert_at >= 0:
        position = min(update.insert_at, len(tasks))
        tasks[position:position] = new_tasks
    else:
        tasks.extend(new_tasks)

    remaining = {id(task) for task in tasks}
    for task in in_progress_targets:
        if id(task) in remaining:
            task.status = TaskStatus.IN_PROGRESS
    for task in done_targets:
        if id(task) in remaining:
            task.status = TaskStatus.DONE

    return tasks


def update_todos(history: Sequence[Turn] | None, update: TodoUpdate) -> Dict[str, Any]:
    """Tool entry point: produce the next task-list output from ``history``."""
    current = reconstruct(history)
    updated = apply_todo_updates(current, update)
    LOGGER.info(
        "Task list updated: %d -> %d item(s), %d added",
        len(current),
        len(updated),
        len(update.new),
    )
    return TodoList(todos=updated).to_wire()

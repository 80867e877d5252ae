"""Read-side access to the append-only conversation history.

History is the only source of truth for derived state: task lists, proposed
plans, approval decisions, and deferred action handles are all projections
computed by scanning these turns. Nothing here mutates a turn.

A turn is a mapping with a ``role`` and a ``content`` list. Content parts are
mappings tagged by ``type``:

``tool-result``
    ``toolName``, ``toolCallId`` and ``output``. The output is either
    ``{"value": ...}`` (model-message form) or the bare value.

``tool-call``
    ``toolName``, ``args`` and, once answered by a human or the tool itself,
    ``result``. A tool call without a result is still pending.

Any other part type (``text``, ``reasoning``, ...) is ignored by the scans.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Mapping, Sequence

__all__ = [
    "HistoryFormatError",
    "ToolResult",
    "Turn",
    "iter_completed_results",
    "iter_pending_calls",
    "load_history",
]

Turn = Mapping[str, Any]

_MISSING = object()


class HistoryFormatError(ValueError):
    """Raised when a history file cannot be decoded into turns."""


@dataclass(slots=True, frozen=True)
class ToolResult:
    """Completed tool output located in a specific turn."""

    turn_index: int
    tool_name: str
    value: Any
    tool_call_id: str | None = None


def _content_parts(turn: Any) -> List[Mapping[str, Any]]:
    if not isinstance(turn, Mapping):
        return []
    content = turn.get("content")
    if not isinstance(content, list):
        return []
    return [part for part in content if isinstance(part, Mapping)]


def _unwrap_output(output: Any) -> Any:
    if isinstance(output, Mapping) and "value" in output:
        return output["value"]
    return output


def _completed_value(part: Mapping[str, Any]) -> Any:
    """Return the completed value of a tool part, or ``_MISSING`` when there is none."""
    part_type = part.get("type")
    if part_type == "tool-result":
        output = part.get("output", _MISSING)
        if output is _MISSING or output is None:
            output = part.get("result", _MISSING)
        if output is _MISSING or output is None:
            return _MISSING
        value = _unwrap_output(output)
        return _MISSING if value is None else value
    if part_type == "tool-call":
        result = part.get("result", _MISSING)
        if result is _MISSING or result is None:
            return _MISSING
        return result
    return _MISSING


def iter_completed_results(
    history: Sequence[Turn] | None,
    tool_names: Iterable[str] | None = None,
) -> Iterator[ToolResult]:
    """Yield completed tool results newest-first, optionally filtered by tool name."""
    if not history:
        return
    names = frozenset(tool_names) if tool_names is not None else None
    for index in range(len(history) - 1, -1, -1):
        for part in _content_parts(history[index]):
            tool_name = part.get("toolName")
            if not isinstance(tool_name, str):
                continue
            if names is not None and tool_name not in names:
                continue
            value = _completed_value(part)
            if value is _MISSING:
                continue
            call_id = part.get("toolCallId")
            yield ToolResult(
                turn_index=index,
                tool_name=tool_name,
                value=value,
                tool_call_id=call_id if isinstance(call_id, str) else None,
            )


def iter_pending_calls(
    history: Sequence[Turn] | None,
    tool_names: Iterable[str],
) -> Iterator[tuple[int, Mapping[str, Any]]]:
    """Yield ``(turn_index, part)`` for tool calls still waiting on a result, newest-first."""
    if not history:
        return
    names = frozenset(tool_names)
    answered: set[str] = set()
    for index in range(len(history) - 1, -1, -1):
        parts = _content_parts(history[index])
        for part in parts:
            if part.get("type") == "tool-result" and isinstance(part.get("toolCallId"), str):
                answered.add(part["toolCallId"])
        for part in parts:
            if part.get("type") != "tool-call" or part.get("toolName") not in names:
                continue
            if _completed_value(part) is not _MISSING:
                continue
            if part.get("toolCallId") in answered:
                continue
            yield index, part


def load_history(path: Path | str) -> List[Turn]:
    """Load a conversation history from a JSON array or a JSONL file."""
    history_path = Path(path)
    try:
        text = history_path.read_text(encoding="utf-8")
    except OSError as error:
        raise HistoryFormatError(f"Unable to read history file {history_path}: {error}") from error

    stripped = text.strip()
    if not stripped:
        return []

    try:
        turns = json.loads(stripped)
    except json.JSONDecodeError:
        try:
            turns = [json.loads(line) for line in stripped.splitlines() if line.strip()]
        except json.JSONDecodeError as error:
            raise HistoryFormatError(f"History file {history_path} is not valid JSON: {error}") from error

    if isinstance(turns, Mapping):
        turns = turns["messages"] if isinstance(turns.get("messages"), list) else [turns]
    if not isinstance(turns, list) or not all(isinstance(turn, Mapping) for turn in turns):
        raise HistoryFormatError(f"History file {history_path} must contain a list of turns.")
    return list(turns)

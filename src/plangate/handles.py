"""Deferred action registry: correlate propose results with later confirm calls.

A propose tool (for example a drafted email) returns a payload carrying an
opaque handle. A later confirm tool receives only that handle and locates the
payload by scanning history newest-to-oldest. The handle is the only
correlation key; turn position is never used.

Confirm tools record ``{"handle": ..., "status": "consumed"}`` in their
result. When ``consumed_by`` names those tools, handles that already have a
consumption record no longer resolve, so a confirmed action cannot be
replayed.
"""

from __future__ import annotations

import logging
import secrets
from typing import Any, Iterable, Optional, Sequence, Set, Type, TypeVar

from pydantic import BaseModel, ValidationError

from .history import Turn, iter_completed_results

LOGGER = logging.getLogger(__name__)

CONSUMED_STATUS = "consumed"

PayloadT = TypeVar("PayloadT", bound=BaseModel)


def new_handle() -> str:
    """Return a fresh unguessable handle."""
    return secrets.token_urlsafe(16)


def consumed_handles(history: Sequence[Turn] | None, confirm_tool_names: Iterable[str]) -> Set[str]:
    """Return handles already consumed by a completed confirm call."""
    consumed: Set[str] = set()
    for result in iter_completed_results(history, confirm_tool_names):
        value = result.value
        if not isinstance(value, dict):
            continue
        handle = value.get("handle")
        if isinstance(handle, str) and value.get("status") == CONSUMED_STATUS:
            consumed.add(handle)
    return consumed


def resolve(
    history: Sequence[Turn] | None,
    handle: str,
    *,
    tool_names: Iterable[str],
    schema: Type[PayloadT],
    handle_field: str,
    consumed_by: Iterable[str] | None = None,
) -> Optional[PayloadT]:
    """Return the newest propose payload whose handle equals ``handle``, or ``None``.

    Outputs that do not parse against ``schema`` are skipped. ``None`` is an
    expected outcome for stale or forged handles.
    """
    if not handle:
        return None
    if consumed_by is not None and handle in consumed_handles(history, consumed_by):
        LOGGER.warning("Handle %s was already consumed", handle)
        return None

    for result in iter_completed_results(history, tool_names):
        try:
            payload = schema.model_validate(result.value)
        except ValidationError:
            LOGGER.debug(
                "Skipping %s output in turn %s: not a %s",
                result.tool_name,
                result.turn_index,
                schema.__name__,
            )
            continue
        if getattr(payload, handle_field, None) == handle:
            return payload

    LOGGER.warning("No proposal found for handle %s", handle)
    return None


def consumption_record(handle: str, **extra: Any) -> dict:
    """Build the result fragment a confirm tool returns to mark ``handle`` used."""
    return {"handle": handle, "status": CONSUMED_STATUS, **extra}

"""The single mutation point for persisted agent memory."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Optional

from .schema import MAX_MEMORY_ENTRIES, AgentActionLogEntry, AgentErrorLogEntry, AgentMemory
from .store import MemoryRepository

if TYPE_CHECKING:
    from ..planning.schemas import Snapshot

LOGGER = logging.getLogger(__name__)


class MemoryUpdater:
    """Fold executed actions and errors into a snapshot's memory and persist it."""

    def __init__(self, repository: MemoryRepository, max_entries: int = MAX_MEMORY_ENTRIES) -> None:
        self.repository = repository
        self.max_entries = max_entries

    def apply_action_update(
        self,
        previous_snapshot: "Snapshot",
        executed_action: AgentActionLogEntry,
        error: Optional[AgentErrorLogEntry] = None,
    ) -> AgentMemory:
        """Prepend ``executed_action`` (and ``error``) to the bounded history and save it.

        ``previous_snapshot`` supplies both the memory being extended and the
        owning document id. The returned memory is what was persisted.
        """
        current = previous_snapshot.memory
        recent_actions = [executed_action, *current.recent_actions][: self.max_entries]
        if error is not None:
            recent_errors = [error, *current.recent_errors][: self.max_entries]
        else:
            recent_errors = list(current.recent_errors)

        updated = current.model_copy(
            update={"recent_actions": recent_actions, "recent_errors": recent_errors}
        )
        owner_id = previous_snapshot.meta.document_id
        self.repository.save(owner_id, updated)
        LOGGER.debug(
            "Persisted memory for %s (%d action(s), %d error(s))",
            owner_id,
            len(recent_actions),
            len(recent_errors),
        )
        return updated

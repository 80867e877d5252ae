"""Bounded per-document agent memory: records, persistence, and updates."""

from .schema import (
    MAX_MEMORY_ENTRIES,
    ActionStatus,
    AgentActionLogEntry,
    AgentErrorLogEntry,
    AgentMemory,
    AgentNote,
    NoteImportance,
)
from .store import InMemoryMemoryRepository, MemoryRepository, SqliteMemoryRepository
from .updater import MemoryUpdater

__all__ = [
    "MAX_MEMORY_ENTRIES",
    "ActionStatus",
    "AgentActionLogEntry",
    "AgentErrorLogEntry",
    "AgentMemory",
    "AgentNote",
    "InMemoryMemoryRepository",
    "MemoryRepository",
    "MemoryUpdater",
    "NoteImportance",
    "SqliteMemoryRepository",
]

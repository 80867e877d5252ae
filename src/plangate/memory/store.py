"""Persistence for per-document agent memory."""

from __future__ import annotations

import hashlib
import json
import logging
import os
import shutil
import sqlite3
import tempfile
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Mapping, Protocol

from pydantic import ValidationError

from ..config import section
from .schema import AgentMemory, utc_now

DEFAULT_DB_PATH = Path("data/plangate.sqlite")
LOGGER = logging.getLogger(__name__)


class MemoryRepository(Protocol):
    """Load and save the memory record owned by a document or session."""

    def load(self, owner_id: str) -> AgentMemory: ...

    def save(self, owner_id: str, memory: AgentMemory) -> None: ...


def _as_iso(timestamp: datetime) -> str:
    """Serialise a timestamp to a timezone-aware ISO 8601 string."""
    if timestamp.tzinfo is None:
        timestamp = timestamp.replace(tzinfo=timezone.utc)
    return timestamp.astimezone(timezone.utc).isoformat()


def _decode_memory(raw: Any, owner_id: str) -> AgentMemory:
    """Decode a stored memory blob, treating anything unreadable as empty memory."""
    if not isinstance(raw, str) or not raw.strip():
        return AgentMemory.empty()
    try:
        return AgentMemory.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as error:
        LOGGER.warning("Discarding unreadable memory for %s: %s", owner_id, error)
        return AgentMemory.empty()


class InMemoryMemoryRepository:
    """Process-local repository; last writer wins."""

    def __init__(self, initial: Mapping[str, AgentMemory] | None = None) -> None:
        self._records: Dict[str, str] = {
            owner_id: memory.model_dump_json(by_alias=True)
            for owner_id, memory in (initial or {}).items()
        }
        self.save_count = 0

    def load(self, owner_id: str) -> AgentMemory:
        return _decode_memory(self._records.get(owner_id), owner_id)

    def save(self, owner_id: str, memory: AgentMemory) -> None:
        self._records[owner_id] = memory.model_dump_json(by_alias=True)
        self.save_count += 1


class SqliteMemoryRepository:
    """SQLite-backed memory repository keyed by owner (document) id."""

    @staticmethod
    def _is_writable(path: Path) -> bool:
        parent = path.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError:
            return False
        if path.exists():
            return os.access(path, os.W_OK)
        return os.access(parent, os.W_OK)

    @staticmethod
    def _fallback_db_path(source: Path) -> Path:
        digest = hashlib.sha1(source.as_posix().encode("utf-8")).hexdigest()[:12]
        fallback_dir = Path(tempfile.gettempdir()) / "plangate" / "db" / digest
        fallback_dir.mkdir(parents=True, exist_ok=True)
        return fallback_dir / source.name

    @classmethod
    def _resolve_db_path(cls, requested: Path) -> Path:
        resolved = requested.resolve()
        if cls._is_writable(resolved):
            return resolved
        fallback = cls._fallback_db_path(resolved)
        if not fallback.exists():
            if resolved.exists() and os.access(resolved, os.R_OK):
                try:
                    shutil.copy2(resolved, fallback)
                except OSError:
                    fallback.touch(exist_ok=True)
            else:
                fallback.touch(exist_ok=True)
        try:
            fallback.chmod(0o600)
        except OSError:
            pass
        if not cls._is_writable(fallback):
            raise OSError(f"Unable to locate writable database path (attempted {requested})")
        return fallback

    def __init__(self, db_path: Path | str = DEFAULT_DB_PATH) -> None:
        requested_path = Path(db_path)
        self.db_path = self._resolve_db_path(requested_path)
        if self.db_path != requested_path.resolve():
            LOGGER.warning(
                "Database path %s is not writable; using fallback %s",
                requested_path,
                self.db_path,
            )
        self._conn: sqlite3.Connection | None = self._open_connection()
        self._bootstrap()

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "SqliteMemoryRepository":
        db_path = section(config, "memory").get("db_path")
        if db_path:
            return cls(Path(db_path))
        return cls(DEFAULT_DB_PATH)

    def close(self) -> None:
        if getattr(self, "_conn", None) is not None:
            try:
                self._conn.close()
            finally:
                self._conn = None

    def __enter__(self) -> "SqliteMemoryRepository":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _open_connection(self) -> sqlite3.Connection:
        connection = sqlite3.connect(str(self.db_path))
        connection.row_factory = sqlite3.Row
        return connection

    def _bootstrap(self) -> None:
        self._conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS agent_memory (
                owner_id TEXT PRIMARY KEY,
                payload TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );
            """
        )
        self._conn.commit()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        try:
            yield self._conn
            self._conn.commit()
        except Exception:
            self._conn.rollback()
            raise

    def load(self, owner_id: str) -> AgentMemory:
        cursor = self._conn.execute(
            "SELECT payload FROM agent_memory WHERE owner_id = ?", (owner_id,)
        )
        row = cursor.fetchone()
        if not row:
            return AgentMemory.empty()
        return _decode_memory(row["payload"], owner_id)

    def save(self, owner_id: str, memory: AgentMemory) -> None:
        payload = memory.model_dump_json(by_alias=True)
        with self._transaction():
            self._conn.execute(
                """
                INSERT INTO agent_memory (owner_id, payload, updated_at)
                VALUES (?, ?, ?)
                ON CONFLICT(owner_id) DO UPDATE SET
                    payload = excluded.payload,
                    updated_at = excluded.updated_at
                """,
                (owner_id, payload, _as_iso(utc_now())),
            )

    def list_owners(self) -> List[str]:
        cursor = self._conn.execute("SELECT owner_id FROM agent_memory ORDER BY updated_at DESC")
        return [row["owner_id"] for row in cursor.fetchall()]

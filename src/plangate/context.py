"""Assemble document snapshots from the external data-access collaborators."""

from __future__ import annotations

import logging
from typing import Optional, Protocol

from .memory.store import MemoryRepository
from .planning.risk import DefaultSafetyConfigProvider
from .planning.schemas import DocumentShape, Selection, Snapshot, SnapshotMeta

LOGGER = logging.getLogger(__name__)


class MetaProvider(Protocol):
    def get_meta(self) -> SnapshotMeta: ...


class DocumentGateway(Protocol):
    """Read-only structural queries against the live document."""

    def get_structure(self) -> DocumentShape: ...

    def get_current_selection(self) -> Optional[Selection]: ...


class ContextManager:
    """Build a fresh snapshot each time one is requested."""

    def __init__(
        self,
        gateway: DocumentGateway,
        meta_provider: MetaProvider,
        memory_repository: MemoryRepository,
        safety_provider: DefaultSafetyConfigProvider | None = None,
    ) -> None:
        self.gateway = gateway
        self.meta_provider = meta_provider
        self.memory_repository = memory_repository
        self.safety_provider = safety_provider or DefaultSafetyConfigProvider()

    def get_snapshot(self) -> Snapshot:
        meta = self.meta_provider.get_meta()
        document = self.gateway.get_structure()
        selection = self.gateway.get_current_selection()

        memory = self.memory_repository.load(meta.document_id)
        safety = self.safety_provider.build_safety_context(meta.document_id, document, selection)

        LOGGER.debug("Built snapshot %s for document %s", meta.snapshot_id, meta.document_id)
        return Snapshot(
            meta=meta,
            document=document,
            selection=selection,
            memory=memory,
            safety=safety,
        )

"""
Planwise — Write Coalescer.

Collapses rapid edits of the same entity (free-text notes typed into a goal)
into one store write. Every submitted edit gets a monotonic version token;
a write carrying a version older than the last one written is rejected.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from planwise.ports.document_store_port import PersistenceError

if TYPE_CHECKING:
    from planwise.ports.document_store_port import DocumentStorePort

logger = logging.getLogger(__name__)


class StaleWriteError(Exception):
    """Raised when a write is older than what the store already holds."""


@dataclass
class _PendingWrite:
    fields: dict[str, Any]
    version: int


class WriteCoalescer:
    """Per-entity coalescing queue for one collection."""

    def __init__(self, store: DocumentStorePort, collection: str) -> None:
        self._store = store
        self._collection = collection
        self._versions = itertools.count(1)
        self._pending: dict[str, _PendingWrite] = {}
        self._written: dict[str, int] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def submit(self, entity_id: str, fields: dict[str, Any]) -> int:
        """Queue an edit; later edits to the same keys win. Returns its version."""
        version = next(self._versions)
        queued = self._pending.get(entity_id)
        merged = {**queued.fields, **fields} if queued else dict(fields)
        self._pending[entity_id] = _PendingWrite(fields=merged, version=version)
        return version

    def has_pending(self, entity_id: str) -> bool:
        return entity_id in self._pending

    def last_written(self, entity_id: str) -> int:
        return self._written.get(entity_id, 0)

    async def write(self, entity_id: str, fields: dict[str, Any], version: int) -> None:
        """Write `fields` tagged with `version`, unless a newer version is stored."""
        if version <= self.last_written(entity_id):
            raise StaleWriteError(
                f"{self._collection}/{entity_id}: version {version} is older than "
                f"stored version {self.last_written(entity_id)}"
            )
        await self._store.update(self._collection, entity_id, {**fields, "writeVersion": version})
        self._written[entity_id] = version

    async def flush(self, entity_id: str) -> int | None:
        """Write the coalesced edit for one entity. Returns the version written."""
        lock = self._locks.setdefault(entity_id, asyncio.Lock())
        async with lock:
            queued = self._pending.pop(entity_id, None)
            if queued is None:
                return None
            try:
                await self.write(entity_id, queued.fields, queued.version)
            except PersistenceError:
                newer = self._pending.get(entity_id)
                if newer is None:
                    self._pending[entity_id] = queued
                else:
                    newer.fields = {**queued.fields, **newer.fields}
                logger.warning("Coalesced write for %s/%s kept pending", self._collection, entity_id)
                raise
            logger.info(
                "Coalesced write for %s/%s flushed at version %d",
                self._collection, entity_id, queued.version,
            )
            return queued.version

    async def flush_all(self) -> None:
        for entity_id in list(self._pending):
            await self.flush(entity_id)

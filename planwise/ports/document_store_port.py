"""Document store port — abstract interface for persisting plain records.

Core modules depend on this protocol, never on a specific backend.
"""

from __future__ import annotations

from typing import Any, Protocol


class PersistenceError(Exception):
    """Raised when the store fails to durably apply a read or write."""


class DocumentStorePort(Protocol):
    """Generic collection + id document store."""

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None: ...

    async def create(self, collection: str, data: dict[str, Any]) -> str: ...

    async def update(
        self, collection: str, doc_id: str, fields: dict[str, Any]
    ) -> None: ...

    async def delete(self, collection: str, doc_id: str) -> bool: ...

    async def find(
        self, collection: str, where: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]: ...

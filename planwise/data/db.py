"""
Planwise — Document Database.

SQLite-backed implementation of DocumentStorePort. Every record is a JSON body
keyed by (collection, id), so routines, goals and review sessions survive
restarts without a table per shape.
"""

from __future__ import annotations

import asyncio
import json
import logging
import sqlite3
import uuid
from datetime import datetime
from pathlib import Path
from typing import Any

from planwise.ports.document_store_port import PersistenceError

logger = logging.getLogger(__name__)


class DocumentDB:
    """SQLite storage for plain structured records."""

    def __init__(self, db_path: str | None = None) -> None:
        if db_path is None:
            from planwise.config import settings
            db_path = settings.DATABASE_PATH

        self._db_path = db_path
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _init_db(self) -> None:
        """Create the documents table if it doesn't exist."""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS documents (
                    collection  TEXT    NOT NULL,
                    id          TEXT    NOT NULL,
                    body        TEXT    NOT NULL,
                    revision    INTEGER NOT NULL DEFAULT 1,
                    created_at  TEXT    NOT NULL,
                    updated_at  TEXT    NOT NULL,
                    PRIMARY KEY (collection, id)
                )
            """)
        logger.debug("Documents table initialized at %s", self._db_path)

    # -- sync internals (run in a worker thread) ----------------------------

    def _get_sync(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT body FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            ).fetchone()
        if row is None:
            return None
        return json.loads(row["body"])

    def _create_sync(self, collection: str, data: dict[str, Any]) -> str:
        doc_id = data.get("id") or uuid.uuid4().hex
        body = {**data, "id": doc_id}
        now = datetime.now().isoformat()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO documents (collection, id, body, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?)
                """,
                (collection, doc_id, json.dumps(body), now, now),
            )
        return doc_id

    def _update_sync(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT body FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            ).fetchone()
            if row is None:
                raise PersistenceError(f"{collection}/{doc_id} not found")
            body = json.loads(row["body"])
            body.update(fields)
            body["id"] = doc_id
            conn.execute(
                """
                UPDATE documents
                   SET body = ?, revision = revision + 1, updated_at = ?
                 WHERE collection = ? AND id = ?
                """,
                (json.dumps(body), datetime.now().isoformat(), collection, doc_id),
            )

    def _delete_sync(self, collection: str, doc_id: str) -> bool:
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM documents WHERE collection = ? AND id = ?",
                (collection, doc_id),
            )
        return cursor.rowcount > 0

    def _find_sync(self, collection: str, where: dict[str, Any]) -> list[dict[str, Any]]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT body FROM documents WHERE collection = ? ORDER BY created_at, id",
                (collection,),
            ).fetchall()
        docs = [json.loads(r["body"]) for r in rows]
        return [d for d in docs if all(d.get(k) == v for k, v in where.items())]

    # -- DocumentStorePort ---------------------------------------------------

    async def get(self, collection: str, doc_id: str) -> dict[str, Any] | None:
        try:
            return await asyncio.to_thread(self._get_sync, collection, doc_id)
        except sqlite3.Error as exc:
            logger.error("Failed to read %s/%s: %s", collection, doc_id, exc)
            raise PersistenceError(f"Failed to read {collection}/{doc_id}: {exc}") from exc

    async def create(self, collection: str, data: dict[str, Any]) -> str:
        try:
            doc_id = await asyncio.to_thread(self._create_sync, collection, data)
        except sqlite3.IntegrityError as exc:
            logger.error("Duplicate document in %s: %s", collection, exc)
            raise PersistenceError(f"Document already exists in {collection}: {exc}") from exc
        except sqlite3.Error as exc:
            logger.error("Failed to create document in %s: %s", collection, exc)
            raise PersistenceError(f"Failed to create document in {collection}: {exc}") from exc
        logger.info("Document created: %s/%s", collection, doc_id)
        return doc_id

    async def update(self, collection: str, doc_id: str, fields: dict[str, Any]) -> None:
        try:
            await asyncio.to_thread(self._update_sync, collection, doc_id, fields)
        except PersistenceError:
            logger.error("Cannot update missing document %s/%s", collection, doc_id)
            raise
        except sqlite3.Error as exc:
            logger.error("Failed to update %s/%s: %s", collection, doc_id, exc)
            raise PersistenceError(f"Failed to update {collection}/{doc_id}: {exc}") from exc
        logger.debug("Document updated: %s/%s (%s)", collection, doc_id, ", ".join(sorted(fields)))

    async def delete(self, collection: str, doc_id: str) -> bool:
        try:
            deleted = await asyncio.to_thread(self._delete_sync, collection, doc_id)
        except sqlite3.Error as exc:
            logger.error("Failed to delete %s/%s: %s", collection, doc_id, exc)
            raise PersistenceError(f"Failed to delete {collection}/{doc_id}: {exc}") from exc
        if deleted:
            logger.info("Document deleted: %s/%s", collection, doc_id)
        return deleted

    async def find(
        self, collection: str, where: dict[str, Any] | None = None
    ) -> list[dict[str, Any]]:
        try:
            return await asyncio.to_thread(self._find_sync, collection, where or {})
        except sqlite3.Error as exc:
            logger.error("Failed to query %s: %s", collection, exc)
            raise PersistenceError(f"Failed to query {collection}: {exc}") from exc

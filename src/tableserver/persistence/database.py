"""Database access — aiosqlite for entity documents.

One row per entity, keyed by ``(kind, id)``. The body is the serialized
JSON document and is overwritten whole on every save.
"""

from __future__ import annotations

import logging

import aiosqlite

log = logging.getLogger(__name__)

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS documents (
    kind TEXT NOT NULL,
    id TEXT NOT NULL,
    body TEXT NOT NULL,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
    PRIMARY KEY (kind, id)
);
"""


class Database:
    """Async SQLite database wrapper.

    Args:
        db_path: Path to the SQLite database file.
    """

    def __init__(self, db_path: str = "tableserver.db") -> None:
        self._db_path = db_path
        self._conn: aiosqlite.Connection | None = None

    async def connect(self) -> None:
        """Open the database connection and create tables if needed."""
        self._conn = await aiosqlite.connect(self._db_path)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.executescript(_SCHEMA)
        await self._conn.commit()
        log.info("Database connected: %s", self._db_path)

    async def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            await self._conn.close()
            self._conn = None

    # -- Document operations ---------------------------------------------

    async def get_document(self, kind: str, doc_id: str) -> str | None:
        """Return the raw JSON body of a document, or None."""
        assert self._conn is not None
        async with self._conn.execute(
            "SELECT body FROM documents WHERE kind = ? AND id = ?",
            (kind, doc_id),
        ) as cursor:
            row = await cursor.fetchone()
            return None if row is None else row[0]

    async def put_document(self, kind: str, doc_id: str, body: str) -> None:
        """Insert or overwrite a document body."""
        assert self._conn is not None
        await self._conn.execute(
            "INSERT INTO documents (kind, id, body, updated_at) VALUES (?, ?, ?, CURRENT_TIMESTAMP) "
            "ON CONFLICT(kind, id) DO UPDATE SET body = excluded.body, updated_at = CURRENT_TIMESTAMP",
            (kind, doc_id, body),
        )
        await self._conn.commit()

    async def delete_document(self, kind: str, doc_id: str) -> bool:
        """Delete a document. Returns True if a row was removed."""
        assert self._conn is not None
        async with self._conn.execute(
            "DELETE FROM documents WHERE kind = ? AND id = ?",
            (kind, doc_id),
        ) as cursor:
            deleted = cursor.rowcount > 0
        await self._conn.commit()
        if deleted:
            log.info("Deleted %s %s", kind, doc_id)
        return deleted

    async def document_exists(self, kind: str, doc_id: str) -> bool:
        assert self._conn is not None
        async with self._conn.execute(
            "SELECT 1 FROM documents WHERE kind = ? AND id = ?",
            (kind, doc_id),
        ) as cursor:
            return await cursor.fetchone() is not None

    async def list_document_ids(self, kind: str) -> list[str]:
        """Return all document ids of one kind, in id order."""
        assert self._conn is not None
        async with self._conn.execute(
            "SELECT id FROM documents WHERE kind = ? ORDER BY id",
            (kind,),
        ) as cursor:
            rows = await cursor.fetchall()
            return [r[0] for r in rows]

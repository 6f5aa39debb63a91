"""Document stores — one JSON document per entity, addressed by id.

The engine and network layers only see the :class:`DocumentStore`
interface. Every ``put`` overwrites the whole document; there is no
append log and no partial write.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Optional

import aiosqlite

from tableserver.models.patch import Document
from tableserver.persistence.database import Database
from tableserver.util.errors import DocumentCorrupt, StoreWriteError

log = logging.getLogger(__name__)


class DocumentStore(ABC):
    """Persistence for one kind of entity (characters, worlds, battle maps)."""

    def __init__(self, kind: str) -> None:
        self.kind = kind

    @abstractmethod
    async def get(self, doc_id: str) -> Optional[Document]:
        """Load a document, or None if it does not exist.

        Raises:
            DocumentCorrupt: If the stored body is not a JSON object.
        """

    @abstractmethod
    async def put(self, doc_id: str, doc: Document) -> None:
        """Overwrite a document.

        Raises:
            StoreWriteError: If the write fails.
        """

    @abstractmethod
    async def exists(self, doc_id: str) -> bool: ...

    @abstractmethod
    async def list_ids(self) -> list[str]: ...

    @abstractmethod
    async def delete(self, doc_id: str) -> bool: ...

    # -- Shared encoding -------------------------------------------------

    def _decode(self, doc_id: str, body: str) -> Document:
        try:
            doc = json.loads(body)
        except json.JSONDecodeError as e:
            raise DocumentCorrupt(self.kind, doc_id, str(e)) from e
        if not isinstance(doc, dict):
            raise DocumentCorrupt(self.kind, doc_id, "not a JSON object")
        return doc

    def _encode(self, doc_id: str, doc: Document) -> str:
        try:
            return json.dumps(doc, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            raise StoreWriteError(self.kind, doc_id, str(e)) from e


class SqliteDocumentStore(DocumentStore):
    """Documents stored as rows of the shared SQLite database."""

    def __init__(self, database: Database, kind: str) -> None:
        super().__init__(kind)
        self._db = database

    async def get(self, doc_id: str) -> Optional[Document]:
        body = await self._db.get_document(self.kind, doc_id)
        if body is None:
            return None
        return self._decode(doc_id, body)

    async def put(self, doc_id: str, doc: Document) -> None:
        body = self._encode(doc_id, doc)
        try:
            await self._db.put_document(self.kind, doc_id, body)
        except aiosqlite.Error as e:
            log.error("Write failed for %s %s: %s", self.kind, doc_id, e)
            raise StoreWriteError(self.kind, doc_id, str(e)) from e

    async def exists(self, doc_id: str) -> bool:
        return await self._db.document_exists(self.kind, doc_id)

    async def list_ids(self) -> list[str]:
        return await self._db.list_document_ids(self.kind)

    async def delete(self, doc_id: str) -> bool:
        return await self._db.delete_document(self.kind, doc_id)


class MemoryDocumentStore(DocumentStore):
    """In-process store keeping serialized bodies, for tests and tooling.

    Bodies are kept as JSON text so callers never share references with
    the stored state, exactly as with the SQLite store.
    """

    def __init__(self, kind: str) -> None:
        super().__init__(kind)
        self.bodies: dict[str, str] = {}

    async def get(self, doc_id: str) -> Optional[Document]:
        body = self.bodies.get(doc_id)
        if body is None:
            return None
        return self._decode(doc_id, body)

    async def put(self, doc_id: str, doc: Document) -> None:
        self.bodies[doc_id] = self._encode(doc_id, doc)

    async def exists(self, doc_id: str) -> bool:
        return doc_id in self.bodies

    async def list_ids(self) -> list[str]:
        return sorted(self.bodies)

    async def delete(self, doc_id: str) -> bool:
        return self.bodies.pop(doc_id, None) is not None

"""Error taxonomy shared by the engine, persistence and network layers.

REST endpoints turn these into ``{"success": false, "error": ...}`` bodies;
the WebSocket dispatch loop logs them and keeps the connection open.
"""

from __future__ import annotations


class TableError(Exception):
    """Base class for all tableserver errors."""


class ValidationError(TableError):
    """Malformed message envelope, payload or patch path."""


class NotFoundError(TableError):
    """The entity does not exist and its kind is not auto-created."""

    def __init__(self, kind: str, entity_id: str) -> None:
        super().__init__(f"{kind.capitalize()} not found")
        self.kind = kind
        self.entity_id = entity_id


class DocumentCorrupt(TableError):
    """A stored document could not be parsed as a JSON object."""

    def __init__(self, kind: str, entity_id: str, reason: str = "") -> None:
        detail = f": {reason}" if reason else ""
        super().__init__(f"Invalid JSON for {kind} {entity_id}{detail}")
        self.kind = kind
        self.entity_id = entity_id


class StoreWriteError(TableError, OSError):
    """Persisting a document failed."""

    def __init__(self, kind: str, entity_id: str, reason: str = "") -> None:
        detail = f": {reason}" if reason else ""
        TableError.__init__(self, f"Failed to write {kind} {entity_id}{detail}")
        self.kind = kind
        self.entity_id = entity_id

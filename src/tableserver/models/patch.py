"""Patch model — one path-addressed mutation of a JSON document.

A patch is ``{"path": "a.b.0.c", "value": <json>}``. The path is a
``.``-separated list of object keys and array indices; the value replaces
whatever is stored at that location.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, JsonValue

# A document is a JSON object tree owned by the document store.
Document = dict[str, Any]


class Patch(BaseModel):
    """A single overwrite of the value at ``path``."""

    path: str = Field(min_length=1)
    value: JsonValue = None

    @property
    def keys(self) -> list[str]:
        return self.path.split(".")

    def to_wire(self) -> dict[str, Any]:
        """Plain dict for JSON framing."""
        return {"path": self.path, "value": self.value}

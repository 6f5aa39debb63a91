"""Battle-map and world document shapes.

Documents themselves stay untyped JSON trees; these dataclasses are read
views over the parts the server reasons about (tokens, walls, strokes) and
factories for the default documents created on first read.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any, Optional

from tableserver.models.hex import HexCoord
from tableserver.models.patch import Document

DEFAULT_MOVEMENT_SPEED = 6
DEFAULT_BACKGROUND_COLOR = "#e5e7eb"


@dataclass
class Token:
    """A character token placed on a battle map.

    Attributes:
        id: Token id, also its key under the map's ``tokens`` object.
        character_id: Character sheet the token represents.
        position: Current hex.
        movement_speed: Hexes the token may move per drag.
        team: Optional team colour.
        is_on_the_fly: Quick token created on the map; not bound by the
            movement budget.
    """

    id: str
    character_id: str = ""
    name: str = ""
    position: HexCoord = field(default_factory=lambda: HexCoord(0, 0))
    movement_speed: int = DEFAULT_MOVEMENT_SPEED
    team: Optional[str] = None
    is_on_the_fly: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Token:
        speed = data.get("movementSpeed")
        return cls(
            id=str(data["id"]),
            character_id=str(data.get("characterId", "")),
            name=str(data.get("name", "")),
            position=HexCoord.from_dict(data.get("position", {"q": 0, "r": 0})),
            movement_speed=int(speed) if isinstance(speed, (int, float)) and not isinstance(speed, bool) else DEFAULT_MOVEMENT_SPEED,
            team=data.get("team"),
            is_on_the_fly=bool(data.get("isOnTheFly", data.get("isQuickToken", False))),
        )

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "id": self.id,
            "characterId": self.character_id,
            "name": self.name,
            "position": self.position.to_dict(),
            "movementSpeed": self.movement_speed,
            "isOnTheFly": self.is_on_the_fly,
        }
        if self.team is not None:
            out["team"] = self.team
        return out

    def position_path(self) -> str:
        """Patch path addressing this token's position."""
        return f"tokens.{self.id}.position"


@dataclass
class Stroke:
    """A freehand drawing stroke. Stroke lists are only ever replaced whole."""

    id: str
    points: list[tuple[float, float]] = field(default_factory=list)
    color: str = "#000000"
    line_width: float = 2.0
    is_eraser: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Stroke:
        return cls(
            id=str(data.get("id", "")),
            points=[(float(p["x"]), float(p["y"])) for p in data.get("points", [])],
            color=str(data.get("color", "#000000")),
            line_width=float(data.get("lineWidth", 2.0)),
            is_eraser=bool(data.get("isEraser", False)),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "points": [{"x": x, "y": y} for x, y in self.points],
            "color": self.color,
            "lineWidth": self.line_width,
            "isEraser": self.is_eraser,
        }


# -- Document readers ----------------------------------------------------

def walls_from_document(doc: Document) -> set[HexCoord]:
    """Collect the wall hexes of a map document, skipping malformed entries."""
    walls: set[HexCoord] = set()
    for entry in doc.get("walls") or []:
        try:
            walls.add(HexCoord.from_dict(entry))
        except ValueError:
            continue
    return walls


def tokens_from_document(doc: Document) -> dict[str, Token]:
    """Read the ``tokens`` object of a map document keyed by token id.

    Older maps store tokens as a list; both shapes are accepted.
    """
    raw = doc.get("tokens") or {}
    entries = raw.values() if isinstance(raw, dict) else raw
    tokens: dict[str, Token] = {}
    for entry in entries:
        if not isinstance(entry, dict) or "id" not in entry:
            continue
        try:
            token = Token.from_dict(entry)
        except (KeyError, TypeError, ValueError):
            continue
        tokens[token.id] = token
    return tokens


def strokes_from_document(doc: Document) -> list[Stroke]:
    return [Stroke.from_dict(s) for s in doc.get("strokes") or [] if isinstance(s, dict)]


# -- Default documents ---------------------------------------------------

def _now_ms() -> int:
    return int(time.time() * 1000)


def create_empty_world(name: str) -> Document:
    """Default world document created on first read."""
    return {
        "name": name,
        "characterIds": [],
        "partyIds": [],
        "itemLibrary": [],
        "runeLibrary": [],
        "spellLibrary": [],
        "battleLoot": [],
    }


def create_empty_battle_map(map_id: str, world_name: str, name: str = "") -> Document:
    """Default battle-map document created on first read."""
    now = _now_ms()
    return {
        "id": map_id,
        "name": name or ("Main Map" if map_id == "default" else map_id),
        "worldName": world_name,
        "tokens": {},
        "strokes": [],
        "textureStrokes": [],
        "walls": [],
        "measurementLines": [],
        "images": [],
        "backgroundColor": DEFAULT_BACKGROUND_COLOR,
        "createdAt": now,
        "updatedAt": now,
    }

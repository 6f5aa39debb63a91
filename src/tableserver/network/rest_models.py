"""Pydantic request models for the REST API.

These models define the HTTP request bodies.
They are kept separate from the WebSocket GameMessage models.
Document bodies (character sheets, worlds, maps) are free-form JSON
objects and are taken as plain dicts.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


# ===================================================================
# Movement
# ===================================================================


class HexBody(BaseModel):
    q: int
    r: int


class RouteRequest(BaseModel):
    """Ask the server to validate a token move on a battle map."""

    model_config = ConfigDict(populate_by_name=True)

    token_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("tokenId", "token_id"))
    start: Optional[HexBody] = None
    waypoints: List[HexBody] = []
    goal: HexBody
    movement_speed: Optional[int] = Field(
        default=None, ge=0, validation_alias=AliasChoices("movementSpeed", "movement_speed"),
    )
    commit: bool = False


# ===================================================================
# Map storage
# ===================================================================


class MapSaveBody(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    world_name: str = Field(min_length=1, validation_alias=AliasChoices("worldName", "world_name"))
    map_name: str = Field(min_length=1, validation_alias=AliasChoices("mapName", "map_name"))
    map_data: Dict[str, Any] = Field(validation_alias=AliasChoices("mapData", "map_data"))


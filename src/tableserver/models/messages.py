"""Network message models.

Typed Pydantic models for all client ↔ server WebSocket messages.
Every frame is ``{"type": <event>, "data": <payload>}`` in both
directions; payload fields use the camelCase names the browser client
sends. Patch events accept a generic ``entityId`` in place of the
kind-specific id field.
"""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, JsonValue

from tableserver.models.patch import Patch


# -- Outbound event names ------------------------------------------------

WORLD_PATCHED = "worldPatched"
CHARACTER_PATCHED = "characterPatched"
BATTLE_MAP_PATCHED = "battleMapPatched"
DICE_ROLLED = "diceRolled"
LOOT_RECEIVED = "lootReceived"
BATTLE_LOOT_RECEIVED = "battleLootReceived"
MEASUREMENT_UPDATE = "measurementUpdate"


def make_frame(event: str, payload: Any) -> dict[str, Any]:
    """Wrap an outbound payload in the wire envelope."""
    return {"type": event, "data": payload}


# -- Base ----------------------------------------------------------------

class GameMessage(BaseModel):
    """Base class for all inbound messages."""

    type: str
    data: Any = None


class Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


def _world_field(*extra: str) -> Any:
    return Field(min_length=1, validation_alias=AliasChoices("worldName", *extra))


# -- Payloads ------------------------------------------------------------

class MapRef(Payload):
    world_name: str = _world_field()
    map_id: str = Field(min_length=1, validation_alias=AliasChoices("mapId", "battleMapId"))


class PatchWorldPayload(Payload):
    world_name: str = _world_field("entityId")
    patch: Patch


class PatchCharacterPayload(Payload):
    character_id: str = Field(min_length=1, validation_alias=AliasChoices("characterId", "entityId"))
    patch: Patch


class PatchBattleMapPayload(Payload):
    world_name: str = _world_field()
    battle_map_id: str = Field(
        min_length=1, validation_alias=AliasChoices("battleMapId", "mapId", "entityId"),
    )
    patch: Patch


class ClaimBattleLootPayload(Payload):
    world_name: str = _world_field()
    loot_id: str = Field(min_length=1, validation_alias=AliasChoices("lootId"))
    character_id: Optional[str] = Field(default=None, validation_alias=AliasChoices("characterId"))


class RevealBattleLootPayload(Payload):
    world_name: str = _world_field()


class SendDirectLootPayload(Payload):
    character_id: str = Field(min_length=1, validation_alias=AliasChoices("characterId"))
    loot: JsonValue = None


class DiceRollPayload(Payload):
    """A roll record; everything besides the world name is passed through."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    world_name: str = _world_field()


class UpdateMeasurementPayload(Payload):
    world_name: str = _world_field()
    battle_map_id: str = Field(min_length=1, validation_alias=AliasChoices("battleMapId", "mapId"))
    measurement: Optional[dict[str, JsonValue]] = None


# -- Rooms ---------------------------------------------------------------

class JoinWorld(GameMessage):
    type: Literal["joinWorld"] = "joinWorld"
    data: str = Field(min_length=1)


class LeaveWorld(GameMessage):
    type: Literal["leaveWorld"] = "leaveWorld"
    data: str = Field(min_length=1)


class JoinCharacter(GameMessage):
    type: Literal["joinCharacter"] = "joinCharacter"
    data: str = Field(min_length=1)


class LeaveCharacter(GameMessage):
    type: Literal["leaveCharacter"] = "leaveCharacter"
    data: str = Field(min_length=1)


class JoinMap(GameMessage):
    type: Literal["joinMap"] = "joinMap"
    data: MapRef


class LeaveMap(GameMessage):
    type: Literal["leaveMap"] = "leaveMap"
    data: MapRef


class JoinBattleMap(GameMessage):
    type: Literal["joinBattleMap"] = "joinBattleMap"
    data: MapRef


# -- Patches -------------------------------------------------------------

class PatchWorld(GameMessage):
    type: Literal["patchWorld"] = "patchWorld"
    data: PatchWorldPayload


class PatchCharacter(GameMessage):
    type: Literal["patchCharacter"] = "patchCharacter"
    data: PatchCharacterPayload


class PatchBattleMap(GameMessage):
    type: Literal["patchBattleMap"] = "patchBattleMap"
    data: PatchBattleMapPayload


# -- Loot, dice, measurement --------------------------------------------

class ClaimBattleLoot(GameMessage):
    type: Literal["claimBattleLoot"] = "claimBattleLoot"
    data: ClaimBattleLootPayload


class RevealBattleLoot(GameMessage):
    type: Literal["revealBattleLoot"] = "revealBattleLoot"
    data: RevealBattleLootPayload


class SendDirectLoot(GameMessage):
    type: Literal["sendDirectLoot"] = "sendDirectLoot"
    data: SendDirectLootPayload


class DiceRoll(GameMessage):
    type: Literal["diceRoll"] = "diceRoll"
    data: DiceRollPayload


class UpdateMeasurement(GameMessage):
    type: Literal["updateMeasurement"] = "updateMeasurement"
    data: UpdateMeasurementPayload


# -- Registry ------------------------------------------------------------

MESSAGE_TYPES: dict[str, type[GameMessage]] = {
    "joinWorld": JoinWorld,
    "leaveWorld": LeaveWorld,
    "joinCharacter": JoinCharacter,
    "leaveCharacter": LeaveCharacter,
    "joinMap": JoinMap,
    "leaveMap": LeaveMap,
    "joinBattleMap": JoinBattleMap,
    "patchWorld": PatchWorld,
    "patchCharacter": PatchCharacter,
    "patchBattleMap": PatchBattleMap,
    "claimBattleLoot": ClaimBattleLoot,
    "revealBattleLoot": RevealBattleLoot,
    "sendDirectLoot": SendDirectLoot,
    "diceRoll": DiceRoll,
    "updateMeasurement": UpdateMeasurement,
}


def parse_message(data: dict[str, Any]) -> GameMessage:
    """Parse a raw dict into the appropriate typed message model."""
    msg_type = data.get("type", "")
    model_cls = MESSAGE_TYPES.get(msg_type, GameMessage)
    return model_cls.model_validate(data)

"""Gateway handlers — room membership, patch relay, loot, dice, measurements.

Each handler is an async method that receives a parsed GameMessage and
the sender's session id. None of them reply to the sender directly;
results go out as room broadcasts.

Patch handlers follow one flow: apply the patch to the stored document,
persist it, then relay the same patch to every other member of the
entity's room(s). A failed write is logged and the patch is relayed
anyway, so connected clients can drift from the stored document until
the next successful write.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable

from tableserver.engine.document_service import DocumentService
from tableserver.models import messages as m
from tableserver.network.rooms import (
    Broadcaster,
    RoomRegistry,
    character_room,
    legacy_map_room,
    map_rooms,
    world_room,
)
from tableserver.network.router import Router
from tableserver.util.errors import StoreWriteError
from tableserver.util.log_format import truncate_for_log

log = logging.getLogger(__name__)


class GatewayHandlers:
    """All WebSocket event handlers, bound to one set of services.

    Args:
        documents: Document service for characters, worlds and battle maps.
        rooms: Room membership shared with the server.
        broadcaster: Delivers events to room members.
    """

    def __init__(self, documents: DocumentService, rooms: RoomRegistry,
                 broadcaster: Broadcaster) -> None:
        self._documents = documents
        self._rooms = rooms
        self._broadcaster = broadcaster
        # (world, map id) → sid → measurement line; never persisted
        self._measurements: dict[tuple[str, str], dict[int, dict[str, Any]]] = defaultdict(dict)

    # -- Rooms -----------------------------------------------------------

    async def handle_join_world(self, message: m.JoinWorld, sender_sid: int) -> None:
        self._rooms.join(sender_sid, world_room(message.data))
        log.info("Session %d joined world %s", sender_sid, message.data)

    async def handle_leave_world(self, message: m.LeaveWorld, sender_sid: int) -> None:
        self._rooms.leave(sender_sid, world_room(message.data))

    async def handle_join_character(self, message: m.JoinCharacter, sender_sid: int) -> None:
        self._rooms.join(sender_sid, character_room(message.data))

    async def handle_leave_character(self, message: m.LeaveCharacter, sender_sid: int) -> None:
        self._rooms.leave(sender_sid, character_room(message.data))

    async def handle_join_map(self, message: m.JoinMap, sender_sid: int) -> None:
        ref = message.data
        for room in map_rooms(ref.world_name, ref.map_id):
            self._rooms.join(sender_sid, room)
        log.info("Session %d joined map %s/%s", sender_sid, ref.world_name, ref.map_id)

    async def handle_leave_map(self, message: m.LeaveMap, sender_sid: int) -> None:
        ref = message.data
        for room in map_rooms(ref.world_name, ref.map_id):
            self._rooms.leave(sender_sid, room)
        await self._drop_measurement(ref.world_name, ref.map_id, sender_sid)

    async def handle_join_battle_map(self, message: m.JoinBattleMap, sender_sid: int) -> None:
        self._rooms.join(sender_sid, legacy_map_room(message.data.map_id))

    # -- Patches ---------------------------------------------------------

    async def _persist(self, apply: Callable[[], Awaitable[Any]], what: str) -> None:
        try:
            await apply()
        except StoreWriteError as e:
            log.error("Persisting %s failed, relaying patch anyway: %s", what, e)

    async def handle_patch_world(self, message: m.PatchWorld, sender_sid: int) -> None:
        world_name, patch = message.data.world_name, message.data.patch
        await self._persist(
            lambda: self._documents.patch_world(world_name, patch), f"world {world_name}",
        )
        await self._broadcaster.emit_to_room(
            world_room(world_name), m.WORLD_PATCHED, patch.to_wire(), exclude=sender_sid,
        )

    async def handle_patch_character(self, message: m.PatchCharacter, sender_sid: int) -> None:
        """Missing characters raise NotFoundError; nothing is relayed then."""
        character_id, patch = message.data.character_id, message.data.patch
        await self._persist(
            lambda: self._documents.patch_character(character_id, patch),
            f"character {character_id}",
        )
        await self._broadcaster.emit_to_room(
            character_room(character_id), m.CHARACTER_PATCHED, patch.to_wire(),
            exclude=sender_sid,
        )

    async def handle_patch_battle_map(self, message: m.PatchBattleMap, sender_sid: int) -> None:
        data = message.data
        await self._persist(
            lambda: self._documents.patch_battle_map(data.world_name, data.battle_map_id, data.patch),
            f"battle map {data.world_name}/{data.battle_map_id}",
        )
        await self._broadcaster.emit_to_rooms(
            map_rooms(data.world_name, data.battle_map_id), m.BATTLE_MAP_PATCHED,
            data.patch.to_wire(), exclude=sender_sid,
        )

    # -- Loot ------------------------------------------------------------

    async def handle_claim_battle_loot(self, message: m.ClaimBattleLoot, sender_sid: int) -> None:
        data = message.data
        patch = await self._documents.battle_loot_claim_patch(
            data.world_name, data.loot_id, data.character_id or "",
        )
        await self._persist(
            lambda: self._documents.patch_world(data.world_name, patch), f"world {data.world_name}",
        )
        await self._broadcaster.emit_to_room(
            world_room(data.world_name), m.WORLD_PATCHED, patch.to_wire(),
        )

    async def handle_reveal_battle_loot(self, message: m.RevealBattleLoot, sender_sid: int) -> None:
        world_name = message.data.world_name
        world = await self._documents.get_world(world_name)
        loot = world.get("battleLoot") or []
        party = await self._documents.party_ids(world_name)
        sent = await self._broadcaster.emit_to_rooms(
            [character_room(pid) for pid in party], m.BATTLE_LOOT_RECEIVED, loot,
        )
        log.info("Battle loot of %s revealed to %d party session(s)", world_name, sent)

    async def handle_send_direct_loot(self, message: m.SendDirectLoot, sender_sid: int) -> None:
        data = message.data
        log.info("Direct loot to character %s: %s", data.character_id, truncate_for_log(data.loot))
        await self._broadcaster.emit_to_room(
            character_room(data.character_id), m.LOOT_RECEIVED, data.loot,
        )

    # -- Dice ------------------------------------------------------------

    async def handle_dice_roll(self, message: m.DiceRoll, sender_sid: int) -> None:
        roll = {**(message.data.model_extra or {}), "worldName": message.data.world_name}
        await self._broadcaster.emit_to_room(
            world_room(message.data.world_name), m.DICE_ROLLED, roll,
        )

    # -- Measurements ----------------------------------------------------

    async def handle_update_measurement(self, message: m.UpdateMeasurement, sender_sid: int) -> None:
        data = message.data
        lines = self._measurements[(data.world_name, data.battle_map_id)]
        if data.measurement is None:
            lines.pop(sender_sid, None)
        else:
            line = dict(data.measurement)
            line.setdefault("createdBy", str(sender_sid))
            lines[sender_sid] = line
        await self._emit_measurements(data.world_name, data.battle_map_id, exclude=sender_sid)

    async def _drop_measurement(self, world_name: str, map_id: str, sid: int) -> None:
        lines = self._measurements.get((world_name, map_id))
        if lines and lines.pop(sid, None) is not None:
            await self._emit_measurements(world_name, map_id, exclude=sid)

    async def _emit_measurements(self, world_name: str, map_id: str, exclude: int) -> None:
        key = (world_name, map_id)
        lines = list(self._measurements.get(key, {}).values())
        if not lines:
            self._measurements.pop(key, None)
        await self._broadcaster.emit_to_rooms(
            map_rooms(world_name, map_id), m.MEASUREMENT_UPDATE, lines, exclude=exclude,
        )

    def measurements(self, world_name: str, map_id: str) -> list[dict[str, Any]]:
        """Current measurement lines of a map."""
        return list(self._measurements.get((world_name, map_id), {}).values())

    async def handle_disconnect(self, sid: int) -> None:
        """Drop the lines a closed session left on any map."""
        maps = [key for key, lines in self._measurements.items() if sid in lines]
        for world_name, map_id in maps:
            await self._drop_measurement(world_name, map_id, sid)

    # -- Registration ----------------------------------------------------

    def register(self, router: Router) -> None:
        """Register every gateway event on the router."""
        router.register("joinWorld", self.handle_join_world)
        router.register("leaveWorld", self.handle_leave_world)
        router.register("joinCharacter", self.handle_join_character)
        router.register("leaveCharacter", self.handle_leave_character)
        router.register("joinMap", self.handle_join_map)
        router.register("leaveMap", self.handle_leave_map)
        router.register("joinBattleMap", self.handle_join_battle_map)

        router.register("patchWorld", self.handle_patch_world)
        router.register("patchCharacter", self.handle_patch_character)
        router.register("patchBattleMap", self.handle_patch_battle_map)

        router.register("claimBattleLoot", self.handle_claim_battle_loot)
        router.register("revealBattleLoot", self.handle_reveal_battle_loot)
        router.register("sendDirectLoot", self.handle_send_direct_loot)
        router.register("diceRoll", self.handle_dice_roll)
        router.register("updateMeasurement", self.handle_update_measurement)

        log.info("Gateway handlers registered: %d types", len(router.registered_types))

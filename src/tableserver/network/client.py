"""Room client — joins rooms, sends patches and mirrors documents.

Used by tools and tests that act like a browser client. A commit hook
given a mirror applies the patch to it before sending; inbound patches
from other sessions are applied on arrival. A mirror that has not loaded its
snapshot yet buffers inbound patches and replays them on top of it.

Usage::

    client = RoomClient("ws://localhost:8765")
    await client.connect()
    mirror = DocumentMirror()
    mirror.attach(client, "battleMapPatched")
    mirror.load(await fetch_map())
    await client.join_map("Eldoria", "map-1")
    listener = asyncio.create_task(client.listen())
"""

from __future__ import annotations

import asyncio
import copy
import inspect
import json
import logging
from collections import defaultdict
from typing import Any, Awaitable, Callable, Optional, Union

import pydantic
import websockets
from websockets.asyncio.client import ClientConnection, connect

from tableserver.engine.patch_engine import apply_patch
from tableserver.models.messages import make_frame
from tableserver.models.patch import Document, Patch
from tableserver.util.errors import ValidationError

log = logging.getLogger(__name__)

Callback = Callable[[Any], Union[None, Awaitable[None]]]


class RoomClient:
    """WebSocket client speaking the gateway protocol.

    Args:
        url: Server address, e.g. ``ws://localhost:8765``.
    """

    def __init__(self, url: str) -> None:
        self._url = url
        self._ws: Optional[ClientConnection] = None
        self._callbacks: dict[str, list[Callback]] = defaultdict(list)
        self._pending: set[asyncio.Task] = set()

    # -- Connection ------------------------------------------------------

    async def connect(self) -> None:
        self._ws = await connect(self._url)
        log.info("Connected to %s", self._url)

    async def close(self) -> None:
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        if self._ws is not None:
            await self._ws.close()
            self._ws = None

    @property
    def connected(self) -> bool:
        return self._ws is not None

    async def send(self, event: str, payload: Any) -> None:
        if self._ws is None:
            raise RuntimeError("RoomClient is not connected")
        await self._ws.send(json.dumps(make_frame(event, payload), ensure_ascii=False))

    # -- Rooms -----------------------------------------------------------

    async def join_world(self, world_name: str) -> None:
        await self.send("joinWorld", world_name)

    async def leave_world(self, world_name: str) -> None:
        await self.send("leaveWorld", world_name)

    async def join_character(self, character_id: str) -> None:
        await self.send("joinCharacter", character_id)

    async def leave_character(self, character_id: str) -> None:
        await self.send("leaveCharacter", character_id)

    async def join_map(self, world_name: str, map_id: str) -> None:
        await self.send("joinMap", {"worldName": world_name, "mapId": map_id})

    async def leave_map(self, world_name: str, map_id: str) -> None:
        await self.send("leaveMap", {"worldName": world_name, "mapId": map_id})

    # -- Patches ---------------------------------------------------------

    async def patch_world(self, world_name: str, patch: Patch) -> None:
        await self.send("patchWorld", {"worldName": world_name, "patch": patch.to_wire()})

    async def patch_character(self, character_id: str, patch: Patch) -> None:
        await self.send("patchCharacter", {"characterId": character_id, "patch": patch.to_wire()})

    async def patch_battle_map(self, world_name: str, map_id: str, patch: Patch) -> None:
        await self.send("patchBattleMap", {
            "worldName": world_name, "battleMapId": map_id, "patch": patch.to_wire(),
        })

    def battle_map_committer(self, world_name: str, map_id: str,
                             mirror: Optional[DocumentMirror] = None) -> Callable[[Patch], None]:
        """A ``MovementDrag`` commit hook that sends the move to the server.

        With ``mirror`` the move is applied locally first, since the server
        does not echo a patch back to its sender.
        """
        def commit(patch: Patch) -> None:
            if mirror is not None:
                mirror.apply(patch)
            task = asyncio.ensure_future(self.patch_battle_map(world_name, map_id, patch))
            self._pending.add(task)
            task.add_done_callback(self._pending.discard)
        return commit

    # -- Table events ----------------------------------------------------

    async def roll_dice(self, world_name: str, roll: dict[str, Any]) -> None:
        await self.send("diceRoll", {**roll, "worldName": world_name})

    async def update_measurement(self, world_name: str, map_id: str,
                                 measurement: Optional[dict[str, Any]]) -> None:
        await self.send("updateMeasurement", {
            "worldName": world_name, "battleMapId": map_id, "measurement": measurement,
        })

    async def claim_battle_loot(self, world_name: str, loot_id: str,
                                character_id: Optional[str] = None) -> None:
        payload: dict[str, Any] = {"worldName": world_name, "lootId": loot_id}
        if character_id is not None:
            payload["characterId"] = character_id
        await self.send("claimBattleLoot", payload)

    # -- Inbound ---------------------------------------------------------

    def on(self, event: str, callback: Callback) -> None:
        """Call ``callback(payload)`` for every inbound ``event``."""
        self._callbacks[event].append(callback)

    async def dispatch(self, raw: Union[str, bytes]) -> None:
        """Decode one inbound frame and run its callbacks."""
        try:
            frame = json.loads(raw)
        except json.JSONDecodeError as e:
            log.warning("Dropping malformed frame from server: %s", e)
            return
        if not isinstance(frame, dict) or "type" not in frame:
            log.warning("Dropping frame without type from server")
            return
        for callback in list(self._callbacks.get(frame["type"], ())):
            result = callback(frame.get("data"))
            if inspect.isawaitable(result):
                await result

    async def listen(self) -> None:
        """Dispatch inbound frames until the connection closes."""
        if self._ws is None:
            raise RuntimeError("RoomClient is not connected")
        try:
            async for raw in self._ws:
                await self.dispatch(raw)
        except websockets.ConnectionClosed as e:
            log.info("Connection to %s closed: code=%s", self._url, e.code)


class DocumentMirror:
    """Local copy of one document kept in sync through patches."""

    def __init__(self, doc: Optional[Document] = None) -> None:
        self.doc: Optional[Document] = copy.deepcopy(doc) if doc is not None else None
        self._buffered: list[Patch] = []

    @property
    def loaded(self) -> bool:
        return self.doc is not None

    def load(self, snapshot: Document) -> None:
        """Install the snapshot and replay patches that arrived before it."""
        self.doc = copy.deepcopy(snapshot)
        buffered, self._buffered = self._buffered, []
        for patch in buffered:
            apply_patch(self.doc, patch)
        if buffered:
            log.debug("Replayed %d buffered patch(es) onto snapshot", len(buffered))

    def apply(self, patch: Patch) -> None:
        if self.doc is None:
            self._buffered.append(patch)
            return
        apply_patch(self.doc, patch)

    def apply_wire(self, payload: Any) -> None:
        """Apply a patch received as ``{"path", "value"}``."""
        try:
            patch = Patch.model_validate(payload)
        except pydantic.ValidationError as e:
            raise ValidationError(f"Malformed patch payload: {e.error_count()} error(s)") from e
        self.apply(patch)

    def attach(self, client: RoomClient, event: str) -> None:
        """Follow ``event`` patches from ``client``; bad ones are logged and skipped."""
        def on_patch(payload: Any) -> None:
            try:
                self.apply_wire(payload)
            except ValidationError as e:
                log.warning("Ignoring %s: %s", event, e)
        client.on(event, on_patch)

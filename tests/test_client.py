"""Tests for the room client and document mirror.

The end-to-end test runs a real WebSocket server on an ephemeral port.
"""

from __future__ import annotations

import asyncio
import copy
import json

import pytest

from tableserver.engine.document_service import DocumentService
from tableserver.engine.movement import MovementDrag
from tableserver.models.battlemap import Token
from tableserver.models.hex import HexCoord
from tableserver.models.patch import Patch
from tableserver.network.client import DocumentMirror, RoomClient
from tableserver.network.handlers import GatewayHandlers
from tableserver.network.rooms import RoomRegistry
from tableserver.network.router import Router
from tableserver.network.server import Server
from tableserver.persistence.document_store import MemoryDocumentStore
from tableserver.util.errors import ValidationError


class TestDocumentMirror:
    def test_apply_after_load(self):
        mirror = DocumentMirror({"tokens": {}})
        mirror.apply(Patch(path="tokens.t1.position", value={"q": 1, "r": 0}))
        assert mirror.doc == {"tokens": {"t1": {"position": {"q": 1, "r": 0}}}}

    def test_patches_before_snapshot_are_replayed(self):
        mirror = DocumentMirror()
        mirror.apply_wire({"path": "name", "value": "late"})
        assert not mirror.loaded
        mirror.load({"name": "early", "round": 1})
        assert mirror.doc == {"name": "late", "round": 1}

    def test_snapshot_is_copied(self):
        snapshot = {"a": {"b": 1}}
        mirror = DocumentMirror(snapshot)
        mirror.apply(Patch(path="a.b", value=2))
        assert snapshot == {"a": {"b": 1}}

    def test_malformed_wire_patch(self):
        mirror = DocumentMirror({})
        with pytest.raises(ValidationError):
            mirror.apply_wire({"value": 1})


class TestDispatch:
    @pytest.mark.asyncio
    async def test_sync_and_async_callbacks(self):
        client = RoomClient("ws://unused")
        seen = []

        async def on_async(data):
            seen.append(("async", data))

        client.on("diceRolled", lambda data: seen.append(("sync", data)))
        client.on("diceRolled", on_async)
        await client.dispatch(json.dumps({"type": "diceRolled", "data": {"total": 3}}))
        assert seen == [("sync", {"total": 3}), ("async", {"total": 3})]

    @pytest.mark.asyncio
    async def test_malformed_frames_dropped(self):
        client = RoomClient("ws://unused")
        seen = []
        client.on("x", seen.append)
        await client.dispatch("{oops")
        await client.dispatch(json.dumps([1]))
        await client.dispatch(json.dumps({"data": 1}))
        assert seen == []

    @pytest.mark.asyncio
    async def test_mirror_attached_skips_bad_patch(self):
        client = RoomClient("ws://unused")
        mirror = DocumentMirror({"n": 0})
        mirror.attach(client, "worldPatched")
        await client.dispatch(json.dumps({"type": "worldPatched", "data": {"path": ""}}))
        await client.dispatch(json.dumps({"type": "worldPatched", "data": {"path": "n", "value": 5}}))
        assert mirror.doc == {"n": 5}

    @pytest.mark.asyncio
    async def test_committer_applies_to_mirror_before_sending(self):
        client = RoomClient("ws://unused")
        mirror = DocumentMirror({"tokens": {}})
        sent = []

        async def fake_send(event, payload):
            sent.append((event, payload, copy.deepcopy(mirror.doc)))

        client.send = fake_send
        commit = client.battle_map_committer("W", "m1", mirror)
        commit(Patch(path="tokens.t1.position", value={"q": 2, "r": 0}))
        await asyncio.sleep(0)
        assert len(sent) == 1
        event, payload, doc_at_send = sent[0]
        assert event == "patchBattleMap"
        assert payload["battleMapId"] == "m1"
        assert doc_at_send == {"tokens": {"t1": {"position": {"q": 2, "r": 0}}}}

    @pytest.mark.asyncio
    async def test_send_requires_connection(self):
        with pytest.raises(RuntimeError):
            await RoomClient("ws://unused").join_world("W")


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_token_move_reaches_other_client(self):
        documents = DocumentService(
            MemoryDocumentStore("character"),
            MemoryDocumentStore("world"),
            MemoryDocumentStore("battlemap"),
        )
        rooms = RoomRegistry()
        router = Router()
        server = Server(router, rooms, host="127.0.0.1", port=0)
        handlers = GatewayHandlers(documents, rooms, server)
        handlers.register(router)
        server.on_disconnect(handlers.handle_disconnect)
        await server.start()

        url = f"ws://127.0.0.1:{server.port}"
        mover, watcher = RoomClient(url), RoomClient(url)
        listener = None
        try:
            await mover.connect()
            await watcher.connect()

            mirror = DocumentMirror()
            mirror.attach(watcher, "battleMapPatched")
            mirror.load(await documents.get_battle_map("W", "m1"))
            received = asyncio.Event()
            watcher.on("battleMapPatched", lambda _: received.set())
            listener = asyncio.create_task(watcher.listen())

            await watcher.join_map("W", "m1")
            await mover.join_map("W", "m1")
            # joins are processed in order per connection; wait for both
            for _ in range(100):
                if len(rooms.members("map:W:m1")) == 2:
                    break
                await asyncio.sleep(0.01)

            own = DocumentMirror(await documents.get_battle_map("W", "m1"))
            drag = MovementDrag(on_commit=mover.battle_map_committer("W", "m1", own))
            drag.pick_up(Token(id="t1", position=HexCoord(0, 0), movement_speed=3))
            drag.release(HexCoord(2, 0))
            assert own.doc["tokens"]["t1"]["position"] == {"q": 2, "r": 0}

            await asyncio.wait_for(received.wait(), timeout=5)
            assert mirror.doc["tokens"]["t1"]["position"] == {"q": 2, "r": 0}
            stored = await documents.get_battle_map("W", "m1")
            assert stored["tokens"]["t1"]["position"] == {"q": 2, "r": 0}
        finally:
            await mover.close()
            await watcher.close()
            if listener is not None:
                await asyncio.wait_for(listener, timeout=5)
            await server.stop()

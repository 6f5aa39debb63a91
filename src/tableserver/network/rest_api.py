"""REST API — FastAPI application for documents, map snapshots and routes.

Document reads and whole-document saves go through REST; live patches
normally travel over the WebSocket gateway. REST patches are applied and
then broadcast to every member of the entity's room. ``/ws`` on the same
port bridges into the WebSocket server's sessions.

Usage::

    from tableserver.network.rest_api import create_app

    app = create_app(services)
    # Start with uvicorn as an asyncio task alongside the WS server
"""

from __future__ import annotations

import base64
import logging
from typing import Any, Optional, TYPE_CHECKING

from fastapi import FastAPI, File, HTTPException, Request, UploadFile, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from tableserver.engine.movement import MovementDrag
from tableserver.models import messages as m
from tableserver.models.battlemap import Token, tokens_from_document, walls_from_document
from tableserver.models.hex import HexCoord
from tableserver.models.patch import Document, Patch
from tableserver.network.rest_models import MapSaveBody, RouteRequest
from tableserver.network.rooms import character_room, map_rooms, world_room
from tableserver.util.errors import (
    DocumentCorrupt,
    NotFoundError,
    StoreWriteError,
    TableError,
    ValidationError,
)
from tableserver.util.hex_math import hex_to_pixel

if TYPE_CHECKING:
    from tableserver.main import Services

log = logging.getLogger(__name__)

_STATUS = {
    ValidationError: 400,
    NotFoundError: 404,
    DocumentCorrupt: 500,
    StoreWriteError: 500,
}


def create_app(services: "Services") -> FastAPI:
    """Factory: create and return a configured FastAPI application.

    The ``services`` reference is captured by closure so every endpoint
    can reach the document service without global state.
    """
    documents = services.documents
    maps = services.map_storage
    server = services.server
    config = services.config

    app = FastAPI(title="Tableserver", version="1.0.0")

    # CORS: browser clients are served from another origin
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(TableError)
    async def table_error(request: Request, exc: TableError) -> JSONResponse:
        status = next((code for cls, code in _STATUS.items() if isinstance(exc, cls)), 500)
        log.warning("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=status, content={"success": False, "error": str(exc)})

    # =================================================================
    # Characters
    # =================================================================

    @app.get("/api/characters")
    async def list_characters() -> dict[str, Any]:
        return await documents.list_characters()

    @app.get("/api/characters/{character_id}")
    async def get_character(character_id: str) -> Optional[dict[str, Any]]:
        """The character sheet, or null when it does not exist."""
        return await documents.get_character(character_id)

    @app.post("/api/characters/{character_id}")
    async def save_character(character_id: str, body: dict[str, Any]) -> dict[str, Any]:
        await documents.save_character(character_id, body)
        return {"success": True}

    @app.patch("/api/characters/{character_id}")
    async def patch_character(character_id: str, patch: Patch) -> dict[str, Any]:
        try:
            await documents.patch_character(character_id, patch)
        except NotFoundError:
            return {"success": False, "error": "Character not found"}
        await server.emit_to_room(character_room(character_id), m.CHARACTER_PATCHED, patch.to_wire())
        return {"success": True, "patch": patch.to_wire()}

    @app.post("/api/characters/{character_id}/portrait")
    async def upload_portrait(
        character_id: str, portrait: Optional[UploadFile] = File(None),
    ) -> dict[str, Any]:
        """Store an uploaded image as a data URL in the sheet's ``portrait``."""
        if portrait is None:
            raise HTTPException(status_code=400, detail="No file uploaded")
        content = await portrait.read()
        mime = portrait.content_type or "application/octet-stream"
        data_url = f"data:{mime};base64,{base64.b64encode(content).decode('ascii')}"
        patch = Patch(path="portrait", value=data_url)
        try:
            await documents.patch_character(character_id, patch)
        except NotFoundError:
            return {"success": False, "error": "Character not found"}
        await server.emit_to_room(character_room(character_id), m.CHARACTER_PATCHED, patch.to_wire())
        log.info("Portrait uploaded for %s (%d bytes, %s)", character_id, len(content), mime)
        return {"success": True}

    # =================================================================
    # Worlds
    # =================================================================

    @app.get("/api/worlds")
    async def list_worlds() -> list[str]:
        return await documents.list_worlds()

    @app.get("/api/worlds/{world_name}")
    async def get_world(world_name: str) -> dict[str, Any]:
        return await documents.get_world(world_name)

    @app.post("/api/worlds/{world_name}")
    async def save_world(world_name: str, body: dict[str, Any]) -> dict[str, Any]:
        await documents.save_world(world_name, body)
        return {"success": True}

    @app.patch("/api/worlds/{world_name}")
    async def patch_world(world_name: str, patch: Patch) -> dict[str, Any]:
        await documents.patch_world(world_name, patch)
        await server.emit_to_room(world_room(world_name), m.WORLD_PATCHED, patch.to_wire())
        return {"success": True, "patch": patch.to_wire()}

    # =================================================================
    # Battle maps
    # =================================================================

    @app.get("/api/worlds/{world_name}/maps/{map_id}")
    async def get_battle_map(world_name: str, map_id: str) -> dict[str, Any]:
        return await documents.get_battle_map(world_name, map_id)

    @app.put("/api/worlds/{world_name}/maps/{map_id}")
    async def save_battle_map(world_name: str, map_id: str, body: dict[str, Any]) -> dict[str, Any]:
        await documents.save_battle_map(world_name, map_id, body)
        return {"success": True}

    @app.patch("/api/worlds/{world_name}/maps/{map_id}")
    async def patch_battle_map(world_name: str, map_id: str, patch: Patch) -> dict[str, Any]:
        await documents.patch_battle_map(world_name, map_id, patch)
        await server.emit_to_rooms(map_rooms(world_name, map_id), m.BATTLE_MAP_PATCHED, patch.to_wire())
        return {"success": True, "patch": patch.to_wire()}

    @app.post("/api/worlds/{world_name}/maps/{map_id}/route")
    async def plan_token_route(world_name: str, map_id: str, body: RouteRequest) -> dict[str, Any]:
        """Run a token move through the drag rules and report where it ends.

        With ``commit`` set the resulting position patch is applied and
        broadcast like any other battle-map patch.
        """
        doc = await documents.get_battle_map(world_name, map_id)
        token = _route_token(doc, body, config.default_movement_speed)
        if token is None:
            return {"success": False, "error": "Token not found"}

        drag = MovementDrag(walls_from_document(doc), search_limit=config.path_search_limit)
        drag.pick_up(token)
        for waypoint in body.waypoints:
            drag.hover(HexCoord(waypoint.q, waypoint.r))
            drag.add_waypoint()
        plan = drag.hover(HexCoord(body.goal.q, body.goal.r))
        result: dict[str, Any] = {
            "success": True,
            **(plan.to_dict() if plan is not None else {}),
            "valid": drag.valid,
            "exceedsBudget": drag.exceeds_budget,
            "meters": drag.distance_meters(config.meters_per_hex),
        }
        patch = drag.release()
        final = token.position if patch is None else HexCoord.from_dict(patch.value)
        result["final"] = final.to_dict()
        result["finalPixel"] = hex_to_pixel(final, config.hex_size).to_dict()

        if body.commit and patch is not None and body.token_id is not None:
            await documents.patch_battle_map(world_name, map_id, patch)
            await server.emit_to_rooms(
                map_rooms(world_name, map_id), m.BATTLE_MAP_PATCHED, patch.to_wire(),
            )
            result["patch"] = patch.to_wire()
        return result

    # =================================================================
    # Map snapshots
    # =================================================================

    @app.post("/api/maps/save")
    async def save_map_snapshot(body: MapSaveBody) -> dict[str, Any]:
        success = await maps.save_map(body.world_name, body.map_name, body.map_data)
        return {"success": success}

    @app.get("/api/maps/load/{world_name}/{map_name}")
    async def load_map_snapshot(world_name: str, map_name: str) -> dict[str, Any]:
        map_data = await maps.load_map(world_name, map_name)
        if map_data is None:
            return {"success": False, "error": "Map not found"}
        return {"success": True, "mapData": map_data}

    @app.post("/api/maps/backup/{world_name}/{map_name}")
    async def backup_map_snapshot(world_name: str, map_name: str) -> dict[str, Any]:
        return {"success": await maps.backup_map(world_name, map_name)}

    @app.get("/api/maps/list/{world_name}")
    async def list_map_snapshots(world_name: str) -> dict[str, Any]:
        return {"success": True, "maps": await maps.list_maps(world_name)}

    @app.get("/api/maps/exists/{world_name}/{map_name}")
    async def map_snapshot_exists(world_name: str, map_name: str) -> dict[str, Any]:
        return {"exists": await maps.map_exists(world_name, map_name)}

    @app.delete("/api/maps/{world_name}/{map_name}")
    async def delete_map_snapshot(world_name: str, map_name: str) -> dict[str, Any]:
        return {"success": await maps.delete_map(world_name, map_name)}

    # =================================================================
    # WebSocket bridge
    # =================================================================

    @app.websocket("/ws")
    async def websocket_endpoint(ws: WebSocket) -> None:
        """Same gateway as the standalone WebSocket server, on the REST port."""
        await ws.accept()
        adapter = _FastAPIWSAdapter(ws)
        sid = server.open_session(adapter)
        log.info("REST-WS client connected: sid=%d", sid)
        try:
            while True:
                raw = await ws.receive_text()
                await server.handle_frame(sid, raw)
        except WebSocketDisconnect:
            log.info("REST-WS client disconnected: sid=%d", sid)
        finally:
            await server.close_session(adapter)

    log.info("REST API created with %d routes", len(app.routes))
    return app


def _route_token(doc: Document, body: RouteRequest, default_speed: int) -> Optional[Token]:
    """The token a route request moves, or an ad-hoc one for a bare start hex."""
    if body.token_id is not None:
        token = tokens_from_document(doc).get(body.token_id)
        if token is None:
            return None
        if body.start is not None:
            token.position = HexCoord(body.start.q, body.start.r)
    elif body.start is not None:
        token = Token(id="route", position=HexCoord(body.start.q, body.start.r),
                      movement_speed=default_speed)
    else:
        raise ValidationError("Route needs a tokenId or a start hex")
    if body.movement_speed is not None:
        token.movement_speed = body.movement_speed
    return token


class _FastAPIWSAdapter:
    """Minimal wrapper so a FastAPI WebSocket looks like a ``websockets``
    connection to the Server's send_to / broadcast methods."""

    def __init__(self, ws: WebSocket):
        self._ws = ws
        self._closed = False

    async def send(self, data: str) -> None:
        if self._closed:
            return
        try:
            await self._ws.send_text(data)
        except (WebSocketDisconnect, RuntimeError) as e:
            log.debug("REST-WS send failed: %s", e)
            self._closed = True

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._ws.close(code=code, reason=reason)
        except RuntimeError as e:
            log.debug("REST-WS close failed: %s", e)

"""WebSocket server — manages client connections and room fan-out.

Accepts WebSocket connections, handles the connection lifecycle and
dispatches incoming frames to the router. Uses the ``websockets``
library with asyncio. The server is also the :class:`Broadcaster` that
gateway handlers emit events through.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Awaitable, Callable, Iterable, Optional, Protocol

import websockets
from websockets.asyncio.server import Server as WSServer
from websockets.asyncio.server import ServerConnection

from tableserver.models.messages import make_frame
from tableserver.network.rooms import RoomRegistry
from tableserver.network.router import Router
from tableserver.util.errors import DocumentCorrupt, NotFoundError, ValidationError

log = logging.getLogger(__name__)

# Called with the sid after a session has left all its rooms
DisconnectHook = Callable[[int], Awaitable[None]]


class Connection(Protocol):
    """The part of a WebSocket connection the server sends through."""

    async def send(self, data: str) -> None: ...

    async def close(self, code: int = 1000, reason: str = "") -> None: ...


def encode_frame(event: str, payload: Any) -> str:
    return json.dumps(make_frame(event, payload), ensure_ascii=False, default=str)


class Server:
    """asyncio WebSocket server with session and room tracking.

    Each connected client goes through:
    1. WebSocket handshake; the connection gets a fresh session id.
    2. Frames ``{"type", "data"}`` are routed via the Router.
    3. On disconnect the session leaves every room it joined.

    Args:
        router: Message router for dispatching incoming messages.
        rooms: Room membership shared with the gateway handlers.
        host: Bind address.
        port: Bind port.
    """

    def __init__(self, router: Router, rooms: Optional[RoomRegistry] = None,
                 host: str = "0.0.0.0", port: int = 8765,
                 ping_interval: int = 30, ping_timeout: int = 10,
                 max_size: int = 10 * 1024 * 1024) -> None:
        self._router = router
        self.rooms = rooms if rooms is not None else RoomRegistry()
        self._host = host
        self._port = port
        self._ping_interval = ping_interval
        self._ping_timeout = ping_timeout
        self._max_size = max_size
        self._connections: dict[int, Connection] = {}  # sid → ws
        self._ws_to_sid: dict[int, int] = {}  # id(ws) → sid
        self._server: Optional[WSServer] = None
        self._next_sid = 1
        self._disconnect_hooks: list[DisconnectHook] = []

    # -- Lifecycle -------------------------------------------------------

    async def start(self) -> None:
        """Start the WebSocket server."""
        self._server = await websockets.serve(
            self._on_connect,
            self._host,
            self._port,
            origins=None,  # any origin, same as the REST CORS policy
            ping_interval=self._ping_interval,
            ping_timeout=self._ping_timeout,
            max_size=self._max_size,
        )
        log.info("WebSocket server listening on ws://%s:%d", self._host, self.port)

    async def stop(self) -> None:
        """Stop the WebSocket server and close all connections."""
        if self._server is not None:
            self._server.close()
            await self._server.wait_closed()
            self._server = None
            log.info("WebSocket server stopped")

    @property
    def port(self) -> int:
        """Bound port (resolves port 0 once started)."""
        if self._server is not None:
            for sock in self._server.sockets:
                return sock.getsockname()[1]
        return self._port

    # -- Session management ----------------------------------------------

    def open_session(self, ws: Connection) -> int:
        """Assign a new session id to a connection."""
        sid = self._next_sid
        self._next_sid += 1
        self._connections[sid] = ws
        self._ws_to_sid[id(ws)] = sid
        log.debug("Session opened: sid=%d", sid)
        return sid

    def on_disconnect(self, hook: DisconnectHook) -> None:
        """Run ``hook(sid)`` whenever a session closes."""
        self._disconnect_hooks.append(hook)

    async def close_session(self, ws: Connection) -> Optional[int]:
        """Forget a connection, remove it from all rooms and run the
        disconnect hooks. Returns the sid."""
        sid = self._ws_to_sid.pop(id(ws), None)
        if sid is None:
            return None
        self._connections.pop(sid, None)
        left = self.rooms.leave_all(sid)
        log.debug("Session closed: sid=%d rooms=%s", sid, left)
        for hook in self._disconnect_hooks:
            try:
                await hook(sid)
            except Exception:
                log.exception("Disconnect hook failed for sid=%d", sid)
        return sid

    @property
    def connection_count(self) -> int:
        return len(self._connections)

    # -- Sending ---------------------------------------------------------

    async def send_to(self, sid: int, event: str, payload: Any) -> bool:
        """Send one event to a specific session.

        Returns True if the message was sent, False if not connected.
        """
        ws = self._connections.get(sid)
        if ws is None:
            return False
        try:
            await ws.send(encode_frame(event, payload))
            return True
        except websockets.ConnectionClosed:
            log.debug("send_to sid=%d failed, connection closed", sid)
            return False

    async def broadcast(self, sids: Iterable[int], event: str, payload: Any) -> int:
        """Send one event to several sessions.

        Returns the number of sessions that received it.
        """
        raw = encode_frame(event, payload)
        sent = 0
        for sid in sorted(set(sids)):
            ws = self._connections.get(sid)
            if ws is None:
                continue
            try:
                await ws.send(raw)
                sent += 1
            except websockets.ConnectionClosed:
                log.debug("broadcast to sid=%d skipped, connection closed", sid)
        return sent

    async def emit_to_room(self, room: str, event: str, payload: Any,
                           exclude: Optional[int] = None) -> int:
        return await self.emit_to_rooms([room], event, payload, exclude)

    async def emit_to_rooms(self, rooms: Iterable[str], event: str, payload: Any,
                            exclude: Optional[int] = None) -> int:
        """Deliver an event once to every member of any of ``rooms``."""
        rooms = list(rooms)
        sent = await self.broadcast(self.rooms.recipients(rooms, exclude), event, payload)
        log.debug("Emit %s to %s: %d recipient(s)", event, rooms, sent)
        return sent

    # -- Connection handler ----------------------------------------------

    async def _on_connect(self, ws: ServerConnection) -> None:
        """Handle a new WebSocket connection lifecycle."""
        sid = self.open_session(ws)
        remote = ws.remote_address
        log.info("Client connected: sid=%d remote=%s", sid, remote)

        try:
            async for raw_msg in ws:
                await self.handle_frame(sid, raw_msg)
        except websockets.ConnectionClosed as e:
            log.info(
                "Client disconnected: sid=%d code=%s reason=%s remote=%s",
                sid, e.code, e.reason or "(none)", remote,
            )
        else:
            log.info("Client closed cleanly: sid=%d remote=%s", sid, remote)
        finally:
            await self.close_session(ws)

    async def handle_frame(self, sid: int, raw_msg: Any) -> None:
        """Parse and route a single incoming frame.

        Malformed frames are logged and dropped without a reply. Handler
        failures are logged; the connection stays open either way.
        """
        if isinstance(raw_msg, bytes):
            raw_msg = raw_msg.decode("utf-8", errors="replace")
        try:
            data = json.loads(raw_msg)
        except json.JSONDecodeError as e:
            log.warning("Dropping malformed frame from sid=%d: %s", sid, e)
            return
        if not isinstance(data, dict):
            log.warning("Dropping non-object frame from sid=%d", sid)
            return

        msg_type = data.get("type", "")
        log.debug("Received: type=%s sid=%d", msg_type, sid)

        try:
            response = await self._router.route(data, sid)
        except ValidationError as e:
            log.warning("Rejected %s from sid=%d: %s", msg_type, sid, e)
            return
        except NotFoundError as e:
            log.info("Ignored %s from sid=%d: %s", msg_type, sid, e)
            return
        except DocumentCorrupt as e:
            log.error("Handler %s for sid=%d stopped: %s", msg_type, sid, e)
            return
        except Exception:
            log.exception("Handler error: type=%s sid=%d", msg_type, sid)
            return

        if response is not None:
            ws = self._connections.get(sid)
            if ws is not None:
                await ws.send(json.dumps(response, ensure_ascii=False, default=str))

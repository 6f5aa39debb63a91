"""Table server entry point.

Initializes all components and runs until a shutdown signal arrives:
1. Load configuration (config/server.yaml)
2. Initialize persistence (SQLite documents, map snapshot directory)
3. Create services (document service, rooms, router, server, handlers)
4. Start network servers (WebSocket + REST)
5. Wait for SIGINT / SIGTERM, then shut down

Usage:
    python -m tableserver.main [--config PATH]
    # or via entry point:
    tableserver [--config PATH]
"""

from __future__ import annotations

import asyncio
import logging
import signal
import sys
from dataclasses import dataclass
from typing import Any, Optional

from tableserver.engine.document_service import BATTLE_MAP, CHARACTER, WORLD, DocumentService
from tableserver.loaders.config_loader import DEFAULT_CONFIG_PATH, ServerConfig, load_config
from tableserver.network.handlers import GatewayHandlers
from tableserver.network.rooms import RoomRegistry
from tableserver.network.router import Router
from tableserver.network.server import Server
from tableserver.persistence.database import Database
from tableserver.persistence.document_store import DocumentStore, SqliteDocumentStore
from tableserver.persistence.map_storage import MapStorage
from tableserver.util.log_format import set_max_string

log = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Container for all services (makes passing around easier)
# ---------------------------------------------------------------------------


@dataclass
class Services:
    """Holds references to all services."""

    config: ServerConfig
    documents: DocumentService
    map_storage: MapStorage
    rooms: RoomRegistry
    router: Router
    server: Server
    handlers: GatewayHandlers
    database: Optional[Database] = None
    rest_server: Any = None


# ===================================================================
# 1. Initialize persistence layer
# ===================================================================


async def init_persistence(config: ServerConfig) -> tuple[Database, MapStorage]:
    """Open the document database and prepare the map snapshot directory."""
    log.info("Initializing persistence …")

    database = Database(config.db_path)
    await database.connect()
    log.info("  database:     connected (%s)", config.db_path)

    map_storage = MapStorage(config.maps_dir)
    map_storage.ensure_root()
    log.info("  maps:         %s", map_storage.root)

    return database, map_storage


# ===================================================================
# 2. Create services
# ===================================================================


def create_services(
    config: ServerConfig,
    characters: DocumentStore,
    worlds: DocumentStore,
    battle_maps: DocumentStore,
    map_storage: MapStorage,
    database: Optional[Database] = None,
) -> Services:
    """Instantiate all services with their dependencies injected.

    The stores are passed in so tests can wire in-memory ones.
    """
    log.info("Creating services …")

    documents = DocumentService(characters, worlds, battle_maps)
    rooms = RoomRegistry()
    router = Router()
    server = Server(
        router, rooms,
        host=config.host,
        port=config.ws_port,
        ping_interval=config.ws_ping_interval,
        ping_timeout=config.ws_ping_timeout,
        max_size=config.ws_max_message_size,
    )
    handlers = GatewayHandlers(documents, rooms, server)
    handlers.register(router)
    server.on_disconnect(handlers.handle_disconnect)

    log.info("  all services created")
    return Services(
        config=config,
        documents=documents,
        map_storage=map_storage,
        rooms=rooms,
        router=router,
        server=server,
        handlers=handlers,
        database=database,
    )


# ===================================================================
# 3. Start network servers
# ===================================================================


async def start_network(services: Services) -> None:
    """Start the WebSocket server and the REST API.

    The FastAPI app is served by uvicorn on its own port as a background
    task next to the standalone WebSocket server.
    """
    log.info("Starting network servers …")

    await services.server.start()

    from tableserver.network.rest_api import create_app
    import uvicorn

    rest_app = create_app(services)
    config = uvicorn.Config(
        rest_app,
        host=services.config.host,
        port=services.config.rest_port,
        log_level=services.config.log_level.lower(),
        access_log=False,
        ws_max_size=services.config.ws_max_message_size,
    )
    rest_server = uvicorn.Server(config)
    services.rest_server = rest_server
    asyncio.create_task(rest_server.serve())
    log.info("  REST API listening on http://%s:%d", services.config.host, services.config.rest_port)


# ===================================================================
# 4. Shutdown
# ===================================================================


async def shutdown(services: Services) -> None:
    log.info("Shutting down …")
    await services.server.stop()
    if services.rest_server is not None:
        services.rest_server.should_exit = True
        log.info("  REST API server stopped")
    if services.database is not None:
        await services.database.close()
        log.info("  database closed")
    log.info("  goodbye")


# ===================================================================
# Entry points
# ===================================================================


async def _start(config_path: str = DEFAULT_CONFIG_PATH) -> None:
    """Initialize and run all server components until a shutdown signal."""
    config = load_config(config_path)
    logging.basicConfig(
        level=getattr(logging, config.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )
    set_max_string(config.log_truncate_length)
    log.info("=== Table Server starting ===")

    database, map_storage = await init_persistence(config)
    services = create_services(
        config,
        characters=SqliteDocumentStore(database, CHARACTER),
        worlds=SqliteDocumentStore(database, WORLD),
        battle_maps=SqliteDocumentStore(database, BATTLE_MAP),
        map_storage=map_storage,
        database=database,
    )
    await start_network(services)

    stop = asyncio.Event()
    loop = asyncio.get_running_loop()

    def _request_shutdown() -> None:
        log.info("Shutdown signal received — stopping …")
        stop.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, _request_shutdown)

    await stop.wait()
    await shutdown(services)


def main() -> None:
    """Entry point for the table server.

    Supports command-line arguments:
        --config <path>  Server config YAML (default: config/server.yaml)
    """
    config_path = DEFAULT_CONFIG_PATH

    if "--config" in sys.argv:
        idx = sys.argv.index("--config")
        if idx + 1 >= len(sys.argv):
            print("Error: --config requires an argument", file=sys.stderr)
            sys.exit(1)
        config_path = sys.argv[idx + 1]

    asyncio.run(_start(config_path))


if __name__ == "__main__":
    main()

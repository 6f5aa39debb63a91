"""Server configuration — loads tunable settings from config/server.yaml.

Provides a single ``ServerConfig`` dataclass that is loaded once at startup
and then passed (or injected) wherever settings are needed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

import yaml

log = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/server.yaml"


@dataclass
class ServerConfig:
    """All tunable server settings.

    Loaded from ``config/server.yaml``.  Every field has a sensible default
    so the server can start even without the file.
    """

    # -- Network -----------------------------------------------------
    host: str = "0.0.0.0"
    ws_port: int = 8765
    rest_port: int = 3000
    ws_ping_interval: int = 30
    ws_ping_timeout: int = 10
    ws_max_message_size: int = 10 * 1024 * 1024

    # -- Storage -----------------------------------------------------
    db_path: str = "tableserver.db"
    maps_dir: str = "maps"

    # -- Logging -----------------------------------------------------
    log_level: str = "INFO"
    log_truncate_length: int = 80

    # -- Hex grid & movement -----------------------------------------
    hex_size: float = 32.0
    meters_per_hex: float = 1.5
    default_movement_speed: int = 6
    path_search_limit: int = 60


def load_config(path: str = DEFAULT_CONFIG_PATH) -> ServerConfig:
    """Load server configuration from a YAML file.

    Missing keys fall back to dataclass defaults and unknown keys are
    ignored.  If the file does not exist, a warning is logged and pure
    defaults are returned.
    """
    p = Path(path)
    if not p.exists():
        log.warning("Server config not found at %s — using defaults", p)
        return ServerConfig()

    with p.open() as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        log.warning("Server config at %s is not a mapping — using defaults", p)
        return ServerConfig()

    unknown = sorted(k for k in raw if k not in ServerConfig.__dataclass_fields__)
    if unknown:
        log.warning("Ignoring unknown config keys in %s: %s", p, ", ".join(unknown))

    log.info("Loaded server config from %s (%d keys)", p, len(raw))
    return ServerConfig(**{
        k: v for k, v in raw.items()
        if k in ServerConfig.__dataclass_fields__
    })

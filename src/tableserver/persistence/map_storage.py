"""Map storage — file snapshots and backups of battle maps.

Snapshots live next to the live documents as plain JSON files::

    <root>/<world>/<map>/map.json
    <root>/<world>/<map>/backups/map-<timestamp>.json
    <root>/_trash/<world>/<map>-<timestamp>/

Saving adds ``_savedAt``, ``_version``, ``_worldName`` and ``_mapName``
metadata. Deleting a map takes a last backup and moves the directory to
the trash instead of removing it.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

log = logging.getLogger(__name__)

SNAPSHOT_VERSION = "1.0"
TRASH_DIR = "_trash"

_SAFE_NAME = re.compile(r"^[^/\\\x00]+$")


def _timestamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H-%M-%S")


def _checked(part: str) -> str:
    if not _SAFE_NAME.match(part) or part in (".", "..", TRASH_DIR):
        raise ValueError(f"Invalid map path component: {part!r}")
    return part


class MapStorage:
    """Filesystem-backed map snapshots.

    Args:
        root: Base directory for all worlds' maps.
    """

    def __init__(self, root: str = "maps") -> None:
        self._root = Path(root)

    @property
    def root(self) -> Path:
        return self._root

    def ensure_root(self) -> None:
        self._root.mkdir(parents=True, exist_ok=True)
        log.info("Maps directory initialized: %s", self._root)

    # -- Paths -----------------------------------------------------------

    def _map_dir(self, world_name: str, map_name: str) -> Path:
        return self._root / _checked(world_name) / _checked(map_name)

    def _map_file(self, world_name: str, map_name: str) -> Path:
        return self._map_dir(world_name, map_name) / "map.json"

    def _backups_dir(self, world_name: str, map_name: str) -> Path:
        return self._map_dir(world_name, map_name) / "backups"

    # -- Operations ------------------------------------------------------

    async def save_map(self, world_name: str, map_name: str, map_data: dict[str, Any]) -> bool:
        """Write a snapshot. Returns False (and logs) on failure."""
        try:
            target = self._map_file(world_name, map_name)
            target.parent.mkdir(parents=True, exist_ok=True)
            payload = {
                **map_data,
                "_savedAt": datetime.now(timezone.utc).isoformat(),
                "_version": SNAPSHOT_VERSION,
                "_worldName": world_name,
                "_mapName": map_name,
            }
            tmp = target.with_suffix(".json.tmp")
            tmp.write_text(json.dumps(payload, indent=2, ensure_ascii=False), encoding="utf-8")
            tmp.replace(target)
        except (OSError, ValueError, TypeError) as e:
            log.error("Failed to save map %s/%s: %s", world_name, map_name, e)
            return False
        log.info("Map saved: %s/%s", world_name, map_name)
        return True

    async def load_map(self, world_name: str, map_name: str) -> Optional[dict[str, Any]]:
        """Read a snapshot, or None if it does not exist or is unreadable."""
        try:
            text = self._map_file(world_name, map_name).read_text(encoding="utf-8")
            data = json.loads(text)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            log.error("Failed to load map %s/%s: %s", world_name, map_name, e)
            return None
        log.info("Map loaded: %s/%s", world_name, map_name)
        return data

    async def backup_map(self, world_name: str, map_name: str) -> bool:
        """Copy the current snapshot into the map's backups directory."""
        try:
            snapshot = self._map_file(world_name, map_name).read_text(encoding="utf-8")
            backups = self._backups_dir(world_name, map_name)
            backups.mkdir(parents=True, exist_ok=True)
            backup_file = backups / f"map-{_timestamp()}.json"
            backup_file.write_text(snapshot, encoding="utf-8")
        except (OSError, ValueError) as e:
            log.error("Failed to backup map %s/%s: %s", world_name, map_name, e)
            return False
        log.info("Backup created: %s/%s -> %s", world_name, map_name, backup_file.name)
        return True

    async def list_maps(self, world_name: str) -> list[str]:
        """Names of all maps of a world that have a snapshot."""
        try:
            world_dir = self._root / _checked(world_name)
        except ValueError:
            return []
        if not world_dir.is_dir():
            return []
        return sorted(
            entry.name for entry in world_dir.iterdir()
            if entry.is_dir() and (entry / "map.json").is_file()
        )

    async def map_exists(self, world_name: str, map_name: str) -> bool:
        try:
            return self._map_file(world_name, map_name).is_file()
        except ValueError:
            return False

    async def delete_map(self, world_name: str, map_name: str) -> bool:
        """Back up the map, then move its directory into the trash.

        Returns False when the map has no directory.
        """
        try:
            map_dir = self._map_dir(world_name, map_name)
        except ValueError as e:
            log.error("Failed to delete map %s/%s: %s", world_name, map_name, e)
            return False
        if not map_dir.is_dir():
            log.warning("Delete of unknown map %s/%s ignored", world_name, map_name)
            return False

        await self.backup_map(world_name, map_name)
        try:
            trash = self._root / TRASH_DIR / world_name
            trash.mkdir(parents=True, exist_ok=True)
            map_dir.rename(trash / f"{map_name}-{_timestamp()}")
        except (OSError, ValueError) as e:
            log.error("Failed to delete map %s/%s: %s", world_name, map_name, e)
            return False
        log.info("Map moved to trash: %s/%s", world_name, map_name)
        return True

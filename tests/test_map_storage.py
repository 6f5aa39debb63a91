"""Tests for file-based map snapshots."""

from __future__ import annotations

import json

import pytest

from tableserver.persistence.map_storage import SNAPSHOT_VERSION, TRASH_DIR, MapStorage


@pytest.fixture
def storage(tmp_path):
    s = MapStorage(str(tmp_path / "maps"))
    s.ensure_root()
    return s


class TestSnapshots:
    @pytest.mark.asyncio
    async def test_save_adds_metadata(self, storage):
        assert await storage.save_map("Eldoria", "cave", {"walls": []})
        data = await storage.load_map("Eldoria", "cave")
        assert data["walls"] == []
        assert data["_version"] == SNAPSHOT_VERSION
        assert data["_worldName"] == "Eldoria"
        assert data["_mapName"] == "cave"
        assert "_savedAt" in data

    @pytest.mark.asyncio
    async def test_snapshot_is_pretty_json(self, storage):
        await storage.save_map("W", "m", {"a": 1})
        text = (storage.root / "W" / "m" / "map.json").read_text(encoding="utf-8")
        assert "\n  " in text
        assert json.loads(text)["a"] == 1

    @pytest.mark.asyncio
    async def test_load_missing_is_none(self, storage):
        assert await storage.load_map("W", "nothing") is None

    @pytest.mark.asyncio
    async def test_load_unreadable_is_none(self, storage):
        target = storage.root / "W" / "broken"
        target.mkdir(parents=True)
        (target / "map.json").write_text("{nope", encoding="utf-8")
        assert await storage.load_map("W", "broken") is None

    @pytest.mark.asyncio
    async def test_list_and_exists(self, storage):
        await storage.save_map("W", "b", {})
        await storage.save_map("W", "a", {})
        (storage.root / "W" / "empty").mkdir()
        assert await storage.list_maps("W") == ["a", "b"]
        assert await storage.list_maps("Unknown") == []
        assert await storage.map_exists("W", "a")
        assert not await storage.map_exists("W", "empty")


class TestBackups:
    @pytest.mark.asyncio
    async def test_backup_copies_snapshot(self, storage):
        await storage.save_map("W", "m", {"v": 1})
        assert await storage.backup_map("W", "m")
        backups = list((storage.root / "W" / "m" / "backups").iterdir())
        assert len(backups) == 1
        assert json.loads(backups[0].read_text(encoding="utf-8"))["v"] == 1

    @pytest.mark.asyncio
    async def test_backup_without_snapshot_fails(self, storage):
        assert not await storage.backup_map("W", "none")
        assert not (storage.root / "W" / "none").exists()

    @pytest.mark.asyncio
    async def test_delete_moves_to_trash(self, storage):
        await storage.save_map("W", "m", {"v": 1})
        assert await storage.delete_map("W", "m")
        assert not await storage.map_exists("W", "m")
        trashed = list((storage.root / TRASH_DIR / "W").iterdir())
        assert len(trashed) == 1
        assert trashed[0].name.startswith("m-")
        assert (trashed[0] / "map.json").is_file()
        assert list((trashed[0] / "backups").iterdir())

    @pytest.mark.asyncio
    async def test_delete_missing_fails(self, storage):
        assert not await storage.delete_map("W", "none")
        assert not (storage.root / "W" / "none").exists()
        assert not (storage.root / TRASH_DIR).exists()


class TestNames:
    @pytest.mark.asyncio
    @pytest.mark.parametrize("name", ["..", "a/b", TRASH_DIR, ""])
    async def test_unsafe_names_rejected(self, storage, name):
        assert not await storage.save_map("W", name, {})
        assert not await storage.map_exists("W", name)
        assert await storage.load_map("W", name) is None

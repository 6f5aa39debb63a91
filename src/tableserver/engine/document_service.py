"""Document service — load, patch and persist entity documents.

Three entity kinds share the same flow (load → apply patch → put):

- **characters** are never auto-created; patching a missing character
  raises :class:`NotFoundError`.
- **worlds** are created with a default document on first read.
- **battle maps** belong to a world and are created on first read too.

There is no per-entity lock: two patches to the same entity computed from
stale reads resolve as last write at arrival order wins.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from tableserver.engine.patch_engine import apply_patch
from tableserver.models.battlemap import create_empty_battle_map, create_empty_world
from tableserver.models.patch import Document, Patch
from tableserver.persistence.document_store import DocumentStore
from tableserver.util.errors import DocumentCorrupt, NotFoundError, ValidationError
from tableserver.util.log_format import truncate_for_log

log = logging.getLogger(__name__)

CHARACTER = "character"
WORLD = "world"
BATTLE_MAP = "battlemap"


def battle_map_key(world_name: str, map_id: str) -> str:
    """Store id of a battle map, unique across worlds."""
    return f"{world_name}/{map_id}"


class DocumentService:
    """Storage-agnostic access to characters, worlds and battle maps.

    Args:
        characters: Store for character sheets.
        worlds: Store for world documents.
        battle_maps: Store for battle-map documents.
    """

    def __init__(
        self,
        characters: DocumentStore,
        worlds: DocumentStore,
        battle_maps: DocumentStore,
    ) -> None:
        self._characters = characters
        self._worlds = worlds
        self._battle_maps = battle_maps

    # -- Characters ------------------------------------------------------

    async def get_character(self, character_id: str) -> Optional[Document]:
        return await self._characters.get(character_id)

    async def list_characters(self) -> dict[str, Document]:
        """All readable character sheets keyed by id; corrupt ones are skipped."""
        result: dict[str, Document] = {}
        for character_id in await self._characters.list_ids():
            try:
                doc = await self._characters.get(character_id)
            except DocumentCorrupt:
                log.warning("Skipping unreadable character %s", character_id)
                continue
            if doc is not None:
                result[character_id] = doc
        return result

    async def save_character(self, character_id: str, doc: Document) -> None:
        await self._characters.put(character_id, doc)
        log.info("Character saved: %s", character_id)

    async def patch_character(self, character_id: str, patch: Patch) -> Document:
        """Apply a patch to an existing character.

        Raises:
            NotFoundError: If the character does not exist.
            DocumentCorrupt: If the stored sheet is unreadable.
            StoreWriteError: If persisting the result fails.
        """
        doc = await self._characters.get(character_id)
        if doc is None:
            raise NotFoundError(CHARACTER, character_id)
        apply_patch(doc, patch)
        log.debug("Character patch %s: %s", character_id, truncate_for_log(patch.to_wire()))
        await self._characters.put(character_id, doc)
        return doc

    # -- Worlds ----------------------------------------------------------

    async def get_world(self, world_name: str) -> Document:
        """Load a world, creating and persisting a default one if missing."""
        doc = await self._worlds.get(world_name)
        if doc is None:
            doc = create_empty_world(world_name)
            await self._worlds.put(world_name, doc)
            log.info("World created: %s", world_name)
        return doc

    async def list_worlds(self) -> list[str]:
        return await self._worlds.list_ids()

    async def save_world(self, world_name: str, doc: Document) -> None:
        await self._worlds.put(world_name, doc)
        log.info("World saved: %s", world_name)

    async def patch_world(self, world_name: str, patch: Patch) -> Document:
        doc = await self.get_world(world_name)
        apply_patch(doc, patch)
        log.debug("World patch %s: %s", world_name, truncate_for_log(patch.to_wire()))
        await self._worlds.put(world_name, doc)
        return doc

    async def party_ids(self, world_name: str) -> list[str]:
        world = await self.get_world(world_name)
        return [str(pid) for pid in world.get("partyIds") or []]

    async def battle_loot_claim_patch(self, world_name: str, loot_id: str, character_id: str) -> Patch:
        """Build the patch that records ``character_id`` as a claimer of one loot entry.

        The loot list is replaced whole. The patch is not applied here.

        Raises:
            NotFoundError: If the world has no loot entry with that id.
        """
        world = await self.get_world(world_name)
        loot: list[Any] = list(world.get("battleLoot") or [])
        for index, entry in enumerate(loot):
            if isinstance(entry, dict) and str(entry.get("id")) == loot_id:
                claimed = list(entry.get("claimedBy") or [])
                if character_id and character_id not in claimed:
                    claimed.append(character_id)
                loot[index] = {**entry, "claimedBy": claimed}
                break
        else:
            raise NotFoundError("loot", loot_id)

        log.info("Loot %s in world %s claimed by %s", loot_id, world_name, character_id or "(unknown)")
        return Patch(path="battleLoot", value=loot)

    # -- Battle maps -----------------------------------------------------

    async def get_battle_map(self, world_name: str, map_id: str) -> Document:
        """Load a battle map, creating and persisting a default one if missing."""
        if not world_name or not map_id:
            raise ValidationError("Battle maps need a world name and a map id")
        key = battle_map_key(world_name, map_id)
        doc = await self._battle_maps.get(key)
        if doc is None:
            doc = create_empty_battle_map(map_id, world_name)
            await self._battle_maps.put(key, doc)
            log.info("Battle map created: %s", key)
        return doc

    async def save_battle_map(self, world_name: str, map_id: str, doc: Document) -> None:
        await self._battle_maps.put(battle_map_key(world_name, map_id), doc)

    async def patch_battle_map(self, world_name: str, map_id: str, patch: Patch) -> Document:
        doc = await self.get_battle_map(world_name, map_id)
        apply_patch(doc, patch)
        log.debug("Battle map patch %s/%s: %s", world_name, map_id, truncate_for_log(patch.to_wire()))
        await self._battle_maps.put(battle_map_key(world_name, map_id), doc)
        return doc

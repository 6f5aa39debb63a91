"""Rooms — named sets of sessions that receive the same broadcasts.

A room exists while it has members: it is created by the first join and
dropped when the last member leaves. Room names are namespaced::

    world:<name>
    character:<id>
    map:<world>:<mapId>
    battlemap-<mapId>      (legacy map room)
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Iterable, Optional, Protocol

log = logging.getLogger(__name__)


def world_room(world_name: str) -> str:
    return f"world:{world_name}"


def character_room(character_id: str) -> str:
    return f"character:{character_id}"


def map_room(world_name: str, map_id: str) -> str:
    return f"map:{world_name}:{map_id}"


def legacy_map_room(map_id: str) -> str:
    return f"battlemap-{map_id}"


def map_rooms(world_name: str, map_id: str) -> list[str]:
    """Both rooms that follow one battle map."""
    return [map_room(world_name, map_id), legacy_map_room(map_id)]


class RoomRegistry:
    """Session ↔ room membership, kept in both directions."""

    def __init__(self) -> None:
        self._members: dict[str, set[int]] = defaultdict(set)
        self._rooms_of: dict[int, set[str]] = defaultdict(set)

    def join(self, sid: int, room: str) -> None:
        self._members[room].add(sid)
        self._rooms_of[sid].add(room)
        log.debug("Session %d joined %s", sid, room)

    def leave(self, sid: int, room: str) -> None:
        members = self._members.get(room)
        if members is not None:
            members.discard(sid)
            if not members:
                del self._members[room]
        rooms = self._rooms_of.get(sid)
        if rooms is not None:
            rooms.discard(room)
            if not rooms:
                del self._rooms_of[sid]
        log.debug("Session %d left %s", sid, room)

    def leave_all(self, sid: int) -> list[str]:
        """Remove a session from every room. Returns the rooms it was in."""
        rooms = sorted(self._rooms_of.get(sid, ()))
        for room in rooms:
            self.leave(sid, room)
        return rooms

    def members(self, room: str) -> set[int]:
        return set(self._members.get(room, ()))

    def rooms_of(self, sid: int) -> set[str]:
        return set(self._rooms_of.get(sid, ()))

    def recipients(self, rooms: Iterable[str], exclude: Optional[int] = None) -> set[int]:
        """Union of the members of ``rooms``, minus ``exclude``."""
        result: set[int] = set()
        for room in rooms:
            result |= self._members.get(room, set())
        if exclude is not None:
            result.discard(exclude)
        return result

    @property
    def room_names(self) -> list[str]:
        return sorted(self._members)


class Broadcaster(Protocol):
    """Anything that can deliver an event to the members of rooms."""

    async def emit_to_room(
        self, room: str, event: str, payload: Any, exclude: Optional[int] = None,
    ) -> int: ...

    async def emit_to_rooms(
        self, rooms: Iterable[str], event: str, payload: Any, exclude: Optional[int] = None,
    ) -> int: ...

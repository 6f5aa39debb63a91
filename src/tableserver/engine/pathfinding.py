"""Hex pathfinding for token movement on battle maps.

Provides:
- Budget-limited shortest paths around wall hexes (BFS, one step per hex)
- Multi-leg routes through fixed waypoints
- Path validation, distance, and clamping helpers

Walls block a hex entirely: they are never entered, so a wall hex is never
a reachable goal either.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Iterable, Optional

from tableserver.models.hex import HexCoord
from tableserver.util.hex_math import METERS_PER_HEX, steps_to_meters


def find_path(
    start: HexCoord,
    goal: HexCoord,
    walls: Iterable[HexCoord],
    budget: int,
) -> Optional[list[HexCoord]]:
    """Find a shortest path from start to goal using BFS.

    Args:
        start: First hex of the path.
        goal: Last hex of the path.
        walls: Hexes that may not be entered.
        budget: Maximum number of steps. Expansion stops after this many
            BFS layers.

    Returns:
        Ordered list of hexes including both endpoints, or None if the goal
        cannot be reached within the budget.
    """
    if budget < 0:
        return None
    if start == goal:
        return [start]

    blocked = walls if isinstance(walls, (set, frozenset)) else set(walls)
    if goal in blocked:
        return None

    queue: deque[tuple[HexCoord, int]] = deque([(start, 0)])
    parent: dict[HexCoord, Optional[HexCoord]] = {start: None}

    while queue:
        current, depth = queue.popleft()
        if depth >= budget:
            continue

        for neighbor in current.neighbors():
            if neighbor in parent or neighbor in blocked:
                continue
            parent[neighbor] = current
            if neighbor == goal:
                return _reconstruct(parent, goal)
            queue.append((neighbor, depth + 1))

    return None


def _reconstruct(parent: dict[HexCoord, Optional[HexCoord]], goal: HexCoord) -> list[HexCoord]:
    path: list[HexCoord] = []
    node: Optional[HexCoord] = goal
    while node is not None:
        path.append(node)
        node = parent[node]
    path.reverse()
    return path


def reachable_hexes(start: HexCoord, walls: Iterable[HexCoord], budget: int) -> dict[HexCoord, int]:
    """Return every hex reachable within ``budget`` steps, with its step count."""
    if budget < 0:
        return {}
    blocked = walls if isinstance(walls, (set, frozenset)) else set(walls)
    steps: dict[HexCoord, int] = {start: 0}
    queue: deque[HexCoord] = deque([start])
    while queue:
        current = queue.popleft()
        depth = steps[current]
        if depth >= budget:
            continue
        for neighbor in current.neighbors():
            if neighbor in steps or neighbor in blocked:
                continue
            steps[neighbor] = depth + 1
            queue.append(neighbor)
    return steps


# ---------------------------------------------------------------------------
# Multi-leg routes
# ---------------------------------------------------------------------------


@dataclass
class RouteLeg:
    """One leg of a route between consecutive stops."""

    start: HexCoord
    end: HexCoord
    path: Optional[list[HexCoord]]

    @property
    def blocked(self) -> bool:
        return self.path is None

    @property
    def cost(self) -> int:
        """Steps for this leg; a blocked leg is estimated by straight distance."""
        if self.path is None:
            return self.start.distance_to(self.end)
        return path_distance(self.path)


@dataclass
class RoutePlan:
    """A route through zero or more waypoints.

    ``valid`` is False as soon as any leg is blocked; ``distance`` still
    adds up every leg so the ruler can show an estimate.
    """

    legs: list[RouteLeg] = field(default_factory=list)
    valid: bool = True

    @property
    def distance(self) -> int:
        return sum(leg.cost for leg in self.legs)

    @property
    def path(self) -> list[HexCoord]:
        """Concatenated path of every leg, empty when any leg is blocked."""
        if not self.valid or not self.legs:
            return []
        full: list[HexCoord] = list(self.legs[0].path or [])
        for leg in self.legs[1:]:
            full.extend((leg.path or [])[1:])
        return full

    def distance_meters(self, meters_per_hex: float = METERS_PER_HEX) -> float:
        return steps_to_meters(self.distance, meters_per_hex)

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "distance": self.distance,
            "meters": self.distance_meters(),
            "path": [h.to_dict() for h in self.path],
        }


def plan_route(
    start: HexCoord,
    waypoints: list[HexCoord],
    goal: HexCoord,
    walls: Iterable[HexCoord],
    search_limit: int,
) -> RoutePlan:
    """Chain one ``find_path`` call per leg: start → waypoints… → goal.

    The first blocked leg invalidates the route; later legs are not
    searched and are estimated by straight hex distance.
    """
    blocked = walls if isinstance(walls, (set, frozenset)) else set(walls)
    plan = RoutePlan()
    stops = [start, *waypoints, goal]
    for leg_start, leg_end in zip(stops, stops[1:]):
        path = find_path(leg_start, leg_end, blocked, search_limit) if plan.valid else None
        plan.legs.append(RouteLeg(leg_start, leg_end, path))
        if path is None:
            plan.valid = False
    return plan


# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------


def validate_path(path: list[HexCoord], walls: Iterable[HexCoord] = ()) -> bool:
    """Check that each consecutive pair in the path are hex neighbors.

    Args:
        path: Ordered list of hex coordinates.
        walls: Hexes the path may not pass through.

    Returns:
        True if every step is between neighbors and no hex is a wall.
    """
    blocked = set(walls)
    if any(h in blocked for h in path):
        return False
    if len(path) < 2:
        return True
    return all(path[i].distance_to(path[i + 1]) == 1 for i in range(len(path) - 1))


def path_distance(path: list[HexCoord]) -> int:
    """Return the number of steps in a path (len - 1)."""
    return max(0, len(path) - 1)


def truncate_path(path: list[HexCoord], max_steps: int) -> list[HexCoord]:
    """Cut a path down to at most ``max_steps`` steps from its start.

    Args:
        path: The full path.
        max_steps: Step allowance (clamped to the valid range).

    Returns:
        Prefix of the path; its last hex is the furthest one within budget.
    """
    max_steps = max(0, min(max_steps, len(path) - 1))
    return path[: max_steps + 1]

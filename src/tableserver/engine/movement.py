"""Token drag controller — validates a move before it becomes a patch.

A drag goes through three states::

    IDLE --pick_up--> DRAGGING --release--> COMMITTING --> IDLE
                         |  ^
                         |  +-- hover / add_waypoint
                         +-- cancel --> IDLE

In enforced mode every hover recomputes the route from the last waypoint
(or the start) around the map's walls and checks it against the token's
movement speed. Routes that run over budget stay committable and are
clamped on release; routes that are blocked or start with no budget left
are shown but not committable. Free mode skips all of this.
"""

from __future__ import annotations

import enum
import logging
from typing import Callable, Iterable, Optional

from tableserver.engine.pathfinding import RouteLeg, RoutePlan, find_path, truncate_path
from tableserver.models.battlemap import Token
from tableserver.models.hex import HexCoord
from tableserver.models.patch import Patch
from tableserver.util.hex_math import METERS_PER_HEX, steps_to_meters

log = logging.getLogger(__name__)

DEFAULT_SEARCH_LIMIT = 60


class DragState(enum.Enum):
    IDLE = "idle"
    DRAGGING = "dragging"
    COMMITTING = "committing"


class MovementMode(enum.Enum):
    ENFORCED = "enforced"
    FREE = "free"


class MovementDrag:
    """State machine for dragging one token at a time.

    Args:
        walls: Wall hexes of the map being edited.
        mode: Enforced (pathfinding + budget) or free movement.
        on_commit: Called with the position patch when a move is committed.
        search_limit: Path length searched per leg; raised to the remaining
            movement budget when that is larger.
    """

    def __init__(
        self,
        walls: Iterable[HexCoord] = (),
        mode: MovementMode = MovementMode.ENFORCED,
        on_commit: Optional[Callable[[Patch], None]] = None,
        search_limit: int = DEFAULT_SEARCH_LIMIT,
    ) -> None:
        self.walls: set[HexCoord] = set(walls)
        self.mode = mode
        self._on_commit = on_commit
        self._search_limit = search_limit
        self._reset()

    def _reset(self) -> None:
        self.state = DragState.IDLE
        self.token: Optional[Token] = None
        self.start_hex: Optional[HexCoord] = None
        self.hover_hex: Optional[HexCoord] = None
        self.waypoints: list[HexCoord] = []
        self.route: Optional[RoutePlan] = None
        self.valid = True
        self._fixed_legs: list[RouteLeg] = []

    # -- Queries ---------------------------------------------------------

    @property
    def enforced(self) -> bool:
        return self.mode is MovementMode.ENFORCED

    @property
    def committed_distance(self) -> int:
        """Steps already spent on the legs up to the last waypoint."""
        return sum(leg.cost for leg in self._fixed_legs)

    @property
    def remaining_budget(self) -> Optional[int]:
        """Steps left after the waypoints; None when the budget does not apply."""
        if self.token is None or not self.enforced or self.token.is_on_the_fly:
            return None
        return self.token.movement_speed - self.committed_distance

    @property
    def exceeds_budget(self) -> bool:
        if self.route is None or self.token is None or self.remaining_budget is None:
            return False
        return self.route.distance > self.token.movement_speed

    @property
    def distance(self) -> int:
        """Steps shown on the drag ruler."""
        if self.start_hex is None or self.hover_hex is None:
            return 0
        if self.enforced and self.route is not None:
            return self.route.distance
        return self.start_hex.distance_to(self.hover_hex)

    def distance_meters(self, meters_per_hex: float = METERS_PER_HEX) -> float:
        return steps_to_meters(self.distance, meters_per_hex)

    # -- Transitions -----------------------------------------------------

    def pick_up(self, token: Token) -> None:
        """IDLE → DRAGGING."""
        if self.state is not DragState.IDLE:
            log.debug("Dropping unfinished drag of token %s", self.token.id if self.token else "?")
            self._reset()
        self.state = DragState.DRAGGING
        self.token = token
        self.start_hex = token.position
        self.hover_hex = token.position
        self.waypoints = []
        self._fixed_legs = []
        self.route = None
        self.valid = True

    def hover(self, coord: HexCoord) -> Optional[RoutePlan]:
        """Pointer moved over ``coord``; recompute the route in enforced mode."""
        if self.state is not DragState.DRAGGING:
            return None
        self.hover_hex = coord
        if not self.enforced:
            self.route = None
            self.valid = True
            return None

        anchor = self.waypoints[-1] if self.waypoints else self.start_hex
        fixed_ok = all(not leg.blocked for leg in self._fixed_legs)
        remaining = self.remaining_budget
        search = self._leg_search_limit()

        path = find_path(anchor, coord, self.walls, search) if fixed_ok else None
        plan = RoutePlan(legs=[*self._fixed_legs, RouteLeg(anchor, coord, path)])
        plan.valid = fixed_ok and path is not None
        self.route = plan
        self.valid = plan.valid and (remaining is None or remaining > 0)
        return plan

    def add_waypoint(self) -> bool:
        """Fix the hovered hex as an intermediate stop (enforced mode only).

        Returns:
            True if a waypoint was added.
        """
        if self.state is not DragState.DRAGGING or not self.enforced or self.hover_hex is None:
            return False
        if self.waypoints and self.waypoints[-1] == self.hover_hex:
            return False
        if not self.waypoints and self.hover_hex == self.start_hex:
            return False

        anchor = self.waypoints[-1] if self.waypoints else self.start_hex
        fixed_ok = all(not leg.blocked for leg in self._fixed_legs)
        search = self._leg_search_limit()
        path = find_path(anchor, self.hover_hex, self.walls, search) if fixed_ok else None
        self._fixed_legs.append(RouteLeg(anchor, self.hover_hex, path))
        self.waypoints.append(self.hover_hex)
        self.hover(self.hover_hex)
        return True

    def release(self, coord: Optional[HexCoord] = None) -> Optional[Patch]:
        """DRAGGING → COMMITTING → IDLE.

        Returns:
            The position patch that was emitted, or None when the token
            stays where it started.
        """
        if self.state is not DragState.DRAGGING or self.token is None:
            return None
        if coord is not None:
            self.hover(coord)

        self.state = DragState.COMMITTING
        try:
            final = self._final_hex()
            if final == self.start_hex:
                return None
            patch = Patch(path=self.token.position_path(), value=final.to_dict())
            log.debug("Token %s moved %s -> %s", self.token.id, self.start_hex, final)
            if self._on_commit is not None:
                self._on_commit(patch)
            return patch
        finally:
            self._reset()

    def cancel(self) -> None:
        """Pointer left the surface: abandon the drag without a patch."""
        if self.state is DragState.DRAGGING:
            log.debug("Drag of token %s cancelled", self.token.id if self.token else "?")
        self._reset()

    def _leg_search_limit(self) -> int:
        remaining = self.remaining_budget
        return self._search_limit if remaining is None else max(self._search_limit, remaining)

    def _final_hex(self) -> HexCoord:
        assert self.start_hex is not None and self.token is not None
        if not self.enforced:
            return self.hover_hex or self.start_hex
        if not self.valid or self.route is None:
            return self.start_hex
        path = self.route.path
        if not path:
            return self.start_hex
        if self.token.is_on_the_fly:
            return path[-1]
        return truncate_path(path, self.token.movement_speed)[-1]

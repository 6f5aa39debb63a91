"""Hexagonal coordinate system using axial coordinates (q, r).

Axial coordinates define position on a flat-top hex grid where:
- q axis runs along the columns (east, half a row down per step)
- r axis runs south
- s = -q - r is the implicit third cube coordinate

On the wire a coordinate is the plain object ``{"q": int, "r": int}``.

Reference: https://www.redblobgames.com/grids/hexagons/
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class HexCoord:
    """Immutable axial hex coordinate.

    Attributes:
        q: Column coordinate.
        r: Row coordinate.
    """

    q: int
    r: int

    # -- Cube coordinate -------------------------------------------------

    @property
    def s(self) -> int:
        """Implicit cube coordinate: s = -q - r."""
        return -self.q - self.r

    # -- Geometry --------------------------------------------------------

    def distance_to(self, other: HexCoord) -> int:
        """Hex grid distance (number of steps along hex edges)."""
        dq = abs(self.q - other.q)
        dr = abs(self.r - other.r)
        ds = abs(self.s - other.s)
        return max(dq, dr, ds)

    def neighbors(self) -> list[HexCoord]:
        """Return the 6 adjacent hex coordinates in direction order."""
        return [HexCoord(self.q + dq, self.r + dr) for dq, dr in DIRECTIONS]

    def ring(self, radius: int) -> list[HexCoord]:
        """Return all hexes at exactly `radius` steps away.

        Returns empty list for radius <= 0.
        """
        if radius <= 0:
            return []
        results: list[HexCoord] = []
        h = HexCoord(self.q - radius, self.r + radius)
        for direction in DIRECTIONS:
            for _ in range(radius):
                results.append(h)
                h = HexCoord(h.q + direction[0], h.r + direction[1])
        return results

    def disk(self, radius: int) -> set[HexCoord]:
        """Return all hexes within `radius` steps (inclusive)."""
        results: set[HexCoord] = set()
        for dq in range(-radius, radius + 1):
            for dr in range(max(-radius, -dq - radius), min(radius, -dq + radius) + 1):
                results.add(HexCoord(self.q + dq, self.r + dr))
        return results

    # -- Serialization ---------------------------------------------------

    def to_dict(self) -> dict[str, int]:
        return {"q": self.q, "r": self.r}

    @classmethod
    def from_dict(cls, data: Any) -> HexCoord:
        """Build a coordinate from a ``{"q", "r"}`` mapping.

        Raises:
            ValueError: If the mapping is missing a component or a component
                is not an integral number.
        """
        if not isinstance(data, dict) or "q" not in data or "r" not in data:
            raise ValueError(f"Not a hex coordinate: {data!r}")
        q, r = data["q"], data["r"]
        if isinstance(q, bool) or isinstance(r, bool):
            raise ValueError(f"Not a hex coordinate: {data!r}")
        if not (isinstance(q, (int, float)) and isinstance(r, (int, float))):
            raise ValueError(f"Not a hex coordinate: {data!r}")
        if q != int(q) or r != int(r):
            raise ValueError(f"Hex coordinate must be integral: {data!r}")
        return cls(int(q), int(r))

    def __repr__(self) -> str:
        return f"Hex({self.q},{self.r})"


# The 6 axial direction vectors (flat-top layout)
DIRECTIONS: list[tuple[int, int]] = [
    (1, 0),   # SE
    (1, -1),  # NE
    (0, -1),  # N
    (-1, 0),  # NW
    (-1, 1),  # SW
    (0, 1),   # S
]

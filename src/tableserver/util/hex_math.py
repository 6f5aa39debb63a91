"""Hex math utilities — geometry functions for flat-top hexagonal grids.

All functions operate on HexCoord (axial coordinates). Pixel space is the
map's world space: the hex (0, 0) is centred on the origin and ``size`` is
the hex radius (centre to corner) in pixels.

Reference: https://www.redblobgames.com/grids/hexagons/
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterator

from tableserver.models.hex import HexCoord

HEX_SIZE = 32.0
METERS_PER_HEX = 1.5

_SQRT3 = math.sqrt(3.0)


@dataclass(frozen=True)
class Point:
    """A pixel position in map space."""

    x: float
    y: float

    def to_dict(self) -> dict[str, float]:
        return {"x": self.x, "y": self.y}


@dataclass(frozen=True)
class HexBounds:
    """Inclusive axial rectangle covering a pixel viewport."""

    min_q: int
    max_q: int
    min_r: int
    max_r: int

    def contains(self, coord: HexCoord) -> bool:
        return self.min_q <= coord.q <= self.max_q and self.min_r <= coord.r <= self.max_r

    def iter_hexes(self) -> Iterator[HexCoord]:
        """Yield every coordinate in the rectangle, column by column."""
        for q in range(self.min_q, self.max_q + 1):
            for r in range(self.min_r, self.max_r + 1):
                yield HexCoord(q, r)

    def to_dict(self) -> dict[str, int]:
        return {"minQ": self.min_q, "maxQ": self.max_q, "minR": self.min_r, "maxR": self.max_r}


# -- Pixel conversion ----------------------------------------------------

def hex_to_pixel(coord: HexCoord, size: float = HEX_SIZE) -> Point:
    """Return the pixel centre of a hex."""
    x = size * (1.5 * coord.q)
    y = size * (_SQRT3 / 2 * coord.q + _SQRT3 * coord.r)
    return Point(x, y)


def pixel_to_hex(x: float, y: float, size: float = HEX_SIZE) -> HexCoord:
    """Return the hex containing a pixel position."""
    fq = (2.0 / 3.0 * x) / size
    fr = (-1.0 / 3.0 * x + _SQRT3 / 3.0 * y) / size
    return hex_round(fq, fr)


def hex_round(fq: float, fr: float) -> HexCoord:
    """Round fractional axial coordinates to the nearest hex."""
    return _cube_round(fq, fr, -fq - fr)


def hex_corners(center: Point, size: float = HEX_SIZE) -> list[Point]:
    """Return the 6 corners of a flat-top hex, starting at the right point."""
    corners: list[Point] = []
    for i in range(6):
        angle = math.radians(60 * i)
        corners.append(Point(center.x + size * math.cos(angle), center.y + size * math.sin(angle)))
    return corners


def visible_hex_bounds(
    min_x: float, max_x: float, min_y: float, max_y: float, size: float = HEX_SIZE,
) -> HexBounds:
    """Axial rectangle covering a pixel viewport.

    The four viewport corners are converted to hexes and the result is
    padded by one hex on every side, so partially visible edge hexes are
    always included.
    """
    corners = [
        pixel_to_hex(min_x, min_y, size),
        pixel_to_hex(max_x, min_y, size),
        pixel_to_hex(min_x, max_y, size),
        pixel_to_hex(max_x, max_y, size),
    ]
    return HexBounds(
        min_q=min(c.q for c in corners) - 1,
        max_q=max(c.q for c in corners) + 1,
        min_r=min(c.r for c in corners) - 1,
        max_r=max(c.r for c in corners) + 1,
    )


# -- Distance ------------------------------------------------------------

def hex_distance(a: HexCoord, b: HexCoord) -> int:
    """Compute the hex grid distance between two coordinates."""
    return a.distance_to(b)


def hex_distance_meters(a: HexCoord, b: HexCoord, meters_per_hex: float = METERS_PER_HEX) -> float:
    """Ruler distance between two hexes, as shown on the measurement tool."""
    return steps_to_meters(a.distance_to(b), meters_per_hex)


def steps_to_meters(steps: int, meters_per_hex: float = METERS_PER_HEX) -> float:
    return steps * meters_per_hex


# -- Shapes --------------------------------------------------------------

def hex_linedraw(a: HexCoord, b: HexCoord) -> list[HexCoord]:
    """Draw a line between two hex coordinates using linear interpolation.

    Returns a list of hex coordinates from a to b (inclusive).
    Uses cube coordinate interpolation with rounding.
    """
    n = a.distance_to(b)
    if n == 0:
        return [a]

    results: list[HexCoord] = []
    for i in range(n + 1):
        t = i / n
        # Nudge off exact edges so ties round consistently
        fq = a.q + (b.q - a.q) * t + 1e-6
        fr = a.r + (b.r - a.r) * t + 1e-6
        fs = a.s + (b.s - a.s) * t - 2e-6
        results.append(_cube_round(fq, fr, fs))
    return results


def _cube_round(fq: float, fr: float, fs: float) -> HexCoord:
    """Round fractional cube coordinates to the nearest hex."""
    q = round(fq)
    r = round(fr)
    s = round(fs)

    q_diff = abs(q - fq)
    r_diff = abs(r - fr)
    s_diff = abs(s - fs)

    if q_diff > r_diff and q_diff > s_diff:
        q = -r - s
    elif r_diff > s_diff:
        r = -q - s
    # else: s = -q - r (implicit, not stored)

    return HexCoord(int(q), int(r))

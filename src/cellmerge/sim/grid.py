from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Iterator

KEY_SEPARATOR = ","

DIRECTION_STEPS: dict[str, tuple[int, int]] = {
    "north": (0, 1),
    "south": (0, -1),
    "east": (1, 0),
    "west": (-1, 0),
}


@dataclass(frozen=True, order=True)
class CellCoord:
    """Integer grid cell (x follows longitude, y follows latitude)."""

    x: int
    y: int

    def key(self) -> str:
        return f"{self.x}{KEY_SEPARATOR}{self.y}"

    def offset(self, dx: int, dy: int) -> "CellCoord":
        return CellCoord(self.x + dx, self.y + dy)

    def to_dict(self) -> dict[str, int]:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CellCoord":
        x = data["x"]
        y = data["y"]
        if isinstance(x, bool) or isinstance(y, bool) or not isinstance(x, int) or not isinstance(y, int):
            raise ValueError("cell coord requires integer x and y")
        return cls(x=x, y=y)

    @classmethod
    def from_key(cls, key: str) -> "CellCoord":
        if not isinstance(key, str):
            raise ValueError("cell key must be a string")
        parts = key.split(KEY_SEPARATOR)
        if len(parts) != 2:
            raise ValueError(f"malformed cell key: {key!r}")
        try:
            x, y = int(parts[0]), int(parts[1])
        except ValueError as exc:
            raise ValueError(f"malformed cell key: {key!r}") from exc
        coord = cls(x=x, y=y)
        if coord.key() != key:
            # Rejects non-canonical spellings such as " 1,2" or "+1,2".
            raise ValueError(f"non-canonical cell key: {key!r}")
        return coord


def latlng_to_cell(lat: float, lng: float, cell_size: float) -> CellCoord:
    return CellCoord(x=math.floor(lng / cell_size), y=math.floor(lat / cell_size))


def cell_to_latlng(cell: CellCoord, cell_size: float) -> tuple[float, float]:
    """Lower-left (south-west) corner of the cell."""
    return (cell.y * cell_size, cell.x * cell_size)


def cell_center_latlng(cell: CellCoord, cell_size: float) -> tuple[float, float]:
    lat, lng = cell_to_latlng(cell, cell_size)
    return (lat + cell_size / 2.0, lng + cell_size / 2.0)


def cell_bounds(cell: CellCoord, cell_size: float) -> tuple[tuple[float, float], tuple[float, float]]:
    lat, lng = cell_to_latlng(cell, cell_size)
    return ((lat, lng), (lat + cell_size, lng + cell_size))


def chebyshev_distance(a: CellCoord, b: CellCoord) -> int:
    return max(abs(a.x - b.x), abs(a.y - b.y))


def manhattan_distance(a: CellCoord, b: CellCoord) -> int:
    return abs(a.x - b.x) + abs(a.y - b.y)


def window_cells(center: CellCoord, radius: int) -> Iterator[CellCoord]:
    """Chebyshev square around ``center``, south row first, west to east."""
    if radius < 0:
        raise ValueError("radius must be >= 0")
    for dy in range(-radius, radius + 1):
        for dx in range(-radius, radius + 1):
            yield CellCoord(center.x + dx, center.y + dy)

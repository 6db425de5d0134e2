"""
Terrain model — read-only classification grid for one base.

Every base lives on a fixed square grid (50×50 by default). Each cell is one
of three terrain classes:

    PLAIN  — buildable, cheap to walk
    SLOW   — buildable, expensive to walk (swamp)
    WALL   — never buildable, impassable

The planner only ever *reads* terrain. Grids are stored row-major as a numpy
array indexed ``grid[y, x]`` so whole-map masks (defense shells, cost
matrices) can be built with vectorised numpy/scipy calls.

Position bounds
---------------
A two-cell margin along every edge is reserved: a position is accepted only
when ``MARGIN <= x, y <= size - 1 - MARGIN`` (``[2, 47]`` on a 50 grid).
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, Iterator, Sequence

import numpy as np


GRID_SIZE: int = 50
MARGIN: int = 2


class TerrainType(IntEnum):
    PLAIN = 0
    WALL  = 1
    SLOW  = 2


# Character codes used by TerrainGrid.from_rows / to_rows
_CHAR_TO_TERRAIN = {
    ".": TerrainType.PLAIN,
    "#": TerrainType.WALL,
    "~": TerrainType.SLOW,
}
_TERRAIN_TO_CHAR = {v: k for k, v in _CHAR_TO_TERRAIN.items()}


@dataclass(frozen=True, order=True)
class Position:
    """A single grid cell."""
    x: int
    y: int

    def manhattan(self, other: "Position") -> int:
        return abs(self.x - other.x) + abs(self.y - other.y)

    def chebyshev(self, other: "Position") -> int:
        return max(abs(self.x - other.x), abs(self.y - other.y))

    def offset(self, dx: int, dy: int) -> "Position":
        return Position(self.x + dx, self.y + dy)

    def neighbours(self) -> Iterator["Position"]:
        """The 8 surrounding cells (unbounded)."""
        for dy in (-1, 0, 1):
            for dx in (-1, 0, 1):
                if dx or dy:
                    yield Position(self.x + dx, self.y + dy)

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y}

    @classmethod
    def from_dict(cls, data: dict) -> "Position":
        return cls(int(data.get("x", 0)), int(data.get("y", 0)))

    def __str__(self) -> str:
        return f"({self.x},{self.y})"


def in_build_bounds(x: int, y: int, size: int = GRID_SIZE) -> bool:
    """True if (x, y) lies inside the grid minus the reserved margin."""
    lo, hi = MARGIN, size - 1 - MARGIN
    return lo <= x <= hi and lo <= y <= hi


def in_grid(x: int, y: int, size: int = GRID_SIZE) -> bool:
    return 0 <= x < size and 0 <= y < size


class TerrainGrid:
    """
    Numpy-backed terrain classification for one base.

    ``classify(x, y)`` is the single query the planner relies on; everything
    else is a convenience built on top of it.
    """

    def __init__(self, cells: np.ndarray) -> None:
        cells = np.asarray(cells, dtype=np.uint8)
        if cells.ndim != 2 or cells.shape[0] != cells.shape[1]:
            raise ValueError(f"terrain must be a square 2D grid, got shape {cells.shape}")
        self._cells = cells
        self._cells.setflags(write=False)

    # ------------------------------------------------------------------ #
    # Construction helpers
    # ------------------------------------------------------------------ #

    @classmethod
    def open(cls, size: int = GRID_SIZE) -> "TerrainGrid":
        """All-plain grid."""
        return cls(np.zeros((size, size), dtype=np.uint8))

    @classmethod
    def from_rows(cls, rows: Sequence[str]) -> "TerrainGrid":
        """
        Build from text rows, one character per cell:
        ``.`` plain, ``#`` wall, ``~`` slow.
        """
        size = len(rows)
        cells = np.zeros((size, size), dtype=np.uint8)
        for y, row in enumerate(rows):
            if len(row) != size:
                raise ValueError(f"row {y} has {len(row)} cells, expected {size}")
            for x, ch in enumerate(row):
                try:
                    cells[y, x] = _CHAR_TO_TERRAIN[ch]
                except KeyError:
                    raise ValueError(f"unknown terrain char {ch!r} at ({x},{y})") from None
        return cls(cells)

    def with_cells(self, cells: Iterable[tuple[int, int]], terrain: TerrainType) -> "TerrainGrid":
        """Copy of this grid with the given (x, y) cells set to ``terrain``."""
        data = self._cells.copy()
        for x, y in cells:
            data[y, x] = terrain
        return TerrainGrid(data)

    def with_border_walls(self) -> "TerrainGrid":
        """Copy of this grid with the outermost ring turned into wall."""
        data = self._cells.copy()
        data[0, :] = TerrainType.WALL
        data[-1, :] = TerrainType.WALL
        data[:, 0] = TerrainType.WALL
        data[:, -1] = TerrainType.WALL
        return TerrainGrid(data)

    # ------------------------------------------------------------------ #
    # Queries
    # ------------------------------------------------------------------ #

    @property
    def size(self) -> int:
        return int(self._cells.shape[0])

    @property
    def cells(self) -> np.ndarray:
        """Read-only ``[y, x]`` array of TerrainType values."""
        return self._cells

    def classify(self, x: int, y: int) -> TerrainType:
        """Terrain class at (x, y). Cells outside the grid read as WALL."""
        if not in_grid(x, y, self.size):
            return TerrainType.WALL
        return TerrainType(int(self._cells[y, x]))

    def is_wall(self, x: int, y: int) -> bool:
        return self.classify(x, y) == TerrainType.WALL

    def wall_mask(self) -> np.ndarray:
        return self._cells == TerrainType.WALL

    def in_bounds(self, x: int, y: int) -> bool:
        return in_build_bounds(x, y, self.size)

    def is_buildable(self, x: int, y: int) -> bool:
        return self.in_bounds(x, y) and not self.is_wall(x, y)

    def to_rows(self) -> list[str]:
        return [
            "".join(_TERRAIN_TO_CHAR[TerrainType(int(v))] for v in row)
            for row in self._cells
        ]

    def __repr__(self) -> str:
        walls = int(self.wall_mask().sum())
        return f"TerrainGrid(size={self.size}, walls={walls})"

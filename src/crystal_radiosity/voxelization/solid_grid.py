"""Solid occupancy grid used for patch extraction and occlusion queries."""

from dataclasses import dataclass
from typing import Sequence, Tuple

import numpy as np


def pump_solid(solid: np.ndarray, pump_factor: int) -> np.ndarray:
    """Refine an occupancy array volumetrically.

    Each cell becomes a pump_factor^3 block of identical cells.

    Args:
        solid: Boolean array indexed [x, y, z]
        pump_factor: Refinement factor (>= 1)

    Returns:
        Boolean array of shape solid.shape * pump_factor
    """
    if pump_factor < 1:
        raise ValueError(f"pump_factor must be >= 1, got {pump_factor}")
    if pump_factor == 1:
        return np.array(solid, dtype=bool)

    pumped = np.asarray(solid, dtype=bool)
    for axis in range(3):
        pumped = np.repeat(pumped, pump_factor, axis=axis)
    return pumped


@dataclass(frozen=True, eq=False)
class SolidGrid:
    """Immutable 3D occupancy volume.

    Cell (i, j, k) covers the world-space box
    [origin + (i, j, k), origin + (i, j, k) + 1). Cells outside the array
    are empty. Y is up.

    Attributes:
        cells: Read-only boolean array indexed [x, y, z]
        origin: World position of cell (0, 0, 0), int64 (3,)
    """
    cells: np.ndarray
    origin: np.ndarray

    def __post_init__(self):
        cells = np.array(self.cells, dtype=bool)
        if cells.ndim != 3:
            raise ValueError(f"Solid grid must be 3D, got shape {cells.shape}")
        cells.setflags(write=False)

        origin = np.array(self.origin, dtype=np.int64).reshape(3)
        origin.setflags(write=False)

        # frozen dataclass: bypass __setattr__ for normalized copies
        object.__setattr__(self, "cells", cells)
        object.__setattr__(self, "origin", origin)

    @classmethod
    def from_occupancy(
        cls,
        solid: np.ndarray,
        pump_factor: int = 1,
        base_pos: Sequence[int] = (0, 0, 0),
    ) -> "SolidGrid":
        """Build a grid from a crystal-resolution occupancy array.

        Args:
            solid: Boolean array indexed [x, y, z] at crystal resolution
            pump_factor: Volumetric refinement factor
            base_pos: Crystal-resolution position of the level; scaled by
                pump_factor to give the grid origin
        """
        # y is refined like x and z, so all three origin axes scale
        origin = np.asarray(base_pos, dtype=np.int64) * pump_factor
        return cls(cells=pump_solid(solid, pump_factor), origin=origin)

    @property
    def shape(self) -> Tuple[int, int, int]:
        return tuple(int(s) for s in self.cells.shape)

    @property
    def grid_min(self) -> np.ndarray:
        """World-space minimum corner, float64 (3,)."""
        return self.origin.astype(np.float64)

    @property
    def grid_max(self) -> np.ndarray:
        """World-space maximum corner, float64 (3,)."""
        return (self.origin + np.array(self.cells.shape)).astype(np.float64)

    @property
    def num_solid(self) -> int:
        return int(np.count_nonzero(self.cells))

    def is_solid(self, x: int, y: int, z: int) -> bool:
        """Exact solid test for a cell index; out of range is empty."""
        sx, sy, sz = self.cells.shape
        if 0 <= x < sx and 0 <= y < sy and 0 <= z < sz:
            return bool(self.cells[x, y, z])
        return False

    def cell_at(self, point: Sequence[float]) -> Tuple[int, int, int]:
        """Cell index containing a world-space point."""
        local = np.floor(np.asarray(point, dtype=np.float64) - self.origin)
        return int(local[0]), int(local[1]), int(local[2])

    def is_solid_at(self, point: Sequence[float]) -> bool:
        """Exact solid test for a world-space point."""
        return self.is_solid(*self.cell_at(point))

    def padded(self) -> np.ndarray:
        """Occupancy with one empty cell of padding on every side."""
        return np.pad(self.cells, 1, mode="constant", constant_values=False)

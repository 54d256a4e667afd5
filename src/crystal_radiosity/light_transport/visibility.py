"""Segment occlusion queries against the solid grid.

Uses an Amanatides-Woo DDA traversal over the cells a segment crosses and
an exact boolean solid test per cell. Segment endpoints are expected to lie
in empty space; callers offset surface points along the patch normal by
SURFACE_OFFSET.
"""

import numpy as np
from numba import njit, prange

from ..voxelization.solid_grid import SolidGrid

# Distance sample points are pushed off the surface along the normal
SURFACE_OFFSET = 1e-3

_BIG = 1e30


@njit(cache=True)
def _clip_slab(o: float, d: float, hi: float, t0: float, t1: float):
    """Clip parametric range [t0, t1] of o + t*d against slab [0, hi]."""
    if abs(d) < 1e-12:
        if o < 0.0 or o >= hi:
            return t0, t1, False
        return t0, t1, True

    ta = (0.0 - o) / d
    tb = (hi - o) / d
    if ta > tb:
        ta, tb = tb, ta

    t0 = max(t0, ta)
    t1 = min(t1, tb)
    return t0, t1, t0 <= t1


@njit(cache=True)
def _axis_setup(o: float, d: float, cell: int):
    """Step direction, tDelta and first tMax for one axis."""
    if d > 0.0:
        return 1, 1.0 / d, (cell + 1.0 - o) / d
    elif d < 0.0:
        return -1, -1.0 / d, (cell - o) / d
    return 0, _BIG, _BIG


@njit(cache=True)
def segment_occluded(
    ax: float, ay: float, az: float,
    bx: float, by: float, bz: float,
    cells: np.ndarray
) -> bool:
    """Test whether the segment a->b passes through any solid cell.

    Coordinates are grid-local (cell (i, j, k) spans [i, i+1) x ...).
    Cells outside the grid are empty.

    Args:
        ax, ay, az: Segment start
        bx, by, bz: Segment end
        cells: Occupancy array (uint8 or bool) indexed [x, y, z]

    Returns:
        True if any solid cell is crossed
    """
    nx = cells.shape[0]
    ny = cells.shape[1]
    nz = cells.shape[2]

    dx = bx - ax
    dy = by - ay
    dz = bz - az

    # Clip the segment to the grid box
    t0, t1, ok = _clip_slab(ax, dx, nx, 0.0, 1.0)
    if not ok:
        return False
    t0, t1, ok = _clip_slab(ay, dy, ny, t0, t1)
    if not ok:
        return False
    t0, t1, ok = _clip_slab(az, dz, nz, t0, t1)
    if not ok:
        return False

    # Entry cell
    vx = int(np.floor(ax + dx * t0))
    vy = int(np.floor(ay + dy * t0))
    vz = int(np.floor(az + dz * t0))
    vx = max(0, min(vx, nx - 1))
    vy = max(0, min(vy, ny - 1))
    vz = max(0, min(vz, nz - 1))

    step_x, t_delta_x, t_max_x = _axis_setup(ax, dx, vx)
    step_y, t_delta_y, t_max_y = _axis_setup(ay, dy, vy)
    step_z, t_delta_z, t_max_z = _axis_setup(az, dz, vz)

    max_steps = nx + ny + nz + 3
    for _ in range(max_steps):
        if cells[vx, vy, vz]:
            return True

        if t_max_x < t_max_y and t_max_x < t_max_z:
            if t_max_x > t1:
                break
            t_max_x += t_delta_x
            vx += step_x
        elif t_max_y < t_max_z:
            if t_max_y > t1:
                break
            t_max_y += t_delta_y
            vy += step_y
        else:
            if t_max_z > t1:
                break
            t_max_z += t_delta_z
            vz += step_z

        if vx < 0 or vx >= nx or vy < 0 or vy >= ny or vz < 0 or vz >= nz:
            break

    return False


@njit(parallel=True, cache=True)
def segments_occluded(
    starts: np.ndarray,
    ends: np.ndarray,
    cells: np.ndarray
) -> np.ndarray:
    """Batched segment_occluded over (n, 3) grid-local start/end points."""
    n = starts.shape[0]
    out = np.zeros(n, dtype=np.bool_)
    for i in prange(n):
        out[i] = segment_occluded(
            starts[i, 0], starts[i, 1], starts[i, 2],
            ends[i, 0], ends[i, 1], ends[i, 2],
            cells
        )
    return out


def grid_cells_for_kernel(grid: SolidGrid) -> np.ndarray:
    """Contiguous writable uint8 copy of the occupancy for numba kernels."""
    return np.array(grid.cells, dtype=np.uint8, order="C")


def is_occluded(grid: SolidGrid, start, end) -> bool:
    """Test whether the world-space segment start->end crosses solid cells.

    Args:
        grid: Solid grid
        start: World-space start point (3,)
        end: World-space end point (3,)

    Returns:
        True if the segment is blocked
    """
    a = np.asarray(start, dtype=np.float64) - grid.origin
    b = np.asarray(end, dtype=np.float64) - grid.origin
    return bool(segment_occluded(
        a[0], a[1], a[2], b[0], b[1], b[2], grid_cells_for_kernel(grid)
    ))


def offset_points(points: np.ndarray, normals: np.ndarray) -> np.ndarray:
    """Push surface points off the surface along their normals."""
    return np.asarray(points, dtype=np.float64) + SURFACE_OFFSET * np.asarray(normals)

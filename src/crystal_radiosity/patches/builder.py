"""Exposed-face patch extraction for solid voxel grids.

Every face of a solid cell that borders empty space (or the outside of the
grid) becomes one unit-square patch. Patches are the unit of light transport:
their index is the index into every per-patch array.
"""

import hashlib
import struct
from dataclasses import dataclass
from typing import BinaryIO, Dict, List, Sequence, Tuple, Union

import numpy as np

from ..errors import SceneLoadError
from ..voxelization.crystal import CRYSTAL_VERSION, decode_crystal, read_crystal_bytes
from ..voxelization.solid_grid import SolidGrid


@dataclass
class Patch:
    """A single planar quad on the exposed surface of the solid grid.

    Attributes:
        patch_id: Dense global index (0 to n_patches-1)
        direction: Face direction (0-5: +X, -X, +Y, -Y, +Z, -Z)
        cell: Solid cell (grid index) this face belongs to
        vertices: Corner positions (4, 3), counter-clockwise seen from outside
        normal: Outward-pointing unit normal (3,)
        center: World space center position (3,)
        area: Patch area in world units
    """
    patch_id: int
    direction: int
    cell: Tuple[int, int, int]
    vertices: np.ndarray
    normal: np.ndarray
    center: np.ndarray
    area: float


# Direction definitions: (axis, sign, u_axis, v_axis)
# u x v equals the outward normal, so (0, u, u+v, v) winds counter-clockwise
# when seen from outside.
DIRECTION_DEFINITIONS = [
    (0, +1, 1, 2),  # 0: +X, Y=u, Z=v
    (0, -1, 2, 1),  # 1: -X, Z=u, Y=v
    (1, +1, 2, 0),  # 2: +Y, Z=u, X=v
    (1, -1, 0, 2),  # 3: -Y, X=u, Z=v
    (2, +1, 0, 1),  # 4: +Z, X=u, Y=v
    (2, -1, 1, 0),  # 5: -Z, Y=u, X=v
]

DIRECTION_NORMALS = np.array([
    [+1, 0, 0],
    [-1, 0, 0],
    [0, +1, 0],
    [0, -1, 0],
    [0, 0, +1],
    [0, 0, -1],
], dtype=np.float64)

HASH_DOMAIN = b"crystal-radiosity/scene"


def exposed_cells(grid: SolidGrid, direction: int) -> np.ndarray:
    """Find solid cells whose face in the given direction borders empty space.

    Args:
        grid: Solid grid
        direction: Face direction (0-5)

    Returns:
        Cell indices (n, 3), int64, in C order
    """
    axis, sign, _, _ = DIRECTION_DEFINITIONS[direction]
    padded = grid.padded()

    core = [slice(1, -1)] * 3
    neighbour = [slice(1, -1)] * 3
    neighbour[axis] = slice(2, None) if sign > 0 else slice(0, -2)

    mask = padded[tuple(core)] & ~padded[tuple(neighbour)]
    return np.argwhere(mask).astype(np.int64)


def _direction_quads(grid: SolidGrid, direction: int) -> Tuple[np.ndarray, np.ndarray]:
    """Ordered exposed cells and their quad corners for one direction."""
    axis, sign, u_axis, v_axis = DIRECTION_DEFINITIONS[direction]
    cells = exposed_cells(grid, direction)

    # plane layer first, then rows along v, then u within a row
    order = np.lexsort((cells[:, u_axis], cells[:, v_axis], cells[:, axis]))
    cells = cells[order]

    base = (cells + grid.origin).astype(np.float64)
    if sign > 0:
        base[:, axis] += 1.0

    u = np.zeros(3)
    v = np.zeros(3)
    u[u_axis] = 1.0
    v[v_axis] = 1.0

    quads = np.stack([base, base + u, base + u + v, base + v], axis=1)
    return cells, quads


def build_patches(grid: SolidGrid) -> List[Patch]:
    """Extract one patch per exposed solid-cell face.

    Patch ordering: direction (+X, -X, +Y, -Y, +Z, -Z), then plane layer
    along the normal, then the two in-plane coordinates. Coplanar neighbours
    in a row are consecutive.

    Args:
        grid: Solid grid

    Returns:
        List of Patch objects with dense patch ids
    """
    patches = []
    global_idx = 0

    for direction in range(6):
        cells, quads = _direction_quads(grid, direction)
        normal = DIRECTION_NORMALS[direction]

        for cell, quad in zip(cells, quads):
            edge_u = quad[1] - quad[0]
            edge_v = quad[3] - quad[0]
            area = float(np.linalg.norm(np.cross(edge_u, edge_v)))
            if area <= 0.0:
                continue

            patches.append(Patch(
                patch_id=global_idx,
                direction=direction,
                cell=(int(cell[0]), int(cell[1]), int(cell[2])),
                vertices=quad,
                normal=normal.copy(),
                center=quad.mean(axis=0),
                area=area,
            ))
            global_idx += 1

    return patches


def patches_to_arrays(patches: List[Patch]) -> Dict[str, np.ndarray]:
    """Convert patch list to numpy arrays for kernel use.

    Args:
        patches: List of Patch objects

    Returns:
        Dictionary with:
        - 'centers': (n_patches, 3) float64
        - 'normals': (n_patches, 3) float64
        - 'vertices': (n_patches, 4, 3) float64
        - 'areas': (n_patches,) float64
        - 'directions': (n_patches,) int32
    """
    n_patches = len(patches)

    centers = np.zeros((n_patches, 3), dtype=np.float64)
    normals = np.zeros((n_patches, 3), dtype=np.float64)
    vertices = np.zeros((n_patches, 4, 3), dtype=np.float64)
    areas = np.zeros(n_patches, dtype=np.float64)
    directions = np.zeros(n_patches, dtype=np.int32)

    for i, patch in enumerate(patches):
        centers[i] = patch.center
        normals[i] = patch.normal
        vertices[i] = patch.vertices
        areas[i] = patch.area
        directions[i] = patch.direction

    return {
        'centers': centers,
        'normals': normals,
        'vertices': vertices,
        'areas': areas,
        'directions': directions,
    }


def compute_geometry_hash(level_bytes: bytes, pump_factor: int) -> int:
    """Compute the 64-bit scene hash used as the bake cache key.

    Args:
        level_bytes: Raw crystal bytes
        pump_factor: Build parameter that changes the patch set

    Returns:
        Unsigned 64-bit integer
    """
    hasher = hashlib.sha256()
    hasher.update(HASH_DOMAIN)
    hasher.update(struct.pack("<BQ", CRYSTAL_VERSION, pump_factor))
    hasher.update(level_bytes)
    return int.from_bytes(hasher.digest()[:8], "big")


def build_scene_geometry(
    level_source: Union[bytes, BinaryIO],
    pump_factor: int,
    base_pos: Sequence[int] = (0, 0, 0),
) -> Tuple[SolidGrid, List[Patch], int]:
    """Build the solid grid, patch list and geometry hash for a level.

    Args:
        level_source: Crystal bytes or a binary stream
        pump_factor: Volumetric refinement factor
        base_pos: Crystal-resolution position of the level

    Returns:
        Tuple of (solid_grid, patches, geometry_hash)

    Raises:
        SceneLoadError: If the level input is malformed or truncated
    """
    if pump_factor < 1:
        raise SceneLoadError(f"pump_factor must be >= 1, got {pump_factor}")

    level_bytes = read_crystal_bytes(level_source)
    occupancy = decode_crystal(level_bytes)

    grid = SolidGrid.from_occupancy(occupancy, pump_factor, base_pos)
    patches = build_patches(grid)
    geometry_hash = compute_geometry_hash(level_bytes, pump_factor)

    return grid, patches, geometry_hash

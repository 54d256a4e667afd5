"""Per-frame direct illumination from point lights."""

import numpy as np
from numba import njit, prange

from .visibility import offset_points, segment_occluded

# Squared distances below this are clamped so nearby lights stay finite
MIN_LIGHT_DISTANCE_SQ = 1.0


@njit(parallel=True, cache=True)
def _inject_point_light(
    emit: np.ndarray,
    points: np.ndarray,
    normals: np.ndarray,
    lx: float, ly: float, lz: float,
    red: float, green: float, blue: float,
    cells: np.ndarray
) -> None:
    """Add one point light's direct contribution to emit (grid-local)."""
    n_patches = points.shape[0]

    for i in prange(n_patches):
        px = points[i, 0]
        py = points[i, 1]
        pz = points[i, 2]

        dx = lx - px
        dy = ly - py
        dz = lz - pz
        d2 = dx * dx + dy * dy + dz * dz
        if d2 < 1e-12:
            continue

        d = np.sqrt(d2)
        cos_theta = (normals[i, 0] * dx + normals[i, 1] * dy + normals[i, 2] * dz) / d
        if cos_theta <= 0.0:
            continue

        if segment_occluded(px, py, pz, lx, ly, lz, cells):
            continue

        weight = cos_theta / max(d2, MIN_LIGHT_DISTANCE_SQ)
        emit[i, 0] += red * weight
        emit[i, 1] += green * weight
        emit[i, 2] += blue * weight


def render_light(emit: np.ndarray, scene, light_position, light_color) -> None:
    """Accumulate a point light's direct illumination into emit.

    For every patch facing the light with an unobstructed path through the
    solid grid, adds light_color * cos(theta) / max(d^2, 1) to
    emit[patch_id]. The addition is in place and accumulates across calls;
    callers clear emit at the start of each frame.

    Args:
        emit: Per-patch emission (n_patches, 3), modified in place
        scene: Scene providing solid, patch_arrays and kernel_cells
        light_position: World-space light position (3,)
        light_color: RGB intensity (3,)
    """
    arrays = scene.patch_arrays
    n_patches = arrays['centers'].shape[0]
    if emit.shape != (n_patches, 3):
        raise ValueError(f"emit must have shape ({n_patches}, 3), got {emit.shape}")
    if not emit.flags.c_contiguous or not emit.flags.writeable:
        raise ValueError("emit must be a writable C-contiguous array")

    position = np.asarray(light_position, dtype=np.float64).reshape(3)
    color = np.asarray(light_color, dtype=np.float64).reshape(3)
    if not (np.all(np.isfinite(position)) and np.all(np.isfinite(color))):
        raise ValueError("Light position and color must be finite")

    origin = scene.solid.origin.astype(np.float64)
    points = offset_points(arrays['centers'], arrays['normals']) - origin
    local = position - origin

    _inject_point_light(
        emit,
        np.ascontiguousarray(points),
        np.ascontiguousarray(arrays['normals']),
        local[0], local[1], local[2],
        color[0], color[1], color[2],
        scene.kernel_cells,
    )

"""Patch mesh building: exposed-face extraction, geometry hash, strips."""

from .builder import (
    DIRECTION_DEFINITIONS,
    DIRECTION_NORMALS,
    Patch,
    build_patches,
    build_scene_geometry,
    compute_geometry_hash,
    exposed_cells,
    patches_to_arrays,
)
from .strips import TriangleStrip, build_triangle_strip

__all__ = [
    "DIRECTION_DEFINITIONS",
    "DIRECTION_NORMALS",
    "Patch",
    "TriangleStrip",
    "build_patches",
    "build_scene_geometry",
    "build_triangle_strip",
    "compute_geometry_hash",
    "exposed_cells",
    "patches_to_arrays",
]

"""Triangle-strip topology over the patch sequence for rendering."""

from dataclasses import dataclass
from typing import List

import numpy as np

from .builder import Patch

# Quad corners (0, u, u+v, v) emitted as strip q0 q0 q1 q3 q2 q2. The
# duplicated first and last corners stitch consecutive quads with degenerate
# triangles; each chunk has an even length so every quad keeps its winding.
_STRIP_CORNERS = np.array([0, 0, 1, 3, 2, 2])


@dataclass
class TriangleStrip:
    """A single triangle strip covering all patches in patch order.

    Attributes:
        positions: Vertex positions (n_vertices, 3) float32
        normals: Vertex normals (n_vertices, 3) float32
        vertex_patch_ids: Patch each vertex takes its color from (n_vertices,)
    """
    positions: np.ndarray
    normals: np.ndarray
    vertex_patch_ids: np.ndarray

    @property
    def num_vertices(self) -> int:
        return int(self.positions.shape[0])

    def colors(self, rad: np.ndarray) -> np.ndarray:
        """Expand per-patch colors to per-vertex colors.

        Args:
            rad: Per-patch colors (n_patches, 3)

        Returns:
            Per-vertex colors (n_vertices, 3) float32
        """
        rad = np.asarray(rad)
        if self.num_vertices and rad.shape[0] <= int(self.vertex_patch_ids.max()):
            raise ValueError(
                f"Color array has {rad.shape[0]} entries, strip references "
                f"patch {int(self.vertex_patch_ids.max())}"
            )
        return rad[self.vertex_patch_ids].astype(np.float32)


def build_triangle_strip(patches: List[Patch]) -> TriangleStrip:
    """Build one degenerate-stitched triangle strip over the patches.

    Patch i occupies strip vertices [6i - 1, 6i + 5) (clipped to the strip),
    so per-patch color data maps to the strip in patch order.

    Args:
        patches: Patch sequence from build_patches

    Returns:
        TriangleStrip
    """
    n_patches = len(patches)
    if n_patches == 0:
        return TriangleStrip(
            positions=np.zeros((0, 3), dtype=np.float32),
            normals=np.zeros((0, 3), dtype=np.float32),
            vertex_patch_ids=np.zeros(0, dtype=np.int64),
        )

    quads = np.stack([p.vertices for p in patches]).astype(np.float32)
    normals = np.stack([p.normal for p in patches]).astype(np.float32)

    positions = quads[:, _STRIP_CORNERS, :].reshape(-1, 3)[1:-1]
    vertex_normals = np.repeat(normals, len(_STRIP_CORNERS), axis=0)[1:-1]
    vertex_patch_ids = np.repeat(
        np.arange(n_patches, dtype=np.int64), len(_STRIP_CORNERS)
    )[1:-1]

    return TriangleStrip(
        positions=np.ascontiguousarray(positions),
        normals=np.ascontiguousarray(vertex_normals),
        vertex_patch_ids=vertex_patch_ids,
    )

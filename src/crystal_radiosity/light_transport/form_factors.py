"""Form-factor precomputation between surface patches.

For every ordered patch pair (i, j) the fraction of energy leaving i that
reaches j is estimated with the point-to-area kernel

    F_ij ~= mean over sample pairs (p, q) of
            cos_i * cos_j * A_j / (pi * r^2) * V(p, q)

where V is binary visibility through the solid grid. Each patch carries
samples_per_axis^2 sample points, so a pair costs samples_per_axis^4 rays.
The bake is O(n_patches^2) and meant to be computed once and cached.
"""

import time
from typing import List

import numpy as np
from numba import njit, prange
from scipy import sparse
from tqdm import tqdm

from ..patches.builder import Patch, patches_to_arrays
from ..voxelization.solid_grid import SolidGrid
from .light_static import FORM_FACTOR_THRESHOLD, LightStatic
from .visibility import SURFACE_OFFSET, grid_cells_for_kernel, segment_occluded

# Pairs closer than this (squared) are treated as coincident: coefficient 0
MIN_DISTANCE_SQ = 1e-12


def patch_sample_points(
    vertices: np.ndarray,
    normals: np.ndarray,
    samples_per_axis: int
) -> np.ndarray:
    """Stratified sample points on each patch, offset off the surface.

    Args:
        vertices: Quad corners (n_patches, 4, 3), ordered (0, u, u+v, v)
        normals: Unit normals (n_patches, 3)
        samples_per_axis: Sample grid resolution per patch axis

    Returns:
        Sample points (n_patches, samples_per_axis^2, 3) float64
    """
    k = samples_per_axis
    offsets = (np.arange(k, dtype=np.float64) + 0.5) / k
    su, sv = np.meshgrid(offsets, offsets, indexing="xy")
    su = su.ravel()
    sv = sv.ravel()

    origin = vertices[:, 0, :]
    edge_u = vertices[:, 1, :] - origin
    edge_v = vertices[:, 3, :] - origin

    points = (origin[:, None, :]
              + su[None, :, None] * edge_u[:, None, :]
              + sv[None, :, None] * edge_v[:, None, :])
    return points + SURFACE_OFFSET * normals[:, None, :]


@njit(parallel=True, cache=True)
def _form_factor_row(
    i: int,
    samples: np.ndarray,
    normals: np.ndarray,
    areas: np.ndarray,
    cells: np.ndarray
) -> np.ndarray:
    """Form factors from patch i to every patch (grid-local sample points)."""
    n_patches = samples.shape[0]
    n_samples = samples.shape[1]
    row = np.zeros(n_patches, dtype=np.float64)

    nix = normals[i, 0]
    niy = normals[i, 1]
    niz = normals[i, 2]
    inv_pairs = 1.0 / (n_samples * n_samples)

    for j in prange(n_patches):
        if j == i or areas[j] <= 0.0:
            continue

        njx = normals[j, 0]
        njy = normals[j, 1]
        njz = normals[j, 2]
        acc = 0.0

        for s in range(n_samples):
            px = samples[i, s, 0]
            py = samples[i, s, 1]
            pz = samples[i, s, 2]

            for t in range(n_samples):
                rx = samples[j, t, 0] - px
                ry = samples[j, t, 1] - py
                rz = samples[j, t, 2] - pz
                r2 = rx * rx + ry * ry + rz * rz
                if r2 < MIN_DISTANCE_SQ:
                    continue

                r = np.sqrt(r2)
                cos_i = (nix * rx + niy * ry + niz * rz) / r
                cos_j = -(njx * rx + njy * ry + njz * rz) / r
                if cos_i <= 0.0 or cos_j <= 0.0:
                    continue

                if segment_occluded(px, py, pz,
                                    samples[j, t, 0], samples[j, t, 1], samples[j, t, 2],
                                    cells):
                    continue

                acc += cos_i * cos_j / (np.pi * r2)

        row[j] = acc * areas[j] * inv_pairs

    return row


class FormFactorSolver:
    """Computes the static form-factor table for a patch set.

    Args:
        samples_per_axis: Visibility sample points per patch axis (>= 1)
        threshold: Coefficients below this are elided from storage
        verbose: Show a progress bar and print timing
    """

    def __init__(
        self,
        samples_per_axis: int = 1,
        threshold: float = FORM_FACTOR_THRESHOLD,
        verbose: bool = False
    ):
        if samples_per_axis < 1:
            raise ValueError(f"samples_per_axis must be >= 1, got {samples_per_axis}")
        if threshold < 0:
            raise ValueError(f"threshold must be non-negative, got {threshold}")

        self.samples_per_axis = samples_per_axis
        self.threshold = threshold
        self.verbose = verbose

    def compute(self, patches: List[Patch], solid: SolidGrid) -> LightStatic:
        """Compute the (not yet postprocessed) form-factor table.

        Args:
            patches: Patch sequence from build_patches
            solid: Solid grid used for occlusion

        Returns:
            LightStatic covering len(patches) patches
        """
        n_patches = len(patches)
        start_time = time.time()

        if n_patches == 0:
            return LightStatic(
                sparse.csr_matrix((0, 0), dtype=np.float64),
                threshold=self.threshold,
                samples_per_axis=self.samples_per_axis,
            )

        arrays = patches_to_arrays(patches)
        samples = patch_sample_points(
            arrays['vertices'], arrays['normals'], self.samples_per_axis
        )
        samples -= solid.origin.astype(np.float64)
        samples = np.ascontiguousarray(samples)

        normals = np.ascontiguousarray(arrays['normals'])
        areas = np.ascontiguousarray(arrays['areas'])
        cells = grid_cells_for_kernel(solid)

        rows = []
        cols = []
        values = []

        for i in tqdm(range(n_patches), desc="Form factors", disable=not self.verbose):
            row = _form_factor_row(i, samples, normals, areas, cells)
            keep = np.flatnonzero((row > 0.0) & (row >= self.threshold))
            rows.append(np.full(keep.size, i, dtype=np.int64))
            cols.append(keep)
            values.append(row[keep])

        table = sparse.csr_matrix(
            (np.concatenate(values), (np.concatenate(rows), np.concatenate(cols))),
            shape=(n_patches, n_patches),
            dtype=np.float64,
        )

        if self.verbose:
            elapsed = time.time() - start_time
            print(f"Form factors computed in {elapsed:.1f}s "
                  f"({n_patches} patches, {table.nnz} stored pairs, "
                  f"{self.samples_per_axis ** 4} rays per pair)")

        return LightStatic(
            table,
            threshold=self.threshold,
            samples_per_axis=self.samples_per_axis,
        )


def setup_formfactors(
    patches: List[Patch],
    solid: SolidGrid,
    samples_per_axis: int = 1,
    threshold: float = FORM_FACTOR_THRESHOLD,
    verbose: bool = False
) -> LightStatic:
    """Compute the form-factor table for a patch set (not postprocessed)."""
    solver = FormFactorSolver(
        samples_per_axis=samples_per_axis,
        threshold=threshold,
        verbose=verbose,
    )
    return solver.compute(patches, solid)

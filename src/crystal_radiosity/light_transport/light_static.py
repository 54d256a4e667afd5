"""Static (per-scene) lighting data: the form-factor table."""

from typing import Any, Dict

import numpy as np
from scipy import sparse

# Coefficients below this are not stored (elision policy)
FORM_FACTOR_THRESHOLD = 1e-5

# Rows summing to more than 1 + ENERGY_TOLERANCE are rescaled to sum to 1
ENERGY_TOLERANCE = 1e-6


class LightStatic:
    """Form-factor table for one scene geometry.

    F[i, j] is the fraction of energy leaving patch i that arrives at
    patch j. The diagonal is always empty. Reciprocity
    (A_i F[i, j] == A_j F[j, i]) holds in the physical model but is not
    enforced by the storage.

    Args:
        form_factors: Sparse (n_patches, n_patches) matrix
        threshold: Elision threshold applied by do_postprocessing
        samples_per_axis: Visibility sampling density used for the bake
        postprocessed: Whether do_postprocessing has already run
    """

    def __init__(
        self,
        form_factors: sparse.spmatrix,
        threshold: float = FORM_FACTOR_THRESHOLD,
        samples_per_axis: int = 1,
        postprocessed: bool = False
    ):
        coo = sparse.coo_matrix(form_factors, dtype=np.float64)
        if coo.shape[0] != coo.shape[1]:
            raise ValueError(
                f"Form-factor table must be square, got {coo.shape}"
            )
        if coo.nnz and not np.all(np.isfinite(coo.data)):
            raise ValueError("Form-factor table contains non-finite values")
        if coo.nnz and coo.data.min() < 0:
            raise ValueError("Form-factor table contains negative values")

        # Self pairs never transfer energy
        off_diag = coo.row != coo.col
        form_factors = sparse.csr_matrix(
            (coo.data[off_diag], (coo.row[off_diag], coo.col[off_diag])),
            shape=coo.shape,
            dtype=np.float64,
        )
        form_factors.eliminate_zeros()
        form_factors.sort_indices()

        self._form_factors = form_factors
        self.threshold = float(threshold)
        self.samples_per_axis = int(samples_per_axis)
        self.postprocessed = bool(postprocessed)

        if self.postprocessed:
            self._lock()

    @property
    def num_planes(self) -> int:
        """Number of patches the table covers."""
        return int(self._form_factors.shape[0])

    @property
    def form_factors(self) -> sparse.csr_matrix:
        return self._form_factors

    @property
    def nnz(self) -> int:
        return int(self._form_factors.nnz)

    def row_sums(self) -> np.ndarray:
        """Sum of outgoing coefficients per patch."""
        return np.asarray(self._form_factors.sum(axis=1)).ravel()

    def coefficient(self, i: int, j: int) -> float:
        return float(self._form_factors[i, j])

    def transfer(self, values: np.ndarray) -> np.ndarray:
        """Gather values through the table: out[i] = sum_j F[i, j] * values[j]."""
        return self._form_factors @ values

    def do_postprocessing(self) -> None:
        """Normalize outgoing energy and drop negligible coefficients.

        Rows whose sum exceeds 1 (beyond ENERGY_TOLERANCE) are scaled down to
        sum to 1, then coefficients below the threshold are removed.
        Idempotent: a second call leaves the table unchanged.
        """
        table = self._form_factors.tocsr(copy=True)

        sums = np.asarray(table.sum(axis=1)).ravel()
        over = sums > 1.0 + ENERGY_TOLERANCE
        if np.any(over):
            scale = np.ones_like(sums)
            scale[over] = 1.0 / sums[over]
            table = sparse.csr_matrix(sparse.diags(scale) @ table)

        if self.threshold > 0 and table.nnz:
            table.data[table.data < self.threshold] = 0.0
        table.eliminate_zeros()
        table.sort_indices()

        self._form_factors = table
        self.postprocessed = True
        self._lock()

    def _lock(self) -> None:
        """Make the table arrays read-only."""
        for arr in (self._form_factors.data,
                    self._form_factors.indices,
                    self._form_factors.indptr):
            arr.setflags(write=False)

    def get_metadata(self) -> Dict[str, Any]:
        """Get bake metadata for saving with results."""
        return {
            'num_planes': self.num_planes,
            'nnz': self.nnz,
            'threshold': self.threshold,
            'samples_per_axis': self.samples_per_axis,
            'postprocessed': self.postprocessed,
        }


def analyze_light_static(light_static: LightStatic) -> Dict[str, Any]:
    """Analyze form-factor table properties.

    Args:
        light_static: Table to analyze

    Returns:
        Dictionary with analysis results
    """
    table = light_static.form_factors
    n = light_static.num_planes

    stats = {
        'num_planes': n,
        'nnz': light_static.nnz,
        'density': float(light_static.nnz / (n * n)) if n else 0.0,
        'postprocessed': light_static.postprocessed,
    }

    if light_static.nnz:
        stats['min'] = float(table.data.min())
        stats['max'] = float(table.data.max())
        stats['mean'] = float(table.data.mean())

    # Energy conservation check (row sums)
    row_sums = light_static.row_sums() if n else np.zeros(0)
    if n:
        stats['row_sum_min'] = float(row_sums.min())
        stats['row_sum_max'] = float(row_sums.max())
        stats['row_sum_mean'] = float(row_sums.mean())

    # Symmetry check (equal-area voxel faces make F symmetric up to noise)
    if light_static.nnz:
        stats['symmetry_error'] = float(abs(table - table.T).max())

    return stats

"""Interchangeable radiosity propagation strategies.

Every core implements the same two-call contract:

    core.set_emit(emit)   # record this frame's direct emission (n, 3)
    core.copy(rad)        # propagate and write outgoing radiance into rad

Cores hold a reference to a LightStatic, which must outlive them, and do
no geometry work of their own. Propagation follows the gathering form of
the radiosity equation, B_i = E_i + rho * sum_j F[i, j] * B_j.
"""

from typing import Optional, Protocol, runtime_checkable

import numpy as np

from .light_static import LightStatic


@runtime_checkable
class RadiosityCore(Protocol):
    """Capability shared by every propagation strategy."""

    def set_emit(self, emit: np.ndarray) -> None:
        ...

    def copy(self, out: np.ndarray) -> None:
        ...


def _check_colors(values: np.ndarray, num_planes: int, name: str) -> None:
    if values.shape != (num_planes, 3):
        raise ValueError(
            f"{name} must have shape ({num_planes}, 3), got {values.shape}"
        )


def _validated_emit(emit: np.ndarray, num_planes: int) -> np.ndarray:
    """Copy of a per-patch emission array after shape and finiteness checks."""
    emit = np.array(emit)
    _check_colors(emit, num_planes, "emit")
    if not np.all(np.isfinite(emit)):
        raise ValueError("emit contains non-finite values")
    return emit


def _pending_emit(emit: Optional[np.ndarray], out: np.ndarray, num_planes: int) -> np.ndarray:
    if emit is None:
        raise ValueError("set_emit must be called before copy")
    _check_colors(out, num_planes, "out")
    return emit


class NullRadCore:
    """No indirect bounce: radiance equals emission exactly."""

    def __init__(self, light_static: LightStatic):
        self.num_planes = light_static.num_planes
        self._emit: Optional[np.ndarray] = None

    def set_emit(self, emit: np.ndarray) -> None:
        self._emit = _validated_emit(emit, self.num_planes)

    def copy(self, out: np.ndarray) -> None:
        out[...] = _pending_emit(self._emit, out, self.num_planes)


def _check_reflectance(reflectance: float) -> None:
    if not 0.0 <= reflectance < 1.0:
        raise ValueError(f"reflectance must be in [0, 1), got {reflectance}")


def _check_iteration(max_iterations: int, tolerance: float) -> None:
    if max_iterations < 1:
        raise ValueError(f"max_iterations must be >= 1, got {max_iterations}")
    if not tolerance > 0.0:
        raise ValueError(f"tolerance must be > 0, got {tolerance}")


class GatherRadCore:
    """Single gather pass (one-bounce approximation).

    out = emit + reflectance * F @ emit
    """

    def __init__(self, light_static: LightStatic, reflectance: float = 0.6):
        _check_reflectance(reflectance)
        self.light_static = light_static
        self.num_planes = light_static.num_planes
        self.reflectance = reflectance
        self._emit: Optional[np.ndarray] = None

    def set_emit(self, emit: np.ndarray) -> None:
        self._emit = _validated_emit(emit, self.num_planes)

    def copy(self, out: np.ndarray) -> None:
        emit = _pending_emit(self._emit, out, self.num_planes).astype(np.float64)
        bounced = self.light_static.transfer(emit)
        out[...] = emit + self.reflectance * bounced


class JacobiRadCore:
    """Iterated gathering (multi-bounce), warm-started from the last frame.

    Iterates B <- emit + reflectance * F @ B until the largest change is at
    most tolerance or max_iterations is reached. With row sums <= 1 and
    reflectance < 1 the iteration is a contraction and converges.
    """

    def __init__(
        self,
        light_static: LightStatic,
        reflectance: float = 0.6,
        max_iterations: int = 32,
        tolerance: float = 1e-4
    ):
        _check_reflectance(reflectance)
        _check_iteration(max_iterations, tolerance)

        self.light_static = light_static
        self.num_planes = light_static.num_planes
        self.reflectance = reflectance
        self.max_iterations = max_iterations
        self.tolerance = tolerance
        self._emit: Optional[np.ndarray] = None

        self._solution = np.zeros((self.num_planes, 3), dtype=np.float64)
        self.last_iterations = 0
        self.last_residual = 0.0

    def set_emit(self, emit: np.ndarray) -> None:
        self._emit = _validated_emit(emit, self.num_planes)

    def copy(self, out: np.ndarray) -> None:
        emit = _pending_emit(self._emit, out, self.num_planes).astype(np.float64)
        solution = self._solution

        residual = 0.0
        iterations = 0
        for iterations in range(1, self.max_iterations + 1):
            updated = emit + self.reflectance * self.light_static.transfer(solution)
            residual = float(np.abs(updated - solution).max()) if self.num_planes else 0.0
            solution = updated
            if residual <= self.tolerance:
                break

        self._solution = solution
        self.last_iterations = iterations
        self.last_residual = residual
        out[...] = solution

    def reset(self) -> None:
        """Drop the warm-start state."""
        self._solution = np.zeros((self.num_planes, 3), dtype=np.float64)


def make_rad_core(
    kind: str,
    light_static: LightStatic,
    reflectance: float = 0.6,
    max_iterations: int = 32,
    tolerance: float = 1e-4
) -> RadiosityCore:
    """Create a radiosity core by name.

    Args:
        kind: "null", "gather" or "jacobi"
        light_static: Static lighting data (must outlive the core)
        reflectance: Surface reflectance for the real cores
        max_iterations: Iteration cap for "jacobi"
        tolerance: Convergence threshold for "jacobi"

    Returns:
        A RadiosityCore implementation

    Raises:
        ValueError: If kind is unknown or a setting is out of range
    """
    _check_reflectance(reflectance)
    _check_iteration(max_iterations, tolerance)
    if kind == "null":
        return NullRadCore(light_static)
    if kind == "gather":
        return GatherRadCore(light_static, reflectance=reflectance)
    if kind == "jacobi":
        return JacobiRadCore(
            light_static,
            reflectance=reflectance,
            max_iterations=max_iterations,
            tolerance=tolerance,
        )
    raise ValueError(f"Unknown radiosity core {kind!r}")

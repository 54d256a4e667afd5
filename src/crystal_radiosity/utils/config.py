"""Configuration for scene loading, baking and per-frame lighting."""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

RAD_CORE_KINDS = ("null", "gather", "jacobi")


@dataclass
class LightingConfig:
    """Configuration for the radiosity lighting engine.

    Attributes:
        pump_factor: Volumetric refinement of crystal cells. Each crystal cell
            becomes pump_factor^3 solid cells, so patch count grows with
            pump_factor^2 (default: 4)
        samples_per_axis: Visibility sample points per patch axis. Each patch
            pair is tested with samples_per_axis^4 rays (default: 1, center
            to center)
        form_factor_threshold: Coefficients below this are not stored
        reflectance: Scalar surface reflectance used by the real cores
        core: Radiosity core variant ("null", "gather" or "jacobi")
        max_iterations: Iteration cap for the "jacobi" core
        tolerance: Convergence threshold (max abs change) for "jacobi"
        cache_dir: Directory for baked form factors (None disables caching)
        verbose: Print progress bars and summaries
    """

    pump_factor: int = 4
    samples_per_axis: int = 1
    form_factor_threshold: float = 1e-5
    reflectance: float = 0.6
    core: str = "gather"
    max_iterations: int = 32
    tolerance: float = 1e-4
    cache_dir: Optional[Path] = None
    verbose: bool = False

    def __post_init__(self):
        """Validate configuration."""
        if self.pump_factor < 1:
            raise ValueError(f"pump_factor must be >= 1, got {self.pump_factor}")

        if self.samples_per_axis < 1:
            raise ValueError(
                f"samples_per_axis must be >= 1, got {self.samples_per_axis}"
            )

        if self.form_factor_threshold < 0:
            raise ValueError(
                f"form_factor_threshold must be non-negative, got {self.form_factor_threshold}"
            )

        if not 0.0 <= self.reflectance < 1.0:
            raise ValueError(f"reflectance must be in [0, 1), got {self.reflectance}")

        if self.core not in RAD_CORE_KINDS:
            raise ValueError(
                f"core must be one of {RAD_CORE_KINDS}, got {self.core!r}"
            )

        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {self.max_iterations}")

        if self.tolerance <= 0:
            raise ValueError(f"tolerance must be positive, got {self.tolerance}")

        if self.cache_dir is not None:
            self.cache_dir = Path(self.cache_dir)

    @property
    def caching_enabled(self) -> bool:
        return self.cache_dir is not None

    def get_cache_path(self, scene_hash: int) -> Path:
        """Get path of the bake file for a scene hash."""
        if self.cache_dir is None:
            raise ValueError("Caching is disabled (cache_dir is None)")

        from ..caching.bake_cache import hash_to_filename
        return self.cache_dir / hash_to_filename(scene_hash)

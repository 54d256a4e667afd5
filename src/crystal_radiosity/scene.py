"""Scene ownership and the per-frame render unit.

A Scene holds everything derived from one crystal level: the solid grid,
the patch list, the triangle strip, the geometry hash and the baked
form-factor table. A RenderUnit owns the per-frame buffers and the
radiosity core, and drives the frame:

    unit.clear_emit()
    unit.render_light(position, color)   # once per light
    unit.update()                        # emit -> core -> rad
    colors = unit.vertex_colors()
"""

from pathlib import Path
from typing import BinaryIO, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np

from .caching.bake_cache import BakeCache, load_or_compute_light_static
from .errors import SceneLoadError
from .light_transport.light_injection import render_light
from .light_transport.light_static import LightStatic
from .light_transport.rad_core import RadiosityCore, make_rad_core
from .light_transport.visibility import grid_cells_for_kernel
from .patches.builder import Patch, build_scene_geometry, patches_to_arrays
from .patches.strips import TriangleStrip, build_triangle_strip
from .utils.config import LightingConfig
from .voxelization.solid_grid import SolidGrid


class LightDynamic:
    """Per-frame lighting buffers.

    Attributes:
        emit: Direct emission per patch (n_patches, 3) float32
        rad: Outgoing radiance per patch (n_patches, 3) float32
    """

    def __init__(self, num_planes: int):
        self.emit = np.zeros((num_planes, 3), dtype=np.float32)
        self.rad = np.zeros((num_planes, 3), dtype=np.float32)

    @property
    def num_planes(self) -> int:
        return int(self.emit.shape[0])

    def clear_emit(self) -> None:
        self.emit.fill(0.0)


class Scene:
    """Static scene data for one level.

    Args:
        solid: Solid grid used for occlusion
        patches: Patch sequence (index == patch id)
        geometry_hash: 64-bit hash of the level bytes and pump factor
        light_static: Postprocessed form-factor table covering the patches
    """

    def __init__(
        self,
        solid: SolidGrid,
        patches: List[Patch],
        geometry_hash: int,
        light_static: LightStatic
    ):
        if light_static.num_planes != len(patches):
            raise ValueError(
                f"Form-factor table covers {light_static.num_planes} patches, "
                f"scene has {len(patches)}"
            )

        self.solid = solid
        self.patches = patches
        self.geometry_hash = geometry_hash
        self.light_static = light_static

        self.patch_arrays = patches_to_arrays(patches)
        self.strip = build_triangle_strip(patches)
        self.kernel_cells = grid_cells_for_kernel(solid)

    @property
    def num_patches(self) -> int:
        return len(self.patches)

    @classmethod
    def from_crystal(
        cls,
        level_source: Union[bytes, BinaryIO],
        config: Optional[LightingConfig] = None,
        base_pos: Sequence[int] = (0, 0, 0)
    ) -> "Scene":
        """Load a level and bake (or fetch from cache) its form factors.

        Either a fully built Scene is returned or an exception propagates;
        cache failures are reported as warnings and never abort loading.

        Args:
            level_source: Crystal bytes or a binary stream
            config: Lighting configuration (defaults if not provided)
            base_pos: Crystal-resolution position of the level

        Returns:
            Scene

        Raises:
            SceneLoadError: If the level input is malformed or truncated
        """
        config = config or LightingConfig()

        solid, patches, geometry_hash = build_scene_geometry(
            level_source, config.pump_factor, base_pos
        )

        cache = BakeCache(config.cache_dir) if config.caching_enabled else None
        light_static = load_or_compute_light_static(
            patches,
            solid,
            geometry_hash,
            cache=cache,
            samples_per_axis=config.samples_per_axis,
            threshold=config.form_factor_threshold,
            verbose=config.verbose,
        )

        scene = cls(solid, patches, geometry_hash, light_static)

        if config.verbose:
            print(f"Scene {geometry_hash:016x}: grid {solid.shape}, "
                  f"{solid.num_solid} solid cells, {scene.num_patches} patches, "
                  f"{light_static.nnz} form factors")

        return scene

    @classmethod
    def from_path(
        cls,
        path: Path,
        config: Optional[LightingConfig] = None,
        base_pos: Sequence[int] = (0, 0, 0)
    ) -> "Scene":
        """Load a level from a crystal file on disk."""
        try:
            with open(path, "rb") as f:
                level_bytes = f.read()
        except OSError as e:
            raise SceneLoadError(f"Cannot open level {path}: {e}") from e

        return cls.from_crystal(level_bytes, config, base_pos)


class RenderUnit:
    """Per-frame driver binding a scene to its lighting buffers and core.

    Args:
        scene: Loaded scene (must outlive the unit)
        config: Lighting configuration selecting the core variant
    """

    def __init__(self, scene: Scene, config: Optional[LightingConfig] = None):
        self.scene = scene
        self.config = config or LightingConfig()

        self.light_dynamic = LightDynamic(scene.num_patches)
        self.core: RadiosityCore = make_rad_core(
            self.config.core,
            scene.light_static,
            reflectance=self.config.reflectance,
            max_iterations=self.config.max_iterations,
            tolerance=self.config.tolerance,
        )
        self.frame_count = 0

    @property
    def emit(self) -> np.ndarray:
        return self.light_dynamic.emit

    @property
    def rad(self) -> np.ndarray:
        return self.light_dynamic.rad

    def clear_emit(self) -> None:
        self.light_dynamic.clear_emit()

    def render_light(self, position: Sequence[float], color: Sequence[float]) -> None:
        """Add a point light at a world-space position to this frame's emission."""
        render_light(self.light_dynamic.emit, self.scene, position, color)

    def update(self) -> np.ndarray:
        """Propagate this frame's emission and refresh rad.

        Returns:
            The updated radiance buffer (n_patches, 3)
        """
        self.core.set_emit(self.light_dynamic.emit)
        self.core.copy(self.light_dynamic.rad)
        self.frame_count += 1
        return self.light_dynamic.rad

    def render_frame(
        self,
        lights: Iterable[Tuple[Sequence[float], Sequence[float]]]
    ) -> np.ndarray:
        """Run a full frame: clear, inject every (position, color), update."""
        self.clear_emit()
        for position, color in lights:
            self.render_light(position, color)
        return self.update()

    def vertex_colors(self) -> np.ndarray:
        """Current radiance expanded to the scene's triangle-strip vertices."""
        return self.scene.strip.colors(self.light_dynamic.rad)

    @property
    def strip(self) -> TriangleStrip:
        return self.scene.strip

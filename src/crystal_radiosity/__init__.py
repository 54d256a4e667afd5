"""Radiosity lighting engine for crystal voxel levels."""

from .caching.bake_cache import BakeCache
from .errors import CacheReadError, CacheWriteError, RadiosityError, SceneLoadError
from .light_transport.form_factors import FormFactorSolver
from .light_transport.light_static import LightStatic
from .scene import LightDynamic, RenderUnit, Scene
from .utils.config import LightingConfig

__version__ = "0.1.0"
__all__ = [
    "BakeCache",
    "CacheReadError",
    "CacheWriteError",
    "FormFactorSolver",
    "LightDynamic",
    "LightStatic",
    "LightingConfig",
    "RadiosityError",
    "RenderUnit",
    "Scene",
    "SceneLoadError",
]

"""Radiosity light transport for voxel scenes.

This module provides the precomputed form-factor bake, the per-frame light
injection and the interchangeable radiosity propagation cores.

Main Components:
    FormFactorSolver: O(n^2) form-factor bake with grid occlusion
    LightStatic: Postprocessed form-factor table owned by a scene
    RadiosityCore: set_emit / copy contract with null, gather and jacobi
        implementations
    render_light: Additive point-light injection into the emission buffer

Example:
    >>> from crystal_radiosity.light_transport import (
    ...     setup_formfactors, make_rad_core
    ... )
    >>> light_static = setup_formfactors(patches, solid)
    >>> light_static.do_postprocessing()
    >>> core = make_rad_core("gather", light_static)
    >>> core.set_emit(emit)
    >>> core.copy(rad)
"""

from .visibility import (
    SURFACE_OFFSET,
    is_occluded,
    segment_occluded,
    segments_occluded,
)
from .light_static import (
    ENERGY_TOLERANCE,
    FORM_FACTOR_THRESHOLD,
    LightStatic,
    analyze_light_static,
)
from .form_factors import FormFactorSolver, patch_sample_points, setup_formfactors
from .rad_core import (
    GatherRadCore,
    JacobiRadCore,
    NullRadCore,
    RadiosityCore,
    make_rad_core,
)
from .light_injection import MIN_LIGHT_DISTANCE_SQ, render_light

__all__ = [
    # Core classes
    "FormFactorSolver",
    "LightStatic",
    "RadiosityCore",
    "NullRadCore",
    "GatherRadCore",
    "JacobiRadCore",

    # Bake
    "setup_formfactors",
    "patch_sample_points",
    "analyze_light_static",

    # Per-frame
    "make_rad_core",
    "render_light",

    # Visibility
    "is_occluded",
    "segment_occluded",
    "segments_occluded",

    # Constants
    "ENERGY_TOLERANCE",
    "FORM_FACTOR_THRESHOLD",
    "MIN_LIGHT_DISTANCE_SQ",
    "SURFACE_OFFSET",
]

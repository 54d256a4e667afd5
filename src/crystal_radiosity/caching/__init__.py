"""On-disk caching of baked form factors keyed by scene geometry hash."""

from .bake_cache import (
    CACHE_FORMAT_VERSION,
    BakeCache,
    hash_to_filename,
    load_light_static,
    load_or_compute_light_static,
    save_light_static,
)

__all__ = [
    "CACHE_FORMAT_VERSION",
    "BakeCache",
    "hash_to_filename",
    "load_light_static",
    "load_or_compute_light_static",
    "save_light_static",
]

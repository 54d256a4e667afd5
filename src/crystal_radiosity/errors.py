"""Exception types raised by the lighting engine."""


class RadiosityError(Exception):
    """Base class for all lighting engine errors."""


class SceneLoadError(RadiosityError, ValueError):
    """Malformed or truncated level input.

    Fatal to scene construction; no partially built scene is returned.
    """


class CacheReadError(RadiosityError):
    """Bake cache file is corrupt, truncated, or belongs to another scene."""


class CacheWriteError(RadiosityError):
    """A bake result could not be written to the cache directory."""

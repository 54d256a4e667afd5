"""Utilities module."""

from .config import LightingConfig, RAD_CORE_KINDS

__all__ = ["LightingConfig", "RAD_CORE_KINDS"]

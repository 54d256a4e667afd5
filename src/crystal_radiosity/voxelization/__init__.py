"""Crystal level loading and solid occupancy grids."""

from .crystal import (
    CRYSTAL_MAGIC,
    CRYSTAL_VERSION,
    decode_crystal,
    encode_crystal,
    heightfield_to_crystal,
    load_crystal,
    read_crystal_bytes,
)
from .solid_grid import SolidGrid, pump_solid

__all__ = [
    "CRYSTAL_MAGIC",
    "CRYSTAL_VERSION",
    "SolidGrid",
    "decode_crystal",
    "encode_crystal",
    "heightfield_to_crystal",
    "load_crystal",
    "pump_solid",
    "read_crystal_bytes",
]

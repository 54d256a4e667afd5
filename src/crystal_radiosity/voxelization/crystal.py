"""Reader and writer for the crystal level format.

A crystal file describes solid voxel columns as run-length spans:

    magic    b"CRYS"
    version  u8 (1)
    width    u16   cells along x
    height   u16   cells along y (up)
    depth    u16   cells along z
    columns  width * depth records, z-major / x-minor:
             n_spans u8, then n_spans x (start u16, length u16)

All integers are little endian. A span fills y in [start, start + length).
"""

import io
import struct
from typing import BinaryIO, Union

import numpy as np

from ..errors import SceneLoadError

CRYSTAL_MAGIC = b"CRYS"
CRYSTAL_VERSION = 1

_HEADER = struct.Struct("<4sBHHH")
_SPAN = struct.Struct("<HH")
MAX_SPANS_PER_COLUMN = 255


def read_crystal_bytes(level_source: Union[bytes, bytearray, BinaryIO]) -> bytes:
    """Read the complete level input into memory.

    Args:
        level_source: Raw bytes or a binary stream

    Returns:
        The raw level bytes
    """
    if isinstance(level_source, (bytes, bytearray, memoryview)):
        return bytes(level_source)

    try:
        data = level_source.read()
    except (OSError, AttributeError) as e:
        raise SceneLoadError(f"Failed to read level source: {e}") from e

    if not isinstance(data, (bytes, bytearray)):
        raise SceneLoadError(
            f"Level source must yield bytes, got {type(data).__name__}"
        )
    return bytes(data)


def decode_crystal(data: bytes) -> np.ndarray:
    """Decode crystal bytes into a boolean occupancy array.

    Args:
        data: Raw crystal bytes

    Returns:
        Boolean array of shape (width, height, depth), indexed [x, y, z]

    Raises:
        SceneLoadError: If the input is malformed or truncated
    """
    if len(data) < _HEADER.size:
        raise SceneLoadError(
            f"Truncated crystal header: {len(data)} bytes, need {_HEADER.size}"
        )

    magic, version, width, height, depth = _HEADER.unpack_from(data, 0)
    if magic != CRYSTAL_MAGIC:
        raise SceneLoadError(f"Bad crystal magic {magic!r}")
    if version != CRYSTAL_VERSION:
        raise SceneLoadError(f"Unsupported crystal version {version}")
    if width == 0 or height == 0 or depth == 0:
        raise SceneLoadError(
            f"Crystal dimensions must be non-zero, got {width}x{height}x{depth}"
        )

    solid = np.zeros((width, height, depth), dtype=bool)
    offset = _HEADER.size

    for z in range(depth):
        for x in range(width):
            if offset >= len(data):
                raise SceneLoadError(
                    f"Truncated crystal column table at column ({x}, {z})"
                )
            n_spans = data[offset]
            offset += 1

            end = offset + n_spans * _SPAN.size
            if end > len(data):
                raise SceneLoadError(
                    f"Truncated span list at column ({x}, {z}): "
                    f"{n_spans} spans declared"
                )

            for start, length in _SPAN.iter_unpack(data[offset:end]):
                if length == 0:
                    raise SceneLoadError(f"Zero-length span at column ({x}, {z})")
                if start + length > height:
                    raise SceneLoadError(
                        f"Span [{start}, {start + length}) at column ({x}, {z}) "
                        f"exceeds height {height}"
                    )
                solid[x, start:start + length, z] = True
            offset = end

    if offset != len(data):
        raise SceneLoadError(
            f"{len(data) - offset} trailing bytes after crystal column table"
        )

    return solid


def load_crystal(level_source: Union[bytes, bytearray, BinaryIO]) -> np.ndarray:
    """Read and decode a crystal level from bytes or a binary stream."""
    return decode_crystal(read_crystal_bytes(level_source))


def _column_spans(column: np.ndarray) -> list:
    """Run-length encode a boolean column into (start, length) spans."""
    padded = np.concatenate(([False], column, [False])).astype(np.int8)
    edges = np.diff(padded)
    starts = np.flatnonzero(edges == 1)
    stops = np.flatnonzero(edges == -1)
    return [(int(s), int(e - s)) for s, e in zip(starts, stops)]


def encode_crystal(solid: np.ndarray) -> bytes:
    """Encode a boolean occupancy array as crystal bytes.

    Args:
        solid: Boolean array of shape (width, height, depth), indexed [x, y, z]

    Returns:
        Crystal bytes accepted by decode_crystal
    """
    solid = np.asarray(solid, dtype=bool)
    if solid.ndim != 3:
        raise ValueError(f"Expected a 3D occupancy array, got {solid.ndim}D")

    width, height, depth = solid.shape
    if min(width, height, depth) == 0 or max(width, height, depth) > 0xFFFF:
        raise ValueError(f"Unsupported crystal dimensions {solid.shape}")

    out = io.BytesIO()
    out.write(_HEADER.pack(CRYSTAL_MAGIC, CRYSTAL_VERSION, width, height, depth))

    for z in range(depth):
        for x in range(width):
            spans = _column_spans(solid[x, :, z])
            if len(spans) > MAX_SPANS_PER_COLUMN:
                raise ValueError(
                    f"Column ({x}, {z}) has {len(spans)} spans, "
                    f"max is {MAX_SPANS_PER_COLUMN}"
                )
            out.write(bytes([len(spans)]))
            for start, length in spans:
                out.write(_SPAN.pack(start, length))

    return out.getvalue()


def heightfield_to_crystal(heights: np.ndarray, height: int = None) -> bytes:
    """Build crystal bytes from a 2D height map.

    Args:
        heights: Integer array of shape (width, depth); column (x, z) is solid
            for y in [0, heights[x, z])
        height: Grid height (default: max(heights), at least 1)

    Returns:
        Crystal bytes
    """
    heights = np.asarray(heights, dtype=np.int64)
    if heights.ndim != 2:
        raise ValueError(f"Expected a 2D height map, got {heights.ndim}D")
    if np.any(heights < 0):
        raise ValueError("Heights must be non-negative")

    if height is None:
        height = max(int(heights.max()), 1)

    ys = np.arange(height)
    solid = ys[None, :, None] < heights[:, None, :]
    return encode_crystal(solid)

"""Content-addressed on-disk cache for baked form-factor tables."""

import os
import tempfile
import warnings
import zipfile
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
from scipy import sparse

from ..errors import CacheReadError, CacheWriteError
from ..light_transport.form_factors import FormFactorSolver
from ..light_transport.light_static import FORM_FACTOR_THRESHOLD, LightStatic
from ..patches.builder import Patch
from ..voxelization.solid_grid import SolidGrid

CACHE_PREFIX = "baked"
CACHE_SUFFIX = ".npz"
CACHE_FORMAT_VERSION = 1

_REQUIRED_KEYS = (
    "format_version", "scene_hash", "shape", "data", "indices", "indptr",
    "threshold", "samples_per_axis", "postprocessed",
)


def hash_to_filename(scene_hash: int) -> str:
    """Bake file name for a 64-bit scene hash, e.g. baked00ff...12.npz."""
    if not 0 <= scene_hash < 2 ** 64:
        raise ValueError(f"scene_hash must be an unsigned 64-bit value, got {scene_hash}")
    return f"{CACHE_PREFIX}{scene_hash:016x}{CACHE_SUFFIX}"


def save_light_static(path: Path, light_static: LightStatic, scene_hash: int) -> None:
    """Write a LightStatic to an uncompressed npz file.

    The file is written next to its destination and moved into place, so
    readers never see a partial file.

    Args:
        path: Output file path (.npz)
        light_static: Table to save
        scene_hash: Geometry hash stored for verification on load

    Raises:
        CacheWriteError: If the file cannot be written
    """
    path = Path(path)
    table = light_static.form_factors

    save_dict = {
        "format_version": np.array(CACHE_FORMAT_VERSION, dtype=np.int64),
        "scene_hash": np.array(scene_hash, dtype=np.uint64),
        "shape": np.array(table.shape, dtype=np.int64),
        "data": np.asarray(table.data, dtype=np.float64),
        "indices": np.asarray(table.indices, dtype=np.int64),
        "indptr": np.asarray(table.indptr, dtype=np.int64),
        "threshold": np.array(light_static.threshold, dtype=np.float64),
        "samples_per_axis": np.array(light_static.samples_per_axis, dtype=np.int64),
        "postprocessed": np.array(light_static.postprocessed, dtype=bool),
    }

    tmp_name = None
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            dir=path.parent, prefix=path.stem, suffix=".tmp", delete=False
        ) as f:
            tmp_name = f.name
            np.savez(f, **save_dict)
        os.replace(tmp_name, path)
    except OSError as e:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.unlink(tmp_name)
        raise CacheWriteError(f"Failed to write bake file {path}: {e}") from e


def load_light_static(path: Path, scene_hash: int) -> LightStatic:
    """Load a LightStatic written by save_light_static.

    Args:
        path: Input file path (.npz)
        scene_hash: Expected geometry hash

    Returns:
        The stored LightStatic

    Raises:
        CacheReadError: If the file is unreadable, corrupt, of another
            format version, or was baked for a different scene
    """
    path = Path(path)
    try:
        with np.load(path, allow_pickle=False) as data:
            missing = [k for k in _REQUIRED_KEYS if k not in data.files]
            if missing:
                raise CacheReadError(f"Bake file {path} is missing {missing}")

            version = int(data["format_version"])
            if version != CACHE_FORMAT_VERSION:
                raise CacheReadError(
                    f"Bake file {path} has format version {version}, "
                    f"expected {CACHE_FORMAT_VERSION}"
                )

            stored_hash = int(data["scene_hash"])
            if stored_hash != scene_hash:
                raise CacheReadError(
                    f"Bake file {path} belongs to scene {stored_hash:016x}, "
                    f"expected {scene_hash:016x}"
                )

            shape = tuple(int(s) for s in data["shape"])
            table = sparse.csr_matrix(
                (data["data"], data["indices"], data["indptr"]),
                shape=shape,
            )
            table.check_format(full_check=True)

            return LightStatic(
                table,
                threshold=float(data["threshold"]),
                samples_per_axis=int(data["samples_per_axis"]),
                postprocessed=bool(data["postprocessed"]),
            )
    except CacheReadError:
        raise
    except (OSError, EOFError, ValueError, TypeError, AttributeError, IndexError,
            zipfile.BadZipFile) as e:
        raise CacheReadError(f"Corrupt bake file {path}: {e}") from e


class BakeCache:
    """Directory of baked form-factor tables keyed by geometry hash.

    A hit is trusted: the 64-bit hash identifies the level bytes and the
    pump factor. Read failures degrade to a miss, write failures are
    reported and leave the in-memory table usable.
    """

    def __init__(self, cache_dir: Path):
        """Initialize the cache.

        Args:
            cache_dir: Directory holding bake files (created on first store)
        """
        self.cache_dir = Path(cache_dir)

        self._hits = 0
        self._misses = 0
        self._read_errors = 0
        self._write_errors = 0

    def path_for(self, scene_hash: int) -> Path:
        """Get file path for a scene hash."""
        return self.cache_dir / hash_to_filename(scene_hash)

    def load(self, scene_hash: int) -> Optional[LightStatic]:
        """Load a baked table.

        Args:
            scene_hash: Geometry hash of the scene

        Returns:
            The cached LightStatic, or None on a miss (absent or unusable file)
        """
        path = self.path_for(scene_hash)
        if not path.exists():
            self._misses += 1
            return None

        try:
            light_static = load_light_static(path, scene_hash)
        except CacheReadError as e:
            self._read_errors += 1
            self._misses += 1
            warnings.warn(f"Bake cache read failed, recomputing: {e}", RuntimeWarning)
            return None

        self._hits += 1
        return light_static

    def store(self, scene_hash: int, light_static: LightStatic) -> bool:
        """Persist a baked table.

        Args:
            scene_hash: Geometry hash of the scene
            light_static: Table to store

        Returns:
            True if written, False if the write failed (reported as a warning)
        """
        try:
            save_light_static(self.path_for(scene_hash), light_static, scene_hash)
        except CacheWriteError as e:
            self._write_errors += 1
            warnings.warn(f"Bake cache write failed: {e}", RuntimeWarning)
            return False
        return True

    def list_hashes(self) -> List[int]:
        """Hashes of all bake files present in the cache directory."""
        if not self.cache_dir.is_dir():
            return []
        hashes = []
        for path in sorted(self.cache_dir.glob(f"{CACHE_PREFIX}*{CACHE_SUFFIX}")):
            digest = path.name[len(CACHE_PREFIX):-len(CACHE_SUFFIX)]
            if len(digest) != 16:
                continue
            try:
                hashes.append(int(digest, 16))
            except ValueError:
                continue
        return hashes

    def get_stats(self) -> Dict[str, int]:
        return {
            "hits": self._hits,
            "misses": self._misses,
            "read_errors": self._read_errors,
            "write_errors": self._write_errors,
        }


def load_or_compute_light_static(
    patches: List[Patch],
    solid: SolidGrid,
    scene_hash: int,
    cache: Optional[BakeCache] = None,
    samples_per_axis: int = 1,
    threshold: float = FORM_FACTOR_THRESHOLD,
    verbose: bool = False
) -> LightStatic:
    """Canonical bake flow: check cache, on miss compute and store, proceed.

    Args:
        patches: Patch sequence of the scene
        solid: Solid grid used for occlusion
        scene_hash: Geometry hash (cache key)
        cache: Bake cache, or None to always compute
        samples_per_axis: Visibility sampling density for a fresh bake
        threshold: Elision threshold for a fresh bake
        verbose: Print progress and cache status

    Returns:
        Postprocessed LightStatic covering len(patches) patches
    """
    light_static = None
    if cache is not None:
        light_static = cache.load(scene_hash)
        if light_static is not None and light_static.num_planes != len(patches):
            warnings.warn(
                f"Cached bake covers {light_static.num_planes} patches, scene has "
                f"{len(patches)}; recomputing",
                RuntimeWarning
            )
            light_static = None

    if light_static is not None:
        if verbose:
            print(f"Loaded baked form factors from {cache.path_for(scene_hash)}")
        if not light_static.postprocessed:
            light_static.do_postprocessing()
        return light_static

    solver = FormFactorSolver(
        samples_per_axis=samples_per_axis,
        threshold=threshold,
        verbose=verbose,
    )
    light_static = solver.compute(patches, solid)
    light_static.do_postprocessing()

    if cache is not None and cache.store(scene_hash, light_static) and verbose:
        print(f"Stored baked form factors in {cache.path_for(scene_hash)}")

    return light_static

"""Tests for the content-addressed bake cache."""

import numpy as np
import pytest

from crystal_radiosity import Scene
from crystal_radiosity.caching import (
    BakeCache,
    hash_to_filename,
    load_light_static,
    load_or_compute_light_static,
    save_light_static,
)
from crystal_radiosity.caching import bake_cache as bake_cache_module
from crystal_radiosity.errors import CacheReadError
from crystal_radiosity.light_transport import GatherRadCore, LightStatic
from crystal_radiosity.patches import build_patches
from crystal_radiosity.pipeline import make_test_level
from crystal_radiosity.utils.config import LightingConfig
from crystal_radiosity.voxelization import SolidGrid

SCENE_HASH = 0x0123456789ABCDEF


@pytest.fixture
def light_static():
    rng = np.random.default_rng(11)
    table = rng.random((6, 6)) * 0.3
    table[table < 0.12] = 0.0
    ls = LightStatic(table, threshold=1e-4, samples_per_axis=2)
    ls.do_postprocessing()
    return ls


@pytest.fixture
def room():
    solid = np.ones((4, 4, 4), dtype=bool)
    solid[1:3, 1:3, 1:3] = False
    grid = SolidGrid.from_occupancy(solid)
    return grid, build_patches(grid)


def test_hash_to_filename():
    """Test the bake file name format."""
    assert hash_to_filename(0x1234) == "baked0000000000001234.npz"
    assert hash_to_filename(2 ** 64 - 1) == "baked" + "f" * 16 + ".npz"


def test_hash_to_filename_range():
    """Test hashes outside 64 bits are rejected."""
    with pytest.raises(ValueError):
        hash_to_filename(-1)
    with pytest.raises(ValueError):
        hash_to_filename(2 ** 64)


def test_config_cache_path(tmp_path):
    """Test config and cache agree on the bake file path."""
    config = LightingConfig(cache_dir=tmp_path)
    cache = BakeCache(tmp_path)
    assert config.get_cache_path(SCENE_HASH) == cache.path_for(SCENE_HASH)


class TestSaveLoad:
    """Tests for the npz bake file."""

    def test_bit_exact(self, tmp_path, light_static):
        """Test a stored table loads back bit for bit."""
        path = tmp_path / "bake.npz"
        save_light_static(path, light_static, SCENE_HASH)
        loaded = load_light_static(path, SCENE_HASH)

        a = light_static.form_factors
        b = loaded.form_factors
        np.testing.assert_array_equal(a.indptr, b.indptr)
        np.testing.assert_array_equal(a.indices, b.indices)
        np.testing.assert_array_equal(a.data, b.data)

        assert loaded.postprocessed
        assert loaded.threshold == light_static.threshold
        assert loaded.samples_per_axis == 2

    def test_wrong_hash(self, tmp_path, light_static):
        """Test a bake file for another scene is rejected."""
        path = tmp_path / "bake.npz"
        save_light_static(path, light_static, SCENE_HASH)
        with pytest.raises(CacheReadError):
            load_light_static(path, SCENE_HASH + 1)

    def test_garbage_file(self, tmp_path):
        """Test a non-npz file raises CacheReadError."""
        path = tmp_path / "bake.npz"
        path.write_bytes(b"not a bake file")
        with pytest.raises(CacheReadError):
            load_light_static(path, SCENE_HASH)

    def test_missing_keys(self, tmp_path):
        """Test an npz without the bake keys raises CacheReadError."""
        path = tmp_path / "bake.npz"
        np.savez(path, data=np.zeros(3))
        with pytest.raises(CacheReadError):
            load_light_static(path, SCENE_HASH)


class TestBakeCache:
    """Tests for BakeCache hit, miss and failure handling."""

    def test_miss(self, tmp_path):
        """Test an absent bake file counts as a miss."""
        cache = BakeCache(tmp_path / "cache")
        assert cache.load(SCENE_HASH) is None
        assert cache.get_stats()['misses'] == 1

    def test_store_and_load(self, tmp_path, light_static):
        """Test a stored table is a hit and propagates identically."""
        cache = BakeCache(tmp_path)
        assert cache.store(SCENE_HASH, light_static)
        assert cache.path_for(SCENE_HASH).exists()
        assert cache.list_hashes() == [SCENE_HASH]

        loaded = cache.load(SCENE_HASH)
        assert loaded is not None
        assert cache.get_stats()['hits'] == 1

        emit = np.random.default_rng(2).random((6, 3))
        out_a = np.zeros((6, 3))
        out_b = np.zeros((6, 3))
        for ls, out in ((light_static, out_a), (loaded, out_b)):
            core = GatherRadCore(ls)
            core.set_emit(emit)
            core.copy(out)
        np.testing.assert_array_equal(out_a, out_b)

    def test_corrupt_file_is_a_miss(self, tmp_path):
        """Test a corrupt bake file warns and counts as a miss."""
        cache = BakeCache(tmp_path)
        cache.path_for(SCENE_HASH).write_bytes(b"\x00" * 64)

        with pytest.warns(RuntimeWarning):
            assert cache.load(SCENE_HASH) is None
        assert cache.get_stats()['read_errors'] == 1

    def test_foreign_file_is_a_miss(self, tmp_path, light_static):
        """Test a bake file under the wrong name warns and misses."""
        cache = BakeCache(tmp_path)
        cache.store(SCENE_HASH, light_static)
        other = SCENE_HASH ^ 0xFF
        cache.path_for(SCENE_HASH).rename(cache.path_for(other))

        with pytest.warns(RuntimeWarning):
            assert cache.load(other) is None

    def test_write_failure_is_reported(self, tmp_path, light_static):
        """Test a failed write warns and leaves no temp file."""
        cache = BakeCache(tmp_path)
        # A directory in place of the bake file makes the final rename fail
        cache.path_for(SCENE_HASH).mkdir()

        with pytest.warns(RuntimeWarning):
            assert not cache.store(SCENE_HASH, light_static)
        assert cache.get_stats()['write_errors'] == 1
        assert list(tmp_path.glob("*.tmp")) == []

    def test_directory_created_on_store(self, tmp_path, light_static):
        """Test the cache directory is only created when a bake is stored."""
        cache = BakeCache(tmp_path / "nested" / "cache")
        assert not cache.cache_dir.exists()
        assert cache.list_hashes() == []

        assert cache.store(SCENE_HASH, light_static)
        assert cache.list_hashes() == [SCENE_HASH]

    def test_unusable_directory(self, tmp_path, light_static):
        """Test a cache directory below a regular file degrades to misses."""
        blocker = tmp_path / "blocker"
        blocker.write_bytes(b"")
        cache = BakeCache(blocker / "cache")

        assert cache.load(SCENE_HASH) is None
        assert cache.list_hashes() == []
        with pytest.warns(RuntimeWarning):
            assert not cache.store(SCENE_HASH, light_static)
        assert cache.get_stats()['write_errors'] == 1


class TestLoadOrCompute:
    """Tests for the canonical bake flow."""

    def test_compute_then_hit(self, tmp_path, room, monkeypatch):
        """Test the second load is served from the cache."""
        grid, patches = room
        cache = BakeCache(tmp_path)

        first = load_or_compute_light_static(patches, grid, SCENE_HASH, cache)
        assert first.postprocessed
        assert cache.path_for(SCENE_HASH).exists()

        def fail(*args, **kwargs):
            raise AssertionError("form factors recomputed on a cache hit")

        monkeypatch.setattr(bake_cache_module.FormFactorSolver, "compute", fail)
        second = load_or_compute_light_static(patches, grid, SCENE_HASH, cache)

        np.testing.assert_array_equal(first.form_factors.data, second.form_factors.data)
        np.testing.assert_array_equal(first.form_factors.indices, second.form_factors.indices)
        assert cache.get_stats()['hits'] == 1

    def test_no_cache(self, room):
        """Test baking without a cache."""
        grid, patches = room
        ls = load_or_compute_light_static(patches, grid, SCENE_HASH, None)
        assert ls.postprocessed
        assert ls.num_planes == len(patches)

    def test_unprocessed_bake_is_postprocessed(self, tmp_path, room):
        """Test a raw cached table is postprocessed on load."""
        grid, patches = room
        n = len(patches)
        raw = LightStatic(np.full((n, n), 0.5))
        cache = BakeCache(tmp_path)
        cache.store(SCENE_HASH, raw)

        ls = load_or_compute_light_static(patches, grid, SCENE_HASH, cache)
        assert ls.postprocessed
        assert np.all(ls.row_sums() <= 1.0 + 1e-6)

    def test_patch_count_mismatch_recomputes(self, tmp_path, room, light_static):
        """Test a cached table of the wrong size is recomputed."""
        grid, patches = room
        cache = BakeCache(tmp_path)
        cache.store(SCENE_HASH, light_static)

        with pytest.warns(RuntimeWarning):
            ls = load_or_compute_light_static(patches, grid, SCENE_HASH, cache)
        assert ls.num_planes == len(patches)

    def test_scene_loads_with_unusable_cache_dir(self, tmp_path):
        """Test a scene still loads when its cache directory cannot exist."""
        blocker = tmp_path / "blocker"
        blocker.write_bytes(b"")
        config = LightingConfig(pump_factor=1, cache_dir=blocker / "cache")

        with pytest.warns(RuntimeWarning):
            scene = Scene.from_crystal(make_test_level(4), config)
        assert scene.light_static.postprocessed
        assert scene.light_static.num_planes == scene.num_patches

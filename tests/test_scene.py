"""End-to-end tests: level bytes to per-vertex colors."""

import tempfile
from pathlib import Path

import numpy as np
import pytest

from crystal_radiosity import (
    LightDynamic,
    LightingConfig,
    RenderUnit,
    Scene,
    SceneLoadError,
)
from crystal_radiosity.pipeline import (
    DEMO_LIGHT_COLOR,
    DEMO_LIGHT_RANGE,
    bake_level,
    demo_light_positions,
    main,
    make_test_level,
    simulate_level,
)
from crystal_radiosity.voxelization import decode_crystal, encode_crystal

LIGHT = ((4.5, 5.0, 2.5), (1.0, 0.8, 0.6))


@pytest.fixture(scope="module")
def level():
    return make_test_level(8)


@pytest.fixture(scope="module")
def scene(level):
    return Scene.from_crystal(level, LightingConfig(pump_factor=1))


class TestLightingConfig:
    """Tests for configuration validation."""

    def test_defaults(self):
        """Test default configuration values."""
        config = LightingConfig()
        assert config.pump_factor == 4
        assert config.core == "gather"
        assert not config.caching_enabled

    @pytest.mark.parametrize("kwargs", [
        {"pump_factor": 0},
        {"samples_per_axis": 0},
        {"form_factor_threshold": -1.0},
        {"reflectance": 1.0},
        {"reflectance": -0.1},
        {"core": "photon"},
        {"max_iterations": 0},
        {"tolerance": 0.0},
    ])
    def test_validation(self, kwargs):
        """Test out-of-range settings are rejected."""
        with pytest.raises(ValueError):
            LightingConfig(**kwargs)

    def test_cache_path_requires_cache_dir(self):
        """Test the bake path needs a cache directory."""
        with pytest.raises(ValueError):
            LightingConfig().get_cache_path(1)


class TestScene:
    """Tests for scene loading."""

    def test_components_agree(self, scene):
        """Test patches, form factors and strip describe the same scene."""
        n = scene.num_patches
        assert n > 0
        assert scene.light_static.num_planes == n
        assert scene.light_static.postprocessed
        assert scene.patch_arrays['centers'].shape == (n, 3)
        assert scene.strip.num_vertices == 6 * n - 2
        assert 0 <= scene.geometry_hash < 2 ** 64

    def test_malformed_level(self):
        """Test a malformed header raises SceneLoadError."""
        with pytest.raises(SceneLoadError):
            Scene.from_crystal(b"CRYS\x01\x02\x00", LightingConfig(pump_factor=1))

    def test_truncated_level(self, level):
        """Test a truncated level raises SceneLoadError."""
        with pytest.raises(SceneLoadError):
            Scene.from_crystal(level[:-1], LightingConfig(pump_factor=1))

    def test_missing_file(self, tmp_path):
        """Test a missing level file raises SceneLoadError."""
        with pytest.raises(SceneLoadError):
            Scene.from_path(tmp_path / "missing.crystal", LightingConfig(pump_factor=1))

    def test_mismatched_light_static(self, scene):
        """Test a form-factor table of the wrong size is rejected."""
        from crystal_radiosity.light_transport import LightStatic
        with pytest.raises(ValueError):
            Scene(scene.solid, scene.patches, scene.geometry_hash,
                  LightStatic(np.zeros((1, 1))))

    def test_deterministic(self, level, scene):
        """Test loading the same level twice gives identical scenes."""
        again = Scene.from_crystal(level, LightingConfig(pump_factor=1))

        assert again.geometry_hash == scene.geometry_hash
        np.testing.assert_array_equal(again.patch_arrays['centers'],
                                      scene.patch_arrays['centers'])
        np.testing.assert_array_equal(again.light_static.form_factors.data,
                                      scene.light_static.form_factors.data)

    def test_cached_scene_matches(self, level, tmp_path):
        """Test a cached bake lights the scene like a fresh one."""
        config = LightingConfig(pump_factor=1, cache_dir=tmp_path)
        baked = Scene.from_crystal(level, config)
        assert config.get_cache_path(baked.geometry_hash).exists()

        cached = Scene.from_crystal(level, config)

        unit_a = RenderUnit(baked, config)
        unit_b = RenderUnit(cached, config)
        rad_a = unit_a.render_frame([LIGHT]).copy()
        rad_b = unit_b.render_frame([LIGHT]).copy()
        np.testing.assert_array_equal(rad_a, rad_b)


class TestRenderUnit:
    """Tests for the per-frame loop."""

    def test_light_dynamic(self):
        """Test per-frame buffer shapes and clearing."""
        dynamic = LightDynamic(4)
        assert dynamic.emit.shape == (4, 3)
        assert dynamic.rad.dtype == np.float32
        dynamic.emit[:] = 1.0
        dynamic.clear_emit()
        assert not dynamic.emit.any()

    def test_null_core_passthrough(self, scene):
        """Test the null core returns emission unchanged."""
        unit = RenderUnit(scene, LightingConfig(pump_factor=1, core="null"))
        rad = unit.render_frame([LIGHT])

        assert unit.emit.any()
        np.testing.assert_array_equal(rad, unit.emit)

    def test_gather_adds_indirect_light(self, scene):
        """Test the gather core adds one bounce."""
        unit = RenderUnit(scene, LightingConfig(pump_factor=1, core="gather"))
        rad = unit.render_frame([LIGHT])

        assert np.all(rad >= unit.emit - 1e-6)
        assert rad.sum() > unit.emit.sum()

    def test_jacobi_at_least_one_bounce(self, scene):
        """Test the Jacobi core is at least as bright as gather."""
        gather = RenderUnit(scene, LightingConfig(pump_factor=1, core="gather"))
        jacobi = RenderUnit(scene, LightingConfig(pump_factor=1, core="jacobi"))

        rad_g = gather.render_frame([LIGHT]).copy()
        rad_j = jacobi.render_frame([LIGHT]).copy()
        assert np.all(rad_j >= rad_g - 1e-5)

    def test_clear_emit_between_frames(self, scene):
        """Test emission does not accumulate across frames."""
        unit = RenderUnit(scene, LightingConfig(pump_factor=1, core="null"))
        first = unit.render_frame([LIGHT]).copy()
        second = unit.render_frame([LIGHT]).copy()

        np.testing.assert_array_equal(first, second)
        assert unit.frame_count == 2

    def test_dark_frame(self, scene):
        """Test a frame without lights is black."""
        unit = RenderUnit(scene, LightingConfig(pump_factor=1))
        unit.render_frame([LIGHT])
        rad = unit.render_frame([])
        assert not rad.any()

    def test_vertex_colors(self, scene):
        """Test vertex colors follow the strip patch ids."""
        unit = RenderUnit(scene, LightingConfig(pump_factor=1))
        unit.render_frame([LIGHT])
        colors = unit.vertex_colors()

        assert colors.shape == (unit.strip.num_vertices, 3)
        np.testing.assert_array_equal(colors, unit.rad[unit.strip.vertex_patch_ids])

    def test_step_by_step_matches_render_frame(self, scene):
        """Test the explicit frame steps match render_frame."""
        config = LightingConfig(pump_factor=1)
        a = RenderUnit(scene, config)
        b = RenderUnit(scene, config)

        a.clear_emit()
        a.render_light(*LIGHT)
        a.update()
        b.render_frame([LIGHT])
        np.testing.assert_array_equal(a.rad, b.rad)

    @pytest.mark.parametrize("core", ["gather", "jacobi"])
    def test_single_voxel_falloff(self, core):
        """Test a nearer light brightens the top of a single voxel more."""
        config = LightingConfig(pump_factor=1, core=core)
        scene = Scene.from_crystal(encode_crystal(np.ones((1, 1, 1), dtype=bool)), config)
        assert scene.num_patches == 6

        top = [p.direction for p in scene.patches].index(2)
        unit = RenderUnit(scene, config)
        near = unit.render_frame([((0.5, 3.0, 0.5), (1.0, 1.0, 1.0))]).copy()
        far = unit.render_frame([((0.5, 30.0, 0.5), (1.0, 1.0, 1.0))]).copy()

        assert near[top, 0] > far[top, 0] > 0.0


class TestPipeline:
    """Tests for the command line pipeline."""

    def test_make_test_level(self):
        """Test the sample level layout."""
        solid = decode_crystal(make_test_level(8))
        assert solid.shape == (8, 8, 8)
        assert solid[:, 0, :].all()
        assert solid[4, 3, 0]
        assert solid[2, 6, 2]

    def test_make_test_level_size(self):
        """Test the sample level size limit."""
        with pytest.raises(ValueError):
            make_test_level(2)

    def test_demo_light_wraps(self, scene):
        """Test the demo light sweep and wrap."""
        positions = demo_light_positions(scene, 42)
        center = (scene.solid.grid_min + scene.solid.grid_max) / 2.0

        assert positions[0][0] - center[0] == pytest.approx(0.5)
        assert positions[39][0] - center[0] == pytest.approx(DEMO_LIGHT_RANGE)
        assert positions[40][0] - center[0] == pytest.approx(-DEMO_LIGHT_RANGE)
        assert positions[41][1] == center[1]

    def test_demo_color(self):
        """Test the demo light color."""
        assert DEMO_LIGHT_COLOR == (1.0, 0.8, 0.6)

    def test_bake_and_simulate(self):
        """Test baking then simulating a level file."""
        with tempfile.TemporaryDirectory() as tmpdir:
            tmpdir = Path(tmpdir)
            level_path = tmpdir / "test.crystal"
            main(["make-test-level", str(level_path), "--size", "6"])
            assert level_path.exists()

            config = LightingConfig(pump_factor=1, cache_dir=tmpdir / "cache")
            stats = bake_level(level_path, config)
            assert stats['num_patches'] > 0
            assert stats['row_sum_max'] <= 1.0 + 1e-6
            assert len(list((tmpdir / "cache").glob("baked*.npz"))) == 1

            frames = simulate_level(level_path, config, num_frames=3)
            assert [f['frame'] for f in frames] == [0, 1, 2]
            assert all(f['rad_total'] >= f['emit_total'] for f in frames)

    def test_cli_bake(self, tmp_path, capsys):
        """Test the bake command prints a summary."""
        level_path = tmp_path / "test.crystal"
        level_path.write_bytes(make_test_level(4))

        main(["bake", str(level_path), "--pump", "1", "--cache-dir", str(tmp_path / "cache")])
        out = capsys.readouterr().out
        assert "Bake Summary" in out

    def test_cli_simulate(self, tmp_path, capsys):
        """Test the simulate command prints frame lines."""
        level_path = tmp_path / "test.crystal"
        level_path.write_bytes(make_test_level(4))

        main(["simulate", str(level_path), "--pump", "1", "--frames", "2", "--core", "jacobi"])
        out = capsys.readouterr().out
        assert "frame    1" in out
        assert "iters=" in out

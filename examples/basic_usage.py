"""Basic usage example for the crystal radiosity engine."""

from pathlib import Path

from crystal_radiosity import LightingConfig, RenderUnit, Scene
from crystal_radiosity.pipeline import make_test_level


def main():
    config = LightingConfig(
        pump_factor=2,
        core="jacobi",
        cache_dir=Path("bake_cache"),
        verbose=True,
    )

    # Baked form factors are reused on the second run
    scene = Scene.from_crystal(make_test_level(12), config)
    unit = RenderUnit(scene, config)

    center = (scene.solid.grid_min + scene.solid.grid_max) / 2.0
    for step in range(5):
        unit.clear_emit()
        unit.render_light(center + [2.0 * step - 4.0, 4.0, 0.0], (1.0, 0.8, 0.6))
        rad = unit.update()
        print(f"step {step}: total radiance {rad.sum():.4f}, "
              f"{unit.core.last_iterations} iterations")

    colors = unit.vertex_colors()
    print(f"{colors.shape[0]} strip vertices ready for upload")


if __name__ == "__main__":
    main()

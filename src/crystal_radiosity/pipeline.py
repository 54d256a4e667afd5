"""Command line pipeline: bake form factors, replay the lighting demo."""

import time
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np

from .light_transport.light_static import analyze_light_static
from .scene import RenderUnit, Scene
from .utils.config import RAD_CORE_KINDS, LightingConfig
from .voxelization.crystal import heightfield_to_crystal

# Demo light: sweeps along x in steps of 0.5 and wraps from +20 back to -20
DEMO_LIGHT_STEP = 0.5
DEMO_LIGHT_RANGE = 20.0
DEMO_LIGHT_COLOR = (1.0, 0.8, 0.6)


def make_test_level(size: int = 16) -> bytes:
    """Build a small crystal level with a floor, a wall and a pillar.

    Args:
        size: Width and depth of the level in crystal cells (>= 4)

    Returns:
        Crystal bytes
    """
    if size < 4:
        raise ValueError(f"size must be >= 4, got {size}")

    heights = np.ones((size, size), dtype=np.int64)

    # Wall across z at the middle of x, leaving a gap at the far end
    heights[size // 2, : (3 * size) // 4] = size // 2

    # Pillar in the first quadrant
    heights[size // 4, size // 4] = size - 1

    return heightfield_to_crystal(heights, height=size)


def bake_level(level_path: Path, config: LightingConfig) -> Dict:
    """Load a level, bake (or load) its form factors and report statistics.

    Args:
        level_path: Crystal file
        config: Lighting configuration

    Returns:
        Statistics from analyze_light_static plus the scene hash
    """
    start_time = time.time()
    scene = Scene.from_path(level_path, config)
    elapsed = time.time() - start_time

    stats = analyze_light_static(scene.light_static)
    stats.update(scene.light_static.get_metadata())
    stats['geometry_hash'] = f"{scene.geometry_hash:016x}"
    stats['num_patches'] = scene.num_patches
    stats['strip_vertices'] = scene.strip.num_vertices

    if config.verbose:
        print(f"\n{'='*60}")
        print("Bake Summary")
        print(f"{'='*60}")
        print(f"Level: {level_path}")
        print(f"Scene hash: {stats['geometry_hash']}")
        if config.caching_enabled:
            print(f"Bake file: {config.get_cache_path(scene.geometry_hash)}")
        for key, value in stats.items():
            if key == 'geometry_hash':
                continue
            if isinstance(value, float):
                print(f"  {key}: {value:.6g}")
            else:
                print(f"  {key}: {value}")
        print(f"Time: {elapsed:.1f}s")
        print(f"{'='*60}\n")

    return stats


def demo_light_positions(scene: Scene, num_frames: int) -> List[np.ndarray]:
    """World-space positions of the sweeping demo light for each frame.

    The light starts at the level center and moves along x; y and z stay
    at the center of the grid.
    """
    center = (scene.solid.grid_min + scene.solid.grid_max) / 2.0

    positions = []
    offset = 0.0
    for _ in range(num_frames):
        offset += DEMO_LIGHT_STEP
        if offset > DEMO_LIGHT_RANGE:
            offset = -DEMO_LIGHT_RANGE
        positions.append(center + np.array([offset, 0.0, 0.0]))
    return positions


def simulate_level(
    level_path: Path,
    config: LightingConfig,
    num_frames: int = 80
) -> List[Dict]:
    """Replay the moving-light demo and report per-frame radiance.

    Args:
        level_path: Crystal file
        config: Lighting configuration (core selects the propagation)
        num_frames: Number of frames to run

    Returns:
        Per-frame statistics
    """
    scene = Scene.from_path(level_path, config)
    unit = RenderUnit(scene, config)

    frames = []
    for frame, position in enumerate(demo_light_positions(scene, num_frames)):
        rad = unit.render_frame([(position, DEMO_LIGHT_COLOR)])

        info = {
            'frame': frame,
            'light_x': float(position[0]),
            'emit_total': float(unit.emit.sum()),
            'rad_total': float(rad.sum()),
            'rad_max': float(rad.max()) if rad.size else 0.0,
            'lit_patches': int(np.count_nonzero(rad.any(axis=1))),
        }
        if hasattr(unit.core, 'last_iterations'):
            info['iterations'] = unit.core.last_iterations
        frames.append(info)

        if config.verbose:
            line = (f"frame {frame:4d}  light x={info['light_x']:7.2f}  "
                    f"emit={info['emit_total']:10.4f}  rad={info['rad_total']:10.4f}  "
                    f"lit={info['lit_patches']}")
            if 'iterations' in info:
                line += f"  iters={info['iterations']}"
            print(line)

    return frames


def main(argv: Optional[List[str]] = None):
    """Entry point for the crystal bake command line."""
    import argparse

    parser = argparse.ArgumentParser(
        description="Radiosity lighting for crystal voxel levels"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    def add_lighting_args(sub):
        sub.add_argument(
            "level",
            type=Path,
            help="Crystal level file"
        )
        sub.add_argument(
            "--pump",
            type=int,
            default=4,
            help="Volumetric refinement factor"
        )
        sub.add_argument(
            "--samples",
            type=int,
            default=1,
            help="Visibility samples per patch axis (rays per pair = samples^4)"
        )
        sub.add_argument(
            "--cache-dir",
            type=Path,
            default=None,
            help="Directory for baked form factors (default: no caching)"
        )
        sub.add_argument(
            "--quiet",
            action="store_true",
            help="Suppress progress and summaries"
        )

    bake_parser = subparsers.add_parser("bake", help="Bake form factors for a level")
    add_lighting_args(bake_parser)

    sim_parser = subparsers.add_parser("simulate", help="Replay the moving-light demo")
    add_lighting_args(sim_parser)
    sim_parser.add_argument(
        "--frames",
        type=int,
        default=80,
        help="Number of frames to simulate"
    )
    sim_parser.add_argument(
        "--core",
        choices=RAD_CORE_KINDS,
        default="gather",
        help="Radiosity core variant"
    )
    sim_parser.add_argument(
        "--reflectance",
        type=float,
        default=0.6,
        help="Surface reflectance in [0, 1)"
    )

    level_parser = subparsers.add_parser("make-test-level", help="Write a sample crystal level")
    level_parser.add_argument(
        "output",
        type=Path,
        help="Output crystal file"
    )
    level_parser.add_argument(
        "--size",
        type=int,
        default=16,
        help="Width and depth in crystal cells"
    )

    args = parser.parse_args(argv)

    if args.command == "make-test-level":
        data = make_test_level(args.size)
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_bytes(data)
        print(f"Wrote {len(data)} bytes to {args.output}")
        return

    config_kwargs = dict(
        pump_factor=args.pump,
        samples_per_axis=args.samples,
        cache_dir=args.cache_dir,
        verbose=not args.quiet,
    )
    if args.command == "simulate":
        config_kwargs.update(core=args.core, reflectance=args.reflectance)
    config = LightingConfig(**config_kwargs)

    if args.command == "bake":
        bake_level(args.level, config)
    else:
        simulate_level(args.level, config, num_frames=args.frames)


if __name__ == "__main__":
    main()

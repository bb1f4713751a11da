#!/usr/bin/env python3
"""
Mountain terrain analysis example.

Loads a mountain (or a procedural placeholder when its data is missing),
runs the full analysis pipeline and reports zone, surface and hazard
statistics, optionally re-running surface classification for a second
weather snapshot and predicting a slide from a start point.

Usage:
    # Analyze a mountain from the data directory
    python examples/analyze_mountain.py --mountain everest_south

    # Use a custom data root and show progress bars
    python examples/analyze_mountain.py --mountain k2 --data-root ./data/mountains --progress

    # Procedural terrain only
    python examples/analyze_mountain.py --procedural --seed 7

    # Warm afternoon after rain, then predict a slide
    python examples/analyze_mountain.py --procedural --temperature 4 --rain --slide 40 40
"""

import sys
import argparse
from collections import Counter
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from ridgeline.snow import Environment, PrecipitationType, SurfaceType
from ridgeline.terrain import (
    TerrainQuery,
    TerrainZone,
    build_procedural_world,
    load_or_generate_world,
)
from ridgeline.terrain.pipeline import explain
from ridgeline.utils import setup_logging

logger = setup_logging("analyze_mountain")

DEFAULT_SEED = 42


def summarize(world):
    """Log per-zone and per-surface cell counts for an analyzed world."""
    zones = Counter()
    surfaces = Counter()
    exits = cliffs = 0
    for chunk in world:
        zones.update(TerrainZone(int(z)).name for z in chunk.zones.zones)
        surfaces.update(SurfaceType(int(s)).name for s in chunk.material.surface_type)
        exits += len(chunk.exit_zone_cells)
        cliffs += len(chunk.cliff_cells)

    total = sum(zones.values())
    logger.info(f"Cells: {total} in {len(world)} chunks")
    for name, count in sorted(zones.items()):
        logger.info(f"  zone {name:<16} {count:6d} ({100.0 * count / total:5.1f}%)")
    for name, count in sorted(surfaces.items()):
        logger.info(f"  surface {name:<13} {count:6d} ({100.0 * count / total:5.1f}%)")
    logger.info(f"Cliff cells: {cliffs}, exit-zone cells: {exits}")


def build_parser():
    """Command-line options for the example."""
    parser = argparse.ArgumentParser(
        description="Mountain terrain analysis",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--mountain", help="Mountain id under the data root")
    parser.add_argument("--data-root", type=Path, help="Directory holding mountain folders")
    parser.add_argument("--procedural", action="store_true", help="Skip loading and generate terrain")
    parser.add_argument(
        "--seed",
        type=int,
        help=f"Seed for procedural terrain (default: {DEFAULT_SEED} with --procedural, else derived from --mountain)",
    )
    parser.add_argument(
        "--temperature",
        type=float,
        help="Base temperature in °C for a second classification pass",
    )
    parser.add_argument("--rain", action="store_true", help="Mark the last precipitation as rain")
    parser.add_argument(
        "--slide",
        type=float,
        nargs=2,
        metavar=("X", "Z"),
        help="Predict a slide from this world position",
    )
    parser.add_argument("--progress", action="store_true", help="Show progress bars")
    parser.add_argument("--log-file", type=Path, help="Also write DEBUG logs to this file")
    return parser


def load_world(args):
    """Generate or load the world selected on the command line."""
    if args.procedural:
        seed = DEFAULT_SEED if args.seed is None else args.seed
        return build_procedural_world(seed=seed, progress=args.progress)
    return load_or_generate_world(args.mountain, args.data_root, seed=args.seed, progress=args.progress)


def main(argv=None):
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.mountain and not args.procedural:
        parser.error("Must specify either --mountain or --procedural")

    if args.log_file:
        setup_logging("ridgeline", log_file=args.log_file)

    for line in explain():
        logger.info(line)

    world = load_world(args)

    logger.info(f"Loaded {world}")
    summarize(world)

    if args.temperature is not None or args.rain:
        environment = Environment(
            base_temperature=args.temperature if args.temperature is not None else -5.0,
            last_precipitation=PrecipitationType.RAIN if args.rain else PrecipitationType.NONE,
            hours_since_precipitation=2.0 if args.rain else 72.0,
        )
        world.update_environment(environment, progress=args.progress)
        summarize(world)

    if args.slide:
        query = TerrainQuery(world)
        x, z = args.slide
        path = query.predict_slide(x, z)
        logger.info(
            f"Slide from ({x:.1f}, {z:.1f}): {path.outcome.value}, "
            f"{len(path)} points, {path.length:.1f} units travelled"
        )

    return 0


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        sys.exit(1)

"""
Procedural placeholder terrain.

When a mountain's real data fails to load, the caller substitutes a
procedurally generated world wholesale (no per-chunk repair). The same
generators provide the synthetic heightmaps used throughout the tests.

All generators return flat float64 arrays of length resolution**2 in
row-major [z, x] order, ready for TerrainChunk.load_heightmap.
"""

import logging
import math
import zlib
from pathlib import Path
from typing import Optional

import numpy as np

from ridgeline import config as project_config
from ridgeline.snow.surfaces import Environment
from ridgeline.terrain.errors import TerrainLoadError
from ridgeline.terrain.pipeline import AnalysisConfig
from ridgeline.terrain.world import TerrainWorld, load_terrain_world

logger = logging.getLogger(__name__)


def generate_flat_heightmap(resolution: int, base_height: float = 3000.0) -> np.ndarray:
    return np.full(resolution * resolution, float(base_height))


def generate_slope_heightmap(
    resolution: int,
    base_height: float = 3000.0,
    slope_degrees: float = 30.0,
    chunk_size: float = project_config.DEFAULT_CHUNK_SIZE,
) -> np.ndarray:
    """Uniform slope descending towards +z at the given angle."""
    drop_per_cell = math.tan(math.radians(slope_degrees)) * (chunk_size / resolution)
    z = np.arange(resolution, dtype=np.float64)
    grid = np.repeat((base_height - z * drop_per_cell)[:, None], resolution, axis=1)
    return grid.ravel()


def generate_cliff_heightmap(
    resolution: int,
    base_height: float = 3000.0,
    cliff_position: float = 0.5,
    cliff_height: float = 200.0,
) -> np.ndarray:
    """Flat upper and lower benches separated by a one-row cliff face across x."""
    cliff_z = int(resolution * cliff_position)
    z = np.arange(resolution)[:, None]
    x = np.arange(resolution)[None, :]
    grid = np.where(
        z < cliff_z,
        base_height,
        np.where(z == cliff_z, base_height - cliff_height * 0.5, base_height - cliff_height),
    )
    grid = grid + np.sin(x * 0.3) * 5.0
    return grid.astype(np.float64).ravel()


def generate_mountain_heightmap(
    resolution: int,
    base_height: float = 2500.0,
    seed: int = 42,
    chunk_size: float = project_config.DEFAULT_CHUNK_SIZE,
    target_slope: float = 0.6,
) -> np.ndarray:
    """
    Central peak with ridges and noise, tuned for a mix of terrain zones.

    Args:
        resolution: Samples per side
        base_height: Elevation at the foot of the mountain
        seed: Seed for the numpy random generator
        chunk_size: World extent covered by the grid (sets steepness)
        target_slope: Approximate average rise over run (0.6 is about 30 degrees)
    """
    rng = np.random.default_rng(seed)
    center = resolution // 2
    cell_size = chunk_size / resolution
    max_dist_cells = math.hypot(center, center) or 1.0
    max_height_diff = target_slope * max_dist_cells * cell_size

    z, x = np.mgrid[0:resolution, 0:resolution].astype(np.float64)
    dist = np.hypot(x - center, z - center) / max_dist_cells
    angle = np.arctan2(z - center, x - center)

    ridge = 0.3 * np.sin(angle * 3 + seed * 0.1)
    variation = np.sin(x * 0.3 + seed) * np.cos(z * 0.25) * 0.2
    falloff = np.maximum(0.0, 1.0 - dist + variation + ridge * (1.0 - dist))
    noise = rng.uniform(-0.08, 0.08, size=falloff.shape)

    grid = base_height + max_height_diff * np.maximum(0.0, falloff + noise)
    grid[center, center] = base_height + max_height_diff
    return grid.ravel()


def build_procedural_world(
    seed: int = 42,
    count_x: int = 2,
    count_z: int = 2,
    chunk_size: float = project_config.DEFAULT_CHUNK_SIZE,
    resolution: int = project_config.DEFAULT_CHUNK_RESOLUTION,
    base_height: float = 2500.0,
    environment: Optional[Environment] = None,
    config: Optional[AnalysisConfig] = None,
    progress: bool = False,
) -> TerrainWorld:
    """
    Generate and analyze a continuous procedural mountain spanning count_x by count_z chunks.

    Returns:
        Fully analyzed TerrainWorld with its origin at zero and no manifest
    """
    world = TerrainWorld(
        chunk_size=chunk_size,
        resolution=resolution,
        environment=environment,
        config=config,
    )

    side = max(count_x, count_z) * resolution
    grid = generate_mountain_heightmap(
        side, base_height=base_height, seed=seed, chunk_size=max(count_x, count_z) * chunk_size
    ).reshape(side, side)

    for cz in range(count_z):
        for cx in range(count_x):
            block = grid[cz * resolution:(cz + 1) * resolution, cx * resolution:(cx + 1) * resolution]
            world.new_chunk((cx, cz)).load_heightmap(block.ravel(), resolution)

    world.analyze(progress=progress)
    low, high = world.elevation_range()
    logger.info(
        f"Generated procedural terrain (seed {seed}): {len(world)} chunks, "
        f"elevation {low:.1f} to {high:.1f}"
    )
    return world


def load_or_generate_world(
    mountain_id: str,
    data_root: Optional[Path] = None,
    environment: Optional[Environment] = None,
    config: Optional[AnalysisConfig] = None,
    seed: Optional[int] = None,
    progress: bool = False,
) -> TerrainWorld:
    """
    Load a mountain, substituting procedural terrain if its data cannot be loaded.

    Args:
        mountain_id: Mountain directory name
        data_root: Directory holding mountain folders
        environment: Initial weather snapshot
        config: Analysis tunables
        seed: Seed for the placeholder (default: derived from mountain_id)
        progress: Show progress bars

    Returns:
        TerrainWorld (real or procedural)
    """
    try:
        return load_terrain_world(mountain_id, data_root, environment=environment, config=config, progress=progress)
    except TerrainLoadError as e:
        logger.warning(f"Terrain for '{mountain_id}' failed to load ({e}); using procedural terrain")

    if seed is None:
        seed = zlib.crc32(mountain_id.encode("utf-8")) & 0xFFFF
    return build_procedural_world(seed=seed, environment=environment, config=config, progress=progress)

"""Pytest configuration and fixtures for ridgeline tests."""
import json
import math
import sys
from pathlib import Path

# Add project root to Python path for imports
project_root = Path(__file__).parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import pytest
import numpy as np

from ridgeline.terrain.chunks import TerrainChunk
from ridgeline.terrain.pipeline import analyze_chunk
from ridgeline.terrain.world import TerrainWorld

RESOLUTION = 32
CHUNK_SIZE = 64.0
CELL_SIZE = CHUNK_SIZE / RESOLUTION


def grid_heights(func, resolution=RESOLUTION):
    """Flat height array from func(x, z) evaluated on grid indices."""
    z, x = np.mgrid[0:resolution, 0:resolution].astype(np.float64)
    return np.broadcast_to(func(x, z), (resolution, resolution)).astype(np.float64).ravel()


def make_chunk(heights, resolution=RESOLUTION, chunk_size=CHUNK_SIZE, coords=(0, 0), environment=None):
    """Analyzed chunk built from a flat height array."""
    chunk = TerrainChunk(coords, chunk_size=chunk_size, resolution=resolution)
    chunk.load_heightmap(heights, resolution)
    return analyze_chunk(chunk, environment)


def make_world(*chunks):
    """World holding already analyzed chunks (origin at zero)."""
    world = TerrainWorld(chunk_size=chunks[0].chunk_size, resolution=chunks[0].resolution)
    for chunk in chunks:
        world.add_chunk(chunk)
    return world


@pytest.fixture
def flat_heights():
    """Uniform elevation above the snow line."""
    return grid_heights(lambda x, z: np.full_like(x, 3000.0))


@pytest.fixture
def slope_heights():
    """30 degree slope descending towards +z (south)."""
    drop = math.tan(math.radians(30.0)) * CELL_SIZE
    return grid_heights(lambda x, z: 3000.0 - z * drop)


@pytest.fixture
def step_heights():
    """Single-row 500 unit elevation step between rows 15 and 16."""
    return grid_heights(lambda x, z: np.where(z < 16, 3500.0, 3000.0))


@pytest.fixture
def slope_to_cliff_heights():
    """30 degree slope (rows 0-19) ending in a 500 unit drop."""
    drop = math.tan(math.radians(30.0)) * CELL_SIZE
    return grid_heights(lambda x, z: np.where(z < 20, 3000.0 - z * drop, 2500.0 - z * drop))


@pytest.fixture
def flat_chunk(flat_heights):
    return make_chunk(flat_heights)


@pytest.fixture
def slope_chunk(slope_heights):
    return make_chunk(slope_heights)


@pytest.fixture
def step_chunk(step_heights):
    return make_chunk(step_heights)


@pytest.fixture
def write_mountain(tmp_path):
    """Factory writing a manifest (and any extra files) under tmp_path/<mountain_id>/."""

    def _write(mountain_id, manifest, files=None):
        root = tmp_path / mountain_id
        root.mkdir(parents=True, exist_ok=True)
        (root / "manifest.json").write_text(json.dumps(manifest))
        for name, content in (files or {}).items():
            path = root / name
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        return root

    return _write


@pytest.fixture
def data_root(tmp_path):
    """Data root directory holding mountain folders."""
    return tmp_path


@pytest.fixture
def project_root():
    """Get the project root directory."""
    return Path(__file__).parent.parent

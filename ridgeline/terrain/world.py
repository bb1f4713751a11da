"""
Terrain world: the explicitly owned registry of analyzed chunks.

A TerrainWorld is created by load_terrain_world (from a manifest on disk),
build_world (from an already loaded manifest) or the procedural generators,
and is passed explicitly to every consumer (contour tracer, slide simulator,
query facade). It maps world (x, z) positions to chunks and cells and owns
the current environment; update_environment reclassifies surface material
across all chunks and bumps ``revision`` so caches can invalidate.
"""

import logging
import math
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np
from scipy.ndimage import map_coordinates
from tqdm import tqdm

from ridgeline import config as project_config
from ridgeline.snow.surfaces import Environment, SurfaceOverlay
from ridgeline.terrain.chunks import TerrainCell, TerrainChunk
from ridgeline.terrain.data_loading import Heightmap, load_heightmap, read_overlay_raster
from ridgeline.terrain.manifest import MountainManifest, load_manifest
from ridgeline.terrain.pipeline import AnalysisConfig, analyze_chunk, reclassify_chunk

logger = logging.getLogger(__name__)

ChunkCoord = Tuple[int, int]


class TerrainWorld:
    """Chunk registry plus the environment used to classify surfaces."""

    def __init__(
        self,
        chunk_size: float = project_config.DEFAULT_CHUNK_SIZE,
        resolution: int = project_config.DEFAULT_CHUNK_RESOLUTION,
        origin: Tuple[float, float] = (0.0, 0.0),
        manifest: Optional[MountainManifest] = None,
        environment: Optional[Environment] = None,
        config: Optional[AnalysisConfig] = None,
    ):
        """
        Args:
            chunk_size: World size of each chunk edge
            resolution: Grid points per chunk edge
            origin: World (x, z) of chunk (0, 0)
            manifest: Manifest the world was built from, if any
            environment: Weather snapshot (default: Environment())
            config: Analysis tunables (default: AnalysisConfig())
        """
        self.chunk_size = float(chunk_size)
        self.resolution = int(resolution)
        self.origin = (float(origin[0]), float(origin[1]))
        self.manifest = manifest
        self.environment = environment or Environment()
        self.config = config or AnalysisConfig()
        self.overlay: Optional[SurfaceOverlay] = None
        self.chunks: Dict[ChunkCoord, TerrainChunk] = {}
        self.revision = 0

    def __repr__(self):
        name = self.manifest.mountain_id if self.manifest else "procedural"
        return f"TerrainWorld({name!r}, chunks={len(self.chunks)}, revision={self.revision})"

    def __len__(self):
        return len(self.chunks)

    def __iter__(self) -> Iterator[TerrainChunk]:
        return iter(self.chunks.values())

    @property
    def thresholds(self):
        return self.config.thresholds

    # -- chunk registry -----------------------------------------------------

    def new_chunk(self, coords: ChunkCoord) -> TerrainChunk:
        """Create an empty chunk aligned to this world and register it."""
        chunk = TerrainChunk(coords, self.chunk_size, self.resolution, self.origin)
        self.chunks[chunk.coords] = chunk
        return chunk

    def add_chunk(self, chunk: TerrainChunk) -> None:
        if chunk.chunk_size != self.chunk_size:
            raise ValueError(f"Chunk size {chunk.chunk_size} does not match world chunk size {self.chunk_size}")
        self.chunks[chunk.coords] = chunk

    def get_chunk(self, coords: ChunkCoord) -> Optional[TerrainChunk]:
        return self.chunks.get((int(coords[0]), int(coords[1])))

    def chunk_coords_for(self, x: float, z: float) -> Optional[ChunkCoord]:
        """Chunk coordinates containing a world point, or None for non-finite positions."""
        if not (math.isfinite(x) and math.isfinite(z)):
            return None
        return (
            int(math.floor((x - self.origin[0]) / self.chunk_size)),
            int(math.floor((z - self.origin[1]) / self.chunk_size)),
        )

    def chunk_at(self, x: float, z: float) -> Optional[TerrainChunk]:
        coords = self.chunk_coords_for(x, z)
        if coords is None:
            return None
        return self.chunks.get(coords)

    # -- positional lookups -------------------------------------------------

    def contains(self, x: float, z: float) -> bool:
        chunk = self.chunk_at(x, z)
        return chunk is not None and chunk.is_analyzed

    def cell_at(self, x: float, z: float) -> Optional[TerrainCell]:
        """Cell under a world position, or None outside loaded and analyzed terrain."""
        chunk = self.chunk_at(x, z)
        if chunk is None or not chunk.is_analyzed:
            return None
        return chunk.cell_at(x, z)

    def sample_height(self, x: float, z: float) -> Optional[float]:
        """Bilinear height at a world position, or None outside loaded terrain."""
        chunk = self.chunk_at(x, z)
        if chunk is None:
            return None
        return chunk.sample_height(x, z)

    def elevation_range(self) -> Tuple[float, float]:
        if not self.chunks:
            return 0.0, 0.0
        return (
            min(c.min_elevation for c in self.chunks.values()),
            max(c.max_elevation for c in self.chunks.values()),
        )

    def analyzed_chunks(self) -> List[TerrainChunk]:
        return [c for c in self.chunks.values() if c.is_analyzed]

    # -- analysis -----------------------------------------------------------

    def analyze(self, progress: bool = False) -> None:
        """Analyze every chunk that has not been analyzed yet."""
        pending = [c for c in self.chunks.values() if not c.is_analyzed]
        for chunk in tqdm(pending, desc="Analyzing chunks", disable=not progress):
            analyze_chunk(chunk, self.environment, self.config)

    def update_environment(self, environment: Environment, progress: bool = False) -> None:
        """
        Reclassify surface material and hazards across all analyzed chunks.

        Geometry and cliff distances are not recomputed.
        """
        self.environment = environment
        chunks = self.analyzed_chunks()
        for chunk in tqdm(chunks, desc="Reclassifying surfaces", disable=not progress):
            reclassify_chunk(chunk, environment, self.config)
        self.revision += 1
        logger.info(f"Reclassified {len(chunks)} chunks (revision {self.revision})")


def _whole_heightmap_chunks(world: TerrainWorld, manifest: MountainManifest, heightmap: Heightmap):
    """Sample a single bounds-spanning heightmap into the world's chunk grid."""
    bounds = manifest.bounds
    count_x = max(1, int(math.ceil(bounds.width / world.chunk_size)))
    count_z = max(1, int(math.ceil(bounds.depth / world.chunk_size)))
    logger.info(f"Sampling {heightmap.resolution}px heightmap into {count_x}x{count_z} chunks")

    grid = heightmap.grid
    last = heightmap.resolution - 1
    for cz in range(count_z):
        for cx in range(count_x):
            chunk = world.new_chunk((cx, cz))
            steps = np.arange(chunk.resolution) * chunk.cell_size
            wz, wx = np.meshgrid(chunk.origin[1] + steps, chunk.origin[0] + steps, indexing="ij")
            rows = (wz - bounds.min_z) / bounds.depth * last
            cols = (wx - bounds.min_x) / bounds.width * last
            samples = map_coordinates(grid, [rows, cols], order=1, mode="nearest")
            chunk.load_heightmap(samples.ravel(), chunk.resolution)


def _chunk_file_chunks(world: TerrainWorld, manifest: MountainManifest):
    layout = manifest.chunks
    logger.info(f"Loading {layout.count_x}x{layout.count_z} chunk rasters from {manifest.chunks_dir}")
    for cz in range(layout.count_z):
        for cx in range(layout.count_x):
            heightmap = load_heightmap(manifest, (cx, cz))
            world.new_chunk((cx, cz)).load_heightmap(heightmap.data, heightmap.resolution)


def _apply_overlay(world: TerrainWorld, manifest: MountainManifest) -> None:
    path = manifest.overlay_path()
    if path is None:
        return

    overlay = SurfaceOverlay.from_color_map(read_overlay_raster(path), manifest.surfaces.color_map)
    world.overlay = overlay
    bounds = manifest.bounds
    for chunk in world.chunks.values():
        steps = np.arange(chunk.resolution) * chunk.cell_size
        wz, wx = np.meshgrid(chunk.origin[1] + steps, chunk.origin[0] + steps, indexing="ij")
        u = (wx - bounds.min_x) / bounds.width
        v = (wz - bounds.min_z) / bounds.depth
        chunk.overlay_codes = overlay.sample(u.ravel(), v.ravel())
    logger.info(f"Applied surface overlay {path.name} ({len(overlay.colors)} key colours)")


def build_world(
    manifest: MountainManifest,
    environment: Optional[Environment] = None,
    config: Optional[AnalysisConfig] = None,
    progress: bool = False,
) -> TerrainWorld:
    """
    Load every chunk described by a manifest and run the analysis pipeline.

    Args:
        manifest: Loaded mountain manifest
        environment: Initial weather snapshot
        config: Analysis tunables
        progress: Show a tqdm progress bar over chunks

    Returns:
        Fully analyzed TerrainWorld

    Raises:
        RasterMissingError, RasterFormatError: If any raster cannot be decoded
    """
    layout = manifest.chunks
    world = TerrainWorld(
        chunk_size=layout.chunk_size,
        resolution=layout.chunk_resolution,
        origin=(manifest.bounds.min_x, manifest.bounds.min_z),
        manifest=manifest,
        environment=environment,
        config=config,
    )

    if layout.enabled:
        _chunk_file_chunks(world, manifest)
    else:
        _whole_heightmap_chunks(world, manifest, load_heightmap(manifest))

    _apply_overlay(world, manifest)
    world.analyze(progress=progress)

    low, high = world.elevation_range()
    logger.info(
        f"Terrain '{manifest.mountain_id}' ready: {len(world)} chunks, "
        f"elevation {low:.1f} to {high:.1f}"
    )
    return world


def load_terrain_world(
    mountain_id: str,
    data_root: Optional[Path] = None,
    environment: Optional[Environment] = None,
    config: Optional[AnalysisConfig] = None,
    progress: bool = False,
) -> TerrainWorld:
    """
    Load a mountain by id: manifest, rasters, overlay, then full analysis.

    Raises:
        TerrainLoadError: Any manifest or raster failure (see ridgeline.terrain.errors)
    """
    manifest = load_manifest(mountain_id, data_root)
    return build_world(manifest, environment=environment, config=config, progress=progress)

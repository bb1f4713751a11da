"""
Staged per-chunk analysis pipeline.

Analysis runs as an explicit ordered sequence of pure stages, each consuming
the complete output of the stage before it:

1. geometry: slope, aspect, normal, curvature, drainage (analyze_geometry)
2. zones: terrain-zone bands plus cliff and rope-required sets (classify_cells)
3. cliff_distance: nearest-cliff field from the complete cliff set
4. surfaces: surface material for the current environment (classify_surfaces)
5. hazards: exit zones, slideability and slide risk (derive_hazards)

Stages 4 and 5 are re-run by reclassify_chunk when the environment changes;
stages 1-3 are immutable once a chunk is analyzed.

Example:
    from ridgeline.terrain.pipeline import AnalysisConfig, analyze_chunk

    chunk = TerrainChunk((0, 0), chunk_size=64.0, resolution=32)
    chunk.load_heightmap(samples, 32)
    analyze_chunk(chunk, Environment(), AnalysisConfig())
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from ridgeline.snow.surfaces import Environment, SurfaceConfig, classify_surfaces
from ridgeline.terrain.analysis import DEFAULT_THRESHOLDS, SlopeThresholds, analyze_geometry, classify_cells
from ridgeline.terrain.chunks import TerrainChunk
from ridgeline.terrain.hazards import (
    DEFAULT_HAZARD_CONFIG,
    HazardConfig,
    cell_hazard_summary,
    compute_cliff_distances,
    derive_hazards,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AnalysisConfig:
    """Tunables for every analysis stage."""

    thresholds: SlopeThresholds = DEFAULT_THRESHOLDS
    surfaces: SurfaceConfig = field(default_factory=SurfaceConfig)
    hazards: HazardConfig = DEFAULT_HAZARD_CONFIG


ANALYSIS_STAGES = (
    ("geometry", "Slope, aspect, normal, curvature and drainage per cell"),
    ("zones", "Terrain-zone bands and cliff/rope-required sets"),
    ("cliff_distance", "Nearest-cliff distance and direction"),
    ("surfaces", "Surface material for the current environment"),
    ("hazards", "Exit zones, slideability and slide risk"),
)

RECLASSIFY_STAGES = ("surfaces", "hazards")


def explain() -> List[str]:
    """Human-readable execution plan, one line per stage."""
    lines = []
    for i, (name, description) in enumerate(ANALYSIS_STAGES, start=1):
        marker = " (re-run on environment change)" if name in RECLASSIFY_STAGES else ""
        lines.append(f"{i}. {name}: {description}{marker}")
    return lines


def analyze_chunk(
    chunk: TerrainChunk,
    environment: Optional[Environment] = None,
    config: Optional[AnalysisConfig] = None,
) -> TerrainChunk:
    """
    Run every analysis stage on a chunk and mark it analyzed.

    Args:
        chunk: Chunk with heights loaded
        environment: Weather snapshot for surface classification (default: Environment())
        config: Stage tunables (default: AnalysisConfig())

    Returns:
        The same chunk, now analyzed

    Raises:
        RuntimeError: If the chunk was already analyzed
    """
    if chunk.is_analyzed:
        raise RuntimeError(f"Chunk {chunk.coords} is already analyzed")
    environment = environment or Environment()
    config = config or AnalysisConfig()

    geometry = analyze_geometry(chunk.heights, chunk.resolution, chunk.cell_size, chunk.origin)
    zones = classify_cells(geometry, config.thresholds)
    cliff_field = compute_cliff_distances(geometry.position, zones.is_cliff, config.hazards)

    chunk.geometry = geometry
    chunk.zones = zones
    chunk.cliff_field = cliff_field
    # Heights are frozen from here on
    chunk.heights = geometry.elevation

    _derive(chunk, environment, config)
    chunk.is_analyzed = True

    logger.debug(f"Analyzed chunk {chunk.coords}: {cell_hazard_summary(chunk.hazards, chunk.zones)}")
    return chunk


def reclassify_chunk(
    chunk: TerrainChunk,
    environment: Environment,
    config: Optional[AnalysisConfig] = None,
) -> TerrainChunk:
    """
    Re-run the surface and hazard stages for a new environment.

    Geometry, zones and the cliff field are left untouched; the surface
    material and hazard field are replaced.

    Raises:
        RuntimeError: If the chunk has not been analyzed
    """
    if not chunk.is_analyzed:
        raise RuntimeError(f"Chunk {chunk.coords} must be analyzed before reclassification")
    _derive(chunk, environment, config or AnalysisConfig())
    return chunk


def _derive(chunk: TerrainChunk, environment: Environment, config: AnalysisConfig) -> None:
    material = classify_surfaces(chunk.geometry, environment, config.surfaces, chunk.overlay_codes)
    hazards = derive_hazards(
        chunk.geometry, chunk.zones, chunk.cliff_field, material, config.thresholds, config.hazards
    )
    chunk.material = material
    chunk.hazards = hazards

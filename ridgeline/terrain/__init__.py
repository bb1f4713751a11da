"""
Terrain analysis package.

Core functionality:
- Manifest and heightmap loading (image rasters, raw16, raw32)
- Chunked terrain world with per-cell slope, zone, surface and hazard data
- Contour tracing and slide-path prediction
- TerrainQuery facade for gameplay systems
- Procedural placeholder terrain
"""

from .errors import (
    TerrainLoadError,
    ManifestMissingError,
    ManifestParseError,
    RasterMissingError,
    RasterFormatError,
)
from .manifest import MountainManifest, load_manifest
from .data_loading import Heightmap, load_heightmap
from .analysis import TerrainZone, SlopeThresholds
from .hazards import HazardConfig
from .chunks import TerrainChunk, TerrainCell
from .pipeline import AnalysisConfig, analyze_chunk, reclassify_chunk
from .world import TerrainWorld, build_world, load_terrain_world
from .contours import ContourLine, contour_levels, trace_contours
from .slide_path import SlideConfig, SlideOutcome, SlidePath, simulate_slide
from .query import TerrainQuery
from .procedural import build_procedural_world, load_or_generate_world

__all__ = [
    "TerrainLoadError",
    "ManifestMissingError",
    "ManifestParseError",
    "RasterMissingError",
    "RasterFormatError",
    "MountainManifest",
    "load_manifest",
    "Heightmap",
    "load_heightmap",
    "TerrainZone",
    "SlopeThresholds",
    "HazardConfig",
    "TerrainChunk",
    "TerrainCell",
    "AnalysisConfig",
    "analyze_chunk",
    "reclassify_chunk",
    "TerrainWorld",
    "build_world",
    "load_terrain_world",
    "ContourLine",
    "contour_levels",
    "trace_contours",
    "SlideConfig",
    "SlideOutcome",
    "SlidePath",
    "simulate_slide",
    "TerrainQuery",
    "build_procedural_world",
    "load_or_generate_world",
]

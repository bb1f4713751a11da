"""
Unified read API over an analyzed TerrainWorld.

Every query is a total function of a world (x, z) position: positions outside
loaded, analyzed terrain return values from a conservative default cell
(flat, walkable, far from any cliff) instead of raising. A one-entry cache
keyed by position proximity and world revision absorbs repeated same-tick
lookups from several callers.
"""

import logging
import math
from typing import Dict, List, Optional, Tuple

import numpy as np

from ridgeline.snow.surfaces import SurfaceType
from ridgeline.terrain.analysis import TerrainZone
from ridgeline.terrain.chunks import TerrainCell
from ridgeline.terrain.contours import ContourLine, trace_contours
from ridgeline.terrain.manifest import HazardMarker, Route
from ridgeline.terrain.slide_path import SlideConfig, SlidePath, simulate_slide
from ridgeline.terrain.world import TerrainWorld

logger = logging.getLogger(__name__)


class TerrainQuery:
    """Read-only query facade for gameplay systems."""

    def __init__(self, world: TerrainWorld, cache_radius: float = 0.5):
        self.world = world
        self.cache_radius = cache_radius
        self._cache: Optional[Tuple[float, float, int, TerrainCell]] = None
        self.cache_hits = 0
        self.cache_misses = 0

    # -- cell lookup --------------------------------------------------------

    def get_cell(self, x: float, z: float) -> TerrainCell:
        if self._cache is not None:
            cx, cz, revision, cell = self._cache
            if revision == self.world.revision and math.hypot(x - cx, z - cz) <= self.cache_radius:
                self.cache_hits += 1
                return cell

        self.cache_misses += 1
        cell = self.world.cell_at(x, z)
        if cell is None:
            cell = TerrainCell.default(x, z, self.get_height(x, z))
        self._cache = (x, z, self.world.revision, cell)
        return cell

    def clear_cache(self) -> None:
        self._cache = None

    def cache_stats(self) -> Dict[str, int]:
        return {"hits": self.cache_hits, "misses": self.cache_misses}

    # -- geometry -----------------------------------------------------------

    def get_height(self, x: float, z: float) -> float:
        """Bilinearly interpolated elevation; 0 outside loaded terrain."""
        height = self.world.sample_height(x, z)
        return 0.0 if height is None else height

    def get_slope(self, x: float, z: float) -> float:
        return self.get_cell(x, z).slope_angle

    def get_aspect(self, x: float, z: float) -> float:
        return self.get_cell(x, z).aspect

    def get_normal(self, x: float, z: float) -> Tuple[float, float, float]:
        return self.get_cell(x, z).normal

    def get_downhill_direction(self, x: float, z: float) -> Tuple[float, float]:
        return self.get_cell(x, z).downhill_direction

    def get_curvature(self, x: float, z: float) -> float:
        return self.get_cell(x, z).curvature

    def get_terrain_zone(self, x: float, z: float) -> TerrainZone:
        return self.get_cell(x, z).terrain_zone

    # -- material -----------------------------------------------------------

    def get_surface_type(self, x: float, z: float) -> SurfaceType:
        return self.get_cell(x, z).surface_type

    def get_friction(self, x: float, z: float) -> float:
        return self.get_cell(x, z).friction

    def get_sun_exposure(self, x: float, z: float) -> float:
        return self.get_cell(x, z).sun_exposure

    def get_wind_exposure(self, x: float, z: float) -> float:
        return self.get_cell(x, z).wind_exposure

    def get_snow_depth(self, x: float, z: float) -> float:
        return self.get_cell(x, z).snow_depth

    def get_ice_probability(self, x: float, z: float) -> float:
        return self.get_cell(x, z).ice_probability

    # -- hazards ------------------------------------------------------------

    def get_cliff_distance(self, x: float, z: float) -> float:
        return self.get_cell(x, z).distance_to_cliff

    def get_cliff_direction(self, x: float, z: float) -> Tuple[float, float, float]:
        return self.get_cell(x, z).cliff_direction

    def is_cliff(self, x: float, z: float) -> bool:
        return self.get_cell(x, z).is_cliff

    def is_exit_zone(self, x: float, z: float) -> bool:
        return self.get_cell(x, z).is_exit_zone

    def get_exit_zone_quality(self, x: float, z: float) -> float:
        return self.get_cell(x, z).exit_zone_quality

    def is_slideable(self, x: float, z: float) -> bool:
        return self.get_cell(x, z).is_slideable

    def get_slide_risk(self, x: float, z: float) -> float:
        return self.get_cell(x, z).slide_risk

    def predict_slide(
        self,
        x: float,
        z: float,
        initial_direction: Optional[Tuple[float, float]] = None,
        config: Optional[SlideConfig] = None,
    ) -> SlidePath:
        return simulate_slide(self.world, x, z, initial_direction, config)

    def find_nearest_exit_zone(
        self, x: float, z: float, max_distance: Optional[float] = None
    ) -> Optional[TerrainCell]:
        """
        Closest exit-zone cell by horizontal distance, searched across all chunks.

        Returns:
            TerrainCell, or None if no exit zone lies within max_distance
        """
        best_chunk, best_index, best_dist = None, None, math.inf
        for chunk in self.world.analyzed_chunks():
            indices = chunk.hazards.exit_indices
            if indices.size == 0:
                continue
            positions = chunk.geometry.position[indices]
            dists = np.hypot(positions[:, 0] - x, positions[:, 2] - z)
            i = int(np.argmin(dists))
            if dists[i] < best_dist:
                best_chunk, best_index, best_dist = chunk, int(indices[i]), float(dists[i])

        if best_chunk is None or (max_distance is not None and best_dist > max_distance):
            return None
        return best_chunk.cell(*best_chunk.grid_coords(best_index))

    # -- annotations --------------------------------------------------------

    def get_hazards_near(self, x: float, z: float, radius: float) -> List[HazardMarker]:
        """Manifest hazard markers whose area overlaps a horizontal circle around (x, z)."""
        manifest = self.world.manifest
        if manifest is None:
            return []
        return [
            h
            for h in manifest.hazards
            if math.hypot(h.position[0] - x, h.position[2] - z) <= radius + h.radius
        ]

    def get_route(self, name: str) -> Optional[Route]:
        if self.world.manifest is None:
            return None
        return self.world.manifest.get_route(name)

    def get_contours(
        self,
        minor_interval: float = 10.0,
        major_interval: float = 50.0,
        min_elevation: Optional[float] = None,
        max_elevation: Optional[float] = None,
    ) -> List[ContourLine]:
        return trace_contours(self.world, min_elevation, max_elevation, minor_interval, major_interval)

    def get_map_markers(self) -> Dict[str, np.ndarray]:
        """World positions (x, y, z) of cliff and exit-zone cells for the topo-map renderer."""
        cliffs, exits = [], []
        for chunk in self.world.analyzed_chunks():
            cliffs.append(chunk.geometry.position[chunk.zones.cliff_indices])
            exits.append(chunk.geometry.position[chunk.hazards.exit_indices])
        empty = np.empty((0, 3))
        return {
            "cliffs": np.concatenate(cliffs, axis=0) if cliffs else empty,
            "exit_zones": np.concatenate(exits, axis=0) if exits else empty,
        }

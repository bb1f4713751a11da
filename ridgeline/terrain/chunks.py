"""
Terrain chunks and per-cell records.

A TerrainChunk is a fixed-size square partition of the world holding a flat
elevation array (index = z * resolution + x) and the outputs of each analysis
stage as index-addressed arrays. TerrainCell is a frozen per-cell record
materialised from those arrays on demand.

World <-> grid mapping is affine and axis-aligned: grid point (x, z) sits at
``world_origin + (x, z) * cell_size`` with ``cell_size = chunk_size / resolution``.
"""

import logging
import math
from dataclasses import dataclass
from typing import Iterator, List, Optional, Tuple

import numpy as np
from rasterio import Affine
from scipy.ndimage import map_coordinates

from ridgeline import config
from ridgeline.utils import clamp
from ridgeline.snow.surfaces import SURFACE_FIRMNESS, SURFACE_FRICTION, SurfaceMaterial, SurfaceType
from ridgeline.terrain.analysis import CellGeometry, TerrainZone, ZoneClassification
from ridgeline.terrain.hazards import DEFAULT_HAZARD_CONFIG, CliffField, HazardField

logger = logging.getLogger(__name__)

Vec2 = Tuple[float, float]
Vec3 = Tuple[float, float, float]


@dataclass(frozen=True)
class TerrainCell:
    """Snapshot of everything known about one grid point."""

    grid_coords: Tuple[int, int] = (0, 0)
    position: Vec3 = (0.0, 0.0, 0.0)
    elevation: float = 0.0
    slope_angle: float = 0.0
    downhill_direction: Vec2 = (0.0, 0.0)
    aspect: float = 0.0
    normal: Vec3 = (0.0, 1.0, 0.0)
    curvature: float = 0.0
    drainage: float = 0.0
    terrain_zone: TerrainZone = TerrainZone.WALKABLE
    surface_type: SurfaceType = SurfaceType.SNOW_FIRM
    friction: float = SURFACE_FRICTION[SurfaceType.SNOW_FIRM]
    firmness: float = SURFACE_FIRMNESS[SurfaceType.SNOW_FIRM]
    distance_to_cliff: float = DEFAULT_HAZARD_CONFIG.max_cliff_distance
    cliff_direction: Vec3 = (0.0, 0.0, 0.0)
    is_cliff: bool = False
    is_exit_zone: bool = False
    exit_zone_quality: float = 0.0
    is_slideable: bool = False
    slide_risk: float = 0.0
    is_walkable: bool = True
    requires_rope: bool = False
    sun_exposure: float = 0.5
    wind_exposure: float = 0.5
    snow_depth: float = 0.0
    ice_probability: float = 0.0
    temperature: float = 0.0

    @classmethod
    def default(cls, x: float = 0.0, z: float = 0.0, elevation: float = 0.0) -> "TerrainCell":
        """Conservative record for positions outside loaded terrain: flat, walkable, far from cliffs."""
        # Non-finite inputs are reported at the origin so NaN never reaches callers
        x, z, elevation = (float(v) if math.isfinite(v) else 0.0 for v in (x, z, elevation))
        return cls(position=(x, elevation, z), elevation=elevation)


@dataclass(frozen=True)
class ChunkBounds:
    """Axis-aligned world bounding box of a chunk."""

    min_x: float
    min_z: float
    max_x: float
    max_z: float
    min_elevation: float
    max_elevation: float

    def contains(self, x: float, z: float) -> bool:
        return self.min_x <= x < self.max_x and self.min_z <= z < self.max_z


class TerrainChunk:
    """Square chunk of terrain cells with index-addressed per-cell arrays."""

    DEFAULT_CHUNK_SIZE = config.DEFAULT_CHUNK_SIZE
    DEFAULT_RESOLUTION = config.DEFAULT_CHUNK_RESOLUTION

    def __init__(
        self,
        coords: Tuple[int, int] = (0, 0),
        chunk_size: Optional[float] = None,
        resolution: Optional[int] = None,
        world_origin: Vec2 = (0.0, 0.0),
    ):
        """
        Create an empty chunk.

        Args:
            coords: Integer chunk coordinates (cx, cz)
            chunk_size: World size of the chunk edge
            resolution: Grid points per chunk edge
            world_origin: World (x, z) of chunk (0, 0)'s first grid point
        """
        self.coords = (int(coords[0]), int(coords[1]))
        self.chunk_size = float(chunk_size or self.DEFAULT_CHUNK_SIZE)
        self.resolution = int(resolution or self.DEFAULT_RESOLUTION)
        if self.resolution < 2:
            raise ValueError(f"Chunk resolution must be at least 2, got {self.resolution}")
        self.cell_size = self.chunk_size / self.resolution

        self.origin = (
            world_origin[0] + self.coords[0] * self.chunk_size,
            world_origin[1] + self.coords[1] * self.chunk_size,
        )
        self.transform = Affine.translation(*self.origin) * Affine.scale(self.cell_size)

        self.heights = np.zeros(self.resolution * self.resolution)
        self.overlay_codes: Optional[np.ndarray] = None

        # Stage outputs, filled in order by the analysis pipeline
        self.geometry: Optional[CellGeometry] = None
        self.zones: Optional[ZoneClassification] = None
        self.cliff_field: Optional[CliffField] = None
        self.material: Optional[SurfaceMaterial] = None
        self.hazards: Optional[HazardField] = None
        self.is_analyzed = False

    def __repr__(self):
        state = "analyzed" if self.is_analyzed else "raw"
        return f"TerrainChunk(coords={self.coords}, resolution={self.resolution}, {state})"

    # -- grid addressing ----------------------------------------------------

    @property
    def cell_count(self) -> int:
        return self.resolution * self.resolution

    def index(self, x: int, z: int) -> int:
        return z * self.resolution + x

    def grid_coords(self, index: int) -> Tuple[int, int]:
        z, x = divmod(int(index), self.resolution)
        return x, z

    def is_valid_grid_pos(self, x: int, z: int) -> bool:
        return 0 <= x < self.resolution and 0 <= z < self.resolution

    def grid_to_world(self, x: float, z: float) -> Vec2:
        return self.transform * (x, z)

    def world_to_grid(self, world_x: float, world_z: float) -> Vec2:
        """Fractional grid coordinates of a world point (unclamped)."""
        return ~self.transform * (world_x, world_z)

    def grid_index_at(self, world_x: float, world_z: float) -> Tuple[int, int]:
        """Grid cell containing a world point, clamped to the valid range."""
        fx, fz = self.world_to_grid(world_x, world_z)
        x = min(max(int(math.floor(fx)), 0), self.resolution - 1)
        z = min(max(int(math.floor(fz)), 0), self.resolution - 1)
        return x, z

    def contains(self, world_x: float, world_z: float) -> bool:
        return (
            self.origin[0] <= world_x < self.origin[0] + self.chunk_size
            and self.origin[1] <= world_z < self.origin[1] + self.chunk_size
        )

    @property
    def bounds(self) -> ChunkBounds:
        return ChunkBounds(
            min_x=self.origin[0],
            min_z=self.origin[1],
            max_x=self.origin[0] + self.chunk_size,
            max_z=self.origin[1] + self.chunk_size,
            min_elevation=self.min_elevation,
            max_elevation=self.max_elevation,
        )

    # -- heights ------------------------------------------------------------

    @property
    def height_grid(self) -> np.ndarray:
        """Heights as a (resolution, resolution) view indexed [z, x]."""
        return self.heights.reshape(self.resolution, self.resolution)

    @property
    def min_elevation(self) -> float:
        return float(self.heights.min())

    @property
    def max_elevation(self) -> float:
        return float(self.heights.max())

    def get_height(self, x: int, z: int) -> float:
        if not self.is_valid_grid_pos(x, z):
            return 0.0
        return float(self.heights[self.index(x, z)])

    def set_height(self, x: int, z: int, height: float) -> None:
        if self.is_analyzed:
            raise RuntimeError(f"Chunk {self.coords} is analyzed; heights are immutable")
        if self.is_valid_grid_pos(x, z):
            self.heights[self.index(x, z)] = height

    def load_heightmap(self, data: np.ndarray, data_resolution: int) -> None:
        """
        Load elevation samples, resampling bilinearly when the source resolution differs.

        Args:
            data: Flat samples of length data_resolution**2, row-major [z, x]
            data_resolution: Source samples per side
        """
        if self.is_analyzed:
            raise RuntimeError(f"Chunk {self.coords} is analyzed; heights are immutable")

        data = np.asarray(data, dtype=np.float64).ravel()
        if data.size != data_resolution * data_resolution:
            raise ValueError(
                f"Heightmap has {data.size} samples, expected {data_resolution * data_resolution}"
            )

        if data_resolution == self.resolution:
            self.heights = data.copy()
        else:
            logger.debug(f"Resampling chunk {self.coords} from {data_resolution} to {self.resolution}")
            self.heights = resample_grid(data.reshape(data_resolution, data_resolution), self.resolution).ravel()

    def sample_height(self, world_x: float, world_z: float) -> float:
        """Bilinearly interpolated height at a world point, clamped to the chunk grid."""
        fx, fz = self.world_to_grid(world_x, world_z)
        last = self.resolution - 1
        fx = clamp(fx, 0.0, float(last))
        fz = clamp(fz, 0.0, float(last))

        x0, z0 = int(math.floor(fx)), int(math.floor(fz))
        x1, z1 = min(x0 + 1, last), min(z0 + 1, last)
        tx, tz = fx - x0, fz - z0

        h = self.heights
        r = self.resolution
        h0 = h[z0 * r + x0] + (h[z0 * r + x1] - h[z0 * r + x0]) * tx
        h1 = h[z1 * r + x0] + (h[z1 * r + x1] - h[z1 * r + x0]) * tx
        return float(h0 + (h1 - h0) * tz)

    # -- analyzed cells -----------------------------------------------------

    def _require_analyzed(self) -> None:
        if not self.is_analyzed:
            raise RuntimeError(f"Chunk {self.coords} has not been analyzed")

    def cell(self, x: int, z: int) -> TerrainCell:
        """Record for grid point (x, z)."""
        self._require_analyzed()
        if not self.is_valid_grid_pos(x, z):
            raise IndexError(f"Grid position ({x}, {z}) outside chunk of resolution {self.resolution}")

        i = self.index(x, z)
        g, zones, cliff, mat, haz = self.geometry, self.zones, self.cliff_field, self.material, self.hazards
        surface = SurfaceType(int(mat.surface_type[i]))
        return TerrainCell(
            grid_coords=(x, z),
            position=tuple(float(v) for v in g.position[i]),
            elevation=float(g.elevation[i]),
            slope_angle=float(g.slope[i]),
            downhill_direction=(float(g.downhill[i, 0]), float(g.downhill[i, 1])),
            aspect=float(g.aspect[i]),
            normal=tuple(float(v) for v in g.normal[i]),
            curvature=float(g.curvature[i]),
            drainage=float(g.drainage[i]),
            terrain_zone=TerrainZone(int(zones.zones[i])),
            surface_type=surface,
            friction=float(mat.friction[i]),
            firmness=float(mat.firmness[i]),
            distance_to_cliff=float(cliff.distance[i]),
            cliff_direction=tuple(float(v) for v in cliff.direction[i]),
            is_cliff=bool(zones.is_cliff[i]),
            is_exit_zone=bool(haz.is_exit_zone[i]),
            exit_zone_quality=float(haz.exit_zone_quality[i]),
            is_slideable=bool(haz.is_slideable[i]),
            slide_risk=float(haz.slide_risk[i]),
            is_walkable=bool(zones.is_walkable[i]),
            requires_rope=bool(zones.requires_rope[i]),
            sun_exposure=float(mat.sun_exposure[i]),
            wind_exposure=float(g.wind_exposure[i]),
            snow_depth=float(mat.snow_depth[i]),
            ice_probability=float(mat.ice_probability[i]),
            temperature=float(mat.temperature[i]),
        )

    def cell_at(self, world_x: float, world_z: float) -> TerrainCell:
        """Record for the grid cell containing a world point (clamped)."""
        return self.cell(*self.grid_index_at(world_x, world_z))

    def iter_cells(self) -> Iterator[TerrainCell]:
        for z in range(self.resolution):
            for x in range(self.resolution):
                yield self.cell(x, z)

    def _coords_of(self, indices: np.ndarray) -> List[Tuple[int, int]]:
        return [self.grid_coords(i) for i in indices]

    @property
    def cliff_cells(self) -> List[Tuple[int, int]]:
        self._require_analyzed()
        return self._coords_of(self.zones.cliff_indices)

    @property
    def rope_required_cells(self) -> List[Tuple[int, int]]:
        self._require_analyzed()
        return self._coords_of(self.zones.rope_indices)

    @property
    def exit_zone_cells(self) -> List[Tuple[int, int]]:
        self._require_analyzed()
        return self._coords_of(self.hazards.exit_indices)

    @property
    def average_slope(self) -> float:
        self._require_analyzed()
        return self.geometry.average_slope


def resample_grid(grid: np.ndarray, resolution: int) -> np.ndarray:
    """
    Bilinearly resample a square grid to a new resolution.

    Target sample i maps to source coordinate ``i / resolution * source_resolution``;
    coordinates past the last source sample clamp to the edge.

    Args:
        grid: (n, n) source array indexed [z, x]
        resolution: Target samples per side

    Returns:
        (resolution, resolution) array
    """
    source = grid.shape[0]
    coords = np.arange(resolution, dtype=np.float64) / resolution * source
    zz, xx = np.meshgrid(coords, coords, indexing="ij")
    return map_coordinates(grid.astype(np.float64), [zz, xx], order=1, mode="nearest")

"""
Per-cell terrain geometry analysis.

Computes slope, downhill direction, aspect, surface normal, curvature and
drainage for every grid point of a chunk, then classifies each cell into an
ordered terrain-zone band.

Gradients use Horn's method (3x3 Sobel-like kernel) for interior cells and
fall back to central differences over the clamped neighbourhood on chunk
edges, where diagonal neighbours are missing.

Conventions:
    - Grids are indexed [z, x]; +x is east, +z is south, so north is -z.
    - The gradient (dx, dz) is the descent vector (negated height gradient),
      so it points downhill.
    - Aspect is the compass bearing the slope faces: 0=North, 90=East,
      180=South, 270=West.
    - Curvature is positive on convex ridges and negative in concave gullies.
"""

import logging
from dataclasses import dataclass
from enum import IntEnum
from typing import List, Tuple

import numpy as np

logger = logging.getLogger(__name__)

FLAT_GRADIENT = 1e-4
DRAINAGE_GAIN = 10.0


class TerrainZone(IntEnum):
    WALKABLE = 0
    STEEP = 1
    SLIDEABLE = 2
    DOWNCLIMB = 3
    RAPPEL_REQUIRED = 4
    CLIFF = 5


@dataclass(frozen=True)
class SlopeThresholds:
    """Slope-angle band minima in degrees.

    Each zone starts at its minimum and ends where the next steeper zone
    starts. The minima must be strictly increasing; a duplicated or misordered
    value would make a band unreachable, so construction fails instead.
    """

    steep_min: float = 20.0
    slide_min: float = 25.0
    downclimb_min: float = 35.0
    rappel_min: float = 50.0
    cliff_min: float = 70.0

    slide_max: float = 40.0
    """Upper slope limit for uncontrolled sliding (independent of the zone bands)."""

    def __post_init__(self):
        self.validate()

    def bands(self) -> List[Tuple[TerrainZone, float]]:
        """Zone minima ordered most extreme first."""
        return [
            (TerrainZone.CLIFF, self.cliff_min),
            (TerrainZone.RAPPEL_REQUIRED, self.rappel_min),
            (TerrainZone.DOWNCLIMB, self.downclimb_min),
            (TerrainZone.SLIDEABLE, self.slide_min),
            (TerrainZone.STEEP, self.steep_min),
        ]

    def validate(self) -> None:
        """
        Check that every band is reachable.

        Raises:
            ValueError: If minima are not strictly increasing within (0, 90)
        """
        ordered = list(reversed(self.bands()))
        lower_zone, lower = TerrainZone.WALKABLE, 0.0
        for zone, minimum in ordered:
            if not minimum > lower:
                raise ValueError(
                    f"{zone.name} minimum {minimum} must be greater than "
                    f"{lower_zone.name} minimum {lower}; band would be unreachable"
                )
            lower_zone, lower = zone, minimum
        if not self.cliff_min < 90.0:
            raise ValueError(f"cliff_min {self.cliff_min} must be below 90 degrees")
        if not self.slide_max > self.slide_min:
            raise ValueError(f"slide_max {self.slide_max} must be greater than slide_min {self.slide_min}")


DEFAULT_THRESHOLDS = SlopeThresholds()


def classify_terrain_zone(slope_angle: float, thresholds: SlopeThresholds = DEFAULT_THRESHOLDS) -> TerrainZone:
    """Terrain zone for a single slope angle in degrees."""
    for zone, minimum in thresholds.bands():
        if slope_angle >= minimum:
            return zone
    return TerrainZone.WALKABLE


def classify_terrain_zones(slopes: np.ndarray, thresholds: SlopeThresholds = DEFAULT_THRESHOLDS) -> np.ndarray:
    """Vectorized classify_terrain_zone; returns an int8 array of TerrainZone values."""
    slopes = np.asarray(slopes)
    bands = thresholds.bands()
    conditions = [slopes >= minimum for _, minimum in bands]
    choices = [int(zone) for zone, _ in bands]
    return np.select(conditions, choices, default=int(TerrainZone.WALKABLE)).astype(np.int8)


def read_only(arr: np.ndarray) -> np.ndarray:
    arr = np.ascontiguousarray(arr)
    arr.flags.writeable = False
    return arr


@dataclass(frozen=True)
class CellGeometry:
    """Immutable per-cell geometry for one chunk.

    All arrays are flat and index-addressed (index = z * resolution + x) and
    are marked read-only; surface reclassification never replaces them.
    """

    resolution: int
    cell_size: float
    origin: Tuple[float, float]
    position: np.ndarray
    """(N, 3) world positions (x, elevation, z)."""

    elevation: np.ndarray
    slope: np.ndarray
    """Slope angle in degrees, 0-90."""

    downhill: np.ndarray
    """(N, 2) unit (x, z) downhill direction, zero where flat."""

    aspect: np.ndarray
    normal: np.ndarray
    """(N, 3) unit surface normal (x, y, z)."""

    curvature: np.ndarray
    drainage: np.ndarray
    wind_exposure: np.ndarray

    @property
    def size(self) -> int:
        return self.resolution * self.resolution

    @property
    def average_slope(self) -> float:
        return float(self.slope.mean())


def compute_gradients(grid: np.ndarray, cell_size: float) -> Tuple[np.ndarray, np.ndarray]:
    """
    Descent gradient (dx, dz) of a height grid.

    Interior cells use Horn's 3x3 kernel. Edge cells use central differences
    over clamped neighbours divided by the actual sample span.

    Args:
        grid: (rows, cols) height array indexed [z, x]
        cell_size: World distance between neighbouring samples

    Returns:
        (dx, dz) arrays with the same shape as grid, pointing downhill
    """
    rows, cols = grid.shape
    p = np.pad(grid, 1, mode="edge")
    nw, n, ne = p[:-2, :-2], p[:-2, 1:-1], p[:-2, 2:]
    w, e = p[1:-1, :-2], p[1:-1, 2:]
    sw, s, se = p[2:, :-2], p[2:, 1:-1], p[2:, 2:]

    # Horn / Sobel height gradient
    hx = ((ne + 2.0 * e + se) - (nw + 2.0 * w + sw)) / (8.0 * cell_size)
    hz = ((sw + 2.0 * s + se) - (nw + 2.0 * n + ne)) / (8.0 * cell_size)

    # Central differences with clamped neighbours for edge cells
    xs = np.arange(cols)
    zs = np.arange(rows)
    span_x = (np.minimum(xs + 1, cols - 1) - np.maximum(xs - 1, 0)).astype(np.float64)
    span_z = (np.minimum(zs + 1, rows - 1) - np.maximum(zs - 1, 0)).astype(np.float64)
    with np.errstate(divide="ignore", invalid="ignore"):
        cx = np.where(span_x[None, :] > 0, (e - w) / (span_x[None, :] * cell_size), 0.0)
        cz = np.where(span_z[:, None] > 0, (s - n) / (span_z[:, None] * cell_size), 0.0)

    interior = np.zeros((rows, cols), dtype=bool)
    interior[1:-1, 1:-1] = True
    hx = np.where(interior, hx, cx)
    hz = np.where(interior, hz, cz)

    return -hx, -hz


def compute_curvature(grid: np.ndarray, cell_size: float) -> np.ndarray:
    """Curvature as half the negated discrete Laplacian (positive on ridges)."""
    p = np.pad(grid, 1, mode="edge")
    laplacian = (p[:-2, 1:-1] + p[2:, 1:-1] + p[1:-1, :-2] + p[1:-1, 2:] - 4.0 * grid) / (
        cell_size * cell_size
    )
    return -0.5 * laplacian


def analyze_geometry(
    heights: np.ndarray,
    resolution: int,
    cell_size: float,
    origin: Tuple[float, float] = (0.0, 0.0),
) -> CellGeometry:
    """
    First analysis pass: slope, aspect, normal, curvature and drainage per cell.

    Args:
        heights: Flat elevation array of length resolution**2
        resolution: Samples per chunk side
        cell_size: World distance between samples
        origin: World (x, z) of grid point (0, 0)

    Returns:
        CellGeometry with read-only arrays
    """
    heights = np.asarray(heights, dtype=np.float64)
    if heights.size != resolution * resolution:
        raise ValueError(f"Expected {resolution * resolution} heights, got {heights.size}")

    grid = heights.reshape(resolution, resolution)
    dx, dz = compute_gradients(grid, cell_size)
    dx, dz = dx.ravel(), dz.ravel()

    magnitude = np.hypot(dx, dz)
    slope = np.degrees(np.arctan(magnitude))

    flat = magnitude < FLAT_GRADIENT
    safe = np.where(flat, 1.0, magnitude)
    downhill = np.stack([np.where(flat, 0.0, dx / safe), np.where(flat, 0.0, dz / safe)], axis=1)

    aspect = np.where(flat, 0.0, np.degrees(np.arctan2(dx, -dz)) % 360.0)

    normal = np.stack([dx, np.ones_like(dx), dz], axis=1)
    normal /= np.linalg.norm(normal, axis=1, keepdims=True)

    curvature = compute_curvature(grid, cell_size).ravel()
    drainage = np.clip(-curvature * DRAINAGE_GAIN, 0.0, 1.0)
    wind_exposure = np.clip(0.5 + 5.0 * curvature, 0.0, 1.0)

    zi, xi = np.divmod(np.arange(resolution * resolution), resolution)
    position = np.stack(
        [origin[0] + xi * cell_size, heights, origin[1] + zi * cell_size], axis=1
    )

    return CellGeometry(
        resolution=resolution,
        cell_size=cell_size,
        origin=(float(origin[0]), float(origin[1])),
        position=read_only(position),
        elevation=read_only(heights.copy()),
        slope=read_only(slope),
        downhill=read_only(downhill),
        aspect=read_only(aspect),
        normal=read_only(normal),
        curvature=read_only(curvature),
        drainage=read_only(drainage),
        wind_exposure=read_only(wind_exposure),
    )


@dataclass(frozen=True)
class ZoneClassification:
    """Terrain zones and the slope-derived hazard sets collected in pass one."""

    zones: np.ndarray
    is_cliff: np.ndarray
    requires_rope: np.ndarray
    is_walkable: np.ndarray

    @property
    def cliff_indices(self) -> np.ndarray:
        return np.flatnonzero(self.is_cliff)

    @property
    def rope_indices(self) -> np.ndarray:
        return np.flatnonzero(self.requires_rope)


def classify_cells(geometry: CellGeometry, thresholds: SlopeThresholds = DEFAULT_THRESHOLDS) -> ZoneClassification:
    """Classify every cell of a chunk into a terrain zone and collect cliff/rope sets."""
    zones = classify_terrain_zones(geometry.slope, thresholds)
    is_cliff = zones == TerrainZone.CLIFF
    requires_rope = (zones == TerrainZone.RAPPEL_REQUIRED) | is_cliff
    is_walkable = (zones == TerrainZone.WALKABLE) | (zones == TerrainZone.STEEP)

    logger.debug(
        f"Classified {zones.size} cells: {int(is_cliff.sum())} cliff, "
        f"{int(requires_rope.sum())} rope-required"
    )
    return ZoneClassification(
        zones=read_only(zones),
        is_cliff=read_only(is_cliff),
        requires_rope=read_only(requires_rope),
        is_walkable=read_only(is_walkable),
    )

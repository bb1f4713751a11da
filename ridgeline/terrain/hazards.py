"""
Hazard fields derived from analyzed terrain.

Pass two computes the nearest-cliff distance and direction for every cell of
a chunk. Pass three combines geometry, the cliff field and the surface
material into exit-zone flags/quality, slideability and slide risk.

Cliff search is chunk-local: a cell near a chunk boundary does not see
cliffs in the neighbouring chunk. This matches the established behaviour of
the game data and is kept as-is.
"""

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ridgeline.snow.surfaces import SLIDEABLE_SURFACES, SurfaceMaterial
from ridgeline.terrain.analysis import (
    DEFAULT_THRESHOLDS,
    CellGeometry,
    SlopeThresholds,
    ZoneClassification,
    read_only,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class HazardConfig:
    """Settings for exit-zone and slide-risk derivation."""

    max_cliff_distance: float = 1000.0
    """Distance reported when a chunk has no cliff within reach."""

    exit_max_curvature: float = 0.2
    """
    Cells more convex than this cannot hold a stopped slider. Curvature is
    positive on ridges, so the gate admits flat and concave ground plus
    gently rounded benches below this tolerance.
    """

    exit_min_cliff_distance: float = 10.0
    cliff_falloff_distance: float = 50.0
    """Distance over which cliff proximity contributes to quality and risk."""

    slide_excess_range: float = 15.0
    """Degrees above slide_min at which the slope term of slide risk saturates."""

    max_block_pairs: int = 1_000_000
    """Cell-to-cliff pairs per block in the cliff search (peak memory is a few float64 arrays this size)."""


DEFAULT_HAZARD_CONFIG = HazardConfig()


@dataclass(frozen=True)
class CliffField:
    """Distance (world units) and unit 3D direction to the nearest cliff cell."""

    distance: np.ndarray
    direction: np.ndarray


@dataclass(frozen=True)
class HazardField:
    """Exit-zone and slide hazard flags per cell."""

    is_exit_zone: np.ndarray
    exit_zone_quality: np.ndarray
    is_slideable: np.ndarray
    slide_risk: np.ndarray

    @property
    def exit_indices(self) -> np.ndarray:
        return np.flatnonzero(self.is_exit_zone)


def compute_cliff_distances(
    positions: np.ndarray,
    cliff_mask: np.ndarray,
    config: HazardConfig = DEFAULT_HAZARD_CONFIG,
) -> CliffField:
    """
    Brute-force nearest-cliff search over one chunk.

    Every cell is compared with every cliff cell (O(N * C)), processed in
    blocks of cells sized so each block holds at most max_block_pairs
    cell-to-cliff distances.

    Args:
        positions: (N, 3) world positions
        cliff_mask: (N,) boolean cliff flags for the same cells
        config: HazardConfig

    Returns:
        CliffField; cells farther than max_cliff_distance from every cliff
        (or in a chunk with no cliffs) get max_cliff_distance and a zero direction
    """
    positions = np.asarray(positions, dtype=np.float64)
    n = positions.shape[0]
    distance = np.full(n, config.max_cliff_distance)
    direction = np.zeros((n, 3))

    cliff_positions = positions[np.asarray(cliff_mask, dtype=bool)]
    if cliff_positions.shape[0] == 0:
        return CliffField(distance=read_only(distance), direction=read_only(direction))

    cliff_count = cliff_positions.shape[0]
    block_rows = max(1, config.max_block_pairs // cliff_count)

    for start in range(0, n, block_rows):
        stop = min(start + block_rows, n)
        block = positions[start:stop]
        dist_sq = np.zeros((stop - start, cliff_count))
        for axis in range(3):
            dist_sq += np.subtract.outer(block[:, axis], cliff_positions[:, axis]) ** 2
        nearest = np.argmin(dist_sq, axis=1)
        best = np.sqrt(dist_sq[np.arange(stop - start), nearest])
        del dist_sq

        within = best < config.max_cliff_distance
        distance[start:stop] = np.where(within, best, config.max_cliff_distance)

        pointing = within & (best > 0.001)
        vectors = cliff_positions[nearest] - block
        safe = np.where(pointing, best, 1.0)[:, None]
        direction[start:stop] = np.where(pointing[:, None], vectors / safe, 0.0)

    return CliffField(distance=read_only(distance), direction=read_only(direction))


def exit_zone_quality(
    slope: np.ndarray,
    cliff_distance: np.ndarray,
    slide_min: float = DEFAULT_THRESHOLDS.slide_min,
    falloff: float = DEFAULT_HAZARD_CONFIG.cliff_falloff_distance,
) -> np.ndarray:
    """Continuous exit-zone score: flatter and farther from cliffs is better."""
    slope = np.asarray(slope, dtype=np.float64)
    cliff_distance = np.asarray(cliff_distance, dtype=np.float64)
    return (1.0 - slope / slide_min) * np.clip(cliff_distance / falloff, 0.0, 1.0)


def slide_risk(
    slope: np.ndarray,
    cliff_distance: np.ndarray,
    ice_probability: np.ndarray,
    slide_min: float = DEFAULT_THRESHOLDS.slide_min,
    config: HazardConfig = DEFAULT_HAZARD_CONFIG,
) -> np.ndarray:
    """Danger of sliding through a cell, in [0, 1]; meaningful only for slideable cells."""
    slope = np.asarray(slope, dtype=np.float64)
    cliff_distance = np.asarray(cliff_distance, dtype=np.float64)
    falloff = config.cliff_falloff_distance

    risk = (slope - slide_min) / config.slide_excess_range * 0.3
    risk = risk + np.where(cliff_distance < falloff, (1.0 - cliff_distance / falloff) * 0.5, 0.0)
    risk = risk + np.asarray(ice_probability) * 0.2
    return np.clip(risk, 0.0, 1.0)


def derive_hazards(
    geometry: CellGeometry,
    zones: ZoneClassification,
    cliff_field: CliffField,
    material: SurfaceMaterial,
    thresholds: SlopeThresholds = DEFAULT_THRESHOLDS,
    config: HazardConfig = DEFAULT_HAZARD_CONFIG,
) -> HazardField:
    """
    Final derive pass: exit zones, slideability and slide risk.

    Requires the complete slope analysis, the cliff-distance field and the
    current surface material.
    """
    slope = geometry.slope
    distance = cliff_field.distance

    is_exit = (
        (slope < thresholds.slide_min)
        & (geometry.curvature < config.exit_max_curvature)
        & ~zones.is_cliff
        & (distance > config.exit_min_cliff_distance)
    )
    quality = np.where(
        is_exit,
        exit_zone_quality(slope, distance, thresholds.slide_min, config.cliff_falloff_distance),
        0.0,
    )

    slideable_surface = np.isin(material.surface_type, [int(s) for s in SLIDEABLE_SURFACES])
    is_slideable = (slope >= thresholds.slide_min) & (slope <= thresholds.slide_max) & slideable_surface
    risk = np.where(
        is_slideable,
        slide_risk(slope, distance, material.ice_probability, thresholds.slide_min, config),
        0.0,
    )

    logger.debug(f"Derived {int(is_exit.sum())} exit-zone and {int(is_slideable.sum())} slideable cells")
    return HazardField(
        is_exit_zone=is_exit,
        exit_zone_quality=quality,
        is_slideable=is_slideable,
        slide_risk=risk,
    )


def cell_hazard_summary(hazards: Optional[HazardField], zones: ZoneClassification) -> dict:
    """Counts of hazard cells in one chunk, for load-time logging."""
    summary = {
        "cliff": int(zones.is_cliff.sum()),
        "rope_required": int(zones.requires_rope.sum()),
    }
    if hazards is not None:
        summary["exit_zone"] = int(hazards.is_exit_zone.sum())
        summary["slideable"] = int(hazards.is_slideable.sum())
    return summary

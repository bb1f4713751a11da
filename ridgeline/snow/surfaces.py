"""
Surface material classification from terrain geometry and weather.

Assigns a surface material to every cell of a chunk from its elevation,
slope, drainage and aspect plus an environment snapshot (temperature, sun,
precipitation history). An optional colour-keyed overlay raster can force
the material per cell.

Classification is a separate, re-invocable stage: it reads CellGeometry but
never writes it, and produces a fresh SurfaceMaterial each time the
environment changes.
"""

import logging
from dataclasses import dataclass, field
from enum import IntEnum
from typing import TYPE_CHECKING, Dict, Optional, Tuple

import numpy as np

if TYPE_CHECKING:
    from ridgeline.terrain.analysis import CellGeometry

logger = logging.getLogger(__name__)


class SurfaceType(IntEnum):
    SNOW_FIRM = 0
    SNOW_SOFT = 1
    SNOW_POWDER = 2
    ICE = 3
    ROCK = 4
    ROCK_DRY = 5
    ROCK_WET = 6
    SCREE = 7
    MIXED = 8


class PrecipitationType(IntEnum):
    NONE = 0
    SNOW = 1
    RAIN = 2


SURFACE_FRICTION = {
    SurfaceType.SNOW_FIRM: 0.3,
    SurfaceType.SNOW_SOFT: 0.5,
    SurfaceType.SNOW_POWDER: 0.6,
    SurfaceType.ICE: 0.1,
    SurfaceType.ROCK: 0.6,
    SurfaceType.ROCK_DRY: 0.7,
    SurfaceType.ROCK_WET: 0.2,
    SurfaceType.SCREE: 0.6,
    SurfaceType.MIXED: 0.4,
}

SURFACE_FIRMNESS = {
    SurfaceType.SNOW_FIRM: 0.8,
    SurfaceType.SNOW_SOFT: 0.4,
    SurfaceType.SNOW_POWDER: 0.2,
    SurfaceType.ICE: 1.0,
    SurfaceType.ROCK: 1.0,
    SurfaceType.ROCK_DRY: 1.0,
    SurfaceType.ROCK_WET: 1.0,
    SurfaceType.SCREE: 0.3,
    SurfaceType.MIXED: 0.7,
}

SNOW_SURFACES = frozenset({SurfaceType.SNOW_FIRM, SurfaceType.SNOW_SOFT, SurfaceType.SNOW_POWDER})

# Surfaces a body can slide down uncontrolled
SLIDEABLE_SURFACES = frozenset(SNOW_SURFACES | {SurfaceType.SCREE})

_FRICTION_TABLE = np.array([SURFACE_FRICTION[t] for t in SurfaceType])
_FIRMNESS_TABLE = np.array([SURFACE_FIRMNESS[t] for t in SurfaceType])

NO_OVERRIDE = -1


@dataclass
class Environment:
    """Weather snapshot pushed by the environment service."""

    base_temperature: float = -5.0
    """Air temperature in °C at the snow line."""

    lapse_rate: float = 0.65
    """Temperature drop in °C per 100 m of elevation gain."""

    sun_altitude: float = 35.0
    """Sun elevation above the horizon in degrees."""

    sun_azimuth: float = 180.0
    """Compass bearing of the sun in degrees (0=North, 90=East)."""

    hours_since_precipitation: float = 72.0
    last_precipitation: PrecipitationType = PrecipitationType.NONE
    is_precipitating: bool = False

    @property
    def is_snowing(self) -> bool:
        return self.is_precipitating and self.last_precipitation == PrecipitationType.SNOW


@dataclass(frozen=True)
class SurfaceConfig:
    """Elevation and threshold settings for surface classification."""

    snow_line: float = 2800.0
    """Elevation above which snow cover is assumed."""

    permanent_snow_line: float = 3500.0
    """Elevation at which snow cover reaches full depth year-round."""

    max_snow_slope: float = 50.0
    """Slopes steeper than this (degrees) cannot hold snow."""

    scree_slope: float = 30.0
    softening_temperature: float = -2.0
    fresh_snow_hours: float = 24.0
    moisture_hours: float = 12.0
    wet_drainage: float = 0.5
    steep_ice_drainage: float = 0.3
    max_snow_depth: float = 2.0

    def __post_init__(self):
        if self.permanent_snow_line <= self.snow_line:
            raise ValueError(
                f"permanent_snow_line {self.permanent_snow_line} must be above snow_line {self.snow_line}"
            )


@dataclass
class SurfaceMaterial:
    """Per-cell material state for one chunk; replaced wholesale on reclassification."""

    surface_type: np.ndarray
    friction: np.ndarray
    firmness: np.ndarray
    snow_depth: np.ndarray
    ice_probability: np.ndarray
    sun_exposure: np.ndarray
    temperature: np.ndarray


def cell_temperature(elevation, environment: Environment, config: SurfaceConfig):
    """Air temperature at an elevation using a linear lapse rate from the snow line."""
    return environment.base_temperature - (
        (np.asarray(elevation) - config.snow_line) / 100.0
    ) * environment.lapse_rate


def sun_direction(environment: Environment) -> np.ndarray:
    """Unit vector (x, y, z) pointing at the sun; +x east, -z north."""
    alt = np.radians(environment.sun_altitude)
    az = np.radians(environment.sun_azimuth)
    return np.array([np.cos(alt) * np.sin(az), np.sin(alt), -np.cos(alt) * np.cos(az)])


def sun_exposure(normals: np.ndarray, environment: Environment) -> np.ndarray:
    """Direct-sun fraction per cell from the surface normal; zero at night."""
    normals = np.asarray(normals)
    if environment.sun_altitude <= 0.0:
        return np.zeros(normals.shape[0])
    return np.clip(normals @ sun_direction(environment), 0.0, 1.0)


def ice_probability(
    temperature: np.ndarray,
    shade: np.ndarray,
    drainage: np.ndarray,
    aspect: np.ndarray,
    environment: Environment,
) -> np.ndarray:
    """
    Likelihood that a snow surface has glazed to ice.

    Combines recent-melt evidence (refrozen rain, or freeze-thaw near 0 °C),
    shade, drainage and a bonus for north-facing slopes.
    """
    temperature = np.asarray(temperature)
    refrozen_rain = (environment.last_precipitation == PrecipitationType.RAIN) & (temperature <= 0.0)
    freeze_thaw = 0.6 * np.clip(1.0 - np.abs(temperature) / 5.0, 0.0, 1.0)
    melt = np.where(refrozen_rain, 1.0, freeze_thaw)
    north = np.maximum(0.0, np.cos(np.radians(aspect)))
    return np.clip(0.4 * melt + 0.25 * shade + 0.2 * drainage + 0.15 * north, 0.0, 1.0)


@dataclass
class SurfaceOverlay:
    """Colour-keyed surface override raster covering the world bounds."""

    image: np.ndarray
    """(rows, cols, 3) RGB in [0, 1]; row 0 is the minimum-z edge."""

    colors: Dict[SurfaceType, Tuple[float, float, float]] = field(default_factory=dict)
    """Normalized RGB key per surface type."""

    match_distance: float = 0.1

    @classmethod
    def from_color_map(cls, image: np.ndarray, color_map: Dict[str, Tuple[int, int, int]], match_distance=0.1):
        """Build an overlay from a name -> 0-255 RGB table; unknown names are skipped."""
        colors = {}
        for name, rgb in color_map.items():
            surface = SurfaceType.__members__.get(name.upper())
            if surface is None:
                logger.warning(f"Overlay colour '{name}' does not name a surface type, skipping")
                continue
            colors[surface] = tuple(float(c) / 255.0 for c in rgb)
        return cls(image=image, colors=colors, match_distance=match_distance)

    def sample(self, u: np.ndarray, v: np.ndarray) -> np.ndarray:
        """
        Surface override codes at fractional image coordinates.

        Args:
            u: Fraction across the bounds in x (0-1)
            v: Fraction across the bounds in z (0-1)

        Returns:
            int array of SurfaceType values, NO_OVERRIDE where no key colour is near
        """
        u = np.asarray(u, dtype=np.float64)
        v = np.asarray(v, dtype=np.float64)
        codes = np.full(u.shape, NO_OVERRIDE, dtype=np.int16)
        if not self.colors:
            return codes

        rows, cols = self.image.shape[:2]
        col = np.clip(np.rint(u * (cols - 1)), 0, cols - 1).astype(int)
        row = np.clip(np.rint(v * (rows - 1)), 0, rows - 1).astype(int)
        pixels = self.image[row, col]

        keys = list(self.colors.keys())
        palette = np.array([self.colors[k] for k in keys])
        distances = np.linalg.norm(pixels[..., None, :] - palette, axis=-1)
        nearest = np.argmin(distances, axis=-1)
        matched = np.take_along_axis(distances, nearest[..., None], axis=-1)[..., 0] < self.match_distance

        key_values = np.array([int(k) for k in keys], dtype=np.int16)
        codes[matched] = key_values[nearest[matched]]
        return codes


def classify_surfaces(
    geometry: "CellGeometry",
    environment: Environment,
    config: Optional[SurfaceConfig] = None,
    overlay_codes: Optional[np.ndarray] = None,
) -> SurfaceMaterial:
    """
    Classify the surface material of every cell in a chunk.

    Decision order:
        1. Below the snow line: wet rock, scree, ice, dry rock
        2. Above the snow line but steeper than max_snow_slope: ice, mixed, rock
        3. Otherwise snow: powder, ice, soft, firm

    Args:
        geometry: Geometry of the chunk (read only)
        environment: Current weather snapshot
        config: Surface settings (default: SurfaceConfig())
        overlay_codes: Optional per-cell override codes (NO_OVERRIDE to keep computed)

    Returns:
        SurfaceMaterial
    """
    if config is None:
        config = SurfaceConfig()

    elevation = geometry.elevation
    slope = geometry.slope
    drainage = geometry.drainage

    temperature = cell_temperature(elevation, environment, config)
    exposure = sun_exposure(geometry.normal, environment)
    ice_prob = ice_probability(temperature, 1.0 - exposure, drainage, geometry.aspect, environment)

    recently_wet = (
        environment.last_precipitation != PrecipitationType.NONE
        and environment.hours_since_precipitation <= config.moisture_hours
    )
    moist = (drainage > config.wet_drainage) | environment.is_precipitating | recently_wet
    freezing = temperature <= 0.0
    fresh_snow = environment.is_snowing or (
        environment.last_precipitation == PrecipitationType.SNOW
        and environment.hours_since_precipitation <= config.fresh_snow_hours
    )

    below = elevation < config.snow_line
    steep = ~below & (slope > config.max_snow_slope)
    snow = ~below & ~steep

    conditions = [
        below & moist & ~freezing,
        below & (slope > config.scree_slope),
        below & moist & freezing,
        below,
        steep & freezing & (drainage > config.steep_ice_drainage),
        steep & freezing,
        steep,
        snow & fresh_snow,
        snow & (ice_prob > 0.5),
        snow & (temperature > config.softening_temperature),
    ]
    choices = [
        SurfaceType.ROCK_WET,
        SurfaceType.SCREE,
        SurfaceType.ICE,
        SurfaceType.ROCK_DRY,
        SurfaceType.ICE,
        SurfaceType.MIXED,
        SurfaceType.ROCK,
        SurfaceType.SNOW_POWDER,
        SurfaceType.ICE,
        SurfaceType.SNOW_SOFT,
    ]
    surface = np.select(
        [np.broadcast_to(c, elevation.shape) for c in conditions],
        [int(c) for c in choices],
        default=int(SurfaceType.SNOW_FIRM),
    ).astype(np.int8)

    if overlay_codes is not None:
        override = overlay_codes >= 0
        surface[override] = overlay_codes[override]
        logger.debug(f"Overlay forced {int(override.sum())} of {surface.size} cells")

    is_snow = np.isin(surface, [int(s) for s in SNOW_SURFACES])
    coverage = np.clip(
        (elevation - config.snow_line) / (config.permanent_snow_line - config.snow_line), 0.1, 1.0
    )
    snow_depth = np.where(is_snow, config.max_snow_depth * coverage, 0.0)

    return SurfaceMaterial(
        surface_type=surface,
        friction=_FRICTION_TABLE[surface],
        firmness=_FIRMNESS_TABLE[surface],
        snow_depth=snow_depth,
        ice_probability=ice_prob,
        sun_exposure=exposure,
        temperature=np.asarray(temperature, dtype=np.float64),
    )

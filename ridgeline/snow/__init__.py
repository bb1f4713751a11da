"""
Snow and surface material processing.

This module provides utilities for classifying surface materials:
- Surface type classification from geometry and weather
- Colour-keyed surface overlays
- Sun exposure, temperature and ice probability estimates
"""

from .surfaces import (
    SurfaceType,
    PrecipitationType,
    Environment,
    SurfaceConfig,
    SurfaceMaterial,
    SurfaceOverlay,
    SURFACE_FRICTION,
    SURFACE_FIRMNESS,
    SLIDEABLE_SURFACES,
    classify_surfaces,
    cell_temperature,
    ice_probability,
    sun_exposure,
)

__all__ = [
    "SurfaceType",
    "PrecipitationType",
    "Environment",
    "SurfaceConfig",
    "SurfaceMaterial",
    "SurfaceOverlay",
    "SURFACE_FRICTION",
    "SURFACE_FIRMNESS",
    "SLIDEABLE_SURFACES",
    "classify_surfaces",
    "cell_temperature",
    "ice_probability",
    "sun_exposure",
]

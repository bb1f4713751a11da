"""
Iso-elevation contour extraction for topographic map rendering.

Contours are traced per chunk with marching squares over the quads formed by
each 2x2 block of neighbouring grid points. Output is an unordered bag of
world-space line segments per level; segments are not stitched into
polylines and never cross chunk seams.

Corner bits: top-left=1, top-right=2, bottom-right=4, bottom-left=8, where
"top" is the lower z row of the quad. A corner is inside when its height is
``>= level``. Quad edges: 0=top, 1=right, 2=bottom, 3=left.
"""

import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from ridgeline.terrain.chunks import TerrainChunk

logger = logging.getLogger(__name__)

# Case -> edge pairs. Saddles (5 and 10) always cut off the two inside
# corners separately.
SEGMENT_TABLE: Dict[int, Tuple[Tuple[int, int], ...]] = {
    1: ((3, 0),),
    2: ((0, 1),),
    3: ((3, 1),),
    4: ((1, 2),),
    5: ((3, 0), (1, 2)),
    6: ((0, 2),),
    7: ((3, 2),),
    8: ((2, 3),),
    9: ((0, 2),),
    10: ((0, 1), (2, 3)),
    11: ((1, 2),),
    12: ((1, 3),),
    13: ((0, 1),),
    14: ((0, 3),),
}


@dataclass
class ContourLine:
    """Segments at one elevation; not a closed polygon."""

    elevation: float
    is_major: bool
    segments: np.ndarray
    """(K, 2, 2) array of world (x, z) point pairs."""

    def __len__(self):
        return len(self.segments)


def contour_levels(
    min_elevation: float,
    max_elevation: float,
    minor_interval: float = 10.0,
    major_interval: float = 50.0,
) -> List[Tuple[float, bool]]:
    """
    Contour elevations inside a range with their major/minor tag.

    Levels are the multiples of minor_interval within [min, max]; a level is
    major when it is also a multiple of major_interval.
    """
    if minor_interval <= 0 or major_interval <= 0:
        raise ValueError("Contour intervals must be positive")
    if max_elevation < min_elevation:
        return []

    first = int(math.ceil(min_elevation / minor_interval))
    last = int(math.floor(max_elevation / minor_interval))
    levels = []
    for k in range(first, last + 1):
        level = k * minor_interval
        ratio = level / major_interval
        levels.append((float(level), bool(abs(ratio - round(ratio)) < 1e-9)))
    return levels


def _interpolate(a: np.ndarray, b: np.ndarray, level: float) -> np.ndarray:
    """Fraction along a -> b where the level is crossed; 0.5 when the ends are equal."""
    delta = b - a
    flat = np.abs(delta) < 1e-12
    return np.where(flat, 0.5, (level - a) / np.where(flat, 1.0, delta))


def trace_chunk_segments(chunk: TerrainChunk, level: float) -> np.ndarray:
    """
    Marching-squares segments for one level over one chunk.

    Returns:
        (K, 2, 2) array of world (x, z) point pairs (K may be zero)
    """
    grid = chunk.height_grid
    tl, tr = grid[:-1, :-1], grid[:-1, 1:]
    bl, br = grid[1:, :-1], grid[1:, 1:]

    case = (
        (tl >= level).astype(np.int8)
        | ((tr >= level).astype(np.int8) << 1)
        | ((br >= level).astype(np.int8) << 2)
        | ((bl >= level).astype(np.int8) << 3)
    )
    active = (case != 0) & (case != 15)
    if not active.any():
        return np.empty((0, 2, 2))

    zs, xs = np.nonzero(active)
    cases = case[zs, xs]
    a_tl, a_tr, a_bl, a_br = tl[zs, xs], tr[zs, xs], bl[zs, xs], br[zs, xs]
    gx, gz = xs.astype(np.float64), zs.astype(np.float64)

    edges = (
        np.stack([gx + _interpolate(a_tl, a_tr, level), gz], axis=1),
        np.stack([gx + 1.0, gz + _interpolate(a_tr, a_br, level)], axis=1),
        np.stack([gx + _interpolate(a_bl, a_br, level), gz + 1.0], axis=1),
        np.stack([gx, gz + _interpolate(a_tl, a_bl, level)], axis=1),
    )

    pieces = []
    for code, pairs in SEGMENT_TABLE.items():
        mask = cases == code
        if not mask.any():
            continue
        for start, end in pairs:
            pieces.append(np.stack([edges[start][mask], edges[end][mask]], axis=1))

    segments = np.concatenate(pieces, axis=0)
    origin = np.asarray(chunk.origin)
    return origin + segments * chunk.cell_size


def trace_contours(
    world,
    min_elevation: Optional[float] = None,
    max_elevation: Optional[float] = None,
    minor_interval: float = 10.0,
    major_interval: float = 50.0,
) -> List[ContourLine]:
    """
    Trace contour lines across every loaded chunk of a world.

    Args:
        world: TerrainWorld
        min_elevation: Lowest level considered (default: world minimum)
        max_elevation: Highest level considered (default: world maximum)
        minor_interval: Spacing between contour levels
        major_interval: Spacing between major (emphasised) levels

    Returns:
        One ContourLine per level that produced at least one segment, lowest first
    """
    low, high = world.elevation_range()
    if min_elevation is None:
        min_elevation = low
    if max_elevation is None:
        max_elevation = high

    chunks = [world.chunks[c] for c in sorted(world.chunks)]
    lines = []
    for level, is_major in contour_levels(min_elevation, max_elevation, minor_interval, major_interval):
        pieces = [
            trace_chunk_segments(chunk, level)
            for chunk in chunks
            if chunk.min_elevation <= level <= chunk.max_elevation
        ]
        pieces = [p for p in pieces if len(p)]
        if not pieces:
            continue
        lines.append(ContourLine(elevation=level, is_major=is_major, segments=np.concatenate(pieces, axis=0)))

    logger.debug(
        f"Traced {len(lines)} contour levels, {sum(len(line) for line in lines)} segments"
    )
    return lines

"""
Slide-path prediction.

Walks a point downhill across analyzed terrain in fixed steps to predict
where an uncontrolled descent would end. Used by risk checks only; it is a
deterministic heuristic and does not reproduce the real-time slide physics.
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)


class SlideOutcome(Enum):
    STOPPED = "stopped"
    """Slope dropped below the slide threshold."""

    CLIFF = "cliff"
    """Reached a cliff cell; treated as fatal by risk checks."""

    OFF_TERRAIN = "off_terrain"
    UNRESOLVED = "unresolved"
    """Step budget exhausted."""


@dataclass(frozen=True)
class SlideConfig:
    step_distance: float = 1.0
    max_steps: int = 500

    def __post_init__(self):
        if self.step_distance <= 0:
            raise ValueError(f"step_distance must be positive, got {self.step_distance}")
        if self.max_steps < 1:
            raise ValueError(f"max_steps must be at least 1, got {self.max_steps}")


@dataclass
class SlidePath:
    """Ordered world points (x, y, z) visited by a predicted slide."""

    points: np.ndarray
    outcome: SlideOutcome

    def __len__(self):
        return len(self.points)

    @property
    def end_point(self) -> Optional[Tuple[float, float, float]]:
        if len(self.points) == 0:
            return None
        return tuple(float(v) for v in self.points[-1])

    @property
    def length(self) -> float:
        if len(self.points) < 2:
            return 0.0
        return float(np.linalg.norm(np.diff(self.points, axis=0), axis=1).sum())

    @property
    def is_fatal(self) -> bool:
        return self.outcome is SlideOutcome.CLIFF


def simulate_slide(
    world,
    start_x: float,
    start_z: float,
    initial_direction: Optional[Tuple[float, float]] = None,
    config: Optional[SlideConfig] = None,
) -> SlidePath:
    """
    Predict the path of an uncontrolled slide from a start point.

    Each step checks, in order: off terrain, cliff cell, slope below
    slide_min; otherwise the point moves step_distance along the current
    cell's downhill direction (the initial direction, when given, is used
    for the first step only).

    Args:
        world: Analyzed TerrainWorld
        start_x: World x of the start point
        start_z: World z of the start point
        initial_direction: Optional (x, z) direction for the first step
        config: SlideConfig

    Returns:
        SlidePath with every on-terrain point visited, start included
    """
    config = config or SlideConfig()
    slide_min = world.thresholds.slide_min

    first_direction = None
    if initial_direction is not None:
        norm = math.hypot(initial_direction[0], initial_direction[1])
        if norm > 1e-9:
            first_direction = (initial_direction[0] / norm, initial_direction[1] / norm)

    x, z = float(start_x), float(start_z)
    points = []
    outcome = SlideOutcome.UNRESOLVED
    for step in range(config.max_steps):
        cell = world.cell_at(x, z)
        if cell is None:
            outcome = SlideOutcome.OFF_TERRAIN
            break

        points.append((x, world.sample_height(x, z), z))
        if cell.is_cliff:
            outcome = SlideOutcome.CLIFF
            break
        if cell.slope_angle < slide_min:
            outcome = SlideOutcome.STOPPED
            break

        if step == 0 and first_direction is not None:
            dx, dz = first_direction
        else:
            dx, dz = cell.downhill_direction
        x += dx * config.step_distance
        z += dz * config.step_distance

    logger.debug(f"Slide from ({start_x:.1f}, {start_z:.1f}): {outcome.value} after {len(points)} points")
    return SlidePath(points=np.array(points, dtype=np.float64).reshape(-1, 3), outcome=outcome)

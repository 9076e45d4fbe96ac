"""
Cannon Goal Solvers - Analytic Grid Search

Sweeps every (angle, power) pair on a fixed grid, runs the trajectory model
for each and keeps the pair landing closest to the target.

Cost is O(angles × powers × steps): about 76 × 71 forward simulations on
the default grid. ``AnalyticSolver.propose`` yields to the event loop after
every angle so a running game keeps stepping while it searches.
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from typing import Iterator, Optional, Sequence, Tuple

import numpy as np

from game.errors import NoSolutionFound
from physics_engine.ballistics import (
    MAX_STEPS,
    POWER_SCALE,
    STEP_RATE,
    Environment,
    ShotParameters,
    compute_launch_velocity,
    simulate,
)
from solvers.base import Bounds, ShotRequest, ShotSolver

logger = logging.getLogger(__name__)

DEFAULT_ANGLE_BOUNDS = Bounds(10.0, 85.0)
DEFAULT_POWER_BOUNDS = Bounds(100.0, 800.0)
ACCEPTANCE_RADIUS = 50.0
ANGLE_STEP = 1.0
POWER_STEP = 10.0


@dataclass(frozen=True)
class SolverResult:
    """Best grid point and how far from the target it lands."""
    angle: float
    power: float
    miss_distance: float

    @property
    def shot(self) -> ShotParameters:
        return ShotParameters(angle=self.angle, power=self.power)


def _grid(bounds: Bounds, step: float) -> np.ndarray:
    # Inclusive of the upper bound when it falls on the grid
    count = int(math.floor((bounds.high - bounds.low) / step + 1e-9)) + 1
    return bounds.low + step * np.arange(count)


def sweep_angles(
    target_x: float,
    environment: Environment,
    cannon_origin: Sequence[float],
    angle_bounds: Bounds = DEFAULT_ANGLE_BOUNDS,
    power_bounds: Bounds = DEFAULT_POWER_BOUNDS,
    angle_step: float = ANGLE_STEP,
    power_step: float = POWER_STEP,
    max_steps: int = MAX_STEPS,
    power_scale: float = POWER_SCALE,
    step_rate: int = STEP_RATE,
) -> Iterator[Tuple[float, Optional[float], float]]:
    """Yield ``(angle, best_power, best_distance)`` for each grid angle.

    ``best_power`` is None (distance inf) when no power at that angle lands
    within the step budget. Ties keep the lowest power.
    """
    powers = _grid(power_bounds, power_step)
    for angle in _grid(angle_bounds, angle_step):
        best_power = None
        best_distance = math.inf
        for power in powers:
            velocity = compute_launch_velocity(angle, power, power_scale)
            landing = simulate(
                cannon_origin, velocity, environment, max_steps=max_steps, step_rate=step_rate,
            )
            if landing is None:
                continue
            distance = abs(landing - target_x)
            if distance < best_distance:
                best_distance = distance
                best_power = float(power)
        yield float(angle), best_power, best_distance


class _BestShot:
    """Running minimum over the per-angle results."""

    def __init__(self):
        self.angle = None
        self.power = None
        self.distance = math.inf

    def offer(self, angle: float, power: Optional[float], distance: float) -> None:
        if distance < self.distance:
            self.angle, self.power, self.distance = angle, power, distance

    def result(self, acceptance_radius: float) -> Optional[SolverResult]:
        if self.power is None or not self.distance < acceptance_radius:
            return None
        return SolverResult(angle=self.angle, power=self.power, miss_distance=self.distance)


def solve(
    target_x: float,
    environment: Environment,
    cannon_origin: Sequence[float],
    angle_bounds: Bounds = DEFAULT_ANGLE_BOUNDS,
    power_bounds: Bounds = DEFAULT_POWER_BOUNDS,
    acceptance_radius: float = ACCEPTANCE_RADIUS,
    **grid,
) -> Optional[SolverResult]:
    """Find the grid shot landing closest to ``target_x``.

    Args:
        target_x: Goal centre.
        environment: Gravity, wind and ground height.
        cannon_origin: Launch position [x, y].
        angle_bounds: Degrees, swept in ``angle_step`` increments.
        power_bounds: Swept in ``power_step`` increments.
        acceptance_radius: Best distance must be strictly below this.
        **grid: ``angle_step``, ``power_step``, ``max_steps``, ``power_scale``,
            ``step_rate``.

    Returns:
        The best SolverResult, or None when nothing lands close enough.
        Ties keep the first angle swept.
    """
    best = _BestShot()
    for angle, power, distance in sweep_angles(
        target_x, environment, cannon_origin, angle_bounds, power_bounds, **grid
    ):
        best.offer(angle, power, distance)
    return best.result(acceptance_radius)


class AnalyticSolver(ShotSolver):
    """Grid-search solver run as a yielding task."""

    name = "analytic"

    def __init__(
        self,
        angle_bounds: Bounds = DEFAULT_ANGLE_BOUNDS,
        power_bounds: Bounds = DEFAULT_POWER_BOUNDS,
        acceptance_radius: float = ACCEPTANCE_RADIUS,
        angle_step: float = ANGLE_STEP,
        power_step: float = POWER_STEP,
        max_steps: int = MAX_STEPS,
        power_scale: float = POWER_SCALE,
        step_rate: int = STEP_RATE,
    ):
        self.angle_bounds = angle_bounds
        self.power_bounds = power_bounds
        self.acceptance_radius = acceptance_radius
        self.grid = {
            "angle_step": angle_step,
            "power_step": power_step,
            "max_steps": max_steps,
            "power_scale": power_scale,
            "step_rate": step_rate,
        }

    @classmethod
    def from_config(cls, config) -> "AnalyticSolver":
        return cls(
            angle_bounds=config.angle_bounds,
            power_bounds=config.power_bounds,
            acceptance_radius=config.acceptance_radius,
            angle_step=config.angle_step,
            power_step=config.power_step,
            max_steps=config.max_steps,
            power_scale=1.0 / config.step_rate,
            step_rate=config.step_rate,
        )

    def solve(self, request: ShotRequest) -> Optional[SolverResult]:
        """Synchronous sweep, same result as ``propose``."""
        return solve(
            request.target_x,
            request.environment,
            request.cannon_origin,
            self.angle_bounds,
            self.power_bounds,
            self.acceptance_radius,
            **self.grid,
        )

    async def propose(self, request: ShotRequest) -> ShotParameters:
        best = _BestShot()
        for angle, power, distance in sweep_angles(
            request.target_x,
            request.environment,
            request.cannon_origin,
            self.angle_bounds,
            self.power_bounds,
            **self.grid,
        ):
            best.offer(angle, power, distance)
            await asyncio.sleep(0)

        result = best.result(self.acceptance_radius)
        if result is None:
            logger.info("No shot within %.1f px (best %.1f)", self.acceptance_radius, best.distance)
            raise NoSolutionFound(best.distance)
        logger.debug("Analytic shot %s misses by %.2f px", result.shot, result.miss_distance)
        return result.shot

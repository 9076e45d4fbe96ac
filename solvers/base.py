"""
Cannon Goal Solvers - Shared Interface

Both solving strategies take a ShotRequest snapshot of the session and
return ShotParameters, raising a SolverError subclass when they cannot.
"""

import abc
from dataclasses import dataclass
from typing import Tuple

from physics_engine.ballistics import Environment, ShotParameters


@dataclass(frozen=True)
class Bounds:
    """Closed interval used for clamping and min-max scaling."""
    low: float
    high: float

    def __post_init__(self):
        if self.high <= self.low:
            raise ValueError(f"Empty bounds [{self.low}, {self.high}]")

    def clamp(self, value: float) -> float:
        return min(max(value, self.low), self.high)

    def normalize(self, value: float, out: Tuple[float, float] = (-1.0, 1.0)) -> float:
        """Map [low, high] linearly onto ``out``."""
        lo, hi = out
        return lo + (value - self.low) * (hi - lo) / (self.high - self.low)

    def denormalize(self, value: float, out: Tuple[float, float] = (-1.0, 1.0)) -> float:
        """Inverse of ``normalize``."""
        lo, hi = out
        return self.low + (value - lo) * (self.high - self.low) / (hi - lo)


@dataclass(frozen=True)
class ShotRequest:
    """Everything a solver may read about the current round."""
    shot: ShotParameters
    target_x: float
    target_y: float
    environment: Environment
    cannon_origin: Tuple[float, float]


class ShotSolver(abc.ABC):
    """Produces a shot for the cannon to fire."""

    name = "solver"

    @abc.abstractmethod
    async def propose(self, request: ShotRequest) -> ShotParameters:
        """Return the shot to fire.

        Raises:
            SolverError: when no shot can be proposed.
        """

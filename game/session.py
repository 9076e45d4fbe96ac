"""
Cannon Goal - Session State

Everything a match owns lives in one GameSession value: environment, goal,
shot parameters, the current round and its generation counter.
"""

import enum
from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np

from game.config import GameConfig
from physics_engine.ballistics import Environment, ShotParameters
from physics_engine.collision import GoalGeometry, Target, build_goal
from solvers.base import ShotRequest


class MatchState(enum.Enum):
    IDLE = "idle"
    ARMED = "armed"
    IN_FLIGHT = "in_flight"
    RESOLVED = "resolved"


class Outcome(enum.Enum):
    SUCCESS = "success"
    MISS_TIMEOUT = "miss_timeout"
    OUT_OF_BOUNDS = "out_of_bounds"


OUTCOME_MESSAGES = {
    Outcome.SUCCESS: "Success!",
    Outcome.MISS_TIMEOUT: "Missed!",
    Outcome.OUT_OF_BOUNDS: "Out of bounds!",
}


@dataclass(frozen=True)
class Notification:
    """What the UI shows after a transition."""
    message: str
    outcome: Optional[Outcome] = None


@dataclass(frozen=True)
class MatchRound:
    """One fire-to-resolution cycle."""
    generation: int
    shot: ShotParameters
    fired_at: float
    deadline: float


@dataclass
class GameSession:
    config: GameConfig
    environment: Environment
    target: Target
    goal: GoalGeometry
    shot: ShotParameters
    rng: np.random.Generator = field(default_factory=np.random.default_rng)
    state: MatchState = MatchState.IDLE
    outcome: Optional[Outcome] = None
    round: Optional[MatchRound] = None
    projectile: Optional[int] = None
    generation: int = 0
    busy: bool = False

    @classmethod
    def create(cls, config: GameConfig, seed: int = None) -> "GameSession":
        """Session with the configured defaults (no randomization yet)."""
        environment = config.default_environment()
        target = config.default_target()
        return cls(
            config=config,
            environment=environment,
            target=target,
            goal=build_goal(target, environment.ground_y),
            shot=config.default_shot(),
            rng=np.random.default_rng(seed),
        )

    def shot_request(self) -> ShotRequest:
        return ShotRequest(
            shot=self.shot,
            target_x=self.target.x,
            target_y=self.goal.sensor.cy,
            environment=self.environment,
            cannon_origin=self.config.cannon_origin,
        )

    def draw_layout(self) -> Tuple[Target, GoalGeometry, Environment]:
        """Draw a goal position and wind from the configured ranges.

        Nothing on the session changes; a layout that fails the goal
        checks raises ValueError here.
        """
        cfg = self.config
        target = cfg.make_target(self.rng.uniform(*cfg.target_x_range))
        environment = Environment(
            gravity=cfg.gravity,
            wind=float(self.rng.uniform(*cfg.wind_range)),
            ground_y=cfg.ground_y,
        )
        return target, build_goal(target, environment.ground_y), environment

    def apply_layout(self, layout: Tuple[Target, GoalGeometry, Environment]) -> None:
        self.target, self.goal, self.environment = layout

    def out_of_bounds(self, position) -> bool:
        x, y = position[0], position[1]
        cfg = self.config
        return x < 0 or x > cfg.screen_width or y > cfg.screen_height

"""
Cannon Goal - Game Configuration

Defaults mirror the original game. A YAML file (``configs/game.yaml``) and
keyword overrides are merged on top, later sources winning.
"""

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional, Tuple

import yaml

from physics_engine.ballistics import Environment, ShotParameters
from physics_engine.collision import Target
from solvers.base import Bounds

CONFIGS_DIR = Path(__file__).resolve().parent / "configs"

DEFAULT_GAME_CONFIG = {
    # Playfield
    "screen_width": 800,
    "screen_height": 600,
    "ground_thickness": 50,
    "step_rate": 60,
    # Cannon and ball
    "cannon_pos": [100.0, 530.0],
    "ball_radius": 8.0,
    "default_angle": 45.0,
    "default_power": 450.0,
    "angle_range": [10.0, 85.0],
    "power_range": [100.0, 800.0],
    # Goal
    "goal_width": 40.0,
    "goal_height": 40.0,
    "wall_thickness": 4.0,
    "default_target_x": 550.0,
    "target_x_range": [400.0, 700.0],
    # Environment (accelerations in px/s²)
    "gravity": 900.0,
    "wind_range": [-200.0, 200.0],
    # Match
    "flight_timeout": 10.0,
    # Solver
    "solver": "analytic",
    "acceptance_radius": 50.0,
    "angle_step": 1.0,
    "power_step": 10.0,
    "max_steps": 800,
    "policy_path": None,
}


@dataclass
class GameConfig:
    screen_width: int
    screen_height: int
    ground_thickness: int
    step_rate: int
    cannon_pos: list
    ball_radius: float
    default_angle: float
    default_power: float
    angle_range: list
    power_range: list
    goal_width: float
    goal_height: float
    wall_thickness: float
    default_target_x: float
    target_x_range: list
    gravity: float
    wind_range: list
    flight_timeout: float
    solver: str
    acceptance_radius: float
    angle_step: float
    power_step: float
    max_steps: int
    policy_path: Optional[str]

    @property
    def ground_y(self) -> float:
        return float(self.screen_height - self.ground_thickness)

    @property
    def cannon_origin(self) -> Tuple[float, float]:
        return float(self.cannon_pos[0]), float(self.cannon_pos[1])

    @property
    def angle_bounds(self) -> Bounds:
        return Bounds(*self.angle_range)

    @property
    def power_bounds(self) -> Bounds:
        return Bounds(*self.power_range)

    def default_environment(self) -> Environment:
        return Environment(gravity=self.gravity, wind=0.0, ground_y=self.ground_y)

    def default_target(self) -> Target:
        return self.make_target(self.default_target_x)

    def make_target(self, x: float) -> Target:
        return Target(
            x=float(x),
            half_width=self.goal_width / 2.0,
            height=self.goal_height,
            wall_thickness=self.wall_thickness,
        )

    def default_shot(self) -> ShotParameters:
        return ShotParameters(angle=self.default_angle, power=self.default_power)


def load_config(path: Path = None, **overrides) -> GameConfig:
    """Build a GameConfig from defaults, an optional YAML file and overrides."""
    data = dict(DEFAULT_GAME_CONFIG)
    if path is not None:
        with open(path) as f:
            data.update(yaml.safe_load(f) or {})
    data.update(overrides)

    known = {f.name for f in fields(GameConfig)}
    unknown = set(data) - known
    if unknown:
        raise ValueError(f"Unknown config keys: {sorted(unknown)}")

    if data["solver"] not in ("analytic", "learned"):
        raise ValueError(f"solver must be 'analytic' or 'learned', got {data['solver']!r}")
    return GameConfig(**data)


def default_config_path() -> Path:
    return CONFIGS_DIR / "game.yaml"

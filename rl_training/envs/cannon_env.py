"""
Cannon Goal RL Training - Gymnasium Environment

One shot per episode: the agent sees the encoded round, picks an angle and
power, the trajectory model lands the ball and the episode ends.

Observation space (5 floats, [-1, 1]):
    current angle, current power, target x, target y, wind
    (the same encoder the learned solver uses at play time)

Action space (2 floats, [-1, 1]):
    angle, power (decoded against the configured bounds)
"""

import gymnasium as gym
import numpy as np
from gymnasium import spaces

from game.config import GameConfig, load_config
from physics_engine.ballistics import (
    Environment,
    ShotParameters,
    compute_launch_velocity,
    simulate,
)
from physics_engine.collision import build_goal
from solvers.base import ShotRequest
from solvers.inference import POLICY_SCHEMA
from solvers.learned import FeatureBounds, decode_action, encode_features


# Default stage config (no wind, goal anywhere in the usual range)
DEFAULT_STAGE_CONFIG = {
    "target_x_range": [400.0, 700.0],
    "wind_enabled": False,
    "wind_range": [0.0, 0.0],
    "goal_width": 40.0,
}


def compute_reward(hit: bool, distance: float, half_width: float) -> float:
    """Landing reward.

    On hit, continuous quadratic in precision:
        precision = 1 - distance / half_width
        reward = 20 + 80 * precision²     (100 dead centre, 20 at the post)
    On miss, exponential decay:
        10 * exp(-distance / (2 * half_width))
    """
    half_width = max(half_width, 1e-8)
    if hit:
        precision = max(0.0, 1.0 - distance / half_width)
        return 20.0 + 80.0 * (precision ** 2)
    return float(10.0 * np.exp(-distance / (2.0 * half_width)))


class CannonEnv(gym.Env):
    """Single-shot cannon environment."""

    metadata = {"render_modes": []}

    def __init__(
        self,
        stage_config: dict = None,
        game_config: GameConfig = None,
        render_mode: str = None,
    ):
        super().__init__()

        self.config = {**DEFAULT_STAGE_CONFIG, **(stage_config or {})}
        self.game = game_config or load_config()
        self.render_mode = render_mode
        self.bounds = FeatureBounds.from_config(self.game)

        self.observation_space = spaces.Box(
            low=-1.0, high=1.0, shape=(POLICY_SCHEMA.input_size,), dtype=np.float32
        )
        self.action_space = spaces.Box(
            low=-1.0, high=1.0, shape=(POLICY_SCHEMA.output_size,), dtype=np.float32
        )

        # State
        self.environment = self.game.default_environment()
        self.target = self.game.default_target()
        self.goal = build_goal(self.target, self.environment.ground_y)
        self.shot = self.game.default_shot()

        # Stats tracking
        self.episode_count: int = 0
        self.hit_count: int = 0
        self.last_reward: float = 0.0
        self.last_landing = None

    def _randomize_target(self) -> None:
        lo, hi = self.config["target_x_range"]
        self.target = self.game.make_target(self.np_random.uniform(lo, hi))
        self.target.half_width = self.config["goal_width"] / 2.0
        self.goal = build_goal(self.target, self.environment.ground_y)

    def _randomize_wind(self) -> None:
        wind = 0.0
        if self.config["wind_enabled"]:
            wind = float(self.np_random.uniform(*self.config["wind_range"]))
        self.environment = Environment(
            gravity=self.game.gravity, wind=wind, ground_y=self.game.ground_y,
        )

    def _randomize_shot(self) -> None:
        """Slider position before the agent acts."""
        self.shot = ShotParameters(
            angle=float(self.np_random.uniform(*self.game.angle_range)),
            power=float(self.np_random.uniform(*self.game.power_range)),
        )

    def request(self) -> ShotRequest:
        return ShotRequest(
            shot=self.shot,
            target_x=self.target.x,
            target_y=self.goal.sensor.cy,
            environment=self.environment,
            cannon_origin=self.game.cannon_origin,
        )

    def _get_observation(self) -> np.ndarray:
        obs = encode_features(self.request(), self.bounds)
        # Safety net: clamp NaN/inf to prevent training crash
        return np.nan_to_num(obs, nan=0.0, posinf=1.0, neginf=-1.0).astype(np.float32)

    def reset(self, seed=None, options=None):
        super().reset(seed=seed)

        self._randomize_wind()
        self._randomize_target()
        self._randomize_shot()

        obs = self._get_observation()
        info = {
            "target_x": self.target.x,
            "wind": self.environment.wind,
        }
        return obs, info

    def step(self, action: np.ndarray):
        action = np.clip(action, -1.0, 1.0)
        shot = decode_action(action, self.bounds)

        velocity = compute_launch_velocity(shot.angle, shot.power, 1.0 / self.game.step_rate)
        landing = simulate(
            self.game.cannon_origin,
            velocity,
            self.environment,
            max_steps=self.game.max_steps,
            step_rate=self.game.step_rate,
        )
        self.last_landing = landing
        self.shot = shot

        if landing is None:
            distance = float(self.game.screen_width)
        else:
            distance = abs(landing - self.target.x)
        hit = distance <= self.target.half_width
        reward = compute_reward(hit, distance, self.target.half_width)

        self.last_reward = reward
        self.episode_count += 1
        if hit:
            self.hit_count += 1

        obs = self._get_observation()
        info = {
            "hit": hit,
            "reward": reward,
            "distance": distance,
            "landing_x": landing,
            "target_x": self.target.x,
            "wind": self.environment.wind,
            "angle": shot.angle,
            "power": shot.power,
        }
        # Episode always ends after one shot
        return obs, reward, True, False, info

    @property
    def success_rate(self) -> float:
        if self.episode_count == 0:
            return 0.0
        return self.hit_count / self.episode_count

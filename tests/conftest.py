"""
Cannon Goal Test Suite - Shared Fixtures

Provides reusable pytest fixtures and fake inference engines for all stages.
"""

import sys
import threading
from pathlib import Path

import numpy as np
import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from game.config import load_config
from game.match import MatchStateMachine
from game.session import GameSession
from physics_engine.ballistics import Environment
from physics_engine.world import PointMassWorld
from solvers.learned import FeatureBounds


CANNON_ORIGIN = (100.0, 530.0)


# ---------- Fakes ----------
class FakeClock:
    """Manually advanced clock for deadline tests."""

    def __init__(self, now: float = 0.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StaticEngine:
    """Inference engine that always returns the same outputs."""

    def __init__(self, outputs=None):
        self.outputs = outputs if outputs is not None else {"action": np.array([0.0, 0.0], dtype=np.float32)}
        self.calls = []

    def load(self, model_reference):
        return {"model": model_reference}

    def run(self, session, named_input):
        self.calls.append(named_input)
        return self.outputs


class RaisingEngine(StaticEngine):
    def run(self, session, named_input):
        raise RuntimeError("backend crashed")


class BlockingEngine(StaticEngine):
    """Engine whose run() blocks until the test releases it."""

    def __init__(self, outputs=None):
        super().__init__(outputs)
        self.started = threading.Event()
        self.release = threading.Event()

    def run(self, session, named_input):
        self.started.set()
        self.release.wait(timeout=5.0)
        return super().run(session, named_input)


# ---------- Game Fixtures ----------
@pytest.fixture
def game_config():
    """Default game configuration."""
    return load_config()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def session(game_config):
    """Fresh session with a seeded layout RNG."""
    return GameSession.create(game_config, seed=42)


@pytest.fixture
def world(session, game_config):
    return PointMassWorld(
        session.environment,
        step_rate=game_config.step_rate,
        ball_radius=game_config.ball_radius,
    )


@pytest.fixture
def match(session, world, clock):
    return MatchStateMachine(session, world, clock=clock)


@pytest.fixture
def notifications(match):
    """Every notification the match emits, in order."""
    notes = []
    match.subscribe(notes.append)
    return notes


# ---------- Physics Fixtures ----------
@pytest.fixture
def calm_env():
    """Default gravity, no wind."""
    return Environment(gravity=900.0, wind=0.0, ground_y=550.0)


@pytest.fixture
def windy_env():
    """Strong tailwind."""
    return Environment(gravity=900.0, wind=200.0, ground_y=550.0)


@pytest.fixture
def feature_bounds():
    return FeatureBounds()

"""
Cannon Physics Engine
Trajectory model, goal geometry, collision oracle and a headless world.
"""

from physics_engine.ballistics import (
    Environment,
    ShotParameters,
    STEP_RATE,
    POWER_SCALE,
    MAX_STEPS,
    simulate,
    simulate_path,
    compute_launch_velocity,
)
from physics_engine.collision import (
    Target,
    GoalGeometry,
    ContactPair,
    ContactKind,
    CollisionEvent,
    CollisionOracle,
    build_goal,
    classify,
)
from physics_engine.world import PointMassWorld, WorldSimulator

__all__ = [
    "Environment",
    "ShotParameters",
    "STEP_RATE",
    "POWER_SCALE",
    "MAX_STEPS",
    "simulate",
    "simulate_path",
    "compute_launch_velocity",
    "Target",
    "GoalGeometry",
    "ContactPair",
    "ContactKind",
    "CollisionEvent",
    "CollisionOracle",
    "build_goal",
    "classify",
    "PointMassWorld",
    "WorldSimulator",
]

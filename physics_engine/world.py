"""
Cannon Physics Engine - Headless World Simulator

Minimal stand-in for the game's rigid-body engine. Moves point-mass balls
with the same Euler step as the trajectory model, parks them on the ground,
bounces them off goal posts and reports overlaps to collision subscribers.
"""

import itertools
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Protocol

import numpy as np

from physics_engine.ballistics import STEP_RATE, Environment
from physics_engine.collision import (
    GROUND_LABEL,
    PROJECTILE_LABEL,
    ContactPair,
    GoalGeometry,
    circle_overlaps_rect,
)

BALL_RADIUS = 8.0
BALL_MASS = 1.05
RESTITUTION = 0.6


class WorldSimulator(Protocol):
    """Interface the match state machine drives."""

    def create_projectile(self, position, velocity) -> int: ...

    def destroy_projectile(self, handle: int) -> None: ...

    def set_environment(self, gravity: float, wind: float, ground_y: float = None) -> None: ...

    def set_goal(self, goal: Optional[GoalGeometry]) -> None: ...

    def subscribe_collisions(self, callback: Callable[[ContactPair], None]) -> None: ...

    def projectile_position(self, handle: int) -> Optional[np.ndarray]: ...

    def step(self) -> None: ...


@dataclass
class Projectile:
    handle: int
    position: np.ndarray
    velocity: np.ndarray
    radius: float = BALL_RADIUS
    mass: float = BALL_MASS
    resting: bool = False


class PointMassWorld:
    """Headless world: one Euler step per ``step()`` call."""

    def __init__(
        self,
        environment: Environment = None,
        step_rate: int = STEP_RATE,
        ball_radius: float = BALL_RADIUS,
    ):
        self.environment = environment or Environment()
        self.step_rate = step_rate
        self.ball_radius = ball_radius
        self.goal: Optional[GoalGeometry] = None
        self.projectiles: Dict[int, Projectile] = {}
        self._subscribers: List[Callable[[ContactPair], None]] = []
        self._handles = itertools.count(1)

        # Stats for tests and debugging
        self.created_count = 0
        self.destroyed_count = 0

    # ---------- WorldSimulator ----------
    def create_projectile(self, position, velocity) -> int:
        handle = next(self._handles)
        self.projectiles[handle] = Projectile(
            handle=handle,
            position=np.array(position, dtype=np.float64),
            velocity=np.array(velocity, dtype=np.float64),
            radius=self.ball_radius,
        )
        self.created_count += 1
        return handle

    def destroy_projectile(self, handle: int) -> None:
        if self.projectiles.pop(handle, None) is not None:
            self.destroyed_count += 1

    def set_environment(self, gravity: float, wind: float, ground_y: float = None) -> None:
        if ground_y is None:
            ground_y = self.environment.ground_y
        self.environment = Environment(gravity=gravity, wind=wind, ground_y=ground_y)

    def set_goal(self, goal: Optional[GoalGeometry]) -> None:
        self.goal = goal

    def subscribe_collisions(self, callback: Callable[[ContactPair], None]) -> None:
        self._subscribers.append(callback)

    def projectile_position(self, handle: int) -> Optional[np.ndarray]:
        projectile = self.projectiles.get(handle)
        return None if projectile is None else projectile.position.copy()

    def step(self) -> None:
        wind_x, gravity_y = self.environment.per_step(self.step_rate)
        accel = np.array([wind_x, gravity_y])
        for projectile in list(self.projectiles.values()):
            if not projectile.resting:
                projectile.position = projectile.position + projectile.velocity
                projectile.velocity = projectile.velocity + accel
            self._resolve_contacts(projectile)

    # ---------- Contacts ----------
    def _emit(self, other: str) -> None:
        contact = ContactPair(PROJECTILE_LABEL, other)
        for callback in self._subscribers:
            callback(contact)

    def _resolve_contacts(self, projectile: Projectile) -> None:
        x, y = projectile.position
        r = projectile.radius

        if self.goal is not None:
            if circle_overlaps_rect(x, y, r, self.goal.sensor):
                self._emit(self.goal.sensor.label)
            for solid in self.goal.solids:
                if circle_overlaps_rect(x, y, r, solid):
                    self._emit(solid.label)
                    self._bounce_off(projectile, solid)

        ground_y = self.environment.ground_y
        if not projectile.resting and y + r >= ground_y:
            # Park on the ground; the round then ends on its deadline
            projectile.position[1] = ground_y - r
            projectile.velocity[:] = 0.0
            projectile.resting = True
            self._emit(GROUND_LABEL)

    @staticmethod
    def _bounce_off(projectile: Projectile, solid) -> None:
        x, y = projectile.position
        vx, vy = projectile.velocity
        if solid.top <= y <= solid.bottom:
            # Side hit: push out horizontally
            if x < solid.cx:
                projectile.position[0] = solid.left - projectile.radius
            else:
                projectile.position[0] = solid.right + projectile.radius
            projectile.velocity[0] = -vx * RESTITUTION
        elif vy > 0:
            projectile.position[1] = solid.top - projectile.radius
            projectile.velocity[1] = -vy * RESTITUTION

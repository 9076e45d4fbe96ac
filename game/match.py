"""
Cannon Goal - Match State Machine

Owns the session and arbitrates every round:

    IDLE/ARMED --fire--> IN_FLIGHT --collision | out of bounds | deadline--> RESOLVED
    any state  --reset--> IDLE

Resolution is first-committer-wins. Every resolving handler checks that the
round is still in flight and that the caller's generation is the current
one, so later triggers for the same round (or triggers from a round that a
reset invalidated) do nothing.
"""

import logging
import time
from typing import Callable, List, Optional

from physics_engine.ballistics import Environment, ShotParameters, compute_launch_velocity
from physics_engine.collision import CollisionEvent, CollisionOracle, ContactKind, Target, build_goal
from physics_engine.world import WorldSimulator
from game.session import (
    OUTCOME_MESSAGES,
    GameSession,
    MatchRound,
    MatchState,
    Notification,
    Outcome,
)

logger = logging.getLogger(__name__)

Listener = Callable[[Notification], None]


class MatchStateMachine:
    """Single owner of the game session.

    All transitions run to completion on the caller's thread; the host calls
    ``tick`` once per frame after stepping the world.
    """

    def __init__(
        self,
        session: GameSession,
        world: WorldSimulator,
        oracle: CollisionOracle = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.session = session
        self.world = world
        self.oracle = oracle or CollisionOracle()
        self.clock = clock
        self._listeners: List[Listener] = []

        self.oracle.attach(world.subscribe_collisions)
        self._sync_world()

    # ---------- Read accessors ----------
    @property
    def state(self) -> MatchState:
        return self.session.state

    @property
    def outcome(self) -> Optional[Outcome]:
        return self.session.outcome

    @property
    def environment(self) -> Environment:
        return self.session.environment

    @property
    def target(self) -> Target:
        return self.session.target

    @property
    def shot(self) -> ShotParameters:
        return self.session.shot

    @property
    def generation(self) -> int:
        return self.session.generation

    @property
    def busy(self) -> bool:
        return self.session.busy

    @property
    def in_flight(self) -> bool:
        return self.session.state is MatchState.IN_FLIGHT

    # ---------- Notifications ----------
    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def report(self, message: str, outcome: Optional[Outcome] = None) -> None:
        notification = Notification(message, outcome)
        for listener in self._listeners:
            listener(notification)

    # ---------- Transitions ----------
    def configure(
        self,
        shot: ShotParameters = None,
        target: Target = None,
        environment: Environment = None,
    ) -> bool:
        """Update round parameters between flights. Returns False if rejected."""
        s = self.session
        if s.state is MatchState.IN_FLIGHT or s.busy:
            logger.debug("configure rejected in %s (busy=%s)", s.state.value, s.busy)
            return False

        cfg = s.config
        new_shot = s.shot
        if shot is not None:
            new_shot = ShotParameters(
                angle=cfg.angle_bounds.clamp(shot.angle),
                power=cfg.power_bounds.clamp(shot.power),
            )
        new_target = target or s.target
        new_environment = environment or s.environment
        goal = s.goal
        if target is not None or environment is not None:
            # Raises before anything is replaced if the layout is invalid
            goal = build_goal(new_target, new_environment.ground_y)

        s.shot, s.target, s.goal, s.environment = new_shot, new_target, goal, new_environment
        self._sync_world()

        s.state = MatchState.ARMED
        s.outcome = None
        self.report("")
        return True

    def fire(self) -> bool:
        """Launch one projectile. Returns False if rejected."""
        s = self.session
        if s.state not in (MatchState.IDLE, MatchState.ARMED) or s.busy:
            logger.debug("fire rejected in %s (busy=%s)", s.state.value, s.busy)
            return False

        cfg = s.config
        velocity = compute_launch_velocity(s.shot.angle, s.shot.power, 1.0 / cfg.step_rate)
        s.projectile = self.world.create_projectile(cfg.cannon_origin, velocity)

        now = self.clock()
        s.generation += 1
        s.round = MatchRound(
            generation=s.generation,
            shot=s.shot,
            fired_at=now,
            deadline=now + cfg.flight_timeout,
        )
        s.state = MatchState.IN_FLIGHT
        s.outcome = None
        logger.debug("Round %d fired: %s", s.generation, s.shot)
        self.report("")
        return True

    def on_collision(self, event: CollisionEvent) -> bool:
        s = self.session
        if (
            s.state is not MatchState.IN_FLIGHT
            or event.kind is not ContactKind.GOAL_ENTER
            or event.generation != s.generation
        ):
            return False
        self._resolve(Outcome.SUCCESS)
        return True

    def on_tick(self, projectile_position) -> bool:
        s = self.session
        if s.state is not MatchState.IN_FLIGHT or projectile_position is None:
            return False
        if not s.out_of_bounds(projectile_position):
            return False
        self._resolve(Outcome.OUT_OF_BOUNDS)
        return True

    def on_deadline(self, generation: int) -> bool:
        s = self.session
        if s.state is not MatchState.IN_FLIGHT or generation != s.generation:
            logger.debug("Ignoring deadline for round %d", generation)
            return False
        self._resolve(Outcome.MISS_TIMEOUT)
        return True

    def tick(self, now: float = None) -> MatchState:
        """Per-frame transition function.

        Consumes this frame's goal contacts, then the out-of-bounds check,
        then the deadline, stopping at the first one that resolves the round.
        """
        s = self.session
        if s.state is not MatchState.IN_FLIGHT:
            self.oracle.poll(None)
            return s.state

        for event in self.oracle.poll(s.generation):
            self.on_collision(event)

        if self.in_flight:
            self.on_tick(self.world.projectile_position(s.projectile))

        if self.in_flight:
            now = self.clock() if now is None else now
            if now >= s.round.deadline:
                self.on_deadline(s.round.generation)

        return s.state

    def reset(self) -> None:
        """Abandon the current round and start over with a fresh layout.

        Pending deadlines and solver results become stale because the
        generation moves on; they are not cancelled.
        """
        s = self.session
        # Draw first: a failed draw leaves the current round untouched
        layout = s.draw_layout()
        self._destroy_projectile()
        s.generation += 1
        s.apply_layout(layout)
        self._sync_world()

        s.state = MatchState.IDLE
        s.outcome = None
        s.round = None
        logger.debug("Reset to generation %d (target x=%.1f, wind=%.1f)",
                     s.generation, s.target.x, s.environment.wind)
        self.report("")

    # ---------- Solver guard ----------
    def begin_solve(self) -> Optional[int]:
        """Mark a solver call outstanding. Returns its generation token or None."""
        s = self.session
        if s.busy or s.state is MatchState.IN_FLIGHT:
            return None
        s.busy = True
        self.report("AI is thinking...")
        return s.generation

    def end_solve(self) -> None:
        self.session.busy = False

    # ---------- Internals ----------
    def _resolve(self, outcome: Outcome) -> None:
        s = self.session
        s.state = MatchState.RESOLVED
        s.outcome = outcome
        self._destroy_projectile()
        logger.debug("Round %d resolved: %s", s.generation, outcome.value)
        self.report(OUTCOME_MESSAGES[outcome], outcome)

    def _destroy_projectile(self) -> None:
        s = self.session
        if s.projectile is not None:
            self.world.destroy_projectile(s.projectile)
            s.projectile = None

    def _sync_world(self) -> None:
        s = self.session
        self.world.set_environment(
            s.environment.gravity, s.environment.wind, s.environment.ground_y,
        )
        self.world.set_goal(s.goal)

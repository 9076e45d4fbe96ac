"""
Cannon Goal - Solve and Fire

Runs the configured solver as a task on the game's event loop and fires its
proposal, unless the match was reset while the solver was working.
"""

import logging
from typing import Optional

from game.config import GameConfig
from game.errors import SolverError
from game.match import MatchStateMachine
from physics_engine.ballistics import ShotParameters
from solvers.analytic import AnalyticSolver
from solvers.base import ShotSolver
from solvers.inference import PolicyEngine
from solvers.learned import FeatureBounds, LearnedPolicySolver

logger = logging.getLogger(__name__)


def make_solver(config: GameConfig) -> ShotSolver:
    """Build the solver named by ``config.solver`` (not yet loaded)."""
    if config.solver == "learned":
        return LearnedPolicySolver(PolicyEngine(), FeatureBounds.from_config(config))
    return AnalyticSolver.from_config(config)


class GameController:
    """Couples one solver to one match."""

    def __init__(self, match: MatchStateMachine, solver: ShotSolver):
        self.match = match
        self.solver = solver

    async def solve_and_fire(self) -> Optional[ShotParameters]:
        """Ask the solver for a shot and fire it.

        Returns the fired shot, or None when the request was rejected, the
        solver failed (reported through the match) or the result went stale.
        """
        token = self.match.begin_solve()
        if token is None:
            logger.debug("Solve rejected: match busy or in flight")
            return None

        request = self.match.session.shot_request()
        try:
            shot = await self.solver.propose(request)
        except SolverError as exc:
            if self.match.generation == token:
                self.match.report(str(exc))
            else:
                logger.debug("Dropping %s from a reset round", type(exc).__name__)
            return None
        finally:
            self.match.end_solve()

        if self.match.generation != token:
            logger.warning("Discarding stale %s proposal %s", self.solver.name, shot)
            return None

        self.match.configure(shot=shot)
        self.match.fire()
        return shot

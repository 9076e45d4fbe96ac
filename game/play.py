"""
Cannon Goal - Headless Player

Plays rounds against the point-mass world with a simulated 60 Hz clock and
prints every notification.

Usage:
    python -m game.play --angle 45 --power 450
    python -m game.play --solver analytic --rounds 5 --seed 7
    python -m game.play --solver learned --policy rl_training/checkpoints/policy.zip
"""

import argparse
import asyncio
import logging
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from game.config import GameConfig, default_config_path, load_config
from game.controller import GameController, make_solver
from game.errors import PolicyLoadError
from game.match import MatchStateMachine
from game.session import GameSession, MatchState, Notification
from physics_engine.ballistics import ShotParameters
from physics_engine.world import PointMassWorld
from solvers.learned import LearnedPolicySolver

console = Console()
logger = logging.getLogger("game.play")


class SimClock:
    """Simulation time advanced one frame at a time."""

    def __init__(self, step_rate: int):
        self.step_rate = step_rate
        self.frame = 0

    def advance(self) -> None:
        self.frame += 1

    def __call__(self) -> float:
        return self.frame / self.step_rate


def build_game(config: GameConfig, seed: int = None):
    """Wire session, world, clock, match and controller together."""
    session = GameSession.create(config, seed=seed)
    world = PointMassWorld(session.environment, step_rate=config.step_rate,
                           ball_radius=config.ball_radius)
    clock = SimClock(config.step_rate)
    match = MatchStateMachine(session, world, clock=clock)
    controller = GameController(match, make_solver(config))
    return match, world, clock, controller


async def run_frames(match: MatchStateMachine, world: PointMassWorld, clock: SimClock,
                     max_frames: int) -> MatchState:
    """Host loop: step the world, tick the match, yield to pending tasks."""
    for _ in range(max_frames):
        world.step()
        clock.advance()
        match.tick()
        await asyncio.sleep(0)
        if match.state is MatchState.RESOLVED:
            break
    return match.state


async def play(config: GameConfig, rounds: int, seed: int, shot: ShotParameters = None) -> list:
    match, world, clock, controller = build_game(config, seed=seed)

    def show(note: Notification) -> None:
        if note.message:
            style = "green" if note.outcome and note.outcome.value == "success" else "yellow"
            console.print(f"  [{style}]{note.message}[/{style}]")

    match.subscribe(show)

    if isinstance(controller.solver, LearnedPolicySolver) and config.policy_path:
        try:
            await controller.solver.load_async(config.policy_path)
        except PolicyLoadError as exc:
            logger.error("Policy not loaded: %s", exc)

    # Frames until the flight deadline has certainly passed
    max_frames = int(config.flight_timeout * config.step_rate) + 2
    results = []
    for i in range(rounds):
        match.reset()
        console.print(
            f"\n[bold]Round {i + 1}[/bold]: target x={match.target.x:.1f}, "
            f"wind={match.environment.wind:+.1f}"
        )
        if shot is not None:
            match.configure(shot=shot)
            match.fire()
        else:
            fired = await controller.solve_and_fire()
            if fired is None:
                results.append((i + 1, None, "no shot"))
                continue
            console.print(f"  Solver shot: angle={fired.angle:.0f}°, power={fired.power:.0f}")

        await run_frames(match, world, clock, max_frames)
        outcome = match.outcome.value if match.outcome else match.state.value
        results.append((i + 1, match.shot, outcome))

    return results


# ---------- CLI ----------
def main():
    parser = argparse.ArgumentParser(description="Cannon Goal headless player")
    parser.add_argument("--config", type=Path, default=default_config_path(),
                        help="Game config YAML")
    parser.add_argument("--solver", choices=["analytic", "learned"], default=None,
                        help="Let a solver aim (overrides config)")
    parser.add_argument("--policy", type=str, default=None,
                        help="Policy archive for the learned solver")
    parser.add_argument("--angle", type=float, default=None, help="Manual angle (degrees)")
    parser.add_argument("--power", type=float, default=None, help="Manual power")
    parser.add_argument("--rounds", type=int, default=1, help="Rounds to play")
    parser.add_argument("--seed", type=int, default=None, help="Layout RNG seed")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
    )

    overrides = {}
    if args.solver:
        overrides["solver"] = args.solver
    if args.policy:
        overrides["policy_path"] = args.policy
    config = load_config(args.config, **overrides)

    manual = None
    if args.angle is not None or args.power is not None:
        manual = ShotParameters(
            angle=args.angle if args.angle is not None else config.default_angle,
            power=args.power if args.power is not None else config.default_power,
        )

    console.print("\n[bold cyan]═══ Cannon Goal ═══[/bold cyan]")
    console.print(f"  Solver: {'manual' if manual else config.solver}")
    results = asyncio.run(play(config, args.rounds, args.seed, manual))

    table = Table(title="Results")
    table.add_column("Round", style="cyan")
    table.add_column("Angle", justify="right")
    table.add_column("Power", justify="right")
    table.add_column("Outcome")
    for number, shot, outcome in results:
        table.add_row(
            str(number),
            f"{shot.angle:.0f}°" if shot else "-",
            f"{shot.power:.0f}" if shot else "-",
            outcome,
        )
    console.print()
    console.print(table)


if __name__ == "__main__":
    main()

"""
Cannon Goal RL Training - Evaluation Script

Scores the learned policy, the analytic solver and a random baseline on the
same seeded rounds of every curriculum stage.

Usage:
    python -m rl_training.evaluate --model rl_training/checkpoints/policy.zip
    python -m rl_training.evaluate --model rl_training/checkpoints/policy.zip --episodes 200 --visualize
    python -m rl_training.evaluate --episodes 50   # analytic + random only
"""

import argparse
from pathlib import Path

import numpy as np
import matplotlib
matplotlib.use("Agg")  # Non-interactive backend for saving plots
import matplotlib.pyplot as plt
import yaml
from rich.console import Console
from rich.table import Table

from physics_engine.ballistics import compute_launch_velocity, simulate_path
from rl_training.envs.cannon_env import CannonEnv
from solvers.analytic import AnalyticSolver
from solvers.inference import PolicyEngine
from solvers.learned import encode_action, propose_shot

console = Console()

CONFIGS_DIR = Path(__file__).resolve().parent / "configs"
LOGS_DIR = Path(__file__).resolve().parent / "logs"
PLOTS_DIR = LOGS_DIR / "eval_plots"


def load_curriculum() -> list:
    with open(CONFIGS_DIR / "curriculum.yaml") as f:
        return yaml.safe_load(f)["stages"]


def evaluate_stage(stage_config: dict, policy: str, n_episodes: int = 100,
                   engine: PolicyEngine = None, session=None) -> dict:
    """Play ``n_episodes`` seeded rounds with one policy.

    ``policy`` is "learned", "analytic" or "random". The analytic solver
    declining to shoot counts as a miss.
    """
    env = CannonEnv(stage_config=stage_config)
    solver = AnalyticSolver.from_config(env.game)

    hits = 0
    declined = 0
    distances = []
    shots = []

    for i in range(n_episodes):
        env.reset(seed=i)
        if policy == "random":
            action = env.action_space.sample()
        elif policy == "analytic":
            result = solver.solve(env.request())
            if result is None:
                declined += 1
                distances.append(np.nan)
                continue
            action = encode_action(result.shot, env.bounds)
        else:
            shot = propose_shot(env.request(), env.bounds, engine, session)
            action = encode_action(shot, env.bounds)

        _, _, _, _, info = env.step(action)
        hits += int(info["hit"])
        distances.append(info["distance"])
        if len(shots) < 10:
            shots.append({
                "angle": info["angle"],
                "power": info["power"],
                "environment": env.environment,
                "target_x": info["target_x"],
                "hit": info["hit"],
            })

    env.close()
    return {
        "hit_rate": hits / n_episodes,
        "hits": hits,
        "total": n_episodes,
        "declined": declined,
        "mean_distance": float(np.nanmean(distances)) if np.any(~np.isnan(distances)) else float("nan"),
        "shots": shots,
        "game": env.game,
    }


def visualize_shots(results: dict, title: str, save_dir: Path) -> str:
    """Plot the first few shots of a run side on. Returns the file path."""
    if not results["shots"]:
        return ""
    game = results["game"]

    fig, ax = plt.subplots(figsize=(12, 6))
    for shot in results["shots"]:
        path = simulate_path(
            game.cannon_origin,
            compute_launch_velocity(shot["angle"], shot["power"], 1.0 / game.step_rate),
            shot["environment"],
            max_steps=game.max_steps,
            step_rate=game.step_rate,
        )
        color = "green" if shot["hit"] else "red"
        ax.plot(path[:, 0], path[:, 1], color=color, alpha=0.7, linewidth=1.2)
        ax.axvline(shot["target_x"], color="orange", alpha=0.3, linestyle="--")

    ax.axhline(game.ground_y, color="#228B22", linewidth=2)
    ax.scatter(*game.cannon_origin, color="black", s=60, zorder=5)
    ax.set_xlim(0, game.screen_width)
    ax.set_ylim(game.screen_height, 0)  # screen y points down
    ax.set_xlabel("x [px]")
    ax.set_ylabel("y [px]")
    ax.set_title(f"{title}\nHit rate: {results['hit_rate']:.1%}")

    save_dir.mkdir(parents=True, exist_ok=True)
    out = save_dir / f"shots_{title.replace(' ', '_')}.png"
    plt.savefig(str(out), dpi=120, bbox_inches="tight")
    plt.close(fig)
    return str(out)


def evaluate(model_path: str = None, n_episodes: int = 100, stage_name: str = "all",
             visualize: bool = False) -> dict:
    console.print(f"\n[bold cyan]═══ Cannon Solver Evaluation ═══[/bold cyan]")

    policies = ["analytic", "random"]
    engine = session = None
    if model_path:
        engine = PolicyEngine()
        session = engine.load(model_path)
        policies.insert(0, "learned")
        console.print(f"  Model: {model_path}")

    stages = load_curriculum()
    if stage_name != "all":
        stages = [s for s in stages if s["name"] == stage_name]
        if not stages:
            console.print(f"[red]Stage '{stage_name}' not found[/red]")
            return {}

    table = Table(title="Evaluation Results")
    table.add_column("Stage", style="cyan")
    table.add_column("Policy")
    table.add_column("Hit Rate", justify="right")
    table.add_column("Mean Miss [px]", justify="right")
    table.add_column("Declined", justify="right", style="yellow")
    table.add_column("Hits / Total", justify="right")

    all_results = {}
    for stage in stages:
        console.print(f"  Evaluating: {stage['name']}...")
        for policy in policies:
            results = evaluate_stage(stage, policy, n_episodes, engine, session)
            all_results[(stage["name"], policy)] = results
            table.add_row(
                stage["name"],
                policy,
                f"{results['hit_rate']:.1%}",
                "N/A" if np.isnan(results["mean_distance"]) else f"{results['mean_distance']:.1f}",
                str(results["declined"]),
                f"{results['hits']}/{results['total']}",
            )
            if visualize:
                plot_path = visualize_shots(results, f"{stage['name']} {policy}", PLOTS_DIR)
                if plot_path:
                    console.print(f"    📊 Plot saved: {plot_path}")

    console.print()
    console.print(table)
    return all_results


# ---------- CLI ----------
def main():
    parser = argparse.ArgumentParser(description="Cannon solver evaluation")
    parser.add_argument("--model", type=str, default=None,
                        help="Policy archive (omit to compare analytic vs random)")
    parser.add_argument("--episodes", type=int, default=100,
                        help="Episodes per stage and policy")
    parser.add_argument("--stage", type=str, default="all",
                        help="Specific stage name or 'all'")
    parser.add_argument("--visualize", action="store_true",
                        help="Save trajectory plots")
    args = parser.parse_args()

    evaluate(
        model_path=args.model,
        n_episodes=args.episodes,
        stage_name=args.stage,
        visualize=args.visualize,
    )


if __name__ == "__main__":
    main()

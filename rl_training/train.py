"""
Cannon Goal RL Training - Policy Training Script

Trains a PPO policy (Stable-Baselines3) through the curriculum stages and
exports it with its schema sidecar for the learned solver.

Observations are already min-max scaled into [-1, 1] by the shared encoder,
so there is no VecNormalize wrapper: the play-time adapter feeds the policy
exactly what it saw in training.

Usage:
    python -m rl_training.train --num-envs 8
    python -m rl_training.train --timesteps 500000 --output rl_training/checkpoints/policy
    python -m rl_training.train --quick-test
"""

import argparse
import time
from collections import deque
from pathlib import Path

import torch
import yaml
from rich.console import Console

from stable_baselines3 import PPO
from stable_baselines3.common.callbacks import BaseCallback, CallbackList
from stable_baselines3.common.monitor import Monitor
from stable_baselines3.common.utils import get_linear_fn, set_random_seed
from stable_baselines3.common.vec_env import DummyVecEnv, SubprocVecEnv

from rl_training.envs.cannon_env import CannonEnv
from solvers.inference import export_policy

console = Console()

# ---------- Paths ----------
CONFIGS_DIR = Path(__file__).resolve().parent / "configs"
CHECKPOINTS_DIR = Path(__file__).resolve().parent / "checkpoints"
LOGS_DIR = Path(__file__).resolve().parent / "logs"


def load_curriculum(config_path: Path = None) -> list:
    """Load curriculum stages from YAML."""
    if config_path is None:
        config_path = CONFIGS_DIR / "curriculum.yaml"
    with open(config_path) as f:
        data = yaml.safe_load(f)
    return data["stages"]


def make_env(rank: int, seed: int, stage_config: dict, log_dir: Path = None):
    """Factory returning a callable that builds a Monitor-wrapped CannonEnv."""
    def _init():
        env = CannonEnv(stage_config=stage_config)
        monitor_path = str(log_dir / f"monitor_{rank}") if log_dir else None
        env = Monitor(env, filename=monitor_path)
        env.reset(seed=seed + rank)
        return env
    set_random_seed(seed + rank)
    return _init


def create_vec_env(num_envs: int, stage_config: dict, seed: int = 42, log_dir: Path = None):
    if num_envs > 1:
        return SubprocVecEnv([make_env(i, seed, stage_config, log_dir) for i in range(num_envs)])
    return DummyVecEnv([make_env(0, seed, stage_config, log_dir)])


# ---------- Stage Promotion ----------
class StageProgress:
    """Rolling hit rate for the stage being trained.

    A stage is passed once the last ``window`` shots hit at least
    ``success_threshold`` of the time and the stage has run for
    ``min_episodes`` episodes. The final stage is never passed.
    """

    def __init__(self, stages: list, stage: int = 0, window: int = 1000):
        if not 0 <= stage < len(stages):
            raise ValueError(f"Stage {stage} outside curriculum of {len(stages)} stages")
        self.stages = stages
        self.stage = stage
        self.window = window
        self.recent = deque(maxlen=window)
        self.total_episodes = 0
        self.stage_episodes = 0

    @property
    def config(self) -> dict:
        return self.stages[self.stage]

    @property
    def name(self) -> str:
        return self.config["name"]

    @property
    def hit_rate(self) -> float:
        return sum(self.recent) / len(self.recent) if self.recent else 0.0

    def record(self, hit: bool) -> None:
        self.recent.append(1.0 if hit else 0.0)
        self.total_episodes += 1
        self.stage_episodes += 1

    def passed(self) -> bool:
        return (
            self.stage < len(self.stages) - 1
            and len(self.recent) >= self.window
            and self.stage_episodes >= self.config.get("min_episodes", 50000)
            and self.hit_rate >= self.config.get("success_threshold", 0.9)
        )

    def promote(self) -> str:
        """Move to the next stage and start its statistics afresh."""
        self.stage += 1
        self.recent.clear()
        self.stage_episodes = 0
        return self.name


# ---------- Custom Callbacks ----------
class CurriculumCallback(BaseCallback):
    """Feeds episode results into StageProgress and stops learn() when a
    stage is passed, so the outer loop can rebuild the envs.

    Also exports a checkpoint (archive + schema sidecar) every
    ``checkpoint_freq`` timesteps.
    """

    def __init__(self, progress: StageProgress, checkpoint_dir: Path,
                 checkpoint_freq: int = 50000, verbose: int = 1):
        super().__init__(verbose)
        self.progress = progress
        self.checkpoint_dir = checkpoint_dir
        self.checkpoint_freq = checkpoint_freq
        self.next_checkpoint = checkpoint_freq

    def _on_step(self) -> bool:
        finished = [info for info in self.locals.get("infos", []) if "hit" in info]
        for info in finished:
            self.progress.record(info["hit"])

        if finished and self.progress.total_episodes % 100 < len(finished):
            self.logger.record("curriculum/stage", self.progress.stage)
            self.logger.record("curriculum/hit_rate", self.progress.hit_rate)

        if self.num_timesteps >= self.next_checkpoint:
            path = export_policy(
                self.model, self.checkpoint_dir / f"{self.progress.name}_{self.num_timesteps}"
            )
            self.next_checkpoint = self.num_timesteps + self.checkpoint_freq
            if self.verbose:
                console.print(f"  💾 {path.name} (hit rate {self.progress.hit_rate:.1%})")

        # False ends learn(); the outer loop swaps in the next stage
        return not self.progress.passed()


class EntropyCoefficientSchedule(BaseCallback):
    """Linearly decay ent_coef from start to end over this run."""

    def __init__(self, start: float = 0.02, end: float = 0.005,
                 total_timesteps: int = 1_000_000, verbose: int = 0):
        super().__init__(verbose)
        self.start = start
        self.end = end
        self.total_timesteps = total_timesteps
        self.start_timesteps = None

    def _on_step(self) -> bool:
        if self.start_timesteps is None:
            self.start_timesteps = self.num_timesteps
        progress = min((self.num_timesteps - self.start_timesteps) / self.total_timesteps, 1.0)
        self.model.ent_coef = self.start - (self.start - self.end) * progress
        return True


# ---------- Training Function ----------
def train(
    total_timesteps: int = 1_000_000,
    num_envs: int = 8,
    start_stage: int = 0,
    output: Path = None,
    seed: int = 42,
    quick_test: bool = False,
):
    """Curriculum training loop. Returns the trained model and export path."""
    stages = load_curriculum()
    output = output or CHECKPOINTS_DIR / "policy"
    if quick_test:
        total_timesteps = 512 * num_envs

    console.print(f"\n[bold cyan]═══ Cannon Policy Training ═══[/bold cyan]")
    console.print(f"  Parallel envs: {num_envs}")
    console.print(f"  Total timesteps: {total_timesteps:,}")
    console.print(f"  Starting stage: {start_stage} ({stages[start_stage]['name']})")

    CHECKPOINTS_DIR.mkdir(parents=True, exist_ok=True)
    LOGS_DIR.mkdir(parents=True, exist_ok=True)

    env = create_vec_env(num_envs, stages[start_stage], seed=seed, log_dir=LOGS_DIR)

    model = PPO(
        "MlpPolicy",
        env,
        policy_kwargs=dict(
            net_arch=dict(pi=[128, 128], vf=[128, 128]),
            activation_fn=torch.nn.Tanh,
        ),
        learning_rate=get_linear_fn(3e-4, 1e-4, 1.0),
        n_steps=512 if quick_test else 2048,
        batch_size=256,
        n_epochs=5,
        gamma=1.0,                   # Single-step episodes
        clip_range=0.2,
        ent_coef=0.02,
        seed=seed,
        verbose=0,
        device="cpu",
    )

    progress = StageProgress(stages, start_stage)
    curriculum_cb = CurriculumCallback(
        progress,
        checkpoint_dir=CHECKPOINTS_DIR,
        checkpoint_freq=1024 if quick_test else 50000,
    )
    callback = CallbackList([
        curriculum_cb,
        EntropyCoefficientSchedule(total_timesteps=total_timesteps),
    ])

    start_time = time.time()
    try:
        while model.num_timesteps < total_timesteps:
            model.learn(
                total_timesteps=total_timesteps - model.num_timesteps,
                callback=callback,
                reset_num_timesteps=False,
            )
            if not progress.passed():
                break
            previous, rate = progress.name, progress.hit_rate
            current = progress.promote()
            console.print(f"\n[bold green]🎯 {previous} → {current}[/bold green] "
                          f"(hit rate {rate:.1%})")
            env.close()
            env = create_vec_env(num_envs, progress.config, seed=seed, log_dir=LOGS_DIR)
            model.set_env(env)
    except KeyboardInterrupt:
        console.print("\n[yellow]Training interrupted by user[/yellow]")

    elapsed = time.time() - start_time
    path = export_policy(model, output)
    env.close()

    console.print(f"\n[bold cyan]═══ Training Summary ═══[/bold cyan]")
    console.print(f"  Time: {elapsed:.0f}s")
    console.print(f"  Episodes: {progress.total_episodes:,}")
    console.print(f"  Final stage: {progress.stage} ({progress.name})")
    console.print(f"  Final hit rate: {progress.hit_rate:.1%}")
    console.print(f"  Policy exported: {path}")

    return model, path


# ---------- CLI ----------
def main():
    parser = argparse.ArgumentParser(description="Cannon policy training")
    parser.add_argument("--timesteps", type=int, default=1_000_000,
                        help="Total training timesteps (default: 1M)")
    parser.add_argument("--num-envs", type=int, default=8, dest="num_envs",
                        help="Number of parallel environments (default: 8)")
    parser.add_argument("--stage", type=int, default=0,
                        help="Starting curriculum stage (default: 0)")
    parser.add_argument("--output", type=Path, default=None,
                        help="Export path for the policy archive")
    parser.add_argument("--seed", type=int, default=42)
    parser.add_argument("--quick-test", action="store_true", dest="quick_test",
                        help="Quick test mode (minimal training)")
    args = parser.parse_args()

    train(
        total_timesteps=args.timesteps,
        num_envs=args.num_envs,
        start_stage=args.stage,
        output=args.output,
        seed=args.seed,
        quick_test=args.quick_test,
    )


if __name__ == "__main__":
    main()

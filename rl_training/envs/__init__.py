from rl_training.envs.cannon_env import CannonEnv, DEFAULT_STAGE_CONFIG, compute_reward

__all__ = ["CannonEnv", "DEFAULT_STAGE_CONFIG", "compute_reward"]

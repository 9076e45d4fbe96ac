"""
Cannon Goal RL Training
Gymnasium environment, PPO training and solver evaluation.
"""

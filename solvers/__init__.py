"""
Cannon Goal Solvers
Grid search and learned-policy shot solvers behind one interface.
"""

from solvers.base import Bounds, ShotRequest, ShotSolver
from solvers.analytic import AnalyticSolver, SolverResult, solve
from solvers.learned import (
    FeatureBounds,
    LearnedPolicySolver,
    decode_action,
    encode_action,
    encode_features,
)
from solvers.inference import POLICY_SCHEMA, PolicyEngine, PolicySchema, export_policy

__all__ = [
    "Bounds",
    "ShotRequest",
    "ShotSolver",
    "AnalyticSolver",
    "SolverResult",
    "solve",
    "FeatureBounds",
    "LearnedPolicySolver",
    "decode_action",
    "encode_action",
    "encode_features",
    "POLICY_SCHEMA",
    "PolicyEngine",
    "PolicySchema",
    "export_policy",
]

"""
Cannon Goal Solvers - Policy Schema and Inference Engine

One versioned contract describes what a policy model consumes and produces.
A policy artifact is a stable-baselines3 archive (``policy.zip``) next to a
YAML sidecar (``policy.yaml``) declaring that contract; the engine refuses
to load an artifact whose declared names or version disagree.
"""

import logging
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Protocol, Tuple

import numpy as np
import yaml
from stable_baselines3 import PPO

from game.errors import PolicyLoadError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PolicySchema:
    """Feature/action contract between the adapter and a policy model."""
    version: int = 1
    input_name: str = "observation"
    output_name: str = "action"
    feature_order: Tuple[str, ...] = ("angle", "power", "target_x", "target_y", "wind")
    action_order: Tuple[str, ...] = ("angle", "power")
    feature_range: Tuple[float, float] = (-1.0, 1.0)

    @property
    def input_size(self) -> int:
        return len(self.feature_order)

    @property
    def output_size(self) -> int:
        return len(self.action_order)

    def to_dict(self) -> dict:
        data = asdict(self)
        # YAML-friendly lists
        return {k: list(v) if isinstance(v, tuple) else v for k, v in data.items()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PolicySchema":
        try:
            return cls(
                version=int(data["version"]),
                input_name=str(data["input_name"]),
                output_name=str(data["output_name"]),
                feature_order=tuple(data["feature_order"]),
                action_order=tuple(data["action_order"]),
                feature_range=tuple(float(v) for v in data["feature_range"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise PolicyLoadError(f"Malformed policy schema: {exc}") from exc

    def check(self, declared: "PolicySchema") -> None:
        """Raise PolicyLoadError listing every field where ``declared`` differs."""
        expected, actual = asdict(self), asdict(declared)
        mismatches = [
            f"{name}: expected {expected[name]!r}, model declares {actual[name]!r}"
            for name in expected
            if actual[name] != expected[name]
        ]
        if mismatches:
            raise PolicyLoadError("Policy schema mismatch: " + "; ".join(mismatches))


POLICY_SCHEMA = PolicySchema()


class InferenceEngine(Protocol):
    """Opaque local inference backend."""

    def load(self, model_reference) -> Any:
        """Return a session handle or raise PolicyLoadError."""

    def run(self, session: Any, named_input: Mapping[str, np.ndarray]) -> Dict[str, np.ndarray]:
        """Run one forward pass and return named outputs."""


def sidecar_path(model_path) -> Path:
    return Path(model_path).with_suffix(".yaml")


@dataclass
class PolicySession:
    model: Any
    schema: PolicySchema


class PolicyEngine:
    """Runs a PPO policy saved by ``rl_training/train.py``."""

    def __init__(self, schema: PolicySchema = POLICY_SCHEMA, device: str = "cpu"):
        self.schema = schema
        self.device = device

    def load(self, model_reference) -> PolicySession:
        model_path = Path(model_reference).with_suffix(".zip")
        meta_path = sidecar_path(model_path)
        if not model_path.exists():
            raise PolicyLoadError(f"Policy archive not found: {model_path}")
        if not meta_path.exists():
            raise PolicyLoadError(f"Policy schema sidecar not found: {meta_path}")

        with open(meta_path) as f:
            declared = PolicySchema.from_dict(yaml.safe_load(f) or {})
        self.schema.check(declared)

        model = PPO.load(str(model_path), device=self.device)
        obs_shape = tuple(model.observation_space.shape)
        act_shape = tuple(model.action_space.shape)
        if obs_shape != (self.schema.input_size,) or act_shape != (self.schema.output_size,):
            raise PolicyLoadError(
                f"Policy spaces {obs_shape}->{act_shape} do not match schema "
                f"({self.schema.input_size},)->({self.schema.output_size},)"
            )

        logger.info("Loaded policy %s (schema v%d)", model_path.name, declared.version)
        return PolicySession(model=model, schema=declared)

    def run(self, session: PolicySession, named_input: Mapping[str, np.ndarray]) -> Dict[str, np.ndarray]:
        obs = np.asarray(named_input[session.schema.input_name], dtype=np.float32)
        action, _ = session.model.predict(obs, deterministic=True)
        return {session.schema.output_name: np.asarray(action, dtype=np.float32)}


def export_policy(model, path, schema: PolicySchema = POLICY_SCHEMA) -> Path:
    """Save ``model`` and its schema sidecar. Returns the archive path."""
    model_path = Path(path).with_suffix(".zip")
    model_path.parent.mkdir(parents=True, exist_ok=True)
    model.save(str(model_path))
    with open(sidecar_path(model_path), "w") as f:
        yaml.safe_dump(schema.to_dict(), f, sort_keys=False)
    return model_path

"""
Cannon Goal Solvers - Learned Policy Adapter

Encodes the round into the policy's feature vector, runs the inference
engine and decodes its action back into a clamped angle/power pair.

Feature vector (5 floats, each min-max scaled into [-1, 1]):
    current angle, current power, target x, target y, wind
Action vector (2 floats in [-1, 1]):
    angle, power
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

import numpy as np

from game.errors import InferenceFailure, InferenceUnavailable
from physics_engine.ballistics import ShotParameters
from solvers.base import Bounds, ShotRequest, ShotSolver
from solvers.inference import POLICY_SCHEMA, InferenceEngine, PolicySchema

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FeatureBounds:
    """Declared range of every encoded quantity."""
    angle: Bounds = Bounds(10.0, 85.0)
    power: Bounds = Bounds(100.0, 800.0)
    target_x: Bounds = Bounds(0.0, 800.0)
    target_y: Bounds = Bounds(0.0, 600.0)
    wind: Bounds = Bounds(-200.0, 200.0)

    @classmethod
    def from_config(cls, config) -> "FeatureBounds":
        return cls(
            angle=config.angle_bounds,
            power=config.power_bounds,
            target_x=Bounds(0.0, float(config.screen_width)),
            target_y=Bounds(0.0, float(config.screen_height)),
            wind=Bounds(*config.wind_range),
        )


def encode_features(
    request: ShotRequest,
    bounds: FeatureBounds,
    schema: PolicySchema = POLICY_SCHEMA,
) -> np.ndarray:
    """Build the float32 feature vector in ``schema.feature_order``."""
    values = {
        "angle": request.shot.angle,
        "power": request.shot.power,
        "target_x": request.target_x,
        "target_y": request.target_y,
        "wind": request.environment.wind,
    }
    return np.array(
        [getattr(bounds, name).normalize(values[name], schema.feature_range)
         for name in schema.feature_order],
        dtype=np.float32,
    )


def decode_action(
    action,
    bounds: FeatureBounds,
    schema: PolicySchema = POLICY_SCHEMA,
) -> ShotParameters:
    """Map a normalized action back to a shot, clamped to the bounds."""
    decoded = {}
    for name, value in zip(schema.action_order, np.asarray(action, dtype=np.float64)):
        field_bounds = getattr(bounds, name)
        decoded[name] = field_bounds.clamp(field_bounds.denormalize(float(value), schema.feature_range))
    return ShotParameters(angle=decoded["angle"], power=decoded["power"])


def encode_action(
    shot: ShotParameters,
    bounds: FeatureBounds,
    schema: PolicySchema = POLICY_SCHEMA,
) -> np.ndarray:
    """Inverse of ``decode_action`` for shots inside the bounds."""
    values = {"angle": shot.angle, "power": shot.power}
    return np.array(
        [getattr(bounds, name).normalize(values[name], schema.feature_range)
         for name in schema.action_order],
        dtype=np.float32,
    )


def read_action(outputs: Any, schema: PolicySchema = POLICY_SCHEMA) -> np.ndarray:
    """Pull the action vector out of the engine's named outputs."""
    if not isinstance(outputs, Mapping):
        raise InferenceFailure(f"Inference returned {type(outputs).__name__}, expected named outputs")
    if schema.output_name not in outputs:
        raise InferenceFailure(
            f"Inference output {schema.output_name!r} missing (got {sorted(outputs)})"
        )
    action = np.asarray(outputs[schema.output_name], dtype=np.float64).reshape(-1)
    if action.shape != (schema.output_size,):
        raise InferenceFailure(f"Action has shape {action.shape}, expected ({schema.output_size},)")
    if not np.all(np.isfinite(action)):
        raise InferenceFailure("Action contains non-finite values")
    return action


def propose_shot(
    request: ShotRequest,
    bounds: FeatureBounds,
    engine: InferenceEngine,
    session: Any,
    schema: PolicySchema = POLICY_SCHEMA,
) -> ShotParameters:
    """Encode, run and decode one proposal (blocking)."""
    features = encode_features(request, bounds, schema)
    try:
        outputs = engine.run(session, {schema.input_name: features})
    except Exception as exc:
        # The engine is opaque: any failure inside it is an inference failure
        raise InferenceFailure(f"Inference call failed: {exc}") from exc
    return decode_action(read_action(outputs, schema), bounds, schema)


class LearnedPolicySolver(ShotSolver):
    """Asks a trained policy for the shot.

    ``propose`` raises InferenceUnavailable until ``load`` (or ``load_async``)
    has completed. Failures are reported, never replaced by another solver.
    """

    name = "learned"

    def __init__(
        self,
        engine: InferenceEngine,
        bounds: FeatureBounds = FeatureBounds(),
        schema: PolicySchema = POLICY_SCHEMA,
    ):
        self.engine = engine
        self.bounds = bounds
        self.schema = schema
        self._session: Optional[Any] = None

    @property
    def ready(self) -> bool:
        return self._session is not None

    def load(self, model_reference) -> None:
        self._session = self.engine.load(model_reference)

    async def load_async(self, model_reference) -> None:
        self._session = await asyncio.to_thread(self.engine.load, model_reference)

    async def propose(self, request: ShotRequest) -> ShotParameters:
        if self._session is None:
            raise InferenceUnavailable()
        shot = await asyncio.to_thread(
            propose_shot, request, self.bounds, self.engine, self._session, self.schema,
        )
        logger.debug("Policy proposed %s", shot)
        return shot

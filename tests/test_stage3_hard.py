"""
Cannon Goal Test Suite - Stage 3: HARD

Tests races between resolution triggers and between solvers and resets.

Tests:
    - First-committer-wins resolution within and across ticks
    - Stale deadlines, collisions and solver results after a reset
    - Policy export/load round trip with the versioned schema sidecar
    - Environment robustness at extreme actions
"""

import asyncio

import numpy as np
import pytest
import yaml
from stable_baselines3 import PPO

from conftest import BlockingEngine
from game.controller import GameController
from game.errors import NoSolutionFound, PolicyLoadError
from game.session import MatchState, Outcome
from physics_engine.ballistics import ShotParameters
from physics_engine.collision import (
    LEFT_POST_LABEL,
    PROJECTILE_LABEL,
    SENSOR_LABEL,
    CollisionEvent,
    ContactKind,
    ContactPair,
)
from rl_training.envs.cannon_env import CannonEnv
from solvers.analytic import AnalyticSolver
from solvers.base import ShotSolver
from solvers.inference import PolicyEngine, PolicySchema, export_policy, sidecar_path
from solvers.learned import LearnedPolicySolver


GOAL_CONTACT = ContactPair(PROJECTILE_LABEL, SENSOR_LABEL)


class GatedSolver(ShotSolver):
    """Solver that waits for the test before answering or failing."""

    name = "gated"

    def __init__(self, shot=ShotParameters(45.0, 450.0), error=None):
        self.shot = shot
        self.error = error
        self.gate = None

    async def propose(self, request):
        self.gate = asyncio.Event()
        await self.gate.wait()
        if self.error is not None:
            raise self.error
        return self.shot


class ScriptedRng:
    """Layout RNG that hands out queued values in order."""

    def __init__(self, values):
        self.values = list(values)

    def uniform(self, low, high):
        return self.values.pop(0)


def messages(notifications):
    return [n.message for n in notifications]


# ============================================================
# 1. Resolution Races
# ============================================================

class TestFirstCommitterWins:
    """Only the first trigger of a round resolves it."""

    def test_collision_beats_deadline_in_same_tick(self, match, clock, notifications):
        match.fire()
        match.oracle.record(GOAL_CONTACT)
        clock.advance(30.0)

        match.tick()
        assert match.outcome is Outcome.SUCCESS
        assert "Missed!" not in messages(notifications)

    def test_repeated_collisions_resolve_once(self, match, world, notifications):
        match.fire()
        for _ in range(3):
            match.oracle.record(GOAL_CONTACT)

        match.tick()
        assert messages(notifications).count("Success!") == 1
        assert world.destroyed_count == 1

    def test_post_contact_does_not_resolve(self, match):
        match.fire()
        match.oracle.record(ContactPair(PROJECTILE_LABEL, LEFT_POST_LABEL))
        match.tick()
        assert match.state is MatchState.IN_FLIGHT

    def test_deadline_after_success_ignored(self, match, clock, notifications):
        match.fire()
        match.oracle.record(GOAL_CONTACT)
        match.tick()

        clock.advance(30.0)
        assert not match.on_deadline(match.generation)
        match.tick()
        assert match.outcome is Outcome.SUCCESS
        assert messages(notifications).count("Missed!") == 0

    def test_collision_after_timeout_ignored(self, match, clock):
        match.fire()
        clock.advance(10.0)
        match.tick()
        assert match.outcome is Outcome.MISS_TIMEOUT

        assert not match.on_collision(CollisionEvent(ContactKind.GOAL_ENTER, match.generation))
        assert match.outcome is Outcome.MISS_TIMEOUT

    def test_contacts_before_fire_discarded(self, match):
        match.oracle.record(GOAL_CONTACT)
        match.tick()
        match.fire()
        match.tick()
        assert match.state is MatchState.IN_FLIGHT


class TestStaleRounds:
    """Triggers from an earlier generation do nothing."""

    def test_stale_deadline_after_reset(self, match):
        match.fire()
        old = match.generation
        match.reset()

        assert not match.on_deadline(old)
        assert match.state is MatchState.IDLE

    def test_stale_deadline_during_new_round(self, match, world):
        match.fire()
        old = match.generation
        match.reset()
        match.fire()

        assert not match.on_deadline(old)
        assert match.state is MatchState.IN_FLIGHT
        assert world.created_count == 2

    def test_stale_collision_event(self, match):
        match.fire()
        old = match.generation
        match.reset()
        match.fire()

        assert not match.on_collision(CollisionEvent(ContactKind.GOAL_ENTER, old))
        assert match.state is MatchState.IN_FLIGHT

    def test_reset_in_flight_clears_world(self, match, world):
        match.fire()
        match.reset()
        assert world.projectiles == {}
        assert match.session.projectile is None
        assert match.session.round is None

    def test_reset_onto_edge_layout_keeps_playing(self, match, world, clock):
        """A drawn goal centre on a rounding edge still gives a playable round."""
        match.session.rng = ScriptedRng([493.7677257789265, 0.0])
        match.fire()
        match.reset()

        assert match.state is MatchState.IDLE
        assert match.target.x == 493.7677257789265
        assert world.projectiles == {}

        assert match.fire()
        clock.advance(match.session.config.flight_timeout + 0.1)
        match.tick()
        assert match.outcome is Outcome.MISS_TIMEOUT

    def test_failed_draw_keeps_current_round(self, match, world, clock, monkeypatch):
        match.fire()
        generation = match.generation
        projectile = match.session.projectile

        def broken_draw():
            raise ValueError("Sensor band overlaps a goal post")

        monkeypatch.setattr(match.session, "draw_layout", broken_draw)
        with pytest.raises(ValueError):
            match.reset()

        assert match.state is MatchState.IN_FLIGHT
        assert match.generation == generation
        assert projectile in world.projectiles

        clock.advance(match.session.config.flight_timeout + 0.1)
        match.tick()
        assert match.outcome is Outcome.MISS_TIMEOUT



# ============================================================
# 2. Solver vs Reset
# ============================================================

class TestSolverResetRaces:
    """A reset while a solver works makes its result stale."""

    def test_reset_during_analytic_solve(self, match, world, game_config):
        controller = GameController(match, AnalyticSolver.from_config(game_config))

        async def scenario():
            task = asyncio.create_task(controller.solve_and_fire())
            await asyncio.sleep(0)
            assert match.busy
            match.reset()
            return await task

        assert asyncio.run(scenario()) is None
        assert world.created_count == 0
        assert match.state is MatchState.IDLE
        assert not match.busy

    def test_reset_during_inference(self, match, world):
        engine = BlockingEngine()
        solver = LearnedPolicySolver(engine)
        solver.load("policy.zip")
        controller = GameController(match, solver)

        async def scenario():
            task = asyncio.create_task(controller.solve_and_fire())
            assert await asyncio.to_thread(engine.started.wait, 5.0)
            assert match.busy
            assert not match.fire()
            match.reset()
            engine.release.set()
            return await task

        assert asyncio.run(scenario()) is None
        assert world.created_count == 0
        assert match.state is MatchState.IDLE
        assert not match.busy

    def test_stale_failure_not_reported(self, match, notifications):
        solver = GatedSolver(error=NoSolutionFound(123.0))
        controller = GameController(match, solver)

        async def scenario():
            task = asyncio.create_task(controller.solve_and_fire())
            await asyncio.sleep(0)
            match.reset()
            solver.gate.set()
            return await task

        assert asyncio.run(scenario()) is None
        assert "AI couldn't find a solution." not in messages(notifications)
        assert not match.busy

    def test_current_result_fires(self, match, world):
        solver = GatedSolver(shot=ShotParameters(60.0, 500.0))
        controller = GameController(match, solver)

        async def scenario():
            task = asyncio.create_task(controller.solve_and_fire())
            await asyncio.sleep(0)
            assert not match.fire()
            solver.gate.set()
            return await task

        assert asyncio.run(scenario()) == ShotParameters(60.0, 500.0)
        assert match.state is MatchState.IN_FLIGHT
        assert world.created_count == 1

    def test_analytic_solver_yields_to_loop(self, match, game_config):
        """Another task runs between angles of the sweep."""
        solver = AnalyticSolver.from_config(game_config)
        ticks = []

        async def heartbeat():
            while len(ticks) < 5:
                ticks.append(True)
                await asyncio.sleep(0)

        async def scenario():
            beat = asyncio.create_task(heartbeat())
            await solver.propose(match.session.shot_request())
            return beat.done()

        assert asyncio.run(scenario())
        assert len(ticks) == 5


# ============================================================
# 3. Policy Artifacts
# ============================================================

class TestPolicyArtifacts:
    """Export, schema validation and inference with a real PPO policy."""

    @pytest.fixture
    def exported(self, tmp_path):
        model = PPO("MlpPolicy", CannonEnv(), n_steps=16, batch_size=16, seed=0, device="cpu")
        return export_policy(model, tmp_path / "policy")

    def test_export_writes_sidecar(self, exported):
        assert exported.exists()
        with open(sidecar_path(exported)) as f:
            declared = yaml.safe_load(f)
        assert declared["version"] == 1
        assert declared["input_name"] == "observation"
        assert declared["output_name"] == "action"

    def test_round_trip_inference(self, exported):
        engine = PolicyEngine()
        session = engine.load(exported)
        outputs = engine.run(session, {"observation": np.zeros(5, dtype=np.float32)})
        assert outputs["action"].shape == (2,)
        assert np.all(np.isfinite(outputs["action"]))

    def test_learned_solver_proposes_in_bounds(self, exported, match, game_config):
        solver = LearnedPolicySolver(PolicyEngine())
        asyncio.run(solver.load_async(exported))
        assert solver.ready

        shot = asyncio.run(solver.propose(match.session.shot_request()))
        assert game_config.angle_range[0] <= shot.angle <= game_config.angle_range[1]
        assert game_config.power_range[0] <= shot.power <= game_config.power_range[1]

    def test_renamed_output_rejected(self, exported):
        meta = sidecar_path(exported)
        bad = PolicySchema(output_name="actions").to_dict()
        with open(meta, "w") as f:
            yaml.safe_dump(bad, f)

        with pytest.raises(PolicyLoadError, match="output_name"):
            PolicyEngine().load(exported)

    def test_newer_version_rejected(self, exported):
        meta = sidecar_path(exported)
        with open(meta, "w") as f:
            yaml.safe_dump(PolicySchema(version=2).to_dict(), f)

        with pytest.raises(PolicyLoadError, match="version"):
            PolicyEngine().load(exported)

    def test_missing_sidecar_rejected(self, exported):
        sidecar_path(exported).unlink()
        with pytest.raises(PolicyLoadError):
            PolicyEngine().load(exported)

    def test_missing_archive_rejected(self, tmp_path):
        with pytest.raises(PolicyLoadError):
            PolicyEngine().load(tmp_path / "nothing.zip")

    def test_malformed_sidecar_rejected(self, exported):
        with open(sidecar_path(exported), "w") as f:
            yaml.safe_dump({"version": 1}, f)
        with pytest.raises(PolicyLoadError, match="Malformed"):
            PolicyEngine().load(exported)


# ============================================================
# 4. Environment Robustness
# ============================================================

class TestExtremeActions:
    """Saturated or out-of-range actions never break an episode."""

    @pytest.mark.parametrize("action", [
        [1.0, 1.0],
        [-1.0, -1.0],
        [1.0, -1.0],
        [5.0, -5.0],
    ])
    def test_finite_outcome(self, action):
        env = CannonEnv(stage_config={"wind_enabled": True, "wind_range": [-200.0, 200.0]})
        env.reset(seed=11)
        obs, reward, terminated, _, info = env.step(np.array(action, dtype=np.float32))

        assert terminated
        assert np.isfinite(reward)
        assert np.isfinite(info["distance"])
        assert 10.0 <= info["angle"] <= 85.0
        assert 100.0 <= info["power"] <= 800.0
        assert env.observation_space.contains(obs)

    def test_many_random_episodes(self):
        env = CannonEnv(stage_config={"wind_enabled": True, "wind_range": [-200.0, 200.0]})
        env.reset(seed=0)
        env.action_space.seed(0)
        for i in range(50):
            env.reset(seed=i)
            _, reward, _, _, _ = env.step(env.action_space.sample())
            assert reward >= 0.0
        assert 0.0 <= env.success_rate <= 1.0

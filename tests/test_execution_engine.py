"""Unit tests for LoadTestEngine."""

import asyncio

import pytest

from common.models.config import PacingPolicy, RunConfig, ScenarioProfile, Stage
from common.models.execution import RunPhase, RunStatus
from controller.core.execution_engine import LoadTestEngine
from vuser.scenarios import FullWorkflowScenario, SpikeScenario

BACKEND_URL = "http://backend.test"


@pytest.mark.asyncio
class TestLoadTestEngine:
    """Tests for LoadTestEngine."""

    @pytest.fixture
    def engine(self, fast_config, client_factory):
        """Create a LoadTestEngine against the fake backend."""
        return LoadTestEngine(fast_config, client_factory=client_factory)

    async def test_initial_state(self, engine):
        """Test the state before the run starts."""
        state = engine.get_state()

        assert state["status"] == RunStatus.PENDING.value
        assert state["phase"] == RunPhase.INIT.value
        assert state["live_workers"] == 0
        assert state["iterations"] == 0
        assert isinstance(engine.scenario, FullWorkflowScenario)

    async def test_run_completes_and_passes(self, engine, backend):
        """Test a short run drives the ramp and passes its thresholds."""
        summary = await asyncio.wait_for(engine.run(), timeout=30)

        assert engine.status == RunStatus.COMPLETED
        assert engine.phase == RunPhase.DONE
        assert summary.passed is True
        assert summary.iterations > 0
        assert 1 <= summary.peak_workers <= 3
        assert summary.metrics["checks"].rate.fails == 0
        assert [t.expression.source for t in summary.thresholds] == ["p(95)<1000", "rate<0.05"]
        assert engine.pool.size == 0
        assert len(backend.teams) > 0

    async def test_failing_backend_fails_verdict(self, fast_config, backend, client_factory):
        """Test critical check failures fail the run without aborting it."""
        backend.forced["/pullRequest/merge"] = (500, {"error": "boom"})
        engine = LoadTestEngine(fast_config, client_factory=client_factory)

        summary = await asyncio.wait_for(engine.run(), timeout=30)

        assert engine.status == RunStatus.COMPLETED
        assert summary.passed is False
        assert [t.expression.metric_name for t in summary.failed_thresholds] == ["critical_errors"]

    async def test_stop_drains_and_evaluates(self, client_factory):
        """Test an operator stop on a held run still drains workers and evaluates thresholds."""
        config = RunConfig(
            base_url=BACKEND_URL,
            stages=[Stage(duration=0.05, target=2)],
            thresholds={"critical_errors": ["rate<0.05"]},
            pacing=PacingPolicy(step_delay=0.01, iteration_delay=0.01),
            control_interval=0.02,
        )
        engine = LoadTestEngine(config, client_factory=client_factory)

        task = asyncio.create_task(engine.run())
        await asyncio.sleep(0.3)

        state = engine.get_state()
        assert state["status"] == RunStatus.RUNNING.value
        assert state["phase"] == RunPhase.HOLD.value
        assert state["live_workers"] == 2

        engine.stop()
        assert engine.status == RunStatus.STOPPING
        summary = await asyncio.wait_for(task, timeout=30)

        assert engine.status == RunStatus.COMPLETED
        assert summary.passed is True
        assert engine.pool.size == 0
        assert all(t.observed is not None for t in summary.thresholds)

    async def test_scenario_from_profile(self, fast_config, client_factory):
        """Test the engine picks the scenario for the configured profile."""
        config = fast_config.model_copy(update={"profile": ScenarioProfile.SPIKE})

        engine = LoadTestEngine(config, client_factory=client_factory)

        assert isinstance(engine.scenario, SpikeScenario)

    async def test_run_twice_rejected(self, engine):
        """Test an engine runs once."""
        await asyncio.wait_for(engine.run(), timeout=30)

        with pytest.raises(RuntimeError):
            await engine.run()

    async def test_reporter_reports_during_run(self, engine):
        """Test progress is reported while the run is active."""
        await asyncio.wait_for(engine.run(), timeout=30)

        assert engine.reporter.reports_sent >= 1

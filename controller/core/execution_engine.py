"""Execution engine for orchestrating a load test run."""

from __future__ import annotations

import logging
import time
from datetime import datetime
from typing import Any, Callable, Optional

from common.models.config import RunConfig
from common.models.execution import RunPhase, RunStatus
from common.models.metrics import RunSummary
from common.utils import Timer, format_duration, generate_run_id
from controller.core.metrics import MetricAggregator, RateMetric
from controller.core.reporter import ProgressReporter
from controller.core.scheduler import StageScheduler, WorkerPool
from controller.core.thresholds import ThresholdEvaluator
from vuser.client import create_http_client
from vuser.core.checks import CheckEvaluator
from vuser.core.worker import ClientFactory, VirtualUser
from vuser.scenarios import Scenario, get_scenario

logger = logging.getLogger(__name__)


class LoadTestEngine:
    """Wires metrics, workers, scheduler and reporter for one run."""

    def __init__(
        self,
        config: RunConfig,
        client_factory: Optional[ClientFactory] = None,
        scenario: Optional[Scenario] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.config = config
        self.run_id = generate_run_id()

        self.metrics = MetricAggregator()
        self.scenario = scenario or get_scenario(config.profile)
        self.check_evaluator = CheckEvaluator(config.check_mode)
        self.threshold_evaluator = ThresholdEvaluator(config.thresholds)
        self.client_factory = client_factory or (lambda: create_http_client(config))

        self.pool = WorkerPool(self._create_worker)
        self.scheduler = StageScheduler(
            config.stages,
            self.pool,
            control_interval=config.control_interval,
            exit_after_stages=config.exit_after_stages,
            clock=clock,
        )
        self.reporter = ProgressReporter(
            self.metrics,
            self.scheduler,
            self.threshold_evaluator,
            interval=config.report_interval,
        )

        self.status = RunStatus.PENDING
        self.started_at: Optional[datetime] = None
        self.finished_at: Optional[datetime] = None
        self.summary: Optional[RunSummary] = None
        self.error_message: Optional[str] = None
        self._phase_override: Optional[RunPhase] = None

    def _create_worker(self, worker_id: int) -> VirtualUser:
        return VirtualUser(
            worker_id=worker_id,
            scenario=self.scenario,
            metrics=self.metrics,
            client_factory=self.client_factory,
            evaluator=self.check_evaluator,
            pacing=self.config.pacing,
        )

    @property
    def phase(self) -> RunPhase:
        if self._phase_override is not None:
            return self._phase_override
        return self.scheduler.phase

    @property
    def is_running(self) -> bool:
        return self.status in [RunStatus.RUNNING, RunStatus.STOPPING]

    async def run(self) -> RunSummary:
        """Run the stage plan, drain every worker and evaluate thresholds."""
        if self.status != RunStatus.PENDING:
            raise RuntimeError(f"Run {self.run_id} already {self.status.value}")

        config = self.config
        logger.info(
            f"Starting run {self.run_id}: profile={config.profile.value} mode={config.mode.value} "
            f"checks={config.check_mode.value} target={config.base_url}"
        )
        logger.info(
            f"Stage plan: {len(config.stages)} stages over {format_duration(config.total_duration)}, "
            f"peak {config.peak_target} workers"
        )

        self.status = RunStatus.RUNNING
        self.started_at = datetime.utcnow()

        try:
            with Timer() as timer:
                await self.reporter.start_reporting(self.run_id)
                try:
                    await self.scheduler.run()
                finally:
                    self._phase_override = RunPhase.DRAIN
                    await self.reporter.stop_reporting()
                    await self.pool.shutdown()

            self.finished_at = datetime.utcnow()
            self.summary = self._build_summary(timer.elapsed_seconds)
            self.status = RunStatus.COMPLETED
            self._log_summary(self.summary)
            return self.summary

        except Exception as e:
            self.error_message = str(e)
            self.status = RunStatus.FAILED
            self.finished_at = datetime.utcnow()
            logger.error(f"Run failed: {self.run_id}: {e}", exc_info=True)
            raise
        finally:
            self._phase_override = RunPhase.DONE

    def stop(self) -> None:
        """Request a graceful stop: workers finish their iteration, thresholds still run."""
        if self.status == RunStatus.RUNNING:
            self.status = RunStatus.STOPPING
        self.scheduler.stop()

    def _build_summary(self, duration_seconds: float) -> RunSummary:
        snapshot = self.metrics.snapshot()
        results = self.threshold_evaluator.evaluate(snapshot)

        iterations = 0
        iterations_failed = snapshot.get("iterations_failed")
        if isinstance(iterations_failed, RateMetric):
            iterations = iterations_failed.total

        return RunSummary(
            run_id=self.run_id,
            name=self.config.name,
            profile=self.config.profile.value,
            mode=self.config.mode.value,
            check_mode=self.config.check_mode.value,
            started_at=self.started_at,
            finished_at=self.finished_at,
            duration_seconds=round(duration_seconds, 3),
            peak_workers=self.pool.peak_live,
            iterations=iterations,
            metrics=snapshot.summaries(),
            thresholds=results,
            passed=ThresholdEvaluator.verdict(results),
        )

    def _log_summary(self, summary: RunSummary) -> None:
        logger.info(
            f"Run {summary.run_id} finished in {format_duration(summary.duration_seconds)}: "
            f"{summary.iterations} iterations, peak {summary.peak_workers} workers"
        )
        for result in summary.thresholds:
            status = "PASS" if result.passed else "FAIL"
            logger.info(f"  [{status}] {result.expression.label} (observed={result.observed})")
        if summary.passed:
            logger.info("All thresholds passed")
        else:
            logger.warning(f"{len(summary.failed_thresholds)} threshold(s) failed")

    def get_state(self) -> dict[str, Any]:
        """Get the current run state."""
        workers = self.pool.workers()
        return {
            "run_id": self.run_id,
            "name": self.config.name,
            "status": self.status.value,
            "phase": self.phase.value,
            "profile": self.config.profile.value,
            "elapsed_seconds": round(self.scheduler.elapsed, 3),
            "stage_index": self.scheduler.stage_index,
            "target_workers": self.scheduler.current_target,
            "live_workers": self.pool.live_count,
            "pool_size": self.pool.size,
            "peak_workers": self.pool.peak_live,
            "iterations": self.metrics.count("iterations_failed"),
            "workers": [w.model_dump(mode="json") for w in workers],
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "error_message": self.error_message,
        }

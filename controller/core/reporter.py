"""Periodic progress reporting for a running load test."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from common.utils import format_duration
from controller.core.metrics import MetricAggregator, TrendMetric
from controller.core.scheduler import StageScheduler
from controller.core.thresholds import ThresholdEvaluator

logger = logging.getLogger(__name__)


class ProgressReporter:
    """Log run progress and interim threshold status at a fixed interval.

    Interim threshold results are informational only and never stop a run.
    """

    def __init__(
        self,
        metrics: MetricAggregator,
        scheduler: StageScheduler,
        evaluator: ThresholdEvaluator,
        interval: float = 10.0,
    ):
        self.metrics = metrics
        self.scheduler = scheduler
        self.evaluator = evaluator
        self.interval = interval

        self._is_running = False
        self._current_run_id: Optional[str] = None
        self._report_task: Optional[asyncio.Task] = None
        self.reports_sent = 0

    async def start_reporting(self, run_id: str) -> None:
        """Start periodic progress reporting."""
        if self._is_running:
            return

        self._is_running = True
        self._current_run_id = run_id
        self._report_task = asyncio.create_task(self._report_loop())
        logger.debug(f"Started progress reporting for run: {run_id}")

    async def stop_reporting(self) -> None:
        """Stop progress reporting."""
        self._is_running = False

        if self._report_task:
            self._report_task.cancel()
            try:
                await self._report_task
            except asyncio.CancelledError:
                pass
            self._report_task = None

        self._current_run_id = None
        logger.debug("Stopped progress reporting")

    async def _report_loop(self) -> None:
        """Periodic reporting loop."""
        while self._is_running:
            try:
                await asyncio.sleep(self.interval)
                self.report_progress()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in progress report loop: {e}")

    def report_progress(self) -> str:
        """Log one progress line and return it."""
        snapshot = self.metrics.snapshot()

        requests = 0
        p95 = 0.0
        durations = snapshot.get("http_req_duration")
        if isinstance(durations, TrendMetric):
            requests = durations.count
            p95 = durations.percentile(95)

        results = self.evaluator.evaluate(snapshot)
        failing = [r.expression.label for r in results if not r.passed]
        threshold_status = f"failing: {', '.join(failing)}" if failing else "ok"

        line = (
            f"[{format_duration(self.scheduler.elapsed)}] "
            f"workers={self.scheduler.pool.live_count}/{self.scheduler.current_target} "
            f"requests={requests} p95={p95:.1f}ms thresholds {threshold_status}"
        )
        logger.info(line)
        self.reports_sent += 1
        return line

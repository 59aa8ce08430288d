"""Step session: issues calls, records metrics, evaluates checks and paces a worker."""

from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Optional, Sequence

from common.models.config import PacingPolicy
from common.models.metrics import STEP_DURATION_PREFIX
from controller.core.metrics import MetricAggregator
from vuser.client import ReviewApiClient, StepResponse
from vuser.core.checks import Check, CheckEvaluator, CheckReport

logger = logging.getLogger(__name__)


class StepSession:
    """Per-worker facade over the API client, checks, metrics and pacing."""

    def __init__(
        self,
        api: ReviewApiClient,
        metrics: MetricAggregator,
        evaluator: CheckEvaluator,
        pacing: PacingPolicy,
        worker_id: int = 0,
        rng: Optional[random.Random] = None,
    ):
        self.api = api
        self.metrics = metrics
        self.evaluator = evaluator
        self.pacing = pacing
        self.worker_id = worker_id
        self._rng = rng or random.Random()

    @property
    def rng(self) -> random.Random:
        return self._rng

    async def call(self, step: str, request: Awaitable[StepResponse]) -> StepResponse:
        """Await one API call and record its request metrics."""
        response = await request

        self.metrics.add_rate("http_req_failed", response.failed)
        if response.transport_failed:
            logger.warning(f"VU {self.worker_id} [{step}] {response.method} {response.path}: {response.error}")
        else:
            self.metrics.add_trend("http_req_duration", response.duration_ms)
            self.metrics.add_trend(f"{STEP_DURATION_PREFIX}{step}", response.duration_ms)
        return response

    def check(
        self,
        step: str,
        response: StepResponse,
        checks: Sequence[Check],
        critical: bool = False,
    ) -> bool:
        """Evaluate checks, record them, and feed critical_errors for critical steps."""
        report: CheckReport = self.evaluator.evaluate(response, checks, step)
        for result in report.results:
            self.metrics.add_rate("checks", result.passed)

        if critical:
            self.metrics.add_rate("critical_errors", not report.all_passed)

        if not report.all_passed:
            names = ", ".join(r.name for r in report.failed)
            logger.debug(f"VU {self.worker_id} [{step}] failed checks: {names}")
        return report.all_passed

    async def pause(self, seconds: Optional[float] = None) -> None:
        """Cooperative pacing delay; always yields to the event loop."""
        delay = self.pacing.step_delay if seconds is None else seconds
        if delay > 0 and self.pacing.jitter > 0:
            delay += self._rng.uniform(0, self.pacing.jitter)
        await asyncio.sleep(max(delay, 0))

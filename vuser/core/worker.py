"""Virtual user: runs scenario iterations until drained."""

from __future__ import annotations

import asyncio
import logging
import random
from datetime import datetime
from typing import Callable, Optional

import httpx

from common.models.config import PacingPolicy
from common.models.execution import WorkerInfo, WorkerState
from common.utils import Timer
from controller.core.metrics import MetricAggregator
from vuser.client import ReviewApiClient
from vuser.core.checks import CheckEvaluator
from vuser.core.session import StepSession
from vuser.scenarios.base import Scenario

logger = logging.getLogger(__name__)

ClientFactory = Callable[[], httpx.AsyncClient]


class VirtualUser:
    """One concurrent worker.

    The drain flag is only read between iterations, so a draining worker
    always completes the iteration it is in.
    """

    def __init__(
        self,
        worker_id: int,
        scenario: Scenario,
        metrics: MetricAggregator,
        client_factory: ClientFactory,
        evaluator: CheckEvaluator,
        pacing: PacingPolicy,
        max_iterations: Optional[int] = None,
        rng: Optional[random.Random] = None,
    ):
        self.worker_id = worker_id
        self.scenario = scenario
        self.metrics = metrics
        self.client_factory = client_factory
        self.evaluator = evaluator
        self.pacing = pacing
        self.max_iterations = max_iterations
        self._rng = rng

        self.info = WorkerInfo(id=worker_id)
        self._drain_requested = False

    @property
    def draining(self) -> bool:
        return self._drain_requested

    def drain(self) -> None:
        """Ask the worker to exit after its current iteration."""
        if self._drain_requested:
            return
        self._drain_requested = True
        if self.info.state != WorkerState.STOPPED:
            self.info.state = WorkerState.DRAINING

    def _should_continue(self) -> bool:
        if self._drain_requested:
            return False
        if self.max_iterations is not None and self.info.iterations >= self.max_iterations:
            return False
        return True

    async def run(self) -> None:
        """Iterate the scenario until drained."""
        http = self.client_factory()
        session = StepSession(
            api=ReviewApiClient(http),
            metrics=self.metrics,
            evaluator=self.evaluator,
            pacing=self.pacing,
            worker_id=self.worker_id,
            rng=self._rng,
        )
        if not self._drain_requested:
            self.info.state = WorkerState.RUNNING
        logger.debug(f"VU {self.worker_id} started ({self.scenario.profile.value})")

        try:
            while self._should_continue():
                await self.run_iteration(session)
        finally:
            await http.aclose()
            self.info.state = WorkerState.STOPPED
            self.info.stopped_at = datetime.utcnow()
            logger.debug(f"VU {self.worker_id} stopped after {self.info.iterations} iterations")

    async def run_iteration(self, session: StepSession) -> bool:
        """Run one scenario iteration; returns False when it raised."""
        ctx = self.scenario.new_context()
        ok = True
        with Timer() as timer:
            try:
                await self.scenario.run(session, ctx)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                ok = False
                step = ctx.step.value if ctx.step else "start"
                logger.error(f"VU {self.worker_id} iteration failed at {step}: {e}", exc_info=True)

        self.info.iterations += 1
        if not ok:
            self.info.failed_iterations += 1
        self.metrics.add_trend("iteration_duration", timer.elapsed_ms)
        self.metrics.add_rate("iterations_failed", not ok)
        return ok

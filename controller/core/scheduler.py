"""Stage scheduler: ramps the virtual-user pool along a list of stages."""

from __future__ import annotations

import asyncio
import logging
import math
import time
from typing import Callable, Optional, Protocol, Sequence

from common.models.config import Stage
from common.models.execution import RunPhase, WorkerInfo

logger = logging.getLogger(__name__)


def total_duration(stages: Sequence[Stage]) -> float:
    """Total duration of a stage plan in seconds."""
    return sum(stage.duration for stage in stages)


def stage_index_at(stages: Sequence[Stage], elapsed: float) -> int:
    """Index of the stage running at ``elapsed``; the last index once the plan is over."""
    start = 0.0
    for index, stage in enumerate(stages):
        end = start + stage.duration
        if elapsed < end:
            return index
        start = end
    return len(stages) - 1


def target_at(stages: Sequence[Stage], elapsed: float) -> int:
    """Desired worker count at ``elapsed`` seconds into the run.

    Linear interpolation from the previous stage's target (0 before the first
    stage) to the current stage's target. At every stage boundary the result
    is exactly that stage's target; after the last stage its target is held.
    """
    elapsed = max(elapsed, 0.0)
    start = 0.0
    previous = 0
    for stage in stages:
        end = start + stage.duration
        if elapsed < end:
            fraction = (elapsed - start) / stage.duration
            value = previous + (stage.target - previous) * fraction
            return int(math.floor(value + 0.5))
        previous = stage.target
        start = end
    return previous


class Worker(Protocol):
    info: WorkerInfo

    async def run(self) -> None: ...

    def drain(self) -> None: ...


class WorkerPool:
    """Owns pool membership of the virtual users.

    Growing the pool spawns new workers; shrinking marks the newest live
    workers for drain. A draining worker finishes its current iteration and
    leaves the pool on its own.
    """

    def __init__(self, worker_factory: Callable[[int], Worker]):
        self._worker_factory = worker_factory
        self._workers: dict[int, Worker] = {}
        self._tasks: dict[int, asyncio.Task] = {}
        self._next_id = 1
        self.peak_live = 0
        self.total_spawned = 0

    def _live_workers(self) -> list[Worker]:
        return [w for _, w in sorted(self._workers.items()) if w.info.is_live]

    @property
    def live_count(self) -> int:
        """Workers counting toward the target (not draining)."""
        return len(self._live_workers())

    @property
    def size(self) -> int:
        """All workers still in the pool, draining ones included."""
        return len(self._workers)

    def resize(self, target: int) -> tuple[int, int]:
        """Adjust the live worker count to ``target``.

        Returns (spawned, drained).
        """
        live = self._live_workers()
        spawned = drained = 0

        if target > len(live):
            for _ in range(target - len(live)):
                self._spawn()
                spawned += 1
        elif target < len(live):
            for worker in reversed(live[target:]):
                worker.drain()
                drained += 1

        self.peak_live = max(self.peak_live, self.live_count)
        if spawned or drained:
            logger.debug(f"Pool resized to {target}: +{spawned} -{drained} (in pool: {self.size})")
        return spawned, drained

    def _spawn(self) -> None:
        worker_id = self._next_id
        self._next_id += 1

        worker = self._worker_factory(worker_id)
        task = asyncio.create_task(worker.run(), name=f"vu-{worker_id}")
        self._workers[worker_id] = worker
        self._tasks[worker_id] = task
        self.total_spawned += 1
        task.add_done_callback(lambda t, wid=worker_id: self._on_worker_done(wid, t))

    def _on_worker_done(self, worker_id: int, task: asyncio.Task) -> None:
        self._workers.pop(worker_id, None)
        self._tasks.pop(worker_id, None)
        if task.cancelled():
            logger.warning(f"VU {worker_id} was cancelled")
        elif task.exception() is not None:
            logger.error(f"VU {worker_id} exited with error: {task.exception()}")

    def workers(self) -> list[WorkerInfo]:
        """Snapshot of every worker in the pool."""
        return [w.info.model_copy() for _, w in sorted(self._workers.items())]

    async def shutdown(self) -> None:
        """Drain every worker and wait until each has finished its iteration."""
        for worker in list(self._workers.values()):
            worker.drain()

        tasks = list(self._tasks.values())
        if tasks:
            logger.info(f"Waiting for {len(tasks)} workers to finish their current iteration")
            await asyncio.gather(*tasks, return_exceptions=True)


class StageScheduler:
    """Timer-driven control loop that keeps the pool at the stage target."""

    def __init__(
        self,
        stages: Sequence[Stage],
        pool: WorkerPool,
        control_interval: float = 0.5,
        exit_after_stages: bool = False,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.stages = list(stages)
        self.pool = pool
        self.control_interval = control_interval
        self.exit_after_stages = exit_after_stages
        self._clock = clock

        self._started_at: Optional[float] = None
        self._stop_event = asyncio.Event()
        self._current_target = 0
        self._stage_index = -1

    @property
    def elapsed(self) -> float:
        if self._started_at is None:
            return 0.0
        return self._clock() - self._started_at

    @property
    def current_target(self) -> int:
        return self._current_target

    @property
    def stage_index(self) -> int:
        return max(self._stage_index, 0)

    @property
    def phase(self) -> RunPhase:
        if self._started_at is None:
            return RunPhase.INIT
        if self.elapsed < total_duration(self.stages):
            return RunPhase.RAMP
        return RunPhase.HOLD

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def tick(self) -> int:
        """Sample the target once and resize the pool to it."""
        elapsed = self.elapsed
        target = target_at(self.stages, elapsed)
        index = stage_index_at(self.stages, elapsed)

        if index != self._stage_index:
            stage = self.stages[index]
            logger.info(
                f"Stage {index + 1}/{len(self.stages)}: ramping to {stage.target} workers "
                f"over {stage.duration:g}s"
            )
            self._stage_index = index

        if target != self._current_target:
            logger.debug(f"Target workers: {self._current_target} -> {target} at {elapsed:.1f}s")
            self._current_target = target

        self.pool.resize(target)
        return target

    async def run(self) -> None:
        """Run the control loop until stopped (or until the plan ends with exit_after_stages)."""
        self._started_at = self._clock()
        plan_duration = total_duration(self.stages)
        holding = False

        while not self._stop_event.is_set():
            self.tick()

            if self.elapsed >= plan_duration:
                if self.exit_after_stages:
                    logger.info("Stage plan complete")
                    break
                if not holding:
                    logger.info(
                        f"Stage plan complete, holding {self._current_target} workers until stopped"
                    )
                    holding = True

            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self.control_interval)
            except asyncio.TimeoutError:
                pass

    def stop(self) -> None:
        """Request the control loop to exit."""
        if not self._stop_event.is_set():
            logger.info("Stop requested")
        self._stop_event.set()

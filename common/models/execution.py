"""Run and worker lifecycle models."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class RunStatus(str, Enum):
    """Run status states."""
    PENDING = "pending"
    RUNNING = "running"
    STOPPING = "stopping"
    COMPLETED = "completed"
    FAILED = "failed"


class RunPhase(str, Enum):
    """Current run phase."""
    INIT = "init"
    RAMP = "ramp"
    HOLD = "hold"
    DRAIN = "drain"
    DONE = "done"


class WorkerState(str, Enum):
    """Lifecycle of a virtual user."""
    STARTING = "starting"
    RUNNING = "running"
    DRAINING = "draining"
    STOPPED = "stopped"


class WorkerInfo(BaseModel):
    """Point-in-time view of a virtual user."""
    id: int
    state: WorkerState = Field(default=WorkerState.STARTING)
    iterations: int = Field(default=0)
    failed_iterations: int = Field(default=0)
    started_at: datetime = Field(default_factory=datetime.utcnow)
    stopped_at: Optional[datetime] = None

    @property
    def is_live(self) -> bool:
        """Live workers count toward the scheduler target."""
        return self.state in [WorkerState.STARTING, WorkerState.RUNNING]

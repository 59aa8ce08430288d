"""Common data models for the Review Load Harness."""

from common.models.config import (
    RunConfig,
    RunMode,
    ScenarioProfile,
    CheckMode,
    Stage,
    PacingPolicy,
)
from common.models.metrics import (
    MetricKind,
    CheckOutcome,
    CheckResult,
    TrendStats,
    RateStats,
    MetricSummary,
    ThresholdExpression,
    ThresholdResult,
    RunSummary,
)
from common.models.execution import RunStatus, RunPhase, WorkerState, WorkerInfo

__all__ = [
    "RunConfig",
    "RunMode",
    "ScenarioProfile",
    "CheckMode",
    "Stage",
    "PacingPolicy",
    "MetricKind",
    "CheckOutcome",
    "CheckResult",
    "TrendStats",
    "RateStats",
    "MetricSummary",
    "ThresholdExpression",
    "ThresholdResult",
    "RunSummary",
    "RunStatus",
    "RunPhase",
    "WorkerState",
    "WorkerInfo",
]

"""Controller core components."""

from controller.core.metrics import MetricAggregator, MetricsSnapshot, RateMetric, TrendMetric
from controller.core.scheduler import StageScheduler, WorkerPool, target_at
from controller.core.thresholds import ThresholdEvaluator

__all__ = [
    "MetricAggregator",
    "MetricsSnapshot",
    "RateMetric",
    "TrendMetric",
    "StageScheduler",
    "WorkerPool",
    "target_at",
    "ThresholdEvaluator",
]

"""Thread-safe metric aggregation shared by all virtual users."""

from __future__ import annotations

import logging
import math
import threading
from typing import Optional

from common.exceptions import ConfigurationError
from common.models.metrics import (
    MetricKind,
    MetricSummary,
    RateStats,
    TrendStats,
)

logger = logging.getLogger(__name__)


def percentile(sorted_values: list[float], pct: float) -> float:
    """Percentile of pre-sorted values using linear interpolation between closest ranks."""
    if not sorted_values:
        return 0.0
    if len(sorted_values) == 1:
        return float(sorted_values[0])

    rank = (pct / 100) * (len(sorted_values) - 1)
    lower = math.floor(rank)
    upper = math.ceil(rank)
    if lower == upper:
        return float(sorted_values[lower])
    fraction = rank - lower
    return sorted_values[lower] + (sorted_values[upper] - sorted_values[lower]) * fraction


class RateMetric:
    """Boolean samples; value is the fraction of true samples."""

    kind = MetricKind.RATE

    def __init__(self, name: str, passes: int = 0, fails: int = 0):
        self.name = name
        self.passes = passes
        self.fails = fails

    def add(self, value: bool) -> None:
        if value:
            self.passes += 1
        else:
            self.fails += 1

    @property
    def total(self) -> int:
        return self.passes + self.fails

    @property
    def value(self) -> float:
        if self.total == 0:
            return 0.0
        return self.passes / self.total

    def copy(self) -> "RateMetric":
        return RateMetric(self.name, self.passes, self.fails)

    def aggregate(self, aggregation: str, pct: Optional[float] = None) -> float:
        if aggregation == "rate":
            return self.value
        raise ValueError(f"Unsupported aggregation for rate metric: {aggregation}")

    def summary(self) -> MetricSummary:
        return MetricSummary(
            name=self.name,
            kind=self.kind,
            rate=RateStats(value=self.value, passes=self.passes, fails=self.fails),
        )


class TrendMetric:
    """Numeric samples supporting percentile queries."""

    kind = MetricKind.TREND

    def __init__(self, name: str, samples: Optional[list[float]] = None):
        self.name = name
        self.samples: list[float] = samples if samples is not None else []

    def add(self, value: float) -> None:
        self.samples.append(float(value))

    @property
    def count(self) -> int:
        return len(self.samples)

    def copy(self) -> "TrendMetric":
        return TrendMetric(self.name, list(self.samples))

    def percentile(self, pct: float) -> float:
        return percentile(sorted(self.samples), pct)

    def aggregate(self, aggregation: str, pct: Optional[float] = None) -> float:
        if aggregation == "count":
            return float(self.count)
        if not self.samples:
            return 0.0
        if aggregation == "avg":
            return sum(self.samples) / len(self.samples)
        if aggregation == "min":
            return min(self.samples)
        if aggregation == "max":
            return max(self.samples)
        if aggregation == "med":
            return self.percentile(50)
        if aggregation == "p":
            return self.percentile(pct if pct is not None else 50)
        raise ValueError(f"Unsupported aggregation for trend metric: {aggregation}")

    def summary(self) -> MetricSummary:
        values = sorted(self.samples)
        if not values:
            return MetricSummary(name=self.name, kind=self.kind, trend=TrendStats())
        return MetricSummary(
            name=self.name,
            kind=self.kind,
            trend=TrendStats(
                count=len(values),
                avg=sum(values) / len(values),
                min=values[0],
                max=values[-1],
                med=percentile(values, 50),
                p90=percentile(values, 90),
                p95=percentile(values, 95),
                p99=percentile(values, 99),
            ),
        )


Metric = RateMetric | TrendMetric


class MetricsSnapshot:
    """Stable copy of every metric, detached from further appends."""

    def __init__(self, metrics: dict[str, Metric]):
        self._metrics = metrics

    def get(self, name: str) -> Optional[Metric]:
        return self._metrics.get(name)

    def names(self) -> list[str]:
        return sorted(self._metrics)

    def __contains__(self, name: str) -> bool:
        return name in self._metrics

    def summaries(self) -> dict[str, MetricSummary]:
        return {name: self._metrics[name].summary() for name in self.names()}


class MetricAggregator:
    """Accumulates rate and trend samples keyed by metric name.

    Every append and snapshot takes the same lock, so concurrent writers from
    async tasks or threads never lose updates and a snapshot never observes a
    half-written sample.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._metrics: dict[str, Metric] = {}

    def _get_or_create(self, name: str, kind: MetricKind) -> Metric:
        metric = self._metrics.get(name)
        if metric is None:
            metric = RateMetric(name) if kind == MetricKind.RATE else TrendMetric(name)
            self._metrics[name] = metric
        elif metric.kind != kind:
            raise ConfigurationError(
                f"Metric {name} is a {metric.kind.value} metric, cannot record {kind.value} samples"
            )
        return metric

    def add_rate(self, name: str, value: bool) -> None:
        """Record a boolean sample against a rate metric."""
        with self._lock:
            self._get_or_create(name, MetricKind.RATE).add(bool(value))

    def add_trend(self, name: str, value: float) -> None:
        """Record a numeric sample against a trend metric."""
        with self._lock:
            self._get_or_create(name, MetricKind.TREND).add(value)

    def snapshot(self) -> MetricsSnapshot:
        """Take a stable copy of all metrics."""
        with self._lock:
            return MetricsSnapshot({name: m.copy() for name, m in self._metrics.items()})

    def names(self) -> list[str]:
        with self._lock:
            return sorted(self._metrics)

    def count(self, name: str) -> int:
        """Number of samples recorded for a metric (0 if never recorded)."""
        with self._lock:
            metric = self._metrics.get(name)
            if metric is None:
                return 0
            return metric.total if metric.kind == MetricKind.RATE else metric.count

"""Check, metric, threshold and summary models."""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from common.exceptions import ConfigurationError, ThresholdViolation


class MetricKind(str, Enum):
    """Kind of an aggregated metric."""
    RATE = "rate"
    TREND = "trend"


# Metrics the harness records itself; thresholds over these are kind-checked at load time.
BUILTIN_METRICS: dict[str, MetricKind] = {
    "http_req_duration": MetricKind.TREND,
    "http_req_failed": MetricKind.RATE,
    "checks": MetricKind.RATE,
    "critical_errors": MetricKind.RATE,
    "iteration_duration": MetricKind.TREND,
    "iterations_failed": MetricKind.RATE,
}

STEP_DURATION_PREFIX = "step_duration:"


class CheckOutcome(str, Enum):
    """Outcome of one check predicate."""
    PASSED = "passed"
    FAILED = "failed"
    PARSE_ERROR = "parse_error"
    ERROR = "error"


class CheckResult(BaseModel):
    """Result of evaluating a named check against a response."""
    name: str
    passed: bool
    outcome: CheckOutcome
    step: Optional[str] = None
    timestamp: datetime = Field(default_factory=datetime.utcnow)
    detail: Optional[str] = None


class TrendStats(BaseModel):
    """Latency statistics in milliseconds."""
    count: int = Field(default=0)
    avg: float = Field(default=0, description="Average")
    min: float = Field(default=0, description="Minimum")
    max: float = Field(default=0, description="Maximum")
    med: float = Field(default=0, description="Median")
    p90: float = Field(default=0, description="90th percentile")
    p95: float = Field(default=0, description="95th percentile")
    p99: float = Field(default=0, description="99th percentile")


class RateStats(BaseModel):
    """Fraction of true samples."""
    value: float = Field(default=0, ge=0, le=1)
    passes: int = Field(default=0)
    fails: int = Field(default=0)

    @property
    def total(self) -> int:
        return self.passes + self.fails


class MetricSummary(BaseModel):
    """Aggregate view of one metric at the time of a snapshot."""
    name: str
    kind: MetricKind
    trend: Optional[TrendStats] = None
    rate: Optional[RateStats] = None


_AGGREGATIONS = {
    MetricKind.TREND: {"avg", "min", "max", "med", "count", "p"},
    MetricKind.RATE: {"rate"},
}

_THRESHOLD_PATTERN = re.compile(
    r"^\s*(?P<agg>p\(\s*(?P<pct>\d+(?:\.\d+)?)\s*\)|avg|min|max|med|count|rate)"
    r"\s*(?P<op><=|>=|==|!=|<|>)\s*"
    r"(?P<limit>-?\d+(?:\.\d+)?)\s*$"
)


class ThresholdExpression(BaseModel):
    """A pass/fail assertion over one aggregated metric, e.g. ``p(95)<500``."""
    metric_name: str
    source: str
    aggregation: str = Field(..., description="avg, min, max, med, count, rate or p")
    percentile: Optional[float] = Field(default=None, description="Set when aggregation is 'p'")
    operator: str
    limit: float

    @classmethod
    def parse(cls, metric_name: str, expression: str) -> "ThresholdExpression":
        """Parse an expression string for the given metric."""
        if not isinstance(expression, str):
            raise ConfigurationError(f"Threshold for {metric_name} must be a string: {expression!r}")

        match = _THRESHOLD_PATTERN.match(expression)
        if not match:
            raise ConfigurationError(f"Invalid threshold expression for {metric_name}: {expression!r}")

        percentile = None
        aggregation = match.group("agg")
        if match.group("pct") is not None:
            aggregation = "p"
            percentile = float(match.group("pct"))
            if not 0 <= percentile <= 100:
                raise ConfigurationError(f"Percentile out of range in {expression!r}")

        expr = cls(
            metric_name=metric_name,
            source=expression.strip(),
            aggregation=aggregation,
            percentile=percentile,
            operator=match.group("op"),
            limit=float(match.group("limit")),
        )

        kind = expected_kind(metric_name)
        if kind is not None and not expr.applies_to(kind):
            raise ConfigurationError(
                f"Aggregation '{aggregation}' does not apply to {kind.value} metric {metric_name}"
            )
        return expr

    def applies_to(self, kind: MetricKind) -> bool:
        """Check whether the aggregation is defined for a metric kind."""
        return self.aggregation in _AGGREGATIONS[kind]

    @property
    def label(self) -> str:
        return f"{self.metric_name}: {self.source}"


def expected_kind(metric_name: str) -> Optional[MetricKind]:
    """Kind of a metric the harness records, or None when it is not known up front."""
    if metric_name in BUILTIN_METRICS:
        return BUILTIN_METRICS[metric_name]
    if metric_name.startswith(STEP_DURATION_PREFIX):
        return MetricKind.TREND
    return None


class ThresholdResult(BaseModel):
    """Outcome of evaluating one threshold expression."""
    expression: ThresholdExpression
    observed: Optional[float] = None
    passed: bool
    message: Optional[str] = None


class RunSummary(BaseModel):
    """Final result of a run, computed once from the last metrics snapshot."""
    run_id: str
    name: Optional[str] = None
    profile: str
    mode: str
    check_mode: str

    started_at: datetime
    finished_at: datetime
    duration_seconds: float = 0

    peak_workers: int = 0
    iterations: int = 0

    metrics: dict[str, MetricSummary] = Field(default_factory=dict)
    thresholds: list[ThresholdResult] = Field(default_factory=list)
    passed: bool = True

    @property
    def failed_thresholds(self) -> list[ThresholdResult]:
        return [t for t in self.thresholds if not t.passed]

    def raise_for_verdict(self) -> None:
        """Raise ThresholdViolation if any threshold failed."""
        failed = self.failed_thresholds
        if failed:
            labels = ", ".join(t.expression.label for t in failed)
            raise ThresholdViolation(f"Thresholds failed: {labels}", failed=failed)

"""Threshold evaluation over a metrics snapshot."""

from __future__ import annotations

import logging
import operator
from typing import Iterable, Mapping

from common.exceptions import ConfigurationError
from common.models.metrics import (
    ThresholdExpression,
    ThresholdResult,
)
from controller.core.metrics import MetricsSnapshot, RateMetric, TrendMetric

logger = logging.getLogger(__name__)

OPERATORS = {
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
    "==": operator.eq,
    "!=": operator.ne,
}


def parse_thresholds(config: Mapping[str, Iterable[str | ThresholdExpression]]) -> list[ThresholdExpression]:
    """Parse a metric -> expressions mapping into a flat list."""
    parsed = []
    for metric_name, expressions in config.items():
        if isinstance(expressions, (str, ThresholdExpression)):
            expressions = [expressions]
        for expr in expressions:
            if not isinstance(expr, ThresholdExpression):
                expr = ThresholdExpression.parse(metric_name, expr)
            parsed.append(expr)
    return parsed


def evaluate_expression(expr: ThresholdExpression, snapshot: MetricsSnapshot) -> ThresholdResult:
    """Evaluate one expression; a metric that was never recorded counts as empty."""
    compare = OPERATORS.get(expr.operator)
    if compare is None:
        raise ConfigurationError(f"Unknown operator in threshold {expr.label}")

    metric = snapshot.get(expr.metric_name)
    if metric is None:
        metric = RateMetric(expr.metric_name) if expr.aggregation == "rate" else TrendMetric(expr.metric_name)

    if not expr.applies_to(metric.kind):
        return ThresholdResult(
            expression=expr,
            passed=False,
            message=f"'{expr.aggregation}' is not defined for {metric.kind.value} metrics",
        )

    observed = metric.aggregate(expr.aggregation, expr.percentile)
    return ThresholdResult(
        expression=expr,
        observed=observed,
        passed=bool(compare(observed, expr.limit)),
    )


class ThresholdEvaluator:
    """Evaluates configured thresholds; the verdict is the AND of all of them."""

    def __init__(self, thresholds: Mapping[str, Iterable[str | ThresholdExpression]]):
        self.expressions = parse_thresholds(thresholds)

    def evaluate(self, snapshot: MetricsSnapshot) -> list[ThresholdResult]:
        """Evaluate every threshold against a snapshot."""
        results = [evaluate_expression(expr, snapshot) for expr in self.expressions]
        for result in results:
            if not result.passed:
                logger.debug(
                    f"Threshold {result.expression.label} not met "
                    f"(observed={result.observed}, {result.message or ''})"
                )
        return results

    @staticmethod
    def verdict(results: Iterable[ThresholdResult]) -> bool:
        """Overall verdict for a set of results."""
        return all(result.passed for result in results)

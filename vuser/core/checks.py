"""Check evaluation: named predicates over a step response."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Sequence

from common.exceptions import ResponseParseError
from common.models.config import CheckMode
from common.models.metrics import CheckOutcome, CheckResult

logger = logging.getLogger(__name__)

# Payload-shape failures raised while a predicate digs into a response body.
PARSE_ERRORS = (ResponseParseError, KeyError, TypeError, IndexError, ValueError)


@dataclass(frozen=True)
class Check:
    """A named boolean predicate.

    ``strict`` checks inspect the payload and are skipped in relaxed mode.
    """
    name: str
    predicate: Callable[[Any], bool]
    strict: bool = False


@dataclass
class CheckReport:
    """Results of one evaluation pass."""
    step: Optional[str]
    results: list[CheckResult] = field(default_factory=list)

    @property
    def all_passed(self) -> bool:
        return all(r.passed for r in self.results)

    @property
    def failed(self) -> list[CheckResult]:
        return [r for r in self.results if not r.passed]


class CheckEvaluator:
    """Runs checks against a response. Never raises."""

    def __init__(self, mode: CheckMode = CheckMode.STRICT):
        self.mode = mode

    def applicable(self, checks: Sequence[Check]) -> list[Check]:
        """Checks that run under the current mode."""
        if self.mode == CheckMode.RELAXED:
            return [c for c in checks if not c.strict]
        return list(checks)

    def evaluate(self, response: Any, checks: Sequence[Check], step: Optional[str] = None) -> CheckReport:
        """Evaluate every applicable check against a response."""
        report = CheckReport(step=step)
        for check in self.applicable(checks):
            report.results.append(self._run_one(response, check, step))
        return report

    def _run_one(self, response: Any, check: Check, step: Optional[str]) -> CheckResult:
        detail = None
        try:
            outcome = CheckOutcome.PASSED if check.predicate(response) else CheckOutcome.FAILED
        except PARSE_ERRORS as e:
            outcome = CheckOutcome.PARSE_ERROR
            detail = f"{type(e).__name__}: {e}"
        except Exception as e:
            outcome = CheckOutcome.ERROR
            detail = f"{type(e).__name__}: {e}"

        if outcome != CheckOutcome.PASSED:
            logger.debug(f"Check failed [{step}] {check.name}: {outcome.value} {detail or ''}")

        return CheckResult(
            name=check.name,
            passed=outcome == CheckOutcome.PASSED,
            outcome=outcome,
            step=step,
            detail=detail,
        )

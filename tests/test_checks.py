"""Unit tests for the check evaluator."""

from common.exceptions import TransportError
from common.models.config import CheckMode
from common.models.metrics import CheckOutcome
from vuser.client import StepResponse
from vuser.core.checks import Check, CheckEvaluator


def response(status: int = 200, body: bytes = b'{"status": "ok"}') -> StepResponse:
    return StepResponse(method="GET", path="/health", status=status, body=body, duration_ms=1.0)


CHECKS = (
    Check("status is 200", lambda r: r.status == 200),
    Check("status field is ok", lambda r: r.json()["status"] == "ok", strict=True),
)


class TestCheckEvaluator:
    """Tests for CheckEvaluator."""

    def test_all_pass(self):
        """Test passing checks."""
        report = CheckEvaluator().evaluate(response(), CHECKS, step="health_check")

        assert report.all_passed is True
        assert [r.outcome for r in report.results] == [CheckOutcome.PASSED, CheckOutcome.PASSED]
        assert report.results[0].step == "health_check"

    def test_false_predicate_fails(self):
        """Test a false predicate is a failed result."""
        report = CheckEvaluator().evaluate(response(status=500), CHECKS)

        assert report.all_passed is False
        assert [r.name for r in report.failed] == ["status is 200"]
        assert report.failed[0].outcome == CheckOutcome.FAILED

    def test_malformed_body_is_parse_error(self):
        """Test malformed JSON resolves to a parse_error result, never an exception."""
        report = CheckEvaluator().evaluate(response(body=b"<html>oops"), CHECKS)

        result = report.results[1]
        assert result.passed is False
        assert result.outcome == CheckOutcome.PARSE_ERROR
        assert "ResponseParseError" in result.detail

    def test_missing_field_is_parse_error(self):
        """Test a missing key resolves to parse_error."""
        report = CheckEvaluator().evaluate(response(body=b'{"other": 1}'), CHECKS)

        assert report.results[1].outcome == CheckOutcome.PARSE_ERROR

    def test_transport_failure_fails_checks(self):
        """Test a status-0 response fails both kinds of checks without raising."""
        failed = StepResponse(method="GET", path="/health", status=0, error=TransportError("ConnectError"))

        report = CheckEvaluator().evaluate(failed, CHECKS)

        assert [r.passed for r in report.results] == [False, False]
        assert report.results[1].outcome == CheckOutcome.PARSE_ERROR

    def test_unexpected_exception_is_error(self):
        """Test other exceptions are classified as error."""
        def explode(r):
            raise RuntimeError("boom")

        report = CheckEvaluator().evaluate(response(), [Check("explodes", explode)])

        assert report.results[0].outcome == CheckOutcome.ERROR
        assert report.all_passed is False

    def test_relaxed_mode_skips_strict_checks(self):
        """Test relaxed mode keeps only the status checks."""
        evaluator = CheckEvaluator(CheckMode.RELAXED)

        report = evaluator.evaluate(response(body=b"not json"), CHECKS)

        assert [r.name for r in report.results] == ["status is 200"]
        assert report.all_passed is True

    def test_empty_check_list_passes(self):
        report = CheckEvaluator().evaluate(response(), [])

        assert report.results == []
        assert report.all_passed is True

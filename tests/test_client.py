"""Unit tests for the backend API client and step session."""

import asyncio

import httpx
import pytest

from common.exceptions import ResponseParseError
from common.models.config import PacingPolicy, RunConfig
from vuser.client import StepResponse, create_http_client, member
from vuser.core.checks import Check, CheckEvaluator
from vuser.core.session import StepSession


@pytest.mark.asyncio
class TestReviewApiClient:
    """Tests for ReviewApiClient against the fake backend."""

    async def test_health(self, api):
        """Test the health call."""
        response = await api.health()

        assert response.status == 200
        assert response.json()["status"] == "ok"
        assert response.duration_ms >= 0
        assert response.failed is False

    async def test_team_roundtrip(self, api):
        """Test adding and reading back a team."""
        created = await api.add_team("team_a", [member("u1", "Alice"), member("u2", "Bob")])
        fetched = await api.get_team("team_a")

        assert created.status == 201
        assert created.json()["team"]["name"] == "team_a"
        assert fetched.status == 200
        assert [m["user_id"] for m in fetched.json()["members"]] == ["u1", "u2"]

    async def test_error_status_is_failed_not_raised(self, api):
        """Test 4xx responses come back as failed responses."""
        await api.add_team("team_a", [member("u1", "Alice")])

        duplicate = await api.add_team("team_a", [member("u1", "Alice")])

        assert duplicate.status == 400
        assert duplicate.failed is True
        assert duplicate.transport_failed is False
        assert duplicate.json()["error"]["code"] == "TEAM_EXISTS"

    async def test_transport_error_becomes_status_zero(self, backend, api):
        """Test connection failures never propagate."""
        backend.fail_paths.add("/health")

        response = await api.health()

        assert response.status == 0
        assert response.transport_failed is True
        assert response.failed is True
        assert "ConnectError" in str(response.error)
        with pytest.raises(ResponseParseError):
            response.json()
        assert response.json_or_none() is None

    async def test_query_parameters(self, backend, api):
        """Test GET calls pass their parameters in the query string."""
        response = await api.get_user_reviews("nobody")

        assert response.json() == {"user_id": "nobody", "pull_requests": []}


class TestStepResponse:
    """Tests for StepResponse decoding."""

    def test_non_object_payload_rejected(self):
        response = StepResponse(method="GET", path="/x", status=200, body=b"[1, 2]")

        with pytest.raises(ResponseParseError):
            response.json()

    def test_create_http_client(self):
        """Test the client honours the configured base URL and timeout."""
        client = create_http_client(RunConfig(base_url="http://api.test:9000/", request_timeout=5))

        assert str(client.base_url).rstrip("/") == "http://api.test:9000"
        assert client.timeout == httpx.Timeout(5)


@pytest.mark.asyncio
class TestStepSession:
    """Tests for StepSession metric recording."""

    async def test_call_records_request_metrics(self, make_session, metrics):
        """Test a successful call records duration and failure rate."""
        session = make_session()

        await session.call("health_check", session.api.health())

        snapshot = metrics.snapshot()
        assert snapshot.get("http_req_duration").count == 1
        assert snapshot.get("step_duration:health_check").count == 1
        assert snapshot.get("http_req_failed").value == 0.0

    async def test_transport_failure_records_failure_only(self, backend, make_session, metrics):
        """Test a transport failure counts as failed without a duration sample."""
        backend.fail_paths.add("/health")
        session = make_session()

        await session.call("health_check", session.api.health())

        snapshot = metrics.snapshot()
        assert snapshot.get("http_req_failed").value == 1.0
        assert "http_req_duration" not in snapshot

    async def test_check_records_checks_and_critical_errors(self, make_session, metrics):
        """Test check results feed the checks and critical_errors rates."""
        session = make_session()
        response = await session.call("health_check", session.api.health())

        ok = session.check("health_check", response, [
            Check("passes", lambda r: True),
            Check("fails", lambda r: False),
        ], critical=True)

        snapshot = metrics.snapshot()
        assert ok is False
        assert snapshot.get("checks").passes == 1
        assert snapshot.get("checks").fails == 1
        assert snapshot.get("critical_errors").value == 1.0

    async def test_non_critical_check_leaves_error_rate_alone(self, make_session, metrics):
        session = make_session()
        response = await session.call("health_check", session.api.health())

        session.check("health_check", response, [Check("fails", lambda r: False)])

        assert "critical_errors" not in metrics.snapshot()

    async def test_pause_uses_policy_delay(self, api, metrics):
        """Test pause sleeps for the configured step delay."""
        session = StepSession(api, metrics, CheckEvaluator(), PacingPolicy(step_delay=0.05, iteration_delay=0))
        loop_time = asyncio.get_running_loop().time

        start = loop_time()
        await session.pause()

        assert loop_time() - start >= 0.04

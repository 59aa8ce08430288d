"""Pytest configuration and shared fixtures."""

import asyncio
import json
import random
from typing import Optional

import httpx
import pytest
import pytest_asyncio

from common.models.config import CheckMode, PacingPolicy, RunConfig, Stage
from controller.core.metrics import MetricAggregator
from vuser.client import ReviewApiClient
from vuser.core.checks import CheckEvaluator
from vuser.core.session import StepSession

BACKEND_URL = "http://backend.test"


def error_body(code: str, message: str) -> dict:
    return {"error": {"code": code, "message": message}}


class FakeReviewBackend:
    """In-memory stand-in for the review assignment service.

    Served through ``httpx.MockTransport``. ``fail_paths`` makes requests to
    those paths raise a transport error; ``forced`` maps a path to a fixed
    (status, body) response.
    """

    def __init__(self, delay: float = 0.0, seed: int = 0):
        self.delay = delay
        self.rng = random.Random(seed)
        self.teams: dict[str, list[dict]] = {}
        self.users: dict[str, dict] = {}
        self.prs: dict[str, dict] = {}
        self.requests: list[tuple[str, str]] = []
        self.fail_paths: set[str] = set()
        self.forced: dict[str, tuple[int, object]] = {}

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport(), base_url=BACKEND_URL)

    def count(self, path: str, method: Optional[str] = None) -> int:
        return sum(1 for m, p in self.requests if p == path and (method is None or m == method))

    async def handle(self, request: httpx.Request) -> httpx.Response:
        path = request.url.path
        self.requests.append((request.method, path))
        if self.delay:
            await asyncio.sleep(self.delay)

        if path in self.fail_paths:
            raise httpx.ConnectError("connection refused", request=request)
        if path in self.forced:
            status, body = self.forced[path]
            content = body if isinstance(body, bytes) else json.dumps(body).encode()
            return httpx.Response(status, content=content)

        body = json.loads(request.content) if request.content else {}
        params = request.url.params

        routes = {
            ("GET", "/health"): self.health,
            ("POST", "/team/add"): self.add_team,
            ("GET", "/team/get"): self.get_team,
            ("POST", "/pullRequest/create"): self.create_pr,
            ("GET", "/users/getReview"): self.get_review,
            ("POST", "/pullRequest/reassign"): self.reassign,
            ("POST", "/pullRequest/merge"): self.merge,
        }
        route = routes.get((request.method, path))
        if route is None:
            return httpx.Response(404, json=error_body("NOT_FOUND", "route not found"))
        status, payload = route(body, params)
        return httpx.Response(status, json=payload)

    def health(self, body, params):
        return 200, {"status": "ok", "service": "pr-reviewer"}

    def team_dto(self, name: str) -> dict:
        return {"id": name, "name": name, "members": self.teams[name]}

    def add_team(self, body, params):
        name = body["team_name"]
        if name in self.teams:
            return 400, error_body("TEAM_EXISTS", f"{name} already exists")
        self.teams[name] = list(body["members"])
        for m in body["members"]:
            self.users[m["user_id"]] = {**m, "team_name": name}
        return 201, {"team": self.team_dto(name)}

    def get_team(self, body, params):
        name = params.get("team_name")
        if name not in self.teams:
            return 404, error_body("NOT_FOUND", "team not found")
        return 200, self.team_dto(name)

    def candidates(self, team_name: str, exclude: set) -> list[str]:
        return [
            m["user_id"] for m in self.teams[team_name]
            if m.get("is_active", True) and m["user_id"] not in exclude
        ]

    def create_pr(self, body, params):
        pr_id = body["pull_request_id"]
        if pr_id in self.prs:
            return 409, error_body("PR_EXISTS", "PR id already exists")
        author = self.users.get(body["author_id"])
        if author is None:
            return 404, error_body("NOT_FOUND", "author not found")

        pool = self.candidates(author["team_name"], {author["user_id"]})
        reviewers = self.rng.sample(pool, min(2, len(pool)))
        self.prs[pr_id] = {
            "pull_request_id": pr_id,
            "pull_request_name": body["pull_request_name"],
            "author_id": author["user_id"],
            "status": "OPEN",
            "assigned_reviewers": reviewers,
        }
        return 201, {"pr": dict(self.prs[pr_id])}

    def get_review(self, body, params):
        user_id = params.get("user_id")
        prs = [
            {"pull_request_id": pr["pull_request_id"], "status": pr["status"]}
            for pr in self.prs.values() if user_id in pr["assigned_reviewers"]
        ]
        return 200, {"user_id": user_id, "pull_requests": prs}

    def reassign(self, body, params):
        pr = self.prs.get(body["pull_request_id"])
        if pr is None:
            return 404, error_body("NOT_FOUND", "PR not found")
        if pr["status"] == "MERGED":
            return 409, error_body("PR_MERGED", "cannot reassign on merged PR")
        old = body["old_user_id"]
        if old not in pr["assigned_reviewers"]:
            return 409, error_body("NOT_ASSIGNED", "reviewer is not assigned to this PR")

        team = self.users[old]["team_name"]
        pool = self.candidates(team, {pr["author_id"], *pr["assigned_reviewers"]})
        if not pool:
            return 409, error_body("NO_CANDIDATE", "no active replacement candidate")
        new = self.rng.choice(pool)
        pr["assigned_reviewers"] = [new if r == old else r for r in pr["assigned_reviewers"]]
        return 200, {"pr": dict(pr), "replaced_by": new}

    def merge(self, body, params):
        pr = self.prs.get(body["pull_request_id"])
        if pr is None:
            return 404, error_body("NOT_FOUND", "PR not found")
        pr["status"] = "MERGED"
        return 200, {"pr": dict(pr)}


@pytest.fixture
def backend() -> FakeReviewBackend:
    """Fresh in-memory backend."""
    return FakeReviewBackend()


@pytest.fixture
def backend_factory():
    """Factory for backends with custom latency."""
    return FakeReviewBackend


@pytest.fixture
def client_factory(backend):
    """Client factory wired to the fake backend."""
    return backend.client


@pytest.fixture
def metrics() -> MetricAggregator:
    return MetricAggregator()


@pytest.fixture
def no_pacing() -> PacingPolicy:
    return PacingPolicy(step_delay=0, iteration_delay=0)


@pytest_asyncio.fixture
async def api(backend):
    """API client over the fake backend."""
    async with backend.client() as http:
        yield ReviewApiClient(http)


@pytest.fixture
def make_session(api, metrics, no_pacing):
    """Build a step session over the fake backend."""
    def _make(check_mode: CheckMode = CheckMode.STRICT, seed: int = 0) -> StepSession:
        return StepSession(
            api=api,
            metrics=metrics,
            evaluator=CheckEvaluator(check_mode),
            pacing=no_pacing,
            rng=random.Random(seed),
        )
    return _make


@pytest.fixture
def fast_config() -> RunConfig:
    """Short unpaced run that exits when its stages end."""
    return RunConfig(
        base_url=BACKEND_URL,
        stages=[Stage(duration=0.3, target=3), Stage(duration=0.2, target=0)],
        thresholds={
            "http_req_duration": ["p(95)<1000"],
            "critical_errors": ["rate<0.05"],
        },
        pacing=PacingPolicy(step_delay=0, iteration_delay=0),
        control_interval=0.05,
        report_interval=0.1,
        exit_after_stages=True,
    )

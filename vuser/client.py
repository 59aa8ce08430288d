"""HTTP client for the review-assignment backend under test."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from common.exceptions import ResponseParseError, TransportError
from common.models.config import RunConfig
from common.utils import Timer

logger = logging.getLogger(__name__)


@dataclass
class StepResponse:
    """Outcome of one HTTP call.

    A transport failure yields ``status == 0`` with ``error`` set instead of
    an exception, so a step always produces something checks can inspect.
    """
    method: str
    path: str
    status: int
    body: bytes = b""
    duration_ms: float = 0.0
    error: Optional[TransportError] = None

    @property
    def transport_failed(self) -> bool:
        return self.error is not None

    @property
    def failed(self) -> bool:
        """True on transport failure or a 4xx/5xx status."""
        return self.error is not None or self.status >= 400

    def json(self) -> dict:
        """Decode the body as a JSON object."""
        if self.error is not None:
            raise ResponseParseError(f"No response body ({self.error})")
        try:
            data = json.loads(self.body)
        except (ValueError, UnicodeDecodeError) as e:
            raise ResponseParseError(f"Malformed JSON from {self.method} {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise ResponseParseError(f"Expected a JSON object from {self.method} {self.path}")
        return data

    def json_or_none(self) -> Optional[dict]:
        """Decode the body, or None when it is missing or malformed."""
        try:
            return self.json()
        except ResponseParseError:
            return None


def member(user_id: str, username: str, is_active: bool = True) -> dict:
    """Team member payload."""
    return {"user_id": user_id, "username": username, "is_active": is_active}


def create_http_client(config: RunConfig) -> httpx.AsyncClient:
    """Create the HTTP client a virtual user talks to the backend with."""
    return httpx.AsyncClient(
        base_url=config.base_url,
        timeout=config.request_timeout,
        headers={"Content-Type": "application/json"},
    )


class ReviewApiClient:
    """One method per backend call; never raises on transport failures."""

    def __init__(self, http: httpx.AsyncClient):
        self._http = http

    async def request(
        self,
        method: str,
        path: str,
        json_body: Optional[dict] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> StepResponse:
        """Issue a request and time it."""
        with Timer() as timer:
            try:
                response = await self._http.request(method, path, json=json_body, params=params)
                body = response.content
            except httpx.HTTPError as e:
                error = TransportError(f"{type(e).__name__}: {e}")
                logger.debug(f"{method} {path} failed: {error}")
                return StepResponse(
                    method=method,
                    path=path,
                    status=0,
                    duration_ms=timer.elapsed_ms,
                    error=error,
                )

        return StepResponse(
            method=method,
            path=path,
            status=response.status_code,
            body=body,
            duration_ms=timer.elapsed_ms,
        )

    async def health(self) -> StepResponse:
        return await self.request("GET", "/health")

    async def add_team(self, team_name: str, members: list[dict]) -> StepResponse:
        return await self.request("POST", "/team/add", {"team_name": team_name, "members": members})

    async def get_team(self, team_name: str) -> StepResponse:
        return await self.request("GET", "/team/get", params={"team_name": team_name})

    async def create_pr(self, pr_id: str, pr_name: str, author_id: str) -> StepResponse:
        return await self.request(
            "POST",
            "/pullRequest/create",
            {"pull_request_id": pr_id, "pull_request_name": pr_name, "author_id": author_id},
        )

    async def get_user_reviews(self, user_id: str) -> StepResponse:
        return await self.request("GET", "/users/getReview", params={"user_id": user_id})

    async def reassign(self, pr_id: str, old_user_id: str) -> StepResponse:
        return await self.request(
            "POST",
            "/pullRequest/reassign",
            {"pull_request_id": pr_id, "old_user_id": old_user_id},
        )

    async def merge(self, pr_id: str) -> StepResponse:
        return await self.request("POST", "/pullRequest/merge", {"pull_request_id": pr_id})

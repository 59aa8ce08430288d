"""Scenario base classes and per-iteration context."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, ClassVar, Optional

from common.models.config import ScenarioProfile
from common.utils import generate_id
from vuser.core.checks import Check
from vuser.core.session import StepSession


class Step(str, Enum):
    """States of the scenario state machine."""
    HEALTH_CHECK = "health_check"
    TEAM_CREATE = "team_create"
    TEAM_VERIFY = "team_verify"
    PR_CREATE = "pr_create"
    GET_REVIEWS = "get_reviews"
    REASSIGN = "reassign"
    MERGE = "merge"
    MERGE_AGAIN = "merge_again"
    POST_MERGE_REASSIGN = "post_merge_reassign"
    DONE = "done"


@dataclass
class ScenarioContext:
    """State of one iteration, owned by the worker running it."""
    team_name: str
    author_id: str
    pr_id: str
    reviewer_id: Optional[str] = None
    step_index: int = 0
    step: Optional[Step] = None
    visited: list[Step] = field(default_factory=list)

    @classmethod
    def fresh(cls, team_prefix: str = "team", user_prefix: str = "user", pr_prefix: str = "pr") -> "ScenarioContext":
        return cls(
            team_name=generate_id(team_prefix),
            author_id=generate_id(user_prefix),
            pr_id=generate_id(pr_prefix),
        )

    def enter(self, step: Step) -> None:
        self.step = step
        self.step_index += 1
        self.visited.append(step)


def status_is(*codes: int) -> Callable:
    """Predicate: response status is one of ``codes``."""
    return lambda r: r.status in codes


HEALTH_CHECKS = (
    Check("health check status is 200", status_is(200)),
    Check("health check has status ok", lambda r: r.json()["status"] == "ok", strict=True),
)


class Scenario(ABC):
    """One workflow iteration."""

    profile: ClassVar[ScenarioProfile]
    # Paced scenarios sleep between steps and after each iteration.
    paced: ClassVar[bool] = True

    def new_context(self) -> ScenarioContext:
        return ScenarioContext.fresh()

    @abstractmethod
    async def run(self, session: StepSession, ctx: ScenarioContext) -> None:
        """Run one iteration to completion."""


StepHandler = Callable[[StepSession, ScenarioContext], Awaitable[Step]]


class StateMachineScenario(Scenario):
    """Scenario expressed as handlers that each issue one call and return the next state."""

    initial_state: ClassVar[Step] = Step.HEALTH_CHECK

    def handler_for(self, step: Step) -> StepHandler:
        handler = getattr(self, f"step_{step.value}", None)
        if handler is None:
            raise NotImplementedError(f"{type(self).__name__} has no handler for {step.value}")
        return handler

    async def run(self, session: StepSession, ctx: ScenarioContext) -> None:
        state = self.initial_state
        while state != Step.DONE:
            ctx.enter(state)
            state = await self.handler_for(state)(session, ctx)
            if state != Step.DONE and self.paced:
                await session.pause()

        ctx.enter(Step.DONE)
        await session.pause(session.pacing.iteration_delay if self.paced else 0)

    async def step_health_check(self, session: StepSession, ctx: ScenarioContext) -> Step:
        response = await session.call(Step.HEALTH_CHECK.value, session.api.health())
        session.check(Step.HEALTH_CHECK.value, response, HEALTH_CHECKS)
        return self.after_health_check()

    def after_health_check(self) -> Step:
        return Step.TEAM_CREATE

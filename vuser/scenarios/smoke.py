"""Smoke workflow: health check and one team creation."""

from __future__ import annotations

from common.models.config import ScenarioProfile
from vuser.client import member
from vuser.core.checks import Check
from vuser.core.session import StepSession
from vuser.scenarios.base import ScenarioContext, StateMachineScenario, Step, status_is


class SmokeScenario(StateMachineScenario):
    """HEALTH_CHECK -> TEAM_CREATE -> DONE, with a single-member team."""

    profile = ScenarioProfile.SMOKE

    def new_context(self) -> ScenarioContext:
        return ScenarioContext.fresh(team_prefix="smoke_team", user_prefix="smoke_user", pr_prefix="smoke_pr")

    async def step_team_create(self, session: StepSession, ctx: ScenarioContext) -> Step:
        step = Step.TEAM_CREATE.value
        response = await session.call(
            step,
            session.api.add_team(ctx.team_name, [member(ctx.author_id, "Smoke User")]),
        )
        session.check(step, response, (
            Check("create team status is 201", status_is(201)),
            Check(
                "create team returns team_name",
                lambda r: r.json()["team"]["name"] == ctx.team_name,
                strict=True,
            ),
        ), critical=True)
        return Step.DONE

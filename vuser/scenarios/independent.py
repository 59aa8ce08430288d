"""Unpaced scenarios with no cross-step state: independent actions and spikes."""

from __future__ import annotations

from common.models.config import ScenarioProfile
from common.utils import generate_id
from vuser.client import member
from vuser.core.checks import Check
from vuser.core.session import StepSession
from vuser.scenarios.base import HEALTH_CHECKS, Scenario, ScenarioContext, Step, status_is

TEAM_CREATED = (Check("create team status is 201", status_is(201)),)


class IndependentActionScenario(Scenario):
    """Each iteration performs one action picked uniformly at random.

    Actions are a minimal team creation, a health check, or a PR creation for
    an author no team knows about (any 201 or 404 is acceptable).
    """

    profile = ScenarioProfile.INDEPENDENT
    paced = False

    ACTIONS = ("create_team", "health_check", "create_pr")

    def new_context(self) -> ScenarioContext:
        return ScenarioContext.fresh(team_prefix="stress_team", user_prefix="stress_author", pr_prefix="stress_pr")

    async def run(self, session: StepSession, ctx: ScenarioContext) -> None:
        action = session.rng.choice(self.ACTIONS)
        await getattr(self, action)(session, ctx)
        ctx.enter(Step.DONE)
        await session.pause(0)

    async def create_team(self, session: StepSession, ctx: ScenarioContext) -> None:
        ctx.enter(Step.TEAM_CREATE)
        step = Step.TEAM_CREATE.value
        response = await session.call(
            step,
            session.api.add_team(ctx.team_name, [member(ctx.author_id, "Stress User")]),
        )
        session.check(step, response, TEAM_CREATED, critical=True)

    async def health_check(self, session: StepSession, ctx: ScenarioContext) -> None:
        ctx.enter(Step.HEALTH_CHECK)
        response = await session.call(Step.HEALTH_CHECK.value, session.api.health())
        session.check(Step.HEALTH_CHECK.value, response, HEALTH_CHECKS)

    async def create_pr(self, session: StepSession, ctx: ScenarioContext) -> None:
        ctx.enter(Step.PR_CREATE)
        step = Step.PR_CREATE.value
        response = await session.call(step, session.api.create_pr(ctx.pr_id, "Stress PR", ctx.author_id))
        session.check(step, response, (
            Check("create PR status is 201 or 404", status_is(201, 404)),
        ))


class SpikeScenario(Scenario):
    """Burst of two-member team creations, one per iteration, without pacing."""

    profile = ScenarioProfile.SPIKE
    paced = False

    def new_context(self) -> ScenarioContext:
        return ScenarioContext.fresh(team_prefix="spike_team", user_prefix="spike_user", pr_prefix="spike_pr")

    async def run(self, session: StepSession, ctx: ScenarioContext) -> None:
        ctx.enter(Step.TEAM_CREATE)
        step = Step.TEAM_CREATE.value
        members = [
            member(ctx.author_id, "Spike User 1"),
            member(generate_id("spike_user"), "Spike User 2"),
        ]
        response = await session.call(step, session.api.add_team(ctx.team_name, members))
        session.check(step, response, TEAM_CREATED, critical=True)
        ctx.enter(Step.DONE)
        await session.pause(0)

"""Full review workflow: team setup through post-merge reassignment."""

from __future__ import annotations

from typing import Optional

from common.models.config import ScenarioProfile
from vuser.client import StepResponse, member
from vuser.core.checks import Check
from vuser.core.session import StepSession
from vuser.scenarios.base import ScenarioContext, StateMachineScenario, Step, status_is

TEAM_SIZE = 4


def team_members(author_id: str) -> list[dict]:
    """One author plus three reviewer candidates."""
    return [member(author_id, "Author")] + [
        member(f"{author_id}_rev{i}", f"Reviewer {i}") for i in range(1, TEAM_SIZE)
    ]


def assigned_reviewers(response: StepResponse) -> list:
    return response.json()["pr"]["assigned_reviewers"]


def first_reviewer(response: StepResponse) -> Optional[str]:
    """First assigned reviewer, or None when the response does not carry one."""
    body = response.json_or_none()
    if not body or response.status != 201:
        return None
    pr = body.get("pr")
    if not isinstance(pr, dict):
        return None
    reviewers = pr.get("assigned_reviewers")
    if isinstance(reviewers, list) and reviewers and isinstance(reviewers[0], str):
        return reviewers[0]
    return None


def new_reviewer_id(response: StepResponse) -> Optional[str]:
    """New reviewer from a reassignment response (``new_reviewer_id`` or ``replaced_by``)."""
    body = response.json()
    return body.get("new_reviewer_id") or body.get("replaced_by")


def merged(response: StepResponse) -> bool:
    return response.json()["pr"]["status"] == "MERGED"


class FullWorkflowScenario(StateMachineScenario):
    """HEALTH_CHECK -> TEAM_CREATE -> TEAM_VERIFY -> PR_CREATE -> [GET_REVIEWS -> REASSIGN]
    -> MERGE -> MERGE_AGAIN -> [POST_MERGE_REASSIGN] -> DONE.

    Bracketed states only run when PR creation yielded a reviewer.
    """

    profile = ScenarioProfile.FULL

    async def step_team_create(self, session: StepSession, ctx: ScenarioContext) -> Step:
        step = Step.TEAM_CREATE.value
        response = await session.call(step, session.api.add_team(ctx.team_name, team_members(ctx.author_id)))
        session.check(step, response, (
            Check("create team status is 201", status_is(201)),
            Check(
                "create team returns team_name",
                lambda r: r.json()["team"]["name"] == ctx.team_name,
                strict=True,
            ),
        ), critical=True)
        return Step.TEAM_VERIFY

    async def step_team_verify(self, session: StepSession, ctx: ScenarioContext) -> Step:
        step = Step.TEAM_VERIFY.value
        response = await session.call(step, session.api.get_team(ctx.team_name))
        session.check(step, response, (
            Check("get team status is 200", status_is(200)),
            Check(
                "get team returns members",
                lambda r: len(r.json()["members"]) == TEAM_SIZE,
                strict=True,
            ),
        ))
        return Step.PR_CREATE

    async def step_pr_create(self, session: StepSession, ctx: ScenarioContext) -> Step:
        step = Step.PR_CREATE.value
        response = await session.call(step, session.api.create_pr(ctx.pr_id, "Load test PR", ctx.author_id))
        session.check(step, response, (
            Check("create PR status is 201", status_is(201)),
            Check("create PR has reviewers", lambda r: len(assigned_reviewers(r)) > 0, strict=True),
            Check(
                "create PR author not in reviewers",
                lambda r: ctx.author_id not in (r.json()["pr"].get("assigned_reviewers") or []),
                strict=True,
            ),
        ), critical=True)

        ctx.reviewer_id = first_reviewer(response)
        return Step.GET_REVIEWS if ctx.reviewer_id else Step.MERGE

    async def step_get_reviews(self, session: StepSession, ctx: ScenarioContext) -> Step:
        step = Step.GET_REVIEWS.value
        response = await session.call(step, session.api.get_user_reviews(ctx.reviewer_id))
        session.check(step, response, (
            Check("get user reviews status is 200", status_is(200)),
            Check(
                "get user reviews contains PR",
                lambda r: len(r.json()["pull_requests"]) > 0,
                strict=True,
            ),
        ))
        return Step.REASSIGN

    async def step_reassign(self, session: StepSession, ctx: ScenarioContext) -> Step:
        step = Step.REASSIGN.value
        old_reviewer = ctx.reviewer_id
        response = await session.call(step, session.api.reassign(ctx.pr_id, old_reviewer))
        session.check(step, response, (
            Check("reassign reviewer status is 200 or 400", status_is(200, 400)),
            Check(
                "reassign returns new reviewer if successful",
                lambda r: r.status != 200 or new_reviewer_id(r) not in (None, old_reviewer),
                strict=True,
            ),
        ))
        return Step.MERGE

    async def step_merge(self, session: StepSession, ctx: ScenarioContext) -> Step:
        step = Step.MERGE.value
        response = await session.call(step, session.api.merge(ctx.pr_id))
        session.check(step, response, (
            Check("merge PR status is 200", status_is(200)),
            Check("merge PR sets status to MERGED", merged, strict=True),
        ), critical=True)
        return Step.MERGE_AGAIN

    async def step_merge_again(self, session: StepSession, ctx: ScenarioContext) -> Step:
        step = Step.MERGE_AGAIN.value
        response = await session.call(step, session.api.merge(ctx.pr_id))
        session.check(step, response, (
            Check("merge PR again status is 200", status_is(200)),
            Check("merge PR idempotent", merged, strict=True),
        ), critical=True)
        return Step.POST_MERGE_REASSIGN if ctx.reviewer_id else Step.DONE

    async def step_post_merge_reassign(self, session: StepSession, ctx: ScenarioContext) -> Step:
        step = Step.POST_MERGE_REASSIGN.value
        response = await session.call(step, session.api.reassign(ctx.pr_id, ctx.reviewer_id))
        session.check(step, response, (
            Check(
                "reassign after merge should fail",
                lambda r: not r.transport_failed and r.status != 200,
            ),
        ), critical=True)
        return Step.DONE

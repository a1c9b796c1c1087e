"""
Idea and sprint service tests.
"""

import uuid

import pytest
from fastapi import HTTPException
from sqlalchemy import select

from voltedge.core.errors import ForbiddenError, NotFoundError
from voltedge.models import Idea, IdeaStatus
from voltedge.schemas.resource import (
    IdeaCreateRequest,
    IdeaUpdateRequest,
    SprintCreateRequest,
    SprintMemberAddRequest,
)
from voltedge.services.resource_service import IdeaService, SprintService


@pytest.fixture
def ideas(db, guard_for):
    return lambda user: IdeaService(db, guard_for(user))


@pytest.fixture
def sprints(db, guard_for):
    return lambda user: SprintService(db, guard_for(user))


class TestIdeas:
    async def test_create_in_team_requires_membership(self, make_user, make_team, ideas):
        owner = await make_user()
        outsider = await make_user()
        team = await make_team(owner)

        with pytest.raises(ForbiddenError):
            await ideas(outsider).create_idea(IdeaCreateRequest(title="Relay", team_id=team.id))

        idea = await ideas(owner).create_idea(IdeaCreateRequest(title=" Relay ", team_id=team.id))
        assert idea.title == "Relay"
        assert idea.user_id == owner.id

    async def test_teammate_edits_but_cannot_delete(
        self, db, make_user, make_team, make_idea, ideas
    ):
        owner = await make_user()
        teammate = await make_user()
        idea = await make_idea(owner, await make_team(owner, teammate))

        updated = await ideas(teammate).update_idea(
            idea.id, IdeaUpdateRequest(status=IdeaStatus.developing)
        )
        assert updated.status == IdeaStatus.developing

        with pytest.raises(ForbiddenError):
            await ideas(teammate).delete_idea(idea.id)

        await ideas(owner).delete_idea(idea.id)
        remaining = await db.execute(select(Idea.id).where(Idea.id == idea.id))
        assert remaining.scalar_one_or_none() is None

    async def test_team_listing(self, make_user, make_team, make_idea, ideas):
        owner = await make_user()
        outsider = await make_user()
        team = await make_team(owner)
        await make_idea(owner, team)
        await make_idea(owner)

        listing = await ideas(owner).list_team_ideas(team.id)
        assert listing.total == 1
        with pytest.raises(ForbiddenError):
            await ideas(outsider).list_team_ideas(team.id)

    async def test_own_listing_includes_private_ideas(self, make_user, make_idea, ideas):
        owner = await make_user()
        await make_idea(owner)

        assert (await ideas(owner).list_user_ideas(owner.id)).total == 1


class TestSprints:
    async def test_owner_manages_participants(self, make_user, make_team, sprints):
        owner = await make_user()
        guest = await make_user()
        sprint = await sprints(owner).create_sprint(
            SprintCreateRequest(name="Q3", team_id=(await make_team(owner)).id)
        )

        await sprints(owner).add_participant(sprint.id, SprintMemberAddRequest(user_id=guest.id))
        with pytest.raises(HTTPException) as exc:
            await sprints(owner).add_participant(sprint.id, SprintMemberAddRequest(user_id=guest.id))
        assert exc.value.status_code == 409

        participants = await sprints(guest).list_participants(sprint.id)
        assert [p.user_id for p in participants.members] == [guest.id]

        listed = await sprints(guest).list_user_sprints(guest.id)
        assert [s.id for s in listed.sprints] == [sprint.id]

    async def test_participant_may_leave_but_not_remove_others(
        self, make_user, make_sprint, sprints
    ):
        owner = await make_user()
        g1 = await make_user()
        g2 = await make_user()
        sprint = await make_sprint(owner, participants=(g1, g2))

        with pytest.raises(ForbiddenError):
            await sprints(g1).remove_participant(sprint.id, g2.id)
        await sprints(g1).remove_participant(sprint.id, g1.id)

        with pytest.raises(ForbiddenError):
            await sprints(g1).get_sprint(sprint.id)

    async def test_add_unknown_user(self, make_user, make_sprint, sprints):
        owner = await make_user()
        sprint = await make_sprint(owner)

        with pytest.raises(NotFoundError):
            await sprints(owner).add_participant(
                sprint.id, SprintMemberAddRequest(user_id=uuid.uuid4())
            )

    async def test_only_owner_deletes(self, make_user, make_team, make_sprint, sprints):
        owner = await make_user()
        teammate = await make_user()
        sprint = await make_sprint(owner, await make_team(owner, teammate))

        with pytest.raises(ForbiddenError):
            await sprints(teammate).delete_sprint(sprint.id)
        await sprints(owner).delete_sprint(sprint.id)
        with pytest.raises(NotFoundError):
            await sprints(owner).get_sprint(sprint.id)

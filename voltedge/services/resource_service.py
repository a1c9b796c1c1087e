"""
Guarded idea and sprint operations.

Ideas belong to one owner and are optionally shared with a team. Sprints
belong to one owner, are optionally scoped to a team and may have explicit
participants outside that team.
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from voltedge.core.errors import NotFoundError
from voltedge.core.guards import AccessGuard
from voltedge.models.idea import Idea
from voltedge.models.sprint import Sprint, SprintMember
from voltedge.models.user import User
from voltedge.schemas.resource import (
    IdeaCreateRequest,
    IdeaResponse,
    IdeasListResponse,
    IdeaUpdateRequest,
    SprintCreateRequest,
    SprintMemberAddRequest,
    SprintMemberResponse,
    SprintMembersListResponse,
    SprintResponse,
    SprintsListResponse,
)

logger = logging.getLogger(__name__)


class IdeaService:
    """Handles idea operations for the current principal."""

    def __init__(self, db: AsyncSession, guard: AccessGuard) -> None:
        self.db = db
        self.guard = guard

    async def create_idea(self, data: IdeaCreateRequest) -> IdeaResponse:
        """
        Create an idea owned by the caller.

        Sharing with a team requires membership of that team; attaching to a
        sprint requires access to that sprint.
        """
        user_id = self.guard.require_session()
        if data.team_id is not None:
            await self.guard.require_team_member(data.team_id)
        if data.sprint_id is not None:
            await self.guard.require_sprint_access(data.sprint_id)

        idea = Idea(
            user_id=user_id,
            team_id=data.team_id,
            sprint_id=data.sprint_id,
            title=data.title.strip(),
            problem_statement=data.problem_statement,
        )
        self.db.add(idea)
        await self.db.flush()
        return IdeaResponse.model_validate(idea)

    async def get_idea(self, idea_id: UUID) -> IdeaResponse:
        await self.guard.require_idea_access(idea_id)
        return IdeaResponse.model_validate(await self.db.get(Idea, idea_id))

    async def list_user_ideas(self, user_id: UUID) -> IdeasListResponse:
        self.guard.require_self(user_id)
        result = await self.db.execute(
            select(Idea).where(Idea.user_id == user_id).order_by(Idea.updated_at.desc())
        )
        ideas = [IdeaResponse.model_validate(idea) for idea in result.scalars().all()]
        return IdeasListResponse(ideas=ideas, total=len(ideas))

    async def list_team_ideas(self, team_id: UUID) -> IdeasListResponse:
        await self.guard.require_team_member(team_id)
        result = await self.db.execute(
            select(Idea).where(Idea.team_id == team_id).order_by(Idea.updated_at.desc())
        )
        ideas = [IdeaResponse.model_validate(idea) for idea in result.scalars().all()]
        return IdeasListResponse(ideas=ideas, total=len(ideas))

    async def update_idea(self, idea_id: UUID, data: IdeaUpdateRequest) -> IdeaResponse:
        """Owner or team member may edit content and status."""
        await self.guard.require_idea_access(idea_id)
        idea = await self.db.get(Idea, idea_id)

        if data.title is not None:
            idea.title = data.title.strip()
        if data.problem_statement is not None:
            idea.problem_statement = data.problem_statement
        if data.status is not None:
            idea.status = data.status

        await self.db.flush()
        await self.db.refresh(idea)
        return IdeaResponse.model_validate(idea)

    async def delete_idea(self, idea_id: UUID) -> None:
        """Owner only."""
        await self.guard.require_idea_owner(idea_id)
        await self.db.delete(await self.db.get(Idea, idea_id))
        await self.db.flush()


class SprintService:
    """Handles sprint operations for the current principal."""

    def __init__(self, db: AsyncSession, guard: AccessGuard) -> None:
        self.db = db
        self.guard = guard

    # -----------------------------------------------------------------------
    # Sprints
    # -----------------------------------------------------------------------

    async def create_sprint(self, data: SprintCreateRequest) -> SprintResponse:
        user_id = self.guard.require_session()
        if data.team_id is not None:
            await self.guard.require_team_member(data.team_id)

        sprint = Sprint(owner_id=user_id, team_id=data.team_id, name=data.name.strip())
        self.db.add(sprint)
        await self.db.flush()
        return SprintResponse.model_validate(sprint)

    async def get_sprint(self, sprint_id: UUID) -> SprintResponse:
        await self.guard.require_sprint_access(sprint_id)
        return SprintResponse.model_validate(await self.db.get(Sprint, sprint_id))

    async def list_user_sprints(self, user_id: UUID) -> SprintsListResponse:
        """Sprints the user owns or explicitly participates in."""
        self.guard.require_self(user_id)
        participating = select(SprintMember.sprint_id).where(SprintMember.user_id == user_id)
        result = await self.db.execute(
            select(Sprint)
            .where(or_(Sprint.owner_id == user_id, Sprint.id.in_(participating)))
            .order_by(Sprint.created_at.desc())
        )
        sprints = [SprintResponse.model_validate(s) for s in result.scalars().all()]
        return SprintsListResponse(sprints=sprints, total=len(sprints))

    async def list_sprint_ideas(self, sprint_id: UUID) -> IdeasListResponse:
        await self.guard.require_sprint_access(sprint_id)
        result = await self.db.execute(
            select(Idea).where(Idea.sprint_id == sprint_id).order_by(Idea.created_at)
        )
        ideas = [IdeaResponse.model_validate(idea) for idea in result.scalars().all()]
        return IdeasListResponse(ideas=ideas, total=len(ideas))

    async def delete_sprint(self, sprint_id: UUID) -> None:
        """Owner only."""
        await self.guard.require_sprint_owner(sprint_id)
        await self.db.delete(await self.db.get(Sprint, sprint_id))
        await self.db.flush()
        logger.info("Sprint %s deleted by %s", sprint_id, self.guard.principal_id)

    # -----------------------------------------------------------------------
    # Participants
    # -----------------------------------------------------------------------

    async def list_participants(self, sprint_id: UUID) -> SprintMembersListResponse:
        await self.guard.require_sprint_access(sprint_id)
        result = await self.db.execute(
            select(SprintMember).where(SprintMember.sprint_id == sprint_id)
        )
        members = [SprintMemberResponse.model_validate(m) for m in result.scalars().all()]
        return SprintMembersListResponse(members=members, total=len(members))

    async def add_participant(
        self, sprint_id: UUID, data: SprintMemberAddRequest
    ) -> SprintMemberResponse:
        """Owner only. Participants need not belong to the sprint's team."""
        await self.guard.require_sprint_owner(sprint_id)

        if await self.db.get(User, data.user_id) is None:
            raise NotFoundError("user")

        existing = await self.db.execute(
            select(SprintMember.id).where(
                SprintMember.sprint_id == sprint_id, SprintMember.user_id == data.user_id
            )
        )
        if existing.scalar_one_or_none() is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={"code": "ALREADY_PARTICIPANT", "message": "User already participates in this sprint"},
            )

        member = SprintMember(sprint_id=sprint_id, user_id=data.user_id, role=data.role)
        self.db.add(member)
        await self.db.flush()
        return SprintMemberResponse.model_validate(member)

    async def remove_participant(self, sprint_id: UUID, user_id: UUID) -> None:
        """The owner may remove anyone; participants may leave."""
        if user_id == self.guard.require_session():
            await self.guard.require_sprint_access(sprint_id)
        else:
            await self.guard.require_sprint_owner(sprint_id)

        result = await self.db.execute(
            select(SprintMember).where(
                SprintMember.sprint_id == sprint_id, SprintMember.user_id == user_id
            )
        )
        member = result.scalar_one_or_none()
        if member is None:
            raise NotFoundError("sprint participant")

        await self.db.delete(member)
        await self.db.flush()

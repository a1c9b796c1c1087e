"""
Team business logic.

Handles team CRUD and membership management. Every operation is guarded
against persisted membership; every membership change commits and then
invalidates the affected users' role facts.
"""

from __future__ import annotations

import logging
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from voltedge.core.errors import NotFoundError
from voltedge.core.guards import AccessGuard
from voltedge.models.member import OrgRole
from voltedge.models.team import Team, TeamMember, TeamRole
from voltedge.models.user import User
from voltedge.schemas.team import (
    TeamCreateRequest,
    TeamMemberAddRequest,
    TeamMemberResponse,
    TeamMembershipResponse,
    TeamMembersListResponse,
    TeamResponse,
    TeamsListResponse,
    TeamUpdateRequest,
)
from voltedge.services.role_cache import RoleFactCache

logger = logging.getLogger(__name__)


class TeamService:
    """Handles all team operations for the current principal."""

    def __init__(self, db: AsyncSession, guard: AccessGuard, cache: RoleFactCache) -> None:
        self.db = db
        self.guard = guard
        self.cache = cache

    # -----------------------------------------------------------------------
    # Create Team
    # -----------------------------------------------------------------------

    async def create_team(self, data: TeamCreateRequest) -> TeamResponse:
        """
        Create a team with the caller as its first admin.

        - Org-scoped teams require business_admin or team_admin in that org
        - Commits, then invalidates the creator's role facts
        """
        user_id = self.guard.require_session()
        if data.org_id is not None:
            await self.guard.require_org_role(
                data.org_id, OrgRole.business_admin, OrgRole.team_admin
            )

        team = Team(name=data.name.strip(), org_id=data.org_id)
        self.db.add(team)
        await self.db.flush()
        self.db.add(TeamMember(team_id=team.id, user_id=user_id, role=TeamRole.admin))
        await self.db.commit()
        await self.cache.invalidate(user_id)

        logger.info("User %s created team %s", user_id, team.id)
        return await self._to_response(team)

    # -----------------------------------------------------------------------
    # Read
    # -----------------------------------------------------------------------

    async def get_team(self, team_id: UUID) -> TeamResponse:
        await self.guard.require_team_member(team_id)
        return await self._to_response(await self._get_team(team_id))

    async def list_user_teams(self, user_id: UUID) -> TeamsListResponse:
        """Teams of a user; callers may only list their own."""
        self.guard.require_self(user_id)
        result = await self.db.execute(
            select(Team)
            .join(TeamMember, TeamMember.team_id == Team.id)
            .where(TeamMember.user_id == user_id)
            .order_by(TeamMember.joined_at)
        )
        teams = [await self._to_response(team) for team in result.scalars().all()]
        return TeamsListResponse(teams=teams, total=len(teams))

    async def list_org_teams(self, org_id: UUID) -> TeamsListResponse:
        await self.guard.require_org_member(org_id)
        result = await self.db.execute(
            select(Team).where(Team.org_id == org_id).order_by(Team.name)
        )
        teams = [await self._to_response(team) for team in result.scalars().all()]
        return TeamsListResponse(teams=teams, total=len(teams))

    # -----------------------------------------------------------------------
    # Update / Delete
    # -----------------------------------------------------------------------

    async def update_team(self, team_id: UUID, data: TeamUpdateRequest) -> TeamResponse:
        await self.guard.require_team_admin(team_id)
        team = await self._get_team(team_id)
        if data.name is not None:
            team.name = data.name.strip()
        await self.db.flush()
        return await self._to_response(team)

    async def delete_team(self, team_id: UUID) -> None:
        """Delete a team and its memberships; every former member is invalidated."""
        await self.guard.require_team_admin(team_id)
        team = await self._get_team(team_id)

        result = await self.db.execute(
            select(TeamMember.user_id).where(TeamMember.team_id == team_id)
        )
        member_ids = list(result.scalars().all())

        await self.db.delete(team)
        await self.db.commit()
        await self.cache.invalidate_many(member_ids)
        logger.info("Team %s deleted by %s", team_id, self.guard.principal_id)

    # -----------------------------------------------------------------------
    # Members
    # -----------------------------------------------------------------------

    async def list_members(self, team_id: UUID) -> TeamMembersListResponse:
        await self.guard.require_team_member(team_id)
        result = await self.db.execute(
            select(TeamMember, User)
            .join(User, User.id == TeamMember.user_id)
            .where(TeamMember.team_id == team_id)
            .order_by(TeamMember.joined_at)
        )
        members = [
            TeamMemberResponse(
                team_id=member.team_id,
                user_id=member.user_id,
                email=user.email,
                display_name=user.display_name,
                role=member.role,
                joined_at=member.joined_at,
            )
            for member, user in result.all()
        ]
        return TeamMembersListResponse(members=members, total=len(members))

    async def check_membership(self, team_id: UUID, user_id: UUID) -> TeamMembershipResponse:
        """Membership of a user in a team. Asking about someone else requires membership."""
        if user_id != self.guard.require_session():
            await self.guard.require_team_member(team_id)

        member = await self._get_member(team_id, user_id)
        return TeamMembershipResponse(
            team_id=team_id,
            user_id=user_id,
            is_member=member is not None,
            is_admin=member is not None and member.role == TeamRole.admin,
        )

    async def add_member(self, team_id: UUID, data: TeamMemberAddRequest) -> TeamMemberResponse:
        await self.guard.require_team_admin(team_id)

        user = await self.db.get(User, data.user_id)
        if user is None:
            raise NotFoundError("user")

        if await self._get_member(team_id, data.user_id) is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={"code": "ALREADY_MEMBER", "message": "User is already a member of this team"},
            )

        member = TeamMember(team_id=team_id, user_id=data.user_id, role=data.role)
        self.db.add(member)
        await self.db.commit()
        await self.cache.invalidate(data.user_id)

        return TeamMemberResponse(
            team_id=team_id,
            user_id=user.id,
            email=user.email,
            display_name=user.display_name,
            role=member.role,
            joined_at=member.joined_at,
        )

    async def update_member_role(
        self, team_id: UUID, user_id: UUID, role: TeamRole
    ) -> TeamMembershipResponse:
        """
        Change a member's role. Admin only.

        Demoting the last admin is rejected with InvariantViolationError.
        """
        await self.guard.require_team_admin(team_id)

        if role != TeamRole.admin:
            await self.guard.ensure_team_keeps_admin(team_id, user_id)

        member = await self._get_member(team_id, user_id)
        if member is None:
            raise NotFoundError("team member")

        member.role = role
        await self.db.commit()
        await self.cache.invalidate(user_id)

        logger.info("Team %s: role of %s set to %s", team_id, user_id, role.value)
        return TeamMembershipResponse(
            team_id=team_id,
            user_id=user_id,
            is_member=True,
            is_admin=role == TeamRole.admin,
        )

    async def remove_member(self, team_id: UUID, user_id: UUID) -> None:
        """
        Remove a member. Admins may remove anyone; members may remove themselves.

        Removing the last admin is rejected with InvariantViolationError.
        """
        if user_id == self.guard.require_session():
            await self.guard.require_team_member(team_id)
        else:
            await self.guard.require_team_admin(team_id)

        await self.guard.ensure_team_keeps_admin(team_id, user_id)

        member = await self._get_member(team_id, user_id)
        if member is None:
            raise NotFoundError("team member")

        await self.db.delete(member)
        await self.db.commit()
        await self.cache.invalidate(user_id)
        logger.info("Team %s: removed %s", team_id, user_id)

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    async def _get_team(self, team_id: UUID) -> Team:
        team = await self.db.get(Team, team_id)
        if team is None:
            raise NotFoundError("team")
        return team

    async def _get_member(self, team_id: UUID, user_id: UUID) -> TeamMember | None:
        result = await self.db.execute(
            select(TeamMember).where(
                TeamMember.team_id == team_id, TeamMember.user_id == user_id
            )
        )
        return result.scalar_one_or_none()

    async def _to_response(self, team: Team) -> TeamResponse:
        member_count = await self.db.scalar(
            select(func.count()).select_from(TeamMember).where(TeamMember.team_id == team.id)
        )
        return TeamResponse(
            id=team.id,
            name=team.name,
            org_id=team.org_id,
            member_count=member_count or 0,
            created_at=team.created_at,
            updated_at=team.updated_at,
        )

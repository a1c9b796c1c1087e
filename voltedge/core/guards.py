"""
Server-side access guards.

Every operation that touches team-, idea-, sprint- or organization-scoped
data goes through one of these checks. Guards verify against persisted
membership rows, never against token claims.

Check order is fixed: principal, then resource existence, then ownership,
then sprint participation, then team membership. NotFoundError renders
exactly like ForbiddenError so callers cannot probe for existence.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from voltedge.core.errors import (
    ForbiddenError,
    InvariantViolationError,
    NotFoundError,
    UnauthenticatedError,
)
from voltedge.models.idea import Idea
from voltedge.models.member import OrgMember, OrgRole
from voltedge.models.organization import Organization
from voltedge.models.sprint import Sprint, SprintMember
from voltedge.models.team import Team, TeamMember, TeamRole

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Guard results
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class TeamAccess:
    user_id: UUID
    team_id: UUID
    role: TeamRole

    @property
    def is_admin(self) -> bool:
        return self.role == TeamRole.admin


@dataclass(frozen=True)
class OrgAccess:
    user_id: UUID
    org_id: UUID
    role: OrgRole


@dataclass(frozen=True)
class IdeaAccess:
    user_id: UUID
    idea_id: UUID
    owner_id: UUID
    team_id: UUID | None
    is_owner: bool
    is_team_member: bool


@dataclass(frozen=True)
class SprintAccess:
    user_id: UUID
    sprint_id: UUID
    owner_id: UUID
    team_id: UUID | None
    is_owner: bool
    is_sprint_member: bool
    is_team_member: bool


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------

class AccessGuard:
    """Authorization checks for one principal (None when unauthenticated)."""

    def __init__(self, db: AsyncSession, principal_id: UUID | None) -> None:
        self.db = db
        self.principal_id = principal_id

    def _deny(self, error: ForbiddenError) -> ForbiddenError:
        logger.info(
            "Access denied: user=%s resource=%s kind=%s",
            self.principal_id,
            error.resource,
            type(error).__name__,
        )
        return error

    # -----------------------------------------------------------------------
    # Session
    # -----------------------------------------------------------------------

    def require_session(self) -> UUID:
        """Return the principal or raise UnauthenticatedError."""
        if self.principal_id is None:
            raise UnauthenticatedError()
        return self.principal_id

    def require_self(self, requested_user_id: UUID) -> UUID:
        """Reject requests for another user's data made by id substitution."""
        user_id = self.require_session()
        if requested_user_id != user_id:
            raise self._deny(ForbiddenError("user data"))
        return user_id

    # -----------------------------------------------------------------------
    # Teams
    # -----------------------------------------------------------------------

    async def _team_role(self, team_id: UUID, user_id: UUID) -> TeamRole | None:
        result = await self.db.execute(
            select(TeamMember.role).where(
                TeamMember.team_id == team_id,
                TeamMember.user_id == user_id,
            )
        )
        return result.scalar_one_or_none()

    async def require_team_member(self, team_id: UUID) -> TeamAccess:
        """Pass iff a (team, principal) membership row exists."""
        user_id = self.require_session()
        role = await self._team_role(team_id, user_id)
        if role is None:
            raise self._deny(ForbiddenError("team"))
        return TeamAccess(user_id=user_id, team_id=team_id, role=role)

    async def require_team_admin(self, team_id: UUID) -> TeamAccess:
        access = await self.require_team_member(team_id)
        if not access.is_admin:
            raise self._deny(ForbiddenError("team (admin required)"))
        return access

    async def ensure_team_keeps_admin(self, team_id: UUID, target_user_id: UUID) -> None:
        """
        Reject a removal or demotion that would leave the team without an admin.

        Locks the team row and recounts admins inside the caller's
        transaction, so two admins removing each other concurrently cannot
        both succeed. Call only when target_user_id is losing admin status.
        """
        await self.db.execute(select(Team.id).where(Team.id == team_id).with_for_update())
        target_role = await self._team_role(team_id, target_user_id)
        if target_role != TeamRole.admin:
            return

        admin_count = await self.db.scalar(
            select(func.count())
            .select_from(TeamMember)
            .where(TeamMember.team_id == team_id, TeamMember.role == TeamRole.admin)
        )
        if (admin_count or 0) <= 1:
            raise self._deny(
                InvariantViolationError(
                    "team",
                    "A team must keep at least one admin. Promote another member first.",
                )
            )

    # -----------------------------------------------------------------------
    # Organizations
    # -----------------------------------------------------------------------

    async def require_org_member(self, org_id: UUID) -> OrgAccess:
        user_id = self.require_session()
        result = await self.db.execute(
            select(OrgMember.role).where(
                OrgMember.org_id == org_id,
                OrgMember.user_id == user_id,
            )
        )
        role = result.scalar_one_or_none()
        if role is None:
            raise self._deny(ForbiddenError("organization"))
        return OrgAccess(user_id=user_id, org_id=org_id, role=role)

    async def require_org_role(self, org_id: UUID, *roles: OrgRole) -> OrgAccess:
        access = await self.require_org_member(org_id)
        if access.role not in roles:
            raise self._deny(ForbiddenError("organization (role required)"))
        return access

    async def ensure_org_keeps_admin(self, org_id: UUID, target_user_id: UUID) -> None:
        """Organization counterpart of ensure_team_keeps_admin (business_admin)."""
        await self.db.execute(
            select(Organization.id).where(Organization.id == org_id).with_for_update()
        )
        result = await self.db.execute(
            select(OrgMember.role).where(
                OrgMember.org_id == org_id, OrgMember.user_id == target_user_id
            )
        )
        if result.scalar_one_or_none() != OrgRole.business_admin:
            return

        admin_count = await self.db.scalar(
            select(func.count())
            .select_from(OrgMember)
            .where(OrgMember.org_id == org_id, OrgMember.role == OrgRole.business_admin)
        )
        if (admin_count or 0) <= 1:
            raise self._deny(
                InvariantViolationError(
                    "organization",
                    "An organization must keep at least one business admin.",
                )
            )

    # -----------------------------------------------------------------------
    # Ideas
    # -----------------------------------------------------------------------

    async def require_idea_access(self, idea_id: UUID) -> IdeaAccess:
        """Owner, or member of the idea's team."""
        user_id = self.require_session()

        result = await self.db.execute(
            select(Idea.user_id, Idea.team_id).where(Idea.id == idea_id)
        )
        idea = result.one_or_none()
        if idea is None:
            raise self._deny(NotFoundError("idea"))

        owner_id, team_id = idea
        if owner_id == user_id:
            return IdeaAccess(user_id, idea_id, owner_id, team_id, is_owner=True, is_team_member=False)

        if team_id is not None and await self._team_role(team_id, user_id) is not None:
            return IdeaAccess(user_id, idea_id, owner_id, team_id, is_owner=False, is_team_member=True)

        raise self._deny(ForbiddenError("idea"))

    async def require_idea_owner(self, idea_id: UUID) -> IdeaAccess:
        """Owner only; team membership is not enough."""
        user_id = self.require_session()

        result = await self.db.execute(
            select(Idea.user_id, Idea.team_id).where(Idea.id == idea_id)
        )
        idea = result.one_or_none()
        if idea is None:
            raise self._deny(NotFoundError("idea"))

        owner_id, team_id = idea
        if owner_id != user_id:
            raise self._deny(ForbiddenError("idea"))
        return IdeaAccess(user_id, idea_id, owner_id, team_id, is_owner=True, is_team_member=False)

    # -----------------------------------------------------------------------
    # Sprints
    # -----------------------------------------------------------------------

    async def require_sprint_access(self, sprint_id: UUID) -> SprintAccess:
        """Owner, explicit sprint participant, or member of the sprint's team."""
        user_id = self.require_session()

        result = await self.db.execute(
            select(Sprint.owner_id, Sprint.team_id).where(Sprint.id == sprint_id)
        )
        sprint = result.one_or_none()
        if sprint is None:
            raise self._deny(NotFoundError("sprint"))

        owner_id, team_id = sprint
        if owner_id == user_id:
            return SprintAccess(
                user_id, sprint_id, owner_id, team_id,
                is_owner=True, is_sprint_member=False, is_team_member=False,
            )

        participant = await self.db.execute(
            select(SprintMember.id).where(
                SprintMember.sprint_id == sprint_id,
                SprintMember.user_id == user_id,
            )
        )
        if participant.scalar_one_or_none() is not None:
            return SprintAccess(
                user_id, sprint_id, owner_id, team_id,
                is_owner=False, is_sprint_member=True, is_team_member=False,
            )

        if team_id is not None and await self._team_role(team_id, user_id) is not None:
            return SprintAccess(
                user_id, sprint_id, owner_id, team_id,
                is_owner=False, is_sprint_member=False, is_team_member=True,
            )

        raise self._deny(ForbiddenError("sprint"))

    async def require_sprint_owner(self, sprint_id: UUID) -> SprintAccess:
        user_id = self.require_session()

        result = await self.db.execute(
            select(Sprint.owner_id, Sprint.team_id).where(Sprint.id == sprint_id)
        )
        sprint = result.one_or_none()
        if sprint is None:
            raise self._deny(NotFoundError("sprint"))

        owner_id, team_id = sprint
        if owner_id != user_id:
            raise self._deny(ForbiddenError("sprint"))
        return SprintAccess(
            user_id, sprint_id, owner_id, team_id,
            is_owner=True, is_sprint_member=False, is_team_member=False,
        )

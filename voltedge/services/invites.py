"""
Invite lifecycle.

Creates, lists, redeems and revokes 8-character invite codes for teams and
organizations. The lifecycle is written once (InviteLifecycle) and
parameterized by an InviteScope that knows the invite table, the membership
table and who administers the scope.

An invite is active until it is redeemed (used=True) or expires. Expiry is
computed from expires_at at call time; nothing sweeps it.
"""

from __future__ import annotations

import abc
import enum
import logging
import re
import secrets
import string
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Generic, TypeVar
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm.attributes import set_committed_value

from voltedge.core.config import settings
from voltedge.core.errors import ForbiddenError, NotFoundError
from voltedge.core.guards import AccessGuard
from voltedge.core.security import normalize_email
from voltedge.models.base import Base, utcnow
from voltedge.models.invitation import INVITE_CODE_LENGTH, InviteMixin, OrgInvite, TeamInvite
from voltedge.models.member import OrgMember, OrgRole
from voltedge.models.organization import Organization
from voltedge.models.team import Team, TeamMember, TeamRole
from voltedge.models.user import User
from voltedge.schemas.invite import InviteResponse
from voltedge.services.role_cache import RoleFactCache

logger = logging.getLogger(__name__)

INVITE_CODE_ALPHABET = string.ascii_uppercase + string.digits

InviteT = TypeVar("InviteT", bound=InviteMixin)


def generate_invite_code() -> str:
    """Return a random 8-character code over A-Z and 0-9."""
    return "".join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(INVITE_CODE_LENGTH))


def normalize_invite_code(raw: str) -> str | None:
    """Upper-case and strip separators; None unless exactly 8 characters remain."""
    code = re.sub(r"[^A-Z0-9]", "", raw.upper())
    if len(code) != INVITE_CODE_LENGTH:
        return None
    return code


@dataclass(frozen=True)
class RedeemResult:
    success: bool
    scope: str | None = None
    scope_id: UUID | None = None


FAILED = RedeemResult(success=False)


class _RedemptionLost(Exception):
    """The invite stopped being redeemable between the read and the flip."""


# ---------------------------------------------------------------------------
# Scopes
# ---------------------------------------------------------------------------

class InviteScope(abc.ABC, Generic[InviteT]):
    """What differs between team and organization invites."""

    name: str
    invite_model: type[InviteT]
    member_model: type[Base]
    role_enum: type[enum.Enum]

    def parse_role(self, role: Any) -> enum.Enum:
        try:
            return self.role_enum(role)
        except ValueError:
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail={
                    "code": "INVALID_ROLE",
                    "message": f"Role must be one of {[r.value for r in self.role_enum]}",
                },
            )

    @abc.abstractmethod
    async def require_admin(self, guard: AccessGuard, scope_id: UUID) -> None: ...

    @abc.abstractmethod
    async def is_member(self, db: AsyncSession, scope_id: UUID, user_id: UUID) -> bool: ...

    async def can_join(self, db: AsyncSession, scope_id: UUID, user_id: UUID) -> bool:
        return True

    @abc.abstractmethod
    def new_membership(self, scope_id: UUID, user_id: UUID, role: enum.Enum) -> Base: ...

    @abc.abstractmethod
    async def display_name(self, db: AsyncSession, scope_id: UUID) -> str: ...


class TeamScope(InviteScope[TeamInvite]):
    name = "team"
    invite_model = TeamInvite
    member_model = TeamMember
    role_enum = TeamRole

    async def require_admin(self, guard: AccessGuard, scope_id: UUID) -> None:
        await guard.require_team_admin(scope_id)

    async def is_member(self, db: AsyncSession, scope_id: UUID, user_id: UUID) -> bool:
        result = await db.execute(
            select(TeamMember.id).where(
                TeamMember.team_id == scope_id, TeamMember.user_id == user_id
            )
        )
        return result.scalar_one_or_none() is not None

    def new_membership(self, scope_id: UUID, user_id: UUID, role: enum.Enum) -> TeamMember:
        return TeamMember(team_id=scope_id, user_id=user_id, role=role)

    async def display_name(self, db: AsyncSession, scope_id: UUID) -> str:
        return await db.scalar(select(Team.name).where(Team.id == scope_id)) or "a team"


class OrganizationScope(InviteScope[OrgInvite]):
    name = "organization"
    invite_model = OrgInvite
    member_model = OrgMember
    role_enum = OrgRole

    async def require_admin(self, guard: AccessGuard, scope_id: UUID) -> None:
        await guard.require_org_role(scope_id, OrgRole.business_admin)

    async def is_member(self, db: AsyncSession, scope_id: UUID, user_id: UUID) -> bool:
        result = await db.execute(
            select(OrgMember.id).where(
                OrgMember.org_id == scope_id, OrgMember.user_id == user_id
            )
        )
        return result.scalar_one_or_none() is not None

    async def can_join(self, db: AsyncSession, scope_id: UUID, user_id: UUID) -> bool:
        # A user belongs to at most one organization
        result = await db.execute(select(OrgMember.id).where(OrgMember.user_id == user_id))
        return result.scalar_one_or_none() is None

    def new_membership(self, scope_id: UUID, user_id: UUID, role: enum.Enum) -> OrgMember:
        return OrgMember(org_id=scope_id, user_id=user_id, role=role)

    async def display_name(self, db: AsyncSession, scope_id: UUID) -> str:
        return (
            await db.scalar(select(Organization.name).where(Organization.id == scope_id))
            or "an organization"
        )


TEAM_SCOPE = TeamScope()
ORG_SCOPE = OrganizationScope()


# ---------------------------------------------------------------------------
# Lifecycle
# ---------------------------------------------------------------------------

class InviteLifecycle(Generic[InviteT]):
    """Invite operations for one scope, on behalf of one principal."""

    def __init__(
        self,
        db: AsyncSession,
        guard: AccessGuard,
        cache: RoleFactCache,
        scope: InviteScope[InviteT],
        now: Callable[[], datetime] = utcnow,
    ) -> None:
        self.db = db
        self.guard = guard
        self.cache = cache
        self.scope = scope
        self.now = now
        self.model = scope.invite_model

    # -----------------------------------------------------------------------
    # Create
    # -----------------------------------------------------------------------

    async def create(
        self, scope_id: UUID, role: Any = "member", email: str | None = None
    ) -> InviteT:
        """
        Create an invite for the scope. Requires admin of the scope.

        Code uniqueness is enforced by the database; a collision surfaces as
        an IntegrityError rather than being retried here.
        """
        await self.scope.require_admin(self.guard, scope_id)
        parsed_role = self.scope.parse_role(role)
        target_email = normalize_email(email) if email else None

        invite = self.model(
            email=target_email,
            role=parsed_role,
            code=generate_invite_code(),
            expires_at=self.now() + timedelta(days=settings.INVITE_TTL_DAYS),
            used=False,
            created_by=self.guard.principal_id,
        )
        invite.scope_id = scope_id
        self.db.add(invite)
        await self.db.commit()

        logger.info(
            "Created %s invite %s for %s (targeted=%s)",
            self.scope.name, invite.id, scope_id, target_email is not None,
        )

        if target_email:
            from voltedge.workers.email_tasks import send_invite_email
            send_invite_email.delay(
                to_email=target_email,
                scope=self.scope.name,
                scope_name=await self.scope.display_name(self.db, scope_id),
                role=parsed_role.value,
                invite_code=invite.code,
                frontend_url=settings.FRONTEND_URL,
                expires_in_days=settings.INVITE_TTL_DAYS,
            )

        return invite

    # -----------------------------------------------------------------------
    # Redeem
    # -----------------------------------------------------------------------

    async def redeem(self, code: str, user_id: UUID | None = None) -> RedeemResult:
        """
        Redeem a code for the current principal.

        Never raises for an unusable code: not found, expired, email
        mismatch and already used all return the same failed result. An
        existing member redeeming again succeeds without writing anything.
        Membership creation and the used flip commit together.
        """
        principal_id = self.guard.require_session()
        if user_id is not None and user_id != principal_id:
            raise ForbiddenError("invite")

        now = self.now()

        normalized = normalize_invite_code(code)
        if normalized is None:
            return self._fail("malformed")

        result = await self.db.execute(select(self.model).where(self.model.code == normalized))
        invite = result.scalar_one_or_none()
        if invite is None:
            return self._fail("not_found")

        if invite.is_expired(now):
            return self._fail("expired", invite)

        if invite.email:
            user_email = await self.db.scalar(select(User.email).where(User.id == principal_id))
            if user_email is None or normalize_email(user_email) != normalize_email(invite.email):
                return self._fail("email_mismatch", invite)

        if await self.scope.is_member(self.db, invite.scope_id, principal_id):
            return RedeemResult(success=True, scope=self.scope.name, scope_id=invite.scope_id)

        if invite.used:
            return self._fail("used", invite)

        if not await self.scope.can_join(self.db, invite.scope_id, principal_id):
            return self._fail("conflicting_membership", invite)

        table = self.model.__table__
        try:
            async with self.db.begin_nested():
                flipped = await self.db.execute(
                    update(table)
                    .where(
                        table.c.id == invite.id,
                        table.c.used.is_(False),
                        table.c.expires_at >= now,
                    )
                    .values(used=True)
                )
                if flipped.rowcount != 1:
                    raise _RedemptionLost()
                self.db.add(self.scope.new_membership(invite.scope_id, principal_id, invite.role))
                await self.db.flush()
        except (_RedemptionLost, IntegrityError):
            return self._fail("lost_race", invite)

        set_committed_value(invite, "used", True)
        await self.db.commit()
        await self.cache.invalidate(principal_id)

        logger.info("User %s redeemed %s invite %s", principal_id, self.scope.name, invite.id)
        return RedeemResult(success=True, scope=self.scope.name, scope_id=invite.scope_id)

    def _fail(self, reason: str, invite: InviteMixin | None = None) -> RedeemResult:
        logger.info(
            "Rejected %s invite redemption by %s: %s (invite=%s)",
            self.scope.name,
            self.guard.principal_id,
            reason,
            invite.id if invite is not None else None,
        )
        return FAILED

    # -----------------------------------------------------------------------
    # List / Revoke
    # -----------------------------------------------------------------------

    async def list(self, scope_id: UUID) -> list[InviteT]:
        """Active invites only: unused and unexpired. Requires admin of the scope."""
        await self.scope.require_admin(self.guard, scope_id)
        result = await self.db.execute(
            select(self.model)
            .where(
                self.model.scope_id == scope_id,
                self.model.used.is_(False),
                self.model.expires_at >= self.now(),
            )
            .order_by(self.model.created_at.desc())
        )
        return list(result.scalars().all())

    async def revoke(self, invite_id: UUID) -> None:
        """Delete an invite after checking admin rights on the invite's own scope."""
        self.guard.require_session()

        result = await self.db.execute(
            select(self.model.scope_id).where(self.model.id == invite_id)
        )
        scope_id = result.scalar_one_or_none()
        if scope_id is None:
            raise NotFoundError("invite")

        await self.scope.require_admin(self.guard, scope_id)
        await self.db.execute(delete(self.model).where(self.model.id == invite_id))
        await self.db.flush()
        logger.info("Revoked %s invite %s", self.scope.name, invite_id)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

async def join_with_code(
    db: AsyncSession, guard: AccessGuard, cache: RoleFactCache, code: str
) -> RedeemResult:
    """Try the code as a team invite first, then as an organization invite."""
    team_result = await InviteLifecycle(db, guard, cache, TEAM_SCOPE).redeem(code)
    if team_result.success:
        return team_result
    return await InviteLifecycle(db, guard, cache, ORG_SCOPE).redeem(code)


def to_invite_response(invite: InviteMixin, scope: InviteScope) -> InviteResponse:
    return InviteResponse(
        id=invite.id,
        scope=scope.name,
        scope_id=invite.scope_id,
        email=invite.email,
        role=invite.role.value,
        code=invite.code,
        expires_at=invite.expires_at,
        used=invite.used,
        created_at=invite.created_at,
    )

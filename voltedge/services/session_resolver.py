"""
Session resolution.

Turns credentials into a stable principal (user id) and derives the
role-fact bundle for a principal from persisted memberships.
"""

from __future__ import annotations

import logging
from uuid import UUID

from jose import JWTError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from voltedge.core.security import decode_access_token, normalize_email, verify_password
from voltedge.models.member import OrgMember
from voltedge.models.team import TeamMember
from voltedge.models.user import User
from voltedge.schemas.auth import RoleFacts

logger = logging.getLogger(__name__)


class UnknownPrincipalError(LookupError):
    """Role facts were requested for a user id with no user record."""


class SessionResolver:
    """Resolves principals and their authorization facts."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # -----------------------------------------------------------------------
    # Principals
    # -----------------------------------------------------------------------

    @staticmethod
    def resolve_principal(token: str | None) -> UUID | None:
        """
        Resolve the user id carried by a session access token.

        Returns None for a missing, malformed, expired or non-access token.
        """
        if not token:
            return None
        try:
            payload = decode_access_token(token)
            return UUID(payload.get("sub", ""))
        except (JWTError, ValueError):
            return None

    async def resolve_password(self, email: str, password: str) -> User | None:
        """Return the user for a valid email/password pair, else None."""
        result = await self.db.execute(
            select(User).where(User.email == normalize_email(email))
        )
        user = result.scalar_one_or_none()
        if user is None or user.password_hash is None:
            return None
        if not verify_password(password, user.password_hash):
            return None
        return user

    async def resolve_external_identity(
        self,
        subject: str,
        email: str,
        display_name: str | None = None,
        provider: str = "cognito",
    ) -> tuple[User, bool]:
        """
        Resolve (or provision) the user behind an identity-provider subject.

        Lookup order: subject, then normalized email (links the subject to a
        password account), then create. Returns (user, created).
        """
        email = normalize_email(email)

        user = await self._user_by_subject(subject)
        if user is not None:
            return user, False

        result = await self.db.execute(select(User).where(User.email == email))
        user = result.scalar_one_or_none()
        if user is not None:
            user.auth_subject = subject
            user.auth_provider = provider
            await self.db.flush()
            return user, False

        user = User(
            email=email,
            display_name=display_name or email.split("@")[0],
            auth_subject=subject,
            auth_provider=provider,
        )
        try:
            async with self.db.begin_nested():
                self.db.add(user)
        except IntegrityError:
            # Lost a race against a concurrent first sign-in; use the winner
            logger.info("Concurrent provisioning for subject %s; reusing existing user", subject)
            existing = await self._user_by_subject(subject)
            if existing is None:
                result = await self.db.execute(select(User).where(User.email == email))
                existing = result.scalar_one()
            return existing, False

        logger.info("Provisioned user %s for %s subject", user.id, provider)
        return user, True

    async def _user_by_subject(self, subject: str) -> User | None:
        result = await self.db.execute(select(User).where(User.auth_subject == subject))
        return result.scalar_one_or_none()

    # -----------------------------------------------------------------------
    # Role facts
    # -----------------------------------------------------------------------

    async def resolve_role_facts(self, user_id: UUID) -> RoleFacts:
        """
        Derive the role-fact bundle for a user.

        Users without memberships get empty org/team facts. A user id with
        no user record raises UnknownPrincipalError.
        """
        user_row = await self.db.execute(
            select(User.onboarding_complete, User.account_type).where(User.id == user_id)
        )
        user = user_row.one_or_none()
        if user is None:
            raise UnknownPrincipalError(str(user_id))

        org_row = await self.db.execute(
            select(OrgMember.org_id, OrgMember.role).where(OrgMember.user_id == user_id)
        )
        org = org_row.one_or_none()

        team_rows = await self.db.execute(
            select(TeamMember.team_id, TeamMember.role)
            .where(TeamMember.user_id == user_id)
            .order_by(TeamMember.joined_at)
        )
        teams = team_rows.all()

        return RoleFacts(
            user_id=user_id,
            org_id=org.org_id if org else None,
            org_role=org.role if org else None,
            team_ids=[team_id for team_id, _ in teams],
            team_roles={str(team_id): role for team_id, role in teams},
            onboarding_complete=user.onboarding_complete,
            account_type=user.account_type,
        )

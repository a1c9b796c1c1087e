"""
Organization business logic.

Handles org creation and member management. A user belongs to at most one
organization; membership changes commit and then invalidate role facts.
"""

from __future__ import annotations

import logging
import re
import secrets
import string
from uuid import UUID

from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from voltedge.core.errors import NotFoundError
from voltedge.core.guards import AccessGuard
from voltedge.models.member import OrgMember, OrgRole
from voltedge.models.organization import Organization
from voltedge.models.user import AccountType, User
from voltedge.schemas.organization import (
    OrganizationCreateRequest,
    OrganizationResponse,
    OrgMemberResponse,
    OrgMembersListResponse,
)
from voltedge.services.role_cache import RoleFactCache

logger = logging.getLogger(__name__)

SLUG_SUFFIX_ALPHABET = string.ascii_lowercase + string.digits


def slugify(name: str) -> str:
    slug = re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")
    return slug[:100] or "org"


def generate_slug(name: str) -> str:
    """Slugified name plus a 4-character random suffix, e.g. ``acme-labs-x7k2``."""
    suffix = "".join(secrets.choice(SLUG_SUFFIX_ALPHABET) for _ in range(4))
    return f"{slugify(name)}-{suffix}"


class OrganizationService:
    """Handles all organization operations for the current principal."""

    def __init__(self, db: AsyncSession, guard: AccessGuard, cache: RoleFactCache) -> None:
        self.db = db
        self.guard = guard
        self.cache = cache

    # -----------------------------------------------------------------------
    # Create Organization
    # -----------------------------------------------------------------------

    async def create_organization(self, data: OrganizationCreateRequest) -> OrganizationResponse:
        """
        Create a new organization.

        - Rejects callers who already belong to an organization
        - Rejects a domain already claimed by another organization
        - Creator becomes business_admin and a business account
        """
        user_id = self.guard.require_session()

        existing_member = await self.db.execute(
            select(OrgMember.id).where(OrgMember.user_id == user_id)
        )
        if existing_member.scalar_one_or_none() is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={"code": "ALREADY_IN_ORG", "message": "You already belong to an organization"},
            )

        if data.domain is not None:
            taken = await self.db.execute(
                select(Organization.id).where(Organization.domain == data.domain)
            )
            if taken.scalar_one_or_none() is not None:
                raise HTTPException(
                    status_code=status.HTTP_409_CONFLICT,
                    detail={"code": "DOMAIN_TAKEN", "message": "Domain is already claimed"},
                )

        slug = generate_slug(data.name)
        while await self.db.scalar(select(Organization.id).where(Organization.slug == slug)):
            slug = generate_slug(data.name)

        org = Organization(name=data.name.strip(), slug=slug, domain=data.domain)
        self.db.add(org)
        await self.db.flush()

        self.db.add(OrgMember(org_id=org.id, user_id=user_id, role=OrgRole.business_admin))
        user = await self.db.get(User, user_id)
        if user is not None:
            user.account_type = AccountType.business

        await self.db.commit()
        await self.cache.invalidate(user_id)

        logger.info("User %s created organization %s (%s)", user_id, org.id, org.slug)
        return OrganizationResponse.model_validate(org)

    # -----------------------------------------------------------------------
    # Get Organization
    # -----------------------------------------------------------------------

    async def get_organization(self, slug: str) -> OrganizationResponse:
        """Get organization by slug. Members only."""
        self.guard.require_session()
        org = await self._get_by_slug(slug)
        await self.guard.require_org_member(org.id)
        return OrganizationResponse.model_validate(org)

    async def find_by_domain(self, domain: str) -> OrganizationResponse | None:
        """Organization that claimed an email domain, if any."""
        self.guard.require_session()
        result = await self.db.execute(
            select(Organization).where(Organization.domain == domain.strip().lower())
        )
        org = result.scalar_one_or_none()
        return OrganizationResponse.model_validate(org) if org is not None else None

    async def resolve_slug(self, slug: str) -> UUID:
        """Org id for a slug the caller belongs to."""
        org = await self._get_by_slug(slug)
        await self.guard.require_org_member(org.id)
        return org.id

    # -----------------------------------------------------------------------
    # Members
    # -----------------------------------------------------------------------

    async def list_members(self, org_id: UUID) -> OrgMembersListResponse:
        """List all members of an organization with user details."""
        await self.guard.require_org_member(org_id)
        result = await self.db.execute(
            select(OrgMember, User)
            .join(User, OrgMember.user_id == User.id)
            .where(OrgMember.org_id == org_id)
            .order_by(OrgMember.joined_at)
        )
        members = [
            OrgMemberResponse(
                org_id=member.org_id,
                user_id=member.user_id,
                email=user.email,
                display_name=user.display_name,
                role=member.role,
                joined_at=member.joined_at,
            )
            for member, user in result.all()
        ]
        return OrgMembersListResponse(members=members, total=len(members))

    async def update_member_role(
        self, org_id: UUID, target_user_id: UUID, new_role: OrgRole
    ) -> OrgMemberResponse:
        """
        Change a member's role. business_admin only.

        Demoting the last business_admin is rejected.
        """
        await self.guard.require_org_role(org_id, OrgRole.business_admin)

        if new_role != OrgRole.business_admin:
            await self.guard.ensure_org_keeps_admin(org_id, target_user_id)

        result = await self.db.execute(
            select(OrgMember, User)
            .join(User, OrgMember.user_id == User.id)
            .where(OrgMember.org_id == org_id, OrgMember.user_id == target_user_id)
        )
        row = result.one_or_none()
        if row is None:
            raise NotFoundError("organization member")

        target_member, target_user = row
        target_member.role = new_role
        await self.db.commit()
        await self.cache.invalidate(target_user_id)

        return OrgMemberResponse(
            org_id=org_id,
            user_id=target_user_id,
            email=target_user.email,
            display_name=target_user.display_name,
            role=new_role,
            joined_at=target_member.joined_at,
        )

    async def remove_member(self, org_id: UUID, target_user_id: UUID) -> None:
        """
        Remove a member. business_admins may remove anyone; members may leave.

        Removing the last business_admin is rejected.
        """
        if target_user_id == self.guard.require_session():
            await self.guard.require_org_member(org_id)
        else:
            await self.guard.require_org_role(org_id, OrgRole.business_admin)

        await self.guard.ensure_org_keeps_admin(org_id, target_user_id)

        result = await self.db.execute(
            select(OrgMember).where(
                OrgMember.org_id == org_id, OrgMember.user_id == target_user_id
            )
        )
        member = result.scalar_one_or_none()
        if member is None:
            raise NotFoundError("organization member")

        await self.db.delete(member)
        await self.db.commit()
        await self.cache.invalidate(target_user_id)
        logger.info("Organization %s: removed %s", org_id, target_user_id)

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    async def _get_by_slug(self, slug: str) -> Organization:
        result = await self.db.execute(select(Organization).where(Organization.slug == slug))
        org = result.scalar_one_or_none()
        if org is None:
            raise NotFoundError("organization")
        return org

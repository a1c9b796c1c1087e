"""
Organization management endpoints.

Create, lookup, member management, invites.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from voltedge.core.database import get_db
from voltedge.core.dependencies import get_guard, get_role_cache
from voltedge.core.guards import AccessGuard
from voltedge.routers.invites import to_redeem_response
from voltedge.schemas.invite import (
    InviteCreateRequest,
    InviteResponse,
    InvitesListResponse,
    RedeemRequest,
    RedeemResponse,
)
from voltedge.schemas.organization import (
    OrganizationCreateRequest,
    OrganizationResponse,
    OrgMemberResponse,
    OrgMemberRoleUpdateRequest,
    OrgMembersListResponse,
)
from voltedge.schemas.team import TeamsListResponse
from voltedge.services.invites import ORG_SCOPE, InviteLifecycle, to_invite_response
from voltedge.services.organization_service import OrganizationService
from voltedge.services.role_cache import RoleFactCache
from voltedge.services.team_service import TeamService

router = APIRouter()


def get_org_service(
    db: AsyncSession = Depends(get_db),
    guard: AccessGuard = Depends(get_guard),
    cache: RoleFactCache = Depends(get_role_cache),
) -> OrganizationService:
    """Dependency that constructs OrganizationService."""
    return OrganizationService(db=db, guard=guard, cache=cache)


def get_org_invites(
    db: AsyncSession = Depends(get_db),
    guard: AccessGuard = Depends(get_guard),
    cache: RoleFactCache = Depends(get_role_cache),
) -> InviteLifecycle:
    """Dependency that constructs the organization invite lifecycle."""
    return InviteLifecycle(db, guard, cache, ORG_SCOPE)


# ---------------------------------------------------------------------------
# Create / Lookup
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=OrganizationResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new organization",
)
async def create_organization(
    data: OrganizationCreateRequest,
    service: OrganizationService = Depends(get_org_service),
) -> OrganizationResponse:
    """
    Create a new organization.

    - Slug is derived from the name with a random suffix
    - Creator is assigned business_admin
    - Rejected when the caller already belongs to an organization
    """
    return await service.create_organization(data)


@router.get(
    "/lookup",
    response_model=OrganizationResponse | None,
    summary="Find the organization that claimed an email domain",
)
async def lookup_by_domain(
    domain: str = Query(..., min_length=3, max_length=255),
    service: OrganizationService = Depends(get_org_service),
) -> OrganizationResponse | None:
    return await service.find_by_domain(domain)


@router.post(
    "/invites/redeem",
    response_model=RedeemResponse,
    summary="Redeem an organization invite code",
)
async def redeem_org_invite(
    data: RedeemRequest,
    invites: InviteLifecycle = Depends(get_org_invites),
) -> RedeemResponse:
    """Join an organization. Fails when the caller belongs to another one."""
    return to_redeem_response(await invites.redeem(data.code))


@router.delete(
    "/invites/{invite_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Revoke an organization invite",
)
async def revoke_org_invite(
    invite_id: UUID,
    invites: InviteLifecycle = Depends(get_org_invites),
) -> None:
    await invites.revoke(invite_id)


@router.get(
    "/{slug}",
    response_model=OrganizationResponse,
    summary="Get organization by slug",
)
async def get_organization(
    slug: str,
    service: OrganizationService = Depends(get_org_service),
) -> OrganizationResponse:
    return await service.get_organization(slug)


@router.get(
    "/{slug}/teams",
    response_model=TeamsListResponse,
    summary="List the organization's teams",
)
async def list_org_teams(
    slug: str,
    service: OrganizationService = Depends(get_org_service),
    db: AsyncSession = Depends(get_db),
    guard: AccessGuard = Depends(get_guard),
    cache: RoleFactCache = Depends(get_role_cache),
) -> TeamsListResponse:
    org_id = await service.resolve_slug(slug)
    return await TeamService(db, guard, cache).list_org_teams(org_id)


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

@router.get(
    "/{slug}/members",
    response_model=OrgMembersListResponse,
    summary="List organization members",
)
async def list_members(
    slug: str,
    service: OrganizationService = Depends(get_org_service),
) -> OrgMembersListResponse:
    return await service.list_members(await service.resolve_slug(slug))


@router.patch(
    "/{slug}/members/{user_id}",
    response_model=OrgMemberResponse,
    summary="Change a member's role",
)
async def update_member_role(
    slug: str,
    user_id: UUID,
    data: OrgMemberRoleUpdateRequest,
    service: OrganizationService = Depends(get_org_service),
) -> OrgMemberResponse:
    """
    Change a member's role. business_admin only.

    Demoting the last business_admin is rejected (403 `LAST_ADMIN`).
    """
    org_id = await service.resolve_slug(slug)
    return await service.update_member_role(org_id, user_id, data.role)


@router.delete(
    "/{slug}/members/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove an organization member",
)
async def remove_member(
    slug: str,
    user_id: UUID,
    service: OrganizationService = Depends(get_org_service),
) -> None:
    await service.remove_member(await service.resolve_slug(slug), user_id)


# ---------------------------------------------------------------------------
# Invites
# ---------------------------------------------------------------------------

@router.post(
    "/{slug}/invites",
    response_model=InviteResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an organization invite",
)
async def create_invite(
    slug: str,
    data: InviteCreateRequest,
    service: OrganizationService = Depends(get_org_service),
    invites: InviteLifecycle = Depends(get_org_invites),
) -> InviteResponse:
    """Create an invite code. business_admin only."""
    org_id = await service.resolve_slug(slug)
    invite = await invites.create(org_id, role=data.role, email=data.email)
    return to_invite_response(invite, ORG_SCOPE)


@router.get(
    "/{slug}/invites",
    response_model=InvitesListResponse,
    summary="List active organization invites",
)
async def list_invites(
    slug: str,
    service: OrganizationService = Depends(get_org_service),
    invites: InviteLifecycle = Depends(get_org_invites),
) -> InvitesListResponse:
    org_id = await service.resolve_slug(slug)
    items = [to_invite_response(invite, ORG_SCOPE) for invite in await invites.list(org_id)]
    return InvitesListResponse(invites=items, total=len(items))

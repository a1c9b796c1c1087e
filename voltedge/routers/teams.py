"""
Team endpoints.

Team CRUD, membership management and team invites.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
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
from voltedge.schemas.resource import IdeasListResponse
from voltedge.schemas.team import (
    TeamCreateRequest,
    TeamMemberAddRequest,
    TeamMemberResponse,
    TeamMemberRoleUpdateRequest,
    TeamMembershipResponse,
    TeamMembersListResponse,
    TeamResponse,
    TeamUpdateRequest,
)
from voltedge.services.invites import TEAM_SCOPE, InviteLifecycle, to_invite_response
from voltedge.services.resource_service import IdeaService
from voltedge.services.role_cache import RoleFactCache
from voltedge.services.team_service import TeamService

router = APIRouter()


def get_team_service(
    db: AsyncSession = Depends(get_db),
    guard: AccessGuard = Depends(get_guard),
    cache: RoleFactCache = Depends(get_role_cache),
) -> TeamService:
    """Dependency that constructs TeamService."""
    return TeamService(db=db, guard=guard, cache=cache)


def get_team_invites(
    db: AsyncSession = Depends(get_db),
    guard: AccessGuard = Depends(get_guard),
    cache: RoleFactCache = Depends(get_role_cache),
) -> InviteLifecycle:
    """Dependency that constructs the team invite lifecycle."""
    return InviteLifecycle(db, guard, cache, TEAM_SCOPE)


# ---------------------------------------------------------------------------
# Teams
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=TeamResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a team",
)
async def create_team(
    data: TeamCreateRequest,
    service: TeamService = Depends(get_team_service),
) -> TeamResponse:
    """
    Create a team. The creator becomes its admin.

    Org-scoped teams require business_admin or team_admin in that org.
    """
    return await service.create_team(data)


@router.post(
    "/invites/redeem",
    response_model=RedeemResponse,
    summary="Redeem a team invite code",
)
async def redeem_team_invite(
    data: RedeemRequest,
    invites: InviteLifecycle = Depends(get_team_invites),
) -> RedeemResponse:
    return to_redeem_response(await invites.redeem(data.code))


@router.delete(
    "/invites/{invite_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Revoke a team invite",
)
async def revoke_team_invite(
    invite_id: UUID,
    invites: InviteLifecycle = Depends(get_team_invites),
) -> None:
    await invites.revoke(invite_id)


@router.get("/{team_id}", response_model=TeamResponse, summary="Get a team")
async def get_team(
    team_id: UUID,
    service: TeamService = Depends(get_team_service),
) -> TeamResponse:
    return await service.get_team(team_id)


@router.patch("/{team_id}", response_model=TeamResponse, summary="Rename a team")
async def update_team(
    team_id: UUID,
    data: TeamUpdateRequest,
    service: TeamService = Depends(get_team_service),
) -> TeamResponse:
    return await service.update_team(team_id, data)


@router.delete(
    "/{team_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a team",
)
async def delete_team(
    team_id: UUID,
    service: TeamService = Depends(get_team_service),
) -> None:
    await service.delete_team(team_id)


@router.get("/{team_id}/ideas", response_model=IdeasListResponse, summary="List team ideas")
async def list_team_ideas(
    team_id: UUID,
    db: AsyncSession = Depends(get_db),
    guard: AccessGuard = Depends(get_guard),
) -> IdeasListResponse:
    return await IdeaService(db, guard).list_team_ideas(team_id)


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

@router.get(
    "/{team_id}/members",
    response_model=TeamMembersListResponse,
    summary="List team members",
)
async def list_members(
    team_id: UUID,
    service: TeamService = Depends(get_team_service),
) -> TeamMembersListResponse:
    return await service.list_members(team_id)


@router.post(
    "/{team_id}/members",
    response_model=TeamMemberResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a team member",
)
async def add_member(
    team_id: UUID,
    data: TeamMemberAddRequest,
    service: TeamService = Depends(get_team_service),
) -> TeamMemberResponse:
    return await service.add_member(team_id, data)


@router.get(
    "/{team_id}/members/{user_id}",
    response_model=TeamMembershipResponse,
    summary="Check team membership",
)
async def check_membership(
    team_id: UUID,
    user_id: UUID,
    service: TeamService = Depends(get_team_service),
) -> TeamMembershipResponse:
    return await service.check_membership(team_id, user_id)


@router.patch(
    "/{team_id}/members/{user_id}",
    response_model=TeamMembershipResponse,
    summary="Change a member's role",
)
async def update_member_role(
    team_id: UUID,
    user_id: UUID,
    data: TeamMemberRoleUpdateRequest,
    service: TeamService = Depends(get_team_service),
) -> TeamMembershipResponse:
    """
    Change a member's role. Admin only.

    Demoting the team's last admin is rejected (403 `LAST_ADMIN`).
    """
    return await service.update_member_role(team_id, user_id, data.role)


@router.delete(
    "/{team_id}/members/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a team member",
)
async def remove_member(
    team_id: UUID,
    user_id: UUID,
    service: TeamService = Depends(get_team_service),
) -> None:
    """
    Remove a member. Admins may remove anyone; members may leave.

    Removing the team's last admin is rejected (403 `LAST_ADMIN`).
    """
    await service.remove_member(team_id, user_id)


# ---------------------------------------------------------------------------
# Invites
# ---------------------------------------------------------------------------

@router.post(
    "/{team_id}/invites",
    response_model=InviteResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a team invite",
)
async def create_invite(
    team_id: UUID,
    data: InviteCreateRequest,
    invites: InviteLifecycle = Depends(get_team_invites),
) -> InviteResponse:
    """
    Create an 8-character invite code valid for 7 days. Admin only.

    When `email` is set, only that address can redeem it and an email is sent.
    """
    invite = await invites.create(team_id, role=data.role, email=data.email)
    return to_invite_response(invite, TEAM_SCOPE)


@router.get(
    "/{team_id}/invites",
    response_model=InvitesListResponse,
    summary="List active team invites",
)
async def list_invites(
    team_id: UUID,
    invites: InviteLifecycle = Depends(get_team_invites),
) -> InvitesListResponse:
    items = [to_invite_response(invite, TEAM_SCOPE) for invite in await invites.list(team_id)]
    return InvitesListResponse(invites=items, total=len(items))

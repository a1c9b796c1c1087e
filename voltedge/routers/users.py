"""
User-scoped endpoints.

Onboarding, and listings of a user's own teams, ideas and sprints. Listings
for any user id other than the caller's are rejected.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from voltedge.core.database import get_db
from voltedge.core.dependencies import get_current_user, get_guard, get_role_cache
from voltedge.core.guards import AccessGuard
from voltedge.models.user import User
from voltedge.routers.auth import get_auth_service, set_session_cookie
from voltedge.schemas.auth import OnboardingRequest, OnboardingResponse
from voltedge.schemas.resource import IdeasListResponse, SprintsListResponse
from voltedge.schemas.team import TeamsListResponse
from voltedge.services.auth_service import AuthService
from voltedge.services.resource_service import IdeaService, SprintService
from voltedge.services.role_cache import RoleFactCache
from voltedge.services.team_service import TeamService

router = APIRouter()


# ---------------------------------------------------------------------------
# Onboarding
# ---------------------------------------------------------------------------

@router.post(
    "/me/onboarding",
    response_model=OnboardingResponse,
    summary="Complete onboarding",
)
async def complete_onboarding(
    data: OnboardingRequest,
    response: Response,
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> OnboardingResponse:
    """
    Finish onboarding for the current user.

    - Records the account type
    - Redeems `invite_code` when given (team first, then organization)
    - Returns fresh tokens so the route gate sees the new state at once
    """
    result = await service.complete_onboarding(current_user, data)
    set_session_cookie(response, result.tokens)
    return result


# ---------------------------------------------------------------------------
# Listings
# ---------------------------------------------------------------------------

@router.get("/{user_id}/teams", response_model=TeamsListResponse, summary="List a user's teams")
async def list_user_teams(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    guard: AccessGuard = Depends(get_guard),
    cache: RoleFactCache = Depends(get_role_cache),
) -> TeamsListResponse:
    return await TeamService(db, guard, cache).list_user_teams(user_id)


@router.get("/{user_id}/ideas", response_model=IdeasListResponse, summary="List a user's ideas")
async def list_user_ideas(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    guard: AccessGuard = Depends(get_guard),
) -> IdeasListResponse:
    return await IdeaService(db, guard).list_user_ideas(user_id)


@router.get(
    "/{user_id}/sprints",
    response_model=SprintsListResponse,
    summary="List a user's sprints",
)
async def list_user_sprints(
    user_id: UUID,
    db: AsyncSession = Depends(get_db),
    guard: AccessGuard = Depends(get_guard),
) -> SprintsListResponse:
    return await SprintService(db, guard).list_user_sprints(user_id)

"""
Sprint endpoints.

Create, read, delete sprints and manage explicit participants.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from voltedge.core.database import get_db
from voltedge.core.dependencies import get_guard
from voltedge.core.guards import AccessGuard
from voltedge.schemas.resource import (
    IdeasListResponse,
    SprintCreateRequest,
    SprintMemberAddRequest,
    SprintMemberResponse,
    SprintMembersListResponse,
    SprintResponse,
)
from voltedge.services.resource_service import SprintService

router = APIRouter()


def get_sprint_service(
    db: AsyncSession = Depends(get_db),
    guard: AccessGuard = Depends(get_guard),
) -> SprintService:
    return SprintService(db=db, guard=guard)


# ---------------------------------------------------------------------------
# Sprints
# ---------------------------------------------------------------------------

@router.post(
    "",
    response_model=SprintResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a new sprint",
)
async def create_sprint(
    data: SprintCreateRequest,
    service: SprintService = Depends(get_sprint_service),
) -> SprintResponse:
    """Create a sprint owned by the caller, optionally scoped to one of their teams."""
    return await service.create_sprint(data)


@router.get("/{sprint_id}", response_model=SprintResponse, summary="Get a sprint")
async def get_sprint(
    sprint_id: UUID,
    service: SprintService = Depends(get_sprint_service),
) -> SprintResponse:
    """Visible to the owner, explicit participants and members of the sprint's team."""
    return await service.get_sprint(sprint_id)


@router.delete(
    "/{sprint_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a sprint",
)
async def delete_sprint(
    sprint_id: UUID,
    service: SprintService = Depends(get_sprint_service),
) -> None:
    await service.delete_sprint(sprint_id)


@router.get(
    "/{sprint_id}/ideas",
    response_model=IdeasListResponse,
    summary="List ideas in a sprint",
)
async def list_sprint_ideas(
    sprint_id: UUID,
    service: SprintService = Depends(get_sprint_service),
) -> IdeasListResponse:
    return await service.list_sprint_ideas(sprint_id)


# ---------------------------------------------------------------------------
# Participants
# ---------------------------------------------------------------------------

@router.get(
    "/{sprint_id}/members",
    response_model=SprintMembersListResponse,
    summary="List sprint participants",
)
async def list_participants(
    sprint_id: UUID,
    service: SprintService = Depends(get_sprint_service),
) -> SprintMembersListResponse:
    return await service.list_participants(sprint_id)


@router.post(
    "/{sprint_id}/members",
    response_model=SprintMemberResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a sprint participant",
)
async def add_participant(
    sprint_id: UUID,
    data: SprintMemberAddRequest,
    service: SprintService = Depends(get_sprint_service),
) -> SprintMemberResponse:
    return await service.add_participant(sprint_id, data)


@router.delete(
    "/{sprint_id}/members/{user_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a sprint participant",
)
async def remove_participant(
    sprint_id: UUID,
    user_id: UUID,
    service: SprintService = Depends(get_sprint_service),
) -> None:
    await service.remove_participant(sprint_id, user_id)

"""
Idea endpoints.
"""

from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, status
from sqlalchemy.ext.asyncio import AsyncSession

from voltedge.core.database import get_db
from voltedge.core.dependencies import get_guard
from voltedge.core.guards import AccessGuard
from voltedge.schemas.resource import IdeaCreateRequest, IdeaResponse, IdeaUpdateRequest
from voltedge.services.resource_service import IdeaService

router = APIRouter()


def get_idea_service(
    db: AsyncSession = Depends(get_db),
    guard: AccessGuard = Depends(get_guard),
) -> IdeaService:
    return IdeaService(db=db, guard=guard)


@router.post(
    "",
    response_model=IdeaResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create an idea",
)
async def create_idea(
    data: IdeaCreateRequest,
    service: IdeaService = Depends(get_idea_service),
) -> IdeaResponse:
    return await service.create_idea(data)


@router.get("/{idea_id}", response_model=IdeaResponse, summary="Get an idea")
async def get_idea(
    idea_id: UUID,
    service: IdeaService = Depends(get_idea_service),
) -> IdeaResponse:
    """Visible to the owner and members of the idea's team."""
    return await service.get_idea(idea_id)


@router.patch("/{idea_id}", response_model=IdeaResponse, summary="Update an idea")
async def update_idea(
    idea_id: UUID,
    data: IdeaUpdateRequest,
    service: IdeaService = Depends(get_idea_service),
) -> IdeaResponse:
    return await service.update_idea(idea_id, data)


@router.delete(
    "/{idea_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete an idea",
)
async def delete_idea(
    idea_id: UUID,
    service: IdeaService = Depends(get_idea_service),
) -> None:
    """Owner only; team members cannot delete."""
    await service.delete_idea(idea_id)

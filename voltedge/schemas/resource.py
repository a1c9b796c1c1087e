"""
Idea and sprint schemas.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from voltedge.models.idea import IdeaStatus
from voltedge.models.sprint import SprintMemberRole, SprintStatus


# ---------------------------------------------------------------------------
# Ideas
# ---------------------------------------------------------------------------

class IdeaCreateRequest(BaseModel):
    title: str = Field(min_length=1, max_length=300)
    problem_statement: str = Field(default="", max_length=10_000)
    team_id: UUID | None = None
    sprint_id: UUID | None = None


class IdeaUpdateRequest(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=300)
    problem_statement: str | None = Field(default=None, max_length=10_000)
    status: IdeaStatus | None = None


class IdeaResponse(BaseModel):
    id: UUID
    user_id: UUID
    team_id: UUID | None
    sprint_id: UUID | None
    title: str
    problem_statement: str
    status: IdeaStatus
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class IdeasListResponse(BaseModel):
    ideas: list[IdeaResponse]
    total: int


# ---------------------------------------------------------------------------
# Sprints
# ---------------------------------------------------------------------------

class SprintCreateRequest(BaseModel):
    name: str = Field(min_length=1, max_length=200)
    team_id: UUID | None = None


class SprintResponse(BaseModel):
    id: UUID
    owner_id: UUID
    team_id: UUID | None
    name: str
    status: SprintStatus
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class SprintsListResponse(BaseModel):
    sprints: list[SprintResponse]
    total: int


class SprintMemberAddRequest(BaseModel):
    user_id: UUID
    role: SprintMemberRole = SprintMemberRole.member


class SprintMemberResponse(BaseModel):
    sprint_id: UUID
    user_id: UUID
    role: SprintMemberRole

    model_config = {"from_attributes": True}


class SprintMembersListResponse(BaseModel):
    members: list[SprintMemberResponse]
    total: int

"""
Team schemas.
"""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from voltedge.models.team import TeamRole


class TeamCreateRequest(BaseModel):
    """Request body for POST /teams."""

    name: str = Field(min_length=1, max_length=100)
    org_id: UUID | None = None


class TeamUpdateRequest(BaseModel):
    """Request body for PATCH /teams/{team_id}."""

    name: str | None = Field(default=None, min_length=1, max_length=100)


class TeamResponse(BaseModel):
    id: UUID
    name: str
    org_id: UUID | None
    member_count: int
    created_at: datetime
    updated_at: datetime


class TeamsListResponse(BaseModel):
    teams: list[TeamResponse]
    total: int


class TeamMemberResponse(BaseModel):
    team_id: UUID
    user_id: UUID
    email: str
    display_name: str
    role: TeamRole
    joined_at: datetime


class TeamMembersListResponse(BaseModel):
    members: list[TeamMemberResponse]
    total: int


class TeamMemberAddRequest(BaseModel):
    """Request body for POST /teams/{team_id}/members."""

    user_id: UUID
    role: TeamRole = TeamRole.member


class TeamMemberRoleUpdateRequest(BaseModel):
    """Request body for PATCH /teams/{team_id}/members/{user_id}."""

    role: TeamRole


class TeamMembershipResponse(BaseModel):
    """Response for GET /teams/{team_id}/members/{user_id}."""

    team_id: UUID
    user_id: UUID
    is_member: bool
    is_admin: bool

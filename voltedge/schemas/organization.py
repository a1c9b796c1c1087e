"""
Organization schemas.

Request/response models for organization and member management endpoints.
"""

from __future__ import annotations

import re
from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from voltedge.models.member import OrgRole


# ---------------------------------------------------------------------------
# Organization
# ---------------------------------------------------------------------------

class OrganizationCreateRequest(BaseModel):
    """Request body for POST /organizations."""

    name: str = Field(min_length=2, max_length=100)
    domain: str | None = Field(default=None, max_length=255)

    @field_validator("domain")
    @classmethod
    def domain_must_be_hostname(cls, v: str | None) -> str | None:
        if v is None:
            return v
        v = v.strip().lower()
        if not re.match(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?(\.[a-z0-9]([a-z0-9-]*[a-z0-9])?)+$", v):
            raise ValueError("Domain must be a hostname such as example.com")
        return v


class OrganizationResponse(BaseModel):
    """Organization detail response."""

    id: UUID
    name: str
    slug: str
    domain: str | None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


# ---------------------------------------------------------------------------
# Members
# ---------------------------------------------------------------------------

class OrgMemberResponse(BaseModel):
    """Single org member with user info and role."""

    org_id: UUID
    user_id: UUID
    email: str
    display_name: str
    role: OrgRole
    joined_at: datetime


class OrgMembersListResponse(BaseModel):
    """Response for GET /organizations/{slug}/members."""

    members: list[OrgMemberResponse]
    total: int


class OrgMemberRoleUpdateRequest(BaseModel):
    """Request body for PATCH /organizations/{slug}/members/{user_id}."""

    role: OrgRole

"""
Invite schemas.

Shared by team and organization invites.
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field

from voltedge.core.errors import INVALID_INVITE_MESSAGE


class InviteCreateRequest(BaseModel):
    """Request body for creating a team or organization invite."""

    email: EmailStr | None = None
    role: str = Field(default="member")


class InviteResponse(BaseModel):
    """Invite detail response."""

    id: UUID
    scope: Literal["team", "organization"]
    scope_id: UUID
    email: str | None
    role: str
    code: str
    expires_at: datetime
    used: bool
    created_at: datetime


class InvitesListResponse(BaseModel):
    invites: list[InviteResponse]
    total: int


class RedeemRequest(BaseModel):
    """Request body for redeeming an invite code."""

    code: str = Field(min_length=1, max_length=32)


class RedeemResponse(BaseModel):
    """Outcome of an invite redemption; failures never say why."""

    success: bool
    scope: Literal["team", "organization"] | None = None
    scope_id: UUID | None = None
    message: str | None = None

    @classmethod
    def failed(cls) -> RedeemResponse:
        return cls(success=False, message=INVALID_INVITE_MESSAGE)

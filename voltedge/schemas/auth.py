"""
Authentication schemas.

Request/response models for auth endpoints and the role-fact bundle
carried in session tokens.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

from voltedge.models.member import OrgRole
from voltedge.models.team import TeamRole
from voltedge.models.user import AccountType


# ---------------------------------------------------------------------------
# Role facts
# ---------------------------------------------------------------------------

class RoleFacts(BaseModel):
    """Authorization-relevant attributes derived for one principal."""

    user_id: UUID
    org_id: UUID | None = None
    org_role: OrgRole | None = None
    team_ids: list[UUID] = Field(default_factory=list)
    team_roles: dict[str, TeamRole] = Field(default_factory=dict)
    onboarding_complete: bool = False
    account_type: AccountType = AccountType.individual

    def token_claims(self) -> dict[str, Any]:
        """Claims embedded in the access token for the route gate."""
        return {
            "org_id": str(self.org_id) if self.org_id else None,
            "org_role": self.org_role.value if self.org_role else None,
            "team_ids": [str(team_id) for team_id in self.team_ids],
            "onboarding_complete": self.onboarding_complete,
            "account_type": self.account_type.value,
        }


# ---------------------------------------------------------------------------
# Register
# ---------------------------------------------------------------------------

class RegisterRequest(BaseModel):
    """Request body for POST /auth/register."""

    display_name: str = Field(min_length=2, max_length=100)
    email: EmailStr
    password: str = Field(min_length=8, max_length=128)

    @field_validator("password")
    @classmethod
    def password_must_contain_number(cls, v: str) -> str:
        if not any(c.isdigit() for c in v):
            raise ValueError("Password must contain at least one number")
        return v


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------

class LoginRequest(BaseModel):
    """Request body for POST /auth/login."""

    email: EmailStr
    password: str = Field(min_length=1)


class ExternalSignInRequest(BaseModel):
    """Request body for POST /auth/external (identity-provider ID token)."""

    id_token: str = Field(min_length=1)
    provider: str = Field(default="cognito", max_length=50)


class TokenResponse(BaseModel):
    """Response for login and token refresh."""

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(description="Access token TTL in seconds")
    is_new_user: bool = False


# ---------------------------------------------------------------------------
# Refresh / Logout
# ---------------------------------------------------------------------------

class RefreshRequest(BaseModel):
    """Request body for POST /auth/refresh."""

    refresh_token: str


class LogoutRequest(BaseModel):
    """Request body for POST /auth/logout."""

    refresh_token: str


# ---------------------------------------------------------------------------
# Onboarding
# ---------------------------------------------------------------------------

class OnboardingRequest(BaseModel):
    """Request body for POST /users/me/onboarding."""

    account_type: AccountType = AccountType.individual
    invite_code: str | None = Field(default=None, max_length=32)


class OnboardingResponse(BaseModel):
    tokens: TokenResponse
    joined_scope: str | None = None
    joined_scope_id: UUID | None = None


# ---------------------------------------------------------------------------
# User
# ---------------------------------------------------------------------------

class MeResponse(BaseModel):
    """Response for GET /auth/me: current user with role facts."""

    id: UUID
    email: str
    display_name: str
    auth_provider: str | None
    onboarding_complete: bool
    account_type: AccountType
    created_at: datetime
    facts: RoleFacts

"""
Authentication endpoints.

Register, login, identity-provider sign-in, logout, token refresh, me.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

import redis.asyncio as aioredis

from voltedge.core.config import settings
from voltedge.core.database import get_db
from voltedge.core.dependencies import (
    get_current_user,
    get_redis,
    get_role_cache,
    get_token_payload,
)
from voltedge.models.user import User
from voltedge.schemas.auth import (
    ExternalSignInRequest,
    LoginRequest,
    LogoutRequest,
    MeResponse,
    RefreshRequest,
    RegisterRequest,
    TokenResponse,
)
from voltedge.services.auth_service import AuthService
from voltedge.services.role_cache import RoleFactCache

router = APIRouter()


def get_auth_service(
    db: AsyncSession = Depends(get_db),
    redis: aioredis.Redis = Depends(get_redis),
    cache: RoleFactCache = Depends(get_role_cache),
) -> AuthService:
    """Dependency that constructs AuthService."""
    return AuthService(db=db, redis=redis, cache=cache)


def set_session_cookie(response: Response, tokens: TokenResponse) -> None:
    """Session cookie read by the route gate on page navigation."""
    response.set_cookie(
        settings.SESSION_COOKIE_NAME,
        tokens.access_token,
        max_age=tokens.expires_in,
        httponly=True,
        secure=settings.ENVIRONMENT == "production",
        samesite="lax",
    )


# ---------------------------------------------------------------------------
# Register
# ---------------------------------------------------------------------------

@router.post(
    "/register",
    response_model=TokenResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Register a new user",
)
async def register(
    data: RegisterRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    """
    Create a new user account.

    - Email must be globally unique
    - Password must be min 8 chars and contain at least 1 number
    - New accounts start with onboarding incomplete
    """
    tokens = await service.register(data)
    set_session_cookie(response, tokens)
    return tokens


# ---------------------------------------------------------------------------
# Login
# ---------------------------------------------------------------------------

@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Login with email and password",
)
async def login(
    data: LoginRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    tokens = await service.login(data)
    set_session_cookie(response, tokens)
    return tokens


@router.post(
    "/external",
    response_model=TokenResponse,
    summary="Sign in with an identity-provider ID token",
)
async def external_sign_in(
    data: ExternalSignInRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    """
    Exchange a provider ID token for a session.

    The first sign-in provisions the user (`is_new_user=true`).
    """
    tokens = await service.external_sign_in(data)
    set_session_cookie(response, tokens)
    return tokens


# ---------------------------------------------------------------------------
# Refresh
# ---------------------------------------------------------------------------

@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Refresh access token",
)
async def refresh(
    data: RefreshRequest,
    response: Response,
    service: AuthService = Depends(get_auth_service),
) -> TokenResponse:
    """
    Exchange a valid refresh token for a new access + refresh token pair.

    Refresh tokens are rotated on every use; the new access token carries
    current role facts.
    """
    tokens = await service.refresh(data.refresh_token)
    set_session_cookie(response, tokens)
    return tokens


# ---------------------------------------------------------------------------
# Logout
# ---------------------------------------------------------------------------

@router.post(
    "/logout",
    status_code=status.HTTP_200_OK,
    summary="Logout and revoke tokens",
)
async def logout(
    data: LogoutRequest,
    response: Response,
    current_user: User = Depends(get_current_user),
    payload: dict | None = Depends(get_token_payload),
    service: AuthService = Depends(get_auth_service),
) -> None:
    """
    Logout the current user.

    - Blacklists the current access token JTI in Redis
    - Deletes the refresh token from Redis
    - Clears the session cookie
    """
    await service.logout(
        access_token_jti=(payload or {}).get("jti", ""),
        refresh_token=data.refresh_token,
    )
    response.delete_cookie(settings.SESSION_COOKIE_NAME)


# ---------------------------------------------------------------------------
# Me
# ---------------------------------------------------------------------------

@router.get(
    "/me",
    response_model=MeResponse,
    summary="Get current user profile",
)
async def get_me(
    current_user: User = Depends(get_current_user),
    service: AuthService = Depends(get_auth_service),
) -> MeResponse:
    """Return the current user's profile and role facts."""
    return await service.get_me(current_user)

"""
FastAPI dependency injection functions.

Provides Redis connections, the role-fact cache, the current principal and
an AccessGuard bound to it.
"""

from __future__ import annotations

from uuid import UUID

import redis.asyncio as aioredis
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from voltedge.core.config import settings
from voltedge.core.database import get_db
from voltedge.core.errors import UnauthenticatedError
from voltedge.core.guards import AccessGuard
from voltedge.core.security import blacklist_redis_key, decode_access_token
from voltedge.models.user import User
from voltedge.services.role_cache import RoleFactCache

# ---------------------------------------------------------------------------
# HTTP Bearer scheme (auto_error=False so we can return custom 401)
# ---------------------------------------------------------------------------

bearer_scheme = HTTPBearer(auto_error=False)

# ---------------------------------------------------------------------------
# Redis
# ---------------------------------------------------------------------------

_redis_pool: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    """
    Return a shared async Redis client.

    Uses a module-level pool so connections are reused across requests.
    """
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = aioredis.from_url(
            str(settings.REDIS_URL),
            encoding="utf-8",
            decode_responses=True,
        )
    return _redis_pool


# ---------------------------------------------------------------------------
# Role-fact cache
# ---------------------------------------------------------------------------

def get_role_cache(request: Request) -> RoleFactCache:
    """The per-process cache built in the application lifespan."""
    return request.app.state.role_cache


# ---------------------------------------------------------------------------
# Current principal
# ---------------------------------------------------------------------------

def _session_token(
    request: Request, credentials: HTTPAuthorizationCredentials | None
) -> str | None:
    if credentials is not None:
        return credentials.credentials
    return request.cookies.get(settings.SESSION_COOKIE_NAME)


async def get_token_payload(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
    redis: aioredis.Redis = Depends(get_redis),
) -> dict | None:
    """
    Decoded access-token claims from the Bearer header or session cookie.

    None when the request carries no valid, unrevoked access token.
    """
    token = _session_token(request, credentials)
    if not token:
        return None

    try:
        payload = decode_access_token(token)
    except JWTError:
        return None

    if await redis.exists(blacklist_redis_key(payload.get("jti", ""))):
        return None
    return payload


async def get_current_principal(
    payload: dict | None = Depends(get_token_payload),
) -> UUID | None:
    """The caller's user id, or None when unauthenticated."""
    if payload is None:
        return None
    try:
        return UUID(payload.get("sub", ""))
    except ValueError:
        return None


async def get_guard(
    principal_id: UUID | None = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> AccessGuard:
    """AccessGuard for the caller. Unauthenticated callers fail at the first check."""
    return AccessGuard(db, principal_id)


async def get_current_user(
    principal_id: UUID | None = Depends(get_current_principal),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Return the authenticated, active User.

    Raises 401 when there is no valid token or the user no longer exists.
    """
    if principal_id is None:
        raise UnauthenticatedError()

    user = await db.get(User, principal_id)
    if user is None or not user.is_active:
        raise UnauthenticatedError()
    return user

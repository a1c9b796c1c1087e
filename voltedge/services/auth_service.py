"""
Authentication business logic.

Handles registration, password and identity-provider sign-in, token
refresh, logout and onboarding. Access tokens carry the caller's role facts
for the route gate; the facts always come from the role-fact cache.
"""

from __future__ import annotations

import logging
from uuid import UUID

import redis.asyncio as aioredis
from fastapi import HTTPException, status
from jose import JWTError
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from voltedge.core.config import settings
from voltedge.core.guards import AccessGuard
from voltedge.core.security import (
    blacklist_redis_key,
    create_access_token,
    create_refresh_token,
    decode_identity_token,
    decode_refresh_token,
    hash_password,
    normalize_email,
    refresh_token_redis_key,
)
from voltedge.models.user import User
from voltedge.schemas.auth import (
    ExternalSignInRequest,
    LoginRequest,
    MeResponse,
    OnboardingRequest,
    OnboardingResponse,
    RegisterRequest,
    TokenResponse,
)
from voltedge.services.invites import join_with_code
from voltedge.services.role_cache import RoleFactCache
from voltedge.services.session_resolver import SessionResolver

logger = logging.getLogger(__name__)


class AuthService:
    """Handles all authentication operations."""

    def __init__(self, db: AsyncSession, redis: aioredis.Redis, cache: RoleFactCache) -> None:
        self.db = db
        self.redis = redis
        self.cache = cache
        self.resolver = SessionResolver(db)

    # -----------------------------------------------------------------------
    # Register
    # -----------------------------------------------------------------------

    async def register(self, data: RegisterRequest) -> TokenResponse:
        """
        Register a new user.

        - Validates email uniqueness
        - Hashes password
        - Creates user record
        - Issues JWT tokens
        """
        email = normalize_email(data.email)
        existing = await self.db.execute(select(User.id).where(User.email == email))
        if existing.scalar_one_or_none() is not None:
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={"code": "EMAIL_TAKEN", "message": "Email is already registered"},
            )

        user = User(
            email=email,
            password_hash=hash_password(data.password),
            display_name=data.display_name,
        )
        self.db.add(user)
        await self.db.commit()

        logger.info("Registered user %s", user.id)
        return await self._issue_tokens(user, is_new_user=True)

    # -----------------------------------------------------------------------
    # Login
    # -----------------------------------------------------------------------

    async def login(self, data: LoginRequest) -> TokenResponse:
        """
        Authenticate user with email + password.

        Raises 401 for invalid credentials (never reveals which field is wrong).
        """
        user = await self.resolver.resolve_password(data.email, data.password)
        if user is None:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail={"code": "INVALID_CREDENTIALS", "message": "Invalid email or password"},
            )

        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"code": "ACCOUNT_DISABLED", "message": "Account is disabled"},
            )

        return await self._issue_tokens(user)

    async def external_sign_in(self, data: ExternalSignInRequest) -> TokenResponse:
        """
        Sign in with an identity-provider ID token.

        The user is provisioned on first sign-in; later sign-ins (and
        concurrent first sign-ins) resolve to the same user.
        """
        try:
            claims = decode_identity_token(data.id_token)
        except JWTError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail={"code": "INVALID_TOKEN", "message": "Identity token is invalid or expired"},
            )

        subject = claims.get("sub")
        email = claims.get("email")
        if not subject or not email:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail={"code": "INVALID_TOKEN", "message": "Identity token lacks subject or email"},
            )

        user, created = await self.resolver.resolve_external_identity(
            subject=subject,
            email=email,
            display_name=claims.get("name"),
            provider=data.provider,
        )
        await self.db.commit()

        if not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail={"code": "ACCOUNT_DISABLED", "message": "Account is disabled"},
            )

        return await self._issue_tokens(user, is_new_user=created)

    # -----------------------------------------------------------------------
    # Refresh
    # -----------------------------------------------------------------------

    async def refresh(self, refresh_token: str) -> TokenResponse:
        """
        Exchange a valid refresh token for a new token pair.

        - Validates refresh token JWT
        - Checks token exists in Redis
        - Rotates: deletes old refresh token, issues new pair with current facts
        """
        try:
            payload = decode_refresh_token(refresh_token)
        except JWTError:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail={"code": "INVALID_TOKEN", "message": "Refresh token is invalid or expired"},
            )

        user_id: str = payload.get("sub", "")
        jti: str = payload.get("jti", "")

        redis_key = refresh_token_redis_key(user_id, jti)
        if not await self.redis.exists(redis_key):
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail={"code": "TOKEN_REVOKED", "message": "Refresh token has been revoked"},
            )

        user = await self.db.get(User, UUID(user_id))
        if user is None or not user.is_active:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail={"code": "USER_NOT_FOUND", "message": "User not found or inactive"},
            )

        await self.redis.delete(redis_key)
        return await self._issue_tokens(user)

    # -----------------------------------------------------------------------
    # Logout
    # -----------------------------------------------------------------------

    async def logout(self, access_token_jti: str, refresh_token: str) -> None:
        """
        Logout user by:
        - Blacklisting the access token JTI
        - Deleting the refresh token from Redis
        """
        await self.redis.setex(
            blacklist_redis_key(access_token_jti),
            settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            "1",
        )

        try:
            payload = decode_refresh_token(refresh_token)
        except JWTError:
            # Already expired or malformed; nothing stored to delete
            return
        await self.redis.delete(refresh_token_redis_key(payload.get("sub", ""), payload.get("jti", "")))

    # -----------------------------------------------------------------------
    # Onboarding
    # -----------------------------------------------------------------------

    async def complete_onboarding(self, user: User, data: OnboardingRequest) -> OnboardingResponse:
        """
        Mark onboarding complete and optionally redeem an invite code.

        - Records the account type
        - Redeems the code as a team invite, then as an organization invite
        - Returns tokens carrying the updated role facts
        """
        user.onboarding_complete = True
        user.account_type = data.account_type
        await self.db.commit()
        await self.cache.invalidate(user.id)

        joined_scope = None
        joined_scope_id = None
        if data.invite_code:
            guard = AccessGuard(self.db, user.id)
            result = await join_with_code(self.db, guard, self.cache, data.invite_code)
            if result.success:
                joined_scope, joined_scope_id = result.scope, result.scope_id
            else:
                logger.info("Onboarding for %s continued without joining", user.id)

        return OnboardingResponse(
            tokens=await self._issue_tokens(user),
            joined_scope=joined_scope,
            joined_scope_id=joined_scope_id,
        )

    # -----------------------------------------------------------------------
    # Get current user (me)
    # -----------------------------------------------------------------------

    async def get_me(self, user: User) -> MeResponse:
        """Return current user profile with role facts."""
        return MeResponse(
            id=user.id,
            email=user.email,
            display_name=user.display_name,
            auth_provider=user.auth_provider,
            onboarding_complete=user.onboarding_complete,
            account_type=user.account_type,
            created_at=user.created_at,
            facts=await self.cache.get(user.id),
        )

    # -----------------------------------------------------------------------
    # Internal helpers
    # -----------------------------------------------------------------------

    async def _issue_tokens(self, user: User, is_new_user: bool = False) -> TokenResponse:
        """
        Create and store access + refresh token pair for a user.

        The user must be committed: role facts are read through the cache,
        which resolves on its own session.
        """
        user_id = str(user.id)
        facts = await self.cache.get(user.id)

        refresh_token, refresh_jti = create_refresh_token(user_id)
        access_token = create_access_token(user_id, facts.token_claims())

        ttl_seconds = settings.JWT_REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60
        await self.redis.setex(refresh_token_redis_key(user_id, refresh_jti), ttl_seconds, "1")

        return TokenResponse(
            access_token=access_token,
            refresh_token=refresh_token,
            expires_in=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES * 60,
            is_new_user=is_new_user,
        )

"""
Route gate: coarse redirects for page navigation.

Runs before any handler and decides from session-token claims alone. The
decision is coarse; it may be up to one token lifetime stale
and never replaces the access guards, which check persisted membership.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote, urlencode

from jose import JWTError
from starlette.datastructures import QueryParams
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response

from voltedge.core.config import Settings
from voltedge.core.security import decode_access_token

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class GateDecision:
    redirect_to: str | None = None

    @property
    def allowed(self) -> bool:
        return self.redirect_to is None


ALLOW = GateDecision()


def matches_prefix(path: str, prefixes: list[str]) -> bool:
    """True when path is one of the prefixes or lies beneath one."""
    for prefix in prefixes:
        prefix = prefix.rstrip("/")
        if path == prefix or path.startswith(prefix + "/"):
            return True
    return False


def evaluate_route(
    path: str,
    query: str,
    claims: dict[str, Any] | None,
    settings: Settings,
) -> GateDecision:
    """
    Decide whether a navigation proceeds or redirects.

    Layers, in order:
    1. Protected path without a session: sign-in, preserving the destination
    2. Onboarding incomplete outside exempt paths: onboarding, forwarding any invite code
    3. Admin path without business_admin: default landing page
    """
    if not matches_prefix(path, settings.PROTECTED_PATH_PREFIXES):
        return ALLOW

    if claims is None:
        destination = f"{path}?{query}" if query else path
        return GateDecision(f"{settings.SIGN_IN_PATH}?callbackUrl={quote(destination, safe='')}")

    if not claims.get("onboarding_complete") and not matches_prefix(
        path, settings.ONBOARDING_EXEMPT_PREFIXES
    ):
        params = QueryParams(query)
        invite = params.get("invite") or params.get("code")
        if invite:
            return GateDecision(f"{settings.ONBOARDING_PATH}?{urlencode({'invite': invite})}")
        return GateDecision(settings.ONBOARDING_PATH)

    if matches_prefix(path, settings.ADMIN_PATH_PREFIXES) and claims.get("org_role") != "business_admin":
        return GateDecision(settings.DEFAULT_LANDING_PATH)

    return ALLOW


def read_session_claims(request: Request, settings: Settings) -> dict[str, Any] | None:
    """Claims of the session token in the Bearer header or cookie, if valid."""
    token = request.cookies.get(settings.SESSION_COOKIE_NAME)
    authorization = request.headers.get("Authorization", "")
    if authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()
    if not token:
        return None
    try:
        return decode_access_token(token)
    except JWTError:
        return None


class RouteGateMiddleware(BaseHTTPMiddleware):
    """Apply evaluate_route to every request and redirect when it says so."""

    def __init__(self, app, settings: Settings) -> None:
        super().__init__(app)
        self.settings = settings

    async def dispatch(self, request: Request, call_next) -> Response:
        decision = evaluate_route(
            request.url.path,
            request.url.query,
            read_session_claims(request, self.settings),
            self.settings,
        )
        if decision.allowed:
            return await call_next(request)

        logger.debug("Route gate: %s -> %s", request.url.path, decision.redirect_to)
        return RedirectResponse(decision.redirect_to, status_code=307)

"""
Invite endpoints that are not tied to one scope.

Join with a code of either kind, and the public invite landing link.
"""

from __future__ import annotations

from urllib.parse import quote

from fastapi import APIRouter, Depends
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from voltedge.core.config import settings
from voltedge.core.database import get_db
from voltedge.core.dependencies import get_guard, get_role_cache, get_token_payload
from voltedge.core.guards import AccessGuard
from voltedge.schemas.invite import RedeemRequest, RedeemResponse
from voltedge.services.invites import RedeemResult, join_with_code, normalize_invite_code
from voltedge.services.role_cache import RoleFactCache

router = APIRouter()
landing_router = APIRouter()


def to_redeem_response(result: RedeemResult) -> RedeemResponse:
    if not result.success:
        return RedeemResponse.failed()
    return RedeemResponse(success=True, scope=result.scope, scope_id=result.scope_id)


# ---------------------------------------------------------------------------
# Join
# ---------------------------------------------------------------------------

@router.post(
    "/join",
    response_model=RedeemResponse,
    summary="Join a team or organization with an invite code",
)
async def join(
    data: RedeemRequest,
    db: AsyncSession = Depends(get_db),
    guard: AccessGuard = Depends(get_guard),
    cache: RoleFactCache = Depends(get_role_cache),
) -> RedeemResponse:
    """
    Redeem a code, trying team invites first and organization invites second.

    Unusable codes return `success=false` with one generic message.
    """
    guard.require_session()
    return to_redeem_response(await join_with_code(db, guard, cache, data.code))


# ---------------------------------------------------------------------------
# Landing link
# ---------------------------------------------------------------------------

@landing_router.get("/invite/{code}", include_in_schema=False)
async def invite_landing(
    code: str,
    payload: dict | None = Depends(get_token_payload),
) -> RedirectResponse:
    """
    Public link sent in invite emails.

    - Malformed code: sign-in page
    - No session: sign-up, then back to the join page
    - Onboarding incomplete: onboarding with the invite
    - Otherwise: the join page
    """
    normalized = normalize_invite_code(code)
    if normalized is None:
        return RedirectResponse(settings.SIGN_IN_PATH, status_code=307)

    join_path = f"{settings.JOIN_PATH}?code={normalized}"
    if payload is None:
        return RedirectResponse(
            f"{settings.SIGN_UP_PATH}?callbackUrl={quote(join_path, safe='')}",
            status_code=307,
        )
    if not payload.get("onboarding_complete"):
        return RedirectResponse(f"{settings.ONBOARDING_PATH}?invite={normalized}", status_code=307)
    return RedirectResponse(join_path, status_code=307)

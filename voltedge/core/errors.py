"""
Typed access-control failures.

Every failure is an HTTPException so FastAPI renders it with the same
``{"detail": {"code", "message"}}`` body as the rest of the API.
"""

from __future__ import annotations

from fastapi import HTTPException, status

ACCESS_DENIED_MESSAGE = "You do not have access to this resource"
INVALID_INVITE_MESSAGE = "Invalid or expired invite code"


class AccessError(HTTPException):
    """Base class for guard failures."""

    code: str = "ACCESS_ERROR"

    def __init__(
        self,
        status_code: int,
        message: str,
        headers: dict[str, str] | None = None,
    ) -> None:
        super().__init__(
            status_code=status_code,
            detail={"code": self.code, "message": message},
            headers=headers,
        )


class UnauthenticatedError(AccessError):
    """No valid principal; the caller should prompt sign-in."""

    code = "UNAUTHENTICATED"

    def __init__(self) -> None:
        super().__init__(
            status.HTTP_401_UNAUTHORIZED,
            "Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )


class ForbiddenError(AccessError):
    """
    Principal resolved but lacks the required relationship or role.

    `resource` is kept for logging only; the rendered message is uniform.
    """

    code = "FORBIDDEN"

    def __init__(self, resource: str = "resource", message: str = ACCESS_DENIED_MESSAGE) -> None:
        self.resource = resource
        super().__init__(status.HTTP_403_FORBIDDEN, message)


class NotFoundError(ForbiddenError):
    """
    Target resource does not exist.

    Resource existence is sensitive for every guarded resource type, so the
    rendered response is identical to ForbiddenError.
    """

    def __init__(self, resource: str = "resource") -> None:
        super().__init__(resource)


class InvariantViolationError(ForbiddenError):
    """A mutation would break a membership invariant (e.g. the last admin)."""

    code = "LAST_ADMIN"

    def __init__(self, resource: str, message: str) -> None:
        super().__init__(resource, message)

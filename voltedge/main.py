"""
FastAPI application entry point.

Configures logging, the role-fact cache, middleware, routes, and exception
handlers.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from voltedge.core.config import settings
from voltedge.core.database import AsyncSessionLocal
from voltedge.core.dependencies import get_redis
from voltedge.core.middleware import RouteGateMiddleware
from voltedge.services.role_cache import build_role_cache

logger = logging.getLogger("voltedge")


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    configure_logging()
    redis = await get_redis() if settings.ROLE_CACHE_BACKEND == "redis" else None
    app.state.role_cache = build_role_cache(settings, AsyncSessionLocal, redis)
    logger.info(
        "Starting VoltEdge API in %s mode (role cache: %s)",
        settings.ENVIRONMENT,
        settings.ROLE_CACHE_BACKEND,
    )
    yield
    logger.info("Shutting down VoltEdge API")


app = FastAPI(
    title="VoltEdge API",
    description="Access control for team patent ideation",
    version="1.0.0",
    docs_url="/api/docs" if settings.DEBUG else None,
    redoc_url="/api/redoc" if settings.DEBUG else None,
    openapi_url="/api/openapi.json" if settings.DEBUG else None,
    lifespan=lifespan,
)

app.add_middleware(RouteGateMiddleware, settings=settings)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["*"],
)


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    if settings.DEBUG:
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": {
                    "code": "INTERNAL_SERVER_ERROR",
                    "message": str(exc),
                    "type": type(exc).__name__,
                }
            },
        )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": {
                "code": "INTERNAL_SERVER_ERROR",
                "message": "An unexpected error occurred",
            }
        },
    )


@app.get("/health", tags=["Health"])
async def health_check() -> dict[str, str]:
    return {
        "status": "ok",
        "environment": settings.ENVIRONMENT,
        "version": "1.0.0",
    }


from voltedge.routers import auth, ideas, invites, organizations, sprints, teams, users  # noqa: E402

app.include_router(auth.router, prefix="/api/v1/auth", tags=["Auth"])
app.include_router(users.router, prefix="/api/v1/users", tags=["Users"])
app.include_router(organizations.router, prefix="/api/v1/organizations", tags=["Organizations"])
app.include_router(teams.router, prefix="/api/v1/teams", tags=["Teams"])
app.include_router(invites.router, prefix="/api/v1/invites", tags=["Invites"])
app.include_router(ideas.router, prefix="/api/v1/ideas", tags=["Ideas"])
app.include_router(sprints.router, prefix="/api/v1/sprints", tags=["Sprints"])
app.include_router(invites.landing_router, tags=["Invites"])

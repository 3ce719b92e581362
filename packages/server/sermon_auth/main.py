"""
Sermon Transcription Auth Server

Entry point for the FastAPI application.
"""

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sermon_auth.core.config import get_settings
from sermon_auth.core.database import check_database
from sermon_auth.core.logging import configure_logging
from sermon_auth.core.middleware import (
    RequestContextMiddleware,
    SecurityHeadersMiddleware,
    install_error_handlers,
)
from sermon_auth.core.redis import close_redis, ping_redis
from sermon_auth.api.v1 import router as api_v1_router
from sermon_auth.api.v1.auth import router as auth_router
from sermon_auth_shared.schemas.common import ErrorResponse

settings = get_settings()
log = structlog.get_logger()

# Documented error envelope for every route; see install_error_handlers
ERROR_RESPONSES = {
    status: {"model": ErrorResponse} for status in (400, 401, 403, 404, 409, 410)
}


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    configure_logging(settings.log_level, settings.log_format)

    app = FastAPI(
        title="Sermon Transcription Auth",
        description="Authentication, token lifecycle and organization-scoped authorization.",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # Middleware (order matters: last added is outermost)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["GET", "POST", "PATCH", "DELETE"],
        allow_headers=["Content-Type", "Authorization", "X-Request-ID"],
    )
    app.add_middleware(RequestContextMiddleware)

    install_error_handlers(app)

    # Auth routes (not org-scoped)
    app.include_router(
        auth_router, prefix="/auth", tags=["Authentication"], responses=ERROR_RESPONSES
    )

    # API routes
    app.include_router(api_v1_router, prefix="/api/v1", responses=ERROR_RESPONSES)

    @app.get("/health", tags=["System"])
    async def health_check():
        """Liveness check: the process is up and serving."""
        return {"status": "ok"}

    @app.get("/ready", tags=["System"])
    async def readiness_check():
        """Readiness check: the database and the denylist store must both answer."""
        checks = {"database": await check_database(), "redis": await ping_redis()}
        if not all(checks.values()):
            return JSONResponse(status_code=503, content={"status": "unavailable", "checks": checks})
        return {"status": "ready"}

    @app.on_event("startup")
    async def on_startup():
        log.info("auth_server.starting", debug=settings.debug)

    @app.on_event("shutdown")
    async def on_shutdown():
        log.info("auth_server.shutting_down")
        await close_redis()

    return app


app = create_app()

"""
Monitoring API.

FastAPI-based REST interface for ESP32 devices and the admin dashboard.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from schoolmon import __version__
from schoolmon.api.auth import admin_keys, init_auth, require_admin
from schoolmon.api.routes import deps, router
from schoolmon.errors import (
    ConflictError,
    MonitoringError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from schoolmon.core.processor import MonitoringService

logger = logging.getLogger(__name__)


# ============================================================================
# FastAPI Application
# ============================================================================


def _status_for(exc: MonitoringError) -> int:
    if isinstance(exc, ValidationError):
        return status.HTTP_400_BAD_REQUEST
    if isinstance(exc, NotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(exc, ConflictError):
        return status.HTTP_409_CONFLICT
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def create_app(
    title: str = "School Monitoring API",
    debug: bool = False,
    cors_origins: list[str] | None = None,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        title: API title
        debug: Enable debug mode
        cors_origins: Allowed CORS origins

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title=title,
        description="Access control and environmental monitoring for schools",
        version=__version__,
        debug=debug,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )

    # CORS middleware
    origins = cors_origins or ["http://localhost:3000"]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        """Render HTTP errors in the same shape as core errors."""
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        """Render request validation failures with their issues."""
        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content={"error": "Invalid request", "issues": jsonable_encoder(exc.errors())},
        )

    @app.exception_handler(MonitoringError)
    async def monitoring_exception_handler(request: Request, exc: MonitoringError):
        """Translate core errors into status codes."""
        code = _status_for(exc)
        content = {"error": str(exc)}
        if isinstance(exc, ValidationError) and exc.field:
            content["field"] = exc.field
        if code >= 500:
            logger.error("Unhandled monitoring error: %s", exc, exc_info=True)
        return JSONResponse(status_code=code, content=content)

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        logger.error("Unhandled exception: %s", exc, exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal server error",
                "detail": str(exc) if debug else None,
            },
        )

    return app


def configure_services(
    app: FastAPI,
    service: MonitoringService | None = None,
    admin_api_key: str | None = None,
) -> None:
    """
    Configure application services.

    Args:
        app: FastAPI application
        service: Monitoring service instance
        admin_api_key: Key required on admin endpoints
    """
    deps.service = service
    init_auth(admin_api_key)

    logger.info("API services configured")


__all__ = [
    "admin_keys",
    "configure_services",
    "create_app",
    "deps",
    "init_auth",
    "require_admin",
    "router",
]

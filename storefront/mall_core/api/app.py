"""
FastAPI application factory for Mall Core.

This module creates the FastAPI app with:
- CORS configuration for the storefront frontend
- MallService lifecycle management
- Mall Core errors mapped to HTTP statuses
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .._version import __version__
from ..errors import (
    AuthenticationRequired,
    Conflict,
    MallCoreError,
    NotFound,
    RemoteFailure,
    ValidationError,
)
from ..main import build_service
from ..service import MallService
from .config import Settings
from .routes import router

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    AuthenticationRequired: 401,
    Conflict: 409,
    NotFound: 404,
    RemoteFailure: 502,
    ValidationError: 422,
}


def error_status(error: MallCoreError) -> int:
    """HTTP status for a Mall Core error (500 for unmapped ones)."""
    for error_type, status in ERROR_STATUS.items():
        if isinstance(error, error_type):
            return status
    return 500


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Manage MallService lifecycle."""
    owns_service = app.state.service is None
    if owns_service:
        app.state.service = build_service()

    yield

    if owns_service:
        await app.state.service.close()
        app.state.service = None


def create_app(service: Optional[MallService] = None, settings: Optional[Settings] = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        service: Prebuilt service (tests); built from the environment if omitted
        settings: HTTP settings (loaded from env if omitted)
    """
    settings = settings or Settings()

    app = FastAPI(
        title="Mall Core",
        description="Collections, orders and approval statistics for the mall storefront.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.service = service
    app.state.settings = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["*"],
    )

    @app.exception_handler(MallCoreError)
    async def handle_mall_core_error(request: Request, exc: MallCoreError) -> JSONResponse:
        status = error_status(exc)
        if status >= 500:
            logger.warning(
                f"Request failed: {exc.message}",
                extra={"path": request.url.path, "error_code": exc.code},
            )
        return JSONResponse(
            status_code=status,
            content={"error": exc.message, "error_code": exc.code, "details": exc.details},
        )

    app.include_router(router, prefix="/api/v1")

    @app.get("/health")
    async def health():
        return {"status": "healthy", "service": "mall-core"}

    return app

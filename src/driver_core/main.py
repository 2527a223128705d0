"""FastAPI application entry point."""

from __future__ import annotations

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.routes import health, remittance, statuses, tracking
from .config import settings
from .errors import (
    DriverCoreError,
    InvalidTransitionError,
    RecordParseError,
    RemittanceStateError,
    RoutingRequestError,
    StopProgressError,
    TransitionCancelledError,
    TransitionInFlightError,
)

_STATUS_CODES = {
    InvalidTransitionError: status.HTTP_409_CONFLICT,
    TransitionInFlightError: status.HTTP_409_CONFLICT,
    TransitionCancelledError: status.HTTP_409_CONFLICT,
    RecordParseError: status.HTTP_422_UNPROCESSABLE_ENTITY,
    StopProgressError: status.HTTP_409_CONFLICT,
    RemittanceStateError: status.HTTP_409_CONFLICT,
    RoutingRequestError: status.HTTP_502_BAD_GATEWAY,
}


async def driver_core_exception_handler(request: Request, exc: DriverCoreError) -> JSONResponse:
    """Map each error type to its HTTP status; sync and store failures fall through to 503."""
    status_code = _STATUS_CODES.get(type(exc), status.HTTP_503_SERVICE_UNAVAILABLE)
    return JSONResponse(
        status_code=status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details,
        },
    )


def create_app() -> FastAPI:
    app = FastAPI(title=settings.app_name)
    if settings.frontend_allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.frontend_allowed_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.add_exception_handler(DriverCoreError, driver_core_exception_handler)

    @app.get("/")
    def root():
        return {
            "service": settings.app_name,
            "status": "running",
            "api_prefix": settings.api_prefix,
            "health": f"{settings.api_prefix}/health",
            "docs": "/docs",
        }

    app.include_router(health.router, prefix=settings.api_prefix)
    app.include_router(statuses.router, prefix=settings.api_prefix)
    app.include_router(tracking.router, prefix=settings.api_prefix)
    app.include_router(remittance.router, prefix=settings.api_prefix)
    return app


app = create_app()

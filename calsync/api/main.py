"""
FastAPI application for calsync.

This is the main entry point for the HTTP API, providing:
- Calendar connection endpoints (OAuth, status, settings)
- Domain change notification and reconciliation endpoints
- iCalendar feed and feed token management
- Health endpoint
"""

import logging
import re
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse

from calsync import __version__
from calsync.api.auth_routes import router as auth_router
from calsync.api.dependencies import get_pending_sync_tasks, init_services, shutdown_services
from calsync.api.feed_routes import router as feed_router
from calsync.api.middleware import RequestLoggingMiddleware
from calsync.api.models import HealthResponse
from calsync.api.sync_routes import router as sync_router
from calsync.config import get_settings
from calsync.database import AsyncSessionLocal, check_connection
from calsync.exceptions import (
    AuthExchangeError,
    AuthExpiredError,
    CalendarSyncError,
    CredentialExpiredError,
    ExpiredFeedTokenError,
    InvalidFeedTokenError,
    ProviderError,
    ProviderNotFoundError,
    ProviderTransientError,
    ProviderValidationError,
)

logger = logging.getLogger(__name__)

# Most specific first
ERROR_STATUS_CODES: list[tuple[type[CalendarSyncError], int]] = [
    (InvalidFeedTokenError, 404),
    (ExpiredFeedTokenError, 410),
    (AuthExchangeError, 400),
    (CredentialExpiredError, 401),
    (AuthExpiredError, 401),
    (ProviderNotFoundError, 404),
    (ProviderValidationError, 422),
    (ProviderTransientError, 503),
    (ProviderError, 502),
]


def status_code_for(exc: CalendarSyncError) -> int:
    """HTTP status for a calsync exception."""
    for error_class, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_class):
            return status_code
    return 500


def error_type_for(exc: Exception) -> str:
    """snake_case error type from the exception class name."""
    name = type(exc).__name__
    if name.endswith("Error"):
        name = name[: -len("Error")]
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


# =============================================================================
# Application Lifecycle
# =============================================================================


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    # Startup
    logger.info("Starting calsync API")
    init_services()
    logger.info("calsync API started")

    yield

    # Shutdown
    logger.info("Shutting down calsync API")
    await shutdown_services()


# =============================================================================
# FastAPI Application
# =============================================================================


app = FastAPI(
    title="calsync API",
    description="""
# calsync API

Mirrors bookable entities into external calendars.

## Push sync (Google Calendar)
1. **GET /auth/google/login** - Start the OAuth flow
2. **GET /auth/google/callback** - Google redirects here with the code
3. **POST /sync/notify** - The host application reports entity changes;
   events are created, updated or deleted in the background

## Calendar feed
- **POST /feeds/tokens** - Create a subscription link
- **GET /feeds/{token}.ics** - iCalendar feed for calendar clients

## Error Handling

- **202** - Change accepted, sync runs in the background
- **400** - OAuth code exchange failed
- **401** - Calendar access expired, reconnect required
- **404** - Not connected, or feed link revoked
- **410** - Feed link expired
- **503** - Calendar provider temporarily unavailable
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Add middleware
app.add_middleware(RequestLoggingMiddleware)

# Include routers
app.include_router(auth_router)
app.include_router(sync_router)
app.include_router(feed_router)


# =============================================================================
# Exception Handlers
# =============================================================================


@app.exception_handler(CalendarSyncError)
async def calendar_sync_exception_handler(request: Request, exc: CalendarSyncError):
    """Map calsync exceptions to HTTP responses with the user-facing message."""
    status_code = status_code_for(exc)
    if status_code >= 500:
        logger.warning(f"{type(exc).__name__} on {request.method}: {exc.message}")
    return JSONResponse(
        status_code=status_code,
        content={
            "error_type": error_type_for(exc),
            "message": exc.user_message,
            "retryable": exc.retryable,
        },
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with consistent format."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_type": "http_error",
            "message": exc.detail,
            "retryable": exc.status_code >= 500,
        },
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error_type": "internal_error",
            "message": "An unexpected error occurred",
            "retryable": True,
        },
    )


# =============================================================================
# Health & Status Endpoints
# =============================================================================


@app.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    tags=["System"],
)
async def health_check() -> HealthResponse:
    """
    Check API health status.

    Returns:
        Health status including database connectivity
    """
    database_connected = await check_connection(AsyncSessionLocal)

    return HealthResponse(
        status="healthy" if database_connected else "unhealthy",
        version=__version__,
        database_connected=database_connected,
        google_oauth_configured=get_settings().uses_google_oauth,
        pending_sync_tasks=get_pending_sync_tasks(),
    )


# =============================================================================
# Run with Uvicorn
# =============================================================================


def run_server(host: str | None = None, port: int | None = None, reload: bool = False):
    """Run the API server with Uvicorn."""
    import uvicorn

    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    uvicorn.run(
        "calsync.api.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload,
    )


if __name__ == "__main__":
    run_server(reload=True)

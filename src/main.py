"""Main FastAPI application for the Account Core Service."""

from contextlib import asynccontextmanager
from typing import Any, Dict, List

import uvicorn
from fastapi import FastAPI, Request, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import JSONResponse

from src.api.routes import accounts, admin, health, usage
from src.core.database import get_database
from src.core.settings import get_settings
from src.middleware.auth import AuthenticationMiddleware
from src.middleware.logging import LoggingMiddleware, configure_logging, get_request_logger
from src.services.errors import (
    AccountCoreError,
    AccountNotFoundError,
    AccountValidationError,
    InvalidTransitionError,
    QuotaExceededError,
    TransientError,
    UnauthorizedError,
)

# Initialize logging
configure_logging()

settings = get_settings()

ERROR_STATUS_CODES = {
    AccountNotFoundError: 404,
    AccountValidationError: 422,
    InvalidTransitionError: 409,
    UnauthorizedError: 403,
    QuotaExceededError: 429,
    TransientError: 503,
}

ERROR_TITLES = {
    404: "Not Found",
    409: "Invalid Transition",
    403: "Forbidden",
    422: "Validation Error",
    429: "Quota Exceeded",
    503: "Service Unavailable",
}

TRANSIENT_RETRY_AFTER_SECONDS = "1"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan management."""
    # Startup
    await get_database().connect()
    yield
    # Shutdown
    await get_database().disconnect()


app = FastAPI(
    title="Account Core Service",
    description="Account lifecycle, plan and monthly quota enforcement for the influencer marketplace",
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs" if not settings.is_production else None,
    redoc_url="/redoc" if not settings.is_production else None,
    openapi_url="/openapi.json" if not settings.is_production else None,
)

# Security middleware
app.add_middleware(
    TrustedHostMiddleware,
    allowed_hosts=settings.allowed_hosts
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE"],
    allow_headers=["*"],
)

# Custom middleware stack (order matters!)
app.add_middleware(LoggingMiddleware)
app.add_middleware(AuthenticationMiddleware)


def _status_for(exc: AccountCoreError) -> int:
    for error_type in type(exc).__mro__:
        if error_type in ERROR_STATUS_CODES:
            return ERROR_STATUS_CODES[error_type]
    return 400


def _error_objects(exc: AccountCoreError, status_code: int, request: Request) -> List[Dict[str, Any]]:
    if isinstance(exc, AccountValidationError) and exc.validation_errors:
        return [
            {
                "status": str(status_code),
                "code": error.code,
                "title": ERROR_TITLES[status_code],
                "detail": error.message,
                "source": {"pointer": f"/data/attributes/{error.field}"},
            }
            for error in exc.validation_errors
        ]

    error: Dict[str, Any] = {
        "status": str(status_code),
        "code": exc.code,
        "title": ERROR_TITLES.get(status_code, "Bad Request"),
        "detail": str(exc),
        "source": {"pointer": request.url.path},
    }
    if isinstance(exc, InvalidTransitionError):
        error["meta"] = {
            "from_status": exc.from_status,
            "to_status": exc.to_status,
            "stale": exc.stale,
        }
    elif isinstance(exc, QuotaExceededError):
        error["meta"] = {
            "count": exc.count,
            "limit": exc.limit,
            "month_key": exc.month_key,
        }
    return [error]


# Exception handlers
@app.exception_handler(AccountCoreError)
async def account_core_exception_handler(request: Request, exc: AccountCoreError):
    """Render service errors in JSON:API format."""
    status_code = _status_for(exc)
    headers = None
    if isinstance(exc, TransientError):
        get_request_logger(request).error("Transient store failure", error=str(exc))
        headers = {"Retry-After": TRANSIENT_RETRY_AFTER_SECONDS}

    return JSONResponse(
        status_code=status_code,
        content={"errors": _error_objects(exc, status_code, request)},
        headers=headers,
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with JSON:API format."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "errors": [{
                "status": str(exc.status_code),
                "code": "HTTP_ERROR",
                "title": str(exc.detail),
                "detail": str(exc.detail),
                "source": {"pointer": request.url.path}
            }]
        },
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(404)
async def not_found_handler(request: Request, exc):
    """Handle 404 errors with JSON:API format."""
    return JSONResponse(
        status_code=404,
        content={
            "errors": [{
                "status": "404",
                "code": "RESOURCE_NOT_FOUND",
                "title": "Resource Not Found",
                "detail": "The requested resource was not found",
                "source": {"pointer": request.url.path}
            }]
        }
    )


@app.exception_handler(500)
async def internal_error_handler(request: Request, exc):
    """Handle 500 errors with JSON:API format."""
    get_request_logger(request).error("Unhandled error", error_type=type(exc).__name__, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={
            "errors": [{
                "status": "500",
                "code": "INTERNAL_SERVER_ERROR",
                "title": "Internal Server Error",
                "detail": "An unexpected error occurred"
            }]
        }
    )


# Routes
app.include_router(health.router, prefix="", tags=["system"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": health.SERVICE_NAME,
        "version": health.SERVICE_VERSION,
        "status": "running",
        "api": {
            "docs": "/docs" if not settings.is_production else None,
            "openapi": "/openapi.json" if not settings.is_production else None
        }
    }


# Main API routes
app.include_router(accounts.router, prefix=f"{settings.api_v1_prefix}/accounts", tags=["accounts"])
app.include_router(usage.router, prefix=f"{settings.api_v1_prefix}/usage", tags=["usage"])
app.include_router(admin.router, prefix=f"{settings.api_v1_prefix}/admin", tags=["admin"])


if __name__ == "__main__":
    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.is_development,
        log_level=settings.log_level.lower(),
    )

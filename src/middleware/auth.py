"""Authentication middleware and token helpers."""

import logging
import uuid
from datetime import timedelta
from typing import Optional

from fastapi import Request, status
from fastapi.responses import JSONResponse
from jose import JWTError, jwt
from starlette.middleware.base import BaseHTTPMiddleware

from src.core.settings import get_settings
from src.utils.dates import utcnow

logger = logging.getLogger(__name__)
settings = get_settings()


def _unauthorized(code: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_401_UNAUTHORIZED,
        content={
            "errors": [{
                "status": "401",
                "code": code,
                "title": "Authentication Required",
                "detail": message,
            }]
        },
        headers={"WWW-Authenticate": "Bearer"},
    )


class AuthenticationMiddleware(BaseHTTPMiddleware):
    """
    Middleware to handle JWT authentication for all requests.
    Can be disabled for development/testing.

    The token only establishes who the principal is. Roles are never taken
    from the token; they are read from the principal's account record.
    """

    EXEMPT_PATHS = {
        "/",
        "/health",
        "/health/database",
        "/version",
        "/openapi.json",
        "/docs",
        "/redoc",
        "/favicon.ico"
    }

    async def dispatch(self, request: Request, call_next):
        """Process request and validate authentication."""
        # Skip authentication for exempt paths
        if request.url.path in self.EXEMPT_PATHS:
            return await call_next(request)

        # Skip authentication if disabled (development/testing)
        if settings.disable_auth:
            request.state.user_id = request.headers.get("X-Dev-User-Id")
            request.state.user_email = request.headers.get("X-Dev-User-Email", "dev@example.com")
            return await call_next(request)

        # Extract authorization header
        authorization = request.headers.get("Authorization")
        if not authorization:
            logger.warning(f"Missing Authorization header for {request.url.path}")
            return _unauthorized("AUTHORIZATION_REQUIRED", "Authorization header is required")

        # Validate Bearer token format
        if not authorization.startswith("Bearer "):
            logger.warning(f"Invalid authorization format for {request.url.path}")
            return _unauthorized(
                "INVALID_AUTHORIZATION_FORMAT",
                "Authorization must be in 'Bearer <token>' format"
            )

        token = authorization.split(" ", 1)[1]

        try:
            payload = jwt.decode(
                token,
                settings.jwt_secret_key,
                algorithms=[settings.jwt_algorithm]
            )
        except JWTError as e:
            logger.warning(f"JWT validation failed for {request.url.path}: {e}")
            return _unauthorized("INVALID_JWT_TOKEN", "Invalid or expired JWT token")

        user_id = payload.get("sub")
        if not user_id:
            return _unauthorized("INVALID_TOKEN_PAYLOAD", "Token must contain 'sub' claim")

        # Validate UUID format for user_id
        try:
            uuid.UUID(user_id)
        except ValueError:
            return _unauthorized("INVALID_USER_ID", "User ID must be a valid UUID")

        # Store principal context in request state
        request.state.user_id = user_id
        request.state.user_email = payload.get("email", "")
        request.state.token_exp = payload.get("exp", 0)

        logger.debug(f"Authenticated principal {user_id} for {request.url.path}")

        return await call_next(request)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """Create a JWT access token."""
    to_encode = data.copy()

    if expires_delta:
        expire = utcnow() + expires_delta
    else:
        expire = utcnow() + timedelta(
            minutes=settings.jwt_access_token_expire_minutes
        )

    to_encode.update({"exp": expire})

    encoded_jwt = jwt.encode(
        to_encode,
        settings.jwt_secret_key,
        algorithm=settings.jwt_algorithm
    )

    return encoded_jwt

"""
Error taxonomy for the authentication core.

Every error that reaches a client is an AuthError subclass carrying its HTTP
status and a stable code; the handlers registered by
register_exception_handlers render them all as
``{"success": false, "message": ..., "code": ...}``.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.exceptions import HTTPException

logger = logging.getLogger(__name__)


class AuthError(Exception):
    """Base class for errors mapped to JSON error responses."""

    status_code: int = 400
    code: str = "VALIDATION_ERROR"
    default_message: str = "Request could not be processed"

    def __init__(self, message: Optional[str] = None, **extra: Any) -> None:
        self.message = message or self.default_message
        self.extra = extra
        super().__init__(self.message)

    def to_payload(self) -> dict:
        payload = {"success": False, "message": self.message, "code": self.code}
        payload.update(self.extra)
        return payload


class ValidationError(AuthError):
    status_code = 400
    code = "VALIDATION_ERROR"
    default_message = "Validation failed"


class DuplicateIdentity(ValidationError):
    """Signup collided with an existing email or username."""

    code = "DUPLICATE_IDENTITY"

    def __init__(self, field: str) -> None:
        self.field = field
        super().__init__(
            f"This {field} is already registered",
            field=field,
            errors=[{"field": field, "message": f"This {field} is already registered"}],
        )


class AlreadyVerified(ValidationError):
    code = "ALREADY_VERIFIED"
    default_message = "Email is already verified"


class InvalidOrExpired(ValidationError):
    code = "INVALID_OR_EXPIRED"
    default_message = "Invalid or expired token"


class WeakPassword(ValidationError):
    code = "WEAK_PASSWORD"
    default_message = "Password is too short"


class Unauthenticated(AuthError):
    """
    Authentication failed.

    ``reason`` keeps the internal distinction (missing token, bad signature,
    expiry, deleted user) for logs; it is never sent to the client.
    """

    status_code = 401
    code = "UNAUTHENTICATED"
    default_message = "Could not validate credentials"

    MISSING_TOKEN = "missing_token"
    INVALID_TOKEN = "invalid_token"
    EXPIRED_TOKEN = "expired_token"
    USER_NOT_FOUND = "user_not_found"
    BAD_CREDENTIALS = "bad_credentials"

    def __init__(self, message: Optional[str] = None, reason: Optional[str] = None) -> None:
        self.reason = reason
        super().__init__(message)


class Forbidden(AuthError):
    status_code = 403
    code = "FORBIDDEN"
    default_message = "You do not have permission to perform this action"


class CSRFError(AuthError):
    status_code = 403
    code = "CSRF_ERROR"
    default_message = "Invalid or missing CSRF token"


class NotFound(AuthError):
    status_code = 404
    code = "NOT_FOUND"
    default_message = "Resource not found"


class RateLimited(AuthError):
    status_code = 429
    code = "RATE_LIMITED"
    default_message = "Too many requests, please try again later"


class ServerError(AuthError):
    status_code = 500
    code = "SERVER_ERROR"
    default_message = "Internal server error. Please try again later."


class TokenError(Exception):
    """Base for signed-token verification failures. Never rendered directly."""


class TokenInvalid(TokenError):
    pass


class TokenExpired(TokenError):
    pass


def error_response(error: AuthError) -> JSONResponse:
    return JSONResponse(status_code=error.status_code, content=error.to_payload())


def register_exception_handlers(app: FastAPI) -> None:
    """Install JSON handlers for the error taxonomy, HTTP errors and validation errors."""

    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError):
        if isinstance(exc, Unauthenticated):
            logger.info(f"Unauthenticated {request.method} {request.url.path} (reason={exc.reason})")
        elif exc.status_code >= 500:
            logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
        else:
            logger.warning(f"{request.method} {request.url.path} rejected: {exc.code}")
        return error_response(exc)

    @app.exception_handler(RateLimitExceeded)
    async def handle_rate_limit(request: Request, exc: RateLimitExceeded):
        logger.warning(f"Rate limit {exc.detail} exceeded on {request.method} {request.url.path}")
        return error_response(RateLimited())

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        errors = []
        for item in exc.errors():
            location = [str(part) for part in item.get("loc", ()) if part != "body"]
            errors.append({"field": ".".join(location), "message": item.get("msg", "Invalid value")})
        return error_response(ValidationError("Validation failed", errors=errors))

    @app.exception_handler(HTTPException)
    async def handle_http_exception(request: Request, exc: HTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content={"success": False, "message": str(exc.detail)},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected(request: Request, exc: Exception):
        logger.exception(f"Unhandled error on {request.method} {request.url.path}")
        return error_response(ServerError())

"""
Application error hierarchy and FastAPI exception handlers.

AppError is the base for all typed errors. The global exception handler
converts AppError subclasses to the `{success, message, code}` envelope.

Exceptions raised by libraries are classified by shape (request validation,
duplicate key, malformed ObjectId, JWT failure). Anything else is a 500 with
a generic message; the stack trace is logged and only echoed back in
development.
"""

from __future__ import annotations

from typing import Any, Optional

import jwt
from bson.errors import InvalidId
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError

from schemas.dto.responses.common import camelize
from shared.logging import get_logger

log = get_logger(__name__)


class AppError(Exception):
    """Base application error. All typed errors inherit from this."""

    status_code: int = 500
    error_code: str = "INTERNAL_SERVER_ERROR"

    def __init__(
        self,
        message: str,
        *,
        code: Optional[str] = None,
        field: Optional[str] = None,
        details: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.error_code = code
        self.field = field
        self.details = details

    def to_dict(self) -> dict:
        payload: dict = {
            "success": False,
            "message": self.message,
            "code": self.error_code,
        }
        if self.field is not None:
            payload["field"] = self.field
        if self.details is not None:
            payload["details"] = camelize(self.details)
        return payload


class ValidationError(AppError):
    status_code = 400
    error_code = "VALIDATION_ERROR"


class WeakPasswordError(ValidationError):
    error_code = "WEAK_PASSWORD"


class DuplicateCredentialError(ValidationError):
    error_code = "USER_EXISTS"


class AuthenticationError(AppError):
    status_code = 401
    error_code = "AUTHENTICATION_FAILED"


class InvalidTokenError(AuthenticationError):
    """Signature, issuer, audience or type check failed.

    ``error_code`` is TOKEN_EXPIRED for expired tokens, WRONG_AUDIENCE for
    tokens minted for someone else and INVALID_TOKEN otherwise.
    """

    error_code = "INVALID_TOKEN"


class InvalidSessionError(AuthenticationError):
    error_code = "INVALID_SESSION"


class ForbiddenError(AppError):
    status_code = 403
    error_code = "FORBIDDEN"


class AccountInactiveError(ForbiddenError):
    error_code = "ACCOUNT_INACTIVE"


class NotFoundError(AppError):
    status_code = 404
    error_code = "NOT_FOUND"


class AccountLockedError(AppError):
    status_code = 423
    error_code = "ACCOUNT_LOCKED"


class PolicyConfigurationError(AppError):
    """Raised for impossible password-generation options."""

    status_code = 500
    error_code = "POLICY_CONFIGURATION_ERROR"


def _duplicate_key_field(exc: DuplicateKeyError) -> str:
    details = exc.details or {}
    key_value = details.get("keyValue") or details.get("keyPattern") or {}
    if key_value:
        return next(iter(key_value))
    return "field"


def classify_exception(exc: Exception) -> Optional[AppError]:
    """Map a library exception onto the AppError taxonomy, or None."""
    if isinstance(exc, AppError):
        return exc
    if isinstance(exc, DuplicateKeyError):
        field = _duplicate_key_field(exc)
        return ValidationError(
            f"{field} already exists", code="DUPLICATE_FIELD", field=field
        )
    if isinstance(exc, InvalidId):
        return ValidationError("Invalid resource ID format", code="INVALID_ID_FORMAT")
    if isinstance(exc, jwt.ExpiredSignatureError):
        return InvalidTokenError("Token expired", code="TOKEN_EXPIRED")
    if isinstance(exc, jwt.InvalidTokenError):
        return InvalidTokenError("Invalid token")
    return None


def register_error_handlers(app: FastAPI, *, debug: bool = False) -> None:
    """Register global exception handlers on the FastAPI app."""

    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = [
            {
                "field": ".".join(str(p) for p in err.get("loc", ())[1:]),
                "message": err.get("msg"),
            }
            for err in exc.errors()
        ]
        return JSONResponse(
            status_code=400,
            content={
                "success": False,
                "message": "Validation failed",
                "code": "VALIDATION_ERROR",
                "errors": errors,
            },
        )

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        mapped = classify_exception(exc)
        if mapped is not None:
            return JSONResponse(status_code=mapped.status_code, content=mapped.to_dict())

        log.error(
            "unhandled_exception",
            path=request.url.path,
            method=request.method,
            error=str(exc),
            error_type=type(exc).__name__,
            exc_info=exc,
        )
        content: dict = {
            "success": False,
            "message": "An internal server error occurred.",
            "code": "INTERNAL_SERVER_ERROR",
        }
        if debug:
            content["error"] = {"name": type(exc).__name__, "detail": str(exc)}
        return JSONResponse(status_code=500, content=content)

    async def library_error_handler(request: Request, exc: Exception) -> JSONResponse:
        mapped = classify_exception(exc)
        return JSONResponse(status_code=mapped.status_code, content=mapped.to_dict())

    # Registered per type so they are handled before the 500 fallback.
    for library_error in (DuplicateKeyError, InvalidId, jwt.InvalidTokenError):
        app.add_exception_handler(library_error, library_error_handler)

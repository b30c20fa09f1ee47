# ---------------------------------------------------------------------------
# Author  : Kyle <kyle@hacking-linux.com>
# Version : 20260206v1
# ---------------------------------------------------------------------------
"""
Error taxonomy and the JSON error envelope.

Every failure the API reports carries a stable machine-readable ``code``
next to a human-readable ``message``:

    {"success": false, "code": "ACCOUNT_PENDING", "message": "..."}

Routers and guards raise :class:`ApiError` subclasses; the handlers
registered by :func:`register_error_handlers` turn them into responses.
Internal detail (exception text) is only echoed in development mode.
"""

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from core.logger import logger


class ApiError(Exception):
    """Base class: subclasses pin a default status, code and message."""

    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    code = "INTERNAL_ERROR"
    message = "Internal server error"

    def __init__(
        self,
        message: str | None = None,
        *,
        code: str | None = None,
        status_code: int | None = None,
        **extra: Any,
    ):
        self.message = message or self.message
        self.code = code or self.code
        self.status_code = status_code or self.status_code
        self.extra = extra
        super().__init__(self.message)

    def to_dict(self) -> dict:
        body = {"success": False, "code": self.code, "message": self.message}
        body.update(self.extra)
        return body


# -- 400 -------------------------------------------------------------------


class ValidationFailed(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "VALIDATION_ERROR"
    message = "Invalid input"


class InvalidRole(ApiError):
    status_code = status.HTTP_400_BAD_REQUEST
    code = "INVALID_ROLE"
    message = "Invalid role"


# -- 401 / 403 : authentication chain ---------------------------------------


class AuthHeaderMissing(ApiError):
    """No ``Authorization`` header, or one that is not ``Bearer <token>``."""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = "AUTH_HEADER_MISSING"
    message = "Authorization header missing or invalid"


class TokenExpired(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "TOKEN_EXPIRED"
    message = "Token expired"


class InvalidCredentials(ApiError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "INVALID_CREDENTIALS"
    message = "Invalid email or password"


class InvalidToken(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "INVALID_TOKEN"
    message = "Invalid token"


class AccountPending(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "ACCOUNT_PENDING"
    message = "Account pending approval by an administrator"


class Forbidden(ApiError):
    status_code = status.HTTP_403_FORBIDDEN
    code = "FORBIDDEN"
    message = "Access denied"


# -- 404 / 409 -------------------------------------------------------------


class UserNotFound(ApiError):
    """
    404 for resource lookups.  Callers raise it with ``status_code=401`` when
    the missing user is the one trying to authenticate.
    """

    status_code = status.HTTP_404_NOT_FOUND
    code = "USER_NOT_FOUND"
    message = "User not found"


class DuplicateEmail(ApiError):
    status_code = status.HTTP_409_CONFLICT
    code = "EMAIL_EXISTS"
    message = "Email already in use"


class InvalidTransition(ApiError):
    status_code = status.HTTP_409_CONFLICT
    code = "INVALID_TRANSITION"
    message = "Approval state cannot change this way"


# -- 500 -------------------------------------------------------------------


class AuthFailure(ApiError):
    code = "AUTH_FAILURE"
    message = "Authentication failed"


class InternalError(ApiError):
    pass


# ---------------------------------------------------------------------------
# Handlers
# ---------------------------------------------------------------------------


def register_error_handlers(app: FastAPI, debug: bool = False) -> None:
    """Install the JSON error envelope on *app*.  *debug* echoes internals."""

    @app.exception_handler(ApiError)
    async def _api_error(request: Request, exc: ApiError):
        body = exc.to_dict()
        if debug and exc.__cause__ is not None:
            body["debug"] = repr(exc.__cause__)
        return JSONResponse(status_code=exc.status_code, content=body)

    @app.exception_handler(RequestValidationError)
    async def _validation_error(request: Request, exc: RequestValidationError):
        errors = [
            {"field": ".".join(str(p) for p in err.get("loc", ())[1:]), "message": err.get("msg")}
            for err in exc.errors()
        ]
        err = ValidationFailed("Invalid request body", errors=errors)
        return JSONResponse(status_code=err.status_code, content=err.to_dict())

    @app.exception_handler(IntegrityError)
    async def _integrity_error(request: Request, exc: IntegrityError):
        # The only unique constraint clients can trip is users.email
        logger.warning("Integrity error on %s %s: %s", request.method, request.url.path, exc.orig)
        err = DuplicateEmail(code="DUPLICATE_EMAIL")
        return JSONResponse(status_code=err.status_code, content=err.to_dict())

    @app.exception_handler(SQLAlchemyError)
    async def _database_error(request: Request, exc: SQLAlchemyError):
        logger.exception("Database failure on %s %s", request.method, request.url.path)
        err = InternalError("Database unavailable", code="DATABASE_ERROR")
        body = err.to_dict()
        if debug:
            body["debug"] = str(exc)
        return JSONResponse(status_code=err.status_code, content=body)

    @app.exception_handler(Exception)
    async def _unhandled(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        body = InternalError().to_dict()
        if debug:
            body["debug"] = repr(exc)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content=body)

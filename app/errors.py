"""Typed error codes and their HTTP rendering."""

from __future__ import annotations

import asyncio
import logging
from enum import Enum

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from app.schemas.common import ErrorResponse

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Enumerable failure outcomes exposed to API callers."""

    MISSING_USER_ID = "MISSING_USER_ID"
    MISSING_TOKEN = "MISSING_TOKEN"
    MISSING_JTI = "MISSING_JTI"
    MISSING_USER_IDENTIFIER = "MISSING_USER_IDENTIFIER"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_TOKEN = "INVALID_TOKEN"
    EXPIRED_TOKEN = "EXPIRED_TOKEN"
    TOKEN_REVOKED = "TOKEN_REVOKED"
    UNAUTHORIZED = "UNAUTHORIZED"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    WHITELIST_REVOKED = "WHITELIST_REVOKED"
    USER_NOT_WHITELISTED = "USER_NOT_WHITELISTED"
    TOKEN_NOT_AVAILABLE = "TOKEN_NOT_AVAILABLE"
    TOKEN_REFRESH_FAILED = "TOKEN_REFRESH_FAILED"
    TOKEN_DECRYPTION_FAILED = "TOKEN_DECRYPTION_FAILED"
    AUTHORIZATION_UNAVAILABLE = "AUTHORIZATION_UNAVAILABLE"
    DATASTORE_UNAVAILABLE = "DATASTORE_UNAVAILABLE"
    INTERNAL_ERROR = "INTERNAL_ERROR"


STATUS_CODES: dict[ErrorCode, int] = {
    ErrorCode.MISSING_USER_ID: status.HTTP_400_BAD_REQUEST,
    ErrorCode.MISSING_TOKEN: status.HTTP_400_BAD_REQUEST,
    ErrorCode.MISSING_JTI: status.HTTP_400_BAD_REQUEST,
    ErrorCode.MISSING_USER_IDENTIFIER: status.HTTP_400_BAD_REQUEST,
    ErrorCode.VALIDATION_ERROR: status.HTTP_400_BAD_REQUEST,
    ErrorCode.INVALID_TOKEN: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.EXPIRED_TOKEN: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.TOKEN_REVOKED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorCode.USER_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorCode.WHITELIST_REVOKED: status.HTTP_403_FORBIDDEN,
    ErrorCode.USER_NOT_WHITELISTED: status.HTTP_403_FORBIDDEN,
    ErrorCode.TOKEN_NOT_AVAILABLE: status.HTTP_404_NOT_FOUND,
    ErrorCode.TOKEN_REFRESH_FAILED: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.TOKEN_DECRYPTION_FAILED: status.HTTP_500_INTERNAL_SERVER_ERROR,
    ErrorCode.AUTHORIZATION_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.DATASTORE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
    ErrorCode.INTERNAL_ERROR: status.HTTP_500_INTERNAL_SERVER_ERROR,
}

MESSAGES: dict[ErrorCode, str] = {
    ErrorCode.MISSING_USER_ID: "The userId query parameter is required.",
    ErrorCode.MISSING_TOKEN: "A token is required in the request body.",
    ErrorCode.MISSING_JTI: "The jti query parameter is required.",
    ErrorCode.MISSING_USER_IDENTIFIER: (
        "Either userId or githubUserId is required in request body."
    ),
    ErrorCode.VALIDATION_ERROR: "Invalid request data.",
    ErrorCode.INVALID_TOKEN: "The provided token is invalid or malformed.",
    ErrorCode.EXPIRED_TOKEN: (
        "The provided token has expired. Please authenticate again."
    ),
    ErrorCode.TOKEN_REVOKED: "This token has been revoked.",
    ErrorCode.UNAUTHORIZED: "Missing or invalid credentials.",
    ErrorCode.USER_NOT_FOUND: "The specified user does not exist.",
    ErrorCode.WHITELIST_REVOKED: (
        "Your access has been revoked. Please contact the administrator."
    ),
    ErrorCode.USER_NOT_WHITELISTED: (
        "The specified user is not whitelisted for access."
    ),
    ErrorCode.TOKEN_NOT_AVAILABLE: (
        "GitHub access token not available for this user."
    ),
    ErrorCode.TOKEN_REFRESH_FAILED: (
        "The stored GitHub token has expired and could not be refreshed. "
        "Please try again later."
    ),
    ErrorCode.TOKEN_DECRYPTION_FAILED: "An unexpected error occurred.",
    ErrorCode.AUTHORIZATION_UNAVAILABLE: (
        "Authorization could not be verified. Please try again later."
    ),
    ErrorCode.DATASTORE_UNAVAILABLE: (
        "The credential store is temporarily unavailable. Please try again later."
    ),
    ErrorCode.INTERNAL_ERROR: (
        "An unexpected error occurred. Please try again later."
    ),
}

# A malformed credential sent in a request body is client input, not an auth failure.
BODY_TOKEN_STATUS_OVERRIDES: dict[ErrorCode, int] = {
    ErrorCode.INVALID_TOKEN: status.HTTP_400_BAD_REQUEST,
}


class APIError(Exception):
    """Typed failure raised by routers and dependencies.

    Parameters
    ----------
    code : ErrorCode
        Enumerated failure outcome.
    message : str | None, default=None
        Optional override of the default message.
    status_code : int | None, default=None
        Optional override of the default status.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str | None = None,
        status_code: int | None = None,
    ) -> None:
        self.code = code
        self.message = message or MESSAGES[code]
        self.status_code = status_code or STATUS_CODES[code]
        super().__init__(self.message)


def error_body(code: ErrorCode, message: str | None = None) -> dict[str, str]:
    """Build the JSON error payload.

    Parameters
    ----------
    code : ErrorCode
        Enumerated failure outcome.
    message : str | None, default=None
        Optional message override.

    Returns
    -------
    dict[str, str]
        ``{"error": ..., "message": ...}`` body.
    """
    return ErrorResponse(error=code.value, message=message or MESSAGES[code]).model_dump()


async def _handle_api_error(_: Request, exc: APIError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(exc.code, exc.message),
    )


async def _handle_validation_error(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    # Field paths only; rejected input values may carry credentials.
    fields = [".".join(str(part) for part in error["loc"]) for error in exc.errors()]
    logger.info(
        "request_validation_failed path=%s fields=%s",
        request.url.path,
        ",".join(fields),
    )
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(ErrorCode.VALIDATION_ERROR),
    )


async def _handle_datastore_unavailable(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "datastore_unavailable path=%s error_type=%s",
        request.url.path,
        type(exc).__name__,
    )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content=error_body(ErrorCode.DATASTORE_UNAVAILABLE),
    )


async def _handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.error(
        "unhandled_error path=%s error_type=%s",
        request.url.path,
        type(exc).__name__,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=error_body(ErrorCode.INTERNAL_ERROR),
    )


def register_error_handlers(app: FastAPI) -> None:
    """Install the typed-error, validation, datastore and catch-all handlers.

    Parameters
    ----------
    app : FastAPI
        Application to configure.

    Returns
    -------
    None
        Registers handlers in place.
    """
    app.add_exception_handler(APIError, _handle_api_error)
    app.add_exception_handler(RequestValidationError, _handle_validation_error)
    app.add_exception_handler(asyncio.TimeoutError, _handle_datastore_unavailable)
    app.add_exception_handler(SQLAlchemyError, _handle_datastore_unavailable)
    app.add_exception_handler(Exception, _handle_unexpected)

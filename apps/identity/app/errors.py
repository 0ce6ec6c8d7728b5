from __future__ import annotations

import logging
from contextlib import contextmanager
from enum import Enum
from typing import Any, Iterator, Optional

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

logger = logging.getLogger("identity.errors")


class ErrorCode(str, Enum):
    VALIDATION_FAILED = "VALIDATION_FAILED"
    INVALID_OTP = "INVALID_OTP"
    OTP_EXPIRED = "OTP_EXPIRED"
    RATE_LIMIT_EXCEEDED = "RATE_LIMIT_EXCEEDED"
    USER_NOT_FOUND = "USER_NOT_FOUND"
    INVALID_TOKEN = "INVALID_TOKEN"
    UNAUTHORIZED = "UNAUTHORIZED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# code -> (http status, user facing message)
_ERROR_TABLE: dict[ErrorCode, tuple[int, str]] = {
    ErrorCode.VALIDATION_FAILED: (status.HTTP_400_BAD_REQUEST, "Validation failed"),
    ErrorCode.INVALID_OTP: (status.HTTP_401_UNAUTHORIZED, "Invalid or expired OTP"),
    ErrorCode.OTP_EXPIRED: (status.HTTP_401_UNAUTHORIZED, "OTP has expired"),
    ErrorCode.RATE_LIMIT_EXCEEDED: (status.HTTP_429_TOO_MANY_REQUESTS, "Too many requests. Please try again later"),
    ErrorCode.USER_NOT_FOUND: (status.HTTP_404_NOT_FOUND, "User not found"),
    ErrorCode.INVALID_TOKEN: (status.HTTP_401_UNAUTHORIZED, "Invalid or expired token"),
    ErrorCode.UNAUTHORIZED: (status.HTTP_401_UNAUTHORIZED, "Authentication required"),
    ErrorCode.INTERNAL_ERROR: (status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error"),
}


class AppError(Exception):
    """Base of the closed domain error set; ``code`` selects status and message."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(self, details: Optional[str] = None, *, message: Optional[str] = None):
        self.details = details
        self.message = message or _ERROR_TABLE[self.code][1]
        super().__init__(f"{self.code.value}: {self.message}" + (f" ({details})" if details else ""))

    @property
    def http_status(self) -> int:
        return _ERROR_TABLE[self.code][0]


class ValidationFailed(AppError):
    code = ErrorCode.VALIDATION_FAILED


class InvalidOTP(AppError):
    code = ErrorCode.INVALID_OTP


class OTPExpired(AppError):
    code = ErrorCode.OTP_EXPIRED


class RateLimitExceeded(AppError):
    code = ErrorCode.RATE_LIMIT_EXCEEDED


class UserNotFound(AppError):
    code = ErrorCode.USER_NOT_FOUND


class InvalidToken(AppError):
    code = ErrorCode.INVALID_TOKEN


class Unauthorized(AppError):
    code = ErrorCode.UNAUTHORIZED


class InternalError(AppError):
    code = ErrorCode.INTERNAL_ERROR


def error_body(code: ErrorCode | str, message: str, details: Any = None) -> dict:
    err: dict[str, Any] = {"code": code.value if isinstance(code, ErrorCode) else code, "message": message}
    if details:
        err["details"] = details
    return {"success": False, "error": err}


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    details = exc.details
    if isinstance(exc, InternalError):
        logger.error("internal error on %s %s: %s", request.method, request.url.path, exc, exc_info=exc.__cause__ or exc)
        details = None
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, (InvalidToken, Unauthorized)) else None
    return JSONResponse(status_code=exc.http_status, content=error_body(exc.code, exc.message, details), headers=headers)


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else "Request failed"
    return JSONResponse(
        status_code=exc.status_code,
        content=error_body(f"HTTP_{exc.status_code}", detail),
        headers=getattr(exc, "headers", None),
    )


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    issues = [
        f"{'.'.join(str(p) for p in err.get('loc', ()) if p != 'body')}: {err.get('msg', 'invalid')}"
        for err in exc.errors()
    ]
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=error_body(ErrorCode.VALIDATION_FAILED, "Invalid request format", ", ".join(issues)),
    )


@contextmanager
def internal_errors(action: str) -> Iterator[None]:
    """Wrap unexpected failures as ``InternalError``; domain errors pass through."""
    try:
        yield
    except AppError:
        raise
    except Exception as exc:
        raise InternalError(f"failed to {action}") from exc

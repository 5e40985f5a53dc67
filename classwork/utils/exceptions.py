"""
classwork/utils/exceptions.py
Centralized custom exceptions and the global exception handlers
Used across services and controllers for consistent error responses
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional, Sequence, Tuple

from fastapi import HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


# =============================================================================
# CUSTOM APPLICATION EXCEPTIONS (Business Logic)
# =============================================================================

class AppException(HTTPException):
    """Base class for all custom exceptions"""
    def __init__(
        self,
        status_code: int,
        code: str,
        detail: str,
        headers: Optional[Dict[str, str]] = None
    ):
        self.code = code
        super().__init__(status_code=status_code, detail=detail, headers=headers)


class UnauthorizedException(AppException):
    """401 - Invalid credentials or token"""
    def __init__(self, detail: str = "Invalid email or password"):
        super().__init__(401, "UNAUTHORIZED", detail, headers={"WWW-Authenticate": "Bearer"})


class ForbiddenException(AppException):
    """403 - User lacks permission"""
    def __init__(self, detail: str = "You do not have permission to perform this action"):
        super().__init__(403, "FORBIDDEN", detail)


class NotFoundException(AppException):
    """404 - Resource not found"""
    def __init__(self, detail: str = "Resource not found"):
        super().__init__(404, "NOT_FOUND", detail)


class ConflictException(AppException):
    """409 - Resource conflict (already exists, etc.)"""
    def __init__(self, detail: str = "Resource already exists"):
        super().__init__(409, "CONFLICT", detail)


class InvalidArgumentException(AppException):
    """400 - Malformed grade, unsupported file, empty submission"""
    def __init__(self, detail: str = "Invalid argument"):
        super().__init__(400, "INVALID_ARGUMENT", detail)


class InvalidOperationException(AppException):
    """400 - Operation not allowed in the record's current state"""
    def __init__(self, detail: str = "Operation not allowed"):
        super().__init__(400, "INVALID_OPERATION", detail)


class UpstreamUnavailableException(AppException):
    """503 - Blob store or directory unreachable (retryable)"""
    def __init__(self, detail: str = "Storage is temporarily unavailable. Please try again."):
        super().__init__(503, "UPSTREAM_UNAVAILABLE", detail, headers={"Retry-After": "5"})


class PartialFailure(Exception):
    """
    A best-effort step failed without invalidating the overall operation.
    Raised and caught inside services; never rendered as an HTTP response.
    """
    def __init__(self, step: str, failures: Sequence[Tuple[str, BaseException]]):
        self.step = step
        self.failures: List[Tuple[str, BaseException]] = list(failures)
        super().__init__(f"{step}: {len(self.failures)} item(s) failed")


# =============================================================================
# GLOBAL EXCEPTION HANDLERS
# =============================================================================

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle all custom AppException errors"""
    response = {
        "success": False,
        "error": {
            "code": exc.code,
            "detail": exc.detail,
            "timestamp": _timestamp()
        }
    }

    logger.warning("%s - %s - %s %s", exc.code, exc.detail, request.method, request.url.path)
    return JSONResponse(
        status_code=exc.status_code,
        content=response,
        headers=exc.headers
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Structured 422 validation errors"""
    errors = []
    for error in exc.errors():
        errors.append({
            "field": " -> ".join(str(loc) for loc in error["loc"]),
            "message": error["msg"],
            "type": error["type"]
        })

    response = {
        "success": False,
        "error": {
            "code": "VALIDATION_ERROR",
            "detail": "Request validation failed",
            "errors": errors,
            "timestamp": _timestamp()
        }
    }

    logger.warning("Validation error on %s %s: %s", request.method, request.url.path, errors)
    return JSONResponse(status_code=422, content=response)


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unexpected errors (never expose stack trace or storage ids)"""
    logger.error("Unhandled exception on %s %s", request.method, request.url.path, exc_info=exc)

    response = {
        "success": False,
        "error": {
            "code": "INTERNAL_ERROR",
            "detail": "An unexpected error occurred. Please try again later.",
            "request_id": request.headers.get("X-Request-ID", "unknown"),
            "timestamp": _timestamp()
        }
    }

    return JSONResponse(status_code=500, content=response)

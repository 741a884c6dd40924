"""
Custom exceptions and error handlers for consistent error responses.

Every failure the dispatch core reports is one of the exceptions below. The
HTTP layer renders them through the global handlers at the bottom of this
module.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict, Iterable

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationError(AppException):
    """Raised for malformed input. Never retried."""

    def __init__(self, message: str = "Validation error", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details
        )


class InvalidTransitionError(ValidationError):
    """Raised when a trip operation is not allowed from its current status."""

    def __init__(self, trip_id: str, current_status: str, target_status: str):
        super().__init__(
            message=f"Trip {trip_id} cannot move from {current_status} to {target_status}",
            details={
                "trip_id": trip_id,
                "current_status": current_status,
                "target_status": target_status
            }
        )
        self.error_code = "ERR_INVALID_TRANSITION"
        self.status_code = status.HTTP_409_CONFLICT


class NotFoundError(AppException):
    """Raised when requested resource is not found."""

    def __init__(self, resource: str, resource_id: Any = None):
        message = f"{resource} not found"
        if resource_id:
            message = f"{resource} with ID {resource_id} not found"
        super().__init__(
            message=message,
            error_code="ERR_NOT_FOUND_001",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "id": resource_id}
        )


class ConflictError(AppException):
    """Raised when a conditional write lost a race. Safe to retry with fresh state."""

    def __init__(self, message: str = "Concurrent modification detected", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_CONFLICT",
            status_code=status.HTTP_409_CONFLICT,
            details={**(details or {}), "retryable": True}
        )


class NoDriverAvailableError(AppException):
    """Raised when no candidate driver could be reserved for a trip."""

    def __init__(self, trip_id: str, candidate_ids: Iterable[str]):
        super().__init__(
            message=f"No driver available for trip {trip_id}",
            error_code="ERR_NO_DRIVER_AVAILABLE",
            status_code=status.HTTP_409_CONFLICT,
            details={"trip_id": trip_id, "candidates": list(candidate_ids)}
        )


class ForbiddenFieldError(AppException):
    """Raised when a caller writes a field owned by another component."""

    def __init__(self, fields: Iterable[str]):
        fields = sorted(fields)
        super().__init__(
            message=f"Fields cannot be written through this operation: {', '.join(fields)}",
            error_code="ERR_FORBIDDEN_FIELD",
            status_code=status.HTTP_403_FORBIDDEN,
            details={"fields": fields}
        )


# Global Exception Handlers

async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handler for custom application exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handler for FastAPI HTTPException with standardized format."""
    # Map status code to error code
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        405: "ERR_METHOD_NOT_ALLOWED",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        }
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors on request bodies."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": jsonable_errors(exc.errors())
            }
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception: %s", type(exc).__name__, exc_info=exc)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )


def jsonable_errors(errors) -> list:
    """Strip non-serializable context (e.g. exception objects) from pydantic error dicts."""
    return [
        {key: value for key, value in error.items() if key in ("type", "loc", "msg")}
        for error in errors
    ]

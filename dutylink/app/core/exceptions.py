"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes for the driver core (sensor, shift,
persistence and alert stream failures) and global exception handlers.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict

logger = logging.getLogger("dutylink.errors")


class AppException(Exception):
    """Base application exception."""

    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ResourceNotFoundError(AppException):
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


class AuthenticationError(AppException):
    """Raised for authentication failures."""

    def __init__(self, message: str = "Authentication failed"):
        super().__init__(
            message=message,
            error_code="ERR_AUTH_001",
            status_code=status.HTTP_401_UNAUTHORIZED
        )


# Shift lifecycle

class ShiftValidationError(AppException):
    """Raised when an odometer reading is missing or out of range."""

    def __init__(self, message: str, field: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_SHIFT_VALIDATION",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"field": field, **(details or {})}
        )


class ShiftStateError(AppException):
    """Raised when an operation does not fit the current duty state."""

    def __init__(self, message: str, state: str):
        super().__init__(
            message=message,
            error_code="ERR_SHIFT_STATE",
            status_code=status.HTTP_409_CONFLICT,
            details={"state": state}
        )


class OpenShiftExistsError(AppException):
    """Raised when the backend already holds an open shift for the worker."""

    def __init__(self, worker_id: int):
        super().__init__(
            message="An open shift already exists for this worker",
            error_code="ERR_SHIFT_OPEN_EXISTS",
            status_code=status.HTTP_409_CONFLICT,
            details={"worker_id": worker_id}
        )


class PersistenceError(AppException):
    """Raised when the backend store rejects or cannot reach a write/read."""

    def __init__(self, operation: str, reason: str = ""):
        super().__init__(
            message=f"Could not complete {operation}",
            error_code="ERR_PERSISTENCE",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"operation": operation, "reason": reason}
        )


# Position sensor

class SensorError(AppException):
    """
    Transient position sensor failure.

    Codes follow the device geolocation API: 1 permission denied,
    2 position unavailable, 3 timeout. The sampling subscription stays open.
    """
    PERMISSION_DENIED = 1
    POSITION_UNAVAILABLE = 2
    TIMEOUT = 3

    def __init__(self, code: int, message: str = "Position sensor error"):
        self.code = code
        super().__init__(
            message=message,
            error_code="ERR_SENSOR",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            details={"code": code}
        )


class SensorUnavailableError(AppException):
    """Raised once when the device has no positioning capability."""

    def __init__(self, message: str = "Geolocation not supported"):
        super().__init__(
            message=message,
            error_code="ERR_SENSOR_UNAVAILABLE",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE
        )


# Alert stream

class StreamError(AppException):
    """Raised when the alert subscription drops or cannot be opened."""

    def __init__(self, message: str = "Alert stream interrupted"):
        super().__init__(
            message=message,
            error_code="ERR_STREAM",
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE
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
    error_code_map = {
        400: "ERR_BAD_REQUEST",
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        500: "ERR_INTERNAL_SERVER"
    }

    error_code = error_code_map.get(exc.status_code, "ERR_UNKNOWN")

    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error_code": error_code,
            "message": exc.detail,
            "details": {}
        },
        headers=getattr(exc, "headers", None)
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handler for Pydantic validation errors."""
    return JSONResponse(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "error_code": "ERR_VALIDATION",
            "message": "Validation error",
            "details": {
                "errors": exc.errors()
            }
        }
    )


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception: %s: %s", type(exc).__name__, exc)

    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )

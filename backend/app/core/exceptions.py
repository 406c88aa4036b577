"""
Custom exceptions and error handlers for consistent error responses.

Provides standardized error codes and global exception handlers.
Every booking-core failure is an AppException subclass so callers get
a machine-readable error_code alongside the message.
"""

import logging
from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from typing import Any, Dict

logger = logging.getLogger(__name__)


class AppException(Exception):
    """Base application exception."""
    
    def __init__(self, message: str, error_code: str, status_code: int = 500, details: Dict[str, Any] = None):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)


class ValidationFailedError(AppException):
    """Raised for malformed input the request schema cannot catch (e.g. inverted date range)."""
    
    def __init__(self, message: str, details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_VALIDATION_001",
            status_code=status.HTTP_400_BAD_REQUEST,
            details=details
        )


class InsufficientPermissionsError(AppException):
    """Raised when user doesn't have permission to perform an action."""
    
    def __init__(self, message: str = "Insufficient permissions", details: Dict[str, Any] = None):
        super().__init__(
            message=message,
            error_code="ERR_PERM_001",
            status_code=status.HTTP_403_FORBIDDEN,
            details=details
        )


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


class LockConflictError(AppException):
    """Raised when a car is soft-locked by another browsing session."""
    
    def __init__(self, car_id: int, remaining_minutes: int):
        super().__init__(
            message=f"Car is being booked by someone else, retry in about {remaining_minutes} minute(s)",
            error_code="ERR_LOCK_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"car_id": car_id, "remaining_minutes": remaining_minutes}
        )


class ReservationHeldError(AppException):
    """Raised when a fresh NEW booking still holds the car."""
    
    def __init__(self, car_id: int):
        super().__init__(
            message="Car is currently being reserved by another customer, please wait or pick another car",
            error_code="ERR_BOOKING_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"car_id": car_id}
        )


class DateOverlapError(AppException):
    """Raised when the requested range overlaps an active booking."""
    
    def __init__(self, car_id: int):
        super().__init__(
            message="Car is already booked for the selected dates, please pick other dates or another car",
            error_code="ERR_BOOKING_002",
            status_code=status.HTTP_409_CONFLICT,
            details={"car_id": car_id}
        )


class PriceMismatchError(AppException):
    """Raised when the client price drifts beyond tolerance from the server price."""
    
    def __init__(self, client_price: Any, calculated_price: Any):
        super().__init__(
            message="Submitted price does not match the current price for this car",
            error_code="ERR_BOOKING_003",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"client_price": str(client_price), "calculated_price": str(calculated_price)}
        )


class NotAvailableError(AppException):
    """Raised when a car is not approved or not AVAILABLE."""
    
    def __init__(self, car_id: int):
        super().__init__(
            message="Car is not available for booking",
            error_code="ERR_BOOKING_004",
            status_code=status.HTTP_409_CONFLICT,
            details={"car_id": car_id}
        )


class InvalidTransitionError(AppException):
    """Raised when a lead status change is not in the transition table."""
    
    def __init__(self, current: str, target: str):
        super().__init__(
            message=f"Invalid status transition from {current} to {target}",
            error_code="ERR_LEAD_001",
            status_code=status.HTTP_409_CONFLICT,
            details={"from": current, "to": target}
        )


class RateLimitExceededError(AppException):
    """Raised when a client exceeds a shared rate limit."""
    
    def __init__(self, scope: str, retry_after: int):
        super().__init__(
            message="Too many requests, slow down",
            error_code="ERR_RATE_001",
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            details={"scope": scope, "retry_after": retry_after}
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
        401: "ERR_UNAUTHORIZED",
        403: "ERR_FORBIDDEN",
        404: "ERR_NOT_FOUND",
        409: "ERR_CONFLICT",
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
                "errors": jsonable_errors(exc)
            }
        }
    )


def jsonable_errors(exc: RequestValidationError):
    # pydantic v2 puts the raw exception object in ctx
    errors = []
    for error in exc.errors():
        error = dict(error)
        if "ctx" in error:
            error["ctx"] = {key: str(value) for key, value in error["ctx"].items()}
        errors.append(error)
    return errors


async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handler for unhandled exceptions."""
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "error_code": "ERR_INTERNAL_SERVER",
            "message": "An internal server error occurred",
            "details": {}
        }
    )

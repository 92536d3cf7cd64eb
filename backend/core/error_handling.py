# backend/core/error_handling.py

"""
Error types and API error handling utilities.

Service code raises the ``APIError`` subclasses below; routes wrap their
handlers with ``handle_api_errors`` so that every failure reaches the client
with a stable status code and ``error_code``.
"""

from typing import Callable, Dict, Any, Optional
from functools import wraps
import logging
import inspect
from fastapi import HTTPException, status
from sqlalchemy.exc import IntegrityError, DataError, OperationalError
from pydantic import ValidationError
import traceback

logger = logging.getLogger(__name__)


class APIError(Exception):
    """Base exception for API errors"""

    error_code = "INTERNAL_ERROR"

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


class NotFoundError(APIError):
    """Resource not found error"""

    error_code = "NOT_FOUND"

    def __init__(self, resource: str, identifier: Any):
        super().__init__(
            message=f"{resource} with identifier {identifier} not found",
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource": resource, "identifier": str(identifier)},
        )


class ConflictError(APIError):
    """An atomic write lost a race; the operation can be retried"""

    error_code = "CONFLICT"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message, status_code=status.HTTP_409_CONFLICT, details=details
        )


class APIValidationError(APIError):
    """Input validation error - renamed from ValidationError to avoid Pydantic collision"""

    error_code = "VALIDATION_ERROR"

    def __init__(self, message: str, errors: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details={"validation_errors": errors} if errors else {},
        )


class InvalidTransitionError(APIError):
    """Order status change not allowed by the state machine"""

    error_code = "INVALID_TRANSITION"

    def __init__(self, current_status: str, target_status: str):
        super().__init__(
            message=f"Invalid status transition from {current_status} to {target_status}",
            status_code=status.HTTP_409_CONFLICT,
            details={"current_status": current_status, "target_status": target_status},
        )


class InsufficientPointsError(APIError):
    """Redemption or adjustment would drive a balance negative"""

    error_code = "INSUFFICIENT_POINTS"

    def __init__(self, balance: int, requested: int):
        super().__init__(
            message="Insufficient points balance",
            status_code=status.HTTP_400_BAD_REQUEST,
            details={"current_balance": balance, "requested": requested},
        )


class StoreUnavailableError(APIError):
    """Transient database failure, safe to retry with backoff"""

    error_code = "STORE_UNAVAILABLE"

    def __init__(self, message: str = "Database service temporarily unavailable"):
        super().__init__(
            message=message, status_code=status.HTTP_503_SERVICE_UNAVAILABLE
        )


def handle_api_errors(func: Callable) -> Callable:
    """
    Decorator to handle common API errors with proper status codes and messages.
    Properly handles both async and sync functions.

    Usage:
        @router.get("/items/{item_id}")
        @handle_api_errors
        def get_item(item_id: int, db: Session = Depends(get_db)):
            # Your code here
            pass
    """

    def handle_exception(e: Exception, func_name: str) -> None:
        """Common exception handling logic"""
        if isinstance(e, APIError):
            logger.warning(
                f"API Error in {func_name}: {e.message}",
                extra={"status_code": e.status_code, "details": e.details},
            )
            raise HTTPException(
                status_code=e.status_code,
                detail={
                    "message": e.message,
                    "error_code": e.error_code,
                    "details": e.details,
                },
            )

        elif isinstance(e, IntegrityError):
            logger.error(f"Database integrity error in {func_name}: {str(e.orig)}")
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail={
                    "message": "Resource already exists with the provided unique values",
                    "error_code": ConflictError.error_code,
                },
            )

        elif isinstance(e, DataError):
            logger.error(f"Data error in {func_name}: {str(e.orig)}")
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail={
                    "message": "Invalid data format or type",
                    "error_code": APIValidationError.error_code,
                },
            )

        elif isinstance(e, OperationalError):
            logger.error(f"Database operational error in {func_name}: {str(e.orig)}")
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail={
                    "message": "Database service temporarily unavailable",
                    "error_code": StoreUnavailableError.error_code,
                },
            )

        elif isinstance(e, ValidationError):
            logger.warning(f"Pydantic validation error in {func_name}: {e.errors()}")
            raise HTTPException(
                status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                detail={
                    "message": "Request validation failed",
                    "error_code": APIValidationError.error_code,
                    "errors": e.errors(include_url=False),
                },
            )

        elif isinstance(e, HTTPException):
            raise e

        else:
            logger.error(
                f"Unexpected error in {func_name}: {str(e)}\n{traceback.format_exc()}"
            )
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail={
                    "message": "An unexpected error occurred",
                    "error_code": APIError.error_code,
                },
            )

    if inspect.iscoroutinefunction(func):

        @wraps(func)
        async def async_wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                handle_exception(e, func.__name__)

        return async_wrapper
    else:

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            try:
                return func(*args, **kwargs)
            except Exception as e:
                handle_exception(e, func.__name__)

        return sync_wrapper

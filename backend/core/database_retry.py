# backend/core/database_retry.py

import logging
import random
import time
from typing import Callable, Optional, Set, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from .config import settings
from .error_handling import ConflictError, StoreUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Database error codes that indicate retry-able conditions
RETRY_ERROR_CODES: Set[str] = {
    # PostgreSQL
    "40001",  # serialization_failure
    "40P01",  # deadlock_detected
    "55P03",  # lock_not_available
    "57014",  # query_canceled (often due to statement timeout)
    # MySQL
    "1205",  # Lock wait timeout exceeded
    "1213",  # Deadlock found when trying to get lock
    # SQLite
    "database is locked",
    "database table is locked",
}


def is_retryable_error(error: Exception) -> bool:
    """
    Check if an error is a lost race or a transient database condition

    Args:
        error: The exception to check

    Returns:
        True if the operation may succeed when run again from scratch
    """
    if isinstance(error, (ConflictError, StoreUnavailableError, StaleDataError)):
        return True

    if isinstance(error, (OperationalError, DBAPIError)):
        error_str = str(error).lower()
        if any(code in error_str for code in ["deadlock", "serialization", "lock"]):
            return True

        if hasattr(error, "orig") and hasattr(error.orig, "pgcode"):
            return error.orig.pgcode in RETRY_ERROR_CODES
        elif hasattr(error, "orig") and hasattr(error.orig, "args"):
            error_code = str(error.orig.args[0]) if error.orig.args else ""
            return any(code in error_code for code in RETRY_ERROR_CODES)

    return False


def to_surface_error(error: Exception) -> Exception:
    """Translate a low-level failure into the error kind callers see"""
    if isinstance(error, StaleDataError):
        return ConflictError(
            "Concurrent update detected, please retry", {"reason": str(error)}
        )
    if isinstance(error, OperationalError):
        return StoreUnavailableError()
    return error


def run_with_retry(
    func: Callable[..., T],
    *args,
    db=None,
    max_retries: Optional[int] = None,
    initial_delay: Optional[float] = None,
    max_delay: Optional[float] = None,
    backoff_factor: Optional[float] = None,
    jitter: bool = True,
    **kwargs,
) -> T:
    """
    Run a unit of work, retrying lost races with exponential backoff

    Every failed attempt rolls back ``db`` so that a partially applied write
    never survives. Errors that are not retryable surface immediately.

    Args:
        func: The function performing the unit of work
        *args: Positional arguments for the function
        db: Session to roll back between attempts
        max_retries: Maximum number of retry attempts
        initial_delay: Initial delay between retries in seconds
        max_delay: Maximum delay between retries in seconds
        backoff_factor: Multiplier for exponential backoff
        jitter: Add random jitter to prevent thundering herd
        **kwargs: Keyword arguments for the function

    Returns:
        The result of the function call

    Raises:
        ConflictError or StoreUnavailableError once retries are exhausted,
        any other exception unchanged
    """
    max_retries = settings.db_max_retries if max_retries is None else max_retries
    delay = settings.db_retry_initial_delay if initial_delay is None else initial_delay
    max_delay = settings.db_retry_max_delay if max_delay is None else max_delay
    backoff_factor = (
        settings.db_retry_backoff_factor if backoff_factor is None else backoff_factor
    )

    for attempt in range(max_retries + 1):
        try:
            return func(*args, **kwargs)
        except Exception as e:
            if db is not None:
                db.rollback()

            if not is_retryable_error(e):
                raise

            if attempt == max_retries:
                logger.error(
                    f"{getattr(func, '__name__', 'operation')} failed after "
                    f"{max_retries + 1} attempts: {str(e)}"
                )
                surfaced = to_surface_error(e)
                if surfaced is e:
                    raise
                raise surfaced from e

            actual_delay = min(delay, max_delay)
            if jitter:
                # Add random jitter (0-25% of delay)
                actual_delay *= 1 + random.random() * 0.25

            logger.warning(
                f"Retryable database error on attempt {attempt + 1}/{max_retries + 1}. "
                f"Retrying in {actual_delay:.2f}s. Error: {str(e)}"
            )

            time.sleep(actual_delay)
            delay *= backoff_factor

# =============================================================================
# order_core/errors/handlers.py
# Error Handling Utilities for the order-entry offline core
# =============================================================================

from __future__ import annotations
import functools
import traceback
from typing import Optional, Callable, TypeVar, Any

from order_core.logging import get_logger
from .exceptions import OrderCoreError

logger = get_logger(__name__)

T = TypeVar("T")

GENERIC_USER_MESSAGE = "Something went wrong. Please try again."


def handle_error(
    error: Exception,
    log_error: bool = True,
    user_message: Optional[str] = None,
) -> str:
    """
    Centralized error handling function.

    Args:
        error: The exception to handle
        log_error: Whether to log the error
        user_message: Message to hand back to the caller instead of the
            technical one

    Returns:
        A message that is safe to show to the user
    """
    if isinstance(error, OrderCoreError):
        message = error.message
        code = error.code
        details = error.details
    else:
        message = str(error)
        code = "UNKNOWN"
        details = {"traceback": traceback.format_exc()}

    if log_error:
        logger.error(
            f"[{code}] {message}",
            extra={"details": details},
            exc_info=True,
        )

    return user_message or GENERIC_USER_MESSAGE


def safe_execute(
    func: Callable[..., T],
    *args,
    default: Optional[T] = None,
    error_message: Optional[str] = None,
    reraise: bool = False,
    **kwargs,
) -> Optional[T]:
    """
    Execute a function with automatic error handling.

    Usage:
        rows = safe_execute(
            remote.query_all, "teams",
            default=[],
            error_message="Failed to load teams"
        )
    """
    try:
        return func(*args, **kwargs)
    except Exception as e:
        handle_error(e, user_message=error_message)
        if reraise:
            raise
        return default


def error_boundary(
    default_return: Any = None,
    default_factory: Optional[Callable[[], Any]] = None,
    log: bool = True,
):
    """
    Decorator to wrap functions with error handling.

    Args:
        default_return: Value to return if function fails
        default_factory: Called to build a fresh return value on failure
            (use for mutable defaults such as lists)
        log: Whether to log errors

    Usage:
        @error_boundary(default_factory=list)
        def get_all(self, table: str) -> List[Record]:
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., Optional[T]]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> Optional[T]:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                if log:
                    logger.error(
                        f"Error in {func.__name__}: {e}",
                        exc_info=True,
                    )
                if default_factory is not None:
                    return default_factory()
                return default_return

        return wrapper

    return decorator

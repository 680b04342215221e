# =============================================================================
# order_core/errors/__init__.py
# Centralized Error Handling for the order-entry offline core
# =============================================================================

from .exceptions import (
    OrderCoreError,
    StorageError,
    StorageUnavailableError,
    RevisionConflictError,
    RemoteQueryError,
    ConfigurationError,
)

from .handlers import (
    handle_error,
    safe_execute,
    error_boundary,
)

__all__ = [
    # Exceptions
    "OrderCoreError",
    "StorageError",
    "StorageUnavailableError",
    "RevisionConflictError",
    "RemoteQueryError",
    "ConfigurationError",
    # Handlers
    "handle_error",
    "safe_execute",
    "error_boundary",
]

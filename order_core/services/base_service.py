# =============================================================================
# order_core/services/base_service.py
# Base class for services that read through remote-or-cache paths
# =============================================================================

from __future__ import annotations
from abc import ABC
from typing import Optional, Dict, Any, Callable
from dataclasses import dataclass, field

from order_core.logging import get_logger, LogContext
from order_core.errors import handle_error, OrderCoreError


@dataclass
class ServiceResult:
    """
    Outcome of a service call.

    ``source`` says where the data came from ("remote" or "cache"), so
    screens can tell fresh data from the offline copy.
    """
    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    source: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, data: Any = None, source: Optional[str] = None) -> ServiceResult:
        return cls(success=True, data=data, source=source)

    @classmethod
    def fail(
        cls,
        error: str,
        error_code: str = "UNKNOWN",
        source: Optional[str] = None,
    ) -> ServiceResult:
        return cls(success=False, error=error, error_code=error_code, source=source)

    @classmethod
    def from_exception(cls, e: Exception, source: Optional[str] = None) -> ServiceResult:
        """Failed result carrying the code and details of an OrderCoreError."""
        if isinstance(e, OrderCoreError):
            return cls(
                success=False,
                error=e.message,
                error_code=e.code,
                source=source,
                details=dict(e.details),
            )
        return cls(success=False, error=str(e), error_code="EXCEPTION", source=source)


class BaseService(ABC):
    """
    Base class giving services a named logger and a guarded call helper.

    Usage:
        class TeamDirectory(BaseService):
            def load(self, online):
                fetched = self.attempt("Loading teams", remote.query_all, "teams", source="remote")
                if not fetched:
                    ...  # fall back to the cache
    """

    def __init__(self):
        self.logger = get_logger(f"order_core.{self.__class__.__name__}")

    def log_operation(self, operation: str) -> LogContext:
        """Timed log context ("... started" / "... completed (0.12s)")."""
        return LogContext(self.logger, operation)

    def attempt(
        self,
        operation: str,
        func: Callable[..., Any],
        *args,
        source: Optional[str] = None,
        **kwargs,
    ) -> ServiceResult:
        """
        Call ``func`` and wrap its return value or its error.

        Errors never propagate: they are logged by handle_error, and
        OrderCoreErrors keep their code in the result.
        """
        try:
            data = func(*args, **kwargs)
        except Exception as e:
            handle_error(e)
            return ServiceResult.from_exception(e, source=source)

        self.logger.debug(f"{operation} succeeded")
        return ServiceResult.ok(data, source=source)

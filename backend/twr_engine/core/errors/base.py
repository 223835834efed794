import traceback
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Type, TYPE_CHECKING

from twr_engine.core.enums import ErrorLevel, ErrorCategory

if TYPE_CHECKING:
    from twr_engine.services.performance.aggregator import AggregateResult


class BaseError(Exception):
    """
    Base error class providing rich context and serialization.
    """
    default_level: ErrorLevel = ErrorLevel.MEDIUM
    default_category: ErrorCategory = ErrorCategory.SYSTEM

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        parent: Optional[Exception] = None,
        level: Optional[ErrorLevel] = None,
        category: Optional[ErrorCategory] = None,
        *args: Any
    ) -> None:
        super().__init__(message, *args)
        self.message = message
        self.context = context or {}
        self.parent = parent
        self.level = level or self.default_level
        self.category = category or self.default_category
        self.timestamp = datetime.now(timezone.utc)
        self.traceback = (
            "".join(traceback.format_exception(type(parent), parent, parent.__traceback__))
            if parent
            else None
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert the error instance into a dictionary."""
        return {
            "message": self.message,
            "context": self.context,
            "level": self.level.value if hasattr(self.level, "value") else self.level,
            "category": self.category.value if hasattr(self.category, "value") else self.category,
            "timestamp": self.timestamp.isoformat(),
            "parent_error": str(self.parent) if self.parent else None,
            "traceback": self.traceback,
            "error_type": self.__class__.__name__,
        }

    @classmethod
    def from_exception(
        cls,
        exc: Exception,
        context: Optional[Dict[str, Any]] = None,
        level: Optional[ErrorLevel] = None,
        category: Optional[ErrorCategory] = None,
    ) -> "BaseError":
        """Create an error instance from an existing exception."""
        return cls(
            message=str(exc),
            context=context,
            parent=exc,
            level=level,
            category=category,
        )

    def add_context(self, **kwargs: Any) -> "BaseError":
        """Add additional context information to the error."""
        self.context.update(kwargs)
        return self


class ValidationError(BaseError):
    default_level = ErrorLevel.MEDIUM
    default_category = ErrorCategory.VALIDATION


class ConfigurationError(BaseError):
    """
    Configuration error raised when settings are invalid.
    """
    default_level = ErrorLevel.CRITICAL
    default_category = ErrorCategory.SYSTEM


class ServiceError(BaseError):
    default_level = ErrorLevel.HIGH
    default_category = ErrorCategory.SYSTEM


# ---- Transport errors raised by broker collaborators ----

class TransportError(BaseError):
    """
    Failure talking to a snapshot, ledger or balance source.

    Propagated to the caller as-is; retrying is left to the collaborator.
    """
    default_level = ErrorLevel.HIGH
    default_category = ErrorCategory.BROKER

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        parent: Optional[Exception] = None,
        level: Optional[ErrorLevel] = None,
        category: Optional[ErrorCategory] = None,
        status: Optional[int] = None,
    ) -> None:
        super().__init__(message, context=context, parent=parent, level=level, category=category)
        self.status = status


class NetworkError(TransportError):
    default_category = ErrorCategory.NETWORK


class AuthenticationError(TransportError):
    default_category = ErrorCategory.AUTHENTICATION


class NotFoundError(TransportError):
    default_level = ErrorLevel.MEDIUM


class ServerError(TransportError):
    pass


# ---- Calculation errors ----

class InsufficientDataError(BaseError):
    """No snapshots to compute from. Recovered as an empty series."""
    default_level = ErrorLevel.LOW
    default_category = ErrorCategory.DATA


class DegenerateIntervalError(BaseError):
    """Cash-flow adjusted equity is not positive. Recovered as a zero return."""
    default_level = ErrorLevel.LOW
    default_category = ErrorCategory.CALCULATION


class RebaseMismatchError(BaseError):
    default_level = ErrorLevel.CRITICAL
    default_category = ErrorCategory.CALCULATION


class PartialFetchError(BaseError):
    """
    Raised when one or more accounts could not be fetched for an aggregate.

    ``succeeded`` and ``failed`` hold account ids. When at least one account
    succeeded, ``result`` carries the aggregate computed from the successes.
    """
    default_level = ErrorLevel.HIGH
    default_category = ErrorCategory.BROKER

    def __init__(
        self,
        message: str,
        succeeded: Optional[List[str]] = None,
        failed: Optional[List[str]] = None,
        errors: Optional[Dict[str, Exception]] = None,
        result: Optional["AggregateResult"] = None,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.succeeded = list(succeeded or [])
        self.failed = list(failed or [])
        self.errors = dict(errors or {})
        self.result = result
        context = {
            **(context or {}),
            "succeeded": self.succeeded,
            "failed": self.failed,
        }
        super().__init__(message, context=context)


def get_error_class(category: ErrorCategory) -> Type[BaseError]:
    """
    Return the appropriate error class for a given error category.

    Args:
        category (ErrorCategory): The category of the error.

    Returns:
        Type[BaseError]: The error class corresponding to the category.
    """
    error_map = {
        ErrorCategory.VALIDATION: ValidationError,
        ErrorCategory.AUTHENTICATION: AuthenticationError,
        ErrorCategory.NETWORK: NetworkError,
        ErrorCategory.BROKER: TransportError,
        ErrorCategory.DATA: InsufficientDataError,
        ErrorCategory.CALCULATION: DegenerateIntervalError,
        ErrorCategory.SYSTEM: ServiceError,
    }
    return error_map.get(category, BaseError)

"""
Core error handling system.

Exports:
- Base error class and the TWR error taxonomy
- The ``error_handler`` decorator
"""

from .base import (
    BaseError,
    ValidationError,
    ConfigurationError,
    ServiceError,
    TransportError,
    NetworkError,
    AuthenticationError,
    NotFoundError,
    ServerError,
    InsufficientDataError,
    DegenerateIntervalError,
    RebaseMismatchError,
    PartialFetchError,
    get_error_class,
)
from .decorators import error_handler
from ..enums import ErrorLevel, ErrorCategory

__all__ = [
    "BaseError",
    "ValidationError",
    "ConfigurationError",
    "ServiceError",
    "TransportError",
    "NetworkError",
    "AuthenticationError",
    "NotFoundError",
    "ServerError",
    "InsufficientDataError",
    "DegenerateIntervalError",
    "RebaseMismatchError",
    "PartialFetchError",
    "get_error_class",
    "error_handler",
    "ErrorLevel",
    "ErrorCategory",
]

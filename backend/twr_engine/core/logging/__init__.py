"""
Core logging functionality.

``get_logger`` returns a cached ``AsyncLogger`` whose records are written
by a background thread to console and optional rotating files.
"""

from .logger import (
    AsyncLogger,
    AsyncLogHandler,
    cleanup_logging,
    get_logger,
)
from .formatters import (
    BaseLogFormatter,
    CompactFormatter,
    JSONFormatter,
    TextFormatter,
    create_formatter,
)

__all__ = [
    "AsyncLogger",
    "AsyncLogHandler",
    "cleanup_logging",
    "get_logger",
    "BaseLogFormatter",
    "CompactFormatter",
    "JSONFormatter",
    "TextFormatter",
    "create_formatter",
]

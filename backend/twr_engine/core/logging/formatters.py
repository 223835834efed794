"""
Log formatters for structured engine logging.

Structured fields passed as keyword arguments to the logger (account ids,
date ranges, page counts) end up as attributes on the record; each
formatter renders them alongside the message.
"""

import logging
import json
import os
import socket
import traceback
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Set

# Standard LogRecord attributes; everything else on a record is a structured field.
STANDARD_LOG_ATTRS: Set[str] = {
    "name", "msg", "args", "levelname", "levelno", "pathname", "filename",
    "module", "exc_info", "exc_text", "stack_info", "lineno", "funcName",
    "created", "msecs", "relativeCreated", "thread", "threadName", "processName",
    "process", "message", "taskName", "asctime",
}

# Fields with dedicated rendering
_SPECIAL_FIELDS: Set[str] = {"error_context", "performance"}


def _to_jsonable(obj: Any) -> Any:
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    if isinstance(obj, Decimal):
        return str(obj)
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (set, frozenset, tuple)):
        return list(obj)
    if isinstance(obj, Exception):
        return str(obj)
    if hasattr(obj, "to_dict") and callable(obj.to_dict):
        return obj.to_dict()
    if hasattr(obj, "model_dump") and callable(obj.model_dump):
        return obj.model_dump(mode="json")
    return str(obj)


class BaseLogFormatter(logging.Formatter):
    """Shared extraction of error context, exceptions and structured fields."""

    max_traceback_lines = 20

    def truncate_traceback(self, tb: Optional[str]) -> str:
        if not tb:
            return ""
        lines = tb.splitlines()
        if len(lines) <= self.max_traceback_lines:
            return tb
        keep = self.max_traceback_lines - 1
        head = keep // 2
        tail = keep - head
        return "\n".join(
            lines[:head]
            + [f"... [{len(lines) - keep} lines truncated] ..."]
            + lines[-tail:]
        )

    def get_error_context(self, record: logging.LogRecord) -> Optional[Dict[str, Any]]:
        error = getattr(record, "error_context", None)
        if not error:
            return None
        return {
            "type": error.get("error_type"),
            "message": error.get("message"),
            "level": error.get("level"),
            "category": error.get("category"),
            "context": error.get("context"),
            "traceback": self.truncate_traceback(error.get("traceback")),
        }

    def get_exception_info(self, record: logging.LogRecord) -> Optional[Dict[str, Any]]:
        if not record.exc_info or record.exc_info[0] is None:
            return None
        exc_type, exc_value, exc_tb = record.exc_info
        return {
            "type": exc_type.__name__,
            "message": str(exc_value),
            "traceback": self.truncate_traceback(
                "".join(traceback.format_exception(exc_type, exc_value, exc_tb))
            ),
        }

    def get_extra_fields(self, record: logging.LogRecord) -> Dict[str, Any]:
        return {
            key: value
            for key, value in record.__dict__.items()
            if key not in STANDARD_LOG_ATTRS and key not in _SPECIAL_FIELDS
        }


class JSONFormatter(BaseLogFormatter):
    """One JSON object per record, with host and process metadata."""

    def __init__(self, fmt: Optional[str] = None, *args: Any, **kwargs: Any) -> None:
        super().__init__(fmt, *args, **kwargs)
        try:
            self.hostname = socket.gethostname()
        except OSError:
            self.hostname = "unknown"
        self.pid = os.getpid()

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
            "process": self.pid,
            "host": self.hostname,
        }
        if error_ctx := self.get_error_context(record):
            log_data["error"] = error_ctx
        if exc := self.get_exception_info(record):
            log_data["exception"] = exc
        if perf := getattr(record, "performance", None):
            log_data["performance"] = perf
        extras = self.get_extra_fields(record)
        if extras:
            log_data["fields"] = extras

        try:
            return json.dumps(log_data, default=_to_jsonable)
        except (TypeError, ValueError) as e:
            return json.dumps({
                "timestamp": log_data["timestamp"],
                "level": "ERROR",
                "logger": "JSONFormatter",
                "message": f"Failed to serialize log: {e}",
                "original_message": record.getMessage(),
            })


class TextFormatter(BaseLogFormatter):
    """Human-readable single header line followed by detail lines."""

    COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m",
        "RESET": "\033[0m",
    }

    def __init__(self, fmt: Optional[str] = None, use_colors: bool = True, *args: Any, **kwargs: Any) -> None:
        super().__init__(fmt, *args, **kwargs)
        self.use_colors = use_colors and os.name != "nt"

    def _detail_lines(self, record: logging.LogRecord) -> List[str]:
        lines: List[str] = []
        if error := self.get_error_context(record):
            lines.append(f"  error: {error['type']} ({error.get('level') or 'unknown'})")
            if ctx := error.get("context"):
                lines.append("  context: " + ", ".join(f"{k}={v}" for k, v in ctx.items()))
            if tb := error.get("traceback"):
                lines.append(tb)
        if exc := self.get_exception_info(record):
            lines.append(f"  exception: {exc['type']}: {exc['message']}")
            lines.append(exc["traceback"])
        if perf := getattr(record, "performance", None):
            lines.append(f"  duration: {perf.get('duration')}ms")
        return lines

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, "") if self.use_colors else ""
        reset = self.COLORS["RESET"] if self.use_colors else ""
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]

        header = f"{timestamp} {color}{record.levelname}{reset} [{record.name}] {record.getMessage()}"
        extras = self.get_extra_fields(record)
        if extras:
            header += " | " + " ".join(f"{k}={v}" for k, v in extras.items())

        return "\n".join([header, *self._detail_lines(record)])


class CompactFormatter(BaseLogFormatter):
    """Terse one-line output for high-volume runs."""

    LEVEL_CHARS = {
        "DEBUG": "D",
        "INFO": "I",
        "WARNING": "W",
        "ERROR": "E",
        "CRITICAL": "C",
    }

    def format(self, record: logging.LogRecord) -> str:
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]
        level = self.LEVEL_CHARS.get(record.levelname, "?")
        module = record.module if len(record.module) <= 12 else record.module[:10] + ".."

        error_type = ""
        if record.levelno >= logging.ERROR:
            error_ctx = getattr(record, "error_context", None)
            if error_ctx and "error_type" in error_ctx:
                error_type = f"[{error_ctx['error_type']}] "
            elif record.exc_info and record.exc_info[0] is not None:
                error_type = f"[{record.exc_info[0].__name__}] "

        return f"{ts} {level} {module:12s} {error_type}{record.getMessage()}"


def create_formatter(
    fmt_type: str = "json", use_colors: bool = True, fmt_string: Optional[str] = None
) -> logging.Formatter:
    """
    Create a formatter instance by name.

    Args:
        fmt_type: "json", "text" or "compact".
        use_colors: Whether the text formatter colors level names.
        fmt_string: Optional format string passed to the base formatter.

    Raises:
        ValueError: If an unsupported formatter type is provided.
    """
    fmt_type = fmt_type.lower()
    if fmt_type == "json":
        return JSONFormatter(fmt=fmt_string)
    if fmt_type == "text":
        return TextFormatter(fmt=fmt_string, use_colors=use_colors)
    if fmt_type == "compact":
        return CompactFormatter(fmt=fmt_string)
    raise ValueError(f"Invalid formatter type: {fmt_type}. Must be one of: json, text, compact")

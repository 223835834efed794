import sys
import logging
import logging.handlers
import threading
import queue
import atexit
from functools import lru_cache
from pathlib import Path
from typing import Optional, Dict, Any, List

from twr_engine.core.config import settings
from .formatters import create_formatter

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


class AsyncLogHandler(logging.Handler):
    """
    Handler that hands records to a worker thread so that formatting and
    file I/O never run on the event loop.
    """
    def __init__(self, capacity: int = 10000):
        super().__init__()
        self.queue: "queue.Queue[logging.LogRecord]" = queue.Queue(capacity)
        self.handlers: List[logging.Handler] = []
        self._stop_event = threading.Event()
        self._worker = threading.Thread(target=self._process_logs, daemon=True)
        self._worker.start()
        atexit.register(self.close)

    def emit(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            # Queue saturated: write synchronously rather than drop
            self._process_record(record)

    def _process_logs(self) -> None:
        """Drain the queue until stopped and empty."""
        while not self._stop_event.is_set() or not self.queue.empty():
            try:
                record = self.queue.get(block=True, timeout=0.2)
            except queue.Empty:
                continue
            try:
                self._process_record(record)
            except Exception:
                self.handleError(record)
            finally:
                self.queue.task_done()

    def _process_record(self, record: logging.LogRecord) -> None:
        for handler in self.handlers:
            if record.levelno >= handler.level:
                handler.handle(record)

    def flush(self) -> None:
        """Block until every queued record has been written."""
        if self._worker.is_alive():
            self.queue.join()
        for handler in self.handlers:
            handler.flush()

    def close(self) -> None:
        """Stop the worker after it drains the queue, then close outputs."""
        self._stop_event.set()
        if self._worker.is_alive():
            self._worker.join(timeout=5.0)
        for handler in self.handlers:
            handler.close()
        super().close()

    def add_handler(self, handler: logging.Handler) -> None:
        self.handlers.append(handler)


class AsyncLogger:
    """
    Event-loop friendly logger.

    Keyword arguments passed to the level methods become structured fields
    on the record (rendered by the configured formatter).
    """

    _loggers: Dict[str, "AsyncLogger"] = {}
    _async_handler: Optional[AsyncLogHandler] = None
    _init_lock = threading.Lock()

    def __init__(self, name: str) -> None:
        self.name = name
        self.logger = logging.getLogger(name)

        with self._init_lock:
            if not AsyncLogger._async_handler:
                AsyncLogger._configure_async_handler()

            if AsyncLogger._async_handler not in self.logger.handlers:
                self.logger.addHandler(AsyncLogger._async_handler)
                self.logger.setLevel(self._get_log_level())
                self.logger.propagate = False

    @classmethod
    def _configure_async_handler(cls) -> None:
        """Build the shared async handler and its output handlers."""
        cls._async_handler = AsyncLogHandler(capacity=50000)
        log_settings = settings.logging
        level = cls._get_log_level()
        formatter = create_formatter(
            fmt_type=log_settings.LOG_FORMAT, use_colors=log_settings.USE_COLORS
        )

        handlers: List[logging.Handler] = []

        if log_settings.LOG_FILE_PATH:
            Path(log_settings.LOG_FILE_PATH).parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_settings.LOG_FILE_PATH,
                maxBytes=log_settings.MAX_LOG_SIZE,
                backupCount=log_settings.MAX_LOG_BACKUPS,
                encoding="utf-8",
            )
            file_handler.setFormatter(formatter)
            file_handler.setLevel(level)
            handlers.append(file_handler)

        if log_settings.ERROR_LOG_FILE_PATH:
            Path(log_settings.ERROR_LOG_FILE_PATH).parent.mkdir(parents=True, exist_ok=True)
            error_file_handler = logging.handlers.RotatingFileHandler(
                log_settings.ERROR_LOG_FILE_PATH,
                maxBytes=log_settings.MAX_LOG_SIZE,
                backupCount=log_settings.MAX_LOG_BACKUPS,
                encoding="utf-8",
            )
            error_file_handler.setFormatter(formatter)
            error_file_handler.setLevel(logging.ERROR)
            handlers.append(error_file_handler)

        if log_settings.CONSOLE_LOGGING:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setFormatter(formatter)
            console_handler.setLevel(level)
            handlers.append(console_handler)

        for handler in handlers:
            cls._async_handler.add_handler(handler)

    @staticmethod
    def _get_log_level() -> int:
        return _LEVELS.get(settings.logging.LOG_LEVEL.value, logging.INFO)

    async def log_performance(
        self,
        operation: str,
        duration: float,
        context: Optional[Dict[str, Any]] = None
    ) -> None:
        """
        Log the duration of an operation.

        Args:
            operation: The operation being measured
            duration: Duration in milliseconds
            context: Additional context
        """
        performance_data = {"operation": operation, "duration": duration, **(context or {})}
        self.logger.info(f"Performance: {operation}", extra={"performance": performance_data})

    def debug(self, message: str, **kwargs: Any) -> None:
        self.logger.debug(message, extra=kwargs)

    def info(self, message: str, **kwargs: Any) -> None:
        self.logger.info(message, extra=kwargs)

    def warning(self, message: str, **kwargs: Any) -> None:
        self.logger.warning(message, extra=kwargs)

    def error(self, message: str, **kwargs: Any) -> None:
        self.logger.error(message, extra=kwargs)

    def critical(self, message: str, **kwargs: Any) -> None:
        self.logger.critical(message, extra=kwargs)


@lru_cache(maxsize=100)
def get_logger(name: str) -> AsyncLogger:
    """
    Return a cached AsyncLogger instance for the given name.

    Args:
        name: The logger name, typically the module name

    Returns:
        An AsyncLogger instance
    """
    if name not in AsyncLogger._loggers:
        AsyncLogger._loggers[name] = AsyncLogger(name)
    return AsyncLogger._loggers[name]


def cleanup_logging() -> None:
    """
    Flush and close the shared handler and forget cached loggers.

    The next ``get_logger`` call rebuilds handlers from current settings.
    """
    get_logger.cache_clear()

    if AsyncLogger._async_handler:
        handler = AsyncLogger._async_handler
        for logger in AsyncLogger._loggers.values():
            logger.logger.removeHandler(handler)
        handler.close()

    AsyncLogger._loggers.clear()
    AsyncLogger._async_handler = None

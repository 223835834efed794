"""
Error handling decorator shared by services and broker clients.

The decorator enriches errors with call context, logs them once and
re-raises. Errors that are not already a ``BaseError`` are wrapped in
``error_class`` with the original exception attached as ``parent``.
"""

import asyncio
import inspect
import functools
from typing import Any, Callable, Dict, Optional, Type, TypeVar

from .base import BaseError, ServiceError

F = TypeVar("F", bound=Callable[..., Any])


def _extract_context(
    context_extractor: Optional[Callable[..., Dict[str, Any]]],
    args: tuple,
    kwargs: Dict[str, Any],
) -> Dict[str, Any]:
    if context_extractor is None:
        return {}
    try:
        return context_extractor(*args, **kwargs) or {}
    except (TypeError, KeyError, AttributeError, IndexError) as e:
        # Extractor mismatches are recorded, not raised
        return {"context_extraction_error": str(e)}


def _handle(
    error: Exception,
    func: Callable[..., Any],
    context: Dict[str, Any],
    log_message: Optional[str],
    error_class: Type[BaseError],
) -> BaseError:
    from twr_engine.core.logging.logger import get_logger

    logger = get_logger(func.__module__)
    message = log_message or f"{func.__qualname__} failed"

    if isinstance(error, BaseError):
        if not getattr(error, "_logged", False):
            error.add_context(**context)
            logger.error(message, error_context=error.to_dict())
            error._logged = True
        return error

    wrapped = error_class(
        f"{message}: {error}",
        context={**context, "function": func.__qualname__},
        parent=error,
    )
    logger.error(message, error_context=wrapped.to_dict())
    wrapped._logged = True
    return wrapped


def error_handler(
    context_extractor: Optional[Callable[..., Dict[str, Any]]] = None,
    log_message: Optional[str] = None,
    error_class: Type[BaseError] = ServiceError,
) -> Callable[[F], F]:
    """
    Decorate a sync or async callable with uniform error handling.

    Args:
        context_extractor: Called with the same arguments as the wrapped
            function; returns a dict merged into the error context.
        log_message: Message logged when the call fails.
        error_class: Class used to wrap non-``BaseError`` exceptions.
    """
    def decorator(func: F) -> F:
        if inspect.iscoroutinefunction(func):
            @functools.wraps(func)
            async def async_wrapper(*args: Any, **kwargs: Any) -> Any:
                try:
                    return await func(*args, **kwargs)
                except asyncio.CancelledError:
                    raise
                except Exception as e:
                    context = _extract_context(context_extractor, args, kwargs)
                    handled = _handle(e, func, context, log_message, error_class)
                    if handled is e:
                        raise
                    raise handled from e

            return async_wrapper  # type: ignore[return-value]

        @functools.wraps(func)
        def sync_wrapper(*args: Any, **kwargs: Any) -> Any:
            try:
                return func(*args, **kwargs)
            except Exception as e:
                context = _extract_context(context_extractor, args, kwargs)
                handled = _handle(e, func, context, log_message, error_class)
                if handled is e:
                    raise
                raise handled from e

        return sync_wrapper  # type: ignore[return-value]

    return decorator

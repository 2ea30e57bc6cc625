"""
Decorators - error handling decorators

Wrap best-effort side effects (persistence writes, notification publishing)
so a failure is logged instead of propagating into the caller.
"""

import functools
import logging
from typing import Any, Callable, TypeVar

from .exceptions import DependencyCoreError


logger = logging.getLogger(__name__)

T = TypeVar('T')


def handle_errors(
    default_return: Any = None,
    log_errors: bool = True,
    reraise: bool = False
):
    """
    Error handling decorator for synchronous functions

    Args:
        default_return: value returned when an error is caught
        log_errors: whether to log caught errors
        reraise: re-raise after logging

    Example:
        @handle_errors(default_return=False)
        def publish(event):
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args, **kwargs) -> T:
            try:
                return func(*args, **kwargs)
            except DependencyCoreError as e:
                if log_errors:
                    logger.error(f"[{func.__name__}] Error: {e.code} - {e.message}")
                if reraise:
                    raise
                return default_return
            except Exception as e:
                if log_errors:
                    logger.exception(f"[{func.__name__}] Unexpected error: {e}")
                if reraise:
                    raise
                return default_return
        return wrapper
    return decorator


def async_handle_errors(
    default_return: Any = None,
    log_errors: bool = True,
    reraise: bool = False
):
    """
    Error handling decorator for coroutine functions

    Args:
        default_return: value returned when an error is caught
        log_errors: whether to log caught errors
        reraise: re-raise after logging

    Example:
        @async_handle_errors(default_return=False)
        async def save_snapshot(snapshot):
            ...
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs) -> T:
            try:
                return await func(*args, **kwargs)
            except DependencyCoreError as e:
                if log_errors:
                    logger.error(f"[{func.__name__}] Error: {e.code} - {e.message}")
                if reraise:
                    raise
                return default_return
            except Exception as e:
                if log_errors:
                    logger.exception(f"[{func.__name__}] Unexpected error: {e}")
                if reraise:
                    raise
                return default_return
        return wrapper
    return decorator

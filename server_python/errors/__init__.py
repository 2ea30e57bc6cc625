"""
Errors - error handling module

Error taxonomy of the dependency core and best-effort error decorators.
"""

from .exceptions import (
    DependencyCoreError,
    DuplicateTaskError,
    CircularDependencyError,
    NotFoundError,
    InvalidTransitionError,
    NotReadyError,
    AlreadyTerminalError,
    DependencyFailedError,
    TaskFailedError,
    PersistenceError,
)

from .decorators import handle_errors, async_handle_errors

__all__ = [
    # Exceptions
    "DependencyCoreError",
    "DuplicateTaskError",
    "CircularDependencyError",
    "NotFoundError",
    "InvalidTransitionError",
    "NotReadyError",
    "AlreadyTerminalError",
    "DependencyFailedError",
    "TaskFailedError",
    "PersistenceError",

    # Decorators
    "handle_errors",
    "async_handle_errors",
]

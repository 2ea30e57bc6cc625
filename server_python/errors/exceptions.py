"""
Exceptions - dependency core error taxonomy

Validation errors are raised synchronously from the mutating call.
DependencyFailedError and TaskFailedError are only ever delivered through
a task's own completion future.
"""

from typing import Any, Dict, Iterable, Optional


class DependencyCoreError(Exception):
    """Base error for the task dependency core"""

    def __init__(
        self,
        message: str,
        code: str = "UNKNOWN_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        """
        Args:
            message: human readable message
            code: stable error code
            details: extra structured context
        """
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def to_dict(self) -> dict:
        """Convert the error to a dictionary"""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details
        }


class DuplicateTaskError(DependencyCoreError):
    """Raised when a task id is already registered"""

    def __init__(self, task_id: str):
        super().__init__(
            message=f"Task '{task_id}' is already registered",
            code="DUPLICATE_TASK",
            details={"task_id": task_id}
        )
        self.task_id = task_id


class CircularDependencyError(DependencyCoreError):
    """Raised when a dependency set would close a cycle"""

    def __init__(self, task_id: str, dependencies: Iterable[str]):
        deps = sorted(dependencies)
        super().__init__(
            message=f"Circular dependency detected for task '{task_id}'",
            code="CIRCULAR_DEPENDENCY",
            details={"task_id": task_id, "dependencies": deps}
        )
        self.task_id = task_id
        self.dependencies = deps


class NotFoundError(DependencyCoreError):
    """Raised when a task id is unknown"""

    def __init__(self, task_id: str):
        super().__init__(
            message=f"Task '{task_id}' not found",
            code="TASK_NOT_FOUND",
            details={"task_id": task_id}
        )
        self.task_id = task_id


class InvalidTransitionError(DependencyCoreError):
    """Raised when the state machine does not allow the requested transition"""

    def __init__(
        self,
        task_id: str,
        current_status: str,
        target_status: str,
        message: Optional[str] = None,
        code: str = "INVALID_TRANSITION"
    ):
        super().__init__(
            message=message or (
                f"Task '{task_id}' cannot move from {current_status} to {target_status}"
            ),
            code=code,
            details={
                "task_id": task_id,
                "current_status": current_status,
                "target_status": target_status
            }
        )
        self.task_id = task_id
        self.current_status = current_status
        self.target_status = target_status


class NotReadyError(InvalidTransitionError):
    """Raised when Start is called before every dependency has completed"""

    def __init__(self, task_id: str, current_status: str, reason: Optional[str] = None):
        super().__init__(
            task_id,
            current_status,
            "running",
            message=f"Task '{task_id}' is not ready to start: {reason or current_status}",
            code="TASK_NOT_READY"
        )
        self.reason = reason


class AlreadyTerminalError(InvalidTransitionError):
    """Raised on a mutating call against a completed, failed or cancelled task"""

    def __init__(self, task_id: str, current_status: str, target_status: str):
        super().__init__(
            task_id,
            current_status,
            target_status,
            message=f"Task '{task_id}' is already {current_status}",
            code="TASK_ALREADY_TERMINAL"
        )


class DependencyFailedError(DependencyCoreError):
    """Rejection reason of a future cancelled because an ancestor failed"""

    def __init__(self, task_id: str, failed_dependency_id: str):
        super().__init__(
            message=f"Task '{task_id}' cancelled: dependency '{failed_dependency_id}' failed",
            code="DEPENDENCY_FAILED",
            details={"task_id": task_id, "failed_dependency_id": failed_dependency_id}
        )
        self.task_id = task_id
        self.failed_dependency_id = failed_dependency_id


class TaskFailedError(DependencyCoreError):
    """Rejection reason of a future whose own task failed"""

    def __init__(self, task_id: str, error: Any = None):
        super().__init__(
            message=f"Task '{task_id}' failed: {error}",
            code="TASK_FAILED",
            details={"task_id": task_id, "error": str(error) if error is not None else None}
        )
        self.task_id = task_id
        self.error = error


class PersistenceError(DependencyCoreError):
    """Raised by persistence adapters when a snapshot cannot be stored or read"""

    def __init__(self, message: str, backend: Optional[str] = None, task_id: Optional[str] = None):
        super().__init__(
            message=message,
            code="PERSISTENCE_ERROR",
            details={"backend": backend, "task_id": task_id}
        )

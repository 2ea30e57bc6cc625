"""
Task registry and lifecycle state machine.

Owns per-task state and the dependency graph. The registry is purely
in-memory and synchronous; sequencing, persistence and notification are
the coordinator's job.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Set

from errors import (
    AlreadyTerminalError,
    CircularDependencyError,
    DependencyFailedError,
    DuplicateTaskError,
    InvalidTransitionError,
    NotFoundError,
    NotReadyError,
    TaskFailedError,
)
from models import TERMINAL_STATUSES, TaskSnapshot, TaskStatus, utc_now

from .dag import DependencyGraph
from .future import CompletionFuture

logger = logging.getLogger(__name__)


# Non-forced transitions; ForceComplete may reach COMPLETED from any
# non-terminal state.
_TRANSITIONS: Dict[TaskStatus, Set[TaskStatus]] = {
    TaskStatus.BLOCKED: {TaskStatus.PENDING, TaskStatus.CANCELLED},
    TaskStatus.PENDING: {TaskStatus.RUNNING, TaskStatus.CANCELLED},
    TaskStatus.RUNNING: {TaskStatus.COMPLETED, TaskStatus.FAILED},
}


@dataclass
class Task:
    """
    A unit of work tracked by the registry.

    ``metadata`` is opaque and never interpreted here.
    """
    id: str
    status: TaskStatus
    future: CompletionFuture
    dependencies: Set[str] = field(default_factory=set)
    dependents: Set[str] = field(default_factory=set)
    worker_hint: Optional[str] = None
    assigned_worker: Optional[str] = None
    result: Any = None
    error: Any = None
    cancelled_by: Optional[str] = None
    metadata: Any = None
    created_at: datetime = field(default_factory=utc_now)
    updated_at: datetime = field(default_factory=utc_now)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_snapshot(self) -> TaskSnapshot:
        """Serializable projection (no future)."""
        return TaskSnapshot(
            id=self.id,
            status=self.status,
            dependencies=sorted(self.dependencies),
            dependents=sorted(self.dependents),
            worker_hint=self.worker_hint,
            assigned_worker=self.assigned_worker,
            result=self.result,
            error=self.error,
            cancelled_by=self.cancelled_by,
            metadata=self.metadata,
            created_at=self.created_at,
            updated_at=self.updated_at,
            started_at=self.started_at,
            finished_at=self.finished_at,
        )

    def apply(self, snapshot: TaskSnapshot) -> TaskStatus:
        """Copy the mutable fields of ``snapshot`` onto the task. Returns the previous status."""
        previous = self.status
        self.status = snapshot.status
        self.assigned_worker = snapshot.assigned_worker
        self.result = snapshot.result
        self.error = snapshot.error
        self.cancelled_by = snapshot.cancelled_by
        self.updated_at = snapshot.updated_at
        self.started_at = snapshot.started_at
        self.finished_at = snapshot.finished_at
        return previous


class TaskRegistry:
    """
    In-memory task table plus the dependency graph built from it.

    Invariants:
    - ids are unique
    - ``b in tasks[a].dependents`` iff ``a in tasks[b].dependencies``
    - no registered dependency set closes a cycle
    """

    def __init__(self):
        self._tasks: Dict[str, Task] = {}
        self._graph = DependencyGraph()

    @property
    def graph(self) -> DependencyGraph:
        return self._graph

    def __contains__(self, task_id: str) -> bool:
        return task_id in self._tasks

    def __len__(self) -> int:
        return len(self._tasks)

    def get(self, task_id: str) -> Optional[Task]:
        return self._tasks.get(task_id)

    def require(self, task_id: str) -> Task:
        task = self._tasks.get(task_id)
        if task is None:
            raise NotFoundError(task_id)
        return task

    def tasks(self) -> List[Task]:
        return list(self._tasks.values())

    # =========================================================================
    # Readiness
    # =========================================================================

    def can_start(self, task_id: str) -> bool:
        """True iff every dependency exists and is completed."""
        task = self._tasks.get(task_id)
        if task is None:
            return False
        return self._dependencies_completed(task.dependencies)

    def _dependencies_completed(self, dependencies: Iterable[str]) -> bool:
        for dep_id in dependencies:
            dep = self._tasks.get(dep_id)
            if dep is None or dep.status != TaskStatus.COMPLETED:
                return False
        return True

    def failed_dependency(self, task: Task) -> Optional[str]:
        """
        Id of the failed ancestor behind a failed or cancelled dependency.

        Returns None when no registered dependency has failed.
        """
        for dep_id in sorted(task.dependencies):
            dep = self._tasks.get(dep_id)
            if dep is None:
                continue
            if dep.status == TaskStatus.FAILED:
                return dep_id
            if dep.status == TaskStatus.CANCELLED:
                return dep.cancelled_by or dep_id
        return None

    # =========================================================================
    # Structure
    # =========================================================================

    def add(
        self,
        task_id: str,
        dependencies: Iterable[str] = (),
        worker_hint: Optional[str] = None,
        metadata: Any = None,
    ) -> Task:
        """
        Validate and insert a new task, wiring both edge directions.

        Raises:
            DuplicateTaskError: ``task_id`` already registered
            CircularDependencyError: the dependencies would close a cycle
        """
        deps = set(dependencies)
        if task_id in self._tasks:
            raise DuplicateTaskError(task_id)
        if self._graph.would_create_cycle(task_id, deps):
            raise CircularDependencyError(task_id, deps)

        status = TaskStatus.PENDING if self._dependencies_completed(deps) else TaskStatus.BLOCKED
        now = utc_now()
        task = Task(
            id=task_id,
            status=status,
            future=CompletionFuture(task_id),
            dependencies=deps,
            worker_hint=worker_hint,
            metadata=metadata,
            created_at=now,
            updated_at=now,
        )

        self._graph.add_task(task_id, deps)
        # tasks registered earlier may already name this id
        task.dependents = self._graph.dependents_of(task_id)
        for dep_id in deps:
            dep = self._tasks.get(dep_id)
            if dep is not None:
                dep.dependents.add(task_id)

        self._tasks[task_id] = task
        return task

    def remove(self, task_id: str) -> Task:
        """Remove a task and its own dependency edges."""
        task = self.require(task_id)
        for dep_id in task.dependencies:
            dep = self._tasks.get(dep_id)
            if dep is not None:
                dep.dependents.discard(task_id)
        self._graph.remove_task(task_id)
        del self._tasks[task_id]
        return task

    # =========================================================================
    # State machine
    # =========================================================================

    def validate_transition(
        self,
        task: Task,
        target: TaskStatus,
        forced: bool = False,
    ) -> None:
        """
        Raise if ``task`` may not move to ``target``.

        Raises:
            AlreadyTerminalError: task is completed, failed or cancelled
            NotReadyError: start requested before the task is ready
            InvalidTransitionError: any other disallowed move
        """
        current = task.status
        if current in TERMINAL_STATUSES:
            raise AlreadyTerminalError(task.id, current.value, target.value)

        if forced and target == TaskStatus.COMPLETED:
            return

        if target == TaskStatus.RUNNING:
            if current != TaskStatus.PENDING:
                raise NotReadyError(task.id, current.value)
            if not self.can_start(task.id):
                raise NotReadyError(task.id, current.value, "dependencies not completed")
            return

        if target not in _TRANSITIONS.get(current, set()):
            raise InvalidTransitionError(task.id, current.value, target.value)

    def plan(
        self,
        task: Task,
        target: TaskStatus,
        forced: bool = False,
        **changes: Any,
    ) -> TaskSnapshot:
        """
        Validate a transition and return the post-transition snapshot.

        The task itself is left untouched until ``commit``.
        """
        self.validate_transition(task, target, forced=forced)
        now = utc_now()
        update: Dict[str, Any] = {"status": target, "updated_at": now}
        if target == TaskStatus.RUNNING:
            update["started_at"] = now
        if target in TERMINAL_STATUSES:
            update["finished_at"] = now
        update.update(changes)
        return task.to_snapshot().model_copy(update=update)

    def commit(self, task: Task, snapshot: TaskSnapshot) -> TaskStatus:
        """Apply a planned snapshot and settle the future on terminal states."""
        previous = task.apply(snapshot)
        if snapshot.status == TaskStatus.COMPLETED:
            task.future.resolve(snapshot.result)
        elif snapshot.status == TaskStatus.FAILED:
            task.future.reject(TaskFailedError(task.id, snapshot.error))
        elif snapshot.status == TaskStatus.CANCELLED:
            task.future.reject(DependencyFailedError(task.id, snapshot.cancelled_by or ""))
        return previous

    def count_by_status(self) -> Dict[str, int]:
        counts = {status.value: 0 for status in TaskStatus}
        for task in self._tasks.values():
            counts[task.status.value] += 1
        return counts

    # =========================================================================
    # Recovery
    # =========================================================================

    def restore(self, snapshots: Iterable[TaskSnapshot]) -> List[Task]:
        """
        Rebuild tasks and graph from persisted snapshots.

        Stored ``dependents`` are ignored; the graph is derived from
        ``dependencies``. Running tasks are demoted to pending or blocked,
        since their worker cannot be assumed alive, and every future is
        freshly minted: awaiters of the pre-restart future are lost.

        Returns:
            Tasks whose state differs from the stored snapshot
        """
        if self._tasks:
            raise RuntimeError("Registry must be empty before restore")

        stored: Dict[str, TaskStatus] = {}
        for snapshot in snapshots:
            self._tasks[snapshot.id] = Task(
                id=snapshot.id,
                status=snapshot.status,
                future=CompletionFuture(snapshot.id),
                dependencies=set(snapshot.dependencies),
                worker_hint=snapshot.worker_hint,
                assigned_worker=snapshot.assigned_worker,
                result=snapshot.result,
                error=snapshot.error,
                cancelled_by=snapshot.cancelled_by,
                metadata=snapshot.metadata,
                created_at=snapshot.created_at,
                updated_at=snapshot.updated_at,
                started_at=snapshot.started_at,
                finished_at=snapshot.finished_at,
            )
            stored[snapshot.id] = snapshot.status

        self._graph.rebuild({t.id: t.dependencies for t in self._tasks.values()})
        for task in self._tasks.values():
            task.dependents = self._graph.dependents_of(task.id)

        now = utc_now()
        changed = True
        while changed:
            changed = False
            for task in self._tasks.values():
                if task.is_terminal:
                    continue
                failed_id = self.failed_dependency(task)
                if failed_id is not None:
                    task.status = TaskStatus.CANCELLED
                    task.cancelled_by = failed_id
                    task.updated_at = now
                    task.finished_at = now
                    changed = True

        for task in self._tasks.values():
            if task.is_terminal:
                continue
            if task.status == TaskStatus.RUNNING:
                logger.warning(
                    f"Task {task.id} was running on {task.assigned_worker} before restart, demoting"
                )
                task.assigned_worker = None
                task.started_at = None
            task.status = TaskStatus.PENDING if self.can_start(task.id) else TaskStatus.BLOCKED
            if task.status != stored[task.id]:
                task.updated_at = now

        for task in self._tasks.values():
            if task.status == TaskStatus.COMPLETED:
                task.future.resolve(task.result)
            elif task.status == TaskStatus.FAILED:
                task.future.reject(TaskFailedError(task.id, task.error))
            elif task.status == TaskStatus.CANCELLED:
                task.future.reject(DependencyFailedError(task.id, task.cancelled_by or ""))

        return [t for t in self._tasks.values() if t.status != stored[t.id]]

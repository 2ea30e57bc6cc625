"""
Task Coordinator - public facade of the dependency core

Sequences every mutation per task id, persists each transition before it
becomes visible, publishes it, and propagates completion (unblocking) and
failure (cascade cancellation) through the dependency graph.

Example:
    coordinator = TaskCoordinator(persistence=FilePersistence("./task_storage"))

    await coordinator.register("parse", [])
    report = await coordinator.register("report", ["parse"])   # blocked

    await coordinator.start("parse", worker_id="worker-1")
    await coordinator.complete("parse", {"rows": 120})         # report -> pending

    await coordinator.start("report", worker_id="worker-2")
    await coordinator.complete("report", "done")
    print(await report)                                        # "done"
"""

import asyncio
import logging
from collections import deque
from datetime import datetime
from typing import Any, Awaitable, Dict, Iterable, List, Optional, Set, TypeVar

from errors import NotFoundError, async_handle_errors, handle_errors
from models import (
    ChainEntry,
    SystemStatus,
    TaskEvent,
    TaskEventType,
    TaskSnapshot,
    TaskStatus,
    utc_now,
)

from .future import CompletionFuture
from .notifications import NotificationPublisher, NullPublisher
from .persistence import InMemoryPersistence, PersistenceAdapter
from .registry import Task, TaskRegistry

logger = logging.getLogger(__name__)

DEFAULT_CHAIN_MAX_DEPTH = 50

T = TypeVar("T")


def total_depth(chain: List[ChainEntry]) -> int:
    """Deepest level reached by a dependency chain (0 for a lone task)."""
    return max((entry.depth for entry in chain), default=0)


class TaskCoordinator:
    """
    Single authority over the task registry.

    For one task id, calls are applied in the order they arrive and a call
    only becomes visible once its persistence write and propagation have
    finished. Propagation always locks from a dependency towards its
    dependents, so in an acyclic graph the per-id locks cannot deadlock.

    Persistence and publish failures are logged and never undo a
    transition; in-memory state stays authoritative.
    """

    def __init__(
        self,
        persistence: Optional[PersistenceAdapter] = None,
        publisher: Optional[NotificationPublisher] = None,
        chain_max_depth: int = DEFAULT_CHAIN_MAX_DEPTH,
    ):
        self._registry = TaskRegistry()
        self._persistence = persistence if persistence is not None else InMemoryPersistence()
        self._publisher = publisher if publisher is not None else NullPublisher()
        self._chain_max_depth = chain_max_depth
        self._locks: Dict[str, asyncio.Lock] = {}
        self._detached: Set[asyncio.Future] = set()

    @property
    def registry(self) -> TaskRegistry:
        return self._registry

    @property
    def persistence(self) -> PersistenceAdapter:
        return self._persistence

    @property
    def publisher(self) -> NotificationPublisher:
        return self._publisher

    def _lock(self, task_id: str) -> asyncio.Lock:
        lock = self._locks.get(task_id)
        if lock is None:
            lock = self._locks[task_id] = asyncio.Lock()
        return lock

    # =========================================================================
    # Mutations
    # =========================================================================

    async def register(
        self,
        task_id: str,
        dependencies: Iterable[str] = (),
        worker_hint: Optional[str] = None,
        metadata: Any = None,
    ) -> CompletionFuture:
        """
        Register a task and return its completion future.

        The task starts blocked unless every dependency is already
        completed. Dependencies may name ids that are not registered yet.
        A task whose dependency has already failed is registered and then
        cancelled straight away.

        Raises:
            DuplicateTaskError: ``task_id`` already registered
            CircularDependencyError: the dependencies would close a cycle
        """
        task = self._registry.add(task_id, dependencies, worker_hint, metadata)
        await self._run_detached(self._register(task))
        return task.future

    async def _register(self, task: Task) -> None:
        async with self._lock(task.id):
            await self._persist(task.to_snapshot())
            logger.info(
                f"Registered task {task.id} ({task.status.value}) "
                f"with {len(task.dependencies)} dependencies"
            )
            self._publish(TaskEventType.STATUS_CHANGE, task, None)

            failed_id = self._registry.failed_dependency(task)
            if failed_id is not None:
                await self._transition(task, TaskStatus.CANCELLED, cancelled_by=failed_id)
                await self._cascade_cancel(failed_id, self._registry.graph.dependents_of(task.id))

    async def start(self, task_id: str, worker_id: Optional[str] = None) -> CompletionFuture:
        """
        Move a pending task to running and return its completion future.

        Raises:
            NotFoundError: unknown task
            NotReadyError: task is blocked or a dependency is not completed
            AlreadyTerminalError: task already finished
        """
        self._registry.require(task_id)
        async with self._lock(task_id):
            task = self._registry.require(task_id)
            await self._transition(task, TaskStatus.RUNNING, assigned_worker=worker_id)
            return task.future

    async def complete(self, task_id: str, result: Any = None) -> None:
        """
        Complete a running task, resolve its future and unblock dependents.

        Raises:
            NotFoundError: unknown task
            InvalidTransitionError: task is not running
            AlreadyTerminalError: task already finished
        """
        self._registry.require(task_id)
        await self._run_detached(self._complete(task_id, result))

    async def _complete(self, task_id: str, result: Any) -> None:
        async with self._lock(task_id):
            task = self._registry.require(task_id)
            await self._transition(task, TaskStatus.COMPLETED, result=result)
            await self._unblock(self._registry.graph.dependents_of(task_id))

    async def fail(self, task_id: str, error: Any = None) -> None:
        """
        Fail a running task, reject its future and cancel every pending or
        blocked task that transitively depends on it.

        Raises:
            NotFoundError: unknown task
            InvalidTransitionError: task is not running
            AlreadyTerminalError: task already finished
        """
        self._registry.require(task_id)
        await self._run_detached(self._fail(task_id, error))

    async def _fail(self, task_id: str, error: Any) -> None:
        async with self._lock(task_id):
            task = self._registry.require(task_id)
            await self._transition(task, TaskStatus.FAILED, error=error)
            cancelled = await self._cascade_cancel(
                task_id, self._registry.graph.dependents_of(task_id)
            )
            if cancelled:
                logger.warning(
                    f"Task {task_id} failed, cancelled {len(cancelled)} dependent task(s): "
                    f"{', '.join(cancelled)}"
                )

    async def force_complete(self, task_id: str, result: Any = None) -> None:
        """
        Administrative override: complete a task from any non-terminal state.

        Calling it again on a completed task is allowed; a given result
        replaces the stored one, the future keeps its first value.

        Raises:
            NotFoundError: unknown task
            AlreadyTerminalError: task failed or was cancelled
        """
        self._registry.require(task_id)
        await self._run_detached(self._force_complete(task_id, result))

    async def _force_complete(self, task_id: str, result: Any) -> None:
        async with self._lock(task_id):
            task = self._registry.require(task_id)
            logger.warning(
                f"FORCE COMPLETING task {task_id} ({task.status.value}) - manual override"
            )

            if task.status == TaskStatus.COMPLETED:
                changes: Dict[str, Any] = {"updated_at": utc_now()}
                if result is not None:
                    changes["result"] = result
                snapshot = task.to_snapshot().model_copy(update=changes)
                await self._persist(snapshot)
                task.apply(snapshot)
                self._publish(TaskEventType.FORCE_COMPLETE, task, TaskStatus.COMPLETED)
                return

            if result is None:
                result = {"forced_complete": True, "timestamp": utc_now().isoformat()}
            previous = await self._transition(
                task, TaskStatus.COMPLETED, forced=True, result=result
            )
            self._publish(TaskEventType.FORCE_COMPLETE, task, previous)
            await self._unblock(self._registry.graph.dependents_of(task_id))

    # =========================================================================
    # Queries
    # =========================================================================

    def can_start(self, task_id: str) -> bool:
        return self._registry.can_start(task_id)

    def get_task(self, task_id: str) -> TaskSnapshot:
        """Serializable view of one task. Raises NotFoundError."""
        return self._registry.require(task_id).to_snapshot()

    def get_dependency_chain(
        self,
        task_id: str,
        max_depth: Optional[int] = None,
    ) -> List[ChainEntry]:
        """
        Breadth-first walk from ``task_id`` through its dependencies.

        Entries come in increasing depth, the task itself first at depth 0.
        Dependencies that are not registered are left out.

        Raises:
            NotFoundError: unknown task
        """
        self._registry.require(task_id)
        depth_cap = self._chain_max_depth if max_depth is None else max_depth

        chain = []
        for current_id, depth in self._registry.graph.walk_dependencies(task_id, depth_cap):
            task = self._registry.get(current_id)
            if task is None:
                continue
            chain.append(ChainEntry(
                taskId=current_id,
                status=task.status,
                depth=depth,
                dependencies=sorted(task.dependencies),
                dependents=sorted(task.dependents),
            ))
        return chain

    def get_system_status(self) -> SystemStatus:
        tasks = self._registry.tasks()
        return SystemStatus(
            totalTasks=len(tasks),
            statusCounts=self._registry.count_by_status(),
            activeFutures=sum(1 for t in tasks if not t.future.done()),
            runningTasks=sum(1 for t in tasks if t.status == TaskStatus.RUNNING),
            dependencyGraphSize=len(self._registry.graph),
        )

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def recover(self) -> int:
        """
        Rebuild the registry from persisted snapshots.

        Must run before any task is registered. Tasks that were running
        come back pending or blocked with a fresh future; anyone awaiting
        the pre-restart future is not carried over. Changed tasks are
        written back.

        Returns:
            Number of tasks loaded
        """
        snapshots = await self._persistence.load_all()
        changed = self._registry.restore(snapshots)
        for task in changed:
            await self._persist(task.to_snapshot())

        logger.info(
            f"Recovered {len(snapshots)} task(s) from {self._persistence.backend_name} "
            f"persistence, {len(changed)} changed on reload"
        )
        return len(snapshots)

    async def evict_expired(self, cutoff: datetime) -> List[str]:
        """
        Drop terminal tasks that finished before ``cutoff``.

        A task is kept while any of its dependents is still non-terminal.

        Returns:
            Evicted task ids
        """
        evicted = []
        for task in self._registry.tasks():
            if not self._is_evictable(task, cutoff):
                continue
            async with self._lock(task.id):
                current = self._registry.get(task.id)
                if current is None or not self._is_evictable(current, cutoff):
                    continue
                self._registry.remove(task.id)
                await self._delete_snapshot(task.id)
                evicted.append(task.id)
            self._locks.pop(task.id, None)

        if evicted:
            logger.info(f"Evicted {len(evicted)} expired task(s)")
        return evicted

    async def close(self) -> None:
        if self._detached:
            await asyncio.gather(*self._detached, return_exceptions=True)
        await self._publisher.close()
        await self._persistence.close()

    # =========================================================================
    # Internals
    # =========================================================================

    async def _run_detached(self, operation: Awaitable[T]) -> T:
        """
        Await ``operation`` in its own task.

        Cancelling the caller leaves the operation running: a committed
        transition always finishes propagating to its dependents.
        """
        runner = asyncio.ensure_future(operation)
        try:
            return await asyncio.shield(runner)
        except asyncio.CancelledError:
            self._detached.add(runner)
            runner.add_done_callback(self._finish_detached)
            raise

    def _finish_detached(self, runner: asyncio.Future) -> None:
        self._detached.discard(runner)
        if runner.cancelled():
            return
        error = runner.exception()
        if error is not None:
            logger.error(f"Operation failed after its caller was cancelled: {error!r}")

    def _is_evictable(self, task: Task, cutoff: datetime) -> bool:
        if not task.is_terminal:
            return False
        finished_at = task.finished_at or task.updated_at
        if finished_at >= cutoff:
            return False
        for dependent_id in task.dependents:
            dependent = self._registry.get(dependent_id)
            if dependent is not None and not dependent.is_terminal:
                return False
        return True

    async def _transition(
        self,
        task: Task,
        target: TaskStatus,
        forced: bool = False,
        **changes: Any,
    ) -> TaskStatus:
        """Plan, persist, commit and publish one transition. Caller holds the lock."""
        snapshot = self._registry.plan(task, target, forced=forced, **changes)
        await self._persist(snapshot)
        previous = self._registry.commit(task, snapshot)
        logger.info(f"Task {task.id}: {previous.value} -> {target.value}")
        self._publish(TaskEventType.STATUS_CHANGE, task, previous)
        return previous

    async def _unblock(self, dependent_ids: Iterable[str]) -> None:
        await asyncio.gather(*(self._unblock_one(d) for d in sorted(dependent_ids)))

    async def _unblock_one(self, task_id: str) -> None:
        if task_id not in self._registry:
            return
        async with self._lock(task_id):
            task = self._registry.get(task_id)
            if task is None or task.status != TaskStatus.BLOCKED:
                return
            if self._registry.can_start(task_id):
                await self._transition(task, TaskStatus.PENDING)

    async def _cascade_cancel(self, failed_id: str, start_ids: Iterable[str]) -> List[str]:
        """
        Cancel pending and blocked tasks reachable from ``start_ids``.

        The walk continues through terminal and running tasks. Dependents
        are read after each task commits, so a task registered mid-walk is
        either reached here or sees its cancelled dependency on its own.
        """
        cancelled = []
        seen = {failed_id}
        queue = deque(sorted(start_ids))

        while queue:
            current_id = queue.popleft()
            if current_id in seen:
                continue
            seen.add(current_id)
            if current_id not in self._registry:
                continue

            async with self._lock(current_id):
                task = self._registry.get(current_id)
                if task is None:
                    continue
                if task.status in (TaskStatus.PENDING, TaskStatus.BLOCKED):
                    await self._transition(task, TaskStatus.CANCELLED, cancelled_by=failed_id)
                    cancelled.append(current_id)
                queue.extend(sorted(self._registry.graph.dependents_of(current_id)))

        return cancelled

    @async_handle_errors(default_return=False)
    async def _persist(self, snapshot: TaskSnapshot) -> bool:
        await self._persistence.save(snapshot.id, snapshot)
        return True

    @async_handle_errors(default_return=False)
    async def _delete_snapshot(self, task_id: str) -> bool:
        return await self._persistence.delete(task_id)

    @handle_errors()
    def _publish(
        self,
        event_type: TaskEventType,
        task: Task,
        previous: Optional[TaskStatus],
    ) -> None:
        snapshot = task.to_snapshot()
        self._publisher.publish(TaskEvent(
            type=event_type,
            taskId=task.id,
            oldStatus=previous,
            newStatus=task.status,
            timestamp=snapshot.updated_at,
            snapshot=snapshot.model_dump(mode="json"),
            hasResult=task.result is not None,
            hasError=task.error is not None,
        ))

"""
Task dependency core.
Registry, dependency graph and the coordinator that sequences them.
"""

from .dag import DependencyGraph
from .future import CompletionFuture
from .registry import Task, TaskRegistry
from .persistence import (
    PersistenceAdapter,
    InMemoryPersistence,
    FilePersistence,
    RedisPersistence,
    SqlPersistence,
    create_persistence,
)
from .notifications import (
    NotificationPublisher,
    NullPublisher,
    CallbackPublisher,
    BroadcastPublisher,
    Subscription,
    EventStorePublisher,
    CompositePublisher,
)
from .coordinator import TaskCoordinator, total_depth
from .cleanup import CleanupScheduler

__all__ = [
    # Graph
    "DependencyGraph",
    "CompletionFuture",
    "Task",
    "TaskRegistry",
    # Persistence
    "PersistenceAdapter",
    "InMemoryPersistence",
    "FilePersistence",
    "RedisPersistence",
    "SqlPersistence",
    "create_persistence",
    # Notifications
    "NotificationPublisher",
    "NullPublisher",
    "CallbackPublisher",
    "BroadcastPublisher",
    "Subscription",
    "EventStorePublisher",
    "CompositePublisher",
    # Coordinator
    "TaskCoordinator",
    "total_depth",
    "CleanupScheduler",
]

"""
Task transition notifications.

Publishers are invoked synchronously by the coordinator right after a
transition commits. ``publish`` never blocks: asynchronous delivery is
scheduled on the running loop and failures are only logged.
"""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Iterable, List, Optional, Set

from errors import handle_errors
from models import TaskEvent
from services.event_store import EventStore

logger = logging.getLogger(__name__)


class NotificationPublisher(ABC):
    """Best-effort sink for task transition events."""

    @abstractmethod
    def publish(self, event: TaskEvent) -> None:
        """Hand off one event. Must not block the caller."""

    async def close(self) -> None:
        """Flush or release resources."""


class _BackgroundTasks:
    """Keeps strong references to scheduled deliveries until they finish."""

    def __init__(self, label: str):
        self._label = label
        self._tasks: Set[asyncio.Task] = set()

    def spawn(self, coro) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"[{self._label}] Delivery failed: {error!r}")

    def __len__(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)


class NullPublisher(NotificationPublisher):
    """Discards every event."""

    def publish(self, event: TaskEvent) -> None:
        return None


class CallbackPublisher(NotificationPublisher):
    """
    Forwards event dicts to a broadcast callback.

    The callback may be a plain function or a coroutine function; the
    latter is scheduled as a task. This is the shape the dashboard
    broadcast functions take, e.g. ``broadcast(payload)``.
    """

    def __init__(self, callback: Callable[[dict], Any]):
        self._callback = callback
        self._pending = _BackgroundTasks("CallbackPublisher")

    @handle_errors()
    def publish(self, event: TaskEvent) -> None:
        outcome = self._callback(event.to_dict())
        if inspect.isawaitable(outcome):
            self._pending.spawn(outcome)

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def close(self) -> None:
        await self._pending.drain()


class BroadcastPublisher(NotificationPublisher):
    """
    In-process fan-out to any number of subscribers.

    Each subscriber owns a bounded queue. When a queue is full the oldest
    event is dropped so a slow consumer never holds up the coordinator.

    Example:
        subscription = publisher.subscribe()
        async for event in subscription:
            print(event.taskId, event.newStatus)
    """

    def __init__(self, max_queue_size: int = 1000):
        self._max_queue_size = max_queue_size
        self._subscriptions: List["Subscription"] = []

    def subscribe(self) -> "Subscription":
        subscription = Subscription(self, asyncio.Queue(maxsize=self._max_queue_size))
        self._subscriptions.append(subscription)
        logger.debug(f"Subscriber added ({len(self._subscriptions)} total)")
        return subscription

    def unsubscribe(self, subscription: "Subscription") -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
            subscription._closed = True
            # wake a consumer blocked in get()
            subscription._offer(None)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def publish(self, event: TaskEvent) -> None:
        for subscription in list(self._subscriptions):
            subscription._offer(event)

    async def close(self) -> None:
        for subscription in list(self._subscriptions):
            self.unsubscribe(subscription)


class Subscription:
    """Async iterator over the events of one BroadcastPublisher subscriber."""

    def __init__(self, publisher: BroadcastPublisher, queue: asyncio.Queue):
        self._publisher = publisher
        self._queue = queue
        self._closed = False
        self.dropped = 0

    def _offer(self, event: Optional[TaskEvent]) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
        self._queue.put_nowait(event)

    def get_nowait(self) -> TaskEvent:
        """Next queued event; raises ``asyncio.QueueEmpty`` when none."""
        event = self._queue.get_nowait()
        if event is None:
            raise asyncio.QueueEmpty()
        return event

    def qsize(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        self._publisher.unsubscribe(self)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> TaskEvent:
        while True:
            if self._closed and self._queue.empty():
                raise StopAsyncIteration
            event = await self._queue.get()
            if event is not None:
                return event


class EventStorePublisher(NotificationPublisher):
    """Appends events to the Redis event timeline for dashboard replay."""

    def __init__(self, event_store: EventStore):
        self._event_store = event_store
        self._pending = _BackgroundTasks("EventStorePublisher")

    @handle_errors()
    def publish(self, event: TaskEvent) -> None:
        self._pending.spawn(
            self._event_store.store_event(event.type.value, event.to_dict())
        )

    async def close(self) -> None:
        await self._pending.drain()


class CompositePublisher(NotificationPublisher):
    """Delivers every event to each wrapped publisher in order."""

    def __init__(self, publishers: Iterable[NotificationPublisher]):
        self._publishers = list(publishers)

    @property
    def publishers(self) -> List[NotificationPublisher]:
        return list(self._publishers)

    def publish(self, event: TaskEvent) -> None:
        for publisher in self._publishers:
            try:
                publisher.publish(event)
            except Exception as e:
                logger.error(f"Publisher {type(publisher).__name__} failed: {e}")

    async def close(self) -> None:
        for publisher in self._publishers:
            await publisher.close()

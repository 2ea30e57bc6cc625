"""
Notification Publisher Unit Tests
"""

import pytest
import asyncio
from unittest.mock import AsyncMock, MagicMock

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', '..'))

from models import TaskEvent, TaskEventType, TaskStatus
from services.event_store import EventStore
from task_graph import TaskCoordinator
from task_graph.notifications import (
    BroadcastPublisher,
    CallbackPublisher,
    CompositePublisher,
    EventStorePublisher,
    NullPublisher,
)


def make_event(task_id: str = "a", new_status: TaskStatus = TaskStatus.RUNNING) -> TaskEvent:
    return TaskEvent(
        taskId=task_id,
        oldStatus=TaskStatus.PENDING,
        newStatus=new_status,
        snapshot={"id": task_id},
    )


class TestTaskEvent:

    def test_to_dict_schema(self):
        data = make_event().to_dict()

        assert data["type"] == "status_change"
        assert data["taskId"] == "a"
        assert data["oldStatus"] == "pending"
        assert data["newStatus"] == "running"
        assert isinstance(data["timestamp"], str)
        assert data["snapshot"] == {"id": "a"}


class TestCallbackPublisher:

    def test_sync_callback_receives_dict(self):
        received = []
        publisher = CallbackPublisher(received.append)

        publisher.publish(make_event())

        assert received[0]["taskId"] == "a"

    @pytest.mark.asyncio
    async def test_async_callback_is_scheduled(self):
        callback = AsyncMock()
        publisher = CallbackPublisher(callback)

        publisher.publish(make_event())
        assert publisher.pending == 1
        await publisher.close()

        callback.assert_awaited_once()
        assert publisher.pending == 0

    @pytest.mark.asyncio
    async def test_failing_async_callback_is_logged(self, caplog):
        async def broken(payload):
            raise RuntimeError("socket closed")

        publisher = CallbackPublisher(broken)
        publisher.publish(make_event())
        await publisher.close()
        await asyncio.sleep(0)

        assert any("Delivery failed" in r.getMessage() for r in caplog.records)

    def test_failing_sync_callback_does_not_raise(self):
        publisher = CallbackPublisher(MagicMock(side_effect=RuntimeError("boom")))
        publisher.publish(make_event())


class TestBroadcastPublisher:

    @pytest.mark.asyncio
    async def test_every_subscriber_gets_every_event(self):
        publisher = BroadcastPublisher()
        first = publisher.subscribe()
        second = publisher.subscribe()

        publisher.publish(make_event("a"))
        publisher.publish(make_event("b"))

        for subscription in (first, second):
            assert subscription.get_nowait().taskId == "a"
            assert subscription.get_nowait().taskId == "b"

    @pytest.mark.asyncio
    async def test_full_queue_drops_oldest(self):
        publisher = BroadcastPublisher(max_queue_size=2)
        subscription = publisher.subscribe()

        for task_id in ("a", "b", "c"):
            publisher.publish(make_event(task_id))

        assert subscription.dropped == 1
        assert [subscription.get_nowait().taskId for _ in range(2)] == ["b", "c"]

    @pytest.mark.asyncio
    async def test_async_iteration_ends_on_unsubscribe(self):
        publisher = BroadcastPublisher()
        subscription = publisher.subscribe()

        async def consume():
            return [event.taskId async for event in subscription]

        consumer = asyncio.create_task(consume())
        publisher.publish(make_event("a"))
        publisher.publish(make_event("b"))
        await asyncio.sleep(0)
        subscription.close()

        assert await asyncio.wait_for(consumer, timeout=1) == ["a", "b"]
        assert publisher.subscriber_count == 0

    @pytest.mark.asyncio
    async def test_receives_coordinator_transitions(self):
        publisher = BroadcastPublisher()
        subscription = publisher.subscribe()
        coordinator = TaskCoordinator(publisher=publisher)

        await coordinator.register("a")
        await coordinator.start("a")

        events = [subscription.get_nowait() for _ in range(subscription.qsize())]
        assert [e.newStatus for e in events] == [TaskStatus.PENDING, TaskStatus.RUNNING]


class TestEventStorePublisher:

    @pytest.mark.asyncio
    async def test_stores_event_with_task_stream(self, mock_redis_client):
        from services.redis_service import RedisService

        service = RedisService(client=mock_redis_client)
        publisher = EventStorePublisher(EventStore(service))

        publisher.publish(make_event("a"))
        await publisher.close()

        mock_redis_client.zadd.assert_awaited_once()
        stream_key = mock_redis_client.xadd.await_args.args[0]
        assert stream_key == "task:a:events"

    @pytest.mark.asyncio
    async def test_store_failure_is_contained(self):
        store = MagicMock()
        store.store_event = AsyncMock(side_effect=ConnectionError("redis down"))
        publisher = EventStorePublisher(store)

        publisher.publish(make_event())
        await publisher.close()

        store.store_event.assert_awaited_once()
        assert store.store_event.await_args.args[0] == "status_change"


class TestEventStore:

    @pytest.fixture
    def store(self, mock_redis_client):
        from services.redis_service import RedisService

        return EventStore(RedisService(client=mock_redis_client))

    @pytest.mark.asyncio
    async def test_recent_events_decoded(self, store, mock_redis_client):
        mock_redis_client.zrevrange = AsyncMock(
            return_value=['{"type": "force_complete", "payload": {"taskId": "b"}}']
        )

        events = await store.get_recent_events(count=5)

        mock_redis_client.zrevrange.assert_awaited_once_with("events:timeline", 0, 4)
        assert events[0]["payload"]["taskId"] == "b"

    @pytest.mark.asyncio
    async def test_task_events_parse_json_fields(self, store, mock_redis_client):
        mock_redis_client.xrange = AsyncMock(return_value=[
            ("1-0", {"type": "status_change", "payload": '{"newStatus": "running"}'}),
        ])

        events = await store.get_task_events("a")

        mock_redis_client.xrange.assert_awaited_once_with("task:a:events", "-", "+")
        assert events == [
            {"id": "1-0", "type": "status_change", "payload": {"newStatus": "running"}}
        ]

    @pytest.mark.asyncio
    async def test_event_without_task_id_skips_stream(self, store, mock_redis_client):
        await store.store_event("status_change", {"note": "no task"})

        mock_redis_client.zadd.assert_awaited_once()
        mock_redis_client.xadd.assert_not_awaited()


class TestCompositePublisher:

    def test_fans_out_past_failures(self):
        broken = MagicMock()
        broken.publish.side_effect = RuntimeError("down")
        received = []
        composite = CompositePublisher([broken, CallbackPublisher(received.append), NullPublisher()])

        composite.publish(make_event())

        broken.publish.assert_called_once()
        assert len(received) == 1

    @pytest.mark.asyncio
    async def test_close_closes_children(self):
        child = MagicMock()
        child.close = AsyncMock()

        await CompositePublisher([child]).close()
        child.close.assert_awaited_once()

    def test_force_complete_event_type(self):
        event = make_event()
        event.type = TaskEventType.FORCE_COMPLETE
        assert event.to_dict()["type"] == "force_complete"

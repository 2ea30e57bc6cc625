"""
Pytest Configuration and Fixtures

Shared fixtures for the task coordination tests.
"""

import pytest
import shutil
import tempfile
from unittest.mock import MagicMock, AsyncMock

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from models import TaskEvent, TaskSnapshot, TaskStatus
from task_graph import InMemoryPersistence, NotificationPublisher, TaskCoordinator


class RecordingPublisher(NotificationPublisher):
    """Keeps every published event in order"""

    def __init__(self):
        self.events = []

    def publish(self, event: TaskEvent) -> None:
        self.events.append(event)

    def for_task(self, task_id: str) -> list:
        return [e for e in self.events if e.taskId == task_id]


@pytest.fixture
def persistence() -> InMemoryPersistence:
    return InMemoryPersistence()


@pytest.fixture
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture
def coordinator(persistence, publisher) -> TaskCoordinator:
    """Coordinator backed by in-memory persistence and a recording publisher"""
    return TaskCoordinator(persistence=persistence, publisher=publisher)


@pytest.fixture
def temp_dir():
    """Temporary directory removed after the test"""
    path = tempfile.mkdtemp()
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture
def mock_persistence() -> MagicMock:
    """Persistence adapter mock"""
    adapter = MagicMock()
    adapter.backend_name = "mock"
    adapter.save = AsyncMock(return_value=None)
    adapter.load_all = AsyncMock(return_value=[])
    adapter.delete = AsyncMock(return_value=True)
    adapter.close = AsyncMock()
    return adapter


@pytest.fixture
def mock_redis_client() -> MagicMock:
    """redis.asyncio client mock"""
    client = MagicMock()
    client.ping = AsyncMock(return_value=True)
    client.set = AsyncMock(return_value=True)
    client.get = AsyncMock(return_value=None)
    client.mget = AsyncMock(return_value=[])
    client.delete = AsyncMock(return_value=1)
    client.zadd = AsyncMock(return_value=1)
    client.xadd = AsyncMock(return_value="1-0")
    client.expire = AsyncMock(return_value=True)
    client.aclose = AsyncMock()
    return client


@pytest.fixture
def sample_snapshot() -> TaskSnapshot:
    """Snapshot of a running task with a dependency and metadata"""
    return TaskSnapshot(
        id="analyze",
        status=TaskStatus.RUNNING,
        dependencies=["parse"],
        dependents=["report"],
        worker_hint="analyst",
        assigned_worker="worker-1",
        metadata={"priority": "high", "tags": ["nightly"]},
    )

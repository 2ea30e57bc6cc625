"""
Task Persistence - durable task snapshots

Repository-style adapters the coordinator writes every committed transition
to, and reads back from on startup recovery. Memory, file, Redis and SQL
backends share one interface.
"""

import asyncio
import json
import logging
import os
import uuid
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import aiofiles
import aiofiles.os
from pydantic import ValidationError

from database import Database
from database.repositories import TaskSnapshotRepository
from errors import PersistenceError
from models import TaskSnapshot
from services.redis_service import RedisService

logger = logging.getLogger(__name__)


class PersistenceAdapter(ABC):
    """
    Task snapshot store interface

    Implementations receive concurrent calls for distinct task ids.
    Calls for one task id are never issued concurrently.
    """

    backend_name = "abstract"

    @abstractmethod
    async def save(self, task_id: str, snapshot: TaskSnapshot) -> None:
        """Overwrite the stored snapshot of a task"""

    @abstractmethod
    async def load_all(self) -> List[TaskSnapshot]:
        """Every stored snapshot, for startup recovery"""

    @abstractmethod
    async def delete(self, task_id: str) -> bool:
        """Remove a snapshot. Returns False if none was stored"""

    async def health_check(self) -> bool:
        """True if the backend is reachable"""
        return True

    async def close(self) -> None:
        """Release backend resources"""


def _decode(data: Dict[str, Any], source: str) -> Optional[TaskSnapshot]:
    try:
        return TaskSnapshot.model_validate(data)
    except ValidationError as e:
        logger.error(f"Skipping unreadable snapshot from {source}: {e}")
        return None


class InMemoryPersistence(PersistenceAdapter):
    """
    Memory-backed store

    Keeps the JSON projection, so loads go through the same
    serialization as the durable backends. For tests and development.
    """

    backend_name = "memory"

    def __init__(self):
        self._storage: Dict[str, Dict[str, Any]] = {}

    async def save(self, task_id: str, snapshot: TaskSnapshot) -> None:
        self._storage[task_id] = snapshot.model_dump(mode="json")

    async def load_all(self) -> List[TaskSnapshot]:
        snapshots = []
        for task_id, data in self._storage.items():
            snapshot = _decode(data, f"memory:{task_id}")
            if snapshot is not None:
                snapshots.append(snapshot)
        return snapshots

    async def delete(self, task_id: str) -> bool:
        return self._storage.pop(task_id, None) is not None

    def __len__(self) -> int:
        return len(self._storage)


class FilePersistence(PersistenceAdapter):
    """
    File-backed store

    One JSON file per task. Writes go to a temporary file that is then
    renamed over the target, so a crash never leaves a torn snapshot.
    """

    backend_name = "file"

    def __init__(self, storage_dir: str = "./task_storage"):
        self._storage_dir = storage_dir
        os.makedirs(storage_dir, exist_ok=True)

    @property
    def storage_dir(self) -> str:
        return self._storage_dir

    def _get_file_path(self, task_id: str) -> str:
        """File path for a task id; ids are percent-encoded to stay unique"""
        return os.path.join(self._storage_dir, f"{quote(task_id, safe='')}.json")

    async def save(self, task_id: str, snapshot: TaskSnapshot) -> None:
        file_path = self._get_file_path(task_id)
        tmp_path = f"{file_path}.{uuid.uuid4().hex}.tmp"
        data = json.dumps(snapshot.model_dump(mode="json"), ensure_ascii=False, indent=2)
        try:
            async with aiofiles.open(tmp_path, 'w', encoding='utf-8') as f:
                await f.write(data)
            await aiofiles.os.replace(tmp_path, file_path)
        except OSError as e:
            if await aiofiles.os.path.exists(tmp_path):
                await aiofiles.os.remove(tmp_path)
            raise PersistenceError(
                f"Failed to write snapshot: {e}", backend=self.backend_name, task_id=task_id
            ) from e

    async def load_all(self) -> List[TaskSnapshot]:
        snapshots = []
        for name in sorted(os.listdir(self._storage_dir)):
            if not name.endswith('.json'):
                continue
            file_path = os.path.join(self._storage_dir, name)
            try:
                async with aiofiles.open(file_path, 'r', encoding='utf-8') as f:
                    data = json.loads(await f.read())
            except (OSError, json.JSONDecodeError) as e:
                logger.error(f"Skipping unreadable snapshot file {file_path}: {e}")
                continue
            snapshot = _decode(data, file_path)
            if snapshot is not None:
                snapshots.append(snapshot)
        return snapshots

    async def delete(self, task_id: str) -> bool:
        file_path = self._get_file_path(task_id)
        if not await aiofiles.os.path.exists(file_path):
            return False
        await aiofiles.os.remove(file_path)
        return True


class RedisPersistence(PersistenceAdapter):
    """
    Redis-backed store

    Connects lazily on first use through the shared RedisService.
    """

    backend_name = "redis"

    def __init__(self, redis_service: Optional[RedisService] = None, url: Optional[str] = None):
        self._redis = redis_service or RedisService(url=url)
        self._connect_lock = asyncio.Lock()

    async def _service(self) -> RedisService:
        if self._redis.client is None:
            async with self._connect_lock:
                if self._redis.client is None:
                    await self._redis.connect()
        return self._redis

    async def save(self, task_id: str, snapshot: TaskSnapshot) -> None:
        service = await self._service()
        await service.save_task_snapshot(task_id, snapshot.model_dump(mode="json"))

    async def load_all(self) -> List[TaskSnapshot]:
        service = await self._service()
        snapshots = []
        for data in await service.list_task_snapshots():
            snapshot = _decode(data, self.backend_name)
            if snapshot is not None:
                snapshots.append(snapshot)
        return snapshots

    async def delete(self, task_id: str) -> bool:
        service = await self._service()
        return await service.delete_task_snapshot(task_id)

    async def health_check(self) -> bool:
        try:
            service = await self._service()
        except Exception as e:
            logger.warning(f"Redis persistence unreachable: {e}")
            return False
        return await service.health_check()

    async def close(self) -> None:
        await self._redis.disconnect()


class SqlPersistence(PersistenceAdapter):
    """
    SQL-backed store (SQLAlchemy async engine)

    Connects and creates the snapshot table lazily on first use.
    """

    backend_name = "sql"

    def __init__(
        self,
        database: Optional[Database] = None,
        database_url: Optional[str] = None,
        create_tables: bool = True,
    ):
        self._database = database or Database(database_url=database_url)
        self._create_tables = create_tables
        self._ready = False
        self._connect_lock = asyncio.Lock()

    async def _db(self) -> Database:
        if not self._ready:
            async with self._connect_lock:
                if not self._ready:
                    if not self._database.is_connected:
                        await self._database.connect()
                    if self._create_tables:
                        await self._database.create_tables()
                    self._ready = True
        return self._database

    async def save(self, task_id: str, snapshot: TaskSnapshot) -> None:
        db = await self._db()
        async with db.session() as session:
            await TaskSnapshotRepository(session).upsert(snapshot)

    async def load_all(self) -> List[TaskSnapshot]:
        db = await self._db()
        async with db.session() as session:
            return await TaskSnapshotRepository(session).get_snapshots()

    async def delete(self, task_id: str) -> bool:
        db = await self._db()
        async with db.session() as session:
            return await TaskSnapshotRepository(session).delete(task_id)

    async def health_check(self) -> bool:
        try:
            db = await self._db()
        except Exception as e:
            logger.warning(f"SQL persistence unreachable: {e}")
            return False
        return await db.health_check()

    async def close(self) -> None:
        await self._database.disconnect()
        self._ready = False


# Persistence Factory
def create_persistence(
    backend: str = "memory",
    **kwargs
) -> PersistenceAdapter:
    """
    Persistence adapter factory

    Args:
        backend: backend type ("memory", "file", "redis", "sql")
        **kwargs: backend specific settings

    Returns:
        PersistenceAdapter implementation
    """
    if backend == "memory":
        return InMemoryPersistence()
    elif backend == "file":
        return FilePersistence(
            storage_dir=kwargs.get("storage_dir", "./task_storage")
        )
    elif backend == "redis":
        return RedisPersistence(
            redis_service=kwargs.get("redis_service"),
            url=kwargs.get("url"),
        )
    elif backend == "sql":
        return SqlPersistence(
            database=kwargs.get("database"),
            database_url=kwargs.get("database_url"),
        )
    else:
        raise ValueError(f"Unknown persistence backend: {backend}")

"""
CoordinatorFactory - wires the coordinator and its collaborators

Builds persistence, publishers and the cleanup scheduler from settings
and hands them out as one explicitly owned runtime object.
"""

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import List, Optional

from services.event_store import EventStore
from services.redis_service import RedisService
from task_graph import (
    BroadcastPublisher,
    CleanupScheduler,
    CompositePublisher,
    EventStorePublisher,
    NotificationPublisher,
    PersistenceAdapter,
    TaskCoordinator,
    create_persistence,
)

from .settings import CoordinatorSettings

logger = logging.getLogger(__name__)


@dataclass
class CoordinatorRuntime:
    """Coordinator plus everything it owns"""
    settings: CoordinatorSettings
    coordinator: TaskCoordinator
    cleanup: CleanupScheduler
    broadcaster: BroadcastPublisher
    redis_service: Optional[RedisService] = None
    _connected: List[RedisService] = field(default_factory=list)

    async def start(self) -> int:
        """Connect backends, recover persisted tasks and start cleanup"""
        if self.redis_service is not None and self.redis_service.client is None:
            await self.redis_service.connect()
            self._connected.append(self.redis_service)
        if not await self.coordinator.persistence.health_check():
            logger.warning(
                f"{self.settings.persistence_backend} persistence is not healthy, "
                "transitions will only be kept in memory"
            )
        recovered = await self.coordinator.recover()
        self.cleanup.start()
        return recovered

    async def shutdown(self) -> None:
        await self.cleanup.stop()
        await self.coordinator.close()
        for service in self._connected:
            await service.disconnect()
        self._connected.clear()


def build_runtime(settings: Optional[CoordinatorSettings] = None) -> CoordinatorRuntime:
    """
    Build a runtime from settings (default: read from the environment)

    Raises:
        ValueError: unknown persistence backend
    """
    settings = settings or CoordinatorSettings.from_env()

    redis_service = None
    if settings.persistence_backend == "redis" or settings.event_store_enabled:
        redis_service = RedisService(
            url=settings.redis_url,
            snapshot_prefix=settings.redis_key_prefix,
        )

    persistence: PersistenceAdapter = create_persistence(
        settings.persistence_backend,
        storage_dir=settings.persistence_dir,
        redis_service=redis_service,
        database_url=settings.database_url,
    )

    broadcaster = BroadcastPublisher()
    publishers: List[NotificationPublisher] = [broadcaster]
    if settings.event_store_enabled and redis_service is not None:
        publishers.append(EventStorePublisher(EventStore(redis_service)))

    coordinator = TaskCoordinator(
        persistence=persistence,
        publisher=CompositePublisher(publishers),
        chain_max_depth=settings.dependency_chain_max_depth,
    )
    cleanup = CleanupScheduler(
        coordinator,
        retention=timedelta(hours=settings.task_retention_hours),
        interval=settings.cleanup_interval_seconds,
        status_log_interval=settings.status_log_interval_seconds,
    )

    logger.info(
        f"Coordinator runtime built (persistence={settings.persistence_backend}, "
        f"event_store={'on' if settings.event_store_enabled else 'off'})"
    )
    return CoordinatorRuntime(
        settings=settings,
        coordinator=coordinator,
        cleanup=cleanup,
        broadcaster=broadcaster,
        redis_service=redis_service,
    )

"""
Periodic eviction of finished tasks and status logging.
"""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import List, Optional

from models import utc_now

from .coordinator import TaskCoordinator

logger = logging.getLogger(__name__)


class CleanupScheduler:
    """
    Background loops around a coordinator.

    - eviction: every ``interval`` seconds, terminal tasks finished more
      than ``retention`` ago are dropped (unless a dependent still runs)
    - status: every ``status_log_interval`` seconds, aggregate counts are
      logged
    """

    def __init__(
        self,
        coordinator: TaskCoordinator,
        retention: timedelta = timedelta(hours=24),
        interval: float = 3600,
        status_log_interval: Optional[float] = 600,
    ):
        self.coordinator = coordinator
        self.retention = retention
        self.interval = interval
        self.status_log_interval = status_log_interval
        self._tasks: List[asyncio.Task] = []

    @property
    def is_running(self) -> bool:
        return bool(self._tasks)

    def start(self) -> None:
        """Start the loops on the running event loop."""
        if self._tasks:
            logger.warning("Cleanup scheduler already running")
            return
        self._tasks.append(asyncio.create_task(self._cleanup_loop()))
        if self.status_log_interval:
            self._tasks.append(asyncio.create_task(self._status_loop()))
        logger.info(
            f"Cleanup scheduler started (retention={self.retention}, interval={self.interval}s)"
        )

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks.clear()
        logger.info("Cleanup scheduler stopped")

    async def run_once(self, now: Optional[datetime] = None) -> List[str]:
        """Evict once against ``now`` (defaults to the current UTC time)."""
        cutoff = (now or utc_now()) - self.retention
        evicted = await self.coordinator.evict_expired(cutoff)
        logger.info(f"Cleanup pass evicted {len(evicted)} task(s)")
        return evicted

    def log_status(self) -> None:
        status = self.coordinator.get_system_status()
        counts = ", ".join(f"{name}={count}" for name, count in status.statusCounts.items())
        logger.info(
            f"Task status: total={status.totalTasks} active_futures={status.activeFutures} "
            f"graph={status.dependencyGraphSize} [{counts}]"
        )

    async def _cleanup_loop(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            try:
                await self.run_once()
            except Exception as e:
                logger.exception(f"Cleanup pass failed: {e}")

    async def _status_loop(self) -> None:
        while True:
            await asyncio.sleep(self.status_log_interval)
            try:
                self.log_status()
            except Exception as e:
                logger.exception(f"Status logging failed: {e}")

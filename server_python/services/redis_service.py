"""
Redis Service - Central Redis connection and operations
Provides task snapshot storage and the task event timeline
"""
import redis.asyncio as redis
import json
import logging
import time
from typing import Optional, Dict, Any, List
import os

logger = logging.getLogger(__name__)


class RedisService:
    """
    Async Redis client with connection pooling
    Durable store for task snapshots and transition events
    """

    def __init__(
        self,
        url: Optional[str] = None,
        snapshot_prefix: Optional[str] = None,
        client: Optional[redis.Redis] = None,
    ):
        self.url = url or os.getenv("REDIS_URL", "redis://localhost:6379/0")
        self.snapshot_prefix = snapshot_prefix or os.getenv("REDIS_KEY_PREFIX", "task_snapshot:")
        self.client: Optional[redis.Redis] = client
        self._max_connections = int(os.getenv("REDIS_MAX_CONNECTIONS", "50"))

    async def connect(self):
        """Initialize Redis connection pool"""
        if self.client is not None:
            return
        try:
            self.client = redis.from_url(
                self.url,
                encoding="utf-8",
                decode_responses=True,
                max_connections=self._max_connections
            )
            # Test connection
            await self.client.ping()
            logger.info(f"[Redis] Connected to {self.url}")
        except Exception as e:
            self.client = None
            logger.error(f"[Redis] Connection failed: {e}")
            raise

    async def disconnect(self):
        """Close Redis connection"""
        if self.client:
            await self.client.aclose()
            self.client = None
            logger.info("[Redis] Disconnected")

    async def health_check(self) -> bool:
        """Check if Redis is healthy"""
        try:
            if not self.client:
                return False
            await self.client.ping()
            return True
        except Exception:
            return False

    # ===== Task Snapshot Operations =====

    def _snapshot_key(self, task_id: str) -> str:
        return f"{self.snapshot_prefix}{task_id}"

    async def save_task_snapshot(self, task_id: str, snapshot: Dict[str, Any]):
        """
        Overwrite the stored snapshot of a task
        No TTL: snapshots live until the task is evicted
        """
        await self.client.set(self._snapshot_key(task_id), json.dumps(snapshot))

    async def list_task_snapshots(self) -> List[Dict[str, Any]]:
        """
        Get every stored task snapshot (for startup recovery)
        Entries that fail to decode are logged and skipped
        """
        keys = [key async for key in self.client.scan_iter(match=f"{self.snapshot_prefix}*")]
        if not keys:
            return []

        snapshots = []
        for key, data in zip(keys, await self.client.mget(keys)):
            if not data:
                continue
            try:
                snapshots.append(json.loads(data))
            except (json.JSONDecodeError, TypeError) as e:
                logger.error(f"[Redis] Skipping unreadable snapshot {key}: {e}")
        return snapshots

    async def delete_task_snapshot(self, task_id: str) -> bool:
        """Remove a task snapshot"""
        return await self.client.delete(self._snapshot_key(task_id)) > 0

    # ===== Event Timeline Operations =====

    async def add_event(self, event: Dict[str, Any]) -> float:
        """
        Add event to global timeline (sorted set)
        Returns: timestamp in milliseconds
        """
        timestamp = time.time() * 1000  # milliseconds
        event_json = json.dumps(event)
        await self.client.zadd("events:timeline", {event_json: timestamp})
        return timestamp

    async def get_recent_events(self, count: int = 100) -> List[Dict[str, Any]]:
        """
        Get most recent events (for initial load)
        Returns events in reverse chronological order (newest first)
        """
        events = await self.client.zrevrange("events:timeline", 0, count - 1)
        return [json.loads(e) for e in events]

    # ===== Task Event Stream Operations =====

    async def add_task_event(self, task_id: str, event: Dict[str, Any]) -> str:
        """
        Add event to task-specific stream
        Args:
            task_id: Task identifier
            event: Event data (will be flattened to string fields)
        Returns: Event ID from Redis stream
        """
        stream_key = f"task:{task_id}:events"
        # Flatten event dict to string fields for XADD
        event_fields = {}
        for key, value in event.items():
            if isinstance(value, (dict, list)):
                event_fields[key] = json.dumps(value)
            elif value is None:
                event_fields[key] = ""
            else:
                event_fields[key] = str(value)

        event_id = await self.client.xadd(stream_key, event_fields)
        # Set TTL on task stream (7 days)
        await self.client.expire(stream_key, 86400 * 7)
        return event_id

    async def get_task_events(self, task_id: str, since_id: str = "-") -> List[Dict[str, Any]]:
        """
        Get task events since specific ID
        Args:
            task_id: Task identifier
            since_id: Stream ID to start from ("-" for all events)
        Returns: List of events with parsed JSON fields
        """
        stream_key = f"task:{task_id}:events"
        events = await self.client.xrange(stream_key, since_id, "+")

        result = []
        for event_id, fields in events:
            # Parse JSON fields back to objects
            parsed = {"id": event_id}
            for key, value in fields.items():
                try:
                    parsed[key] = json.loads(value)
                except (json.JSONDecodeError, TypeError):
                    parsed[key] = value
            result.append(parsed)

        return result


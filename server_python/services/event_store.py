"""
Event Store - Task transition events are recorded here for replay
Dashboards read the recent timeline and per-task history back for audit
"""
from typing import Dict, Any, List, Optional
from datetime import datetime, timezone
from services.redis_service import RedisService


class EventStore:
    """
    Event store with Redis backend
    Keeps a global timeline plus one stream per task
    """

    def __init__(self, redis_service: RedisService):
        """
        Initialize event store
        Args:
            redis_service: connected redis service instance
        """
        self.redis_service = redis_service

    async def store_event(self, event_type: str, payload: Dict[str, Any]) -> float:
        """
        Store event to global timeline and task-specific stream if applicable

        Args:
            event_type: Type of event (e.g., "status_change", "force_complete")
            payload: Event data

        Returns:
            timestamp (milliseconds) for client cursor tracking
        """
        event = {
            "type": event_type,
            "payload": payload,
            "timestamp": datetime.now(timezone.utc).isoformat()
        }

        timestamp = await self.redis_service.add_event(event)

        task_id = self._extract_task_id(payload)
        if task_id:
            await self.redis_service.add_task_event(task_id, event)

        return timestamp

    async def get_recent_events(self, count: int = 100) -> List[Dict[str, Any]]:
        """Get recent events, newest first"""
        return await self.redis_service.get_recent_events(count)

    async def get_task_events(self, task_id: str, since_id: str = "-") -> List[Dict[str, Any]]:
        """
        Get all events for specific task

        Args:
            task_id: Task identifier
            since_id: Stream ID to start from ("-" for all events)

        Returns:
            List of task-specific events
        """
        return await self.redis_service.get_task_events(task_id, since_id)

    def _extract_task_id(self, payload: Dict[str, Any]) -> Optional[str]:
        """Extract task_id from payload if present"""
        for field in ("taskId", "task_id"):
            if payload.get(field):
                return payload[field]
        return None

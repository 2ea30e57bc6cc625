"""
Services - external backends shared by the coordinator
"""

from .redis_service import RedisService
from .event_store import EventStore

__all__ = [
    "RedisService",
    "EventStore",
]

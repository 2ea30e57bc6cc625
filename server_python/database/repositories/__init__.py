"""
Repository pattern implementations for database access.
"""

from .base import BaseRepository
from .task_snapshot_repository import TaskSnapshotRepository

__all__ = [
    "BaseRepository",
    "TaskSnapshotRepository",
]

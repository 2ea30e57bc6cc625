"""
Database module for the task dependency core.
Provides async SQL connection with SQLAlchemy.
"""

from .connection import Database
from .models import Base, TaskSnapshotModel

__all__ = [
    "Database",
    "Base",
    "TaskSnapshotModel",
]

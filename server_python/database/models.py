"""
SQLAlchemy ORM models for the task dependency core.
"""

from datetime import datetime
from typing import Optional, List

from sqlalchemy import (
    String,
    DateTime,
    JSON,
)
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    mapped_column,
)


class Base(DeclarativeBase):
    """Base class for all ORM models."""
    pass


class TaskSnapshotModel(Base):
    """Durable snapshot of one task. The full snapshot lives in snapshot_json."""
    __tablename__ = "task_snapshots"

    id: Mapped[str] = mapped_column(String(255), primary_key=True)
    status: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    dependencies: Mapped[List[str]] = mapped_column(JSON, nullable=False, default=list)
    assigned_worker: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    snapshot_json: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        index=True
    )

    def __repr__(self) -> str:
        return f"<TaskSnapshot(id='{self.id}', status='{self.status}')>"

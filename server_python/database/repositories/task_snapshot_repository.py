"""
Task snapshot repository for database operations.
"""

import logging
from typing import List

from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from models import TaskSnapshot

from .base import BaseRepository
from ..models import TaskSnapshotModel

logger = logging.getLogger(__name__)


class TaskSnapshotRepository(BaseRepository[TaskSnapshotModel]):
    """Repository for TaskSnapshot rows."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, TaskSnapshotModel)

    async def upsert(self, snapshot: TaskSnapshot) -> TaskSnapshotModel:
        """Insert or overwrite the row of one task."""
        payload = snapshot.model_dump(mode="json")
        values = {
            "status": snapshot.status.value,
            "dependencies": list(snapshot.dependencies),
            "assigned_worker": snapshot.assigned_worker,
            "snapshot_json": payload,
            "created_at": snapshot.created_at,
            "updated_at": snapshot.updated_at,
        }

        row = await self.get_by_id(snapshot.id)
        if row is None:
            return await self.create(id=snapshot.id, **values)

        for key, value in values.items():
            setattr(row, key, value)
        await self.session.flush()
        return row

    async def get_snapshots(self) -> List[TaskSnapshot]:
        """Load every stored snapshot. Rows that fail validation are logged and skipped."""
        snapshots = []
        for row in await self.get_all():
            try:
                snapshots.append(TaskSnapshot.model_validate(row.snapshot_json))
            except ValidationError as e:
                logger.error(f"Skipping unreadable snapshot row {row.id}: {e}")
        return snapshots

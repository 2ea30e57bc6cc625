"""Task snapshot table

Revision ID: 001_task_snapshots
Revises:
Create Date: 2026-10-18 01:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = '001_task_snapshots'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        'task_snapshots',
        sa.Column('id', sa.String(255), nullable=False),
        sa.Column('status', sa.String(50), nullable=False),
        sa.Column('dependencies', sa.JSON(), nullable=False),
        sa.Column('assigned_worker', sa.String(255), nullable=True),
        sa.Column('snapshot_json', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint('id')
    )
    op.create_index('ix_task_snapshots_status', 'task_snapshots', ['status'])
    op.create_index('ix_task_snapshots_updated_at', 'task_snapshots', ['updated_at'])


def downgrade() -> None:
    op.drop_index('ix_task_snapshots_updated_at', table_name='task_snapshots')
    op.drop_index('ix_task_snapshots_status', table_name='task_snapshots')
    op.drop_table('task_snapshots')

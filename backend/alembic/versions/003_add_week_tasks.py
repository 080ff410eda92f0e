"""Add is_week_task column for tasks that span a whole week

Revision ID: 003
Revises: 002
Create Date: 2025-12-08

"""
from typing import Sequence, Union

from alembic import op
from sqlalchemy import text

revision: str = '003'
down_revision: Union[str, None] = '002'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()

    columns = {row[1] for row in conn.execute(text("PRAGMA table_info(tasks)")).fetchall()}

    if "is_week_task" not in columns:
        conn.execute(text("ALTER TABLE tasks ADD COLUMN is_week_task INTEGER NOT NULL DEFAULT 0"))

    conn.execute(text("CREATE INDEX IF NOT EXISTS idx_tasks_date ON tasks(date)"))


def downgrade() -> None:
    conn = op.get_bind()
    conn.execute(text("DROP INDEX IF EXISTS idx_tasks_date"))

"""Add sort_order column for user-defined category order

Revision ID: 002
Revises: 001
Create Date: 2025-11-20

"""
from typing import Sequence, Union

from alembic import op
from sqlalchemy import text

revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()

    # Check existing columns
    columns = {row[1] for row in conn.execute(text("PRAGMA table_info(categories)")).fetchall()}

    if "sort_order" not in columns:
        conn.execute(text("ALTER TABLE categories ADD COLUMN sort_order INTEGER NOT NULL DEFAULT 0"))
        # Existing categories keep their creation order
        conn.execute(text("UPDATE categories SET sort_order = id"))


def downgrade() -> None:
    # SQLite doesn't support DROP COLUMN easily; downgrade is a no-op
    pass

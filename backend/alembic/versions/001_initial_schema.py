"""Initial schema - per-user tasks

Revision ID: 001
Revises: None
Create Date: 2025-09-20

"""
from typing import Sequence, Union

from alembic import op
from sqlalchemy import text

revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()

    # Timestamps are fixed-width UTC ISO strings, so TEXT comparison is chronological
    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS tasks (
            id TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            title TEXT NOT NULL,
            description TEXT,
            due_date TEXT NOT NULL,
            priority TEXT NOT NULL DEFAULT 'Medium',
            category TEXT NOT NULL DEFAULT 'Personal',
            completed INTEGER DEFAULT 0,
            created_at TEXT NOT NULL,
            duration_minutes INTEGER
        )
    """))
    conn.execute(text("CREATE INDEX IF NOT EXISTS idx_tasks_user ON tasks(user_id)"))


def downgrade() -> None:
    conn = op.get_bind()
    conn.execute(text("DROP INDEX IF EXISTS idx_tasks_user"))
    conn.execute(text("DROP TABLE IF EXISTS tasks"))

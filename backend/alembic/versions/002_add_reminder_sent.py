"""Add reminder_sent column for the reminder sweep

Revision ID: 002
Revises: 001
Create Date: 2025-09-27

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
    columns = {row[1] for row in conn.execute(text("PRAGMA table_info(tasks)")).fetchall()}

    if "reminder_sent" not in columns:
        conn.execute(text("ALTER TABLE tasks ADD COLUMN reminder_sent INTEGER DEFAULT 0"))

    conn.execute(text(
        "CREATE INDEX IF NOT EXISTS idx_tasks_reminders ON tasks(completed, reminder_sent, due_date)"
    ))


def downgrade() -> None:
    # SQLite doesn't support DROP COLUMN easily; only the index is removed
    conn = op.get_bind()
    conn.execute(text("DROP INDEX IF EXISTS idx_tasks_reminders"))

"""Add users (notification preference) and push_tokens tables

Revision ID: 003
Revises: 002
Create Date: 2025-09-29

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

    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            notifications_enabled INTEGER DEFAULT 0
        )
    """))

    # One row per device registration; a user may have several
    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS push_tokens (
            token TEXT PRIMARY KEY,
            user_id TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
    """))
    conn.execute(text("CREATE INDEX IF NOT EXISTS idx_push_tokens_user ON push_tokens(user_id)"))


def downgrade() -> None:
    conn = op.get_bind()
    conn.execute(text("DROP TABLE IF EXISTS push_tokens"))
    conn.execute(text("DROP TABLE IF EXISTS users"))

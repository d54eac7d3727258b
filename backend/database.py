import logging
import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Iterable, Optional

import config
from models import Task

logger = logging.getLogger(__name__)

DATABASE_PATH = config.DATABASE_PATH

# Columns a caller may change through update_task_db
UPDATABLE_FIELDS = ("title", "description", "due_date", "priority", "category", "completed", "duration_minutes")


@contextmanager
def get_db():
    """Context manager for database connections."""
    conn = sqlite3.connect(DATABASE_PATH)
    conn.row_factory = sqlite3.Row
    try:
        yield conn
    finally:
        conn.close()


def init_db():
    """Initialize database by running Alembic migrations."""
    import subprocess
    import os

    # Run alembic upgrade from the backend directory
    backend_dir = os.path.dirname(os.path.abspath(__file__))
    subprocess.run(
        ["alembic", "upgrade", "head"],
        cwd=backend_dir,
        check=True
    )


def to_db_timestamp(value: datetime) -> str:
    """
    Serialize a datetime as a fixed-width UTC ISO string.
    Fixed width keeps SQL string comparison in chronological order.
    Naive datetimes are taken to be UTC.
    """
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%f+00:00")


def from_db_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _enum_value(value) -> str:
    return getattr(value, "value", value)


def _row_to_task(row) -> Task:
    """Convert a database row to a Task model."""
    return Task(
        id=row["id"],
        user_id=row["user_id"],
        title=row["title"],
        description=row["description"] or None,
        due_date=from_db_timestamp(row["due_date"]),
        priority=row["priority"],
        category=row["category"],
        completed=bool(row["completed"]),
        created_at=from_db_timestamp(row["created_at"]),
        reminder_sent=bool(row["reminder_sent"]),
        duration_minutes=row["duration_minutes"],
    )


def _insert_task(conn, user_id: str, fields: dict, created_at: str) -> Task:
    task_id = str(uuid.uuid4())
    conn.execute(
        """INSERT INTO tasks
           (id, user_id, title, description, due_date, priority, category, completed, created_at, reminder_sent, duration_minutes)
           VALUES (?, ?, ?, ?, ?, ?, ?, 0, ?, 0, ?)""",
        (
            task_id,
            user_id,
            fields["title"],
            fields.get("description"),
            to_db_timestamp(fields["due_date"]),
            _enum_value(fields["priority"]),
            _enum_value(fields["category"]),
            created_at,
            fields.get("duration_minutes"),
        )
    )
    return Task(
        id=task_id,
        user_id=user_id,
        title=fields["title"],
        description=fields.get("description") or None,
        due_date=from_db_timestamp(to_db_timestamp(fields["due_date"])),
        priority=_enum_value(fields["priority"]),
        category=_enum_value(fields["category"]),
        completed=False,
        created_at=from_db_timestamp(created_at),
        reminder_sent=False,
        duration_minutes=fields.get("duration_minutes"),
    )


def create_task_db(
    user_id: str,
    title: str,
    due_date: datetime,
    priority: str = "Medium",
    category: str = "Personal",
    description: Optional[str] = None,
    duration_minutes: Optional[int] = None
) -> Task:
    """Create a task owned by user_id. The store assigns id and created_at."""
    created_at = to_db_timestamp(datetime.now(timezone.utc))
    fields = {
        "title": title,
        "description": description,
        "due_date": due_date,
        "priority": priority,
        "category": category,
        "duration_minutes": duration_minutes,
    }
    with get_db() as conn:
        task = _insert_task(conn, user_id, fields, created_at)
        conn.commit()
    logger.debug("Task created id=%s user=%s due=%s", task.id, user_id, task.due_date.isoformat())
    return task


def create_tasks_batch_db(user_id: str, tasks: Iterable[dict]) -> list[Task]:
    """
    Insert several tasks in one transaction.
    Each item needs title, due_date, priority and category; description and
    duration_minutes are optional. Either every task is stored or none is.
    """
    created_at = to_db_timestamp(datetime.now(timezone.utc))
    created: list[Task] = []
    with get_db() as conn:
        try:
            for fields in tasks:
                created.append(_insert_task(conn, user_id, fields, created_at))
            conn.commit()
        except Exception:
            conn.rollback()
            raise
    logger.info("Batch created %d tasks for user %s", len(created), user_id)
    return created


def get_task_db(user_id: str, task_id: str) -> Optional[Task]:
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM tasks WHERE id = ? AND user_id = ?",
            (task_id, user_id)
        ).fetchone()
        return _row_to_task(row) if row else None


def get_tasks_for_user(user_id: str) -> list[Task]:
    """All tasks of one user, in no particular order (ordering is done by the view)."""
    with get_db() as conn:
        rows = conn.execute("SELECT * FROM tasks WHERE user_id = ?", (user_id,)).fetchall()
        return [_row_to_task(row) for row in rows]


def update_task_db(user_id: str, task_id: str, **updates) -> Optional[Task]:
    """
    Update a task with any fields provided.
    Only updates fields that differ from current values.
    A changed due_date re-arms the reminder (reminder_sent goes back to 0).

    Args:
        user_id: Owner of the task; tasks of other users are treated as missing
        task_id: Task ID to update
        **updates: Field names and values to update (see UPDATABLE_FIELDS)
    """
    with get_db() as conn:
        row = conn.execute(
            "SELECT * FROM tasks WHERE id = ? AND user_id = ?",
            (task_id, user_id)
        ).fetchone()
        if not row:
            return None

        # Filter updates: only include fields that differ from current values
        changes = {}
        for field, new_value in updates.items():
            if field not in UPDATABLE_FIELDS or new_value is None:
                continue

            if field == "due_date":
                new_value = to_db_timestamp(new_value)
            elif isinstance(new_value, bool):
                # SQLite stores booleans as integers
                new_value = int(new_value)
            else:
                new_value = _enum_value(new_value)

            if new_value != row[field]:
                changes[field] = new_value

        if "due_date" in changes:
            changes["reminder_sent"] = 0

        # Execute UPDATE only if there are actual changes
        if changes:
            set_clause = ", ".join(f"{field} = ?" for field in changes.keys())
            values = list(changes.values()) + [task_id, user_id]
            conn.execute(f"UPDATE tasks SET {set_clause} WHERE id = ? AND user_id = ?", values)
            conn.commit()
            logger.debug("Task updated id=%s fields=%s", task_id, sorted(changes))

        # Return updated task (re-fetch to get current state)
        updated_row = conn.execute("SELECT * FROM tasks WHERE id = ?", (task_id,)).fetchone()
        return _row_to_task(updated_row)


def delete_task_db(user_id: str, task_id: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM tasks WHERE id = ? AND user_id = ?", (task_id, user_id))
        conn.commit()
        return cursor.rowcount > 0


# Reminder sweep queries. These span all users.
def get_reminder_candidates(start: datetime, end: datetime) -> list[Task]:
    """Incomplete tasks without a sent reminder whose due date lies in [start, end]."""
    with get_db() as conn:
        rows = conn.execute(
            """
            SELECT * FROM tasks
            WHERE completed = 0
              AND reminder_sent = 0
              AND due_date >= ?
              AND due_date <= ?
            ORDER BY due_date
            """,
            (to_db_timestamp(start), to_db_timestamp(end))
        ).fetchall()
        return [_row_to_task(row) for row in rows]


def mark_reminder_sent(task_id: str, due_date: datetime) -> bool:
    """
    Flag the reminder for task_id as sent.
    The write only lands if the task still exists, is still incomplete and
    still has the due date the reminder was sent for. Returns True if it landed.
    """
    with get_db() as conn:
        cursor = conn.execute(
            """
            UPDATE tasks SET reminder_sent = 1
            WHERE id = ? AND completed = 0 AND due_date = ?
            """,
            (task_id, to_db_timestamp(due_date))
        )
        conn.commit()
        return cursor.rowcount == 1


# User notification preferences
def get_notification_preference(user_id: str) -> bool:
    """Whether the user opted in to reminders. Defaults to False when nothing is stored."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT notifications_enabled FROM users WHERE id = ?",
            (user_id,)
        ).fetchone()
        return bool(row["notifications_enabled"]) if row else False


def set_notification_preference(user_id: str, enabled: bool) -> None:
    """Store the preference. Opting out also drops every push address of the user."""
    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO users (id, notifications_enabled) VALUES (?, ?)
            ON CONFLICT(id) DO UPDATE SET notifications_enabled = excluded.notifications_enabled
            """,
            (user_id, int(enabled))
        )
        conn.commit()
    if not enabled:
        unregister_push_tokens(user_id)


# Push address registry
def register_push_token(user_id: str, token: str) -> None:
    """Register a push address. A token moving to another user is re-assigned."""
    created_at = to_db_timestamp(datetime.now(timezone.utc))
    with get_db() as conn:
        conn.execute(
            """
            INSERT INTO push_tokens (token, user_id, created_at) VALUES (?, ?, ?)
            ON CONFLICT(token) DO UPDATE SET user_id = excluded.user_id
            """,
            (token, user_id, created_at)
        )
        conn.commit()


def unregister_push_tokens(user_id: str) -> int:
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM push_tokens WHERE user_id = ?", (user_id,))
        conn.commit()
        if cursor.rowcount:
            logger.info("Deleted %d push tokens for user %s", cursor.rowcount, user_id)
        return cursor.rowcount


def resolve_push_token(user_id: str) -> Optional[str]:
    """The most recently registered push address of the user, if any."""
    with get_db() as conn:
        row = conn.execute(
            "SELECT token FROM push_tokens WHERE user_id = ? ORDER BY created_at DESC LIMIT 1",
            (user_id,)
        ).fetchone()
        return row["token"] if row else None


def delete_push_token(token: str) -> bool:
    with get_db() as conn:
        cursor = conn.execute("DELETE FROM push_tokens WHERE token = ?", (token,))
        conn.commit()
        return cursor.rowcount > 0

"""
Shared pytest fixtures for backend tests.
Each test gets its own SQLite file; the schema is created directly (Alembic is skipped).
"""
import pytest
import sqlite3
import sys
import os

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import database


SCHEMA = """
    CREATE TABLE tasks (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        title TEXT NOT NULL,
        description TEXT,
        due_date TEXT NOT NULL,
        priority TEXT NOT NULL DEFAULT 'Medium',
        category TEXT NOT NULL DEFAULT 'Personal',
        completed INTEGER DEFAULT 0,
        created_at TEXT NOT NULL,
        duration_minutes INTEGER,
        reminder_sent INTEGER DEFAULT 0
    );

    CREATE TABLE users (
        id TEXT PRIMARY KEY,
        notifications_enabled INTEGER DEFAULT 0
    );

    CREATE TABLE push_tokens (
        token TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        created_at TEXT NOT NULL
    );
"""


@pytest.fixture
def test_db(monkeypatch, tmp_path):
    """
    Create an isolated test database for each test.
    Uses a temp file (not :memory:) because database.py opens new connections per operation.
    """
    db_path = str(tmp_path / "test.db")
    monkeypatch.setattr(database, "DATABASE_PATH", db_path)
    monkeypatch.setattr(database, "init_db", lambda: None)

    conn = sqlite3.connect(db_path)
    conn.executescript(SCHEMA)
    conn.commit()
    conn.close()

    yield db_path


@pytest.fixture
def push_sender():
    from fakes import FakePushSender
    return FakePushSender()


@pytest.fixture
def app_client(test_db, monkeypatch, push_sender):
    """
    Create a test client for the FastAPI app.
    init_db is already a no-op and the push sender is replaced by a fake.
    """
    from fastapi.testclient import TestClient
    import config
    import main

    monkeypatch.setattr(main, "push_sender", push_sender)
    monkeypatch.setattr(config, "REMINDER_SWEEP_INTERVAL_SECONDS", 0.0)
    monkeypatch.setattr(config, "CRON_SECRET", None)

    with TestClient(main.app) as client:
        yield client


@pytest.fixture
def auth_headers():
    return {"X-User-Id": "user-1"}

"""
Tests for reminders.py - the periodic reminder sweep and test notifications.
"""
import asyncio
import sys
import os
from datetime import datetime, timedelta, timezone

import pytest

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import database
from database import (
    create_task_db,
    get_task_db,
    register_push_token,
    resolve_push_token,
    set_notification_preference,
    update_task_db,
)
from push import PushResult
from reminders import NotificationError, format_time_until, run_reminder_sweep, send_test_notification


def opt_in(user_id: str, token: str) -> None:
    set_notification_preference(user_id, True)
    register_push_token(user_id, token)


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


class TestReminderSweep:

    @pytest.mark.asyncio
    async def test_sends_once_and_marks_task(self, test_db, push_sender, now):
        opt_in("user-1", "token-1")
        task = create_task_db("user-1", "Dentist", now + timedelta(hours=23))

        report = await run_reminder_sweep(push_sender, now=now)

        assert report.sent == 1
        assert len(push_sender.sent) == 1
        assert push_sender.sent[0].address == "token-1"
        assert push_sender.sent[0].message.title == "Task Reminder"
        assert push_sender.sent[0].message.body == 'Your task "Dentist" is due in about 23 hours.'
        assert get_task_db("user-1", task.id).reminder_sent is True

        second = await run_reminder_sweep(push_sender, now=now)

        assert second.candidates == 0
        assert len(push_sender.sent) == 1

    @pytest.mark.asyncio
    async def test_ignores_tasks_outside_window(self, test_db, push_sender, now):
        opt_in("user-1", "token-1")
        create_task_db("user-1", "Next week", now + timedelta(days=7))
        create_task_db("user-1", "Yesterday", now - timedelta(days=1))
        done = create_task_db("user-1", "Done", now + timedelta(hours=1))
        update_task_db("user-1", done.id, completed=True)

        report = await run_reminder_sweep(push_sender, now=now)

        assert report.candidates == 0
        assert push_sender.sent == []

    @pytest.mark.asyncio
    async def test_skips_opted_out_user(self, test_db, push_sender, now):
        register_push_token("user-1", "token-1")
        task = create_task_db("user-1", "Quiet", now + timedelta(hours=2))

        report = await run_reminder_sweep(push_sender, now=now)

        assert report.skipped == 1
        assert push_sender.sent == []
        assert get_task_db("user-1", task.id).reminder_sent is False

    @pytest.mark.asyncio
    async def test_missing_address_is_skipped_not_fatal(self, test_db, push_sender, now):
        set_notification_preference("user-1", True)
        opt_in("user-2", "token-2")
        create_task_db("user-1", "No device", now + timedelta(hours=1))
        other = create_task_db("user-2", "Has device", now + timedelta(hours=2))

        report = await run_reminder_sweep(push_sender, now=now)

        assert report.skipped == 1
        assert report.sent == 1
        assert [p.address for p in push_sender.sent] == ["token-2"]
        assert get_task_db("user-2", other.id).reminder_sent is True

    @pytest.mark.asyncio
    async def test_delivery_failure_leaves_task_for_next_run(self, test_db, push_sender, now):
        opt_in("user-1", "token-1")
        task = create_task_db("user-1", "Flaky", now + timedelta(hours=1))
        push_sender.results.append(PushResult.failure("gateway returned 503"))

        report = await run_reminder_sweep(push_sender, now=now)

        assert report.failed == 1
        assert get_task_db("user-1", task.id).reminder_sent is False
        assert resolve_push_token("user-1") == "token-1"

    @pytest.mark.asyncio
    async def test_invalid_address_is_removed(self, test_db, push_sender, now):
        opt_in("user-1", "stale-token")
        create_task_db("user-1", "Stale", now + timedelta(hours=1))
        push_sender.results.append(PushResult.failure("not registered", invalid_address=True))

        await run_reminder_sweep(push_sender, now=now)

        assert resolve_push_token("user-1") is None

    @pytest.mark.asyncio
    async def test_one_failing_task_does_not_abort_sweep(self, test_db, push_sender, now, monkeypatch):
        opt_in("user-1", "token-1")
        opt_in("user-2", "token-2")
        broken = create_task_db("user-1", "Broken", now + timedelta(hours=1))
        fine = create_task_db("user-2", "Fine", now + timedelta(hours=2))

        original = database.resolve_push_token

        def resolve(user_id):
            if user_id == "user-1":
                raise RuntimeError("registry down")
            return original(user_id)

        monkeypatch.setattr(database, "resolve_push_token", resolve)

        report = await run_reminder_sweep(push_sender, now=now)

        assert report.failed == 1
        assert report.sent == 1
        assert get_task_db("user-1", broken.id).reminder_sent is False
        assert get_task_db("user-2", fine.id).reminder_sent is True

    @pytest.mark.asyncio
    async def test_custom_lookahead(self, test_db, push_sender, now):
        opt_in("user-1", "token-1")
        create_task_db("user-1", "In two hours", now + timedelta(hours=2))

        report = await run_reminder_sweep(push_sender, now=now, lookahead=timedelta(hours=1))

        assert report.candidates == 0


class TestFormatTimeUntil:

    def test_ranges(self):
        now = datetime(2026, 1, 1, tzinfo=timezone.utc)

        assert format_time_until(now + timedelta(seconds=20), now) == "in less than a minute"
        assert format_time_until(now + timedelta(minutes=1), now) == "in 1 minute"
        assert format_time_until(now + timedelta(minutes=30), now) == "in 30 minutes"
        assert format_time_until(now + timedelta(hours=1), now) == "in about 1 hour"
        assert format_time_until(now + timedelta(hours=23), now) == "in about 23 hours"
        assert format_time_until(now + timedelta(days=2), now) == "in 2 days"


class TestSendTestNotification:

    @pytest.mark.asyncio
    async def test_sends_to_registered_address(self, test_db, push_sender):
        opt_in("user-1", "token-1")

        await send_test_notification("user-1", push_sender)

        assert push_sender.sent[0].message.title == "Test Notification"

    @pytest.mark.asyncio
    async def test_requires_opt_in(self, test_db, push_sender):
        register_push_token("user-1", "token-1")

        with pytest.raises(NotificationError, match="not enabled"):
            await send_test_notification("user-1", push_sender)

    @pytest.mark.asyncio
    async def test_requires_address(self, test_db, push_sender):
        set_notification_preference("user-1", True)

        with pytest.raises(NotificationError, match="No push token"):
            await send_test_notification("user-1", push_sender)


class TestSweepBookkeeping:

    @pytest.mark.asyncio
    async def test_failed_mark_is_counted_once(self, test_db, push_sender, now, monkeypatch):
        opt_in("user-1", "token-1")
        create_task_db("user-1", "Dentist", now + timedelta(hours=2))

        def broken_mark(task_id, due_date):
            raise RuntimeError("database is locked")

        monkeypatch.setattr(database, "mark_reminder_sent", broken_mark)

        report = await run_reminder_sweep(push_sender, now=now)

        assert report.failed == 1
        assert report.sent == 0

    @pytest.mark.asyncio
    async def test_owner_is_notified_after_flag_is_written(self, test_db, push_sender, now):
        opt_in("user-1", "token-1")
        task = create_task_db("user-1", "Dentist", now + timedelta(hours=2))
        changed = []

        async def on_change(user_id):
            changed.append((user_id, get_task_db(user_id, task.id).reminder_sent))

        await run_reminder_sweep(push_sender, now=now, on_change=on_change)

        assert changed == [("user-1", True)]

    @pytest.mark.asyncio
    async def test_no_change_callback_when_flag_not_written(self, test_db, push_sender, now, monkeypatch):
        opt_in("user-1", "token-1")
        create_task_db("user-1", "Dentist", now + timedelta(hours=2))
        monkeypatch.setattr(database, "mark_reminder_sent", lambda task_id, due_date: False)
        changed = []

        async def on_change(user_id):
            changed.append(user_id)

        report = await run_reminder_sweep(push_sender, now=now, on_change=on_change)

        assert report.sent == 1
        assert changed == []

    @pytest.mark.asyncio
    async def test_store_calls_run_off_the_event_loop(self, test_db, push_sender, now, monkeypatch):
        opt_in("user-1", "token-1")
        create_task_db("user-1", "Dentist", now + timedelta(hours=2))
        on_loop = []

        def recording(func):
            def wrapper(*args, **kwargs):
                try:
                    asyncio.get_running_loop()
                    on_loop.append(func.__name__)
                except RuntimeError:
                    pass
                return func(*args, **kwargs)
            return wrapper

        for name in ("get_reminder_candidates", "get_notification_preference",
                     "resolve_push_token", "mark_reminder_sent"):
            monkeypatch.setattr(database, name, recording(getattr(database, name)))

        report = await run_reminder_sweep(push_sender, now=now)

        assert report.sent == 1
        assert on_loop == []

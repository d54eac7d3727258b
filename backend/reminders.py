"""
Reminder sweep.

One sweep run:
- fetches open tasks due within the lookahead window that have no reminder yet,
- skips users who have not opted in or have no push address,
- sends one push per task and flags the task so later runs skip it,
- drops push addresses the gateway reports as stale.

A failure on one task is logged and the sweep moves on to the next.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

import database
from models import Task
from push import PushMessage, PushSender

logger = logging.getLogger(__name__)

DEFAULT_LOOKAHEAD = timedelta(hours=24)

# Called with a user id after one of that user's tasks was flagged as reminded
OnChange = Callable[[str], Awaitable[None]]


class NotificationError(Exception):
    """Raised when a notification cannot be sent to a user at all."""


@dataclass
class SweepReport:
    candidates: int = 0
    sent: int = 0
    skipped: int = 0
    failed: int = 0


def format_time_until(due: datetime, now: datetime) -> str:
    """Rough human distance, e.g. 'in 5 minutes', 'in about 3 hours', 'in 1 day'."""
    seconds = (due - now).total_seconds()
    if seconds < 0:
        return "now"
    minutes = round(seconds / 60)
    if minutes < 1:
        return "in less than a minute"
    if minutes < 45:
        return f"in {minutes} minute{'s' if minutes != 1 else ''}"
    hours = round(minutes / 60)
    if hours < 24:
        return f"in about {hours} hour{'s' if hours != 1 else ''}"
    days = round(hours / 24)
    return f"in {days} day{'s' if days != 1 else ''}"


def build_reminder(task: Task, now: datetime) -> PushMessage:
    return PushMessage(
        title="Task Reminder",
        body=f'Your task "{task.title}" is due {format_time_until(task.due_date, now)}.',
    )


async def _remind(
    task: Task,
    sender: PushSender,
    now: datetime,
    report: SweepReport,
    on_change: Optional[OnChange],
) -> None:
    # Store calls are blocking sqlite; they run in a worker thread
    if not await asyncio.to_thread(database.get_notification_preference, task.user_id):
        logger.info("User %s has notifications disabled. Skipping task %s", task.user_id, task.id)
        report.skipped += 1
        return

    token = await asyncio.to_thread(database.resolve_push_token, task.user_id)
    if not token:
        logger.warning("No push token found for user %s (task %s)", task.user_id, task.id)
        report.skipped += 1
        return

    logger.info('Sending reminder for task "%s" to user %s', task.title, task.user_id)
    result = await sender.send(token, build_reminder(task, now))

    if not result.ok:
        report.failed += 1
        logger.warning("Reminder for task %s not delivered: %s", task.id, result.reason)
        if result.invalid_address:
            await asyncio.to_thread(database.delete_push_token, token)
            logger.info("Removed invalid push token for user %s", task.user_id)
        return

    marked = await asyncio.to_thread(database.mark_reminder_sent, task.id, task.due_date)
    report.sent += 1
    if not marked:
        # Completed, deleted or rescheduled while we were sending
        logger.info("Task %s changed during the sweep; reminder flag not written", task.id)
    elif on_change is not None:
        try:
            await on_change(task.user_id)
        except Exception:
            logger.exception("Refreshing live views failed user=%s", task.user_id)


async def run_reminder_sweep(
    sender: PushSender,
    *,
    now: Optional[datetime] = None,
    lookahead: timedelta = DEFAULT_LOOKAHEAD,
    on_change: Optional[OnChange] = None,
) -> SweepReport:
    """
    Run one sweep and return what happened. Never raises for a single task's failure.

    on_change is awaited with the owner's id whenever a task's reminder flag
    was written, so live views can be refreshed.
    """
    now = now or datetime.now(timezone.utc)
    report = SweepReport()

    tasks = await asyncio.to_thread(database.get_reminder_candidates, now, now + lookahead)
    report.candidates = len(tasks)
    if not tasks:
        logger.info("No tasks found needing reminders.")
        return report

    logger.info("Found %d tasks that need reminders.", len(tasks))
    for task in tasks:
        try:
            await _remind(task, sender, now, report, on_change)
        except Exception:
            report.failed += 1
            logger.exception("Reminder failed task_id=%s", task.id)

    logger.info(
        "Finished processing task reminders: sent=%d skipped=%d failed=%d",
        report.sent, report.skipped, report.failed,
    )
    return report


async def run_reminder_loop(
    sender: PushSender,
    *,
    interval_seconds: float = 300.0,
    lookahead: timedelta = DEFAULT_LOOKAHEAD,
    on_change: Optional[OnChange] = None,
) -> None:
    """
    Sweep every interval_seconds until cancelled.
    A failed run is logged; the next run happens on schedule.
    """
    sleep_s = max(1.0, float(interval_seconds))
    while True:
        try:
            await run_reminder_sweep(sender, lookahead=lookahead, on_change=on_change)
        except Exception:
            logger.exception("Reminder sweep failed")
        await asyncio.sleep(sleep_s)


async def send_test_notification(user_id: str, sender: PushSender) -> None:
    """Send a test push to user_id. Raises NotificationError if that is not possible."""
    logger.info("Sending test notification to user %s", user_id)

    if not await asyncio.to_thread(database.get_notification_preference, user_id):
        raise NotificationError("Notifications are not enabled for this user.")

    token = await asyncio.to_thread(database.resolve_push_token, user_id)
    if not token:
        raise NotificationError("No push token found for this user.")

    result = await sender.send(token, PushMessage(
        title="Test Notification",
        body="This is a test notification from TaskWise!",
    ))
    if not result.ok:
        if result.invalid_address:
            await asyncio.to_thread(database.delete_push_token, token)
        raise NotificationError(f"Test notification failed: {result.reason}")

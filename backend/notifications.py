"""
Local notification scheduler.

Watches a user's live task list and keeps one timer armed per open task that
is due in the future. Whenever a new snapshot arrives the scheduler
reconciles: every timer is cancelled, then fresh timers are armed from the
snapshot. A timer therefore can never outlive the snapshot it was armed
from, so tasks deleted or completed in the meantime never fire.

State machine:
    Disabled --enable--> Enabled
    Enabled  --reconcile(snapshot)--> Enabled (timers re-armed)
    Enabled  --disable--> Disabled (all timers cancelled)

The scheduler belongs to a client session, not to the HTTP app. A client
embeds it by subscribing to its user's feed and handing the subscription
to watch(), with a notify callback that shows the notification:

    scheduler = NotificationScheduler(show_notification)
    scheduler.enable()
    await watch(feed.subscribe(user_id, tasks), scheduler)
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Callable, Iterable, Mapping, Optional

from models import Task

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LocalNotification:
    # Keyed by task id so the same task never shows two notifications
    tag: str
    title: str
    body: str


Notify = Callable[[LocalNotification], None]
Clock = Callable[[], datetime]


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def build_notification(task: Task) -> LocalNotification:
    return LocalNotification(
        tag=task.id,
        title=f"Task Reminder: {task.title}",
        body="Your task is due now.",
    )


class NotificationScheduler:
    """
    Owns the registry task id -> timer handle for one user session.

    The registry lives and dies with the instance: it is filled while
    enabled and emptied by disable() and close().
    """

    def __init__(
        self,
        notify: Notify,
        *,
        clock: Clock = _utc_now,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self._notify = notify
        self._clock = clock
        self._loop = loop
        self._timers: dict[str, asyncio.TimerHandle] = {}
        self._enabled = False
        self._latest: tuple[Task, ...] = ()

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def pending(self) -> Mapping[str, asyncio.TimerHandle]:
        """Read-only view of the currently armed timers, by task id."""
        return MappingProxyType(self._timers)

    def enable(self) -> None:
        if self._enabled:
            return
        self._enabled = True
        logger.info("Local notifications enabled")
        self._rearm()

    def disable(self) -> None:
        if not self._enabled:
            return
        self._enabled = False
        self.cancel_all()
        logger.info("Local notifications disabled")

    def close(self) -> None:
        """Tear down: cancel everything and forget the last snapshot."""
        self.disable()
        self.cancel_all()
        self._latest = ()

    def cancel_all(self) -> None:
        for handle in self._timers.values():
            handle.cancel()
        self._timers.clear()

    def reconcile(self, snapshot: Iterable[Task]) -> int:
        """
        Replace all timers with ones derived from snapshot.
        Returns the number of timers armed (0 while disabled).
        """
        # Keep our own copy; the caller's snapshot is never modified
        self._latest = tuple(snapshot)
        if not self._enabled:
            return 0
        return self._rearm()

    def _rearm(self) -> int:
        self.cancel_all()
        now = self._clock()
        due = [task for task in self._latest if not task.completed and task.due_date > now]
        if not due:
            return 0
        loop = self._loop or asyncio.get_running_loop()
        for task in due:
            delay = (task.due_date - now).total_seconds()
            previous = self._timers.get(task.id)
            if previous is not None:
                previous.cancel()
            self._timers[task.id] = loop.call_later(delay, self._fire, task)
        logger.debug("Armed %d notification timers", len(self._timers))
        return len(self._timers)

    def _fire(self, task: Task) -> None:
        self._timers.pop(task.id, None)
        try:
            self._notify(build_notification(task))
        except Exception:
            logger.exception("Local notification failed task_id=%s", task.id)


async def watch(subscription, scheduler: NotificationScheduler) -> None:
    """
    Reconcile scheduler against every snapshot of subscription until the
    subscription is closed, then tear the scheduler down.
    """
    try:
        async for snapshot in subscription:
            scheduler.reconcile(snapshot)
    finally:
        scheduler.close()

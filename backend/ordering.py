"""
Ordering and filtering of a user's task list.

Everything here is pure: functions take a snapshot (any iterable of tasks) and
return new lists without touching the input. Calendar questions ("today",
"this week") are answered in the time zone of the `now` argument, which
defaults to the local zone of the server.
"""
from datetime import date, datetime, timedelta
from typing import Iterable, Optional

from models import ALL, Priority, StatusFilter, Task

PRIORITY_RANK = {
    Priority.CRITICAL.value: 5,
    Priority.HIGH.value: 4,
    Priority.MEDIUM.value: 3,
    Priority.LOW.value: 2,
    Priority.VERY_LOW.value: 1,
}


def local_now() -> datetime:
    return datetime.now().astimezone()


def resolve_now(now: Optional[datetime]) -> datetime:
    if now is None:
        return local_now()
    # Naive values are read as local wall-clock time
    return now if now.tzinfo is not None else now.astimezone()


def priority_rank(priority) -> int:
    """Rank 5 (Critical) .. 1 (Very Low); anything unknown ranks 0."""
    return PRIORITY_RANK.get(getattr(priority, "value", priority), 0)


def _sort_key(task: Task):
    return (task.completed, -priority_rank(task.priority), task.due_date, task.created_at)


def sort_tasks(tasks: Iterable[Task]) -> list[Task]:
    """
    Display order:
    1. incomplete before completed
    2. higher priority first
    3. earlier due date first
    4. earlier creation first
    Full ties keep their input order (sorted() is stable).
    """
    return sorted(tasks, key=_sort_key)


def _local_day(moment: datetime, now: datetime) -> date:
    return moment.astimezone(now.tzinfo).date()


def is_due_today(task: Task, now: datetime) -> bool:
    return _local_day(task.due_date, now) == now.date()


def is_past_due(task: Task, now: datetime) -> bool:
    """Overdue by at least a calendar day: a task due earlier today is not past due."""
    return (
        not task.completed
        and task.due_date < now
        and not is_due_today(task, now)
    )


def matches_status(task: Task, status, now: Optional[datetime] = None) -> bool:
    try:
        status = StatusFilter(status)
    except ValueError:
        return False
    if status is StatusFilter.ALL:
        return True
    if status is StatusFilter.COMPLETED:
        return task.completed
    # Every remaining bucket is for open work only
    if task.completed:
        return False

    now = resolve_now(now)
    today = now.date()

    if status is StatusFilter.PAST_DUE:
        return is_past_due(task, now)
    if status is StatusFilter.DUE_TODAY:
        return is_due_today(task, now)
    if status is StatusFilter.DUE_THIS_WEEK:
        # Weeks start on Monday; earlier days of the current week are excluded
        week_end = today - timedelta(days=today.weekday()) + timedelta(days=7)
        return today <= _local_day(task.due_date, now) < week_end
    if status is StatusFilter.UPCOMING:
        return task.due_date > now
    return False


def _matches_choice(value, wanted) -> bool:
    wanted = getattr(wanted, "value", wanted)
    if wanted is None or wanted == ALL:
        return True
    return getattr(value, "value", value) == wanted


def matches_priority(task: Task, priority) -> bool:
    return _matches_choice(task.priority, priority)


def matches_category(task: Task, category) -> bool:
    return _matches_choice(task.category, category)


def filter_tasks(
    tasks: Iterable[Task],
    status=StatusFilter.ALL,
    priority=ALL,
    category=ALL,
    now: Optional[datetime] = None,
) -> list[Task]:
    now = resolve_now(now)
    return [
        task for task in tasks
        if matches_status(task, status, now)
        and matches_priority(task, priority)
        and matches_category(task, category)
    ]


def task_view(
    tasks: Iterable[Task],
    status=StatusFilter.ALL,
    priority=ALL,
    category=ALL,
    now: Optional[datetime] = None,
) -> list[Task]:
    """The exact sequence to show for a requested view: filter, then sort."""
    return sort_tasks(filter_tasks(tasks, status, priority, category, now))

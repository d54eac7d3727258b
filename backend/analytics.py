from collections import Counter
from datetime import datetime
from typing import Iterable, Optional

from models import Category, DistributionEntry, Priority, Task, TaskStats, TrendEntry
from ordering import is_past_due, resolve_now


def compute_stats(tasks: Iterable[Task], now: Optional[datetime] = None) -> TaskStats:
    """Aggregate numbers for the analytics page, computed from one snapshot."""
    tasks = list(tasks)
    now = resolve_now(now)

    total = len(tasks)
    completed = sum(1 for task in tasks if task.completed)
    overdue = sum(1 for task in tasks if is_past_due(task, now))

    priorities = Counter(task.priority for task in tasks)
    categories = Counter(task.category for task in tasks)

    # Completion time is not stored; completed tasks are bucketed by due day
    per_day = Counter(
        task.due_date.astimezone(now.tzinfo).date().isoformat()
        for task in tasks if task.completed
    )

    return TaskStats(
        total_tasks=total,
        completed_tasks=completed,
        pending_tasks=total - completed,
        overdue_tasks=overdue,
        completion_rate=(completed / total) * 100 if total else 0.0,
        priority_distribution=[
            DistributionEntry(name=p.value, value=priorities.get(p.value, 0)) for p in Priority
        ],
        category_distribution=[
            DistributionEntry(name=c.value, value=categories.get(c.value, 0)) for c in Category
        ],
        completion_trend=[
            TrendEntry(date=day, count=count) for day, count in sorted(per_day.items())
        ],
    )

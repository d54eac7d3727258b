"""
Tests for ordering.py - display order and status/priority/category filters.
All tests pin "now" to a Wednesday noon (UTC) so calendar buckets are deterministic.
"""
import itertools
import random
import sys
import os
from datetime import timedelta

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from fakes import NOW, make_task
from models import StatusFilter
from ordering import (
    filter_tasks,
    is_past_due,
    matches_status,
    priority_rank,
    sort_tasks,
    task_view,
)


def ids(tasks):
    return [task.id for task in tasks]


class TestSortOrder:
    """Tests for the multi-key display order."""

    def test_incomplete_before_completed_regardless_of_other_fields(self):
        done = make_task("done", priority="Critical", due=NOW - timedelta(days=3), completed=True)
        open_ = make_task("open", priority="Very Low", due=NOW + timedelta(days=30))

        assert ids(sort_tasks([done, open_])) == ["open", "done"]

    def test_higher_priority_first(self):
        tasks = [
            make_task("low", priority="Low"),
            make_task("critical", priority="Critical"),
            make_task("very-low", priority="Very Low"),
            make_task("medium", priority="Medium"),
            make_task("high", priority="High"),
        ]

        assert ids(sort_tasks(tasks)) == ["critical", "high", "medium", "low", "very-low"]

    def test_earlier_due_date_breaks_priority_ties(self):
        later = make_task("later", due=NOW + timedelta(hours=5))
        sooner = make_task("sooner", due=NOW + timedelta(hours=2))

        assert ids(sort_tasks([later, sooner])) == ["sooner", "later"]

    def test_earlier_creation_breaks_due_date_ties(self):
        due = NOW + timedelta(hours=3)
        newer = make_task("newer", due=due, created=NOW - timedelta(minutes=5))
        older = make_task("older", due=due, created=NOW - timedelta(hours=5))

        assert ids(sort_tasks([newer, older])) == ["older", "newer"]

    def test_full_ties_keep_input_order(self):
        first = make_task("first")
        second = make_task("second")

        assert ids(sort_tasks([first, second])) == ["first", "second"]
        assert ids(sort_tasks([second, first])) == ["second", "first"]

    def test_sort_is_idempotent(self):
        rng = random.Random(7)
        tasks = [
            make_task(
                f"t{i}",
                priority=rng.choice(["Critical", "High", "Medium", "Low", "Very Low"]),
                due=NOW + timedelta(hours=rng.randint(-48, 48)),
                created=NOW - timedelta(hours=rng.randint(1, 5)),
                completed=rng.random() < 0.3,
            )
            for i in range(40)
        ]

        once = sort_tasks(tasks)
        assert sort_tasks(once) == once

    def test_any_permutation_gives_same_order_without_full_ties(self):
        tasks = [
            make_task("a", priority="High", due=NOW + timedelta(hours=1)),
            make_task("b", priority="High", due=NOW + timedelta(hours=2)),
            make_task("c", priority="Critical", due=NOW + timedelta(hours=9)),
            make_task("d", priority="Critical", due=NOW + timedelta(hours=1), completed=True),
        ]

        expected = ["c", "a", "b", "d"]
        for permutation in itertools.permutations(tasks):
            assert ids(sort_tasks(permutation)) == expected

    def test_input_is_not_modified(self):
        tasks = [make_task("low", priority="Low"), make_task("high", priority="High")]
        before = list(tasks)

        sort_tasks(tasks)

        assert tasks == before

    def test_unknown_priority_ranks_below_very_low(self):
        legacy = make_task("legacy", priority="Urgent")
        very_low = make_task("very-low", priority="Very Low")

        assert priority_rank("Urgent") == 0
        assert ids(sort_tasks([legacy, very_low])) == ["very-low", "legacy"]


class TestStatusFilter:
    """Tests for the status buckets."""

    def test_completed_returns_exactly_completed_tasks(self):
        tasks = [
            make_task("done-past", completed=True, due=NOW - timedelta(days=10)),
            make_task("done-future", completed=True, due=NOW + timedelta(days=10)),
            make_task("open", due=NOW + timedelta(days=1)),
        ]

        assert ids(filter_tasks(tasks, StatusFilter.COMPLETED, now=NOW)) == ["done-past", "done-future"]

    def test_past_due_excludes_today_even_when_time_passed(self):
        earlier_today = make_task("earlier-today", due=NOW - timedelta(hours=3))
        yesterday = make_task("yesterday", due=NOW - timedelta(days=1))

        result = filter_tasks([earlier_today, yesterday], StatusFilter.PAST_DUE, now=NOW)

        assert ids(result) == ["yesterday"]
        assert not is_past_due(earlier_today, NOW)

    def test_due_today_uses_calendar_day(self):
        tasks = [
            make_task("this-morning", due=NOW.replace(hour=0, minute=5)),
            make_task("tonight", due=NOW.replace(hour=23, minute=59)),
            make_task("tomorrow", due=NOW + timedelta(days=1)),
        ]

        assert ids(filter_tasks(tasks, StatusFilter.DUE_TODAY, now=NOW)) == ["this-morning", "tonight"]

    def test_due_this_week_is_today_through_sunday(self):
        monday = NOW - timedelta(days=2)
        sunday_night = (NOW + timedelta(days=4)).replace(hour=23)
        next_monday = NOW + timedelta(days=5)
        tasks = [
            make_task("monday", due=monday),
            make_task("today", due=NOW - timedelta(hours=1)),
            make_task("sunday", due=sunday_night),
            make_task("next-monday", due=next_monday),
        ]

        assert ids(filter_tasks(tasks, StatusFilter.DUE_THIS_WEEK, now=NOW)) == ["today", "sunday"]

    def test_upcoming_is_strictly_after_now(self):
        tasks = [
            make_task("exactly-now", due=NOW),
            make_task("soon", due=NOW + timedelta(seconds=1)),
        ]

        assert ids(filter_tasks(tasks, StatusFilter.UPCOMING, now=NOW)) == ["soon"]

    def test_completed_task_matches_only_completed_and_all(self):
        done = make_task("done", completed=True, due=NOW - timedelta(days=2))

        assert matches_status(done, StatusFilter.ALL, NOW)
        assert matches_status(done, StatusFilter.COMPLETED, NOW)
        for status in (
            StatusFilter.PAST_DUE,
            StatusFilter.DUE_TODAY,
            StatusFilter.DUE_THIS_WEEK,
            StatusFilter.UPCOMING,
        ):
            assert not matches_status(done, status, NOW)

    def test_status_accepts_plain_strings(self):
        task = make_task("t", due=NOW + timedelta(hours=1))

        assert matches_status(task, "upcoming", NOW)
        assert not matches_status(task, "someday", NOW)

    def test_day_boundaries_follow_the_zone_of_now(self):
        from datetime import timezone
        # 23:30 UTC on Wednesday is already Thursday at UTC+2
        task = make_task("late", due=NOW.replace(hour=23, minute=30))
        plus_two = NOW.astimezone(timezone(timedelta(hours=2)))

        assert matches_status(task, StatusFilter.DUE_TODAY, NOW)
        assert not matches_status(task, StatusFilter.DUE_TODAY, plus_two)


class TestPriorityAndCategoryFilters:

    def test_priority_exact_match(self):
        tasks = [make_task("c", priority="Critical"), make_task("h", priority="High")]

        assert ids(filter_tasks(tasks, priority="High", now=NOW)) == ["h"]
        assert ids(filter_tasks(tasks, priority="all", now=NOW)) == ["c", "h"]

    def test_category_exact_match(self):
        tasks = [make_task("w", category="Work"), make_task("s", category="Study")]

        assert ids(filter_tasks(tasks, category="Study", now=NOW)) == ["s"]

    def test_unknown_values_only_match_all(self):
        legacy = make_task("legacy", priority="Urgent", category="Errands")

        assert ids(filter_tasks([legacy], now=NOW)) == ["legacy"]
        assert filter_tasks([legacy], priority="High", now=NOW) == []
        assert filter_tasks([legacy], category="Work", now=NOW) == []

    def test_filters_combine_with_and(self):
        tasks = [
            make_task("match", priority="High", category="Health", due=NOW + timedelta(hours=2)),
            make_task("wrong-category", priority="High", category="Work", due=NOW + timedelta(hours=2)),
            make_task("wrong-status", priority="High", category="Health", completed=True),
        ]

        result = filter_tasks(tasks, StatusFilter.UPCOMING, "High", "Health", now=NOW)

        assert ids(result) == ["match"]


class TestTaskView:
    """End-to-end scenario over filter + sort."""

    def setup_method(self):
        self.a = make_task("A", priority="Critical", due=NOW + timedelta(hours=1))
        self.b = make_task("B", priority="High", due=NOW - timedelta(hours=1))
        self.c = make_task("C", priority="Critical", due=NOW + timedelta(hours=2), completed=True)
        self.tasks = [self.c, self.b, self.a]

    def test_all(self):
        assert ids(task_view(self.tasks, now=NOW)) == ["A", "B", "C"]

    def test_upcoming_drops_past_and_completed(self):
        assert ids(task_view(self.tasks, StatusFilter.UPCOMING, now=NOW)) == ["A"]

    def test_completed(self):
        assert ids(task_view(self.tasks, StatusFilter.COMPLETED, now=NOW)) == ["C"]

    def test_due_today(self):
        assert ids(task_view(self.tasks, StatusFilter.DUE_TODAY, now=NOW)) == ["A", "B"]

    def test_past_due_is_empty_when_only_today_has_passed(self):
        assert task_view(self.tasks, StatusFilter.PAST_DUE, now=NOW) == []

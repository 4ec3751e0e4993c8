"""
Tests for turning task snapshots into sorted occurrence lists.
"""

import pytest
from datetime import date, datetime

from taskcal.item import TaskDefinition
from taskcal.recurrence import ClampPolicy, Ends, RecurrenceRule
from taskcal.resolver import (
    Resolver,
    Snapshot,
    Window,
    find_occurrence,
    group_by_date,
    resolve,
)

NOW = date(2024, 1, 10)
JANUARY = Window.month_of(date(2024, 1, 1))


def task(task_id, **fields):
    fields.setdefault("title", f"task {task_id}")
    return TaskDefinition(id=task_id, **fields)


def series(task_id, rule, **fields):
    return task(task_id, recurrence=rule, date=rule.starts, **fields)


@pytest.mark.unit
class TestWindow:
    def test_week_of(self):
        w = Window.week_of(date(2024, 1, 10))
        assert (w.start, w.end) == (date(2024, 1, 8), date(2024, 1, 14))

    def test_week_of_sunday_start(self):
        w = Window.week_of(date(2024, 1, 10), week_starts_monday=False)
        assert (w.start, w.end) == (date(2024, 1, 7), date(2024, 1, 13))

    def test_month_of(self):
        assert Window.month_of(date(2024, 2, 10)) == Window(date(2024, 2, 1), date(2024, 2, 29))

    def test_contains(self):
        w = Window.day(date(2024, 1, 10))
        assert w.contains(date(2024, 1, 10))
        assert not w.contains(date(2024, 1, 11))
        assert Window.unbounded().contains(date(1999, 1, 1))


@pytest.mark.unit
class TestResolve:
    def test_skipped_occurrence_is_dropped(self, weekly_rule):
        t = series("1", weekly_rule, skipped_dates=frozenset({"2024-01-08"}))
        dates = [o.date for o in resolve([t], JANUARY, NOW)]
        assert dates == [date(2024, 1, 1), date(2024, 1, 15)]

    def test_skip_wins_over_completed(self, weekly_rule):
        t = series(
            "1",
            weekly_rule,
            skipped_dates=frozenset({"2024-01-08"}),
            completed_dates=frozenset({"2024-01-08", "2024-01-15"}),
        )
        occs = resolve([t], JANUARY, NOW)
        assert [(o.iso_date, o.done) for o in occs] == [
            ("2024-01-01", False),
            ("2024-01-15", True),
        ]

    def test_completed_dates_outside_rule_are_ignored(self, weekly_rule):
        t = series("1", weekly_rule, completed_dates=frozenset({"2024-01-09"}))
        assert not any(o.done for o in resolve([t], JANUARY, NOW))

    def test_singleton_in_and_out_of_window(self):
        inside = task("1", date=date(2024, 1, 10))
        outside = task("2", date=date(2024, 2, 10))
        occs = resolve([inside, outside], Window.week_of(NOW), NOW)
        assert [o.task_id for o in occs] == ["1"]
        assert occs[0].recurring is False

    def test_singleton_done_status(self):
        t = task("1", date=date(2024, 1, 10), status="done")
        assert resolve([t], Window.day(NOW), NOW)[0].done

    def test_undated_tasks(self):
        t = task("1")
        assert resolve([t], Window.unbounded(), NOW) == []
        occs = resolve([t], Window.unbounded(), NOW, include_undated=True)
        assert len(occs) == 1
        assert occs[0].date is None
        assert occs[0].key == ("1", None)

    def test_sort_order(self):
        created_early = datetime(2024, 1, 1, 8, 0)
        created_late = datetime(2024, 1, 2, 8, 0)
        tasks = [
            task("untimed", date=date(2024, 1, 10), created_at=created_early),
            task("late", date=date(2024, 1, 10), time="15:00", created_at=created_early),
            task("newer", date=date(2024, 1, 10), time="09:00", created_at=created_late),
            task("older", date=date(2024, 1, 10), time="09:00", created_at=created_early),
            task("unknown", date=date(2024, 1, 10), time="09:00"),
            task("yesterday", date=date(2024, 1, 9), time="23:00"),
        ]
        occs = resolve(tasks, Window.week_of(NOW), NOW)
        assert [o.task_id for o in occs] == [
            "yesterday",
            "unknown",
            "older",
            "newer",
            "late",
            "untimed",
        ]

    def test_rule_time_is_used(self):
        rule = RecurrenceRule(every=1, unit="day", starts=date(2024, 1, 10), time="07:30")
        t = series("1", rule, time=None)
        assert resolve([t], Window.day(NOW), NOW)[0].time == "07:30"

    def test_missing_title_reads_untitled(self):
        t = TaskDefinition(id="1", title="  ", date=date(2024, 1, 10))
        assert resolve([t], Window.day(NOW), NOW)[0].title == "Untitled"

    def test_deterministic(self, weekly_rule):
        tasks = [series("1", weekly_rule), task("2", date=date(2024, 1, 8))]
        assert resolve(tasks, JANUARY, NOW) == resolve(tasks, JANUARY, NOW)


@pytest.mark.unit
class TestLookups:
    def test_group_by_date(self, weekly_rule):
        tasks = [series("1", weekly_rule), task("2", date=date(2024, 1, 8)), task("3")]
        grouped = group_by_date(resolve(tasks, JANUARY, NOW, include_undated=True))
        assert sorted(grouped) == ["2024-01-01", "2024-01-08", "2024-01-15"]
        assert [o.task_id for o in grouped["2024-01-08"]] == ["1", "2"]

    def test_find_occurrence(self, weekly_rule):
        occs = resolve([series("1", weekly_rule)], JANUARY, NOW)
        found = find_occurrence(occs, "1", "2024-01-15")
        assert found is not None and found.date == date(2024, 1, 15)
        assert find_occurrence(occs, "1", "2024-01-16") is None
        assert find_occurrence(occs, "2", "2024-01-15") is None


@pytest.mark.unit
class TestResolverMemo:
    def test_same_version_is_memoized(self, weekly_rule):
        resolver = Resolver()
        snap = Snapshot(1, (series("1", weekly_rule),))
        first = resolver.resolve(snap, JANUARY, NOW)
        assert resolver.resolve(snap, JANUARY, NOW) is first

    def test_new_version_recomputes(self, weekly_rule):
        resolver = Resolver()
        before = resolver.resolve(Snapshot(1, (series("1", weekly_rule),)), JANUARY, NOW)
        updated = series("1", weekly_rule, completed_dates=frozenset({"2024-01-01"}))
        after = resolver.resolve(Snapshot(2, (updated,)), JANUARY, NOW)
        assert not before[0].done
        assert after[0].done

    def test_policy_is_applied(self):
        rule = RecurrenceRule(every=1, unit="year", starts=date(2024, 1, 1), ends=Ends.never())
        snap = Snapshot(1, (series("1", rule),))
        resolver = Resolver(ClampPolicy(lookback_years=1, lookahead_years=1))
        dates = [o.date for o in resolver.resolve(snap, Window.unbounded(), NOW)]
        assert dates == [date(2024, 1, 1), date(2025, 1, 1)]

    def test_by_date(self, weekly_rule):
        resolver = Resolver()
        snap = Snapshot(1, (series("1", weekly_rule),))
        grouped = resolver.by_date(snap, Window.week_of(NOW), NOW)
        assert list(grouped) == ["2024-01-08"]

    def test_memo_is_bounded(self, weekly_rule):
        resolver = Resolver(memo_size=4)
        snap = Snapshot(1, (series("1", weekly_rule),))
        first = Window.day(date(2024, 1, 1))
        kept = resolver.resolve(snap, first, NOW)
        for offset in range(1, 10):
            resolver.resolve(snap, Window.day(date(2024, 2, offset)), NOW)
        assert len(resolver._memo) == 4
        # the oldest window was dropped and is computed again
        assert resolver.resolve(snap, first, NOW) is not kept
        assert resolver.resolve(snap, first, NOW) == kept


@pytest.mark.unit
def test_offset_and_naive_created_at_sort_together():
    docs = {
        "1": {"text": "utc", "date": "2024-01-10", "createdAt": "2024-01-01T08:00:00Z"},
        "2": {"text": "local", "date": "2024-01-10", "createdAt": "2024-01-02T08:00:00"},
        "3": {"text": "unknown", "date": "2024-01-10"},
    }
    tasks = [TaskDefinition.from_dict(task_id, doc) for task_id, doc in docs.items()]
    assert all(t.created_at is None or t.created_at.tzinfo is None for t in tasks)
    occs = resolve(tasks, Window.day(NOW), NOW)
    assert [o.title for o in occs] == ["unknown", "utc", "local"]

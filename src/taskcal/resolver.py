"""
Turn a snapshot of task definitions into the sorted occurrence list that
the week view, the board and the agenda all render from.
"""

from __future__ import annotations

from collections import OrderedDict, defaultdict
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Optional

from .dates import add_days, as_date, end_of_month, start_of_month, start_of_week
from .item import Occurrence, TaskDefinition
from .recurrence import DEFAULT_POLICY, ClampPolicy, expand
from .shared import NO_TIME

MEMO_SIZE = 16  # windows kept per snapshot version


@dataclass(frozen=True)
class Window:
    """Closed date range; ``None`` on either side means unbounded."""

    start: Optional[date] = None
    end: Optional[date] = None

    @classmethod
    def unbounded(cls) -> "Window":
        return cls(None, None)

    @classmethod
    def day(cls, d: date | datetime) -> "Window":
        d = as_date(d)
        return cls(d, d)

    @classmethod
    def week_of(cls, d: date | datetime, week_starts_monday: bool = True) -> "Window":
        first = start_of_week(d, week_starts_monday)
        return cls(first, add_days(first, 6))

    @classmethod
    def month_of(cls, d: date | datetime) -> "Window":
        return cls(start_of_month(d), end_of_month(d))

    def contains(self, d: date) -> bool:
        if self.start is not None and d < self.start:
            return False
        if self.end is not None and d > self.end:
            return False
        return True


@dataclass(frozen=True)
class Snapshot:
    """
    One pushed copy of the full task collection.  ``version`` identifies
    the snapshot; two snapshots with the same version hold the same tasks.
    """

    version: int
    tasks: tuple[TaskDefinition, ...] = field(default_factory=tuple)

    def get(self, task_id: str) -> TaskDefinition | None:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None


def sort_key(occ: Occurrence):
    """date, then time (untimed last), then creation order."""
    return (
        occ.date is None,
        occ.date or date.max,
        occ.time or NO_TIME,
        occ.created_at or datetime.min,
    )


def occurrences_for_task(
    task: TaskDefinition,
    window: Window,
    now: date,
    policy: ClampPolicy = DEFAULT_POLICY,
    include_undated: bool = False,
) -> list[Occurrence]:
    if task.is_recurring:
        dates = expand(
            task.recurrence,
            window.start,
            window.end,
            now,
            created_at=task.created_at,
            policy=policy,
        )
        out = []
        for d in dates:
            iso = d.isoformat()
            if iso in task.skipped_dates:
                continue
            out.append(Occurrence.from_task(task, d, iso in task.completed_dates))
        return out

    if task.date is None:
        if include_undated:
            return [Occurrence.from_task(task, None, task.is_done)]
        return []
    if window.contains(task.date):
        return [Occurrence.from_task(task, task.date, task.is_done)]
    return []


def resolve(
    tasks: Iterable[TaskDefinition],
    window: Window = Window.unbounded(),
    now: date | datetime | None = None,
    policy: ClampPolicy = DEFAULT_POLICY,
    include_undated: bool = False,
) -> list[Occurrence]:
    """
    Expand every task into its occurrences inside ``window`` and return them
    merged and sorted.  Skipped dates are dropped before completion is
    looked at, so a date in both sets never shows up as done.
    """
    today = as_date(now) if now is not None else date.today()
    merged: list[Occurrence] = []
    for task in tasks:
        merged.extend(
            occurrences_for_task(task, window, today, policy, include_undated)
        )
    # sorted() is stable so equal keys keep snapshot order
    return sorted(merged, key=sort_key)


def group_by_date(occurrences: Iterable[Occurrence]) -> dict[str, list[Occurrence]]:
    grouped: dict[str, list[Occurrence]] = defaultdict(list)
    for occ in occurrences:
        if occ.date is not None:
            grouped[occ.iso_date].append(occ)
    return dict(grouped)


def find_occurrence(
    occurrences: Iterable[Occurrence], task_id: str, iso_date: str | None
) -> Occurrence | None:
    """Locate an occurrence again by its identity; None when it is gone."""
    for occ in occurrences:
        if occ.task_id == task_id and occ.iso_date == iso_date:
            return occ
    return None


class Resolver:
    """
    ``resolve`` with a memo keyed on (snapshot version, window, today).
    The memo is emptied as soon as a snapshot with a new version is seen,
    and holds at most ``memo_size`` windows, dropping the least recently used.
    """

    def __init__(self, policy: ClampPolicy = DEFAULT_POLICY, memo_size: int = MEMO_SIZE):
        self.policy = policy
        self.memo_size = memo_size
        self._version: int | None = None
        self._memo: OrderedDict[tuple, tuple[Occurrence, ...]] = OrderedDict()

    def resolve(
        self,
        snapshot: Snapshot,
        window: Window = Window.unbounded(),
        now: date | datetime | None = None,
        include_undated: bool = False,
    ) -> tuple[Occurrence, ...]:
        today = as_date(now) if now is not None else date.today()
        if snapshot.version != self._version:
            self._memo.clear()
            self._version = snapshot.version
        key = (window, today, include_undated)
        if key in self._memo:
            self._memo.move_to_end(key)
            return self._memo[key]
        result = tuple(
            resolve(snapshot.tasks, window, today, self.policy, include_undated)
        )
        self._memo[key] = result
        while len(self._memo) > self.memo_size:
            self._memo.popitem(last=False)
        return result

    def by_date(
        self,
        snapshot: Snapshot,
        window: Window,
        now: date | datetime | None = None,
    ) -> dict[str, list[Occurrence]]:
        return group_by_date(self.resolve(snapshot, window, now))

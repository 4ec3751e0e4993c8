"""
Occurrence and series mutations.

Nothing here touches storage: each function returns the ``Patch`` a store
must apply.  Patches carry whole replacement values (a full date list, not
an "add this date" delta), so applying one twice leaves the store as
applying it once.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Iterable, Literal, Optional

from .dates import as_date, parse_iso_date, to_iso_date
from .item import (
    ACTIVE,
    DEFAULT_LEVEL,
    DEFAULT_LIST,
    DIFFICULTIES,
    DONE,
    IMPORTANCES,
    TaskDefinition,
    TaskError,
    fmt_timestamp,
    list_key,
    validate_new_title,
)
from .recurrence import RecurrenceRule, occurs_on
from .shared import parse_time_of_day

PatchOp = Literal["create", "update", "delete"]


class MutationError(ValueError):
    """Raised for a mutation that makes no sense for the given task."""


@dataclass(frozen=True)
class Patch:
    op: PatchOp
    task_id: Optional[str] = None
    fields: dict = field(default_factory=dict)


def _iso(d: date | datetime | str) -> str:
    if isinstance(d, str):
        return d
    return to_iso_date(as_date(d))


def _check_occurs(task: TaskDefinition, iso: str) -> None:
    try:
        d = parse_iso_date(iso)
    except ValueError as e:
        raise MutationError(f"bad occurrence date {iso!r}") from e
    if not occurs_on(task.recurrence, d):
        raise MutationError(f"task {task.id} does not occur on {iso}")


def toggle_occurrence_done(
    task: TaskDefinition,
    on: date | str | None,
    done: bool,
    now: datetime | None = None,
) -> Patch:
    if task.is_recurring:
        if on is None:
            raise MutationError(f"task {task.id} repeats: an occurrence date is needed")
        completed = set(task.completed_dates)
        if done:
            _check_occurs(task, _iso(on))
            completed.add(_iso(on))
        else:
            completed.discard(_iso(on))
        return Patch("update", task.id, {"completedDates": sorted(completed)})

    if done and task.is_done and task.completed_at is not None:
        # keep the first completion time
        stamp = task.completed_at
    else:
        stamp = (now or datetime.now()) if done else None
    return Patch(
        "update",
        task.id,
        {"status": DONE if done else ACTIVE, "completedAt": fmt_timestamp(stamp)},
    )


def delete_occurrence(task: TaskDefinition, on: date | str) -> Patch:
    """Hide one occurrence of a series; it can no longer count as completed."""
    if not task.is_recurring:
        raise MutationError(
            f"task {task.id} does not repeat: delete the task instead"
        )
    iso = _iso(on)
    _check_occurs(task, iso)
    skipped = set(task.skipped_dates)
    skipped.add(iso)
    completed = set(task.completed_dates)
    completed.discard(iso)
    return Patch(
        "update",
        task.id,
        {"skippedDates": sorted(skipped), "completedDates": sorted(completed)},
    )


def restore_occurrence(task: TaskDefinition, on: date | str) -> Patch:
    if not task.is_recurring:
        raise MutationError(f"task {task.id} does not repeat")
    skipped = set(task.skipped_dates)
    skipped.discard(_iso(on))
    return Patch("update", task.id, {"skippedDates": sorted(skipped)})


def delete_series(task: TaskDefinition) -> Patch:
    return Patch("delete", task.id)


def _check_level(name: str, value: str, allowed: tuple[str, ...]) -> str:
    if value not in allowed:
        raise TaskError(f"{name} must be one of {', '.join(allowed)}, got {value!r}")
    return value


_UNSET = object()


def edit_series(
    task: TaskDefinition,
    *,
    title: str | None = None,
    list_name: str | None = None,
    difficulty: str | None = None,
    importance: str | None = None,
    on: date | None | object = _UNSET,
    time: str | None | object = _UNSET,
    recurrence: RecurrenceRule | None | object = _UNSET,
) -> Patch:
    """
    Edit a task as a whole.  Only the keyword arguments given are changed.

    Setting a rule copies its start and time into ``date``/``time``;
    passing ``recurrence=None`` turns a series back into a single task.
    The completed and skipped date sets are left alone: dates the new rule
    no longer produces are simply never looked up again.
    """
    fields: dict = {}
    if title is not None:
        fields["text"] = validate_new_title(title)
    if list_name is not None:
        fields["list"] = None if list_key(list_name) == DEFAULT_LIST else list_name.strip()
    if difficulty is not None:
        fields["difficulty"] = _check_level("difficulty", difficulty, DIFFICULTIES)
    if importance is not None:
        fields["importance"] = _check_level("importance", importance, IMPORTANCES)

    if recurrence is not _UNSET and recurrence is not None:
        fields["recurrence"] = recurrence.to_dict()
        fields["date"] = to_iso_date(recurrence.starts)
        fields["time"] = recurrence.time
    else:
        if recurrence is None:
            fields["recurrence"] = None
        if on is not _UNSET:
            fields["date"] = to_iso_date(on) if on else None
        if time is not _UNSET:
            fields["time"] = parse_time_of_day(time) if time else None

    if not fields:
        raise MutationError(f"nothing to change for task {task.id}")
    return Patch("update", task.id, fields)


def create_task(
    title: str,
    *,
    list_name: str | None = None,
    on: date | None = None,
    time: str | None = None,
    recurrence: RecurrenceRule | None = None,
    difficulty: str = DEFAULT_LEVEL,
    importance: str = DEFAULT_LEVEL,
    now: datetime | None = None,
) -> Patch:
    text = validate_new_title(title)
    if recurrence is not None:
        on = recurrence.starts
        time = recurrence.time
    return Patch(
        "create",
        None,
        {
            "text": text,
            "status": ACTIVE,
            "difficulty": _check_level("difficulty", difficulty, DIFFICULTIES),
            "importance": _check_level("importance", importance, IMPORTANCES),
            "date": to_iso_date(on) if on else None,
            "time": parse_time_of_day(time) if time else None,
            "list": None if list_key(list_name) == DEFAULT_LIST else list_name.strip(),
            "recurrence": recurrence.to_dict() if recurrence else None,
            "completedDates": [],
            "skippedDates": [],
            "createdAt": fmt_timestamp(now or datetime.now()),
        },
    )


def rename_list(tasks: Iterable[TaskDefinition], old: str, new: str) -> list[Patch]:
    """Move every task of list ``old`` to ``new``."""
    new = (new or "").strip()
    if not new or new == old:
        return []
    target = None if new == DEFAULT_LIST else new
    return [
        Patch("update", t.id, {"list": target})
        for t in tasks
        if t.list_name == old
    ]


def delete_list(tasks: Iterable[TaskDefinition], name: str) -> list[Patch]:
    """Delete every task of list ``name``; the Inbox also owns tasks with no list."""
    return [Patch("delete", t.id) for t in tasks if t.list_name == name]

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Optional

from .dates import parse_iso_date, to_iso_date
from .recurrence import RecurrenceRule, RuleError
from .shared import log_msg

DIFFICULTIES = ("Easy", "Medium", "Hard")
IMPORTANCES = ("Low", "Medium", "High")
DEFAULT_LEVEL = "Medium"
DEFAULT_LIST = "Inbox"
UNTITLED = "Untitled"

ACTIVE = "active"
DONE = "done"

TS_FMT = "%Y-%m-%dT%H:%M:%S"


class TaskError(ValueError):
    """Raised for task definitions that cannot be created or read."""


def fmt_timestamp(dt: datetime | None) -> str | None:
    if dt is None:
        return None
    return dt.strftime(TS_FMT)


def _naive_local(dt: datetime) -> datetime:
    if dt.tzinfo is None:
        return dt
    return dt.astimezone().replace(tzinfo=None)


def parse_timestamp(value) -> datetime | None:
    """
    Stored timestamps are 'YYYY-MM-DDTHH:MM:SS'; epoch seconds are accepted too.
    Offset timestamps such as '...Z' come back as naive local time.
    """
    if value in (None, ""):
        return None
    if isinstance(value, datetime):
        return _naive_local(value)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value)
    if isinstance(value, dict) and "seconds" in value:
        return datetime.fromtimestamp(value["seconds"])
    try:
        parsed = datetime.fromisoformat(str(value))
    except ValueError as e:
        raise TaskError(f"bad timestamp {value!r}") from e
    return _naive_local(parsed)


def validate_new_title(title: str | None) -> str:
    text = (title or "").strip()
    if not text:
        raise TaskError("a task needs a title")
    return text


def list_key(name: str | None) -> str:
    """Grouping key for a task's list; blank or missing means the Inbox."""
    name = (name or "").strip()
    return name or DEFAULT_LIST


@dataclass(frozen=True)
class TaskDefinition:
    """
    One stored task.

    A task is either a singleton (``date``/``time``/``status``) or a series
    (``recurrence`` plus the ``completed_dates``/``skipped_dates`` exception
    sets); when ``recurrence`` is set the singleton fields are ignored.
    """

    id: str
    title: Optional[str] = None
    list: Optional[str] = None
    difficulty: str = DEFAULT_LEVEL
    importance: str = DEFAULT_LEVEL
    date: Optional[date] = None
    time: Optional[str] = None
    status: str = ACTIVE
    completed_at: Optional[datetime] = None
    recurrence: Optional[RecurrenceRule] = None
    completed_dates: frozenset[str] = field(default_factory=frozenset)
    skipped_dates: frozenset[str] = field(default_factory=frozenset)
    created_at: Optional[datetime] = None

    @property
    def is_recurring(self) -> bool:
        return self.recurrence is not None

    @property
    def display_title(self) -> str:
        return (self.title or "").strip() or UNTITLED

    @property
    def list_name(self) -> str:
        return list_key(self.list)

    @property
    def is_done(self) -> bool:
        return self.status == DONE

    def occurrence_done(self, iso_date: str | None) -> bool:
        if self.is_recurring:
            return iso_date is not None and iso_date in self.completed_dates
        return self.is_done

    @classmethod
    def from_dict(cls, task_id: str, data: dict) -> "TaskDefinition":
        """
        Read a stored document.  A malformed recurrence is clamped rather
        than rejected; one that cannot be read at all leaves the task a
        singleton and is logged.
        """
        recurrence = None
        raw_rule = data.get("recurrence")
        if raw_rule:
            try:
                recurrence = RecurrenceRule.from_dict(raw_rule, strict=False)
            except RuleError as e:
                log_msg(f"ignoring recurrence of task {task_id}: {e}")

        raw_date = data.get("date")
        try:
            the_date = parse_iso_date(raw_date) if raw_date else None
        except ValueError:
            log_msg(f"ignoring bad date {raw_date!r} of task {task_id}")
            the_date = None

        return cls(
            id=str(task_id),
            title=data.get("text", data.get("title")),
            list=data.get("list") or None,
            difficulty=data.get("difficulty") or DEFAULT_LEVEL,
            importance=data.get("importance") or DEFAULT_LEVEL,
            date=the_date,
            time=data.get("time") or None,
            status=data.get("status") or ACTIVE,
            completed_at=parse_timestamp(data.get("completedAt")),
            recurrence=recurrence,
            completed_dates=frozenset(data.get("completedDates") or ()),
            skipped_dates=frozenset(data.get("skippedDates") or ()),
            created_at=parse_timestamp(data.get("createdAt")),
        )

    def to_dict(self) -> dict:
        return {
            "text": self.title,
            "list": self.list,
            "difficulty": self.difficulty,
            "importance": self.importance,
            "date": to_iso_date(self.date) if self.date else None,
            "time": self.time,
            "status": self.status,
            "completedAt": fmt_timestamp(self.completed_at),
            "recurrence": self.recurrence.to_dict() if self.recurrence else None,
            "completedDates": sorted(self.completed_dates),
            "skippedDates": sorted(self.skipped_dates),
            "createdAt": fmt_timestamp(self.created_at),
        }


@dataclass(frozen=True)
class Occurrence:
    """
    One dated instance of a task inside a window.  Never stored; it is
    rebuilt on every resolve and identified by ``(task_id, iso_date)``.
    """

    task_id: str
    date: Optional[date]
    time: Optional[str]
    done: bool
    title: str
    list: str
    difficulty: str
    importance: str
    recurring: bool
    created_at: Optional[datetime] = None

    @property
    def iso_date(self) -> str | None:
        return to_iso_date(self.date) if self.date else None

    @property
    def key(self) -> tuple[str, str | None]:
        return (self.task_id, self.iso_date)

    @classmethod
    def from_task(
        cls, task: TaskDefinition, on: date | None, done: bool
    ) -> "Occurrence":
        time = (task.recurrence.time if task.recurrence else None) or task.time
        return cls(
            task_id=task.id,
            date=on,
            time=time,
            done=done,
            title=task.display_title,
            list=task.list_name,
            difficulty=task.difficulty,
            importance=task.importance,
            recurring=task.is_recurring,
            created_at=task.created_at,
        )

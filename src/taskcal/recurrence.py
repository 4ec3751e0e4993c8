"""
Recurrence rules and their window-bounded expansion.

A rule describes a possibly infinite sequence of dates:
``starts, starts + every, starts + 2*every, ...`` in day, week, month or
year units, optionally cut off by an end date or an occurrence count.
``expand`` only ever walks the part of that sequence that can intersect
the requested window, and the window itself is clamped by a
``ClampPolicy`` so that rules which never end still terminate.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Literal, Optional

from .dates import UNITS, add_interval, as_date, parse_iso_date, to_iso_date
from .shared import log_msg

TIME_REGEX = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

EndsType = Literal["never", "on", "after"]


class RuleError(ValueError):
    """Raised when a recurrence rule violates its invariants."""


@dataclass(frozen=True)
class Ends:
    type: EndsType = "never"
    date: Optional[date] = None
    count: Optional[int] = None

    @classmethod
    def never(cls) -> "Ends":
        return cls("never")

    @classmethod
    def on(cls, d: date | str) -> "Ends":
        if isinstance(d, str):
            d = parse_iso_date(d)
        return cls("on", date=as_date(d))

    @classmethod
    def after(cls, count: int) -> "Ends":
        return cls("after", count=count)

    def to_dict(self) -> dict:
        if self.type == "on":
            return {"type": "on", "date": to_iso_date(self.date)}
        if self.type == "after":
            return {"type": "after", "count": self.count}
        return {"type": "never"}


@dataclass(frozen=True)
class RecurrenceRule:
    every: int
    unit: str
    starts: date
    time: Optional[str] = None
    ends: Ends = field(default_factory=Ends.never)

    def __post_init__(self):
        if isinstance(self.starts, str):
            object.__setattr__(self, "starts", parse_iso_date(self.starts))
        else:
            object.__setattr__(self, "starts", as_date(self.starts))
        self.validate()

    def validate(self) -> None:
        if not isinstance(self.every, int) or isinstance(self.every, bool):
            raise RuleError(f"every must be an integer, got {self.every!r}")
        if self.every < 1:
            raise RuleError(f"every must be at least 1, got {self.every}")
        if self.unit not in UNITS:
            raise RuleError(f"unit must be one of {', '.join(UNITS)}, got {self.unit!r}")
        if self.time is not None and not TIME_REGEX.match(self.time):
            raise RuleError(f"time must be HH:MM (24h), got {self.time!r}")
        ends = self.ends
        if ends.type == "on":
            if ends.date is None:
                raise RuleError("an 'on' end needs a date")
            if ends.date < self.starts:
                raise RuleError(
                    f"end date {to_iso_date(ends.date)} is before start {to_iso_date(self.starts)}"
                )
        elif ends.type == "after":
            if not isinstance(ends.count, int) or ends.count < 1:
                raise RuleError(f"an 'after' end needs a count of at least 1, got {ends.count!r}")
        elif ends.type != "never":
            raise RuleError(f"unknown end type {ends.type!r}")

    # ─── document shape ──────────────────────────────────────

    @classmethod
    def from_dict(cls, data: dict, strict: bool = True) -> "RecurrenceRule":
        """
        Build a rule from its stored shape.

        With ``strict=False`` out-of-range numbers and an end date before the
        start are clamped to the nearest valid value instead of raising, so a
        bad document read from the store still expands to something finite.
        """
        try:
            every = int(data.get("every", 1))
            unit = data.get("unit", "day")
            starts = parse_iso_date(data["starts"])
            time = data.get("time") or None
            raw_ends = data.get("ends") or {"type": "never"}
            ends_type = raw_ends.get("type", "never")
            if ends_type == "on":
                ends = Ends.on(raw_ends["date"])
            elif ends_type == "after":
                ends = Ends.after(int(raw_ends.get("count", 1)))
            else:
                ends = Ends(ends_type)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise RuleError(f"malformed recurrence {data!r}: {e}") from e

        if not strict:
            fixed = []
            if every < 1:
                fixed.append(f"every {every} -> 1")
                every = 1
            if unit not in UNITS:
                fixed.append(f"unit {unit!r} -> 'day'")
                unit = "day"
            if time is not None and not TIME_REGEX.match(str(time)):
                fixed.append(f"time {time!r} -> None")
                time = None
            if ends.type == "on" and ends.date < starts:
                fixed.append(f"end {to_iso_date(ends.date)} -> {to_iso_date(starts)}")
                ends = Ends.on(starts)
            elif ends.type == "after" and ends.count < 1:
                fixed.append(f"count {ends.count} -> 1")
                ends = Ends.after(1)
            elif ends.type not in ("never", "on", "after"):
                fixed.append(f"ends {ends.type!r} -> 'never'")
                ends = Ends.never()
            if fixed:
                log_msg(f"clamped stored recurrence {data!r}: {'; '.join(fixed)}")

        return cls(every=every, unit=unit, starts=starts, time=time, ends=ends)

    def to_dict(self) -> dict:
        return {
            "every": self.every,
            "unit": self.unit,
            "starts": to_iso_date(self.starts),
            "time": self.time,
            "ends": self.ends.to_dict(),
        }

    def describe(self) -> str:
        unit = self.unit if self.every == 1 else f"{self.unit}s"
        head = f"Every {unit}" if self.every == 1 else f"Every {self.every} {unit}"
        if self.ends.type == "on":
            return f"{head} (until {to_iso_date(self.ends.date)})"
        if self.ends.type == "after":
            return f"{head} (after {self.ends.count}x)"
        return f"{head} (never ends)"

    def end_by_rule(self) -> Optional[date]:
        """Last possible occurrence date, or None when the rule never ends."""
        if self.ends.type == "on":
            return self.ends.date
        if self.ends.type == "after":
            cur = self.starts
            for _ in range(self.ends.count - 1):
                cur = add_interval(cur, self.every, self.unit)
            return cur
        return None


@dataclass(frozen=True)
class ClampPolicy:
    """
    Engineering bounds for expansion: nothing earlier than
    ``now - lookback_years`` and nothing later than
    ``created + lookahead_years`` is ever produced.
    """

    lookback_years: int = 1
    lookahead_years: int = 2

    @classmethod
    def from_config(cls, config) -> "ClampPolicy":
        return cls(
            lookback_years=config.recurrence.lookback_years,
            lookahead_years=config.recurrence.lookahead_years,
        )

    def bounds(self, now: date, created: date) -> tuple[date, date]:
        return (
            add_interval(now, -self.lookback_years, "year"),
            add_interval(created, self.lookahead_years, "year"),
        )


DEFAULT_POLICY = ClampPolicy()


def expand(
    rule: RecurrenceRule,
    window_start: date | datetime | None,
    window_end: date | datetime | None,
    now: date | datetime,
    created_at: date | datetime | None = None,
    policy: ClampPolicy = DEFAULT_POLICY,
) -> list[date]:
    """
    Return the ascending occurrence dates of ``rule`` inside the closed window
    ``[window_start, window_end]``; ``None`` leaves that side open.

    The window is intersected with the rule's own range and with the clamp
    policy before any date is produced, so the result is always finite.
    """
    starts = rule.starts
    created = as_date(created_at) if created_at is not None else starts
    min_past, max_future = policy.bounds(as_date(now), created)

    lowers = [starts, min_past]
    if window_start is not None:
        lowers.append(as_date(window_start))
    lower = max(lowers)

    uppers = [max_future]
    if window_end is not None:
        uppers.append(as_date(window_end))
    end_by_rule = rule.end_by_rule()
    if end_by_rule is not None:
        uppers.append(end_by_rule)
    upper = min(uppers)

    if lower > upper:
        return []

    # Month and year steps vary in length, so walk one step at a time.
    cur = starts
    while cur < lower:
        cur = add_interval(cur, rule.every, rule.unit)

    out: list[date] = []
    while cur <= upper:
        out.append(cur)
        cur = add_interval(cur, rule.every, rule.unit)
    return out


def occurs_on(rule: RecurrenceRule, d: date | datetime) -> bool:
    """True when ``d`` is one of the rule's dates (ignoring clamp bounds)."""
    d = as_date(d)
    if d < rule.starts:
        return False
    end_by_rule = rule.end_by_rule()
    if end_by_rule is not None and d > end_by_rule:
        return False
    cur = rule.starts
    while cur < d:
        cur = add_interval(cur, rule.every, rule.unit)
    return cur == d

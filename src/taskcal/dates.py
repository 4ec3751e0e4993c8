"""
Zone-less calendar date arithmetic.

Every function works on ``datetime.date`` values.  A ``datetime`` passed in
is truncated to its calendar date first, which is the same as treating it
as local midnight.
"""

from datetime import date, datetime, timedelta

UNITS: tuple[str, ...] = ("day", "week", "month", "year")

ISO_FMT = "%Y-%m-%d"


def as_date(d: date | datetime) -> date:
    if isinstance(d, datetime):
        return d.date()
    return d


def start_of_week(d: date | datetime, week_starts_monday: bool = True) -> date:
    d = as_date(d)
    if week_starts_monday:
        back = d.weekday()  # Monday == 0
    else:
        back = (d.weekday() + 1) % 7  # Sunday == 0
    return d - timedelta(days=back)


def week_days(d: date | datetime, week_starts_monday: bool = True) -> list[date]:
    """The seven dates of the week containing ``d``."""
    first = start_of_week(d, week_starts_monday)
    return [first + timedelta(days=i) for i in range(7)]


def start_of_month(d: date | datetime) -> date:
    return as_date(d).replace(day=1)


def end_of_month(d: date | datetime) -> date:
    first = start_of_month(d)
    return _rollover(first.year, first.month + 1, 1) - timedelta(days=1)


def add_days(d: date | datetime, n: int) -> date:
    return as_date(d) + timedelta(days=n)


def _rollover(year: int, month: int, day: int) -> date:
    """
    Build a date from possibly out-of-range month and day fields the way a
    calendar rolls over: month 13 is January of the next year and day 31 of
    a 29 day month is the 2nd of the following month.
    """
    year += (month - 1) // 12
    month = (month - 1) % 12 + 1
    return date(year, month, 1) + timedelta(days=day - 1)


def add_interval(d: date | datetime, every: int, unit: str) -> date:
    """
    Advance ``d`` by ``every`` units.

    Months and years advance the calendar fields and let day overflow roll
    forward, so 2024-01-31 + 1 month is 2024-03-02 and 2024-02-29 + 1 year
    is 2025-03-01.  ``every`` may be zero or negative.
    """
    d = as_date(d)
    if unit == "day":
        return d + timedelta(days=every)
    if unit == "week":
        return d + timedelta(weeks=every)
    if unit == "month":
        return _rollover(d.year, d.month + every, d.day)
    if unit == "year":
        return _rollover(d.year + every, d.month, d.day)
    raise ValueError(f"unknown interval unit: {unit!r}")


def to_iso_date(d: date | datetime) -> str:
    return as_date(d).strftime(ISO_FMT)


def parse_iso_date(s: str) -> date:
    """'YYYY-MM-DD' -> date.  Raises ValueError for anything else."""
    if not isinstance(s, str):
        raise ValueError(f"expected an ISO date string, got {s!r}")
    return datetime.strptime(s.strip(), ISO_FMT).date()

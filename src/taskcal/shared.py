import inspect
import textwrap
import shutil
import os
from datetime import date, datetime, timedelta
from pathlib import Path
from dateutil.parser import parse as dateutil_parse
from dateutil.parser import parserinfo, ParserError

from taskcal.taskcal_env import TaskcalEnvironment

ELLIPSIS_CHAR = "…"

REPEATING = "↻"  # Flag for recurring tasks
DONE_CHAR = "✓"
OPEN_CHAR = "○"
NO_TIME = "99:99"  # sorts after every HH:MM

THEME_PALETTES = {
    "dark": {
        "header_color": "#FFFACD",  # lemon chiffon
        "day_color": "#87CEFA",  # light sky blue
        "today_color": "#FF6347",  # tomato
        "task_color": "#87CEFA",
        "finished_color": "#A9A9A9",  # dark gray
        "time_color": "#F4A460",  # sandy brown
        "repeat_color": "#DAA520",  # goldenrod
        "error_color": "#FF4040",
    },
    "light": {
        "header_color": "#2F4F4F",  # dark slate gray
        "day_color": "#4169E1",  # royal blue
        "today_color": "#B22222",  # firebrick
        "task_color": "#0000CD",
        "finished_color": "#708090",  # slate gray
        "time_color": "#8B4513",  # saddle brown
        "repeat_color": "#B8860B",  # dark goldenrod
        "error_color": "#DC143C",
    },
}


def get_theme_palette(theme: str) -> dict[str, str]:
    return dict(THEME_PALETTES.get(theme, THEME_PALETTES["dark"]))


def parse_user_date(s: str, *, today: date | None = None, dayfirst: bool = False) -> date:
    """
    Parse a date typed by the user.

    Accepts 'today', 'tomorrow', 'yesterday', ISO 'YYYY-MM-DD' and anything
    dateutil understands ("Jan 31 2024", "31/1/2024" with dayfirst).  Any
    time component is dropped.  Raises ValueError when nothing parses.
    """
    today = today or date.today()
    text = (s or "").strip().lower()
    if not text:
        raise ValueError("empty date")
    relative = {"today": 0, "now": 0, "tomorrow": 1, "yesterday": -1}
    if text in relative:
        return today + timedelta(days=relative[text])
    pi = parserinfo(dayfirst=dayfirst, yearfirst=not dayfirst)
    try:
        dt = dateutil_parse(text, parserinfo=pi, default=datetime(today.year, 1, 1))
    except (ParserError, OverflowError) as e:
        raise ValueError(f"could not parse date {s!r}: {e}") from e
    return dt.date()


def parse_time_of_day(s: str | None) -> str | None:
    """Normalize '9:05', '0905' or '9:05pm' to 'HH:MM'; None or '' -> None."""
    if s is None:
        return None
    text = s.strip()
    if not text:
        return None
    try:
        dt = dateutil_parse(text, default=datetime(2000, 1, 1))
    except (ParserError, OverflowError) as e:
        raise ValueError(f"could not parse time {s!r}: {e}") from e
    return dt.strftime("%H:%M")


def format_time(hhmm: str | None, ampm: bool = False) -> str:
    if not hhmm:
        return ""
    if not ampm:
        return hhmm
    hours, minutes = (int(x) for x in hhmm.split(":"))
    suffix = "am" if hours < 12 else "pm"
    hours = hours % 12 or 12
    if minutes:
        return f"{hours}:{minutes:02d}{suffix}"
    return f"{hours}{suffix}"


def truncate_string(s: str, max_length: int) -> str:
    if len(s) > max_length:
        return f"{s[: max_length - 2]} {ELLIPSIS_CHAR}"
    else:
        return s


def format_date_range(start_dt: date, end_dt: date) -> str:
    """
    Format two dates as a succinct date range.
    """
    same_year = start_dt.year == end_dt.year
    same_month = start_dt.month == end_dt.month
    if same_year and same_month:
        return f"{start_dt.strftime('%b %-d')} - {end_dt.strftime('%-d, %Y')}"
    if same_year:
        return f"{start_dt.strftime('%b %-d')} - {end_dt.strftime('%b %-d, %Y')}"
    return f"{start_dt.strftime('%b %-d, %Y')} - {end_dt.strftime('%b %-d, %Y')}"


def format_week_label(week_start: date) -> str:
    """
    Format a label for the seven days beginning with `week_start`,
    e.g. 'Jan 1 - 7, 2024 #1'.
    """
    end_dt = week_start + timedelta(days=6)
    _, iso_wk, _ = (week_start + timedelta(days=3)).isocalendar()
    return f"{format_date_range(week_start, end_dt)} #{iso_wk}"


def _get_runtime_home() -> Path:
    override = os.environ.get("TASKCAL_HOME")
    if override:
        return Path(override).expanduser()
    return TaskcalEnvironment().home


def _resolve_log_file_path(file_path: str | Path) -> Path:
    path = Path(file_path)
    if path.is_absolute():
        return path
    return _get_runtime_home() / path


def _default_log_relative_path(kind: str) -> Path:
    """Return logs/log_<YYMMDD>.md style paths under the runtime home."""
    suffix = datetime.now().strftime("%y%m%d")
    return Path("logs") / f"{kind}_{suffix}.md"


def _caller_name(frame) -> str:
    func_name = frame.f_code.co_name
    if "self" in frame.f_locals:  # instance method
        return f"{frame.f_locals['self'].__class__.__name__}.{func_name}"
    if "cls" in frame.f_locals:  # classmethod
        return f"{frame.f_locals['cls'].__name__}.{func_name}"
    return func_name


def _write_entry(
    kind: str,
    caller_name: str,
    msg: str,
    file_path: str | Path | None,
    print_output: bool,
):
    lines = [
        f"- {datetime.now().strftime('%H:%M:%S')} {kind}_msg ({caller_name}):  ",
    ]
    lines.extend(
        [
            f"\n{x}"
            for x in textwrap.wrap(
                msg.strip(),
                width=max(20, shutil.get_terminal_size()[0] - 6),
                initial_indent="   ",
                subsequent_indent="   ",
            )
        ]
    )
    lines.append("\n\n")

    if file_path is None:
        file_path = _default_log_relative_path(kind)
    log_path = _resolve_log_file_path(file_path)

    # Best-effort file logging; fall back to console when the file is unwritable.
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(log_path, "a", encoding="utf-8") as f:
            f.writelines(lines)
    except OSError:
        print_output = True

    if print_output:
        print("".join(lines))


def log_msg(
    msg: str,
    file_path: str | Path | None = None,
    print_output: bool = False,
):
    """
    Log a message and save it directly to a file.

    Args:
        msg (str): The message to log.
        file_path (str | Path | None, optional): Overrides the default path when
            provided. Defaults to ``None`` which writes to ``logs/log_<YYMMDD>.md``.
        print_output (bool, optional): If True, also print to console.
    """
    caller_name = _caller_name(inspect.stack()[1].frame)
    _write_entry("log", caller_name, msg, file_path, print_output)


def bug_msg(
    msg: str,
    file_path: str | Path | None = None,
    print_output: bool = False,
):
    """
    Companion to log_msg for temporary debugging; writes to ``logs/bug_<YYMMDD>.md``.
    """
    caller_name = _caller_name(inspect.stack()[1].frame)
    _write_entry("bug", caller_name, msg, file_path, print_output)

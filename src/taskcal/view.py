from __future__ import annotations

from datetime import date

from rich import box
from rich.columns import Columns
from rich.console import Group
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from .controller import Controller
from .dates import to_iso_date
from .item import Occurrence, TaskDefinition
from .list_colors import tint
from .shared import (
    DONE_CHAR,
    OPEN_CHAR,
    REPEATING,
    format_time,
    format_week_label,
    get_theme_palette,
    truncate_string,
)


class CalendarView:
    """rich renderables for the week calendar, the list board and the agenda."""

    def __init__(self, controller: Controller):
        self.controller = controller
        self.theme = "dark"
        self.ampm = False
        self.width = 24
        if controller.env is not None:
            ui = controller.env.config.ui
            self.theme = ui.theme
            self.ampm = ui.ampm
            self.width = ui.width
        self.palette = get_theme_palette(self.theme)
        self.colors = controller.color_by_list()

    def occurrence_line(self, occ: Occurrence, width: int | None = None) -> Text:
        width = width or self.width
        mark = DONE_CHAR if occ.done else OPEN_CHAR
        line = Text()
        mark_style = self.palette["finished_color" if occ.done else "task_color"]
        line.append(f"{mark} ", style=mark_style)
        if occ.time:
            line.append(f"{format_time(occ.time, self.ampm)} ", style=self.palette["time_color"])
        title_style = "strike " + self.palette["finished_color"] if occ.done else ""
        line.append(truncate_string(occ.title, width), style=title_style)
        if occ.recurring:
            line.append(f" {REPEATING}", style=self.palette["repeat_color"])
        color = self.colors.get(occ.list)
        if color:
            background = tint(color, 0.35)
            if background:
                line.stylize(f"on {background}")
        return line

    def week(self) -> Table:
        ctrl = self.controller
        self.colors = ctrl.color_by_list()
        today = ctrl.today()
        table = Table(
            title=format_week_label(ctrl.week_start),
            box=box.SIMPLE_HEAVY,
            expand=False,
            show_lines=False,
            header_style=self.palette["header_color"],
        )
        days = ctrl.week_by_day()
        for d, _ in days:
            if d == today:
                style = f"bold {self.palette['today_color']}"
            else:
                style = self.palette["day_color"]
            table.add_column(
                Text(f"{d:%a %-d %b}", style=style),
                min_width=10,
                max_width=self.width,
                overflow="fold",
            )
        cells = []
        for _, occurrences in days:
            if occurrences:
                cells.append(Group(*(self.occurrence_line(o) for o in occurrences)))
            else:
                cells.append(Text(""))
        table.add_row(*cells)
        return table

    def agenda(self, day: date | None = None) -> Table:
        ctrl = self.controller
        self.colors = ctrl.color_by_list()
        day = day or ctrl.today()
        occurrences = ctrl.agenda(day)
        table = Table(
            title=f"{day:%A, %b %-d}",
            box=box.SIMPLE,
            header_style=self.palette["header_color"],
        )
        table.add_column("id", justify="right", style="dim")
        table.add_column("task")
        table.add_column("list")
        table.add_column("difficulty")
        if not occurrences:
            table.add_row("", Text("No tasks for today.", style="dim"), "", "")
        for occ in occurrences:
            table.add_row(
                occ.task_id,
                self.occurrence_line(occ, width=60),
                occ.list,
                occ.difficulty,
            )
        return table

    def board(self) -> Columns:
        ctrl = self.controller
        self.colors = ctrl.color_by_list()
        panels = []
        for name, tasks in ctrl.board():
            color = self.colors.get(name)
            rows = [self.task_line(t) for t in tasks] or [Text("No tasks", style="dim")]
            panels.append(
                Panel(
                    Group(*rows),
                    title=Text(name, style=f"bold {color}" if color else "bold"),
                    border_style=color or self.palette["day_color"],
                    width=self.width * 2,
                )
            )
        return Columns(panels)

    def task_line(self, task: TaskDefinition) -> Text:
        line = Text()
        line.append(f"{task.id:>3} ", style="dim")
        line.append(truncate_string(task.display_title, self.width))
        if task.date:
            when = f"{task.date:%b %-d}"
            if task.time:
                when += f" • {format_time(task.time, self.ampm)}"
            line.append(f"  {when}", style=self.palette["time_color"])
        if task.is_recurring:
            line.append(f" {REPEATING}", style=self.palette["repeat_color"])
        return line

    def details(self, task: TaskDefinition) -> Panel:
        table = Table.grid(padding=(0, 2))
        table.add_column(style=self.palette["day_color"])
        table.add_column()
        table.add_row("title", task.display_title)
        table.add_row("list", task.list_name)
        table.add_row("difficulty", task.difficulty)
        table.add_row("importance", task.importance)
        if task.is_recurring:
            rule = task.recurrence
            table.add_row("repeats", rule.describe())
            table.add_row("starts", to_iso_date(rule.starts))
            if rule.time:
                table.add_row("time", format_time(rule.time, self.ampm))
            table.add_row("completed", ", ".join(sorted(task.completed_dates)) or "-")
            table.add_row("skipped", ", ".join(sorted(task.skipped_dates)) or "-")
        else:
            table.add_row("date", to_iso_date(task.date) if task.date else "No date")
            if task.time:
                table.add_row("time", format_time(task.time, self.ampm))
            table.add_row("status", task.status)
        if task.created_at:
            table.add_row("created", f"{task.created_at:%Y-%m-%d %H:%M}")
        return Panel(table, title=f"task {task.id}", expand=False)

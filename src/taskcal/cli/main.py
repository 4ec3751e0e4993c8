import sys
import os
import click
from datetime import date
from rich import print
from rich.console import Console
from rich.markup import escape

from taskcal.controller import Controller
from taskcal.dates import UNITS, to_iso_date
from taskcal.item import DIFFICULTIES, IMPORTANCES, TaskError
from taskcal.list_colors import default_list_color, normalize_color
from taskcal.model import DatabaseManager
from taskcal.mutations import MutationError
from taskcal.recurrence import Ends, RecurrenceRule, RuleError
from taskcal.shared import log_msg, parse_time_of_day, parse_user_date
from taskcal.taskcal_env import TaskcalEnvironment
from taskcal.versioning import get_version
from taskcal.view import CalendarView


class _DateParam(click.ParamType):
    name = "date"

    def convert(self, value, param, ctx):
        if value is None:
            return None
        if isinstance(value, date):
            return value
        try:
            return parse_user_date(str(value))
        except ValueError:
            self.fail("Expected YYYY-MM-DD, 'today', 'tomorrow' or a date", param, ctx)


class _TimeParam(click.ParamType):
    name = "time"

    def convert(self, value, param, ctx):
        if value is None:
            return None
        try:
            return parse_time_of_day(str(value))
        except ValueError:
            self.fail("Expected a time such as 09:30 or 9:30pm", param, ctx)


_DATE = _DateParam()
_TIME = _TimeParam()

VERSION = get_version()

recurrence_options = [
    click.option("--every", type=click.IntRange(min=1), help="Repeat every N units."),
    click.option("--unit", type=click.Choice(UNITS), help="Repeat unit."),
    click.option("--until", type=_DATE, help="Last possible occurrence date."),
    click.option("--count", type=click.IntRange(min=1), help="Total number of occurrences."),
]


def with_recurrence_options(fn):
    for option in reversed(recurrence_options):
        fn = option(fn)
    return fn


def build_rule(
    every, unit, starts, time, until, count, ends: Ends | None = None
) -> RecurrenceRule | None:
    """
    A rule from the command line options; None when no repeat was asked for.
    ``ends`` is kept when neither --until nor --count is given.
    """
    if every is None and unit is None:
        if until is not None or count is not None:
            raise RuleError("--until and --count need --every or --unit")
        return None
    if until is not None and count is not None:
        raise RuleError("use either --until or --count, not both")
    if until is not None:
        ends = Ends.on(until)
    elif count is not None:
        ends = Ends.after(count)
    elif ends is None:
        ends = Ends.never()
    return RecurrenceRule(
        every=every or 1,
        unit=unit or "day",
        starts=starts or date.today(),
        time=time,
        ends=ends,
    )


def fail(msg: str):
    print(f"[red]✘ {escape(msg)}[/red]")
    sys.exit(1)


def get_controller(ctx) -> Controller:
    if "CONTROLLER" not in ctx.obj:
        store = DatabaseManager(ctx.obj["DB"], ctx.obj["ENV"], user=ctx.obj["USER"])
        ctx.obj["CONTROLLER"] = Controller(store, ctx.obj["ENV"])
        ctx.call_on_close(store.close)
    return ctx.obj["CONTROLLER"]


def require_task(controller: Controller, task_id: str):
    task = controller.task(task_id)
    if task is None:
        fail(f"No task with id {task_id}")
    return task


def report(controller: Controller, ok: bool, msg: str):
    if ok:
        print(f"[green]✔ {escape(msg)}[/green]")
    else:
        fail(controller.last_error or "Nothing changed: the task is gone")


@click.group()
@click.version_option(VERSION, prog_name="taskcal", message="%(prog)s version %(version)s")
@click.option(
    "--home",
    help="Override the taskcal workspace directory (equivalent to setting $TASKCAL_HOME).",
)
@click.option("--user", default="local", show_default=True, help="Whose tasks to use.")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.pass_context
def cli(ctx, home, user, verbose):
    """taskcal – one-off and repeating tasks on a week calendar."""
    if home:
        os.environ["TASKCAL_HOME"] = (
            home  # Must be set before TaskcalEnvironment is instantiated
        )

    env = TaskcalEnvironment()
    env.ensure(init_config=True)
    env.load_config()
    if env.config_error:
        print(f"[yellow]⚠️ {env.config_error}\nUsing defaults.[/yellow]")

    ctx.ensure_object(dict)
    ctx.obj["ENV"] = env
    ctx.obj["DB"] = env.db_path
    ctx.obj["USER"] = user
    ctx.obj["VERBOSE"] = verbose
    if verbose:
        print(f"[blue]taskcal {VERSION} using {env.home}[/blue]")


@cli.command()
@click.argument("title", nargs=-1, required=True)
@click.option("--list", "list_name", help="List name (default: Inbox).")
@click.option("--date", "on", type=_DATE, help="Date, or the first date of a repeat.")
@click.option("--time", type=_TIME, help="Time of day (HH:MM).")
@with_recurrence_options
@click.option("--difficulty", type=click.Choice(DIFFICULTIES), default="Medium")
@click.option("--importance", type=click.Choice(IMPORTANCES), default="Medium")
@click.pass_context
def add(ctx, title, list_name, on, time, every, unit, until, count, difficulty, importance):
    """Add a task."""
    controller = get_controller(ctx)
    try:
        rule = build_rule(every, unit, on, time, until, count)
        task_id = controller.add_task(
            " ".join(title),
            list_name=list_name,
            on=on,
            time=time,
            recurrence=rule,
            difficulty=difficulty,
            importance=importance,
        )
    except (RuleError, TaskError) as e:
        fail(str(e))
    if task_id is None:
        fail(controller.last_error or "Failed to add task")
    what = rule.describe() if rule else (to_iso_date(on) if on else "no date")
    print(f"[green]✔ Added task {task_id}[/green] ({what})")


@cli.command()
@click.option("--start", "start", type=_DATE, help="Any date in the first week. Defaults to today.")
@click.option("--weeks", type=click.IntRange(1, 52), default=1, show_default=True)
@click.pass_context
def week(ctx, start, weeks):
    """Show the week calendar."""
    controller = get_controller(ctx)
    view = CalendarView(controller)
    controller.goto(start or controller.today())
    console = Console(highlight=False)
    for i in range(weeks):
        if i:
            console.print()
            controller.next_week()
        console.print(view.week())


@cli.command()
@click.option("--day", type=_DATE, help="Defaults to today.")
@click.pass_context
def agenda(ctx, day):
    """Show the tasks for one day."""
    controller = get_controller(ctx)
    Console(highlight=False).print(CalendarView(controller).agenda(day))


@cli.command()
@click.pass_context
def board(ctx):
    """Show active tasks grouped by list."""
    controller = get_controller(ctx)
    Console(highlight=False).print(CalendarView(controller).board())


@cli.command()
@click.argument("task_id")
@click.pass_context
def show(ctx, task_id):
    """Show the details of a task."""
    controller = get_controller(ctx)
    task = require_task(controller, task_id)
    Console(highlight=False).print(CalendarView(controller).details(task))


def _occurrence_date(task, on):
    if task.is_recurring and on is None:
        fail(f"Task {task.id} repeats: pass --on DATE for the occurrence")
    return to_iso_date(on) if on else None


@cli.command()
@click.argument("task_id")
@click.option("--on", type=_DATE, help="Occurrence date of a repeating task.")
@click.pass_context
def done(ctx, task_id, on):
    """Mark a task (or one occurrence) completed."""
    controller = get_controller(ctx)
    task = require_task(controller, task_id)
    try:
        ok = controller.toggle_done(task_id, _occurrence_date(task, on), True)
    except MutationError as e:
        fail(str(e))
    report(controller, ok, f"Completed {task.display_title}")


@cli.command()
@click.argument("task_id")
@click.option("--on", type=_DATE, help="Occurrence date of a repeating task.")
@click.pass_context
def undone(ctx, task_id, on):
    """Mark a task (or one occurrence) not completed."""
    controller = get_controller(ctx)
    task = require_task(controller, task_id)
    try:
        ok = controller.toggle_done(task_id, _occurrence_date(task, on), False)
    except MutationError as e:
        fail(str(e))
    report(controller, ok, f"Reopened {task.display_title}")


@cli.command()
@click.argument("task_id")
@click.option("--on", type=_DATE, required=True, help="Occurrence date to delete.")
@click.option("--restore", is_flag=True, help="Bring a deleted occurrence back.")
@click.pass_context
def skip(ctx, task_id, on, restore):
    """Delete one occurrence of a repeating task."""
    controller = get_controller(ctx)
    task = require_task(controller, task_id)
    try:
        if restore:
            ok = controller.restore_occurrence(task_id, to_iso_date(on))
        else:
            ok = controller.delete_occurrence(task_id, to_iso_date(on))
    except MutationError as e:
        fail(str(e))
    verb = "Restored" if restore else "Deleted"
    report(controller, ok, f"{verb} {task.display_title} on {to_iso_date(on)}")


@cli.command()
@click.argument("task_id")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def delete(ctx, task_id, yes):
    """Delete a task, or a whole series."""
    controller = get_controller(ctx)
    task = require_task(controller, task_id)
    what = "entire series" if task.is_recurring else "task"
    if not yes and not click.confirm(f"Delete {what} {task.display_title!r}?", default=False):
        print("[yellow]✘ Cancelled.[/yellow]")
        sys.exit(1)
    report(controller, controller.delete_series(task_id), f"Deleted {what} {task.display_title}")


@cli.command()
@click.argument("task_id")
@click.option("--title")
@click.option("--list", "list_name")
@click.option("--date", "on", type=_DATE)
@click.option("--time", type=_TIME)
@with_recurrence_options
@click.option("--no-repeat", is_flag=True, help="Turn a repeating task into a single one.")
@click.option("--difficulty", type=click.Choice(DIFFICULTIES))
@click.option("--importance", type=click.Choice(IMPORTANCES))
@click.pass_context
def edit(
    ctx, task_id, title, list_name, on, time, every, unit, until, count, no_repeat,
    difficulty, importance,
):
    """Edit a task or a whole series."""
    controller = get_controller(ctx)
    task = require_task(controller, task_id)
    changes = {
        "title": title,
        "list_name": list_name,
        "difficulty": difficulty,
        "importance": importance,
    }
    try:
        if no_repeat:
            changes["recurrence"] = None
        elif any(v is not None for v in (every, unit, until, count)):
            base = task.recurrence
            changes["recurrence"] = build_rule(
                every or (base.every if base else None),
                unit or (base.unit if base else "day"),
                on or (base.starts if base else task.date),
                time or (base.time if base else task.time),
                until,
                count,
                ends=base.ends if base else None,
            )
        elif task.is_recurring and (on is not None or time is not None):
            base = task.recurrence
            changes["recurrence"] = RecurrenceRule(
                every=base.every,
                unit=base.unit,
                starts=on or base.starts,
                time=time or base.time,
                ends=base.ends,
            )
        if "recurrence" not in changes or changes["recurrence"] is None:
            if on is not None:
                changes["on"] = on
            if time is not None:
                changes["time"] = time
        ok = controller.edit_series(task_id, **changes)
    except (RuleError, TaskError, MutationError) as e:
        fail(str(e))
    report(controller, ok, f"Updated task {task_id}")


@cli.command(name="lists")
@click.pass_context
def show_lists(ctx):
    """Show the lists and how many active tasks each holds."""
    controller = get_controller(ctx)
    colors = controller.color_by_list()
    for name, tasks in controller.board():
        color = colors.get(name)
        swatch = f"[{color}]●[/]" if color else "○"
        print(f"{swatch} {escape(name)} ({len(tasks)})")


@cli.command(name="list-add")
@click.argument("name")
@click.option("--color", help="Hex (#4f46e5) or a color name; random pastel by default.")
@click.pass_context
def list_add(ctx, name, color):
    """Create a list."""
    controller = get_controller(ctx)
    try:
        hex_color = normalize_color(color) if color else default_list_color()
    except ValueError as e:
        fail(str(e))
    report(controller, controller.create_list(name, hex_color), f"Created list {name}")


@cli.command(name="list-rename")
@click.argument("old")
@click.argument("new")
@click.pass_context
def list_rename(ctx, old, new):
    """Rename a list and move its tasks along."""
    controller = get_controller(ctx)
    report(controller, controller.rename_list(old, new), f"Renamed {old} to {new}")


@cli.command(name="list-color")
@click.argument("name")
@click.argument("color", required=False)
@click.pass_context
def list_color(ctx, name, color):
    """Set (or clear, with no COLOR) the color of a list."""
    controller = get_controller(ctx)
    try:
        hex_color = normalize_color(color)
    except ValueError as e:
        fail(str(e))
    report(controller, controller.set_list_color(name, hex_color), f"Updated {name}")


@cli.command(name="list-delete")
@click.argument("name")
@click.option("--yes", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def list_delete(ctx, name, yes):
    """Delete a list and all of its tasks."""
    controller = get_controller(ctx)
    if not yes and not click.confirm(
        f"Delete the list {name!r} and all its tasks? This cannot be undone.",
        default=False,
    ):
        print("[yellow]✘ Cancelled.[/yellow]")
        sys.exit(1)
    log_msg(f"deleting list {name!r}")
    report(controller, controller.delete_list(name), f"Deleted list {name}")


if __name__ == "__main__":
    cli()

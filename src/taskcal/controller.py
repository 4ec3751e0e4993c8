from __future__ import annotations

from datetime import date, datetime, timedelta
from . import mutations
from .dates import add_days, start_of_week, to_iso_date
from .item import DEFAULT_LIST, DONE, Occurrence, TaskDefinition
from .model import ListDefinition, StoreError, TaskStore
from .mutations import Patch
from .recurrence import ClampPolicy
from .resolver import Resolver, Snapshot, Window, find_occurrence, group_by_date
from .shared import bug_msg, log_msg
from .taskcal_env import TaskcalEnvironment

ONEWEEK = timedelta(weeks=1)


class Controller:
    """
    Consumes the store's pushed snapshots and serves the week calendar,
    the list board and the day agenda from them.

    Nothing here is cached across snapshots except through ``Resolver``.
    The selected occurrence is kept as its ``(task_id, iso_date)`` key and
    looked up again in every new snapshot.
    """

    def __init__(self, store: TaskStore, env: TaskcalEnvironment | None = None):
        self.store = store
        self.env = env
        self.week_starts_monday = True
        self.show_completed = True
        policy = ClampPolicy()
        if env is not None:
            config = env.config
            self.week_starts_monday = config.calendar.week_starts_monday
            self.show_completed = config.ui.show_completed
            policy = ClampPolicy.from_config(config)
        self.resolver = Resolver(policy)

        self.snapshot = Snapshot(-1)
        self.lists: tuple[ListDefinition, ...] = ()
        self.week_start = start_of_week(self.today(), self.week_starts_monday)
        self.selected_key: tuple[str, str | None] | None = None
        self.selected: Occurrence | None = None
        self.last_error: str | None = None

        self._unsubscribe = [
            store.subscribe_tasks(self._on_tasks),
            store.subscribe_lists(self._on_lists),
        ]

    def close(self):
        for unsubscribe in self._unsubscribe:
            unsubscribe()
        self._unsubscribe = []

    def today(self) -> date:
        return date.today()

    # ─── snapshots ─────────────────────────────────────────

    def _on_tasks(self, snapshot: Snapshot):
        self.snapshot = snapshot
        self._reconcile_selection()

    def _on_lists(self, lists: tuple[ListDefinition, ...]):
        self.lists = lists

    def _reconcile_selection(self):
        if self.selected_key is None:
            return
        task_id, iso_date = self.selected_key
        found = self._locate(task_id, iso_date)
        if found is None:
            log_msg(f"selection {self.selected_key} is gone; clearing it")
            self.clear_selection()
        else:
            self.selected = found

    def _locate(self, task_id: str, iso_date: str | None) -> Occurrence | None:
        task = self.snapshot.get(task_id)
        if task is None:
            return None
        if iso_date is None:
            window = Window.unbounded()
        else:
            window = Window.day(date.fromisoformat(iso_date))
        occurrences = self.resolver.resolve(
            self.snapshot, window, self.today(), include_undated=iso_date is None
        )
        return find_occurrence(occurrences, task_id, iso_date)

    # ─── selection ─────────────────────────────────────────

    def select(self, task_id: str, iso_date: str | None) -> Occurrence | None:
        found = self._locate(task_id, iso_date)
        if found is None:
            self.clear_selection()
            return None
        self.selected_key = (task_id, iso_date)
        self.selected = found
        return found

    def clear_selection(self):
        self.selected_key = None
        self.selected = None

    # ─── week view ─────────────────────────────────────────

    def week_window(self) -> Window:
        return Window(self.week_start, add_days(self.week_start, 6))

    def this_week(self):
        self.week_start = start_of_week(self.today(), self.week_starts_monday)

    def next_week(self):
        self.week_start += ONEWEEK

    def prev_week(self):
        self.week_start -= ONEWEEK

    def goto(self, d: date):
        self.week_start = start_of_week(d, self.week_starts_monday)

    def week_occurrences(self) -> tuple[Occurrence, ...]:
        occurrences = self.resolver.resolve(
            self.snapshot, self.week_window(), self.today()
        )
        if not self.show_completed:
            occurrences = tuple(o for o in occurrences if not o.done)
        return occurrences

    def week_by_day(self) -> list[tuple[date, list[Occurrence]]]:
        """The seven days of the visible week, each with its occurrences (maybe none)."""
        grouped = group_by_date(self.week_occurrences())
        days = [add_days(self.week_start, i) for i in range(7)]
        return [(d, grouped.get(to_iso_date(d), [])) for d in days]

    def agenda(self, day: date | None = None) -> tuple[Occurrence, ...]:
        day = day or self.today()
        return self.resolver.resolve(self.snapshot, Window.day(day), self.today())

    # ─── board view ────────────────────────────────────────

    def list_names(self) -> list[str]:
        """
        Inbox first, then lists in creation order, then names only found on
        tasks, alphabetically.
        """
        known = [lst.name for lst in self.lists if lst.name]
        from_tasks = sorted(
            {t.list_name for t in self.snapshot.tasks} - set(known) - {DEFAULT_LIST}
        )
        names = [n for n in known if n != DEFAULT_LIST] + from_tasks
        return [DEFAULT_LIST] + names

    def board(self) -> list[tuple[str, list[TaskDefinition]]]:
        """Active tasks per list: dated first by date, then newest created first."""
        groups: dict[str, list[TaskDefinition]] = {name: [] for name in self.list_names()}
        for task in self.snapshot.tasks:
            if task.status == DONE:
                continue
            groups.setdefault(task.list_name, []).append(task)
        for tasks in groups.values():
            # two stable passes: newest first, then by date
            tasks.sort(key=lambda t: t.created_at or datetime.min, reverse=True)
            tasks.sort(key=lambda t: (t.date is None, t.date or date.max))
        return list(groups.items())

    def color_by_list(self) -> dict[str, str | None]:
        colors: dict[str, str | None] = {lst.name: lst.color for lst in self.lists}
        colors.setdefault(DEFAULT_LIST, None)
        return colors

    def task(self, task_id: str) -> TaskDefinition | None:
        return self.snapshot.get(task_id)

    # ─── mutations ─────────────────────────────────────────

    def _dispatch(self, patch: Patch, what: str) -> str | bool:
        try:
            result = self.store.apply(patch)
        except StoreError as e:
            self.last_error = str(e)
            log_msg(f"{what}: {e}")
            return False
        self.last_error = None
        return result or True

    def _target(self, task_id: str) -> TaskDefinition | None:
        task = self.snapshot.get(task_id)
        if task is None:
            # the task went away between render and click
            log_msg(f"task {task_id} is no longer present")
        return task

    def toggle_done(self, task_id: str, iso_date: str | None, done: bool) -> bool:
        task = self._target(task_id)
        if task is None:
            return False
        patch = mutations.toggle_occurrence_done(task, iso_date, done, datetime.now())
        return bool(self._dispatch(patch, "toggle done"))

    def delete_occurrence(self, task_id: str, iso_date: str) -> bool:
        task = self._target(task_id)
        if task is None:
            return False
        patch = mutations.delete_occurrence(task, iso_date)
        if self.selected_key == (task_id, iso_date):
            self.clear_selection()
        return bool(self._dispatch(patch, "delete occurrence"))

    def restore_occurrence(self, task_id: str, iso_date: str) -> bool:
        task = self._target(task_id)
        if task is None:
            return False
        return bool(
            self._dispatch(mutations.restore_occurrence(task, iso_date), "restore occurrence")
        )

    def delete_series(self, task_id: str) -> bool:
        task = self._target(task_id)
        if task is None:
            return False
        if self.selected_key and self.selected_key[0] == task_id:
            self.clear_selection()
        return bool(self._dispatch(mutations.delete_series(task), "delete task"))

    def edit_series(self, task_id: str, **changes) -> bool:
        task = self._target(task_id)
        if task is None:
            return False
        patch = mutations.edit_series(task, **changes)
        bug_msg(f"edit {task_id}: {patch.fields}")
        return bool(self._dispatch(patch, "edit task"))

    def add_task(self, title: str, **options) -> str | None:
        options.setdefault("now", datetime.now())
        patch = mutations.create_task(title, **options)
        result = self._dispatch(patch, "add task")
        return result if isinstance(result, str) else None

    # ─── lists ─────────────────────────────────────────────

    def _list_op(self, what: str, fn, *args) -> bool:
        try:
            fn(*args)
        except StoreError as e:
            self.last_error = str(e)
            log_msg(f"{what}: {e}")
            return False
        self.last_error = None
        return True

    def create_list(self, name: str, color: str | None = None) -> bool:
        return self._list_op("create list", self.store.create_list, name, color)

    def rename_list(self, old: str, new: str) -> bool:
        return self._list_op("rename list", self.store.rename_list, old, new)

    def set_list_color(self, name: str, color: str | None) -> bool:
        return self._list_op("update list color", self.store.set_list_color, name, color)

    def delete_list(self, name: str) -> bool:
        return self._list_op("delete list", self.store.delete_list, name)


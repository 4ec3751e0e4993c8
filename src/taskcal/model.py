"""
sqlite-backed per-user document store.

Each task is one JSON document in the Tasks table.  Readers subscribe and
receive the complete collection after every committed write; there is no
delta protocol.  Every write is a single transaction: it either applies in
full or raises ``StoreError`` and leaves the database as it was.
"""

import os
import sqlite3
import json
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Protocol

from .item import TaskDefinition, fmt_timestamp, parse_timestamp
from .mutations import Patch, delete_list as delete_list_patches
from .mutations import rename_list as rename_list_patches
from .resolver import Snapshot
from .shared import log_msg
from .taskcal_env import TaskcalEnvironment

Unsubscribe = Callable[[], None]


class StoreError(RuntimeError):
    """A write or read the store could not complete."""


@dataclass(frozen=True)
class ListDefinition:
    id: str
    name: str
    color: Optional[str] = None
    created_at: Optional[datetime] = None


class TaskStore(Protocol):
    def subscribe_tasks(self, callback: Callable[[Snapshot], None]) -> Unsubscribe: ...

    def subscribe_lists(
        self, callback: Callable[[tuple[ListDefinition, ...]], None]
    ) -> Unsubscribe: ...

    def apply_patch(self, task_id: str, fields: dict) -> None: ...

    def create_task(self, fields: dict) -> str: ...

    def delete_task(self, task_id: str) -> None: ...

    def create_list(self, name: str, color: str | None = None) -> str: ...

    def rename_list(self, old: str, new: str) -> None: ...

    def set_list_color(self, name: str, color: str | None) -> None: ...

    def delete_list(self, name: str) -> None: ...

    def apply(self, patch: Patch) -> str | None: ...


def utc_now_string():
    return fmt_timestamp(datetime.now())


class DatabaseManager:
    def __init__(
        self,
        db_path: str,
        env: TaskcalEnvironment | None = None,
        user: str = "local",
        reset: bool = False,
    ):
        self.db_path = str(db_path)
        self.env = env
        self.user = user

        if reset and os.path.exists(self.db_path):
            os.remove(self.db_path)

        self.conn = sqlite3.connect(self.db_path)
        self.cursor = self.conn.cursor()
        self.setup_database()

        self._version = 0
        self._task_subscribers: list[Callable[[Snapshot], None]] = []
        self._list_subscribers: list[Callable[[tuple[ListDefinition, ...]], None]] = []

    def close(self):
        self.conn.close()

    def setup_database(self):
        """
        Create (if missing) the tables.

        Notes:
        - Tasks.doc holds the whole task document as JSON.
        - Timestamps are local naive 'YYYY-MM-DDTHH:MM:SS' text.
        """
        self.cursor.execute("""
            CREATE TABLE IF NOT EXISTS Tasks (
                id        INTEGER PRIMARY KEY AUTOINCREMENT,
                user      TEXT NOT NULL,
                doc       TEXT NOT NULL,
                created   TEXT,
                modified  TEXT
            );
        """)
        self.cursor.execute(
            "CREATE INDEX IF NOT EXISTS idx_tasks_user ON Tasks(user);"
        )
        self.cursor.execute("""
            CREATE TABLE IF NOT EXISTS Lists (
                id        INTEGER PRIMARY KEY AUTOINCREMENT,
                user      TEXT NOT NULL,
                name      TEXT NOT NULL,
                color     TEXT,
                created   TEXT,
                UNIQUE (user, name)
            );
        """)
        self.conn.commit()

    # ─── reads ─────────────────────────────────────────────

    def get_task_docs(self) -> list[tuple[str, dict]]:
        self.cursor.execute(
            "SELECT id, doc FROM Tasks WHERE user = ? ORDER BY created, id",
            (self.user,),
        )
        rows = []
        for task_id, doc in self.cursor.fetchall():
            try:
                rows.append((str(task_id), json.loads(doc)))
            except json.JSONDecodeError as e:
                log_msg(f"skipping task {task_id}: unreadable document: {e}")
        return rows

    def get_tasks(self) -> tuple[TaskDefinition, ...]:
        return tuple(TaskDefinition.from_dict(tid, doc) for tid, doc in self.get_task_docs())

    def get_task(self, task_id: str) -> TaskDefinition | None:
        doc = self._get_doc(task_id)
        if doc is None:
            return None
        return TaskDefinition.from_dict(str(task_id), doc)

    def get_lists(self) -> tuple[ListDefinition, ...]:
        self.cursor.execute(
            "SELECT id, name, color, created FROM Lists WHERE user = ? ORDER BY created, id",
            (self.user,),
        )
        return tuple(
            ListDefinition(str(lid), name, color, parse_timestamp(created))
            for lid, name, color, created in self.cursor.fetchall()
        )

    def snapshot(self) -> Snapshot:
        return Snapshot(self._version, self.get_tasks())

    def count_tasks(self) -> int:
        self.cursor.execute("SELECT COUNT(*) FROM Tasks WHERE user = ?", (self.user,))
        return self.cursor.fetchone()[0]

    def _get_doc(self, task_id: str) -> dict | None:
        try:
            key = int(task_id)
        except (TypeError, ValueError):
            return None
        self.cursor.execute(
            "SELECT doc FROM Tasks WHERE id = ? AND user = ?", (key, self.user)
        )
        row = self.cursor.fetchone()
        if not row:
            return None
        return json.loads(row[0])

    # ─── subscriptions ─────────────────────────────────────

    def subscribe_tasks(self, callback: Callable[[Snapshot], None]) -> Unsubscribe:
        """Register ``callback``; it gets the current snapshot now and after every write."""
        self._task_subscribers.append(callback)
        callback(self.snapshot())

        def unsubscribe():
            if callback in self._task_subscribers:
                self._task_subscribers.remove(callback)

        return unsubscribe

    def subscribe_lists(
        self, callback: Callable[[tuple[ListDefinition, ...]], None]
    ) -> Unsubscribe:
        self._list_subscribers.append(callback)
        callback(self.get_lists())

        def unsubscribe():
            if callback in self._list_subscribers:
                self._list_subscribers.remove(callback)

        return unsubscribe

    def _publish(self, tasks: bool = True, lists: bool = False):
        if tasks:
            self._version += 1
            snap = self.snapshot()
            for callback in list(self._task_subscribers):
                callback(snap)
        if lists:
            current = self.get_lists()
            for callback in list(self._list_subscribers):
                callback(current)

    # ─── writes ────────────────────────────────────────────

    def _run(self, what: str, fn):
        """Run ``fn`` inside one transaction; any sqlite failure becomes StoreError."""
        try:
            result = fn()
            self.conn.commit()
            return result
        except sqlite3.Error as e:
            self.conn.rollback()
            log_msg(f"{what} failed: {e}")
            raise StoreError(f"Failed to {what}: {e}") from e
        except StoreError:
            self.conn.rollback()
            raise

    def _update_doc(self, task_id: str, fields: dict):
        doc = self._get_doc(task_id)
        if doc is None:
            raise StoreError(f"Failed to update task {task_id}: no such task")
        doc.update(fields)
        self.cursor.execute(
            "UPDATE Tasks SET doc = ?, modified = ? WHERE id = ? AND user = ?",
            (json.dumps(doc), utc_now_string(), int(task_id), self.user),
        )

    def _delete_doc(self, task_id: str):
        if self._get_doc(task_id) is None:
            raise StoreError(f"Failed to delete task {task_id}: no such task")
        self.cursor.execute(
            "DELETE FROM Tasks WHERE id = ? AND user = ?", (int(task_id), self.user)
        )

    def apply_patch(self, task_id: str, fields: dict) -> None:
        self._run(f"update task {task_id}", lambda: self._update_doc(task_id, fields))
        self._publish()

    def create_task(self, fields: dict) -> str:
        doc = dict(fields)
        timestamp = utc_now_string()
        doc.setdefault("createdAt", timestamp)

        def insert():
            self.cursor.execute(
                "INSERT INTO Tasks (user, doc, created, modified) VALUES (?, ?, ?, ?)",
                (self.user, json.dumps(doc), doc["createdAt"], timestamp),
            )
            return str(self.cursor.lastrowid)

        task_id = self._run("add task", insert)
        self._publish()
        return task_id

    def delete_task(self, task_id: str) -> None:
        self._run(f"delete task {task_id}", lambda: self._delete_doc(task_id))
        self._publish()

    def apply(self, patch: Patch) -> str | None:
        if patch.op == "create":
            return self.create_task(patch.fields)
        if patch.op == "update":
            self.apply_patch(patch.task_id, patch.fields)
        elif patch.op == "delete":
            self.delete_task(patch.task_id)
        else:
            raise StoreError(f"unknown patch operation {patch.op!r}")
        return patch.task_id

    # ─── lists ─────────────────────────────────────────────

    def _find_list_id(self, name: str) -> int | None:
        self.cursor.execute(
            "SELECT id FROM Lists WHERE user = ? AND name = ?", (self.user, name)
        )
        row = self.cursor.fetchone()
        return row[0] if row else None

    def create_list(self, name: str, color: str | None = None) -> str:
        name = (name or "").strip()
        if not name:
            raise StoreError("Failed to create list: a list needs a name")

        def insert():
            if self._find_list_id(name) is not None:
                raise StoreError(f"Failed to create list: {name!r} already exists")
            self.cursor.execute(
                "INSERT INTO Lists (user, name, color, created) VALUES (?, ?, ?, ?)",
                (self.user, name, color, utc_now_string()),
            )
            return str(self.cursor.lastrowid)

        list_id = self._run("create list", insert)
        self._publish(tasks=False, lists=True)
        return list_id

    def rename_list(self, old: str, new: str) -> None:
        new = (new or "").strip()
        if not new or new == old:
            return
        patches = rename_list_patches(self.get_tasks(), old, new)

        def run():
            list_id = self._find_list_id(old)
            if list_id is not None:
                self.cursor.execute(
                    "UPDATE Lists SET name = ? WHERE id = ?", (new, list_id)
                )
            for patch in patches:
                self._update_doc(patch.task_id, patch.fields)

        self._run("rename list", run)
        self._publish(tasks=bool(patches), lists=True)

    def set_list_color(self, name: str, color: str | None) -> None:
        def run():
            list_id = self._find_list_id(name)
            if list_id is None:
                raise StoreError(f"Failed to update list color: no list {name!r}")
            self.cursor.execute(
                "UPDATE Lists SET color = ? WHERE id = ?", (color, list_id)
            )

        self._run("update list color", run)
        self._publish(tasks=False, lists=True)

    def delete_list(self, name: str) -> None:
        """Delete a list and every task in it; deleting the Inbox also removes unfiled tasks."""
        patches = delete_list_patches(self.get_tasks(), name)

        def run():
            self.cursor.execute(
                "DELETE FROM Lists WHERE user = ? AND name = ?", (self.user, name)
            )
            for patch in patches:
                self._delete_doc(patch.task_id)

        self._run("delete list", run)
        log_msg(f"deleted list {name!r} with {len(patches)} task(s)")
        self._publish(tasks=True, lists=True)

"""
Shared pytest fixtures for taskcal tests.

This module provides common fixtures used across the test files:
- Time freezing utilities
- A throwaway TASKCAL_HOME so logs and config never touch the real one
- Store and controller fixtures backed by a temporary database
- A factory for stored task documents
"""

import pytest
from datetime import date
from freezegun import freeze_time

from taskcal.controller import Controller
from taskcal.model import DatabaseManager
from taskcal.recurrence import Ends, RecurrenceRule
from taskcal.taskcal_env import TaskcalEnvironment


@pytest.fixture(autouse=True)
def taskcal_home(tmp_path, monkeypatch):
    """
    Points TASKCAL_HOME at a per-test directory.  log_msg and bug_msg write
    under it, and TaskcalEnvironment resolves to it.
    """
    home = tmp_path / "taskcal-home"
    monkeypatch.setenv("TASKCAL_HOME", str(home))
    monkeypatch.chdir(tmp_path)
    return home


@pytest.fixture
def frozen_time():
    """
    Freezes time to Wednesday 2024-01-10 12:00:00 for the duration of the test.

    Usage:
        def test_something(frozen_time):
            assert date.today() == date(2024, 1, 10)
            frozen_time.move_to("2024-01-17")
    """
    with freeze_time("2024-01-10 12:00:00") as frozen:
        yield frozen


@pytest.fixture
def freeze_at():
    """
    Returns a function that freezes time to a specific datetime.

    Usage:
        def test_something(freeze_at):
            with freeze_at("2024-02-29 10:00:00"):
                ...
    """
    return freeze_time


@pytest.fixture
def test_env(taskcal_home):
    env = TaskcalEnvironment()
    env.ensure(init_config=True)
    return env


@pytest.fixture
def temp_db_path(tmp_path):
    return tmp_path / "test_taskcal.db"


@pytest.fixture
def store(temp_db_path):
    dbm = DatabaseManager(str(temp_db_path), user="tester", reset=True)
    yield dbm
    dbm.close()


@pytest.fixture
def controller(frozen_time, store):
    """A Controller on a fresh store, with time frozen to 2024-01-10."""
    ctrl = Controller(store)
    yield ctrl
    ctrl.close()


@pytest.fixture
def weekly_rule():
    """Every week from Monday 2024-01-01, three occurrences."""
    return RecurrenceRule(every=1, unit="week", starts=date(2024, 1, 1), ends=Ends.after(3))


@pytest.fixture
def task_doc():
    """
    Returns a factory for stored task documents with sensible defaults.

    Usage:
        doc = task_doc("water plants", date="2024-01-10")
    """

    def _doc(title: str = "task", **fields) -> dict:
        doc = {
            "text": title,
            "status": "active",
            "difficulty": "Medium",
            "importance": "Medium",
            "date": None,
            "time": None,
            "list": None,
            "recurrence": None,
            "completedDates": [],
            "skippedDates": [],
            "createdAt": "2024-01-01T08:00:00",
        }
        doc.update(fields)
        return doc

    return _doc

# tests/conftest.py

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path
from types import SimpleNamespace

import pytest

from taskdeck.cli.bootstrap import create_initial_state
from taskdeck.core.state import AppState
from taskdeck.tasks.task_store import TaskStore

from .fakes import FakeNotifier, InMemoryKV

# Wednesday; the week runs Mon 2024-05-13 .. Sun 2024-05-19.
FIXED_NOW = datetime(2024, 5, 15, 12, 0, tzinfo=UTC)


@pytest.fixture()
def settings(tmp_path: Path) -> SimpleNamespace:
    """
    Minimal settings object compatible with AppState and the bootstrap.

    We intentionally use a SimpleNamespace rather than importing real config,
    to keep unit tests isolated and deterministic.
    """
    return SimpleNamespace(
        app_name="taskdeck-test",
        log_level="DEBUG",
        console_enabled=False,
        # Paths (tmp per test run)
        data_dir=tmp_path,
        kv_backend="sqlite",
        kv_db_path=tmp_path / "storage.sqlite3",
        kv_json_path=tmp_path / "storage.json",
        # List / statistics defaults
        default_sort="dueDate",
        default_filter="all",
        default_timeframe="week",
    )


@pytest.fixture()
def kv() -> InMemoryKV:
    return InMemoryKV()


@pytest.fixture()
def notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture()
def store(kv: InMemoryKV, notifier: FakeNotifier) -> TaskStore:
    """Unloaded store on a fixed clock (mutations stay in memory)."""
    return TaskStore(kv, notifier=notifier, clock=lambda: FIXED_NOW)


@pytest.fixture()
def state(settings: SimpleNamespace, kv: InMemoryKV) -> AppState:
    """
    AppState wired by the real composition root, on an in-memory KV.
    """
    return create_initial_state(settings=settings, kv=kv)

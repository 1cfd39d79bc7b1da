# src/taskdeck/cli/bootstrap.py

"""
CLI bootstrap helpers.

This module is the "composition root":
- loads settings once,
- ensures local (gitignored) directories exist,
- wires concrete implementations into AppState (storage/notifier/biometrics),
- loads persisted tasks before anything can mutate them.
"""

from __future__ import annotations

import logging

from ..config import get_settings
from ..connectors.console_devices import LoggingNotifier, UnavailableBiometrics
from ..core.ports import KeyValueStore
from ..core.state import AppState
from ..security.app_lock import AppLock
from ..storage.kv_store import JsonFileKeyValueStore, SqliteKeyValueStore
from ..tasks.query import FilterSpec
from ..tasks.statistics import Timeframe
from ..tasks.task_store import TaskStore

logger = logging.getLogger(__name__)


def _ensure_local_dirs(settings) -> None:
    settings.data_dir.mkdir(parents=True, exist_ok=True)
    settings.kv_db_path.parent.mkdir(parents=True, exist_ok=True)
    settings.kv_json_path.parent.mkdir(parents=True, exist_ok=True)


def create_kv_store(settings) -> KeyValueStore:
    if getattr(settings, "kv_backend", "sqlite") == "json":
        return JsonFileKeyValueStore(settings.kv_json_path)
    return SqliteKeyValueStore(settings.kv_db_path)


def create_initial_state(*, settings=None, kv: KeyValueStore | None = None) -> AppState:
    """
    Create AppState from the provided settings.

    Keeping settings injectable makes the app easier to test and avoids hidden global config reads.
    If settings is None, falls back to get_settings().
    """
    if settings is None:
        settings = get_settings()

    _ensure_local_dirs(settings)

    if kv is None:
        kv = create_kv_store(settings)

    notifier = LoggingNotifier()
    biometrics = UnavailableBiometrics()

    state = AppState(
        settings=settings,
        kv=kv,
        task_store=TaskStore(kv, notifier=notifier),
        app_lock=AppLock(kv, biometrics=biometrics),
        notifier=notifier,
        biometrics=biometrics,
        filter=FilterSpec.create(
            sort_by=getattr(settings, "default_sort", "dueDate"),
            filter_by=getattr(settings, "default_filter", "all"),
        ),
        timeframe=Timeframe.parse(getattr(settings, "default_timeframe", "week")),
    )
    return state


async def start_state(state: AppState) -> None:
    """Load persisted tasks, then evaluate the app lock."""
    await state.task_store.load()
    lock_state = await state.app_lock.start()
    logger.info(
        "State ready tasks=%d lock=%s",
        state.task_store.count_tasks(),
        lock_state.value,
    )

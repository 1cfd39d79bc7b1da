# src/taskdeck/core/state.py

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from ..security.app_lock import AppLock
from ..tasks.query import DEFAULT_FILTER, FilterSpec
from ..tasks.statistics import Timeframe
from ..tasks.task_store import TaskStore
from .ports import BiometricAuthenticator, KeyValueStore, Notifier


@dataclass
class AppState:
    """
    Everything a connector needs, wired once by the composition root.

    The task store is owned here and handed to whoever needs it; there is no
    module-level store.
    """

    # Settings, or a SimpleNamespace with the same fields in tests.
    settings: Any

    kv: KeyValueStore
    task_store: TaskStore
    app_lock: AppLock
    notifier: Notifier
    biometrics: BiometricAuthenticator

    # UI-facing view state (not persisted).
    filter: FilterSpec = field(default=DEFAULT_FILTER)
    timeframe: Timeframe = Timeframe.WEEK

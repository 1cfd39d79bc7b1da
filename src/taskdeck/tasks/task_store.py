# src/taskdeck/tasks/task_store.py

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Callable, Coroutine, Iterable
from dataclasses import replace
from datetime import datetime
from typing import Any

from ..core.ports import KeyValueStore, Notifier
from ..errors import ImportFormatError, NotFoundError, PersistenceError, ValidationError
from .recurrence import normalize_rule
from .reminders import refresh_reminders
from .task_models import (
    CATEGORY_COLORS,
    BuiltInCategory,
    Category,
    CustomCategory,
    CustomCategoryRef,
    Priority,
    RecurrenceRule,
    Task,
    category_value,
    custom_category_from_dict,
    custom_category_to_dict,
    ensure_aware,
    parse_category,
    task_from_dict,
    task_to_dict,
)

logger = logging.getLogger(__name__)

TASKS_KEY = "tasks"
CUSTOM_CATEGORIES_KEY = "customCategories"

DEFAULT_CATEGORY_COLOR = CATEGORY_COLORS["red"]

_UPDATABLE_FIELDS = frozenset(
    {
        "title",
        "description",
        "completed",
        "priority",
        "category",
        "due_date",
        "reminder_time",
        "tags",
        "recurrence",
    }
)


def _local_now() -> datetime:
    return datetime.now().astimezone()


def _require_title(title: Any) -> str:
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("title is required")
    return title


def _parse_priority(raw: Priority | str) -> Priority:
    try:
        return Priority(str(raw).strip().lower())
    except ValueError as e:
        raise ValidationError(f"unknown priority: {raw!r}") from e


def _opt_ts(raw: datetime | None) -> datetime | None:
    return None if raw is None else ensure_aware(raw)


class TaskStore:
    """
    In-memory task collection backed by a key-value snapshot.

    Ownership:
    - the store owns the task list and the custom-category list for the process
      lifetime; callers get copies / immutable views.

    Mutations:
    - are synchronous with respect to in-memory state,
    - prune custom categories nobody references (and register referenced ones
      that have no entry yet),
    - then fire-and-forget: persist both snapshots, refresh reminders.
      Those side effects never fail the mutation; errors are logged.

    Without a running event loop the side effects run inline.
    """

    def __init__(
            self,
            kv: KeyValueStore,
            *,
            notifier: Notifier | None = None,
            clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._kv = kv
        self._notifier = notifier
        self._clock = clock or _local_now

        self._tasks: list[Task] = []
        self._custom_categories: list[CustomCategory] = []
        self._initialized = False
        self._last_id_ms = 0

        self._write_lock = asyncio.Lock()
        self._reminder_lock = asyncio.Lock()
        self._pending: set[asyncio.Task[None]] = set()

    # ---- read API ----

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def tasks(self) -> list[Task]:
        return list(self._tasks)

    @property
    def custom_categories(self) -> list[CustomCategory]:
        return list(self._custom_categories)

    def get_task_by_id(self, task_id: str) -> Task | None:
        for task in self._tasks:
            if task.id == task_id:
                return task
        return None

    def count_tasks(self) -> int:
        return len(self._tasks)

    def category_color(self, name: str) -> str | None:
        key = name.lower()
        for cat in self._custom_categories:
            if cat.name.lower() == key:
                return cat.color
        return None

    # ---- lifecycle ----

    async def load(self) -> None:
        """
        Read both snapshots (absent keys mean empty collections).

        If the store cannot be read at all the store stays uninitialized, so
        later mutations do not overwrite data that was never read.
        """
        try:
            raw_tasks = await asyncio.to_thread(self._kv.get_item, TASKS_KEY)
            raw_categories = await asyncio.to_thread(self._kv.get_item, CUSTOM_CATEGORIES_KEY)
        except PersistenceError:
            logger.exception("Loading tasks failed; persistence stays disabled until load succeeds")
            return

        self._tasks = self._decode_tasks(raw_tasks)
        self._custom_categories = self._decode_categories(raw_categories)
        self._sync_categories()
        self._initialized = True
        logger.info(
            "TaskStore loaded tasks=%d custom_categories=%d",
            len(self._tasks),
            len(self._custom_categories),
        )

        if self._notifier is not None:
            self._spawn(self._refresh_reminders(list(self._tasks)))

    async def flush(self) -> None:
        """Wait for outstanding persistence / reminder side effects."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @staticmethod
    def _decode_tasks(raw: str | None) -> list[Task]:
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except ValueError:
            logger.error("Stored task snapshot is not valid JSON; starting empty.")
            return []
        if not isinstance(data, list):
            logger.error("Stored task snapshot is not a JSON array; starting empty.")
            return []

        out: list[Task] = []
        for item in data:
            try:
                out.append(task_from_dict(item))
            except ImportFormatError as e:
                logger.warning("Skipping unreadable stored task: %s", e)
        return out

    @staticmethod
    def _decode_categories(raw: str | None) -> list[CustomCategory]:
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except ValueError:
            logger.error("Stored custom categories are not valid JSON; starting empty.")
            return []
        if not isinstance(data, list):
            return []

        out: list[CustomCategory] = []
        seen: set[str] = set()
        for item in data:
            cat = custom_category_from_dict(item)
            if cat is None or cat.name.lower() in seen:
                continue
            seen.add(cat.name.lower())
            out.append(cat)
        return out

    # ---- task mutations ----

    def add_task(
            self,
            *,
            title: str,
            category: str | Category,
            priority: Priority | str = Priority.MEDIUM,
            description: str | None = None,
            completed: bool = False,
            due_date: datetime | None = None,
            reminder_time: datetime | None = None,
            tags: Iterable[str] | None = None,
            recurrence: RecurrenceRule | None = None,
            color: str | None = None,
    ) -> Task:
        """
        Create a task. `color` registers the custom category (if `category` is
        custom and not known yet) with that palette colour.
        """
        title = _require_title(title)
        cat = parse_category(category, normalize=True)
        prio = _parse_priority(priority)
        rule = normalize_rule(recurrence)
        if color is not None:
            self._check_color(color)

        now = self._clock()
        task = Task(
            id=self._next_id(),
            title=title,
            created_at=now,
            priority=prio,
            category=cat,
            completed=bool(completed),
            completed_at=now if completed else None,
            description=description,
            due_date=_opt_ts(due_date),
            reminder_time=_opt_ts(reminder_time),
            tags=list(tags or []),
            recurrence=rule,
        )

        if isinstance(cat, CustomCategoryRef) and color is not None:
            self._insert_custom_category(cat.name, color)

        self._tasks.append(task)
        logger.debug(
            "Task added id=%s category=%s priority=%s due=%s",
            task.id,
            category_value(cat),
            prio.value,
            task.due_date,
        )
        self._after_mutation("add")
        return task

    def update_task(self, task_id: str, **fields: Any) -> Task:
        """
        Merge `fields` into the task with `task_id` and return the new version.

        Raises NotFoundError for an unknown id and ValidationError for unknown
        or invalid fields (nothing is changed in that case).
        """
        unknown = set(fields) - _UPDATABLE_FIELDS
        if unknown:
            raise ValidationError(f"fields cannot be updated: {', '.join(sorted(unknown))}")

        idx = self._index_of(task_id)
        if idx is None:
            raise NotFoundError(task_id)
        current = self._tasks[idx]

        changes: dict[str, Any] = {}
        for name, value in fields.items():
            if name == "title":
                changes["title"] = _require_title(value)
            elif name == "category":
                changes["category"] = parse_category(value, normalize=True)
            elif name == "priority":
                changes["priority"] = _parse_priority(value)
            elif name == "recurrence":
                changes["recurrence"] = normalize_rule(value)
            elif name in ("due_date", "reminder_time"):
                changes[name] = _opt_ts(value)
            elif name == "tags":
                changes["tags"] = list(value or [])
            elif name == "completed":
                changes["completed"] = bool(value)
            else:
                changes[name] = value

        if "completed" in changes and changes["completed"] != current.completed:
            changes["completed_at"] = self._clock() if changes["completed"] else None

        updated = replace(current, **changes)
        self._tasks[idx] = updated
        logger.debug("Task updated id=%s fields=%s", task_id, ",".join(sorted(changes)))
        self._after_mutation("update")
        return updated

    def delete_task(self, task_id: str) -> bool:
        idx = self._index_of(task_id)
        if idx is None:
            return False
        del self._tasks[idx]
        logger.debug("Task deleted id=%s", task_id)
        self._after_mutation("delete")
        return True

    def toggle_task_completion(self, task_id: str) -> Task:
        task = self.get_task_by_id(task_id)
        if task is None:
            raise NotFoundError(task_id)
        return self.update_task(task_id, completed=not task.completed)

    def reset(self) -> int:
        """Delete every task. Returns how many were removed."""
        n = len(self._tasks)
        self._tasks = []
        logger.info("All tasks reset removed=%d", n)
        self._after_mutation("reset")
        return n

    # ---- custom categories ----

    def add_custom_category(self, name: str, color: str) -> bool:
        """Insert a custom category unless the name exists (case-insensitive)."""
        name = (name or "").strip().lower()
        if not name:
            raise ValidationError("category name is required")
        if name in {c.value for c in BuiltInCategory}:
            raise ValidationError(f"{name!r} is a built-in category")
        self._check_color(color)

        inserted = self._insert_custom_category(name, color)
        if inserted and self._initialized:
            self._spawn(self._persist(*self._snapshot()))
        return inserted

    def remove_unused_categories(self) -> list[str]:
        """Drop custom categories no task references. Returns removed names."""
        used = {category_value(t.category) for t in self._tasks}
        removed = [c.name for c in self._custom_categories if c.name not in used]
        if removed:
            self._custom_categories = [c for c in self._custom_categories if c.name in used]
            logger.debug("Pruned unused custom categories: %s", ", ".join(removed))
        return removed

    def _insert_custom_category(self, name: str, color: str) -> bool:
        if self.category_color(name) is not None:
            return False
        self._custom_categories.append(CustomCategory(name=name, color=color))
        return True

    def _sync_categories(self) -> None:
        self.remove_unused_categories()
        for task in self._tasks:
            if isinstance(task.category, CustomCategoryRef):
                self._insert_custom_category(task.category.name, DEFAULT_CATEGORY_COLOR)

    @staticmethod
    def _check_color(color: str) -> None:
        if color not in CATEGORY_COLORS.values():
            raise ValidationError(f"colour is not in the palette: {color!r}")

    # ---- export / import ----

    def export_json(self) -> str:
        return json.dumps([task_to_dict(t) for t in self._tasks], ensure_ascii=False, indent=2)

    def import_json(self, payload: str) -> int:
        """
        Replace the whole task collection with `payload` (a JSON array of tasks).

        Malformed input raises ImportFormatError and leaves existing data untouched.
        """
        try:
            data = json.loads(payload)
        except (TypeError, ValueError) as e:
            raise ImportFormatError("import payload is not valid JSON") from e
        if not isinstance(data, list):
            raise ImportFormatError("import payload must be a JSON array of tasks")

        tasks = [task_from_dict(item) for item in data]
        ids = [t.id for t in tasks]
        if len(set(ids)) != len(ids):
            raise ImportFormatError("import payload contains duplicate task ids")

        self._tasks = tasks
        logger.info("Tasks imported count=%d", len(tasks))
        self._after_mutation("import")
        return len(tasks)

    # ---- internals ----

    def _index_of(self, task_id: str) -> int | None:
        for i, task in enumerate(self._tasks):
            if task.id == task_id:
                return i
        return None

    def _next_id(self) -> str:
        ms = max(int(time.time() * 1000), self._last_id_ms + 1)
        existing = {t.id for t in self._tasks}
        while str(ms) in existing:
            ms += 1
        self._last_id_ms = ms
        return str(ms)

    def _snapshot(self) -> tuple[str, str]:
        tasks_json = json.dumps([task_to_dict(t) for t in self._tasks], ensure_ascii=False)
        categories_json = json.dumps(
            [custom_category_to_dict(c) for c in self._custom_categories],
            ensure_ascii=False,
        )
        return tasks_json, categories_json

    def _after_mutation(self, reason: str) -> None:
        self._sync_categories()

        if not self._initialized:
            logger.warning("TaskStore mutated before load() (%s); not persisting.", reason)
            return

        self._spawn(self._persist(*self._snapshot()))
        if self._notifier is not None:
            self._spawn(self._refresh_reminders(list(self._tasks)))

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(coro)
            return
        task = loop.create_task(coro)
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _persist(self, tasks_json: str, categories_json: str) -> None:
        async with self._write_lock:
            try:
                await asyncio.to_thread(self._kv.set_item, TASKS_KEY, tasks_json)
                await asyncio.to_thread(self._kv.set_item, CUSTOM_CATEGORIES_KEY, categories_json)
            except Exception:
                logger.exception("Persisting tasks failed; will retry on the next mutation")

    async def _refresh_reminders(self, tasks: list[Task]) -> None:
        if self._notifier is None:
            return
        async with self._reminder_lock:
            try:
                await refresh_reminders(self._notifier, tasks, now=self._clock())
            except Exception:
                logger.exception("Reminder refresh failed")


# src/taskdeck/tasks/query.py

from __future__ import annotations

"""
Pure list views over a task collection: filter/sort, date buckets, calendar days.

Nothing in here mutates tasks or talks to storage; callers pass the current
collection (usually TaskStore.tasks) and get new lists back.
"""

import locale
import unicodedata
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date, datetime, timedelta, tzinfo
from enum import StrEnum

from ..errors import ValidationError
from .task_models import Task, category_value


class SortOption(StrEnum):
    DUE_DATE = "dueDate"
    PRIORITY = "priority"
    CREATED_AT = "createdAt"
    TITLE = "title"


class StatusFilter(StrEnum):
    ALL = "all"
    COMPLETED = "completed"
    INCOMPLETE = "incomplete"


class Bucket(StrEnum):
    TODAY = "Today"
    TOMORROW = "Tomorrow"
    THIS_WEEK = "This Week"
    LATER = "Later"
    NO_DUE_DATE = "No Due Date"
    COMPLETED = "Completed"


BUCKET_ORDER: tuple[Bucket, ...] = tuple(Bucket)


@dataclass(frozen=True, slots=True)
class FilterSpec:
    """
    Current list filter (UI state, never persisted).

    filter_by is "all" / "completed" / "incomplete" or a category value.
    """

    search: str = ""
    sort_by: SortOption = SortOption.DUE_DATE
    filter_by: str = StatusFilter.ALL.value

    @classmethod
    def create(cls, *, search: str = "", sort_by: str = "dueDate", filter_by: str = "all") -> FilterSpec:
        try:
            sort = SortOption(sort_by)
        except ValueError as e:
            raise ValidationError(f"unknown sort option: {sort_by!r}") from e
        return cls(search=search or "", sort_by=sort, filter_by=(filter_by or "all").strip())


DEFAULT_FILTER = FilterSpec()


def _matches_search(task: Task, needle: str) -> bool:
    if needle in task.title.lower():
        return True
    return bool(task.description) and needle in (task.description or "").lower()


def _matches_filter(task: Task, filter_by: str) -> bool:
    if filter_by == StatusFilter.ALL:
        return True
    if filter_by == StatusFilter.COMPLETED:
        return task.completed
    if filter_by == StatusFilter.INCOMPLETE:
        return not task.completed
    return category_value(task.category) == filter_by


def _fold_accents(text: str) -> str:
    decomposed = unicodedata.normalize("NFKD", text.casefold())
    return "".join(ch for ch in decomposed if not unicodedata.combining(ch))


def _title_key(task: Task) -> tuple[str, str, str]:
    # Accent- and case-insensitive first ("Éclair" sorts with "e" even in the
    # C locale), then the current locale's collation as tie-break.
    title = task.title
    return (
        locale.strxfrm(_fold_accents(title)),
        locale.strxfrm(title.casefold()),
        locale.strxfrm(title),
    )


def sort_tasks(tasks: Iterable[Task], sort_by: SortOption) -> list[Task]:
    """Stable sort; tasks without a due date keep their relative order at the end."""
    items = list(tasks)
    if sort_by == SortOption.DUE_DATE:
        items.sort(key=lambda t: (0, t.due_date.timestamp()) if t.due_date else (1, 0.0))
    elif sort_by == SortOption.PRIORITY:
        items.sort(key=lambda t: t.priority.rank)
    elif sort_by == SortOption.CREATED_AT:
        items.sort(key=lambda t: t.created_at.timestamp(), reverse=True)
    elif sort_by == SortOption.TITLE:
        items.sort(key=_title_key)
    return items


def filter_and_sort(tasks: Iterable[Task], spec: FilterSpec = DEFAULT_FILTER) -> list[Task]:
    result = list(tasks)

    if spec.search:
        needle = spec.search.lower()
        result = [t for t in result if _matches_search(t, needle)]

    if spec.filter_by != StatusFilter.ALL:
        result = [t for t in result if _matches_filter(t, spec.filter_by)]

    return sort_tasks(result, spec.sort_by)


# ---- calendar helpers ----


def _local_day(dt: datetime, tz: tzinfo | None) -> date:
    return dt.astimezone(tz).date()


def week_start(day: date) -> date:
    """Monday of the week containing `day`."""
    return day - timedelta(days=day.weekday())


def week_days(anchor: date, count: int = 7) -> list[date]:
    start = week_start(anchor)
    return [start + timedelta(days=i) for i in range(max(0, count))]


def tasks_for_date(tasks: Iterable[Task], day: date, *, tz: tzinfo | None = None) -> list[Task]:
    """Tasks due on the given local calendar day (order preserved)."""
    return [t for t in tasks if t.due_date is not None and _local_day(t.due_date, tz) == day]


def bucket_for(task: Task, *, today: date, tz: tzinfo | None = None) -> Bucket:
    if task.completed:
        return Bucket.COMPLETED
    if task.due_date is None:
        return Bucket.NO_DUE_DATE

    due = _local_day(task.due_date, tz)
    if due == today:
        return Bucket.TODAY
    if due == today + timedelta(days=1):
        return Bucket.TOMORROW

    start = week_start(today)
    if start <= due <= start + timedelta(days=6):
        return Bucket.THIS_WEEK
    return Bucket.LATER


def group_by_date_bucket(
        tasks: Iterable[Task],
        *,
        now: datetime | None = None,
) -> list[tuple[str, list[Task]]]:
    """
    Group tasks into display sections in fixed order, dropping empty ones.

    Day boundaries are calendar days in the timezone of `now` (local time by
    default). Task order inside a bucket follows the input order.
    """
    if now is None:
        now = datetime.now().astimezone()
    tz = now.tzinfo
    today = now.date()

    grouped: dict[Bucket, list[Task]] = {b: [] for b in BUCKET_ORDER}
    for task in tasks:
        grouped[bucket_for(task, today=today, tz=tz)].append(task)

    return [(b.value, items) for b, items in grouped.items() if items]


def section_titles(groups: Sequence[tuple[str, list[Task]]]) -> list[str]:
    return [f"{label} ({len(items)})" for label, items in groups]

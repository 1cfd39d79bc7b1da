# src/taskdeck/tasks/statistics.py

from __future__ import annotations

"""
Task analytics for the statistics screen.

Windowed metrics (completion rate, trend, by-priority / by-category counts)
look at tasks created inside the selected timeframe. All-time metrics
(average completion time, productivity volume, daily histogram, overdue count,
streak) look at the whole collection.

Every function takes `now` explicitly so results are reproducible.
"""

import calendar
import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from enum import StrEnum

from ..errors import ValidationError
from .query import week_start
from .task_models import Task, category_value


class Timeframe(StrEnum):
    WEEK = "week"
    MONTH = "month"
    ALL = "all"

    @classmethod
    def parse(cls, raw: str) -> Timeframe:
        try:
            return cls((raw or "").strip().lower())
        except ValueError as e:
            raise ValidationError(f"unknown timeframe: {raw!r}") from e


@dataclass(frozen=True, slots=True)
class DailyStat:
    day: date
    label: str  # Mon..Sun
    completed: int


@dataclass(frozen=True, slots=True)
class TaskStatistics:
    timeframe: Timeframe
    total: int
    completed: int
    incomplete: int
    completion_rate: float
    previous_completion_rate: float
    completion_rate_trend: float
    average_completion_time: float
    productivity_score: int
    overdue_tasks: int
    streak: int
    daily_stats: list[DailyStat] = field(default_factory=list)
    by_priority: dict[str, int] = field(default_factory=dict)
    by_category: dict[str, int] = field(default_factory=dict)


# ---- windows ----


def _local(dt: datetime, now: datetime) -> datetime:
    return dt.astimezone(now.tzinfo)


def _day_start(day: date, now: datetime) -> datetime:
    return datetime.combine(day, time.min, tzinfo=now.tzinfo)


def period_bounds(timeframe: Timeframe, now: datetime, *, offset: int = 0) -> tuple[datetime, datetime] | None:
    """
    [start, end) of the current week/month shifted by `offset` periods.

    Weeks are ISO weeks (Monday start); months are calendar months.
    Returns None for Timeframe.ALL.
    """
    today = _local(now, now).date()

    if timeframe == Timeframe.WEEK:
        start = week_start(today) + timedelta(weeks=offset)
        return _day_start(start, now), _day_start(start + timedelta(days=7), now)

    if timeframe == Timeframe.MONTH:
        month_index = today.year * 12 + (today.month - 1) + offset
        year, month0 = divmod(month_index, 12)
        start = date(year, month0 + 1, 1)
        days = calendar.monthrange(year, month0 + 1)[1]
        return _day_start(start, now), _day_start(start + timedelta(days=days), now)

    return None


def _in_window(task: Task, bounds: tuple[datetime, datetime] | None) -> bool:
    if bounds is None:
        return True
    start, end = bounds
    return start <= task.created_at < end


def filter_by_timeframe(tasks: Iterable[Task], timeframe: Timeframe, *, now: datetime, offset: int = 0) -> list[Task]:
    bounds = period_bounds(timeframe, now, offset=offset)
    return [t for t in tasks if _in_window(t, bounds)]


# ---- metrics ----


def completion_rate(tasks: Sequence[Task]) -> float:
    if not tasks:
        return 0.0
    done = sum(1 for t in tasks if t.completed)
    return done / len(tasks) * 100.0


def completion_days(task: Task, *, now: datetime | None = None) -> int:
    """
    Whole days between creation and completion (truncated toward zero).

    Legacy records completed without a timestamp count up to `now`.
    """
    end = task.completed_at or now
    if end is None:
        return 0
    seconds = (end - task.created_at).total_seconds()
    return int(seconds / 86400)


def average_completion_time(tasks: Iterable[Task], *, now: datetime | None = None) -> float:
    completed = [t for t in tasks if t.completed]
    if not completed:
        return 0.0
    return sum(completion_days(t, now=now) for t in completed) / len(completed)


def productivity_score(rate: float, completed_count: int, avg_completion_days: float) -> int:
    """0..100 composite of completion rate, volume and speed; 0 when nothing is done."""
    if completed_count <= 0:
        return 0
    raw = rate * 0.4 + min(completed_count, 10) * 5 + max(0.0, 5 - avg_completion_days) * 4
    # half-up rounding
    return max(0, min(math.floor(raw + 0.5), 100))


def _completed_on(task: Task, day: date, now: datetime) -> bool:
    return task.completed and task.completed_at is not None and _local(task.completed_at, now).date() == day


def daily_completions(tasks: Sequence[Task], *, now: datetime) -> list[DailyStat]:
    """Completed-task counts for Mon..Sun of the current week."""
    today = _local(now, now).date()
    out: list[DailyStat] = []
    for i in range(7):
        day = week_start(today) + timedelta(days=i)
        n = sum(1 for t in tasks if _completed_on(t, day, now))
        out.append(DailyStat(day=day, label=calendar.day_abbr[day.weekday()], completed=n))
    return out


def count_overdue(tasks: Iterable[Task], *, now: datetime) -> int:
    return sum(1 for t in tasks if not t.completed and t.due_date is not None and t.due_date < now)


def calculate_streak(tasks: Sequence[Task], *, now: datetime) -> int:
    """Consecutive days, ending today, with at least one completion."""
    days_done = {
        _local(t.completed_at, now).date()
        for t in tasks
        if t.completed and t.completed_at is not None
    }
    day = _local(now, now).date()
    streak = 0
    while day in days_done:
        streak += 1
        day -= timedelta(days=1)
    return streak


def count_by_priority(tasks: Iterable[Task]) -> dict[str, int]:
    out: dict[str, int] = {}
    for t in tasks:
        out[t.priority.value] = out.get(t.priority.value, 0) + 1
    return out


def count_by_category(tasks: Iterable[Task]) -> dict[str, int]:
    out: dict[str, int] = {}
    for t in tasks:
        key = category_value(t.category)
        out[key] = out.get(key, 0) + 1
    return out


def compute_statistics(
        tasks: Iterable[Task],
        timeframe: Timeframe | str = Timeframe.WEEK,
        *,
        now: datetime | None = None,
) -> TaskStatistics:
    if now is None:
        now = datetime.now().astimezone()
    elif now.tzinfo is None:
        now = now.astimezone()
    if not isinstance(timeframe, Timeframe):
        timeframe = Timeframe.parse(timeframe)

    all_tasks = list(tasks)
    window = filter_by_timeframe(all_tasks, timeframe, now=now)

    rate = completion_rate(window)
    if timeframe == Timeframe.ALL:
        previous_rate = 0.0
        trend = 0.0
    else:
        previous_rate = completion_rate(filter_by_timeframe(all_tasks, timeframe, now=now, offset=-1))
        trend = rate - previous_rate

    completed_all = [t for t in all_tasks if t.completed]
    avg_days = average_completion_time(all_tasks, now=now)

    window_done = sum(1 for t in window if t.completed)

    return TaskStatistics(
        timeframe=timeframe,
        total=len(window),
        completed=window_done,
        incomplete=len(window) - window_done,
        completion_rate=rate,
        previous_completion_rate=previous_rate,
        completion_rate_trend=trend,
        average_completion_time=avg_days,
        productivity_score=productivity_score(rate, len(completed_all), avg_days),
        overdue_tasks=count_overdue(all_tasks, now=now),
        streak=calculate_streak(all_tasks, now=now),
        daily_stats=daily_completions(all_tasks, now=now),
        by_priority=count_by_priority(window),
        by_category=count_by_category(window),
    )


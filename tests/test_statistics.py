# tests/test_statistics.py

from __future__ import annotations

from datetime import UTC, date, datetime, timedelta

import pytest

from taskdeck.errors import ValidationError
from taskdeck.tasks.statistics import (
    Timeframe,
    average_completion_time,
    calculate_streak,
    completion_days,
    completion_rate,
    compute_statistics,
    period_bounds,
    productivity_score,
)
from taskdeck.tasks.task_models import BuiltInCategory, Priority, Task

from .conftest import FIXED_NOW


def _task(
    task_id: str,
    *,
    created: datetime = FIXED_NOW,
    completed_at: datetime | None = None,
    completed: bool | None = None,
    due: datetime | None = None,
    priority: Priority = Priority.MEDIUM,
    category=BuiltInCategory.WORK,
) -> Task:
    return Task(
        id=task_id,
        title=f"task {task_id}",
        created_at=created,
        priority=priority,
        category=category,
        completed=completed if completed is not None else completed_at is not None,
        completed_at=completed_at,
        due_date=due,
    )


def test_streak_counts_consecutive_days_ending_today() -> None:
    tasks = [
        _task("1", completed_at=FIXED_NOW),
        _task("2", completed_at=FIXED_NOW - timedelta(days=1)),
        _task("3", completed_at=FIXED_NOW - timedelta(days=3)),
    ]
    assert calculate_streak(tasks, now=FIXED_NOW) == 2


def test_streak_is_zero_without_completion_today() -> None:
    tasks = [_task("1", completed_at=FIXED_NOW - timedelta(days=1))]
    assert calculate_streak(tasks, now=FIXED_NOW) == 0


def test_productivity_single_quick_completion() -> None:
    stats = compute_statistics([_task("1", completed_at=FIXED_NOW)], "week", now=FIXED_NOW)

    # 100% * 0.4 + 1 * 5 + (5 - 0) * 4
    assert stats.productivity_score == 65
    assert 0 <= stats.productivity_score <= 100


def test_productivity_is_capped_at_100() -> None:
    tasks = [_task(str(i), completed_at=FIXED_NOW) for i in range(50)]
    stats = compute_statistics(tasks, "week", now=FIXED_NOW)
    assert stats.productivity_score == 100


def test_productivity_is_zero_when_nothing_completed() -> None:
    assert productivity_score(80.0, 0, 0.0) == 0
    stats = compute_statistics([_task("1")], "week", now=FIXED_NOW)
    assert stats.productivity_score == 0


def test_productivity_rounds_half_up() -> None:
    # 12.5 * 0.4 + 5 + max(0, 5 - 7) * 4 = 10.0 ; 31.25 * 0.4 + 5 = 17.5 -> 18
    assert productivity_score(12.5, 1, 7.0) == 10
    assert productivity_score(31.25, 1, 7.0) == 18


def test_completion_rate() -> None:
    tasks = [_task("1", completed_at=FIXED_NOW), _task("2"), _task("3"), _task("4")]
    assert completion_rate(tasks) == 25.0
    assert completion_rate([]) == 0.0


def test_average_completion_time_truncates_days() -> None:
    created = datetime(2024, 5, 10, 12, 0, tzinfo=UTC)
    tasks = [
        _task("1", created=created, completed_at=datetime(2024, 5, 12, 18, 0, tzinfo=UTC)),  # 2.25 -> 2
        _task("2", created=created, completed_at=datetime(2024, 5, 14, 12, 0, tzinfo=UTC)),  # 4
        _task("3", created=created),
    ]
    assert average_completion_time(tasks) == 3.0


def test_completion_without_timestamp_counts_up_to_now() -> None:
    legacy = _task("1", created=FIXED_NOW - timedelta(days=3, hours=5), completed=True)
    assert completion_days(legacy, now=FIXED_NOW) == 3


def test_completion_rate_trend_against_previous_week() -> None:
    last_week = FIXED_NOW - timedelta(days=7)
    tasks = [
        _task("1", completed_at=FIXED_NOW),
        _task("2"),
        _task("3", created=last_week, completed_at=last_week),
        _task("4", created=last_week, completed_at=last_week),
    ]

    stats = compute_statistics(tasks, "week", now=FIXED_NOW)

    assert stats.total == 2
    assert stats.completed == 1
    assert stats.incomplete == 1
    assert stats.completion_rate == 50.0
    assert stats.previous_completion_rate == 100.0
    assert stats.completion_rate_trend == -50.0


def test_all_timeframe_has_no_trend() -> None:
    last_month = FIXED_NOW - timedelta(days=40)
    tasks = [_task("1", completed_at=FIXED_NOW), _task("2", created=last_month)]

    stats = compute_statistics(tasks, Timeframe.ALL, now=FIXED_NOW)

    assert stats.total == 2
    assert stats.completion_rate == 50.0
    assert stats.previous_completion_rate == 0.0
    assert stats.completion_rate_trend == 0.0


def test_month_window_uses_calendar_months() -> None:
    start, end = period_bounds(Timeframe.MONTH, FIXED_NOW)
    assert start == datetime(2024, 5, 1, tzinfo=UTC)
    assert end == datetime(2024, 6, 1, tzinfo=UTC)

    prev_start, prev_end = period_bounds(Timeframe.MONTH, FIXED_NOW, offset=-5)
    assert prev_start == datetime(2023, 12, 1, tzinfo=UTC)
    assert prev_end == datetime(2024, 1, 1, tzinfo=UTC)

    assert period_bounds(Timeframe.ALL, FIXED_NOW) is None


def test_daily_stats_cover_current_week() -> None:
    tasks = [
        _task("1", completed_at=FIXED_NOW),
        _task("2", completed_at=FIXED_NOW - timedelta(hours=3)),
        _task("3", completed_at=FIXED_NOW - timedelta(days=2)),
        _task("4", completed_at=FIXED_NOW - timedelta(days=7)),
    ]

    stats = compute_statistics(tasks, "week", now=FIXED_NOW)

    assert [d.day for d in stats.daily_stats] == [date(2024, 5, 13 + i) for i in range(7)]
    assert [d.completed for d in stats.daily_stats] == [1, 0, 2, 0, 0, 0, 0]


def test_overdue_and_breakdowns() -> None:
    tasks = [
        _task("1", due=FIXED_NOW - timedelta(days=1), priority=Priority.HIGH),
        _task("2", due=FIXED_NOW - timedelta(days=1), completed_at=FIXED_NOW, priority=Priority.HIGH),
        _task("3", due=FIXED_NOW + timedelta(days=1), category=BuiltInCategory.HOME),
    ]

    stats = compute_statistics(tasks, "week", now=FIXED_NOW)

    assert stats.overdue_tasks == 1
    assert stats.by_priority == {"high": 2, "medium": 1}
    assert stats.by_category == {"work": 2, "home": 1}


def test_unknown_timeframe_is_rejected() -> None:
    with pytest.raises(ValidationError):
        compute_statistics([], "year", now=FIXED_NOW)

# src/taskdeck/tasks/recurrence.py

"""
Recurrence rule editing and validation.

Rules are inert metadata: nothing here computes the next occurrence or creates
follow-up tasks. The helpers mirror what the task editor does:
- switching pattern resets the rule (weekly starts with Monday selected),
- toggling weekdays never leaves a weekly rule with an empty selection.
"""

from __future__ import annotations

from dataclasses import replace

from ..errors import ValidationError
from .task_models import WEEK_ORDER, RecurrencePattern, RecurrenceRule, WeekDay

DEFAULT_WEEKLY_DAY = WeekDay.MON


def _sorted_days(days) -> tuple[WeekDay, ...]:
    return tuple(sorted(set(days), key=WEEK_ORDER.index))


def parse_pattern(raw: RecurrencePattern | str) -> RecurrencePattern:
    try:
        return RecurrencePattern(str(raw).strip().lower())
    except ValueError as e:
        raise ValidationError(f"unknown recurrence pattern: {raw!r}") from e


def parse_weekday(raw: WeekDay | str) -> WeekDay:
    try:
        return WeekDay(str(raw).strip().lower()[:3])
    except ValueError as e:
        raise ValidationError(f"unknown weekday: {raw!r}") from e


def change_pattern(pattern: RecurrencePattern | str) -> RecurrenceRule:
    pattern = parse_pattern(pattern)
    if pattern == RecurrencePattern.WEEKLY:
        return RecurrenceRule(pattern=pattern, selected_days=(DEFAULT_WEEKLY_DAY,))
    return RecurrenceRule(pattern=pattern)


def toggle_weekday(rule: RecurrenceRule, day: WeekDay | str) -> RecurrenceRule:
    if rule.pattern != RecurrencePattern.WEEKLY:
        return rule

    day = parse_weekday(day)
    days = set(rule.selected_days)
    if day in days:
        days.discard(day)
    else:
        days.add(day)

    if not days:
        days = {DEFAULT_WEEKLY_DAY}

    return replace(rule, selected_days=_sorted_days(days))


def validate_rule(rule: RecurrenceRule) -> RecurrenceRule:
    """Return the rule unchanged if valid, else raise ValidationError."""
    if rule.pattern == RecurrencePattern.WEEKLY:
        if not rule.selected_days:
            raise ValidationError("weekly recurrence needs at least one selected day")
    elif rule.selected_days:
        raise ValidationError(f"{rule.pattern.value} recurrence does not take selected days")

    if rule.interval is not None and rule.interval < 1:
        raise ValidationError("recurrence interval must be positive")
    if rule.occurrences is not None and rule.occurrences < 1:
        raise ValidationError("recurrence occurrences must be positive")
    return rule


def normalize_rule(rule: RecurrenceRule | None) -> RecurrenceRule | None:
    """Validate a rule for storage and keep its weekdays in Mon..Sun order."""
    if rule is None:
        return None
    validate_rule(rule)
    return replace(rule, selected_days=_sorted_days(rule.selected_days))

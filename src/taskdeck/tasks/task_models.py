# src/taskdeck/tasks/task_models.py

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from ..errors import ImportFormatError, ValidationError

# Predefined colours for custom categories (name -> hex).
CATEGORY_COLORS: dict[str, str] = {
    "red": "#FF3B30",
    "orange": "#FF9500",
    "yellow": "#FFCC00",
    "green": "#34C759",
    "mint": "#00C7BE",
    "teal": "#30B0C7",
    "cyan": "#32ADE6",
    "blue": "#007AFF",
    "indigo": "#5856D6",
    "purple": "#AF52DE",
}


class Priority(StrEnum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Sort rank: high first."""
        return _PRIORITY_RANK[self]

    @classmethod
    def from_raw(cls, raw: str | None) -> Priority:
        if not raw:
            return cls.MEDIUM
        try:
            return cls(str(raw).strip().lower())
        except ValueError:
            return cls.MEDIUM


_PRIORITY_RANK = {Priority.HIGH: 0, Priority.MEDIUM: 1, Priority.LOW: 2}


class BuiltInCategory(StrEnum):
    WORK = "work"
    PERSONAL = "personal"
    SHOPPING = "shopping"
    HEALTH = "health"
    FINANCE = "finance"
    EDUCATION = "education"
    HOME = "home"
    MEETINGS = "meetings"
    TRAVEL = "travel"
    SOCIAL = "social"
    PROJECTS = "projects"
    OTHER = "other"


@dataclass(frozen=True, slots=True)
class CustomCategoryRef:
    """A task's reference to a user-defined category (by name)."""

    name: str

    def __str__(self) -> str:
        return self.name


# Tagged union; the JSON form is always the plain string value.
Category = BuiltInCategory | CustomCategoryRef


def parse_category(raw: Any, *, normalize: bool = False) -> Category:
    """
    Resolve a category string into the tagged union.

    normalize=True (task creation) lowercases the name first, so "Work" is the
    built-in category and "Garden" becomes the custom category "garden".
    Persisted/imported data is taken verbatim (normalize=False).
    """
    if isinstance(raw, (BuiltInCategory, CustomCategoryRef)):
        return raw
    name = str(raw or "").strip()
    if not name:
        raise ValidationError("category is required")
    if normalize:
        name = name.lower()
    try:
        return BuiltInCategory(name)
    except ValueError:
        return CustomCategoryRef(name)


def category_value(category: Category) -> str:
    if isinstance(category, BuiltInCategory):
        return category.value
    return category.name


class RecurrencePattern(StrEnum):
    NONE = "none"
    DAILY = "daily"
    WEEKDAYS = "weekdays"
    WEEKENDS = "weekends"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class WeekDay(StrEnum):
    MON = "mon"
    TUE = "tue"
    WED = "wed"
    THU = "thu"
    FRI = "fri"
    SAT = "sat"
    SUN = "sun"


WEEK_ORDER: tuple[WeekDay, ...] = tuple(WeekDay)


@dataclass(frozen=True, slots=True)
class RecurrenceRule:
    pattern: RecurrencePattern = RecurrencePattern.NONE
    selected_days: tuple[WeekDay, ...] = ()

    # Carried as metadata only; nothing computes occurrences from these.
    interval: int | None = None
    end_date: datetime | None = None
    occurrences: int | None = None


@dataclass(frozen=True, slots=True)
class CustomCategory:
    name: str
    color: str


@dataclass(slots=True)
class Task:
    id: str
    title: str
    created_at: datetime
    priority: Priority
    category: Category

    completed: bool = False
    completed_at: datetime | None = None

    description: str | None = None
    due_date: datetime | None = None
    reminder_time: datetime | None = None
    tags: list[str] = field(default_factory=list)
    recurrence: RecurrenceRule | None = None

    @property
    def custom_category(self) -> bool:
        return isinstance(self.category, CustomCategoryRef)


# ---- timestamps ----


def ensure_aware(dt: datetime) -> datetime:
    """Naive datetimes are taken as local time."""
    if dt.tzinfo is None:
        return dt.astimezone()
    return dt


def parse_timestamp(raw: Any) -> datetime | None:
    if raw is None or raw == "":
        return None
    if isinstance(raw, datetime):
        return ensure_aware(raw)
    if isinstance(raw, (int, float)) and not isinstance(raw, bool):
        # epoch milliseconds (JS Date.now()) are accepted as well
        try:
            return datetime.fromtimestamp(float(raw) / 1000.0, tz=UTC)
        except (OverflowError, OSError, ValueError) as e:
            raise ValueError(f"timestamp out of range: {raw!r}") from e
    if not isinstance(raw, str):
        raise ValueError(f"not a timestamp: {raw!r}")
    return ensure_aware(datetime.fromisoformat(raw.strip()))


def format_timestamp(dt: datetime) -> str:
    """ISO-8601 in UTC with millisecond precision and a Z suffix."""
    s = ensure_aware(dt).astimezone(UTC).isoformat(timespec="milliseconds")
    return s.replace("+00:00", "Z")


# ---- JSON mapping ----


def recurrence_to_dict(rule: RecurrenceRule) -> dict[str, Any]:
    out: dict[str, Any] = {"pattern": rule.pattern.value}
    if rule.selected_days:
        out["selectedDays"] = [d.value for d in rule.selected_days]
    if rule.interval is not None:
        out["interval"] = rule.interval
    if rule.end_date is not None:
        out["endDate"] = format_timestamp(rule.end_date)
    if rule.occurrences is not None:
        out["occurrences"] = rule.occurrences
    return out


def recurrence_from_dict(raw: Any) -> RecurrenceRule | None:
    if not isinstance(raw, dict):
        return None
    try:
        pattern = RecurrencePattern(str(raw.get("pattern") or "none"))
    except ValueError:
        pattern = RecurrencePattern.NONE

    days: list[WeekDay] = []
    for d in raw.get("selectedDays") or []:
        try:
            day = WeekDay(str(d))
        except ValueError:
            continue
        if day not in days:
            days.append(day)

    def _pos_int(v: Any) -> int | None:
        try:
            n = int(v)
        except (TypeError, ValueError):
            return None
        return n if n > 0 else None

    try:
        end_date = parse_timestamp(raw.get("endDate"))
    except ValueError:
        end_date = None

    return RecurrenceRule(
        pattern=pattern,
        selected_days=tuple(days),
        interval=_pos_int(raw.get("interval")),
        end_date=end_date,
        occurrences=_pos_int(raw.get("occurrences")),
    )


def task_to_dict(task: Task) -> dict[str, Any]:
    out: dict[str, Any] = {
        "id": task.id,
        "title": task.title,
        "completed": task.completed,
        "createdAt": format_timestamp(task.created_at),
        "priority": task.priority.value,
        "category": category_value(task.category),
    }
    if task.description is not None:
        out["description"] = task.description
    if task.completed_at is not None:
        out["completedAt"] = format_timestamp(task.completed_at)
    if task.due_date is not None:
        out["dueDate"] = format_timestamp(task.due_date)
    if task.reminder_time is not None:
        out["reminderTime"] = format_timestamp(task.reminder_time)
    if task.tags:
        out["tags"] = list(task.tags)
    if task.recurrence is not None:
        out["recurrence"] = recurrence_to_dict(task.recurrence)
    if task.custom_category:
        out["customCategory"] = True
    return out


def task_from_dict(raw: Any) -> Task:
    """
    Build a Task from its JSON object form.

    Shape errors (not an object, missing id/title/createdAt, unparseable
    timestamps) raise ImportFormatError. Everything else is lenient.
    """
    if not isinstance(raw, dict):
        raise ImportFormatError("task entry must be a JSON object")

    task_id = raw.get("id")
    if isinstance(task_id, bool) or not isinstance(task_id, (str, int)) or str(task_id) == "":
        raise ImportFormatError("task entry has no id")

    title = raw.get("title")
    if not isinstance(title, str):
        raise ImportFormatError(f"task {task_id}: title must be a string")

    try:
        created_at = parse_timestamp(raw.get("createdAt"))
        completed_at = parse_timestamp(raw.get("completedAt"))
        due_date = parse_timestamp(raw.get("dueDate"))
        reminder_time = parse_timestamp(raw.get("reminderTime"))
    except ValueError as e:
        raise ImportFormatError(f"task {task_id}: {e}") from e
    if created_at is None:
        raise ImportFormatError(f"task {task_id}: createdAt is required")

    try:
        category = parse_category(raw.get("category"))
    except ValidationError:
        category = BuiltInCategory.OTHER

    description = raw.get("description")
    tags = raw.get("tags")

    return Task(
        id=str(task_id),
        title=title,
        created_at=created_at,
        priority=Priority.from_raw(raw.get("priority")),
        category=category,
        completed=bool(raw.get("completed", False)),
        completed_at=completed_at,
        description=description if isinstance(description, str) else None,
        due_date=due_date,
        reminder_time=reminder_time,
        tags=[str(t) for t in tags] if isinstance(tags, list) else [],
        recurrence=recurrence_from_dict(raw.get("recurrence")),
    )


def custom_category_from_dict(raw: Any) -> CustomCategory | None:
    if not isinstance(raw, dict):
        return None
    name = str(raw.get("name") or "").strip()
    if not name:
        return None
    color = str(raw.get("color") or CATEGORY_COLORS["blue"])
    return CustomCategory(name=name, color=color)


def custom_category_to_dict(cat: CustomCategory) -> dict[str, str]:
    return {"name": cat.name, "color": cat.color}

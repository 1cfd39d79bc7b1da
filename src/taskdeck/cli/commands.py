# src/taskdeck/cli/commands.py

from __future__ import annotations

import contextlib
import inspect
import logging
import shlex
from collections.abc import Callable
from dataclasses import replace
from datetime import date, datetime, time, timedelta
from pathlib import Path
from typing import Any

from ..core.state import AppState
from ..errors import ImportFormatError, NotFoundError, PersistenceError, ValidationError
from ..security.app_lock import (
    PasscodeSetup,
    SecuritySettings,
    disable_biometric,
    disable_passcode,
    enable_biometric,
)
from ..tasks.query import (
    FilterSpec,
    filter_and_sort,
    group_by_date_bucket,
    section_titles,
    tasks_for_date,
    week_days,
)
from ..tasks.recurrence import change_pattern, parse_weekday
from ..tasks.statistics import Timeframe, compute_statistics
from ..tasks.task_models import (
    CATEGORY_COLORS,
    RecurrencePattern,
    RecurrenceRule,
    Task,
    category_value,
)

CommandEmitter = Callable[[str], None]

logger = logging.getLogger(__name__)


class CommandRegistry:
    """Simple slash-command registry used by the console connector (/help, /add, ...)."""

    def __init__(self) -> None:
        self._handlers: dict[str, Callable[..., Any]] = {}
        self._help: dict[str, str] = {}

    def register(
        self,
        name: str,
        handler: Callable[..., Any],
        help_text: str,
        aliases: list[str] | None = None,
    ) -> None:
        aliases = aliases or []
        key = name.lower()
        self._handlers[key] = handler
        self._help[key] = help_text
        for alias in aliases:
            self._handlers[alias.lower()] = handler

    async def handle(
        self,
        state: AppState,
        line: str,
        emit: CommandEmitter | None = None,
    ) -> str | None:
        """
        Handle a string like "/command args".
        Returns a reply string or None if not a command.

        Handlers take (state, args) or (state, args, emit) and may be async.
        Expected user errors (validation, unknown id, bad import) become replies.
        """
        if not line.startswith("/"):
            return None

        try:
            parts = shlex.split(line[1:])
        except ValueError as e:
            return f"Cannot parse command: {e}"
        if not parts:
            return "Empty command. Use /help to list available commands."

        name = parts[0].lower()
        args = parts[1:]

        handler = self._handlers.get(name)
        if not handler:
            return f"Unknown command: /{name}. Use /help to list available commands."

        try:
            nparams = len(inspect.signature(handler).parameters)
        except (TypeError, ValueError):
            nparams = 3

        try:
            result = handler(state, args, emit) if nparams >= 3 else handler(state, args)
            if inspect.isawaitable(result):
                result = await result
        except NotFoundError as e:
            return f"No such task: {e.task_id}"
        except ImportFormatError as e:
            return f"Import failed: {e}"
        except ValidationError as e:
            return f"Invalid input: {e}"
        return result

    def build_help(self) -> str:
        lines = ["Available commands:"]
        for name, help_text in self._help.items():
            lines.append(f"  /{name} - {help_text}")
        return "\n".join(lines)


registry = CommandRegistry()


# ---- argument helpers ----


def split_args(args: list[str]) -> tuple[list[str], dict[str, str]]:
    """Split `a b key=value` into positional words and options."""
    words: list[str] = []
    opts: dict[str, str] = {}
    for a in args:
        key, sep, value = a.partition("=")
        if sep and key and key.isidentifier():
            opts[key.lower()] = value
        else:
            words.append(a)
    return words, opts


def parse_when(raw: str, *, default_time: time = time(23, 59), now: datetime | None = None) -> datetime | None:
    """
    today / tomorrow / +Nd / YYYY-MM-DD / full ISO timestamp -> aware local datetime.
    Empty or "none" clears the value.
    """
    raw = (raw or "").strip().lower()
    if raw in ("", "none", "-"):
        return None

    now = now or datetime.now().astimezone()
    tz = now.tzinfo
    day: date | None = None

    if raw == "today":
        day = now.date()
    elif raw == "tomorrow":
        day = now.date() + timedelta(days=1)
    elif raw.startswith("+") and raw.endswith("d") and raw[1:-1].isdigit():
        day = now.date() + timedelta(days=int(raw[1:-1]))

    if day is not None:
        return datetime.combine(day, default_time, tzinfo=tz)

    try:
        if len(raw) == 10:
            return datetime.combine(date.fromisoformat(raw), default_time, tzinfo=tz)
        parsed = datetime.fromisoformat(raw.upper() if raw.endswith("z") else raw)
    except ValueError as e:
        raise ValidationError(f"cannot read date/time {raw!r}") from e
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=tz)


def _recurrence_from_opts(opts: dict[str, str]) -> RecurrenceRule | None:
    if "repeat" not in opts:
        return None
    rule = change_pattern(opts["repeat"].strip().lower())
    days = [d for d in (opts.get("days") or "").split(",") if d.strip()]
    if days and rule.pattern == RecurrencePattern.WEEKLY:
        rule = replace(rule, selected_days=tuple(parse_weekday(d) for d in days))
    return rule


def _color_from_opt(raw: str | None) -> str | None:
    if not raw:
        return None
    return CATEGORY_COLORS.get(raw.strip().lower(), raw.strip())


def format_task(task: Task) -> str:
    mark = "x" if task.completed else " "
    bits = [task.priority.value, category_value(task.category)]
    if task.due_date is not None:
        bits.append(f"due {task.due_date.astimezone().strftime('%Y-%m-%d %H:%M')}")
    if task.recurrence is not None:
        bits.append(f"repeats {task.recurrence.pattern.value}")
    return f"[{mark}] {task.id}  {task.title}  ({', '.join(bits)})"


def _format_list(tasks: list[Task], empty: str) -> str:
    if not tasks:
        return empty
    return "\n".join(format_task(t) for t in tasks)


# ---- commands ----


def cmd_help(state: AppState, args: list[str]) -> str:
    return registry.build_help()


def cmd_add(state: AppState, args: list[str]) -> str:
    """
    /add <title words> category=<c> [priority=high|medium|low] [due=...] [remind=...]
         [desc=...] [color=<palette name>] [tags=a,b] [repeat=<pattern>] [days=mon,wed]
    """
    words, opts = split_args(args)
    task = state.task_store.add_task(
        title=" ".join(words),
        category=opts.get("category", opts.get("cat", "")),
        priority=opts.get("priority", "medium"),
        description=opts.get("desc"),
        due_date=parse_when(opts.get("due", "")),
        reminder_time=parse_when(opts.get("remind", ""), default_time=time(9, 0)),
        tags=[t for t in (opts.get("tags") or "").split(",") if t],
        recurrence=_recurrence_from_opts(opts),
        color=_color_from_opt(opts.get("color")),
    )
    return f"Task created: {format_task(task)}"


def cmd_list(state: AppState, args: list[str]) -> str:
    """
    /list [search words] [sort=dueDate|priority|createdAt|title] [filter=all|completed|incomplete|<category>]
    Options persist for the session; `/list clear` resets the search.
    """
    words, opts = split_args(args)
    current = state.filter
    search = current.search
    if words == ["clear"]:
        search = ""
    elif words:
        search = " ".join(words)

    state.filter = FilterSpec.create(
        search=search,
        sort_by=opts.get("sort", current.sort_by.value),
        filter_by=opts.get("filter", current.filter_by),
    )
    tasks = filter_and_sort(state.task_store.tasks, state.filter)
    header = f"{len(tasks)} task(s) [sort={state.filter.sort_by.value} filter={state.filter.filter_by}"
    header += f" search={state.filter.search!r}]" if state.filter.search else "]"
    return header + "\n" + _format_list(tasks, "Try changing your filters or creating a new task.")


def cmd_agenda(state: AppState, args: list[str]) -> str:
    tasks = filter_and_sort(state.task_store.tasks, state.filter)
    groups = group_by_date_bucket(tasks)
    if not groups:
        return "No tasks yet."
    lines: list[str] = []
    for title, (_, items) in zip(section_titles(groups), groups):
        lines.append(title)
        lines.extend(f"  {format_task(t)}" for t in items)
    return "\n".join(lines)


def cmd_day(state: AppState, args: list[str]) -> str:
    """/day [YYYY-MM-DD|today|tomorrow|+Nd] - week strip + tasks due that day."""
    when = parse_when(args[0] if args else "today") or datetime.now().astimezone()
    day = when.date()

    strip = []
    for d in week_days(day):
        label = d.strftime("%a %d")
        strip.append(f"[{label}]" if d == day else f" {label} ")

    tasks = tasks_for_date(filter_and_sort(state.task_store.tasks, state.filter), day)
    return " ".join(strip) + "\n" + _format_list(tasks, f"No tasks due on {day.isoformat()}.")


def cmd_show(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /show <id>"
    task = state.task_store.get_task_by_id(args[0])
    if task is None:
        return f"No such task: {args[0]}"
    lines = [format_task(task)]
    if task.description:
        lines.append(f"  {task.description}")
    lines.append(f"  created {task.created_at.astimezone().strftime('%Y-%m-%d %H:%M')}")
    if task.completed_at is not None:
        lines.append(f"  completed {task.completed_at.astimezone().strftime('%Y-%m-%d %H:%M')}")
    if task.reminder_time is not None:
        lines.append(f"  reminder {task.reminder_time.astimezone().strftime('%Y-%m-%d %H:%M')}")
    if task.tags:
        lines.append(f"  tags {', '.join(task.tags)}")
    if task.recurrence is not None and task.recurrence.selected_days:
        lines.append(f"  on {', '.join(d.value for d in task.recurrence.selected_days)}")
    return "\n".join(lines)


def cmd_edit(state: AppState, args: list[str]) -> str:
    """/edit <id> [title=...] [desc=...] [priority=...] [category=...] [due=...] [remind=...] [tags=...] [repeat=...]"""
    if not args:
        return "Usage: /edit <id> key=value ..."
    _, opts = split_args(args[1:])
    fields: dict[str, Any] = {}
    if "title" in opts:
        fields["title"] = opts["title"]
    if "desc" in opts:
        fields["description"] = opts["desc"] or None
    if "priority" in opts:
        fields["priority"] = opts["priority"]
    if "category" in opts:
        fields["category"] = opts["category"]
    if "due" in opts:
        fields["due_date"] = parse_when(opts["due"])
    if "remind" in opts:
        fields["reminder_time"] = parse_when(opts["remind"], default_time=time(9, 0))
    if "tags" in opts:
        fields["tags"] = [t for t in opts["tags"].split(",") if t]
    if "repeat" in opts:
        fields["recurrence"] = _recurrence_from_opts(opts)
    if not fields:
        return "Nothing to change."
    task = state.task_store.update_task(args[0], **fields)
    return f"Task updated: {format_task(task)}"


def cmd_done(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /done <id>"
    task = state.task_store.toggle_task_completion(args[0])
    return f"{'Completed' if task.completed else 'Reopened'}: {format_task(task)}"


def cmd_delete(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /del <id>"
    if state.task_store.delete_task(args[0]):
        return f"Task {args[0]} deleted."
    return f"No such task: {args[0]}"


def cmd_stats(state: AppState, args: list[str]) -> str:
    """/stats [week|month|all]"""
    if args:
        state.timeframe = Timeframe.parse(args[0])
    s = compute_statistics(state.task_store.tasks, state.timeframe)

    trend = f"{'+' if s.completion_rate_trend >= 0 else '-'}{abs(s.completion_rate_trend):.1f}%"
    lines = [
        f"Statistics ({s.timeframe.value}):",
        f"  Productivity score: {s.productivity_score}",
        f"  Streak: {s.streak} day(s)",
        f"  Tasks: {s.total} total, {s.completed} completed, {s.incomplete} open",
        f"  Completion rate: {s.completion_rate:.1f}% ({trend})",
        f"  Avg completion time: {s.average_completion_time:.1f} day(s)",
        f"  Overdue: {s.overdue_tasks}",
        "  This week: " + " ".join(f"{d.label}:{d.completed}" for d in s.daily_stats),
    ]
    if s.by_priority:
        lines.append("  By priority: " + ", ".join(f"{k}={v}" for k, v in s.by_priority.items()))
    if s.by_category:
        lines.append("  By category: " + ", ".join(f"{k}={v}" for k, v in s.by_category.items()))
    return "\n".join(lines)


def cmd_category(state: AppState, args: list[str]) -> str:
    """/cat | /cat add <name> <color> | /cat colors"""
    if args and args[0] == "colors":
        return "Colours: " + ", ".join(CATEGORY_COLORS)
    if args and args[0] == "add":
        if len(args) < 3:
            return "Usage: /cat add <name> <color>"
        color = _color_from_opt(args[2]) or ""
        if state.task_store.add_custom_category(args[1], color):
            return f"Category {args[1].lower()} added (kept while a task uses it)."
        return f"Category {args[1].lower()} already exists."

    cats = state.task_store.custom_categories
    if not cats:
        return "No custom categories."
    return "\n".join(f"{c.name} {c.color}" for c in cats)


def cmd_export(state: AppState, args: list[str]) -> str:
    payload = state.task_store.export_json()
    if not args:
        return payload
    path = Path(args[0]).expanduser()
    try:
        path.write_text(payload, "utf-8")
    except OSError as e:
        logger.exception("Export failed path=%s", path)
        return f"Failed to export data: {e}"
    return f"Exported {state.task_store.count_tasks()} task(s) to {path}"


def cmd_import(state: AppState, args: list[str]) -> str:
    if not args:
        return "Usage: /import <path>"
    path = Path(args[0]).expanduser()
    try:
        payload = path.read_text("utf-8")
    except OSError as e:
        return f"Cannot read {path}: {e}"
    n = state.task_store.import_json(payload)
    return f"Tasks imported successfully ({n})."


def cmd_reset(state: AppState, args: list[str]) -> str:
    if args[:1] != ["confirm"]:
        return "This deletes every task and cannot be undone. Run /reset confirm to proceed."
    n = state.task_store.reset()
    return f"Reset successful: {n} task(s) deleted."


def cmd_passcode(state: AppState, args: list[str], emit: CommandEmitter | None = None) -> str:
    """
    /passcode            -> show status
    /passcode set <new> <confirm>
    /passcode off
    """
    try:
        current = SecuritySettings.load(state.kv)
    except PersistenceError:
        logger.exception("Reading security settings failed")
        return "Cannot read security settings."

    if not args:
        return f"Passcode is {'ON' if current.lock_required else 'OFF'}."

    sub = args[0].lower()
    if sub == "off":
        try:
            disable_passcode(state.kv)
        except PersistenceError:
            logger.exception("Disabling passcode failed")
            return "Failed to disable passcode."
        return "Passcode disabled."

    if sub == "set":
        if len(args) < 3:
            return "Usage: /passcode set <new> <confirm>"
        if not args[1].isdigit() or not 4 <= len(args[1]) <= 6:
            return "Enter a passcode with 4 to 6 digits."

        errors: list[str] = []

        def _on_error(msg: str) -> None:
            errors.append(msg)
            if emit:
                with contextlib.suppress(Exception):
                    emit(f"[LOCK] {msg}")

        setup = PasscodeSetup(state.kv, on_error=_on_error)
        setup.enter(args[1])
        setup.submit()
        if errors:
            return errors[-1]
        setup.enter(args[2])
        if setup.completed:
            return "Passcode has been set successfully."
        return errors[-1] if errors else "Confirmation incomplete."

    return "Usage: /passcode set <new> <confirm> | /passcode off"


async def cmd_biometric(state: AppState, args: list[str]) -> str:
    if not args:
        try:
            enabled = SecuritySettings.load(state.kv).biometric_enabled
        except PersistenceError:
            logger.exception("Reading security settings failed")
            return "Cannot read security settings."
        return f"Biometric unlock is {'ON' if enabled else 'OFF'}."

    arg = args[0].lower()
    if arg in ("on", "1", "true", "yes"):
        try:
            enabled = await enable_biometric(state.kv, state.biometrics)
        except PersistenceError:
            logger.exception("Enabling biometric unlock failed")
            return "Failed to enable biometric unlock."
        if enabled:
            return "Biometric unlock enabled."
        return "Biometric authentication is not available on your device."
    if arg in ("off", "0", "false", "no"):
        try:
            disable_biometric(state.kv)
        except PersistenceError:
            logger.exception("Disabling biometric unlock failed")
            return "Failed to disable biometric unlock."
        return "Biometric unlock disabled."
    return "Usage: /biometric on | /biometric off"


registry.register("help", cmd_help, help_text="Show available commands.", aliases=["h", "?"])
registry.register("add", cmd_add, help_text="Create a task: /add <title> category=<c> [priority=] [due=] [remind=].")
registry.register("list", cmd_list, help_text="List tasks: /list [search] [sort=] [filter=].", aliases=["ls"])
registry.register("agenda", cmd_agenda, help_text="Tasks grouped by Today / Tomorrow / This Week / ...")
registry.register("day", cmd_day, help_text="Calendar day view: /day [date].")
registry.register("show", cmd_show, help_text="Task details: /show <id>.")
registry.register("edit", cmd_edit, help_text="Edit a task: /edit <id> key=value ...")
registry.register("done", cmd_done, help_text="Toggle completion: /done <id>.")
registry.register("del", cmd_delete, help_text="Delete a task: /del <id>.", aliases=["rm"])
registry.register("stats", cmd_stats, help_text="Statistics: /stats [week|month|all].")
registry.register("cat", cmd_category, help_text="Custom categories: /cat | /cat add <name> <color> | /cat colors.")
registry.register("export", cmd_export, help_text="Export tasks as JSON: /export [path].")
registry.register("import", cmd_import, help_text="Replace all tasks from a JSON file: /import <path>.")
registry.register("reset", cmd_reset, help_text="Delete all tasks: /reset confirm.")
registry.register("passcode", cmd_passcode, help_text="App lock: /passcode set <new> <confirm> | /passcode off.")
registry.register("biometric", cmd_biometric, help_text="Biometric unlock: /biometric on | off.")

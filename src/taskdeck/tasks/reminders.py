# src/taskdeck/tasks/reminders.py

from __future__ import annotations

"""
Reminder refresh.

Every refresh is a full cycle against the notifier port:
- cancel all previously scheduled reminders,
- schedule one reminder per incomplete task whose reminder_time is in the future.

Running the same refresh twice leaves the same set of scheduled reminders.
"""

import logging
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime

from ..core.ports import Notifier
from .task_models import Task

logger = logging.getLogger(__name__)

DEFAULT_REMINDER_BODY = "It's time for this task!"


@dataclass(slots=True, frozen=True)
class Reminder:
    task_id: str
    title: str
    body: str
    trigger_at: datetime


def build_reminder(task: Task, *, now: datetime) -> Reminder | None:
    """Convert a task into its reminder payload, or None if nothing is due."""
    if task.completed or task.reminder_time is None:
        return None
    if task.reminder_time <= now:
        return None

    return Reminder(
        task_id=task.id,
        title=f"Reminder: {task.title}",
        body=task.description or DEFAULT_REMINDER_BODY,
        trigger_at=task.reminder_time,
    )


def build_reminders(tasks: Iterable[Task], *, now: datetime | None = None) -> list[Reminder]:
    if now is None:
        now = datetime.now().astimezone()
    out: list[Reminder] = []
    for task in tasks:
        reminder = build_reminder(task, now=now)
        if reminder is not None:
            out.append(reminder)
    return out


async def refresh_reminders(
        notifier: Notifier,
        tasks: Iterable[Task],
        *,
        now: datetime | None = None,
) -> int:
    """
    Cancel everything, then schedule reminders for the given tasks.

    Returns the number of reminders scheduled. A failure to schedule one
    reminder is logged and does not stop the others.
    """
    reminders = build_reminders(tasks, now=now)

    await notifier.cancel_all()

    scheduled = 0
    for r in reminders:
        try:
            await notifier.schedule_at(
                title=r.title,
                body=r.body,
                trigger_at=r.trigger_at,
                data={"taskId": r.task_id},
            )
            scheduled += 1
        except Exception:
            logger.exception("schedule_at failed task_id=%s", r.task_id)

    logger.debug("Reminders refreshed scheduled=%d", scheduled)
    return scheduled

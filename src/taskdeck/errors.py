# src/taskdeck/errors.py

from __future__ import annotations

"""
Error kinds raised by the core.

- ValidationError / ImportFormatError are raised before any mutation happens.
- NotFoundError is raised by operations addressed by an unknown task id.
- PersistenceError is raised by storage adapters; TaskStore logs it and keeps
  the in-memory state (it never surfaces as a failed mutation).
"""


class TaskDeckError(Exception):
    """Base class for all taskdeck errors."""


class ValidationError(TaskDeckError, ValueError):
    pass


class NotFoundError(TaskDeckError, LookupError):
    def __init__(self, task_id: str) -> None:
        super().__init__(f"task not found: {task_id}")
        self.task_id = task_id


class PersistenceError(TaskDeckError):
    pass


class ImportFormatError(ValidationError):
    pass

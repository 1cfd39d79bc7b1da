# src/taskdeck/core/ports.py

from __future__ import annotations

"""
Ports (interfaces) used by the core.

The core depends on Protocols instead of concrete implementations.
This keeps storage / device capabilities swappable and makes testing easier.
"""

from datetime import datetime
from typing import Any, Awaitable, Protocol


class KeyValueStore(Protocol):
    """
    Flat string-by-key store provided by the host.

    Implementations raise PersistenceError on read/write failures.
    """

    def get_item(self, key: str) -> str | None: ...
    def set_item(self, key: str, value: str) -> None: ...
    def remove_item(self, key: str) -> None: ...


class Notifier(Protocol):
    """
    Local notification scheduler.

    The core only schedules reminders at absolute times and cancels all of
    them before every refresh; delivery belongs to the host.
    """

    def schedule_at(
            self,
            *,
            title: str,
            body: str,
            trigger_at: datetime,
            data: dict[str, Any] | None = None,
    ) -> Awaitable[None]: ...

    def cancel_all(self) -> Awaitable[None]: ...


class BiometricAuthenticator(Protocol):
    """Device biometric challenge (fingerprint / face)."""

    def is_available(self) -> Awaitable[bool]: ...
    def authenticate(self) -> Awaitable[bool]: ...

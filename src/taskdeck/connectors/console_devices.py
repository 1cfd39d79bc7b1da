# src/taskdeck/connectors/console_devices.py

from __future__ import annotations

"""
Device capabilities for the console host.

A terminal has no notification centre and no fingerprint reader, so:
- LoggingNotifier records scheduled reminders and logs them,
- UnavailableBiometrics reports "no capability" (passcode unlock only).
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

logger = logging.getLogger(__name__)


@dataclass(slots=True, frozen=True)
class ScheduledReminder:
    title: str
    body: str
    trigger_at: datetime
    data: dict[str, Any]


@dataclass(slots=True)
class LoggingNotifier:
    scheduled: list[ScheduledReminder] = field(default_factory=list)

    async def schedule_at(
        self,
        *,
        title: str,
        body: str,
        trigger_at: datetime,
        data: dict[str, Any] | None = None,
    ) -> None:
        self.scheduled.append(ScheduledReminder(title, body, trigger_at, dict(data or {})))
        logger.info("Reminder scheduled at %s: %s", trigger_at.isoformat(), title)

    async def cancel_all(self) -> None:
        if self.scheduled:
            logger.debug("Cancelling %d scheduled reminders", len(self.scheduled))
        self.scheduled.clear()


class UnavailableBiometrics:
    async def is_available(self) -> bool:
        return False

    async def authenticate(self) -> bool:
        return False

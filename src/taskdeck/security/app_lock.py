# src/taskdeck/security/app_lock.py

from __future__ import annotations

"""
App lock: passcode / biometric gate in front of the whole UI.

Three pieces:
- SecuritySettings: the three independently stored keys (passcode enabled flag,
  passcode, biometric enabled flag).
- AppLock: unlock state machine used at startup.
- PasscodeSetup: two-step "enter, then confirm" flow used from settings while
  the app is already unlocked.

Error signals are delivered through an optional callback and kept on
`.error` until the next key press; they are never raised.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

from ..core.ports import BiometricAuthenticator, KeyValueStore
from ..errors import PersistenceError, ValidationError

logger = logging.getLogger(__name__)

PASSCODE_ENABLED_KEY = "passcodeEnabled"
PASSCODE_KEY = "passcode"
BIOMETRIC_ENABLED_KEY = "biometricEnabled"

MIN_PASSCODE_LENGTH = 4
MAX_PASSCODE_LENGTH = 6

ERR_INCORRECT_PASSCODE = "Incorrect passcode"
ERR_PASSCODES_DO_NOT_MATCH = "Passcodes do not match"
ERR_PASSCODE_TOO_SHORT = f"Enter a passcode with at least {MIN_PASSCODE_LENGTH} digits"
ERR_SAVE_FAILED = "Failed to set passcode"

ErrorCallback = Callable[[str], None]


class LockState(StrEnum):
    UNLOCKED = "unlocked"
    LOCKED_AWAITING_INPUT = "locked_awaiting_input"
    # Only used by PasscodeSetup (confirmation step of a new passcode).
    LOCKED_AWAITING_CONFIRMATION = "locked_awaiting_confirmation"


def _check_digit(digit: str) -> str:
    if not isinstance(digit, str) or len(digit) != 1 or digit not in "0123456789":
        raise ValidationError(f"not a digit: {digit!r}")
    return digit


def _flag(raw: str | None) -> bool:
    return (raw or "").strip().lower() == "true"


@dataclass(slots=True)
class SecuritySettings:
    passcode_enabled: bool = False
    passcode: str | None = None
    biometric_enabled: bool = False

    @property
    def lock_required(self) -> bool:
        return self.passcode_enabled and bool(self.passcode)

    @classmethod
    def load(cls, kv: KeyValueStore) -> SecuritySettings:
        return cls(
            passcode_enabled=_flag(kv.get_item(PASSCODE_ENABLED_KEY)),
            passcode=kv.get_item(PASSCODE_KEY) or None,
            biometric_enabled=_flag(kv.get_item(BIOMETRIC_ENABLED_KEY)),
        )


def store_passcode(kv: KeyValueStore, passcode: str) -> None:
    kv.set_item(PASSCODE_KEY, passcode)
    kv.set_item(PASSCODE_ENABLED_KEY, "true")
    logger.info("Passcode set.")


def disable_passcode(kv: KeyValueStore) -> None:
    kv.set_item(PASSCODE_ENABLED_KEY, "false")
    kv.remove_item(PASSCODE_KEY)
    logger.info("Passcode disabled.")


def disable_biometric(kv: KeyValueStore) -> None:
    kv.set_item(BIOMETRIC_ENABLED_KEY, "false")


async def enable_biometric(kv: KeyValueStore, biometrics: BiometricAuthenticator) -> bool:
    """
    Turn biometric unlock on after one successful challenge.

    Returns False (and leaves the flag untouched) when the device has no
    biometric capability or the challenge fails.
    """
    if not await biometrics.is_available():
        logger.info("Biometric authentication is not available on this device.")
        return False
    if not await biometrics.authenticate():
        return False
    await asyncio.to_thread(kv.set_item, BIOMETRIC_ENABLED_KEY, "true")
    return True


class AppLock:
    """
    Unlock state machine.

    - start(): LOCKED_AWAITING_INPUT if a passcode is configured, else UNLOCKED;
      when locked and biometrics are enabled, the challenge is tried right away.
    - press_digit(): fills the buffer up to the passcode length, then compares.
    - delete(): drops the last digit (no-op on an empty buffer).
    """

    def __init__(
            self,
            kv: KeyValueStore,
            *,
            biometrics: BiometricAuthenticator | None = None,
            on_error: ErrorCallback | None = None,
    ) -> None:
        self._kv = kv
        self._biometrics = biometrics
        self._on_error = on_error

        self._settings = SecuritySettings()
        self._state = LockState.UNLOCKED
        self._buffer = ""
        self.error = ""

    @property
    def state(self) -> LockState:
        return self._state

    @property
    def is_locked(self) -> bool:
        return self._state != LockState.UNLOCKED

    @property
    def buffer(self) -> str:
        return self._buffer

    @property
    def passcode_length(self) -> int:
        return len(self._settings.passcode or "")

    @property
    def biometric_enabled(self) -> bool:
        return self._settings.biometric_enabled

    async def start(self) -> LockState:
        try:
            self._settings = await asyncio.to_thread(SecuritySettings.load, self._kv)
        except PersistenceError:
            # No readable settings means no configured passcode.
            logger.exception("Reading security settings failed; app stays unlocked.")
            self._settings = SecuritySettings()

        self._buffer = ""
        self.error = ""
        if not self._settings.lock_required:
            self._state = LockState.UNLOCKED
            return self._state

        self._state = LockState.LOCKED_AWAITING_INPUT
        logger.info("App locked (biometric=%s).", self._settings.biometric_enabled)

        if self._settings.biometric_enabled:
            await self.try_biometric()
        return self._state

    async def try_biometric(self) -> bool:
        if self._state == LockState.UNLOCKED:
            return True
        if self._biometrics is None:
            return False

        try:
            if not await self._biometrics.is_available():
                return False
            ok = await self._biometrics.authenticate()
        except Exception:
            logger.exception("Biometric auth error")
            return False

        if ok:
            self._unlock()
        return ok

    def press_digit(self, digit: str) -> LockState:
        _check_digit(digit)
        if self._state == LockState.UNLOCKED:
            return self._state

        stored = self._settings.passcode or ""
        if len(self._buffer) >= len(stored):
            return self._state

        self._buffer += digit
        self.error = ""

        if len(self._buffer) == len(stored):
            if self._buffer == stored:
                self._unlock()
            else:
                self._buffer = ""
                self._signal(ERR_INCORRECT_PASSCODE)
        return self._state

    def enter(self, digits: str) -> LockState:
        for d in digits:
            self.press_digit(d)
        return self._state

    def delete(self) -> None:
        self._buffer = self._buffer[:-1]
        self.error = ""

    async def lock(self) -> LockState:
        """
        Re-lock (e.g. app went to background). Settings are re-read, so a
        passcode set during the session applies, and the biometric challenge
        is tried again just like on start().
        """
        return await self.start()

    def _unlock(self) -> None:
        self._state = LockState.UNLOCKED
        self._buffer = ""
        self.error = ""
        logger.info("App unlocked.")

    def _signal(self, message: str) -> None:
        self.error = message
        logger.debug("AppLock error: %s", message)
        if self._on_error is not None:
            self._on_error(message)


class PasscodeSetup:
    """
    New passcode: enter 4..6 digits, then confirm.

    The entry step moves to confirmation on submit() (or automatically at the
    maximum length). A wrong confirmation clears only the confirmation digits;
    the first entry is kept and the user retries the confirmation.
    """

    def __init__(self, kv: KeyValueStore, *, on_error: ErrorCallback | None = None) -> None:
        self._kv = kv
        self._on_error = on_error

        self._state = LockState.LOCKED_AWAITING_INPUT
        self._passcode = ""
        self._confirmation = ""
        self.error = ""

    @property
    def state(self) -> LockState:
        return self._state

    @property
    def completed(self) -> bool:
        return self._state == LockState.UNLOCKED

    @property
    def passcode(self) -> str:
        return self._passcode

    @property
    def confirmation(self) -> str:
        return self._confirmation

    def press_digit(self, digit: str) -> LockState:
        _check_digit(digit)
        self.error = ""

        if self._state == LockState.LOCKED_AWAITING_INPUT:
            if len(self._passcode) < MAX_PASSCODE_LENGTH:
                self._passcode += digit
            if len(self._passcode) == MAX_PASSCODE_LENGTH:
                self._state = LockState.LOCKED_AWAITING_CONFIRMATION
            return self._state

        if self._state == LockState.LOCKED_AWAITING_CONFIRMATION:
            if len(self._confirmation) < len(self._passcode):
                self._confirmation += digit
            if len(self._confirmation) == len(self._passcode):
                self._check_confirmation()
        return self._state

    def enter(self, digits: str) -> LockState:
        for d in digits:
            self.press_digit(d)
        return self._state

    def submit(self) -> LockState:
        """Finish the entry step (needs at least MIN_PASSCODE_LENGTH digits)."""
        if self._state != LockState.LOCKED_AWAITING_INPUT:
            return self._state
        if len(self._passcode) < MIN_PASSCODE_LENGTH:
            self._signal(ERR_PASSCODE_TOO_SHORT)
            return self._state
        self._state = LockState.LOCKED_AWAITING_CONFIRMATION
        return self._state

    def delete(self) -> None:
        if self._state == LockState.LOCKED_AWAITING_INPUT:
            self._passcode = self._passcode[:-1]
        elif self._state == LockState.LOCKED_AWAITING_CONFIRMATION:
            self._confirmation = self._confirmation[:-1]
        self.error = ""

    def _check_confirmation(self) -> None:
        if self._confirmation != self._passcode:
            self._confirmation = ""
            self._signal(ERR_PASSCODES_DO_NOT_MATCH)
            return

        try:
            store_passcode(self._kv, self._passcode)
        except PersistenceError:
            logger.exception("Saving passcode failed")
            self._confirmation = ""
            self._signal(ERR_SAVE_FAILED)
            return

        self._state = LockState.UNLOCKED
        self._passcode = ""
        self._confirmation = ""

    def _signal(self, message: str) -> None:
        self.error = message
        if self._on_error is not None:
            self._on_error(message)

# tests/test_app_lock.py

from __future__ import annotations

import pytest

from taskdeck.errors import ValidationError
from taskdeck.security.app_lock import (
    BIOMETRIC_ENABLED_KEY,
    ERR_INCORRECT_PASSCODE,
    ERR_PASSCODE_TOO_SHORT,
    ERR_PASSCODES_DO_NOT_MATCH,
    ERR_SAVE_FAILED,
    PASSCODE_ENABLED_KEY,
    PASSCODE_KEY,
    AppLock,
    LockState,
    PasscodeSetup,
    disable_passcode,
    enable_biometric,
)

from .fakes import FailingKV, FakeBiometrics, InMemoryKV


def _locked_kv(passcode: str = "1234", *, biometric: bool = False) -> InMemoryKV:
    return InMemoryKV(
        {
            PASSCODE_ENABLED_KEY: "true",
            PASSCODE_KEY: passcode,
            BIOMETRIC_ENABLED_KEY: "true" if biometric else "false",
        }
    )


@pytest.mark.asyncio
async def test_unlocked_without_passcode() -> None:
    lock = AppLock(InMemoryKV())
    assert await lock.start() == LockState.UNLOCKED

    # Enabled flag without a stored passcode does not lock either.
    lock = AppLock(InMemoryKV({PASSCODE_ENABLED_KEY: "true"}))
    assert await lock.start() == LockState.UNLOCKED


@pytest.mark.asyncio
async def test_digits_with_delete_unlock() -> None:
    lock = AppLock(_locked_kv("1234"))
    assert await lock.start() == LockState.LOCKED_AWAITING_INPUT

    lock.enter("12")
    lock.delete()
    assert lock.buffer == "1"
    assert lock.enter("234") == LockState.UNLOCKED
    assert lock.buffer == ""


@pytest.mark.asyncio
async def test_wrong_passcode_signals_error_and_clears_buffer() -> None:
    errors: list[str] = []
    lock = AppLock(_locked_kv("1234"), on_error=errors.append)
    await lock.start()

    assert lock.enter("9999") == LockState.LOCKED_AWAITING_INPUT
    assert errors == [ERR_INCORRECT_PASSCODE]
    assert lock.error == ERR_INCORRECT_PASSCODE
    assert lock.buffer == ""

    lock.press_digit("1")
    assert lock.error == ""


@pytest.mark.asyncio
async def test_non_digit_is_rejected() -> None:
    lock = AppLock(_locked_kv())
    await lock.start()
    with pytest.raises(ValidationError):
        lock.press_digit("a")


@pytest.mark.asyncio
async def test_biometric_unlocks_on_start() -> None:
    bio = FakeBiometrics(available=True, succeed=True)
    lock = AppLock(_locked_kv(biometric=True), biometrics=bio)

    assert await lock.start() == LockState.UNLOCKED
    assert bio.challenges == 1


@pytest.mark.asyncio
async def test_unavailable_biometric_keeps_passcode_prompt() -> None:
    bio = FakeBiometrics(available=False)
    lock = AppLock(_locked_kv(biometric=True), biometrics=bio)

    assert await lock.start() == LockState.LOCKED_AWAITING_INPUT
    assert bio.challenges == 0
    assert lock.enter("1234") == LockState.UNLOCKED


@pytest.mark.asyncio
async def test_lock_again_after_unlock() -> None:
    lock = AppLock(_locked_kv("4321"))
    await lock.start()
    lock.enter("4321")

    assert await lock.lock() == LockState.LOCKED_AWAITING_INPUT
    assert lock.enter("4321") == LockState.UNLOCKED


@pytest.mark.asyncio
async def test_relock_retries_biometric() -> None:
    bio = FakeBiometrics(available=True, succeed=True)
    lock = AppLock(_locked_kv(biometric=True), biometrics=bio)
    await lock.start()

    assert await lock.lock() == LockState.UNLOCKED
    assert bio.challenges == 2

    bio.succeed = False
    assert await lock.lock() == LockState.LOCKED_AWAITING_INPUT
    assert bio.challenges == 3


@pytest.mark.asyncio
async def test_relock_picks_up_passcode_set_during_session() -> None:
    kv = InMemoryKV()
    lock = AppLock(kv)
    assert await lock.start() == LockState.UNLOCKED

    setup = PasscodeSetup(kv)
    setup.enter("5678")
    setup.submit()
    setup.enter("5678")

    assert await lock.lock() == LockState.LOCKED_AWAITING_INPUT
    assert lock.passcode_length == 4


def test_setup_mismatch_keeps_first_entry() -> None:
    kv = InMemoryKV()
    errors: list[str] = []
    setup = PasscodeSetup(kv, on_error=errors.append)

    setup.enter("1234")
    assert setup.submit() == LockState.LOCKED_AWAITING_CONFIRMATION

    setup.enter("1235")
    assert errors == [ERR_PASSCODES_DO_NOT_MATCH]
    assert setup.state == LockState.LOCKED_AWAITING_CONFIRMATION
    assert setup.passcode == "1234"
    assert setup.confirmation == ""
    assert PASSCODE_KEY not in kv.data

    setup.enter("1234")
    assert setup.completed is True
    assert kv.data[PASSCODE_KEY] == "1234"
    assert kv.data[PASSCODE_ENABLED_KEY] == "true"


def test_setup_requires_four_digits_and_advances_at_six() -> None:
    setup = PasscodeSetup(InMemoryKV())
    setup.enter("123")
    assert setup.submit() == LockState.LOCKED_AWAITING_INPUT
    assert setup.error == ERR_PASSCODE_TOO_SHORT

    setup.enter("456")
    assert setup.state == LockState.LOCKED_AWAITING_CONFIRMATION
    assert setup.passcode == "123456"


def test_setup_save_failure_is_signalled() -> None:
    setup = PasscodeSetup(FailingKV(fail_writes=True))
    setup.enter("2468")
    setup.submit()
    setup.enter("2468")

    assert setup.completed is False
    assert setup.error == ERR_SAVE_FAILED


def test_disable_passcode_removes_stored_code() -> None:
    kv = _locked_kv()
    disable_passcode(kv)
    assert kv.data[PASSCODE_ENABLED_KEY] == "false"
    assert PASSCODE_KEY not in kv.data


@pytest.mark.asyncio
async def test_enable_biometric_needs_capability() -> None:
    kv = InMemoryKV()
    assert await enable_biometric(kv, FakeBiometrics(available=False)) is False
    assert BIOMETRIC_ENABLED_KEY not in kv.data

    assert await enable_biometric(kv, FakeBiometrics(available=True, succeed=True)) is True
    assert kv.data[BIOMETRIC_ENABLED_KEY] == "true"

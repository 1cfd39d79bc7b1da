# src/taskdeck/connectors/console_connector.py

from __future__ import annotations

import asyncio
import logging
from datetime import datetime

from ..cli.commands import registry as command_registry
from ..core.state import AppState
from ..errors import ValidationError

logger = logging.getLogger(__name__)

DELETE_KEYS = ("<", "del", "delete")


def _ts_local() -> str:
    return datetime.now().astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _print_ts(text: str) -> None:
    print(f"[{_ts_local()}] {text}")


async def _read_line(prompt: str) -> str:
    return (await asyncio.to_thread(input, prompt)).strip()


async def run_unlock_prompt(state: AppState) -> bool:
    """
    Numpad emulation: each line may contain digits (fed one by one) or "<" to
    delete the last digit. Returns True once unlocked, False on EOF/Ctrl+C.
    """
    lock = state.app_lock
    if not lock.is_locked:
        return True

    _print_ts(f"[LOCK] Enter your {lock.passcode_length}-digit passcode to unlock the app.")
    while lock.is_locked:
        try:
            line = await _read_line("passcode> ")
        except (EOFError, KeyboardInterrupt):
            logger.info("Unlock prompt aborted.")
            print()
            return False

        if line.lower() in DELETE_KEYS:
            lock.delete()
        elif line.lower() in ("bio", "/bio"):
            if not await lock.try_biometric():
                _print_ts("[LOCK] Biometric authentication is not available.")
        else:
            try:
                lock.enter(line)
            except ValidationError:
                _print_ts("[LOCK] Digits only (use < to delete).")
                continue

        if lock.error:
            _print_ts(f"[LOCK] {lock.error}")
        elif lock.is_locked:
            filled = len(lock.buffer)
            _print_ts("[LOCK] " + "*" * filled + "-" * (lock.passcode_length - filled))

    _print_ts("[LOCK] Unlocked.")
    return True


async def run_console_loop(state: AppState) -> None:
    logger.info("Console connector started.")

    if not await run_unlock_prompt(state):
        return

    _print_ts("[CONSOLE] /help lists commands, /lock locks the app, /exit quits.\n")

    def emit(text: str) -> None:
        # Immediate user-visible feedback for multi-step commands
        print(f"[{_ts_local()}] {text}", flush=True)

    while True:
        try:
            user_input = await _read_line(">>> ")
        except EOFError:
            logger.info("Console EOF received, exiting.")
            break
        except KeyboardInterrupt:
            logger.info("Console KeyboardInterrupt, exiting.")
            print()
            break

        if not user_input:
            continue

        if user_input.lower() in ("/exit", "/quit"):
            logger.info("Console exit command received.")
            break

        if user_input.lower() == "/lock":
            await state.app_lock.lock()
            if not await run_unlock_prompt(state):
                break
            continue

        try:
            cmd_response = await command_registry.handle(state, user_input, emit=emit)
        except Exception:
            logger.exception("Command handler crashed.")
            cmd_response = "Internal error while handling a command."

        if cmd_response is None:
            cmd_response = "Commands start with '/'. Use /help to list them."
        print(f"[{_ts_local()}] {cmd_response}")

    logger.info("Console connector finished.")

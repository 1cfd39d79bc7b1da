# src/taskdeck/cli/main.py

"""
CLI entrypoint.

Initializes logging, builds AppState, loads tasks, evaluates the app lock,
then runs the console REPL until /exit (or EOF / Ctrl+C).
"""

from __future__ import annotations

import asyncio
import locale
import logging

from ..cli.bootstrap import create_initial_state, start_state
from ..config import get_settings
from ..connectors.console_connector import run_console_loop
from ..core.state import AppState
from ..logging_setup import setup_logging

logger = logging.getLogger(__name__)


async def _shutdown(state: AppState) -> None:
    """Best-effort shutdown (no exceptions should escape)."""
    try:
        await state.task_store.flush()
    except Exception:
        logger.exception("Failed to flush pending task writes.")

    kv = state.kv
    if hasattr(kv, "close"):
        try:
            kv.close()
        except Exception:
            logger.debug("Storage close failed.", exc_info=True)


async def run(state: AppState) -> None:
    await start_state(state)
    try:
        if getattr(state.settings, "console_enabled", True):
            await run_console_loop(state)
        else:
            logger.info("Console disabled; nothing to run.")
    finally:
        await _shutdown(state)


def _use_user_collation() -> None:
    """Title sorting collates with the user's locale (LC_COLLATE / LANG)."""
    try:
        locale.setlocale(locale.LC_COLLATE, "")
    except locale.Error:
        logger.warning("User locale is not available; title sort uses the C locale.")


def main() -> None:
    settings = get_settings()

    # choose console log level from settings.log_level
    level_name = str(getattr(settings, "log_level", "INFO")).upper()
    console_level = getattr(logging, level_name, logging.INFO)

    log_file = setup_logging(log_dir=settings.data_dir, console_level=console_level)

    logger.info("Starting %s (log file %s)...", settings.app_name, log_file)
    _use_user_collation()

    # IMPORTANT: reuse same settings object
    state = create_initial_state(settings=settings)

    try:
        asyncio.run(run(state))
    except KeyboardInterrupt:
        logger.info("Interrupted.")
    logger.info("Bye.")


if __name__ == "__main__":
    main()

# tests/test_console_connector.py

from __future__ import annotations

import pytest

from taskdeck.cli.bootstrap import start_state
from taskdeck.connectors import console_connector
from taskdeck.security.app_lock import PASSCODE_ENABLED_KEY, PASSCODE_KEY


def _script(monkeypatch: pytest.MonkeyPatch, lines: list[str]) -> list[str]:
    """Feed console input from a list; EOF once it runs out."""
    prompts: list[str] = []
    pending = list(lines)

    async def fake_read_line(prompt: str) -> str:
        prompts.append(prompt)
        if not pending:
            raise EOFError
        return pending.pop(0)

    monkeypatch.setattr(console_connector, "_read_line", fake_read_line)
    return prompts


@pytest.mark.asyncio
async def test_unlock_prompt_accepts_digits_and_delete(state, monkeypatch, capsys) -> None:
    state.kv.set_item(PASSCODE_ENABLED_KEY, "true")
    state.kv.set_item(PASSCODE_KEY, "1234")
    await start_state(state)
    assert state.app_lock.is_locked

    _script(monkeypatch, ["12", "<", "x", "234"])

    assert await console_connector.run_unlock_prompt(state) is True
    out = capsys.readouterr().out
    assert "Digits only" in out
    assert "Unlocked." in out


@pytest.mark.asyncio
async def test_unlock_prompt_reports_wrong_passcode_then_eof(state, monkeypatch, capsys) -> None:
    state.kv.set_item(PASSCODE_ENABLED_KEY, "true")
    state.kv.set_item(PASSCODE_KEY, "1234")
    await start_state(state)

    _script(monkeypatch, ["9999"])

    assert await console_connector.run_unlock_prompt(state) is False
    assert "Incorrect passcode" in capsys.readouterr().out
    assert state.app_lock.is_locked


@pytest.mark.asyncio
async def test_console_loop_runs_commands_until_exit(state, monkeypatch, capsys) -> None:
    await start_state(state)
    prompts = _script(
        monkeypatch,
        ["/add Pay rent category=finance", "hello", "/exit", "/list"],
    )

    await console_connector.run_console_loop(state)

    out = capsys.readouterr().out
    assert "Task created" in out
    assert "Commands start with '/'" in out
    assert prompts == [">>> "] * 3
    assert state.task_store.count_tasks() == 1

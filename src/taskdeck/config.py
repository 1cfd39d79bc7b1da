# src/taskdeck/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time.
- The composition root passes Settings explicitly; get_settings() is only the default.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "TASKDECK"

KV_BACKENDS = ("sqlite", "json")
TIMEFRAMES = ("week", "month", "all")
SORT_OPTIONS = ("dueDate", "priority", "createdAt", "title")


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_choice(name: str, choices: tuple[str, ...], default: str) -> str:
    raw = (os.getenv(name) or "").strip()
    return raw if raw in choices else default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Connector flags ----
    console_enabled: bool

    # ---- Storage (ignored by git) ----
    data_dir: Path
    kv_backend: str
    kv_db_path: Path
    kv_json_path: Path

    # ---- List / statistics defaults ----
    default_sort: str
    default_filter: str
    default_timeframe: str

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "taskdeck") or "taskdeck"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/taskdeck"))
        kv_backend = _env_choice(_k("KV_BACKEND"), KV_BACKENDS, "sqlite")
        kv_db_path = _env_path(_k("KV_DB_PATH"), data_dir / "storage.sqlite3")
        kv_json_path = _env_path(_k("KV_JSON_PATH"), data_dir / "storage.json")

        default_sort = _env_choice(_k("DEFAULT_SORT"), SORT_OPTIONS, "dueDate")
        default_filter = (_env(_k("DEFAULT_FILTER"), "all") or "all").strip()
        default_timeframe = _env_choice(_k("DEFAULT_TIMEFRAME"), TIMEFRAMES, "week")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            console_enabled=console_enabled,
            data_dir=data_dir,
            kv_backend=kv_backend,
            kv_db_path=kv_db_path,
            kv_json_path=kv_json_path,
            default_sort=default_sort,
            default_filter=default_filter,
            default_timeframe=default_timeframe,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS

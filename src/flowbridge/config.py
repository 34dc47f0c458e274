# src/flowbridge/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- Nothing is read from the network or disk beyond .env at import time.
- Components receive settings by injection; get_settings() is for the composition root.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "FLOWBRIDGE"

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


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

    # ---- Task server ----
    api_base_url: str
    api_timeout_seconds: float
    api_connect_timeout_seconds: float

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    timers_path: Path
    preferences_path: Path

    # ---- Display ----
    tick_seconds: float

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "flowbridge") or "flowbridge"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        api_base_url = (_env(_k("API_BASE_URL"), "http://localhost:3000") or "").strip().rstrip("/")
        api_timeout_seconds = max(0.5, _env_float(_k("API_TIMEOUT_SECONDS"), 10.0))
        api_connect_timeout_seconds = max(0.5, _env_float(_k("API_CONNECT_TIMEOUT_SECONDS"), 5.0))

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/flowbridge"))
        timers_path = _env_path(_k("TIMERS_PATH"), data_dir / "active_timers.json")
        preferences_path = _env_path(_k("PREFERENCES_PATH"), data_dir / "preferences.json")

        tick_seconds = max(0.1, _env_float(_k("TICK_SECONDS"), 1.0))

        return Settings(
            app_name=app_name,
            log_level=log_level,
            api_base_url=api_base_url or "http://localhost:3000",
            api_timeout_seconds=api_timeout_seconds,
            api_connect_timeout_seconds=api_connect_timeout_seconds,
            data_dir=data_dir,
            timers_path=timers_path,
            preferences_path=preferences_path,
            tick_seconds=tick_seconds,
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS

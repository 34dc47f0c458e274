# src/flowbridge/preferences.py

from __future__ import annotations

import logging
from dataclasses import asdict, dataclass, fields, replace
from typing import Any

from .core.ports import DocumentStorage

logger = logging.getLogger(__name__)

THEMES = ("dark", "light")


@dataclass(slots=True, frozen=True)
class Preferences:
    hide_completed: bool = False
    confirm_delete: bool = True
    auto_refresh_seconds: int = 0  # 0 = disabled
    sound_enabled: bool = True
    theme: str = "dark"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Preferences:
        """Lenient: unknown keys are ignored, bad values fall back to defaults."""
        defaults = cls()
        out: dict[str, Any] = {}
        for f in fields(cls):
            if f.name not in data:
                continue
            try:
                out[f.name] = _coerce(f.name, data[f.name])
            except (TypeError, ValueError):
                logger.warning("Ignoring preference %s=%r", f.name, data[f.name])
        return replace(defaults, **out)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)

    def updated(self, key: str, raw: Any) -> Preferences:
        """Return a copy with one preference changed (raw may be a string from the console)."""
        if key not in {f.name for f in fields(self)}:
            raise KeyError(key)
        return replace(self, **{key: _coerce(key, raw)})


def _coerce(key: str, raw: Any) -> Any:
    if key in ("hide_completed", "confirm_delete", "sound_enabled"):
        if isinstance(raw, bool):
            return raw
        s = str(raw).strip().lower()
        if s in {"1", "true", "yes", "y", "on"}:
            return True
        if s in {"0", "false", "no", "n", "off"}:
            return False
        raise ValueError(f"{key} expects a boolean")
    if key == "auto_refresh_seconds":
        seconds = int(raw)
        if seconds < 0:
            raise ValueError("auto_refresh_seconds must be >= 0")
        return seconds
    if key == "theme":
        theme = str(raw).strip().lower()
        if theme not in THEMES:
            raise ValueError(f"theme must be one of {', '.join(THEMES)}")
        return theme
    raise ValueError(f"unknown preference {key}")


class PreferencesStore:
    def __init__(self, storage: DocumentStorage) -> None:
        self._storage = storage

    def load(self) -> Preferences:
        return Preferences.from_dict(self._storage.load())

    def save(self, prefs: Preferences) -> None:
        self._storage.save(prefs.to_dict())
        logger.debug("Preferences saved: %s", prefs)

# src/flowbridge/storage.py

from __future__ import annotations

import contextlib
import json
import logging
import os
from pathlib import Path
from typing import Any

logger = logging.getLogger(__name__)


class JsonFileStorage:
    """
    One JSON object per file, written atomically (temp file + os.replace).

    Used for the state that must survive a restart but never goes to the server:
    running timers and user preferences.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text("utf-8"))
        except (OSError, ValueError):
            logger.warning("Failed to read %s; starting from an empty document", self._path, exc_info=True)
            return {}
        if not isinstance(data, dict):
            logger.warning("Ignoring %s: expected a JSON object, got %s", self._path, type(data).__name__)
            return {}
        return data

    def save(self, data: dict[str, Any]) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True), "utf-8")
        os.replace(tmp, self._path)
        with contextlib.suppress(OSError):
            os.chmod(self._path, 0o600)

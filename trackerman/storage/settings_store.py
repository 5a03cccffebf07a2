# trackerman/storage/settings_store.py

"""JSON file store for the single runtime settings record."""

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, cast

from trackerman.config.settings import Settings
from trackerman.errors import ValidationError
from trackerman.models.tracker_settings import TrackerSettings

logger = logging.getLogger("trackerman.settings")


class SettingsStore:
    """Loads, merges and atomically rewrites ``settings.json``.

    The file is seeded with defaults on first use.  Every update writes
    the whole document to a temp file next to it and swaps it in with
    ``os.replace``, so a crash never leaves a half-written file.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path: Path = path or Settings.DATA_DIR / Settings.SETTINGS_FILE_NAME
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._settings = self._load()

    def _load(self) -> TrackerSettings:
        if not self.path.exists():
            settings = TrackerSettings()
            self._write(settings)
            logger.info("Seeded default settings at %s", self.path)
            return settings

        try:
            with open(self.path, encoding="utf-8") as f:
                raw: object = json.load(f)
        except json.JSONDecodeError as exc:
            raise ValidationError(
                f"Settings file {self.path} is not valid JSON: {exc}"
            ) from exc
        if not isinstance(raw, dict):
            raise ValidationError(
                f"Settings file {self.path} must contain a JSON object"
            )
        settings = TrackerSettings.from_dict(cast(dict[str, Any], raw))
        logger.debug("Loaded settings from %s", self.path)
        return settings

    def _write(self, settings: TrackerSettings) -> None:
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=".settings-", suffix=".json",
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(settings.to_dict(), f, ensure_ascii=False, indent=2)
            os.replace(tmp_name, self.path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    def get(self) -> TrackerSettings:
        """The current settings record."""
        return self._settings

    def update(self, partial: dict[str, Any]) -> TrackerSettings:
        """Deep-merge *partial*, validate, persist, and return the result.

        Raises ``ValidationError`` without touching the file when the
        merged record is invalid.
        """
        with self._lock:
            updated = self._settings.merged(partial)
            self._write(updated)
            self._settings = updated
        logger.info("Settings updated: %s", sorted(partial))
        return updated

from __future__ import annotations

import logging
import threading
from pathlib import Path

from pydantic import BaseModel, Field, ValidationError

logger = logging.getLogger(__name__)


class SyncPreferences(BaseModel):
    sync_enabled: bool = False
    auto_sync_enabled: bool = True
    server_host: str = ""
    server_port: int = Field(default=3000, ge=1, le=65535)

    @property
    def base_url(self) -> str:
        if not self.server_host:
            return ""
        return f"http://{self.server_host}:{self.server_port}"

    def has_valid_server_config(self) -> bool:
        return self.sync_enabled and bool(self.server_host)


class PreferenceStore:
    """Sync preferences persisted as a small JSON file.

    With ``path=None`` the preferences live in memory only.
    """

    def __init__(self, path: Path | None = None) -> None:
        self._path = path
        self._lock = threading.Lock()
        self._prefs = self._load()

    def _load(self) -> SyncPreferences:
        if self._path is None or not self._path.exists():
            return SyncPreferences()
        try:
            return SyncPreferences.model_validate_json(self._path.read_text(encoding="utf-8"))
        except (OSError, ValidationError):
            logger.warning("Unreadable preferences at %s, using defaults", self._path, exc_info=True)
            return SyncPreferences()

    def get(self) -> SyncPreferences:
        with self._lock:
            return self._prefs

    def update(self, **changes) -> SyncPreferences:
        """Apply and persist changes, e.g. ``update(sync_enabled=True)``."""
        with self._lock:
            prefs = SyncPreferences.model_validate({**self._prefs.model_dump(), **changes})
            if self._path is not None:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                tmp = self._path.with_suffix(".tmp")
                tmp.write_text(prefs.model_dump_json(indent=2), encoding="utf-8")
                tmp.replace(self._path)
            self._prefs = prefs
            return prefs

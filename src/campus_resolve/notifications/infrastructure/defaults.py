"""
Notification Defaults Loader
============================

Loads ``notification_defaults.yaml`` and reloads it when the file
changes, without restarting the service.
"""

import threading
from pathlib import Path
from typing import Optional

import yaml
from pydantic import ValidationError
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from campus_resolve.notifications.domain import NotificationDefaults
from campus_resolve.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class DefaultsFileHandler(FileSystemEventHandler):
    """Watchdog event handler for the defaults file."""

    def __init__(self, manager: "NotificationDefaultsManager", path: Path):
        self.manager = manager
        self.path = path
        super().__init__()

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.path.resolve():
            logger.info("Notification defaults file changed", extra={"path": str(event.src_path)})
            self.manager.reload()


class NotificationDefaultsManager:
    """
    Thread-safe holder of the notification defaults with hot reload.

    A reload that fails to parse keeps the previous defaults.
    """

    def __init__(self):
        self._defaults: Optional[NotificationDefaults] = None
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> NotificationDefaults:
        self._path = Path(path)
        defaults = self._load_from_file(self._path)
        with self._lock:
            self._defaults = defaults
        return defaults

    def _load_from_file(self, path: Path) -> NotificationDefaults:
        if not path.exists():
            logger.warning("Notification defaults file not found, using built-in defaults", extra={"path": str(path)})
            return NotificationDefaults()

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        return NotificationDefaults(**data)

    def reload(self) -> bool:
        if self._path is None:
            return False

        try:
            defaults = self._load_from_file(self._path)
        except (OSError, yaml.YAMLError, ValidationError, TypeError) as e:
            logger.error("Failed to reload notification defaults", extra={"error": str(e)})
            return False

        with self._lock:
            self._defaults = defaults
        logger.info("Notification defaults reloaded")
        return True

    def start_watching(self) -> None:
        """
        Watch the defaults file for changes.

        Skipped when the file does not exist or the platform cannot watch
        files (some containers).
        """
        if self._path is None:
            raise RuntimeError("Defaults not loaded. Call load() first.")

        if not self._path.exists():
            logger.info("Notification defaults file missing, skipping file watch", extra={"path": str(self._path)})
            return

        try:
            self._observer = Observer()
            handler = DefaultsFileHandler(self, self._path)
            self._observer.schedule(handler, str(self._path.resolve().parent), recursive=False)
            self._observer.start()
            logger.info("Watching notification defaults file", extra={"path": str(self._path)})
        except OSError as e:
            logger.warning("File watching not available, using static defaults", extra={"error": str(e)})
            self._observer = None

    def stop_watching(self) -> None:
        """Safe to call even if not watching."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def is_watching(self) -> bool:
        return self._observer is not None

    @property
    def defaults(self) -> NotificationDefaults:
        with self._lock:
            if self._defaults is None:
                raise RuntimeError("Notification defaults not loaded")
            return self._defaults

    def get(self) -> NotificationDefaults:
        """Current defaults; built-in defaults before the first load."""
        with self._lock:
            return self._defaults or NotificationDefaults()

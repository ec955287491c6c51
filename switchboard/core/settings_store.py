"""
Persistence for non-secret provider settings.

The store is a flat key/value mapping of JSON-serializable values. Only
sanitized provider configuration is ever written here; credentials are read
from the environment at startup.
"""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from copy import deepcopy
from pathlib import Path
from typing import Any

_logger = logging.getLogger(__name__)


class SettingsStoreError(Exception):
    """Raised when the settings backend cannot be read or written."""


class SettingsStore(ABC):
    """Key/value settings persistence."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value for key, or default."""

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        """Persist value under key."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key if present."""

    @abstractmethod
    def keys(self) -> list[str]:
        """Return every stored key."""


class MemorySettingsStore(SettingsStore):
    """In-memory settings store.

    Useful for testing and for runs that should not touch the filesystem.
    """

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._data: dict[str, Any] = deepcopy(initial) if initial else {}

    def get(self, key: str, default: Any = None) -> Any:
        return deepcopy(self._data.get(key, default))

    def set(self, key: str, value: Any) -> None:
        self._data[key] = deepcopy(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class FileSettingsStore(SettingsStore):
    """JSON-file settings store.

    The file is rewritten atomically on every change (write to a temporary
    file in the same directory, then replace).
    """

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path).expanduser()
        self._data: dict[str, Any] | None = None

    def _load(self) -> dict[str, Any]:
        if self._data is not None:
            return self._data
        if not self.path.exists():
            self._data = {}
            return self._data
        try:
            with open(self.path, encoding="utf-8") as f:
                data = json.load(f)
        except json.JSONDecodeError as e:
            _logger.error("Corrupted settings file %s: %s", self.path, e)
            raise SettingsStoreError(f"Invalid settings data in {self.path}: {e}") from e
        except OSError as e:
            _logger.error("Failed to read settings file %s: %s", self.path, e)
            raise SettingsStoreError(f"Cannot read settings file: {e}") from e
        if not isinstance(data, dict):
            raise SettingsStoreError(f"Settings file {self.path} must contain a JSON object")
        self._data = data
        return self._data

    def _flush(self) -> None:
        data = self._load()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, prefix=".settings-")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
            os.replace(tmp_name, self.path)
        except OSError as e:
            _logger.error("Failed to write settings file %s: %s", self.path, e)
            raise SettingsStoreError(f"Cannot write settings file: {e}") from e

    def get(self, key: str, default: Any = None) -> Any:
        return deepcopy(self._load().get(key, default))

    def set(self, key: str, value: Any) -> None:
        self._load()[key] = deepcopy(value)
        self._flush()

    def delete(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._flush()

    def keys(self) -> list[str]:
        return list(self._load())

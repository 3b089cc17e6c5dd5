"""
Client-local key/value persistence.
The chat session and the compare store save through this port, so the
backing medium (JSON files, memory) is chosen by whoever builds them.
"""

import json
import os
import re
from pathlib import Path
from typing import Any, Protocol

from briki.utils.logger import get_logger

logger = get_logger(__name__)


class StorageError(Exception):
    """Raised when a storage backend cannot read or write a key."""


class StorageBackend(Protocol):
    """Minimal key/value port, shaped after browser localStorage."""

    def get(self, key: str) -> Any | None: ...

    def set(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...


class InMemoryStorage:
    """Process-lifetime storage, used by tests and throwaway sessions."""

    def __init__(self):
        self.data: dict[str, str] = {}

    def get(self, key: str) -> Any | None:
        raw = self.data.get(key)
        return json.loads(raw) if raw is not None else None

    def set(self, key: str, value: Any) -> None:
        # round-trip through JSON so callers get the same shapes a file gives
        self.data[key] = json.dumps(value, default=str)

    def remove(self, key: str) -> None:
        self.data.pop(key, None)


class JsonFileStorage:
    """
    One JSON file per key inside a directory.
    Writes go to a temp file first and are renamed into place.
    """

    def __init__(self, directory: str | Path):
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        safe_key = re.sub(r"[^A-Za-z0-9_.-]", "_", key)
        return self.directory / f"{safe_key}.json"

    def get(self, key: str) -> Any | None:
        """
        Read a key.

        Returns:
            Decoded JSON value, or None if the key was never written

        Raises:
            StorageError: If the file exists but cannot be read or decoded
        """
        path = self._path(key)
        if not path.exists():
            return None
        try:
            with open(path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error("storage_read_failed", exc_info=True, key=key, error=str(e))
            raise StorageError(f"Could not read '{key}': {e}") from e

    def set(self, key: str, value: Any) -> None:
        """
        Write a key atomically.

        Raises:
            StorageError: If the directory or file cannot be written
        """
        path = self._path(key)
        tmp_path = path.with_suffix(".json.tmp")
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(value, f, ensure_ascii=False, default=str)
            os.replace(tmp_path, path)
        except (OSError, TypeError, ValueError) as e:
            logger.error("storage_write_failed", exc_info=True, key=key, error=str(e))
            raise StorageError(f"Could not write '{key}': {e}") from e

    def remove(self, key: str) -> None:
        """Delete a key; missing keys are ignored."""
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise StorageError(f"Could not remove '{key}': {e}") from e

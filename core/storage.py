"""
Local Key/Value Storage.

A small string-valued store with the same shape as a browser's localStorage.
State managers persist serialized snapshots here so they survive restarts.
"""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """Raised when local storage cannot be read or written."""


class LocalStorage(ABC):
    """Abstract string key/value storage."""

    @abstractmethod
    def get_item(self, key: str) -> Optional[str]:
        pass

    @abstractmethod
    def set_item(self, key: str, value: str):
        pass

    @abstractmethod
    def remove_item(self, key: str):
        pass


class MemoryStorage(LocalStorage):
    """
    In-process storage.

    Args:
        quota_bytes: Optional size limit; writes beyond it raise StorageError
            the way a full browser storage area does.
    """

    def __init__(self, quota_bytes: Optional[int] = None):
        self._items: Dict[str, str] = {}
        self._quota_bytes = quota_bytes

    def get_item(self, key: str) -> Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str):
        if self._quota_bytes is not None:
            used = sum(len(v) for k, v in self._items.items() if k != key)
            if used + len(value) > self._quota_bytes:
                raise StorageError(f"Storage quota of {self._quota_bytes} bytes exceeded")
        self._items[key] = value

    def remove_item(self, key: str):
        self._items.pop(key, None)


class JsonFileStorage(LocalStorage):
    """
    Storage backed by a single JSON object on disk.

    Writes go through a temporary file and an atomic rename so a crash never
    leaves a half-written file behind.
    """

    def __init__(self, path: str):
        self.path = Path(path)

    def _read_all(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise StorageError(f"Cannot read {self.path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"Unexpected content in {self.path}")
        return data

    def _write_all(self, data: Dict[str, str]):
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=str(self.path.parent), suffix=".tmp")
        except OSError as e:
            raise StorageError(f"Cannot write {self.path}: {e}") from e

        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp_path, self.path)
        except (OSError, TypeError, ValueError) as e:
            self._discard(tmp_path)
            raise StorageError(f"Cannot write {self.path}: {e}") from e

    @staticmethod
    def _discard(tmp_path: str):
        try:
            os.unlink(tmp_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove temporary file {tmp_path}: {e}")

    def get_item(self, key: str) -> Optional[str]:
        value = self._read_all().get(key)
        return value if isinstance(value, str) else None

    def set_item(self, key: str, value: str):
        try:
            data = self._read_all()
        except StorageError:
            logger.warning(f"Discarding unreadable storage file {self.path}")
            data = {}
        data[key] = value
        self._write_all(data)

    def remove_item(self, key: str):
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)

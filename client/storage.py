"""
Key-value storage backends for the offline queue.

Both backends follow the browser localStorage contract: string keys, string
values, `None` for a missing key. Failures are reported as `StorageError` so the
queue can decide to ignore them.
"""
from __future__ import annotations

import json
import os
import tempfile
from typing import Dict, Optional


class StorageError(Exception):
    """The persistence layer is unavailable (disk full, permissions, corrupt file)."""


class MemoryStorage:
    def __init__(self):
        self._data: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove_item(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStorage:
    """All keys live in one JSON object on disk, replaced atomically on write."""

    def __init__(self, path: str):
        self.path = path

    def _load(self) -> Dict[str, str]:
        try:
            with open(self.path, "r", encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return {}
        except (OSError, ValueError) as exc:
            raise StorageError(f"cannot read {self.path}: {exc}") from exc
        if not isinstance(data, dict):
            raise StorageError(f"{self.path} does not hold a JSON object")
        return data

    def _save(self, data: Dict[str, str]) -> None:
        directory = os.path.dirname(os.path.abspath(self.path))
        try:
            os.makedirs(directory, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".queue-", suffix=".json")
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(data, fh)
            os.replace(tmp_path, self.path)
        except OSError as exc:
            raise StorageError(f"cannot write {self.path}: {exc}") from exc

    def get_item(self, key: str) -> Optional[str]:
        return self._load().get(key)

    def set_item(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def remove_item(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)


DEFAULT_QUEUE_PATH = "~/.water_market/queue.json"


def default_storage() -> JsonFileStorage:
    """File storage at OFFLINE_QUEUE_PATH, or under the home directory."""
    path = os.getenv("OFFLINE_QUEUE_PATH") or DEFAULT_QUEUE_PATH
    return JsonFileStorage(os.path.expanduser(path))


__all__ = ["StorageError", "MemoryStorage", "JsonFileStorage", "DEFAULT_QUEUE_PATH", "default_storage"]

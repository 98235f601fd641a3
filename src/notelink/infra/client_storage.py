"""Key-value client storage used to persist rate-limit windows.

Implementations are synchronous and string-valued. Any of them may raise
StorageUnavailableError; callers decide whether that is fatal.
"""

from __future__ import annotations

import json
import threading
from collections import OrderedDict
from pathlib import Path
from typing import Protocol


class StorageUnavailableError(Exception):
    """Raised when the backing store cannot be read or written."""

    pass


class ClientStorage(Protocol):
    """Protocol for client key-value storage."""

    def get(self, key: str) -> str | None:
        """Return stored value or None if absent."""
        ...

    def set(self, key: str, value: str) -> None:
        """Store value under key."""
        ...


class MemoryStorage:
    """Dict-backed storage. Contents are lost on restart.

    With max_keys set, the least recently used keys are evicted once the
    store is full, so one key per client cannot grow without bound.
    """

    def __init__(self, max_keys: int | None = None) -> None:
        if max_keys is not None and max_keys <= 0:
            raise ValueError(f"max_keys must be > 0, got {max_keys}")
        self._data: OrderedDict[str, str] = OrderedDict()
        self._max_keys = max_keys
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            value = self._data.get(key)
            if value is not None:
                self._data.move_to_end(key)
            return value

    def set(self, key: str, value: str) -> None:
        with self._lock:
            self._data[key] = value
            self._data.move_to_end(key)
            if self._max_keys is not None:
                while len(self._data) > self._max_keys:
                    self._data.popitem(last=False)

    def clear(self) -> None:
        """Drop all keys (useful for testing)."""
        with self._lock:
            self._data.clear()


class JsonFileStorage:
    """Durable storage backed by a single JSON object file.

    The whole file is rewritten on every set(). Suitable for one process;
    concurrent writers from several processes may lose updates.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> dict[str, str]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8") or "{}")
        except (OSError, ValueError) as e:
            raise StorageUnavailableError(f"cannot read {self._path}: {e}") from e
        if not isinstance(data, dict):
            raise StorageUnavailableError(f"{self._path} does not hold a JSON object")
        return data

    def get(self, key: str) -> str | None:
        with self._lock:
            value = self._load().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
            try:
                self._path.parent.mkdir(parents=True, exist_ok=True)
                tmp_path.write_text(json.dumps(data), encoding="utf-8")
                tmp_path.replace(self._path)
            except OSError as e:
                raise StorageUnavailableError(f"cannot write {self._path}: {e}") from e


class NamespacedStorage:
    """View over another storage that prefixes every key with a namespace."""

    def __init__(self, inner: ClientStorage, namespace: str) -> None:
        self._inner = inner
        self._namespace = namespace

    def _key(self, key: str) -> str:
        return f"{self._namespace}:{key}"

    def get(self, key: str) -> str | None:
        return self._inner.get(self._key(key))

    def set(self, key: str, value: str) -> None:
        self._inner.set(self._key(key), value)

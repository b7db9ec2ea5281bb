"""
Vault Backends: Durable key-value stores holding encoded records.

The secure storage layer treats its store as a synchronous, reliable
collaborator: string keys mapped to string values, no retries, no queueing.
"""
import os
import logging
import threading
from pathlib import Path
from typing import Optional, Protocol, Union, runtime_checkable

import orjson

from .exceptions import StoreError

logger = logging.getLogger("credstore.vault")


@runtime_checkable
class KeyValueStore(Protocol):
    """Minimal get/set/remove contract of a durable string store."""

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class MemoryStore:
    """Process-local store backed by a dict."""

    def __init__(self, data: Optional[dict[str, str]] = None):
        self._data: dict[str, str] = dict(data or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileStore:
    """Store persisted as a single JSON object file.

    Every mutation rewrites the whole file through a temp file and
    ``os.replace`` so a crash never leaves a half-written store behind.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = threading.Lock()

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = orjson.loads(self.path.read_bytes())
        except (OSError, orjson.JSONDecodeError) as err:
            raise StoreError(f"Cannot read store {self.path}: {err}") from err
        if not isinstance(data, dict):
            raise StoreError(
                f"Store {self.path} must contain a JSON object, "
                f"got {type(data).__name__}"
            )
        return data

    def _atomic_write(self, data: dict[str, str]) -> None:
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(tmp, "wb") as f:
                f.write(orjson.dumps(data, option=orjson.OPT_INDENT_2))
                f.flush()
                os.fsync(f.fileno())
            try:
                os.chmod(tmp, 0o600)
            except OSError:
                # Not supported on every filesystem; the store stays readable.
                logger.debug("Could not restrict permissions on %s", tmp)
            os.replace(tmp, self.path)
        except OSError as err:
            raise StoreError(f"Cannot write store {self.path}: {err}") from err

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            value = self._load().get(key)
        return value if isinstance(value, str) else None

    def set(self, key: str, value: str) -> None:
        with self._lock:
            data = self._load()
            data[key] = value
            self._atomic_write(data)

    def remove(self, key: str) -> None:
        with self._lock:
            data = self._load()
            if key in data:
                del data[key]
                self._atomic_write(data)

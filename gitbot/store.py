"""
Key-value storage for gitbot records.

Descriptors, process handles and the boot marker all live in small text
records keyed by name. FileStore keeps one file per key in a directory
and replaces files atomically so a concurrent reader never observes a
half-written record. MemoryStore is used by tests.
"""

import os
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path


class KeyValueStore(ABC):
    """Minimal record store: one text value per key."""

    @abstractmethod
    def get(self, key: str) -> str | None:
        """Return the value stored under key, or None."""

    @abstractmethod
    def put(self, key: str, value: str) -> None:
        """Store value under key, replacing any previous value."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove key. Deleting a missing key is not an error."""

    @abstractmethod
    def list_all(self) -> list[tuple[str, str]]:
        """Return every (key, value) pair, sorted by key."""

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None


def _check_key(key: str):
    if not key or key.startswith(".") or "/" in key or os.sep in key:
        raise ValueError(f"Invalid store key: {key!r}")


class FileStore(KeyValueStore):
    """Filesystem-backed store, one file per key."""

    def __init__(self, root: Path):
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        _check_key(key)
        return self.root / key

    def get(self, key: str) -> str | None:
        try:
            return self._path(key).read_text(encoding="utf-8")
        except FileNotFoundError:
            return None

    def put(self, key: str, value: str) -> None:
        target = self._path(key)
        # Write next to the target so the rename stays on one filesystem
        fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=f".{key}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(value)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, target)
        except BaseException:
            try:
                os.unlink(tmp_name)
            except FileNotFoundError:
                pass
            raise

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass

    def list_all(self) -> list[tuple[str, str]]:
        items = []
        for entry in sorted(self.root.iterdir()):
            # Skip in-flight temp files and anything that is not a record
            if entry.name.startswith(".") or not entry.is_file():
                continue
            value = self.get(entry.name)
            if value is not None:
                items.append((entry.name, value))
        return items


class MemoryStore(KeyValueStore):
    """In-process store for tests."""

    def __init__(self):
        self._data: dict[str, str] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        _check_key(key)
        with self._lock:
            return self._data.get(key)

    def put(self, key: str, value: str) -> None:
        _check_key(key)
        with self._lock:
            self._data[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._data.pop(key, None)

    def list_all(self) -> list[tuple[str, str]]:
        with self._lock:
            return sorted(self._data.items())

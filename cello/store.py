"""Key-value persistence backed by an on-disk database with an in-memory cache."""

from __future__ import annotations

import sqlite3
import threading
from typing import Any, Callable

Serializer = Callable[[Any], bytes]
Deserializer = Callable[[bytes], Any]


class NotFoundError(LookupError):
    """Raised when a key is not present in the store."""

    def __init__(self, message: str = "not found") -> None:
        super().__init__(message)


class DiskStorage:
    """Stores values under keys in a named bucket of a database file."""

    def __init__(
        self, name: str, path: str, serializer: Serializer, deserializer: Deserializer
    ) -> None:
        self._name = name
        self._serializer = serializer
        self._deserializer = deserializer
        self._lock = threading.Lock()
        self._cache: dict[str, Any] = {}
        self._conn = sqlite3.connect(str(path), check_same_thread=False)
        try:
            self._load()
        except Exception:
            self._conn.close()
            raise

    def _load(self) -> None:
        with self._conn:
            self._conn.execute(
                "CREATE TABLE IF NOT EXISTS buckets ("
                "bucket TEXT NOT NULL, key TEXT NOT NULL, value BLOB NOT NULL, "
                "PRIMARY KEY (bucket, key))"
            )
        rows = self._conn.execute(
            "SELECT key, value FROM buckets WHERE bucket = ? ORDER BY key", (self._name,)
        )
        for key, value in rows:
            self._cache[key] = self._deserializer(bytes(value))

    def put(self, key: str, value: Any) -> None:
        """Persist a value and cache it."""
        data = self._serializer(value)
        with self._lock:
            with self._conn:
                self._conn.execute(
                    "INSERT OR REPLACE INTO buckets (bucket, key, value) VALUES (?, ?, ?)",
                    (self._name, key, sqlite3.Binary(data)),
                )
            self._cache[key] = value

    def get(self, key: str) -> Any:
        """Return the value for a key, or raise NotFoundError."""
        with self._lock:
            try:
                return self._cache[key]
            except KeyError:
                raise NotFoundError() from None

    def list(self) -> list[Any]:
        """Return all stored values."""
        with self._lock:
            return list(self._cache.values())

    def delete(self, key: str) -> None:
        """Remove a key; removing a missing key is not an error."""
        with self._lock:
            with self._conn:
                self._conn.execute(
                    "DELETE FROM buckets WHERE bucket = ? AND key = ?", (self._name, key)
                )
            self._cache.pop(key, None)

    def close(self) -> None:
        """Close the underlying database."""
        self._conn.close()

    def __enter__(self) -> "DiskStorage":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
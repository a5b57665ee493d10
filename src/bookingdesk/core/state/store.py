# src/bookingdesk/core/state/store.py
"""StateStore protocol and in-memory implementation.

The state store is a flat string key-value store with optional
per-key expiry. It backs rate-limit buckets, submission markers, and
decision tokens. Implementations:
- InMemoryStateStore (this module): single process, tests
- SQLStateStore (sql_store.py): SQLite / PostgreSQL via SQLAlchemy

Consistency model: single-key operations only. Read-then-write
sequences across calls are NOT atomic; put_if_absent is the only
conditional primitive.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from bookingdesk.core.clock import Clock, system_clock


@runtime_checkable
class StateStore(Protocol):
    """Protocol for key-value state backends."""

    def get(self, key: str) -> str | None:
        """Return the value for key, or None if absent or expired."""
        ...

    def put(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
        """Store value under key, replacing any existing value.

        Args:
            key: Store key
            value: Serialized value
            ttl_seconds: Expire after this many seconds (None = never)
        """
        ...

    def put_if_absent(self, key: str, value: str, *, ttl_seconds: int | None = None) -> bool:
        """Store value only if key is absent or expired.

        Returns:
            True if the value was stored
        """
        ...

    def delete(self, key: str) -> bool:
        """Delete key.

        Returns:
            True if a live value was deleted
        """
        ...


@dataclass(frozen=True)
class _Entry:
    value: str
    expires_at_ms: int | None

    def expired(self, now_ms: int) -> bool:
        return self.expires_at_ms is not None and now_ms >= self.expires_at_ms


def _expiry(now_ms: int, ttl_seconds: int | None) -> int | None:
    if ttl_seconds is None:
        return None
    if ttl_seconds <= 0:
        raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
    return now_ms + ttl_seconds * 1000


class InMemoryStateStore:
    """Thread-safe in-process StateStore with lazy expiry.

    Expired entries are dropped when touched or by purge_expired().
    """

    def __init__(self, *, clock: Clock = system_clock) -> None:
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def _live(self, key: str, now_ms: int) -> _Entry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expired(now_ms):
            del self._entries[key]
            return None
        return entry

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._live(key, self._clock())
            return entry.value if entry is not None else None

    def put(self, key: str, value: str, *, ttl_seconds: int | None = None) -> None:
        with self._lock:
            now = self._clock()
            self._entries[key] = _Entry(value, _expiry(now, ttl_seconds))

    def put_if_absent(self, key: str, value: str, *, ttl_seconds: int | None = None) -> bool:
        with self._lock:
            now = self._clock()
            if self._live(key, now) is not None:
                return False
            self._entries[key] = _Entry(value, _expiry(now, ttl_seconds))
            return True

    def delete(self, key: str) -> bool:
        with self._lock:
            entry = self._live(key, self._clock())
            self._entries.pop(key, None)
            return entry is not None

    def purge_expired(self) -> int:
        """Drop all expired entries.

        Returns:
            Number of entries removed
        """
        with self._lock:
            now = self._clock()
            expired = [key for key, entry in self._entries.items() if entry.expired(now)]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def __len__(self) -> int:
        with self._lock:
            now = self._clock()
            return sum(1 for entry in self._entries.values() if not entry.expired(now))

"""An in-memory cache whose entries expire after a time-to-live."""

from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Generic, TypeVar

from francis.clock import FakeClock, RealClock, Timer

V = TypeVar("V")

DEFAULT_CLEANUP_INTERVAL = timedelta(seconds=150)
_MIN_TTL = timedelta(milliseconds=1)


class TTLCache(Generic[V]):
    """Cache with per-entry TTL and periodic removal of expired entries."""

    def __init__(
        self,
        cleanup_interval: timedelta | None = None,
        max_ttl: timedelta | None = None,
        clock: RealClock | FakeClock | None = None,
    ):
        if cleanup_interval is None or cleanup_interval <= timedelta(0):
            cleanup_interval = DEFAULT_CLEANUP_INTERVAL
        self._interval = cleanup_interval
        self._max_ttl = max_ttl if max_ttl is not None and max_ttl > timedelta(0) else None
        self._clock = clock if clock is not None else RealClock()
        self._entries: dict[str, tuple[V, datetime]] = {}
        self._lock = threading.Lock()
        self._stopped = False
        self._timer: Timer | None = None
        self._schedule()

    def __len__(self) -> int:
        """Number of stored entries, including expired ones not yet cleaned up."""
        with self._lock:
            return len(self._entries)

    def __enter__(self) -> TTLCache[V]:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.stop()

    def get(self, key: str, default: V | None = None) -> V | None:
        """Return the value for ``key``, or ``default`` if missing or expired."""
        now = self._clock.now()
        with self._lock:
            entry = self._entries.get(key)
        if entry is None or not entry[1] > now:
            return default
        return entry[0]

    def set(self, key: str, value: V, ttl: timedelta) -> None:
        """Store a value that expires after ``ttl`` (capped at the maximum TTL)."""
        if ttl < _MIN_TTL:
            raise ValueError("invalid TTL: must be 1ms or greater")
        if self._max_ttl is not None and ttl > self._max_ttl:
            ttl = self._max_ttl
        expires = self._clock.now() + ttl
        with self._lock:
            self._entries[key] = (value, expires)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def cleanup(self) -> None:
        """Remove all expired entries."""
        now = self._clock.now()
        with self._lock:
            expired = [key for key, (_, exp) in self._entries.items() if exp < now]
            for key in expired:
                del self._entries[key]

    def reset(self) -> None:
        """Remove all entries."""
        with self._lock:
            self._entries.clear()

    def stop(self) -> None:
        """Stop the background cleanup."""
        with self._lock:
            self._stopped = True
            timer = self._timer
            self._timer = None
        if timer is not None:
            timer.cancel()

    def _schedule(self) -> None:
        with self._lock:
            if self._stopped:
                return
            self._timer = self._clock.call_later(self._interval, self._tick)

    def _tick(self) -> None:
        self.cleanup()
        self._schedule()
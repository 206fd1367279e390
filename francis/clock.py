"""Clocks that schedule callbacks: the real one and a manually driven fake."""

from __future__ import annotations

import itertools
import threading
from datetime import datetime, timedelta, timezone
from typing import Callable


def _to_timedelta(delay: timedelta | float) -> timedelta:
    if isinstance(delay, timedelta):
        return delay
    return timedelta(seconds=delay)


class Timer:
    """Handle for a callback scheduled on a clock."""

    def __init__(self, callback: Callable[[], None]):
        self._callback = callback
        self._lock = threading.Lock()
        self._pending = True
        self._on_cancel: Callable[[], None] | None = None

    @property
    def pending(self) -> bool:
        """True while the callback has neither fired nor been cancelled."""
        with self._lock:
            return self._pending

    def cancel(self) -> bool:
        """Cancel the timer; return True if this stopped a pending callback."""
        with self._lock:
            if not self._pending:
                return False
            self._pending = False
            on_cancel = self._on_cancel
        if on_cancel is not None:
            on_cancel()
        return True

    def _fire(self) -> None:
        with self._lock:
            if not self._pending:
                return
            self._pending = False
        self._callback()


class RealClock:
    """Wall clock in UTC; callbacks run on background threads."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def call_later(self, delay: timedelta | float, callback: Callable[[], None]) -> Timer:
        """Run ``callback`` once ``delay`` has passed."""
        seconds = max(0.0, _to_timedelta(delay).total_seconds())
        timer = Timer(callback)
        thread = threading.Timer(seconds, timer._fire)
        thread.daemon = True
        timer._on_cancel = thread.cancel
        thread.start()
        return timer


class FakeClock:
    """A clock whose time only moves when told to; callbacks run in the caller."""

    def __init__(self, start: datetime | None = None):
        self._now = start if start is not None else datetime.now(timezone.utc)
        self._lock = threading.Lock()
        self._seq = itertools.count()
        self._waiters: dict[Timer, tuple[datetime, int]] = {}

    def now(self) -> datetime:
        with self._lock:
            return self._now

    def call_later(self, delay: timedelta | float, callback: Callable[[], None]) -> Timer:
        """Schedule ``callback`` for when the clock reaches now plus ``delay``."""
        timer = Timer(callback)
        timer._on_cancel = lambda: self._discard(timer)
        with self._lock:
            self._waiters[timer] = (self._now + _to_timedelta(delay), next(self._seq))
        return timer

    def _discard(self, timer: Timer) -> None:
        with self._lock:
            self._waiters.pop(timer, None)

    def step(self, delta: timedelta | float) -> None:
        """Move the clock forward and fire every callback that became due."""
        with self._lock:
            target = self._now + _to_timedelta(delta)
        self.set_time(target)

    def set_time(self, moment: datetime) -> None:
        """Set the current time and fire every callback that became due."""
        with self._lock:
            self._now = moment
            due = sorted(
                (when, seq, timer)
                for timer, (when, seq) in self._waiters.items()
                if when <= moment
            )
            for _, _, timer in due:
                del self._waiters[timer]
        for _, _, timer in due:
            timer._fire()

    def has_waiters(self) -> bool:
        """True if any callback is still scheduled."""
        with self._lock:
            return bool(self._waiters)
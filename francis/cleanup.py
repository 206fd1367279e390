"""Periodic removal of expired rows from a database."""

from __future__ import annotations

import logging
import threading
from datetime import timedelta
from typing import Any, Callable, Mapping, Sequence

from francis.clock import FakeClock, RealClock, Timer
from francis.sqladapter import DatabaseAdapter

UpdateLastCleanupQuery = Callable[[int], "tuple[str, Sequence[Any]]"]
DeleteExpiredValuesQuery = Callable[[], "tuple[str, Callable[[], Sequence[Any]]]"]

_INTERVAL_BUFFER_MS = 100


def _to_timedelta(value: timedelta | float | None) -> timedelta:
    if value is None:
        return timedelta(0)
    if isinstance(value, timedelta):
        return value
    return timedelta(seconds=value)


class GarbageCollector:
    """Deletes expired rows, on demand or every ``cleanup_interval``.

    ``update_last_cleanup_query`` receives the cleanup interval in
    milliseconds (less a small buffer) and returns a query and its
    arguments. The query must atomically record the cleanup time, touching
    no rows if the last cleanup happened too recently; in that case the
    expired rows are left alone. Other processes sharing the database are
    coordinated this way too.

    Each entry of ``delete_expired_values_queries`` returns a query and a
    function giving its arguments.
    """

    def __init__(
        self,
        db: DatabaseAdapter,
        update_last_cleanup_query: UpdateLastCleanupQuery,
        delete_expired_values_queries: Mapping[str, DeleteExpiredValuesQuery] | None = None,
        cleanup_interval: timedelta | float | None = None,
        logger: logging.Logger | None = None,
        clock: RealClock | FakeClock | None = None,
    ):
        if db is None:
            raise ValueError("property DB must be provided")
        self._db = db
        self._update_last_cleanup_query = update_last_cleanup_query
        self._delete_queries = dict(delete_expired_values_queries or {})
        self._interval = _to_timedelta(cleanup_interval)
        self._log = logger or logging.getLogger(__name__)
        self._clock = clock if clock is not None else RealClock()

        self._lock = threading.Lock()
        self._run_lock = threading.RLock()
        self._closed = False
        self._timer: Timer | None = None

        # A non-positive interval (for example in tests) means no background task
        if self._interval > timedelta(0):
            self._log.info("Schedule expired data clean up (interval %s)", self._interval)
            self._schedule()

    def __enter__(self) -> GarbageCollector:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def cleanup_expired(self) -> None:
        """Delete expired rows unless the last cleanup was too recent."""
        with self._run_lock:
            try:
                can_continue = self._update_last_cleanup()
            except Exception as err:
                raise RuntimeError(
                    f"failed to read last cleanup time from database: {err}"
                ) from err
            if not can_continue:
                self._log.debug("Last cleanup was performed too recently")
                return

            for name, query_fn in self._delete_queries.items():
                query, params_fn = query_fn()
                try:
                    removed = self._db.exec(query, *params_fn())
                except Exception as err:
                    raise RuntimeError(f"failed to execute query: {err}") from err

                if removed > 0:
                    self._log.info("Cleaned up expired rows: name=%s removed=%d", name, removed)
                else:
                    self._log.debug("No expired rows deleted: name=%s", name)

    def close(self) -> None:
        """Stop the background cleanup and wait for a running one to finish."""
        with self._lock:
            self._closed = True
            timer = self._timer
            self._timer = None
        if timer is not None:
            timer.cancel()
        with self._run_lock:
            pass

    def _update_last_cleanup(self) -> bool:
        interval_ms = self._interval // timedelta(milliseconds=1) - _INTERVAL_BUFFER_MS
        query, params = self._update_last_cleanup_query(interval_ms)
        try:
            updated = self._db.exec(query, *params)
        except Exception as err:
            raise RuntimeError(f"error updating last cleanup time: {err}") from err
        return updated > 0

    def _schedule(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._timer = self._clock.call_later(self._interval, self._tick)

    def _tick(self) -> None:
        with self._lock:
            if self._closed:
                return
        try:
            self.cleanup_expired()
        except Exception as err:
            self._log.error("Error removing expired data: %s", err)
        self._schedule()


def schedule_garbage_collector(
    db: DatabaseAdapter,
    update_last_cleanup_query: UpdateLastCleanupQuery,
    delete_expired_values_queries: Mapping[str, DeleteExpiredValuesQuery] | None = None,
    cleanup_interval: timedelta | float | None = None,
    logger: logging.Logger | None = None,
    clock: RealClock | FakeClock | None = None,
) -> GarbageCollector:
    """Create a garbage collector, starting its background task if the interval is positive."""
    return GarbageCollector(
        db,
        update_last_cleanup_query,
        delete_expired_values_queries,
        cleanup_interval,
        logger,
        clock,
    )
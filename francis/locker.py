"""A lock that hands itself to waiters in strict arrival order."""

from __future__ import annotations

import threading
import time
from collections import deque

_POLL_INTERVAL = 0.01


class LockerStoppedError(RuntimeError):
    """Raised when the locker has been stopped."""

    def __init__(self) -> None:
        super().__init__("queue is stopped")


class LockCancelledError(RuntimeError):
    """Raised when a wait for the lock is cancelled through its cancel event."""

    def __init__(self) -> None:
        super().__init__("lock request cancelled")


class TurnBasedLocker:
    """Turn-based mutual exclusion with FIFO ordering of waiters.

    Unlike ``threading.Lock``, the lock is not owned by a thread: any caller
    may release it. Releasing passes the lock directly to the oldest waiter.
    """

    def __init__(self) -> None:
        self._mu = threading.Lock()
        self._queue: deque[threading.Event] = deque()
        self._locked = False
        self._stopped = False
        self._closing: threading.Event | None = None

    def __enter__(self) -> TurnBasedLocker:
        self.lock()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.unlock()

    def lock(
        self,
        timeout: float | None = None,
        cancel: threading.Event | None = None,
    ) -> None:
        """Acquire the lock, waiting for earlier callers to take their turn.

        Raises ``TimeoutError`` once ``timeout`` seconds have passed,
        ``LockCancelledError`` when ``cancel`` is set while waiting, and
        ``LockerStoppedError`` if the locker is or becomes stopped.
        """
        with self._mu:
            if self._stopped:
                raise LockerStoppedError()
            if not self._locked:
                self._locked = True
                return
            ready = threading.Event()
            self._queue.append(ready)

        deadline = None if timeout is None else time.monotonic() + timeout
        while True:
            wait: float | None = None
            if deadline is not None:
                wait = max(0.0, deadline - time.monotonic())
            if cancel is not None:
                wait = _POLL_INTERVAL if wait is None else min(wait, _POLL_INTERVAL)
            if ready.wait(wait):
                break

            timed_out = deadline is not None and time.monotonic() >= deadline
            cancelled = cancel is not None and cancel.is_set()
            if not (timed_out or cancelled):
                continue
            with self._mu:
                if not ready.is_set():
                    try:
                        self._queue.remove(ready)
                    except ValueError:
                        pass
                    if cancelled:
                        raise LockCancelledError()
                    raise TimeoutError("timed out waiting for the lock")
            # Our turn came just as the wait gave up: take it.
            break

        with self._mu:
            if self._stopped:
                raise LockerStoppedError()
            self._locked = True

    def try_lock(self) -> bool:
        """Take the lock if it is free; return whether it was taken."""
        with self._mu:
            if self._stopped:
                raise LockerStoppedError()
            if not self._locked:
                self._locked = True
                return True
            return False

    def unlock(self) -> None:
        """Release the lock, handing it to the next waiter if there is one."""
        with self._mu:
            if not self._locked:
                return
            self._locked = False

            if self._closing is not None:
                self._closing.set()
                return

            if not self._queue:
                return

            nxt = self._queue.popleft()
            self._locked = True
            nxt.set()

    def stop(self) -> None:
        """Stop the locker; every waiting caller fails with ``LockerStoppedError``."""
        self._do_stop(wait=False)

    def stop_and_wait(self) -> None:
        """Stop like ``stop``, then block until the current holder releases the lock."""
        self._do_stop(wait=True)

    def _do_stop(self, wait: bool) -> None:
        with self._mu:
            self._stopped = True
            for waiter in self._queue:
                waiter.set()
            self._queue.clear()

            if not wait or not self._locked:
                return

            if self._closing is None:
                self._closing = threading.Event()
            closing = self._closing

        closing.wait()

    @property
    def stopped(self) -> bool:
        """Whether the locker has been stopped."""
        with self._mu:
            return self._stopped

    @property
    def locked(self) -> bool:
        """Whether the lock is currently held."""
        with self._mu:
            return self._locked

    @property
    def queue_length(self) -> int:
        """Number of callers waiting for the lock."""
        with self._mu:
            return len(self._queue)
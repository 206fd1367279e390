"""A queue of delayed events and a processor that runs them when due.

Items are kept in order of their due time. While the queue holds at least
one item, the processor uses a single background thread to wait for the
next one and hand it to the execute callback.
"""

from __future__ import annotations

import functools
import threading
from datetime import datetime, timedelta
from typing import Callable, Generic, Hashable, Protocol, TypeVar

from francis.clock import FakeClock, RealClock


class Queueable(Protocol):
    """An item with a unique key and a due time."""

    @property
    def key(self) -> Hashable: ...

    @property
    def due_time(self) -> datetime: ...


T = TypeVar("T", bound=Queueable)


class ProcessorStoppedError(RuntimeError):
    """Raised when the processor is used after it was closed."""

    def __init__(self) -> None:
        super().__init__("processor is stopped")


class _Entry(Generic[T]):
    __slots__ = ("value", "index")

    def __init__(self, value: T):
        self.value = value
        self.index = -1


class DelayQueue(Generic[T]):
    """Priority queue of items ordered by due time, addressable by key.

    Not safe for concurrent use on its own.
    """

    def __init__(self) -> None:
        self._heap: list[_Entry[T]] = []
        self._items: dict[Hashable, _Entry[T]] = {}

    def __len__(self) -> int:
        return len(self._heap)

    def insert(self, item: T, replace: bool = False) -> None:
        """Add an item; an item with the same key is replaced only if ``replace``."""
        entry = self._items.get(item.key)
        if entry is not None:
            if replace:
                entry.value = item
                self._fix(entry.index)
            return

        entry = _Entry(item)
        entry.index = len(self._heap)
        self._heap.append(entry)
        self._up(entry.index)
        self._items[item.key] = entry

    def pop(self) -> T:
        """Remove and return the next item; raise IndexError if empty."""
        if not self._heap:
            raise IndexError("pop from an empty queue")
        entry = self._remove_at(0)
        del self._items[entry.value.key]
        return entry.value

    def peek(self) -> T | None:
        """Return the next item without removing it, or None if empty."""
        return self._heap[0].value if self._heap else None

    def remove(self, key: Hashable) -> None:
        """Remove the item with the given key, if present."""
        entry = self._items.pop(key, None)
        if entry is not None:
            self._remove_at(entry.index)

    def update(self, item: T) -> None:
        """Replace the item with the same key, if present."""
        entry = self._items.get(item.key)
        if entry is None:
            return
        entry.value = item
        self._fix(entry.index)

    def _less(self, i: int, j: int) -> bool:
        return self._heap[i].value.due_time < self._heap[j].value.due_time

    def _swap(self, i: int, j: int) -> None:
        heap = self._heap
        heap[i], heap[j] = heap[j], heap[i]
        heap[i].index = i
        heap[j].index = j

    def _up(self, j: int) -> None:
        while j > 0:
            parent = (j - 1) // 2
            if not self._less(j, parent):
                break
            self._swap(parent, j)
            j = parent

    def _down(self, start: int, size: int) -> bool:
        i = start
        while True:
            child = 2 * i + 1
            if child >= size:
                break
            right = child + 1
            if right < size and self._less(right, child):
                child = right
            if not self._less(child, i):
                break
            self._swap(i, child)
            i = child
        return i > start

    def _fix(self, i: int) -> None:
        if not self._down(i, len(self._heap)):
            self._up(i)

    def _remove_at(self, i: int) -> _Entry[T]:
        last = len(self._heap) - 1
        if last != i:
            self._swap(i, last)
            if not self._down(i, last):
                self._up(i)
        entry = self._heap.pop()
        entry.index = -1
        return entry


_IMMEDIATE = timedelta(microseconds=500)


class Processor(Generic[T]):
    """Runs queued items through ``execute_fn`` when they become due.

    ``execute_fn`` is called on a background thread.
    """

    def __init__(
        self,
        execute_fn: Callable[[T], None],
        clock: RealClock | FakeClock | None = None,
    ):
        self._execute_fn = execute_fn
        self._clock = clock if clock is not None else RealClock()
        self._queue: DelayQueue[T] = DelayQueue()
        self._cond = threading.Condition()
        self._stopped = False
        self._running = False
        self._reset = False
        self._thread: threading.Thread | None = None

    def __len__(self) -> int:
        with self._cond:
            return len(self._queue)

    def __enter__(self) -> Processor[T]:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def enqueue(self, *items: T) -> None:
        """Add items, replacing any queued item with the same key."""
        with self._cond:
            if self._stopped:
                raise ProcessorStoppedError()
            for item in items:
                head = self._queue.peek()
                is_first = head is not None and head.key == item.key
                self._queue.insert(item, replace=True)
                is_first = is_first or self._queue.peek() is item
                self._process(is_first)

    def dequeue(self, key: Hashable) -> None:
        """Remove the item with the given key."""
        with self._cond:
            if self._stopped:
                raise ProcessorStoppedError()
            head = self._queue.peek()
            self._queue.remove(key)
            if head is not None and head.key == key:
                self._process(True)

    def close(self) -> None:
        """Stop the processor and wait for its background thread to finish."""
        with self._cond:
            self._stopped = True
            self._cond.notify_all()
            thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()

    def _process(self, is_next: bool) -> None:
        # Caller holds the lock.
        if self._running:
            if is_next:
                self._reset = True
                self._cond.notify_all()
            return
        self._running = True
        self._reset = False
        self._thread = threading.Thread(
            target=self._loop, name="eventqueue-processor", daemon=True
        )
        self._thread.start()

    def _on_timer(self, fired: threading.Event) -> None:
        with self._cond:
            fired.set()
            self._cond.notify_all()

    def _loop(self) -> None:
        while True:
            with self._cond:
                item = None if self._stopped else self._queue.peek()
                if item is None:
                    self._running = False
                    return
                self._reset = False

            delay = item.due_time - self._clock.now()
            if delay < _IMMEDIATE:
                self._execute(item)
                continue

            fired = threading.Event()
            timer = self._clock.call_later(delay, functools.partial(self._on_timer, fired))
            with self._cond:
                self._cond.wait_for(
                    lambda: fired.is_set() or self._reset or self._stopped
                )
                interrupted = self._reset or self._stopped
            if interrupted:
                timer.cancel()
                continue
            self._execute(item)

    def _execute(self, item: T) -> None:
        with self._cond:
            # The head may have changed since it was peeked.
            if self._queue.peek() is not item:
                return
            self._queue.pop()
        self._execute_fn(item)
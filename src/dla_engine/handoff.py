"""
Ordered hand-off channel from the engine thread to a consumer.

Single producer (the engine), single consumer (a renderer or poller). Items
come out in exactly the order they were put in. A consumer may block on
``take`` or poll with ``try_take``/``drain``; closing the channel wakes any
blocked consumer, which then sees ``None``. No exception ever crosses the
channel: the consumer only receives coordinates or nothing.
"""

from __future__ import annotations

import threading
from collections import deque
from typing import Generic, List, Optional, TypeVar

T = TypeVar("T")

# granularity of the producer's wait for free space, so cancellation is noticed
_SPACE_POLL_SECONDS = 0.05


class HandOffQueue(Generic[T]):
    def __init__(self, maxsize: int = 0) -> None:
        if maxsize < 0:
            raise ValueError(f"maxsize must be >= 0, got {maxsize}")
        self.maxsize = maxsize
        self._items: deque[T] = deque()
        self._cond = threading.Condition(threading.Lock())
        self._closed = False

    def __len__(self) -> int:
        with self._cond:
            return len(self._items)

    @property
    def closed(self) -> bool:
        with self._cond:
            return self._closed

    def _full(self) -> bool:
        return self.maxsize > 0 and len(self._items) >= self.maxsize

    # ------------------------------------------------------------------ producer
    def wait_for_space(self, cancelled=None) -> bool:
        """
        Block until an item can be put without exceeding ``maxsize``.

        Returns False if ``cancelled`` (any object with ``is_set()``) fires or
        the channel is closed while waiting. With a single producer, space
        found here is still there at the next ``put``.
        """
        with self._cond:
            while self._full() and not self._closed:
                if cancelled is not None and cancelled.is_set():
                    return False
                self._cond.wait(_SPACE_POLL_SECONDS)
            return not self._closed

    def put(self, item: T) -> None:
        """Append an item; never blocks, so it is safe inside a critical section."""
        with self._cond:
            if self._closed:
                return
            self._items.append(item)
            self._cond.notify_all()

    # ------------------------------------------------------------------ consumer
    def take(self, timeout: Optional[float] = None) -> Optional[T]:
        """
        Remove and return the oldest item, waiting up to ``timeout`` seconds.

        Returns None on timeout or once the channel is closed and empty.
        """
        with self._cond:
            if not self._cond.wait_for(lambda: self._items or self._closed, timeout):
                return None
            if not self._items:
                return None
            item = self._items.popleft()
            self._cond.notify_all()
            return item

    def try_take(self) -> Optional[T]:
        with self._cond:
            if not self._items:
                return None
            item = self._items.popleft()
            self._cond.notify_all()
            return item

    def drain(self) -> List[T]:
        """Remove and return everything currently queued, oldest first."""
        with self._cond:
            items = list(self._items)
            self._items.clear()
            self._cond.notify_all()
            return items

    # ------------------------------------------------------------------ lifecycle
    def close(self) -> None:
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def reopen(self) -> None:
        with self._cond:
            self._closed = False

    def clear(self) -> None:
        with self._cond:
            self._items.clear()
            self._cond.notify_all()


__all__ = ["HandOffQueue"]

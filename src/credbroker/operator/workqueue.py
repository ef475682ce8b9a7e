"""
credbroker.operator.workqueue

Asyncio work queue with de-duplication and rate-limited requeue.

Responsibilities:
- Collapse repeated adds of the same key into one pending item.
- Never hand the same key to two workers at once; a key added while it is being
  processed is queued again once `done` is called.
- Requeue failed keys after an exponential per-key delay, reset by `forget`.
"""

from __future__ import annotations

import asyncio
from collections.abc import Hashable
from typing import Generic, TypeVar

K = TypeVar("K", bound=Hashable)


class WorkQueue(Generic[K]):
    def __init__(self, *, base_delay: float = 0.5, max_delay: float = 300.0) -> None:
        self._queue: asyncio.Queue[K] = asyncio.Queue()
        self._dirty: set[K] = set()
        self._processing: set[K] = set()
        self._failures: dict[K, int] = {}
        self._timers: set[asyncio.TimerHandle] = set()
        self._base_delay = base_delay
        self._max_delay = max_delay
        self._shutting_down = False

    def __len__(self) -> int:
        return len(self._dirty)

    def add(self, key: K) -> None:
        if self._shutting_down or key in self._dirty:
            return
        self._dirty.add(key)
        if key not in self._processing:
            self._queue.put_nowait(key)

    async def get(self) -> K:
        key = await self._queue.get()
        self._dirty.discard(key)
        self._processing.add(key)
        return key

    def done(self, key: K) -> None:
        self._processing.discard(key)
        if key in self._dirty:
            self._queue.put_nowait(key)

    def add_after(self, key: K, delay: float) -> None:
        if self._shutting_down:
            return
        if delay <= 0:
            self.add(key)
            return

        loop = asyncio.get_running_loop()
        handle: asyncio.TimerHandle

        def fire() -> None:
            self._timers.discard(handle)
            self.add(key)

        handle = loop.call_later(delay, fire)
        self._timers.add(handle)

    def requeue(self, key: K) -> float:
        """
        Schedule `key` again after its next backoff delay; returns the delay.
        """

        failures = self._failures.get(key, 0)
        self._failures[key] = failures + 1
        # base * 2**n overflows a float for n in the low thousands.
        delay = min(self._max_delay, self._base_delay * 2 ** min(failures, 64))
        self.add_after(key, delay)
        return delay

    def failures(self, key: K) -> int:
        return self._failures.get(key, 0)

    def forget(self, key: K) -> None:
        self._failures.pop(key, None)

    def shutdown(self) -> None:
        self._shutting_down = True
        for handle in self._timers:
            handle.cancel()
        self._timers.clear()


# --- Module Notes -----------------------------------------------------------
# Keys are (namespace, name) pairs in the operator. The queue itself is in-memory
# only: a restart loses pending requeues, and the startup sweep plus the initial
# watch listing recover them.

# statekit/runtime/scheduler.py
# Copyright (c) 2024 Brad Edwards
# Licensed under the MIT License - see LICENSE file for details

"""
Pluggable scheduling of deferred callbacks.

Timers, delayed events and the persistence debounce all go through a
:class:`Scheduler`, so a machine can run against real threads, an asyncio
loop, or a simulated clock in tests.
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import threading
from typing import Any, Callable, List, Optional, Protocol, Tuple, runtime_checkable


@runtime_checkable
class Scheduler(Protocol):
    def after(self, delay: float, fn: Callable[[], None]) -> Any:
        """
        Run ``fn`` once after ``delay`` seconds.

        :return: An opaque handle accepted by :meth:`cancel`.
        """
        ...

    def cancel(self, handle: Any) -> None:
        """Cancel a pending callback. Cancelling a fired or unknown handle is a no-op."""
        ...


class ThreadingScheduler:
    """
    Scheduler backed by daemon ``threading.Timer`` threads. Callbacks run on
    the timer thread, not on the thread that scheduled them.
    """

    def after(self, delay: float, fn: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(max(delay, 0.0), fn)
        timer.daemon = True
        timer.start()
        return timer

    def cancel(self, handle: threading.Timer) -> None:
        handle.cancel()


class AsyncioScheduler:
    """
    Scheduler backed by an asyncio event loop. Callbacks run on the loop's
    thread, so they never overlap with other code running on that loop.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        """
        :param loop: Loop to schedule on; defaults to the running loop.
        """
        self._loop = loop or asyncio.get_running_loop()

    def after(self, delay: float, fn: Callable[[], None]) -> asyncio.TimerHandle:
        return self._loop.call_later(max(delay, 0.0), fn)

    def cancel(self, handle: asyncio.TimerHandle) -> None:
        handle.cancel()


class _ManualHandle:
    __slots__ = ("due", "seq", "fn", "cancelled")

    def __init__(self, due: float, seq: int, fn: Callable[[], None]) -> None:
        self.due = due
        self.seq = seq
        self.fn = fn
        self.cancelled = False

    def __lt__(self, other: "_ManualHandle") -> bool:
        return (self.due, self.seq) < (other.due, other.seq)


class ManualScheduler:
    """
    Deterministic scheduler driven by a simulated clock. Nothing fires until
    :meth:`advance` is called; callbacks then run synchronously in due-time
    order (ties in scheduling order).

    Example:
        scheduler = ManualScheduler()
        scheduler.after(0.1, callback)
        scheduler.advance(0.1)  # callback runs here
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = start
        self._queue: List[_ManualHandle] = []
        self._counter = itertools.count()

    @property
    def now(self) -> float:
        return self._now

    @property
    def pending(self) -> int:
        """Number of scheduled callbacks that have not fired or been cancelled."""
        return sum(1 for h in self._queue if not h.cancelled)

    def after(self, delay: float, fn: Callable[[], None]) -> _ManualHandle:
        handle = _ManualHandle(self._now + max(delay, 0.0), next(self._counter), fn)
        heapq.heappush(self._queue, handle)
        return handle

    def cancel(self, handle: _ManualHandle) -> None:
        handle.cancelled = True

    def advance(self, seconds: float) -> int:
        """
        Move the clock forward, firing every callback that falls due, including
        ones scheduled by callbacks during the advance.

        :return: Number of callbacks run.
        """
        target = self._now + seconds
        fired = 0
        while self._queue and self._queue[0].due <= target:
            handle = heapq.heappop(self._queue)
            if handle.cancelled:
                continue
            self._now = handle.due
            handle.fn()
            fired += 1
        self._now = target
        return fired

    def run_all(self, limit: int = 10000) -> int:
        """Fire everything pending, advancing the clock as needed."""
        fired = 0
        while fired < limit:
            live: Tuple[_ManualHandle, ...] = tuple(h for h in self._queue if not h.cancelled)
            if not live:
                break
            fired += self.advance(max(min(h.due for h in live) - self._now, 0.0))
        return fired

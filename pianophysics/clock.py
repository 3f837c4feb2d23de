# clock.py — schedulable monotonic time
# --------------------------------------
# The scheduler and the gain automation only need three things from the
# audio runtime: "now", "run this at absolute time T" and "cancel that".
#   • ManualClock  : virtual time advanced explicitly (offline render, tests)
#   • AsyncioClock : wraps a running event loop (loop.time() is monotonic)
# Cancellation is synchronous: once `cancel()` returns the callback will
# never run.
# --------------------------------------
from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional, Protocol

__all__ = ["Clock", "ScheduleHandle", "ManualClock", "AsyncioClock"]

_LOGGER = logging.getLogger("pianophysics.clock")


@dataclass(slots=True, eq=False)
class ScheduleHandle:
    """Token for one scheduled callback."""

    when: float
    callback: Callable[[], Any]
    cancelled: bool = False
    fired: bool = False
    _on_cancel: Optional[Callable[[], None]] = field(default=None, repr=False)

    @property
    def pending(self) -> bool:
        return not (self.cancelled or self.fired)

    def cancel(self) -> None:
        if not self.pending:
            return
        self.cancelled = True
        if self._on_cancel is not None:
            self._on_cancel()


class Clock(Protocol):
    def now(self) -> float: ...

    def call_at(self, when: float, callback: Callable[[], Any]) -> ScheduleHandle: ...


class ManualClock:
    """Virtual clock; callbacks run inside `advance` / `advance_to`.

    Due callbacks run in time order (FIFO for equal times) with `now()`
    set to their scheduled time, so a callback scheduling another one
    that is already due still runs within the same advance.
    """

    def __init__(self, start: float = 0.0):
        self._now = float(start)
        self._queue: list[tuple[float, int, ScheduleHandle]] = []
        self._seq = itertools.count()
        self._live = 0

    def now(self) -> float:
        return self._now

    def call_at(self, when: float, callback: Callable[[], Any]) -> ScheduleHandle:
        handle = ScheduleHandle(when=max(float(when), self._now), callback=callback,
                                _on_cancel=self._cancelled)
        heapq.heappush(self._queue, (handle.when, next(self._seq), handle))
        self._live += 1
        return handle

    def call_later(self, delay: float, callback: Callable[[], Any]) -> ScheduleHandle:
        return self.call_at(self._now + max(0.0, delay), callback)

    @property
    def pending_count(self) -> int:
        return self._live

    @property
    def queued(self) -> int:
        """Heap entries, cancelled ones not yet compacted included."""
        return len(self._queue)

    def _cancelled(self) -> None:
        self._live -= 1
        # dead entries never outnumber live ones
        if len(self._queue) - self._live > max(self._live, 8):
            self._queue[:] = [entry for entry in self._queue if entry[2].pending]
            heapq.heapify(self._queue)

    def advance(self, dt: float) -> int:
        return self.advance_to(self._now + max(0.0, dt))

    def advance_to(self, t: float) -> int:
        """Run every callback due by *t*; returns how many ran."""
        ran = 0
        while self._queue and self._queue[0][0] <= t:
            when, _, handle = heapq.heappop(self._queue)
            if not handle.pending:
                continue
            self._now = max(self._now, when)
            handle.fired = True
            self._live -= 1
            handle.callback()
            ran += 1
        self._now = max(self._now, t)
        return ran


class AsyncioClock:
    """Real-time clock backed by an asyncio event loop."""

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop if loop is not None else asyncio.get_running_loop()

    def now(self) -> float:
        return self._loop.time()

    def call_at(self, when: float, callback: Callable[[], Any]) -> ScheduleHandle:
        handle = ScheduleHandle(when=when, callback=callback)

        def _run() -> None:
            if not handle.pending:
                return
            handle.fired = True
            try:
                callback()
            except Exception:
                _LOGGER.exception("Scheduled callback at %.3f failed", when)

        timer = self._loop.call_at(when, _run)
        handle._on_cancel = timer.cancel
        return handle

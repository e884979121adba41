"""Single-threaded cooperative timeline for the dashboard.

Every event source (render cycle, decoded input, app background refreshes)
runs as a callback on one timeline so handlers never overlap. Other threads
(GPIO callbacks, keyboard reader, HTTP workers, signal handlers) hand work
over with ``post()``; blocking I/O runs on a small worker pool via
``submit()`` and its completion is observed back on the timeline with
``when_done()``.

Times are monotonic milliseconds. The clock is injectable so tests can drive
timers without sleeping:

    tl = Timeline(clock=lambda: now_ms)
    tl.call_later(300, fire)
    tl.run_due()
"""
from __future__ import annotations

import heapq
import itertools
import logging
import queue
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, List, Optional, Tuple

log = logging.getLogger(__name__)


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


class Timer:
    """Handle for a scheduled callback. Cancelling twice is harmless."""

    __slots__ = ("deadline", "seq", "callback", "args", "interval", "cancelled")

    def __init__(self, deadline: float, seq: int, callback: Callable[..., Any], args: Tuple[Any, ...],
                 interval: Optional[float] = None) -> None:
        self.deadline = deadline
        self.seq = seq
        self.callback = callback
        self.args = args
        self.interval = interval
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True

    def __lt__(self, other: "Timer") -> bool:
        return (self.deadline, self.seq) < (other.deadline, other.seq)

    def __repr__(self) -> str:
        state = "cancelled" if self.cancelled else f"at={self.deadline:.1f}"
        name = getattr(self.callback, "__qualname__", repr(self.callback))
        return f"<Timer {name} {state}>"


class Timeline:
    def __init__(self, clock: Optional[Callable[[], float]] = None, max_workers: int = 2) -> None:
        self._clock = clock or monotonic_ms
        self._heap: List[Timer] = []
        self._seq = itertools.count()
        self._posted: "queue.Queue[Tuple[Callable[..., Any], Tuple[Any, ...]]]" = queue.Queue()
        self._running = False
        self._max_workers = max_workers
        self._executor: Optional[ThreadPoolExecutor] = None

    # Scheduling ------------------------------------------------------------
    def now_ms(self) -> float:
        return self._clock()

    def call_at(self, when_ms: float, callback: Callable[..., Any], *args: Any) -> Timer:
        timer = Timer(when_ms, next(self._seq), callback, args)
        heapq.heappush(self._heap, timer)
        return timer

    def call_later(self, delay_ms: float, callback: Callable[..., Any], *args: Any) -> Timer:
        return self.call_at(self.now_ms() + max(0.0, delay_ms), callback, *args)

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> Timer:
        return self.call_at(self.now_ms(), callback, *args)

    def call_every(self, interval_ms: float, callback: Callable[..., Any], *args: Any) -> Timer:
        """Repeat ``callback`` every ``interval_ms``; the first run is one interval from now."""
        if interval_ms <= 0:
            raise ValueError("interval_ms must be positive")
        timer = Timer(self.now_ms() + interval_ms, next(self._seq), callback, args, interval=interval_ms)
        heapq.heappush(self._heap, timer)
        return timer

    def post(self, callback: Callable[..., Any], *args: Any) -> None:
        """Thread-safe: run ``callback(*args)`` on the timeline at the next pass."""
        self._posted.put((callback, args))

    # Introspection ---------------------------------------------------------
    def next_deadline(self) -> Optional[float]:
        self._drop_cancelled()
        if not self._posted.empty():
            return self.now_ms()
        return self._heap[0].deadline if self._heap else None

    def pending(self) -> int:
        return sum(1 for t in self._heap if not t.cancelled) + self._posted.qsize()

    # Running ---------------------------------------------------------------
    def run_due(self) -> int:
        """Run posted callbacks and every timer that is due now.

        Timers created while this pass runs (even ``call_soon``) wait for the
        next pass, so a self-rescheduling callback cannot starve posted input.
        """
        ran = 0
        while True:
            try:
                callback, args = self._posted.get_nowait()
            except queue.Empty:
                break
            self._invoke(callback, args)
            ran += 1

        now = self.now_ms()
        limit = next(self._seq)
        while self._heap:
            timer = self._heap[0]
            if timer.deadline > now or timer.seq > limit:
                break
            heapq.heappop(self._heap)
            if timer.cancelled:
                continue
            if timer.interval is not None:
                # Re-arm from the previous deadline so periodic timers do not drift
                nxt = timer.deadline + timer.interval
                if nxt <= now:
                    nxt = now + timer.interval
                timer.deadline = nxt
                timer.seq = next(self._seq)
                heapq.heappush(self._heap, timer)
            self._invoke(timer.callback, timer.args)
            ran += 1
        return ran

    def run_forever(self) -> None:
        self._running = True
        try:
            while self._running:
                self.run_due()
                if not self._running:
                    break
                deadline = self.next_deadline()
                timeout = None if deadline is None else max(0.0, (deadline - self.now_ms()) / 1000.0)
                if timeout == 0.0:
                    continue
                # Block until the next timer is due or another thread posts work
                try:
                    item = self._posted.get(timeout=timeout)
                except queue.Empty:
                    continue
                self._invoke(*item)
        finally:
            self._running = False

    def stop(self) -> None:
        self._running = False
        # Wake run_forever if it is blocked waiting for posted work
        self.post(lambda: None)

    @property
    def running(self) -> bool:
        return self._running

    # Worker threads --------------------------------------------------------
    def submit(self, fn: Callable[..., Any], *args: Any) -> "Future[Any]":
        if self._executor is None:
            self._executor = ThreadPoolExecutor(max_workers=self._max_workers, thread_name_prefix="timeline-io")
        return self._executor.submit(fn, *args)

    def when_done(self, future: "Future[Any]", callback: Callable[["Future[Any]"], Any]) -> None:
        """Run ``callback(future)`` on the timeline once ``future`` resolves."""
        future.add_done_callback(lambda fut: self.post(callback, fut))

    def close(self) -> None:
        for timer in self._heap:
            timer.cancel()
        self._heap.clear()
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None

    # Internal --------------------------------------------------------------
    def _drop_cancelled(self) -> None:
        while self._heap and self._heap[0].cancelled:
            heapq.heappop(self._heap)

    def _invoke(self, callback: Callable[..., Any], args: Tuple[Any, ...]) -> None:
        try:
            callback(*args)
        except Exception:  # noqa: BLE001
            log.exception("unhandled error in timeline callback %r", callback)


__all__ = ["Timeline", "Timer", "monotonic_ms"]

"""Frame loop: one display sync cycle drives one render tick.

    sync() -> after_sync hook -> clear, render current app, overlay
           -> call_soon(sync) -> ...

The next sync is scheduled on the timeline instead of being called from the
hook, so the stack never grows and posted input runs between frames. Frame
pacing lives in the display's sync(). A cycle that raises (panel push,
ASCII dump, clear, overlay) is logged once per failure streak and the loop
goes on with the next cycle.
"""
from __future__ import annotations

import logging
from typing import Optional, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from matrix_display import MatrixDisplay
    from scheduler import AppScheduler
    from timeline import Timeline, Timer

log = logging.getLogger(__name__)


class FrameLoop:
    def __init__(self, display: "MatrixDisplay", scheduler: "AppScheduler", timeline: "Timeline") -> None:
        self.display = display
        self.scheduler = scheduler
        self.timeline = timeline
        self.frames = 0
        self._running = False
        self._hooked = False
        self._next_sync: Optional["Timer"] = None
        self._sync_failures = 0

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            return
        if not self._hooked:
            self.display.after_sync(self._after_sync)
            self._hooked = True
        self._running = True
        self._next_sync = self.timeline.call_soon(self._sync)

    def stop(self) -> None:
        self._running = False
        if self._next_sync is not None:
            self._next_sync.cancel()
            self._next_sync = None

    def _sync(self) -> None:
        self._next_sync = None
        if not self._running:
            return
        try:
            self.display.sync()
        except Exception:  # noqa: BLE001
            self._sync_failures += 1
            if self._sync_failures == 1:
                log.exception("display sync failed")
        else:
            if self._sync_failures:
                log.info("display sync recovered after %d failed frame(s)", self._sync_failures)
                self._sync_failures = 0
        # A failed cycle never reached the hook that queues the next one
        if self._running and self._next_sync is None and not self.scheduler.quitting:
            self._next_sync = self.timeline.call_soon(self._sync)

    def _after_sync(self, delta_ms: float, now_ms: float) -> None:
        if not self._running or self.scheduler.quitting:
            return
        self.frames += 1
        self.display.clear()
        self.scheduler.render_tick()
        self.scheduler.render_overlay(self.timeline.now_ms())
        self._next_sync = self.timeline.call_soon(self._sync)


__all__ = ["FrameLoop"]

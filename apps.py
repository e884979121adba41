"""Base class for dashboard apps.

An app owns one screen: ``render()`` draws its cached state into the shared
framebuffer once per frame and must never block on network or disk. Slow
work runs in ``on_background_tick`` / lifecycle hooks, usually through
``fetch_async`` which runs the blocking call on a worker thread and applies
the result back on the timeline.

Optional hooks are plain ``None`` on the base class; subclasses define the
ones they need and the scheduler checks for them at dispatch time:

    initialize()          once at startup, before the first frame
    on_activate()         app became current (including the first app)
    on_deactivate()       app is about to stop being current
    on_background_tick()  app-owned periodic timer (background_interval_ms)
    on_exit()             once during shutdown; may return a Future to wait on
    on_single_press() ... on_rotate_right()   gesture handlers
"""
from __future__ import annotations

import logging
from concurrent.futures import Future
from typing import Any, Callable, Optional, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from matrix_display import MatrixDisplay
    from timeline import Timeline, Timer

log = logging.getLogger(__name__)

Hook = Optional[Callable[[], Any]]


class App:
    name: str = ""
    # Period of the background timer; None means the app has no background work
    background_interval_ms: Optional[float] = None

    initialize: Hook = None
    on_activate: Hook = None
    on_deactivate: Hook = None
    on_background_tick: Hook = None
    on_exit: Hook = None

    on_single_press: Hook = None
    on_double_press: Hook = None
    on_triple_press: Hook = None
    on_long_press: Hook = None
    on_rotate_left: Hook = None
    on_rotate_right: Hook = None

    def __init__(self, display: "MatrixDisplay") -> None:
        self.display = display
        if not self.name:
            self.name = type(self).__name__
        self.timeline: Optional["Timeline"] = None
        self.background_timer: Optional["Timer"] = None
        self._capture_default_press = False
        self._on_capture_change: Optional[Callable[["App"], None]] = None
        self._fetch_in_flight = False

    def render(self) -> None:
        raise NotImplementedError

    # Scheduler wiring ------------------------------------------------------
    def bind(self, timeline: "Timeline", on_capture_change: Optional[Callable[["App"], None]] = None) -> None:
        self.timeline = timeline
        self._on_capture_change = on_capture_change

    # Capture of the default single press ----------------------------------
    @property
    def capture_default_press(self) -> bool:
        return self._capture_default_press

    @capture_default_press.setter
    def capture_default_press(self, value: bool) -> None:
        value = bool(value)
        if value == self._capture_default_press:
            return
        self._capture_default_press = value
        if self._on_capture_change is not None:
            self._on_capture_change(self)

    def toggle_capture_default_press(self) -> bool:
        self.capture_default_press = not self._capture_default_press
        return self._capture_default_press

    # Background timer ------------------------------------------------------
    def start_background(self, interval_ms: Optional[float] = None) -> bool:
        """(Re)arm the background timer. Returns False when there is nothing to arm."""
        if interval_ms is not None:
            self.background_interval_ms = interval_ms
        self.cancel_background()
        if self.timeline is None or self.on_background_tick is None or not self.background_interval_ms:
            return False
        self.background_timer = self.timeline.call_every(self.background_interval_ms, self._background_tick)
        return True

    def cancel_background(self) -> None:
        if self.background_timer is not None:
            self.background_timer.cancel()
            self.background_timer = None

    def _background_tick(self) -> None:
        hook = self.on_background_tick
        if hook is None:
            return
        try:
            hook()
        except Exception:  # noqa: BLE001
            log.exception("background tick failed for app %s", self.name)

    # Blocking work off the timeline ---------------------------------------
    def fetch_async(self, fn: Callable[..., Any], *args: Any, on_result: Callable[[Any], None]) -> Optional["Future[Any]"]:
        """Run ``fn(*args)`` on a worker; ``on_result(value)`` runs later on the timeline.

        Skipped (returns None) while a previous fetch of this app is still running.
        """
        if self.timeline is None:
            raise RuntimeError(f"app {self.name} is not bound to a timeline")
        if self._fetch_in_flight:
            return None
        self._fetch_in_flight = True
        future = self.timeline.submit(fn, *args)

        def _done(fut: "Future[Any]") -> None:
            self._fetch_in_flight = False
            if fut.cancelled():
                return
            exc = fut.exception()
            if exc is not None:
                log.warning("fetch failed for app %s: %s", self.name, exc)
                return
            try:
                on_result(fut.result())
            except Exception:  # noqa: BLE001
                log.exception("applying fetch result failed for app %s", self.name)

        self.timeline.when_done(future, _done)
        return future

    @property
    def fetch_in_flight(self) -> bool:
        return self._fetch_in_flight

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name!r}>"


__all__ = ["App"]

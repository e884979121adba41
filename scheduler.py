"""App scheduler: the active-app index, gesture routing and app lifecycles.

Routing rules:
- A single press switches to the next app unless the current app captures
  the default press, in which case the app's own handler gets it.
- Every other gesture goes to the current app's handler; gestures without a
  handler are dropped.
- Handlers may return a Future; it is not waited for, a failure is logged
  once it resolves.

Nothing raised by app code escapes the scheduler: render, lifecycle and
gesture failures are logged with the app name and the dashboard carries on.
"""
from __future__ import annotations

import logging
from concurrent.futures import Future
from typing import Any, Callable, Dict, List, NamedTuple, Optional, Sequence, TYPE_CHECKING

from apps import App
from gestures import Gesture

if TYPE_CHECKING:  # pragma: no cover
    from matrix_display import MatrixDisplay
    from timeline import Timeline

log = logging.getLogger(__name__)

INDICATOR_MS = 2500.0
INDICATOR_SIZE = 4
CAPTURED_COLOR = (0, 200, 0)
DEFAULT_COLOR = (200, 0, 0)


class NoAppsError(RuntimeError):
    """Raised when the scheduler is started without any enabled app."""


class AppSlot(NamedTuple):
    app: App
    index: int


class AppScheduler:
    def __init__(
        self,
        timeline: "Timeline",
        apps: Sequence[App],
        display: Optional["MatrixDisplay"] = None,
        indicator_ms: float = INDICATOR_MS,
        hook_timeout_s: float = 10.0,
        on_quit: Optional[Callable[[], None]] = None,
    ) -> None:
        if not apps:
            raise NoAppsError("no apps enabled; enable at least one app in the config")
        self.timeline = timeline
        self.display = display
        self.indicator_ms = indicator_ms
        self.hook_timeout_s = hook_timeout_s
        self.on_quit = on_quit
        self.slots: List[AppSlot] = [AppSlot(app, i) for i, app in enumerate(apps)]
        self._current_index = 0
        self._quitting = False
        self._indicator_app: Optional[App] = None
        self._indicator_until = 0.0
        self._render_failures: Dict[int, int] = {}
        self._info: Dict[str, Any] = {}
        self._publish_info()
        for slot in self.slots:
            slot.app.bind(timeline, self._capture_changed)

    # State -----------------------------------------------------------------
    @property
    def current_index(self) -> int:
        return self._current_index

    @property
    def current_app(self) -> App:
        return self.slots[self._current_index].app

    @property
    def app_count(self) -> int:
        return len(self.slots)

    @property
    def quitting(self) -> bool:
        return self._quitting

    def get_current_app_info(self) -> Dict[str, Any]:
        """Copy of the info published by the last switch; safe to call from any thread."""
        return dict(self._info)

    def _publish_info(self) -> None:
        # Replaced as a whole on the timeline thread so readers never see a half-updated switch
        self._info = {
            "current_index": self._current_index,
            "app_count": self.app_count,
            "app_name": self.current_app.name,
        }

    # Lifecycle -------------------------------------------------------------
    def initialize_all(self) -> None:
        for slot in self.slots:
            self._call_hook(slot.app, "initialize", wait=True)
        for slot in self.slots:
            slot.app.start_background()
        log.info("initialized %d app(s); starting with %s", self.app_count, self.current_app.name)
        self._call_hook(self.current_app, "on_activate")

    def switch_to_next(self) -> None:
        previous = self.current_app
        self._call_hook(previous, "on_deactivate")
        self._current_index = (self._current_index + 1) % self.app_count
        self._publish_info()
        current = self.current_app
        log.debug("switched %s -> %s (%d/%d)", previous.name, current.name, self._current_index + 1, self.app_count)
        self._call_hook(current, "on_activate")

    def request_quit(self) -> None:
        if self._quitting:
            return
        self._quitting = True
        log.info("shutting down %d app(s)", self.app_count)
        for slot in self.slots:
            slot.app.cancel_background()
            self._call_hook(slot.app, "on_exit", wait=True)
        if self.display is not None:
            try:
                self.display.clear()
                self.display.sync(notify=False)
            except Exception as e:  # noqa: BLE001
                log.warning("error clearing matrix: %s", e)
        if self.on_quit is not None:
            self.on_quit()

    # Gestures --------------------------------------------------------------
    def dispatch(self, gesture: Gesture) -> None:
        if self._quitting:
            return
        app = self.current_app
        if gesture is Gesture.SINGLE_PRESS and not app.capture_default_press:
            self.switch_to_next()
            return
        handler = getattr(app, gesture.handler_name, None)
        if handler is None:
            log.debug("%s dropped by %s (no handler)", gesture.value, app.name)
            return
        self._call_hook(app, gesture.handler_name)

    # Rendering -------------------------------------------------------------
    def render_tick(self) -> None:
        if self._quitting:
            return
        index = self._current_index
        app = self.current_app
        try:
            app.render()
        except Exception:  # noqa: BLE001
            count = self._render_failures.get(index, 0) + 1
            self._render_failures[index] = count
            if count == 1:
                log.exception("render failed for app %s", app.name)
            return
        failed = self._render_failures.pop(index, 0)
        if failed:
            log.info("app %s rendering again after %d failed frame(s)", app.name, failed)

    def indicator_visible(self, now_ms: float) -> bool:
        return self._indicator_app is self.current_app and now_ms < self._indicator_until

    def render_overlay(self, now_ms: float) -> None:
        """Draw the capture indicator in the bottom-left corner while it is visible."""
        if self.display is None or not self.indicator_visible(now_ms):
            return
        app = self.current_app
        size = INDICATOR_SIZE
        y = self.display.height() - size
        if app.capture_default_press:
            self.display.draw_rect(0, y, size, size, CAPTURED_COLOR, filled=True)
        else:
            self.display.draw_rect(0, y, size, size, DEFAULT_COLOR)

    def _capture_changed(self, app: App) -> None:
        log.info("app %s %s the default press", app.name, "captures" if app.capture_default_press else "releases")
        self._indicator_app = app
        self._indicator_until = self.timeline.now_ms() + self.indicator_ms

    # Hook invocation -------------------------------------------------------
    def _call_hook(self, app: App, name: str, wait: bool = False) -> None:
        hook = getattr(app, name, None)
        if hook is None:
            return
        try:
            result = hook()
        except Exception:  # noqa: BLE001
            log.exception("%s failed for app %s", name, app.name)
            return
        if not isinstance(result, Future):
            return
        if wait:
            try:
                result.result(timeout=self.hook_timeout_s)
            except Exception:  # noqa: BLE001
                log.exception("%s failed for app %s", name, app.name)
        else:
            self.timeline.when_done(result, lambda fut: self._report_future(app, name, fut))

    def _report_future(self, app: App, name: str, fut: "Future[Any]") -> None:
        if fut.cancelled():
            return
        exc = fut.exception()
        if exc is not None:
            log.error("%s failed for app %s: %r", name, app.name, exc)


__all__ = ["AppScheduler", "AppSlot", "NoAppsError", "INDICATOR_MS"]

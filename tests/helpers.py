"""Shared fixtures: a manual clock, timeline stepping and recording apps."""
from __future__ import annotations

from concurrent.futures import Future
from typing import Any, Callable, List, Optional, Tuple

from apps import App
from gestures import GestureConfig, GestureDecoder, InputEvent, KeyEdge
from matrix_display import MatrixDisplay
from timeline import Timeline


class ManualClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, ms: float) -> None:
        self.now += ms


class InlineTimeline(Timeline):
    """Timeline whose worker jobs run synchronously inside submit()."""

    def submit(self, fn: Callable[..., Any], *args: Any) -> "Future[Any]":
        fut: "Future[Any]" = Future()
        try:
            fut.set_result(fn(*args))
        except Exception as e:  # noqa: BLE001
            fut.set_exception(e)
        return fut


def advance(timeline: Timeline, clock: ManualClock, ms: float) -> None:
    """Move the clock forward by ``ms``, firing every timer at its own deadline."""
    target = clock.now + ms
    while True:
        deadline = timeline.next_deadline()
        if deadline is None or deadline > target:
            break
        clock.now = max(clock.now, deadline)
        timeline.run_due()
    clock.now = target
    timeline.run_due()


def make_display(clock: ManualClock, cols: int = 64, rows: int = 32) -> MatrixDisplay:
    # Pacing sleeps move the manual clock instead of blocking
    return MatrixDisplay(cols=cols, rows=rows, clock=clock, sleep=lambda s: clock.advance(s * 1000.0))


class DecoderHarness:
    """Gesture decoder on a manual clock; gestures are collected in ``gestures``."""

    def __init__(self, config: Optional[GestureConfig] = None) -> None:
        self.clock = ManualClock()
        self.timeline = Timeline(clock=self.clock)
        self.gestures: List[Any] = []
        self.decoder = GestureDecoder(self.timeline, self.gestures.append, config)

    def at(self, t: float) -> None:
        advance(self.timeline, self.clock, t - self.clock.now)

    def down(self, t: float, key: str = "KEY_SPACE") -> None:
        self.at(t)
        self.decoder.feed(InputEvent(key, KeyEdge.DOWN, t))

    def up(self, t: float, key: str = "KEY_SPACE") -> None:
        self.at(t)
        self.decoder.feed(InputEvent(key, KeyEdge.UP, t))

    def tap(self, t: float, hold: float = 50.0, key: str = "KEY_SPACE") -> None:
        self.down(t, key)
        self.up(t + hold, key)

    def settle(self, ms: float = 2000.0) -> None:
        advance(self.timeline, self.clock, ms)


class RecordingApp(App):
    """App implementing every hook; calls are appended to a shared journal."""

    def __init__(self, display: MatrixDisplay, name: str, journal: List[Tuple[str, str]]) -> None:
        super().__init__(display)
        self.name = name
        self.journal = journal

    def _note(self, what: str) -> None:
        self.journal.append((self.name, what))

    def render(self) -> None:
        self._note("render")

    def initialize(self) -> None:
        self._note("initialize")

    def on_activate(self) -> None:
        self._note("activate")

    def on_deactivate(self) -> None:
        self._note("deactivate")

    def on_exit(self) -> None:
        self._note("exit")

    def on_single_press(self) -> None:
        self._note("single_press")

    def on_double_press(self) -> None:
        self._note("double_press")

    def on_triple_press(self) -> None:
        self._note("triple_press")

    def on_long_press(self) -> None:
        self._note("long_press")

    def on_rotate_left(self) -> None:
        self._note("rotate_left")

    def on_rotate_right(self) -> None:
        self._note("rotate_right")


class BareApp(App):
    """Only renders; has no optional hooks."""

    def __init__(self, display: MatrixDisplay, name: str = "Bare") -> None:
        super().__init__(display)
        self.name = name
        self.renders = 0

    def render(self) -> None:
        self.renders += 1


def calls_of(journal: List[Tuple[str, str]], what: str) -> List[str]:
    return [name for name, w in journal if w == what]

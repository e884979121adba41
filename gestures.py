"""Gesture decoding for the activation key and the two rotate keys.

Raw key edges (from the rotary encoder switch/detents or a keyboard) are
turned into discrete gestures:

    single / double / triple press   taps on the activation key
    long press                        activation key held past the threshold
    rotate left / right               throttled rotate key-downs

Timing windows (all milliseconds, see GestureConfig):
- multi_press_window_ms: a key-down within this time of the previous tap's
  key-down extends the tap count; the finalize timer fires this long after
  the last tap and turns the count into a gesture.
- long_press_threshold_ms: continuous hold that turns the session into a
  long press. A long press always wins: taps already counted in the same
  session are discarded.
- long_press_poll_interval_ms: how often the hold duration is sampled.
- release_debounce_ms: a release only counts once the key stayed up this
  long; a key-down inside the window is contact bounce and is swallowed.
- rotate_throttle_ms: minimum spacing between accepted rotations of the
  same direction.

The decoder owns all of its timers on the shared Timeline and never raises
for odd input (unmatched key-ups, repeated key-downs are ignored).
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field, replace
from typing import Callable, FrozenSet, Optional

from timeline import Timeline, Timer

log = logging.getLogger(__name__)


class Gesture(enum.Enum):
    SINGLE_PRESS = "single_press"
    DOUBLE_PRESS = "double_press"
    TRIPLE_PRESS = "triple_press"
    LONG_PRESS = "long_press"
    ROTATE_LEFT = "rotate_left"
    ROTATE_RIGHT = "rotate_right"

    @property
    def handler_name(self) -> str:
        """Name of the optional App attribute handling this gesture."""
        return f"on_{self.value}"


class KeyEdge(enum.Enum):
    DOWN = "down"
    UP = "up"


@dataclass(frozen=True)
class InputEvent:
    key: str
    edge: KeyEdge
    timestamp: float


class SessionState(enum.Enum):
    IDLE = "idle"
    HELD = "held"
    RELEASE_PENDING = "release_pending"   # key-up seen, waiting out the debounce
    AWAITING_FINALIZE = "awaiting_finalize"


@dataclass
class PressSession:
    state: SessionState = SessionState.IDLE
    tap_count: int = 0
    first_tap_at: Optional[float] = None
    last_tap_at: Optional[float] = None
    key_down_at: Optional[float] = None
    long_press_fired: bool = False


@dataclass
class RotationState:
    last_left_at: Optional[float] = None
    last_right_at: Optional[float] = None


@dataclass
class GestureConfig:
    multi_press_window_ms: float = 300.0
    long_press_threshold_ms: float = 500.0
    long_press_poll_interval_ms: float = 50.0
    rotate_throttle_ms: float = 150.0
    release_debounce_ms: float = 50.0
    # True: LongPress is emitted once the release is confirmed.
    # False: LongPress is emitted as soon as the hold crosses the threshold.
    long_press_on_release: bool = True
    activation_keys: FrozenSet[str] = field(default_factory=lambda: frozenset({"KEY_SPACE", "KEY_ENTER", "ENC_SW"}))
    rotate_left_keys: FrozenSet[str] = field(default_factory=lambda: frozenset({"KEY_LEFT", "ENC_CCW"}))
    rotate_right_keys: FrozenSet[str] = field(default_factory=lambda: frozenset({"KEY_RIGHT", "ENC_CW"}))


GestureCallback = Callable[[Gesture], None]


class GestureDecoder:
    def __init__(self, timeline: Timeline, on_gesture: GestureCallback, config: Optional[GestureConfig] = None) -> None:
        self.timeline = timeline
        self.on_gesture = on_gesture
        self.config = config or GestureConfig()
        self._session = PressSession()
        self._rotation = RotationState()
        self._poll_timer: Optional[Timer] = None
        self._finalize_timer: Optional[Timer] = None
        self._release_timer: Optional[Timer] = None

    # Read-only views (copies) for tests and diagnostics
    @property
    def session(self) -> PressSession:
        return replace(self._session)

    @property
    def rotation(self) -> RotationState:
        return replace(self._rotation)

    def feed(self, event: InputEvent) -> None:
        cfg = self.config
        if event.key in cfg.activation_keys:
            if event.edge is KeyEdge.DOWN:
                self._activation_down(event.timestamp)
            else:
                self._activation_up(event.timestamp)
        elif event.edge is KeyEdge.DOWN:
            if event.key in cfg.rotate_left_keys:
                self._rotate(Gesture.ROTATE_LEFT, event.timestamp)
            elif event.key in cfg.rotate_right_keys:
                self._rotate(Gesture.ROTATE_RIGHT, event.timestamp)

    def reset(self) -> None:
        """Drop the open session and cancel every timer this decoder owns."""
        self._cancel_poll()
        self._cancel_finalize()
        self._cancel_release()
        self._session = PressSession()

    # Activation key --------------------------------------------------------
    def _activation_down(self, now: float) -> None:
        s = self._session
        cfg = self.config
        if s.state is SessionState.RELEASE_PENDING:
            if self._release_timer is not None and now < self._release_timer.deadline:
                # Bounce: the key came back before the release was confirmed
                self._cancel_release()
                s.state = SessionState.HELD
                if not s.long_press_fired:
                    self._poll_timer = self.timeline.call_at(now + cfg.long_press_poll_interval_ms, self._poll_hold)
                log.debug("release bounce at %.0f ignored", now)
                return
            # The debounce already elapsed; its timer just has not run yet
            self._cancel_release()
            self._confirm_release()
            s = self._session
        if s.state is SessionState.HELD:
            return
        if (s.state is SessionState.AWAITING_FINALIZE and s.last_tap_at is not None
                and now - s.last_tap_at > cfg.multi_press_window_ms):
            # Same for an overdue finalize: resolve the old taps first
            self._cancel_finalize()
            self._finalize()
            s = self._session
        if s.tap_count > 0 and s.last_tap_at is not None and now - s.last_tap_at <= cfg.multi_press_window_ms:
            s.tap_count += 1
        else:
            s.tap_count = 1
            s.first_tap_at = now
        s.last_tap_at = now
        s.key_down_at = now
        s.long_press_fired = False
        s.state = SessionState.HELD
        self._cancel_poll()
        self._poll_timer = self.timeline.call_at(now + cfg.long_press_poll_interval_ms, self._poll_hold)
        self._cancel_finalize()
        self._finalize_timer = self.timeline.call_at(now + cfg.multi_press_window_ms, self._finalize)

    def _activation_up(self, now: float) -> None:
        s = self._session
        if s.state is not SessionState.HELD:
            return  # unmatched or duplicate key-up
        if (not s.long_press_fired and s.key_down_at is not None
                and now - s.key_down_at >= self.config.long_press_threshold_ms):
            # The hold crossed the threshold between two polls
            self._mark_long_press()
        # The key-up timestamp decided the hold; polls must not extend it
        self._cancel_poll()
        if self.config.release_debounce_ms <= 0:
            self._confirm_release()
            return
        s.state = SessionState.RELEASE_PENDING
        self._release_timer = self.timeline.call_at(now + self.config.release_debounce_ms, self._confirm_release)

    def _poll_hold(self) -> None:
        self._poll_timer = None
        s = self._session
        if s.state is not SessionState.HELD or s.key_down_at is None or s.long_press_fired:
            return
        cfg = self.config
        now = self.timeline.now_ms()
        if now - s.key_down_at >= cfg.long_press_threshold_ms:
            self._mark_long_press()
            return
        self._poll_timer = self.timeline.call_at(now + cfg.long_press_poll_interval_ms, self._poll_hold)

    def _mark_long_press(self) -> None:
        self._session.long_press_fired = True
        self._cancel_poll()
        # Long press wins: counted taps will not produce a press gesture
        self._cancel_finalize()
        if not self.config.long_press_on_release:
            self._emit(Gesture.LONG_PRESS)

    def _confirm_release(self) -> None:
        self._release_timer = None
        s = self._session
        self._cancel_poll()
        s.key_down_at = None
        if s.long_press_fired:
            self._cancel_finalize()
            self._session = PressSession()
            if self.config.long_press_on_release:
                self._emit(Gesture.LONG_PRESS)
            return
        s.state = SessionState.AWAITING_FINALIZE
        deadline = (s.last_tap_at or 0.0) + self.config.multi_press_window_ms
        if self._finalize_timer is None or deadline <= self.timeline.now_ms():
            # Held past the tap window: nothing can extend the count any more
            self._cancel_finalize()
            self._finalize()

    def _finalize(self) -> None:
        self._finalize_timer = None
        s = self._session
        if s.state in (SessionState.HELD, SessionState.RELEASE_PENDING):
            return  # the confirmed release finalizes instead
        if s.long_press_fired or s.tap_count <= 0:
            self._session = PressSession()
            return
        if s.tap_count == 1:
            gesture = Gesture.SINGLE_PRESS
        elif s.tap_count == 2:
            gesture = Gesture.DOUBLE_PRESS
        else:
            gesture = Gesture.TRIPLE_PRESS
        self._session = PressSession()
        self._emit(gesture)

    # Rotate keys -----------------------------------------------------------
    def _rotate(self, gesture: Gesture, now: float) -> None:
        r = self._rotation
        last = r.last_left_at if gesture is Gesture.ROTATE_LEFT else r.last_right_at
        if last is not None and now - last < self.config.rotate_throttle_ms:
            return
        if gesture is Gesture.ROTATE_LEFT:
            r.last_left_at = now
        else:
            r.last_right_at = now
        self._emit(gesture)

    # Helpers ---------------------------------------------------------------
    def _emit(self, gesture: Gesture) -> None:
        log.debug("gesture %s", gesture.value)
        self.on_gesture(gesture)

    def _cancel_poll(self) -> None:
        if self._poll_timer is not None:
            self._poll_timer.cancel()
            self._poll_timer = None

    def _cancel_finalize(self) -> None:
        if self._finalize_timer is not None:
            self._finalize_timer.cancel()
            self._finalize_timer = None

    def _cancel_release(self) -> None:
        if self._release_timer is not None:
            self._release_timer.cancel()
            self._release_timer = None


__all__ = [
    "Gesture",
    "GestureConfig",
    "GestureDecoder",
    "InputEvent",
    "KeyEdge",
    "PressSession",
    "RotationState",
    "SessionState",
]

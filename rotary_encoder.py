#!/usr/bin/env python3
"""Rotary encoder (KY-040 style) as a raw key-edge source for the dashboard.

Hardware (BCM numbering, project defaults):
    CLK (A phase)  -> GPIO7
    DT  (B phase)  -> GPIO9   (needed for direction)
    SW  (switch)   -> GPIO11  (active low)
  VCC -> 3V3  IMPORTANT: use 3.3V, not 5V
  GND -> any ground

Every detent is reported as a key-down of ``ENC_CW`` or ``ENC_CCW`` and the
push switch reports both edges of ``ENC_SW``. Events are ``InputEvent``s
stamped with the supplied clock (the dashboard timeline) and delivered to
``on_event`` from the GPIO thread; the receiver must hand them over with
``Timeline.post``. Press/long-press timing is left to the gesture decoder,
so the switch is not debounced here beyond dropping repeated levels.

Usage:
    from rotary_encoder import RotaryEncoder
    enc = RotaryEncoder(on_event=lambda ev: print(ev))
    enc.start()
    ... (loop) ...
    enc.stop()

If RPi.GPIO is not available (e.g. running on dev machine), start() and
stop() do nothing.
"""
from __future__ import annotations

import logging
import os
import stat
import threading
import time
from typing import Callable, Optional

from gestures import InputEvent, KeyEdge
from timeline import monotonic_ms

try:  # Prefer RPi.GPIO
    import RPi.GPIO as GPIO  # type: ignore
    _HAVE_GPIO = True
except Exception:  # noqa: BLE001
    GPIO = None  # type: ignore
    _HAVE_GPIO = False

log = logging.getLogger(__name__)

KEY_CW = "ENC_CW"
KEY_CCW = "ENC_CCW"
KEY_SW = "ENC_SW"

EventCallback = Callable[[InputEvent], None]


class RotaryEncoder:
    def __init__(
        self,
        pin_clk: int = 7,
        pin_dt: Optional[int] = 9,
        pin_sw: int = 11,
        on_event: Optional[EventCallback] = None,
        clock: Optional[Callable[[], float]] = None,
        debounce_ms: int = 4,
        force_polling: bool = False,
        debug: bool = False,
        steps_per_detent: int = 1,
        directionless: bool = False,  # CLK-only wiring: every detent counts as clockwise
    ) -> None:
        self.pin_clk = pin_clk
        self.pin_dt = pin_dt
        self.pin_sw = pin_sw
        self.on_event = on_event
        self.clock = clock or monotonic_ms
        self.debounce_ms = debounce_ms
        self._directionless = bool(directionless or pin_dt is None)
        self._steps_per_detent = max(1, steps_per_detent)
        self._force_polling = force_polling
        self._debug = debug
        self._running = False
        self._use_polling = False
        self._poll_thread: Optional[threading.Thread] = None
        self._movement = 0
        self._last_clk_edge_at: Optional[float] = None
        self._last_clk_level: Optional[int] = None
        self._sw_level: Optional[int] = 1  # released (pull-up)

    @property
    def running(self) -> bool:
        return self._running

    def start(self) -> None:
        if not _HAVE_GPIO:
            log.info("RPi.GPIO not available; encoder disabled")
            return
        if self._running:
            return
        # All GPIO attribute access guarded by _HAVE_GPIO, but static analyzers on non-Pi
        # systems see GPIO as None; add type: ignore to suppress false positives.
        try:
            GPIO.setmode(GPIO.BCM)  # type: ignore[attr-defined]
            for pin in self._pins():
                GPIO.setup(pin, GPIO.IN, pull_up_down=GPIO.PUD_UP)  # type: ignore[attr-defined]
            self._last_clk_level = GPIO.input(self.pin_clk)  # type: ignore[attr-defined]
            self._sw_level = GPIO.input(self.pin_sw)  # type: ignore[attr-defined]
            if self._debug:
                self._log_access()
            if not self._force_polling:
                try:
                    GPIO.add_event_detect(self.pin_clk, GPIO.RISING, callback=self._clk_callback, bouncetime=self.debounce_ms)  # type: ignore[attr-defined]
                    GPIO.add_event_detect(self.pin_sw, GPIO.BOTH, callback=self._sw_callback)  # type: ignore[attr-defined]
                except RuntimeError:
                    # Fallback to polling if event detection not possible
                    log.warning("GPIO edge detection unavailable, polling encoder pins")
                    self._force_polling = True
        except RuntimeError as e:  # typical /dev/mem permission issues during basic setup
            raise RuntimeError(
                f"GPIO init failed early ({e}). Steps: ensure /dev/gpiomem accessible, no conflicting daemon, run with sudo or gpio group."  # noqa: E501
            ) from e
        self._running = True
        if self._force_polling:
            self._use_polling = True
            self._poll_thread = threading.Thread(target=self._poll, name="encoder-poll", daemon=True)
            self._poll_thread.start()

    def stop(self) -> None:
        if not _HAVE_GPIO or not self._running:
            return
        self._running = False
        try:
            if not self._use_polling:
                GPIO.remove_event_detect(self.pin_clk)  # type: ignore[attr-defined]
                GPIO.remove_event_detect(self.pin_sw)  # type: ignore[attr-defined]
            GPIO.cleanup(self._pins())  # type: ignore[attr-defined]
        except Exception as e:  # noqa: BLE001
            log.debug("GPIO cleanup failed: %s", e)
        # Poll thread exits on its next iteration
        self._poll_thread = None

    # Edge processing (independent of GPIO) --------------------------------
    def process_detent(self, dt_level: Optional[int] = None) -> None:
        """Handle one rising CLK edge; ``dt_level`` is DT sampled at that edge."""
        now = self.clock()
        if self._last_clk_edge_at is not None and now - self._last_clk_edge_at < self.debounce_ms:
            return
        self._last_clk_edge_at = now
        if self._directionless or dt_level is None:
            step = +1
        else:
            step = +1 if dt_level == 0 else -1
        self._movement += step
        if abs(self._movement) < self._steps_per_detent:
            return
        key = KEY_CW if self._movement > 0 else KEY_CCW
        self._movement = 0
        self._emit(key, KeyEdge.DOWN, now)

    def process_switch(self, level: int) -> None:
        """Handle a sampled switch level (active low); repeated levels are ignored."""
        if level == self._sw_level:
            return
        self._sw_level = level
        self._emit(KEY_SW, KeyEdge.DOWN if level == 0 else KeyEdge.UP, self.clock())

    # GPIO callbacks --------------------------------------------------------
    def _clk_callback(self, channel: int) -> None:  # noqa: ANN001
        try:
            dt_level = None if self._directionless else GPIO.input(self.pin_dt)  # type: ignore[attr-defined]
        except Exception:  # noqa: BLE001
            return
        self.process_detent(dt_level)

    def _sw_callback(self, channel: int) -> None:  # noqa: ANN001
        try:
            level = GPIO.input(self.pin_sw)  # type: ignore[attr-defined]
        except Exception:  # noqa: BLE001
            return
        self.process_switch(level)

    def _poll(self) -> None:
        while self._running:
            try:
                clk = GPIO.input(self.pin_clk)  # type: ignore[attr-defined]
                if self._last_clk_level == 0 and clk == 1:
                    dt_level = None if self._directionless else GPIO.input(self.pin_dt)  # type: ignore[attr-defined]
                    self.process_detent(dt_level)
                self._last_clk_level = clk
                self.process_switch(GPIO.input(self.pin_sw))  # type: ignore[attr-defined]
                time.sleep(0.002)
            except Exception as e:  # noqa: BLE001
                log.debug("encoder poll error: %s", e)
                time.sleep(0.01)

    # Helpers ---------------------------------------------------------------
    def _emit(self, key: str, edge: KeyEdge, now: float) -> None:
        if self._debug:
            log.info("%s %s", key, edge.value)
        if self.on_event is None:
            return
        try:
            self.on_event(InputEvent(key, edge, now))
        except Exception:  # noqa: BLE001
            log.exception("encoder event handler failed")

    def _pins(self):
        pins = [self.pin_clk, self.pin_sw]
        if not self._directionless and self.pin_dt is not None:
            pins.append(self.pin_dt)
        return pins

    def _log_access(self) -> None:
        uid = getattr(os, 'getuid', lambda: 'n/a')()
        gid = getattr(os, 'getgid', lambda: 'n/a')()
        log.info("UID=%s GID=%s polling=%s", uid, gid, self._force_polling)
        for dev in ("/dev/gpiomem", "/dev/mem"):
            try:
                st = os.stat(dev)
            except FileNotFoundError:
                log.info("%s missing", dev)
                continue
            access = "OK" if os.access(dev, os.R_OK | os.W_OK) else "DENIED"
            log.info("%s mode=%s owner=%s:%s access RW %s", dev, stat.filemode(st.st_mode), st.st_uid, st.st_gid, access)


__all__ = ["RotaryEncoder", "KEY_CW", "KEY_CCW", "KEY_SW"]

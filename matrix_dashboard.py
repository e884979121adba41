#!/usr/bin/env python3
"""RGB LED matrix dashboard (hzeller/rpi-rgb-led-matrix, 64x32 by default).

Shows a rotating set of apps (clock, weather, departures, system status,
Spotify now playing, panel test pattern) and is driven by a rotary encoder
with push switch and/or a keyboard:

    press                 next app (unless the app captures the press)
    double / triple press app specific
    long press            app specific
    rotate left / right   app specific
    q / Esc               quit (keyboard)

Everything runs on one timeline thread: the frame loop (sync -> render ->
sync ...), decoded gestures, app background refreshes and remote triggers.
Input readers, HTTP fetches and signal handlers only hand work over.

The enabled apps and their order come from ``config.json``; apps that are
registered but missing from the file are appended to it on startup.

Usage (examples):
  sudo python3 matrix_dashboard.py
  sudo python3 matrix_dashboard.py --brightness 60 --stations "Basel, Aeschenplatz" "Basel SBB"
  python3 matrix_dashboard.py --ascii 5          # no panel: print frames to stdout

Note: Must be run with root permissions for GPIO access (sudo).
"""
from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from typing import Iterable, List, Optional, Sequence

from app_registry import AppRegistry, register_default_apps
from apps import App
from control_service import ControlService
from dashboard_config import CONFIG_FILE, enabled_class_names, load_config, merge_registered, save_config
from frame_loop import FrameLoop
from gestures import GestureConfig, GestureDecoder, InputEvent, KeyEdge
from keyboard_input import HAVE_EVDEV, find_keyboard, keyboard_events
from matrix_display import DEFAULT_COLS, DEFAULT_FPS, DEFAULT_ROWS, MatrixDisplay, open_display
from rotary_encoder import RotaryEncoder
from scheduler import AppScheduler, NoAppsError
from timeline import Timeline

log = logging.getLogger(__name__)

QUIT_KEYS = ("KEY_Q", "KEY_ESC")


class Dashboard:
    def __init__(
        self,
        display: MatrixDisplay,
        apps: Sequence[App],
        gesture_config: Optional[GestureConfig] = None,
        timeline: Optional[Timeline] = None,
        quit_keys: Iterable[str] = QUIT_KEYS,
        hook_timeout_s: float = 10.0,
    ) -> None:
        self.display = display
        self.timeline = timeline or Timeline()
        self.scheduler = AppScheduler(
            self.timeline, apps, display=display, hook_timeout_s=hook_timeout_s, on_quit=self._on_quit,
        )
        self.decoder = GestureDecoder(self.timeline, self.scheduler.dispatch, gesture_config)
        self.frame_loop = FrameLoop(display, self.scheduler, self.timeline)
        self.control = ControlService(self.timeline, self.scheduler)
        self.quit_keys = frozenset(quit_keys)

    def initialize_all(self) -> None:
        self.scheduler.initialize_all()

    def run_frame_loop(self) -> None:
        """Start rendering and run the timeline until quit."""
        self.frame_loop.start()
        self.timeline.run_forever()

    # Input -----------------------------------------------------------------
    def handle_input(self, event: InputEvent) -> None:
        if event.edge is KeyEdge.DOWN and event.key in self.quit_keys:
            log.info("quit key %s pressed", event.key)
            self.scheduler.request_quit()
            return
        self.decoder.feed(event)

    def post_input(self, event: InputEvent) -> None:
        """Thread-safe: queue a raw key edge for the timeline."""
        self.timeline.post(self.handle_input, event)

    def attach_input_source(self, stream: Iterable[InputEvent], name: str = "input") -> threading.Thread:
        """Read ``stream`` on a daemon thread, posting every event."""
        def _reader() -> None:
            try:
                for event in stream:
                    self.post_input(event)
            except Exception:  # noqa: BLE001
                log.exception("input source %s failed", name)
            log.info("input source %s ended", name)

        t = threading.Thread(target=_reader, name=f"{name}-reader", daemon=True)
        t.start()
        return t

    # Shutdown --------------------------------------------------------------
    def request_quit(self) -> None:
        """Thread-safe and idempotent."""
        self.timeline.post(self.scheduler.request_quit)

    def _on_quit(self) -> None:
        self.frame_loop.stop()
        self.decoder.reset()
        self.timeline.stop()
        self.timeline.close()


def gesture_config_from_args(opts: argparse.Namespace) -> GestureConfig:
    return GestureConfig(
        multi_press_window_ms=opts.multi_press_ms,
        long_press_threshold_ms=opts.long_press_ms,
        rotate_throttle_ms=opts.rotate_throttle_ms,
        release_debounce_ms=opts.release_debounce_ms,
        long_press_on_release=not opts.long_press_at_threshold,
    )


def add_input_args(p: argparse.ArgumentParser) -> None:
    """Encoder, keyboard and gesture timing flags (shared with gesture_debug)."""
    p.add_argument('--no-encoder', action='store_true', help='Disable rotary encoder even if library present')
    p.add_argument('--enc-clk', type=int, default=7, help='Rotary encoder CLK (A) GPIO (BCM numbering)')
    p.add_argument('--enc-dt', type=int, default=9, help='Rotary encoder DT (B) GPIO (BCM numbering)')
    p.add_argument('--enc-sw', type=int, default=11, help='Rotary encoder switch GPIO (BCM numbering)')
    p.add_argument('--enc-poll', action='store_true', help='Force polling mode instead of interrupt events')
    p.add_argument('--enc-directionless', action='store_true',
                   help='CLK-only wiring: every detent counts as rotate right')
    p.add_argument('--enc-steps-per-detent', type=int, default=1,
                   help='Steps per detent: 1 for most KY-040 modules, 2/4 for full quadrature encoders')
    p.add_argument('--encoder-debug', action='store_true', help='Verbose encoder debug messages')
    p.add_argument('--no-keyboard', action='store_true', help='Do not read a keyboard (evdev)')
    p.add_argument('--keyboard-name', default=None, help='Only use a keyboard whose name contains this text')
    p.add_argument('--multi-press-ms', type=float, default=300.0, help='Window for double/triple presses')
    p.add_argument('--long-press-ms', type=float, default=500.0, help='Hold time for a long press')
    p.add_argument('--rotate-throttle-ms', type=float, default=150.0,
                   help='Minimum spacing between rotations of the same direction')
    p.add_argument('--release-debounce-ms', type=float, default=50.0,
                   help='Key must stay released this long before the release counts')
    p.add_argument('--long-press-at-threshold', action='store_true',
                   help='Report a long press as soon as the hold time is reached instead of on release')
    p.add_argument('--verbose', '-v', action='store_true', help='Debug logging')


def start_inputs(opts: argparse.Namespace, timeline: Timeline, post) -> Optional[RotaryEncoder]:
    """Start the encoder (GPIO callbacks post into the timeline). Returns it for stop()."""
    if opts.no_encoder:
        return None
    encoder = RotaryEncoder(
        pin_clk=opts.enc_clk,
        pin_dt=opts.enc_dt,
        pin_sw=opts.enc_sw,
        on_event=post,
        clock=timeline.now_ms,
        force_polling=opts.enc_poll,
        debug=opts.encoder_debug,
        steps_per_detent=opts.enc_steps_per_detent,
        directionless=opts.enc_directionless,
    )
    try:
        encoder.start()
    except RuntimeError as e:
        log.error("encoder disabled: %s", e)
        return None
    return encoder


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description='Rotating app dashboard on an RGB LED matrix')
    p.add_argument('--config', default=CONFIG_FILE, help='App list file (JSON)')
    p.add_argument('--fps', type=float, default=DEFAULT_FPS, help='Frame rate')
    p.add_argument('--hook-timeout', type=float, default=10.0,
                   help='Seconds to wait for app startup/shutdown work')
    # Apps
    p.add_argument('--clock-12h', action='store_true', help='Start the clock in 12 hour mode')
    p.add_argument('--weather-timeout', type=float, default=4.0, help='Weather request timeout seconds')
    p.add_argument('--stations', nargs='+', default=['Basel SBB'], help='Stops for the departures app')
    p.add_argument('--departures-limit', type=int, default=8, help='Departures fetched per stop')
    p.add_argument('--departures-timeout', type=float, default=5.0, help='Departures request timeout seconds')
    # Matrix
    p.add_argument('--no-matrix', action='store_true', help='Use the in-memory framebuffer even on a Pi')
    p.add_argument('--ascii', type=float, default=0.0,
                   help='Without a panel: print the frame as ASCII every N seconds (0 = off)')
    p.add_argument('--brightness', type=int, default=40, help='Panel brightness (0-100)')
    p.add_argument('--rows', type=int, default=DEFAULT_ROWS, help='Panel rows (height)')
    p.add_argument('--cols', type=int, default=DEFAULT_COLS, help='Panel columns (width)')
    p.add_argument('--gpio-mapping', default='adafruit-hat', help='GPIO mapping (e.g. adafruit-hat)')
    p.add_argument('--chain', type=int, default=1, help='Number of daisy-chained panels')
    p.add_argument('--parallel', type=int, default=1, help='Parallel chains')
    p.add_argument('--slowdown-gpio', type=int, choices=[0, 1, 2, 3, 4], default=None,
                   help='GPIO slowdown (increase if you see flicker/noise)')
    p.add_argument('--pwm-lsb-ns', type=int, default=None,
                   help='Override pwm_lsb_nanoseconds (timing of LSB pulse)')
    p.add_argument('--limit-refresh-hz', type=int, default=None,
                   help='Hard limit on refresh rate Hz (lower to reduce CPU/flicker)')
    p.add_argument('--dither-bits', type=int, default=None,
                   help='Override pwm dither bits (0 to disable, higher = smoother dims)')
    p.add_argument('--pwm-bits', type=int, default=None,
                   help='PWM bit depth (default panel-specific). Try 8-11 to reduce low-brightness flicker')
    p.add_argument('--multiplexing', type=int, default=None,
                   help='Forced multiplexing scheme. Only set if your panel datasheet says so')
    p.add_argument('--scan-mode', type=int, choices=[0, 1], default=None,
                   help='Scan mode: 0 = progressive, 1 = interlaced')
    p.add_argument('--row-addr-type', type=int, choices=[0, 1, 2, 3, 4], default=None,
                   help='Row address type (A/B/C/... lines). Matches panel controller generation')
    p.add_argument('--panel-type', default=None,
                   help='Panel type hint (e.g., FM6126A). Enables panel-specific init sequences')
    p.add_argument('--led-rgb-sequence', default=None,
                   help='Override LED color sequence (e.g., RGB, RBG, GBR)')
    p.add_argument('--disable-hardware-pulsing', action='store_true',
                   help='Disable HAT hardware pulsing; may help on some clones at the cost of CPU')
    add_input_args(p)
    return p.parse_args(argv)


def build_apps(opts: argparse.Namespace, display: MatrixDisplay) -> List[App]:
    registry = AppRegistry()
    register_default_apps(registry, opts)
    config = load_config(opts.config)
    if merge_registered(config, registry):
        save_config(config, opts.config)
    return registry.create_enabled(display, enabled_class_names(config))


def main(argv: Optional[List[str]] = None) -> int:  # pragma: no cover
    opts = parse_args(argv)
    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if opts.verbose else logging.INFO,
        format="[%(name)s] %(message)s",
    )
    timeline = Timeline()
    display = open_display(opts, clock=timeline.now_ms)
    apps = build_apps(opts, display)
    try:
        dashboard = Dashboard(
            display, apps,
            gesture_config=gesture_config_from_args(opts),
            timeline=timeline,
            hook_timeout_s=opts.hook_timeout,
        )
    except NoAppsError as e:
        log.error("%s", e)
        return 1

    def _sig_handler(signum, frame):  # noqa: ANN001
        dashboard.request_quit()
    signal.signal(signal.SIGINT, _sig_handler)
    signal.signal(signal.SIGTERM, _sig_handler)

    encoder = start_inputs(opts, timeline, dashboard.post_input)
    if not opts.no_keyboard and HAVE_EVDEV:
        keyboard = find_keyboard(opts.keyboard_name)
        if keyboard is not None:
            dashboard.attach_input_source(keyboard_events(keyboard, timeline.now_ms), "keyboard")
        else:
            log.info("no keyboard found")
    try:
        dashboard.initialize_all()
        dashboard.run_frame_loop()
    finally:
        if encoder:
            encoder.stop()
    return 0


if __name__ == '__main__':  # pragma: no cover
    raise SystemExit(main())

#!/usr/bin/env python3
"""Gesture debug console: see what the dashboard would make of your input.

Reads the rotary encoder (GPIO) and/or a keyboard (evdev), decodes the edges
with the same GestureDecoder and timings as the dashboard and prints one
time-stamped line per gesture (and per raw edge with --edges).

Examples:
  sudo python3 gesture_debug.py --edges
  sudo python3 gesture_debug.py --no-encoder --long-press-ms 800
"""
from __future__ import annotations

import argparse
import sys
import threading
from datetime import datetime
from typing import List, Optional

from gestures import Gesture, GestureDecoder, InputEvent
from keyboard_input import HAVE_EVDEV, find_keyboard, keyboard_events
from matrix_dashboard import add_input_args, gesture_config_from_args, start_inputs
from timeline import Timeline


def ts() -> str:
    return datetime.now().strftime('%H:%M:%S.%f')[:-3]


def format_event_line(event: InputEvent, stamp: Optional[str] = None) -> str:
    return f"{stamp or ts()} {event.key:<10} {event.edge.value.upper():<4} t={event.timestamp:.0f}"


def format_gesture_line(gesture: Gesture, stamp: Optional[str] = None) -> str:
    return f"{stamp or ts()} >>> {gesture.name}"


def main(argv: Optional[List[str]] = None) -> int:  # pragma: no cover
    ap = argparse.ArgumentParser(description="Gesture decoder debug console")
    ap.add_argument('--edges', action='store_true', help='Also print every raw key edge')
    add_input_args(ap)
    args = ap.parse_args(argv)

    timeline = Timeline()
    decoder = GestureDecoder(timeline, lambda g: print(format_gesture_line(g), flush=True),
                             gesture_config_from_args(args))

    def handle(event: InputEvent) -> None:
        if args.edges:
            print(format_event_line(event), flush=True)
        decoder.feed(event)

    def post(event: InputEvent) -> None:
        timeline.post(handle, event)

    encoder = start_inputs(args, timeline, post)
    sources = 1 if encoder is not None and encoder.running else 0
    if not args.no_keyboard and HAVE_EVDEV:
        keyboard = find_keyboard(args.keyboard_name)
        if keyboard is not None:
            def _reader() -> None:
                for ev in keyboard_events(keyboard, timeline.now_ms):
                    post(ev)
            threading.Thread(target=_reader, daemon=True).start()
            sources += 1
    if not sources:
        print("No input source: RPi.GPIO and evdev are both unavailable or disabled.", file=sys.stderr)
        return 2

    print("Press Ctrl+C to exit. Rotate, click or type to see gestures...")
    try:
        timeline.run_forever()
    except KeyboardInterrupt:
        print("\nExiting...")
    finally:
        decoder.reset()
        timeline.close()
        if encoder:
            encoder.stop()
    return 0


if __name__ == '__main__':  # pragma: no cover
    raise SystemExit(main())

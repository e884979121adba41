"""Keyboard input source (Linux evdev).

Turns a keyboard's key events into ``InputEvent`` edges for the dashboard.
Key names are the evdev names (``KEY_SPACE``, ``KEY_LEFT``, ...). Auto-repeat
events are dropped: the gesture decoder measures holds itself.

Without the evdev package (non-Linux dev machine) ``HAVE_EVDEV`` is False,
``find_keyboard()`` returns None and the dashboard runs without a keyboard.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Iterator, Optional

from gestures import InputEvent, KeyEdge
from timeline import monotonic_ms

try:
    import evdev  # type: ignore
    from evdev import InputDevice, ecodes  # type: ignore
    HAVE_EVDEV = True
except Exception:  # noqa: BLE001
    evdev = None  # type: ignore
    InputDevice = None  # type: ignore
    ecodes = None  # type: ignore
    HAVE_EVDEV = False

log = logging.getLogger(__name__)

# linux/input-event-codes.h
EV_KEY = 1
KEY_UP_VALUE = 0
KEY_DOWN_VALUE = 1
KEY_REPEAT_VALUE = 2
ENODEV = 19


def key_name(code: int) -> str:
    name = ecodes.KEY.get(code) if HAVE_EVDEV else None
    if isinstance(name, (list, tuple)):
        name = name[0]
    return name or f"KEY_{code}"


def find_keyboard(name_hint: Optional[str] = None) -> Optional["InputDevice"]:  # type: ignore[valid-type]
    """First input device that reports keys and is not a pointer device."""
    if not HAVE_EVDEV:
        return None
    for path in evdev.list_devices():
        try:
            device = InputDevice(path)
        except OSError as e:
            log.debug("cannot open %s: %s", path, e)
            continue
        lname = device.name.lower()
        if 'mouse' in lname or 'touchpad' in lname:
            continue
        if name_hint and name_hint.lower() not in lname:
            continue
        if EV_KEY not in device.capabilities():
            continue
        log.info("using keyboard %s at %s", device.name, device.path)
        return device
    return None


def keyboard_events(
    device: Any,
    clock: Optional[Callable[[], float]] = None,
    name_of: Callable[[int], str] = key_name,
) -> Iterator[InputEvent]:
    """Yield key edges from ``device.read_loop()`` until the device goes away."""
    clock = clock or monotonic_ms
    try:
        for event in device.read_loop():
            if event.type != EV_KEY or event.value == KEY_REPEAT_VALUE:
                continue
            edge = KeyEdge.DOWN if event.value == KEY_DOWN_VALUE else KeyEdge.UP
            yield InputEvent(name_of(event.code), edge, clock())
    except OSError as e:
        if e.errno != ENODEV:
            raise
        log.warning("keyboard disconnected")


__all__ = ["HAVE_EVDEV", "find_keyboard", "keyboard_events", "key_name"]

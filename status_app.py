"""System status app: host name, IP address, load and uptime.

Checks run every 5 seconds in the background. A long press makes the app
keep the default single press (so a press refreshes instead of switching
apps); another long press gives it back. Double press pauses or resumes the
periodic checks.
"""
from __future__ import annotations

import logging
import os
import socket
import time
from typing import Any, Dict, Optional

from apps import App

log = logging.getLogger(__name__)

CHECK_MS = 5000

OK_COLOR = (0, 255, 0)
PAUSED_COLOR = (255, 255, 0)
TEXT_COLOR = (255, 255, 255)


def local_ip() -> Optional[str]:
    """Address of the interface holding the default route (no packets are sent)."""
    s = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    try:
        s.connect(("10.255.255.255", 1))
        return s.getsockname()[0]
    except OSError:
        return None
    finally:
        s.close()


def uptime_seconds() -> Optional[float]:
    try:
        with open("/proc/uptime", "r", encoding="ascii") as fh:
            return float(fh.read().split()[0])
    except (OSError, ValueError, IndexError):
        return None


def format_uptime(seconds: Optional[float]) -> str:
    if seconds is None:
        return "--"
    minutes = int(seconds // 60)
    days, minutes = divmod(minutes, 24 * 60)
    hours, minutes = divmod(minutes, 60)
    if days:
        return f"{days}d {hours}h"
    return f"{hours}h {minutes:02d}m"


def collect_status() -> Dict[str, Any]:
    try:
        load: Optional[float] = os.getloadavg()[0]
    except (AttributeError, OSError):
        load = None
    return {
        "host": socket.gethostname(),
        "ip": local_ip(),
        "load": load,
        "uptime": uptime_seconds(),
        "checked_at": time.strftime("%H:%M:%S"),
    }


class StatusApp(App):
    name = "Status"
    background_interval_ms = CHECK_MS

    def __init__(self, display, collect=collect_status) -> None:
        super().__init__(display)
        self.collect = collect
        self.status: Dict[str, Any] = {}
        self.paused = False

    def check(self) -> None:
        self.fetch_async(self.collect, on_result=self._apply)

    def _apply(self, status: Dict[str, Any]) -> None:
        self.status = status

    # Hooks -----------------------------------------------------------------
    def on_activate(self) -> None:
        self.check()

    def on_background_tick(self) -> None:
        self.check()

    def on_single_press(self) -> None:
        # Only reached while the default press is captured
        log.info("manual status check")
        self.check()

    def on_double_press(self) -> None:
        if self.paused:
            self.paused = False
            self.start_background()
            self.check()
        else:
            self.paused = True
            self.cancel_background()
        log.info("status checks %s", "paused" if self.paused else "resumed")

    def on_long_press(self) -> None:
        self.toggle_capture_default_press()

    # Rendering -------------------------------------------------------------
    def render(self) -> None:
        d = self.display
        w = d.width()
        st = self.status
        d.draw_text(d.truncate_text(str(st.get("host") or "STATUS"), w - 6), 1, 1, TEXT_COLOR)
        d.draw_rect(w - 4, 1, 3, 3, PAUSED_COLOR if self.paused else OK_COLOR, filled=True)
        d.draw_text(d.truncate_text(st.get("ip") or "NO NETWORK", w - 2), 1, 8, TEXT_COLOR)
        load = st.get("load")
        d.draw_text(f"LOAD {load:.2f}" if load is not None else "LOAD --", 1, 15, TEXT_COLOR)
        d.draw_text(f"UP {format_uptime(st.get('uptime'))}", 1, 22, TEXT_COLOR)


__all__ = ["StatusApp", "collect_status", "format_uptime", "local_ip"]

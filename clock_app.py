"""Clock app: large HH:MM with the date underneath.

Double press switches between 24 h and 12 h display.
"""
from __future__ import annotations

from datetime import datetime
from typing import Callable, Optional

from apps import App

TIME_COLOR = (255, 140, 0)   # amber
DATE_COLOR = (120, 120, 120)
SECOND_COLOR = (60, 60, 60)


class ClockApp(App):
    name = "Clock"

    def __init__(self, display, use_24h: bool = True, now: Optional[Callable[[], datetime]] = None) -> None:
        super().__init__(display)
        self.use_24h = use_24h
        self._now = now or datetime.now

    def time_text(self, t: datetime) -> str:
        if self.use_24h:
            return t.strftime("%H:%M")
        hour = t.hour % 12 or 12
        return f"{hour}:{t.minute:02d}"

    @staticmethod
    def date_text(t: datetime) -> str:
        return t.strftime("%a %b %d").upper()

    def render(self) -> None:
        d = self.display
        t = self._now()
        hhmm = self.time_text(t)
        w = d.width()
        tw = d.measure_text(hhmm, scale=2)
        d.draw_text(hhmm, (w - tw) // 2, 6, TIME_COLOR, scale=2)
        if not self.use_24h:
            d.draw_text("PM" if t.hour >= 12 else "AM", w - 9, 1, DATE_COLOR)
        date = self.date_text(t)
        d.draw_text(date, (w - d.measure_text(date)) // 2, 21, DATE_COLOR)
        # Seconds as a progress bar along the bottom edge
        d.draw_line(0, d.height() - 1, (w - 1) * t.second // 59, d.height() - 1, SECOND_COLOR)

    def on_double_press(self) -> None:
        self.use_24h = not self.use_24h


__all__ = ["ClockApp"]

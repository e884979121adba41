"""Panel test pattern: solid fill with white corner markers.

Useful to spot dead pixels, wrong RGB order or a shifted panel mapping.
Rotating cycles the fill colour.
"""
from __future__ import annotations

from apps import App

COLORS = [
    ("amber", (255, 140, 0)),
    ("red", (255, 0, 0)),
    ("green", (0, 255, 0)),
    ("blue", (0, 0, 255)),
    ("white", (255, 255, 255)),
    ("yellow", (255, 255, 0)),
    ("cyan", (0, 255, 255)),
    ("magenta", (255, 0, 255)),
]
MARKER = (255, 255, 255)
MARKER_SIZE = 3


class PatternApp(App):
    name = "Test Pattern"

    def __init__(self, display) -> None:
        super().__init__(display)
        self.color_index = 0

    @property
    def color_name(self) -> str:
        return COLORS[self.color_index][0]

    def render(self) -> None:
        d = self.display
        d.fill(COLORS[self.color_index][1])
        w, h = d.width(), d.height()
        for x, y in ((0, 0), (w - MARKER_SIZE, 0), (0, h - MARKER_SIZE), (w - MARKER_SIZE, h - MARKER_SIZE)):
            d.draw_rect(x, y, MARKER_SIZE, MARKER_SIZE, MARKER, filled=True)

    def on_rotate_left(self) -> None:
        self.color_index = (self.color_index - 1) % len(COLORS)

    def on_rotate_right(self) -> None:
        self.color_index = (self.color_index + 1) % len(COLORS)


__all__ = ["PatternApp", "COLORS"]

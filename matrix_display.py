"""Display driver for HUB75 RGB panels (hzeller/rpi-rgb-led-matrix).

Wraps one off-screen canvas and exposes the small drawing surface the apps
need (pixels, lines, rectangles, circles, a 3x5 bitmap font, 1-bit icons).
``sync()`` paces frames to a fixed cadence, swaps the canvas on VSync and
then calls every ``after_sync`` hook with ``(delta_ms, now_ms)``.

Graceful fallback: without the rgbmatrix library (developer machine) the
driver draws into an in-memory framebuffer and can print it as ASCII art
every few seconds (``--ascii``).
"""
from __future__ import annotations

import argparse
import logging
import sys
import time
import unicodedata
from typing import Callable, Dict, List, Optional, Sequence, TextIO, Tuple

from timeline import monotonic_ms

try:
    from rgbmatrix import RGBMatrix, RGBMatrixOptions  # type: ignore
    MATRIX_AVAILABLE = True
except Exception:  # noqa: BLE001
    RGBMatrix = None  # type: ignore
    RGBMatrixOptions = None  # type: ignore
    MATRIX_AVAILABLE = False

log = logging.getLogger(__name__)

Color = Tuple[int, int, int]
SyncHook = Callable[[float, float], None]

DEFAULT_ROWS = 32
DEFAULT_COLS = 64
DEFAULT_FPS = 30.0
BLACK: Color = (0, 0, 0)
WHITE: Color = (255, 255, 255)

# --------------------------------------------------------------------------------------
# 3x5 font. Representation: list of 5 strings of '0'/'1'. Lowercase is drawn
# with the uppercase glyph, accented letters with their base letter.
# --------------------------------------------------------------------------------------
CHAR_W = 3
CHAR_H = 5
CHAR_SPACING = 1

FONT: Dict[str, List[str]] = {
    ' ': ["000"] * 5,
    '0': ["111", "101", "101", "101", "111"],
    '1': ["010", "110", "010", "010", "111"],
    '2': ["111", "001", "111", "100", "111"],
    '3': ["111", "001", "111", "001", "111"],
    '4': ["101", "101", "111", "001", "001"],
    '5': ["111", "100", "111", "001", "111"],
    '6': ["111", "100", "111", "101", "111"],
    '7': ["111", "001", "010", "010", "010"],
    '8': ["111", "101", "111", "101", "111"],
    '9': ["111", "101", "111", "001", "111"],
    'A': ["010", "101", "111", "101", "101"],
    'B': ["110", "101", "110", "101", "110"],
    'C': ["011", "100", "100", "100", "011"],
    'D': ["110", "101", "101", "101", "110"],
    'E': ["111", "100", "110", "100", "111"],
    'F': ["111", "100", "110", "100", "100"],
    'G': ["011", "100", "101", "101", "011"],
    'H': ["101", "101", "111", "101", "101"],
    'I': ["111", "010", "010", "010", "111"],
    'J': ["001", "001", "001", "101", "010"],
    'K': ["101", "101", "110", "101", "101"],
    'L': ["100", "100", "100", "100", "111"],
    'M': ["101", "111", "111", "101", "101"],
    'N': ["110", "101", "101", "101", "101"],
    'O': ["010", "101", "101", "101", "010"],
    'P': ["110", "101", "110", "100", "100"],
    'Q': ["010", "101", "101", "110", "011"],
    'R': ["110", "101", "110", "101", "101"],
    'S': ["011", "100", "010", "001", "110"],
    'T': ["111", "010", "010", "010", "010"],
    'U': ["101", "101", "101", "101", "111"],
    'V': ["101", "101", "101", "101", "010"],
    'W': ["101", "101", "111", "111", "101"],
    'X': ["101", "101", "010", "101", "101"],
    'Y': ["101", "101", "010", "010", "010"],
    'Z': ["111", "001", "010", "100", "111"],
    ':': ["000", "010", "000", "010", "000"],
    '.': ["000", "000", "000", "000", "010"],
    ',': ["000", "000", "000", "010", "100"],
    '-': ["000", "000", "111", "000", "000"],
    '+': ["000", "010", "111", "010", "000"],
    '=': ["000", "111", "000", "111", "000"],
    '_': ["000", "000", "000", "000", "111"],
    '/': ["001", "001", "010", "100", "100"],
    "'": ["010", "010", "000", "000", "000"],
    '%': ["101", "001", "010", "100", "101"],
    '°': ["010", "101", "010", "000", "000"],
    '?': ["110", "001", "010", "000", "010"],
    '!': ["010", "010", "010", "000", "010"],
    '(': ["010", "100", "100", "100", "010"],
    ')': ["010", "001", "001", "001", "010"],
    '<': ["001", "010", "100", "010", "001"],
    '>': ["100", "010", "001", "010", "100"],
}

BITMAP: Dict[str, List[List[int]]] = {ch: [[1 if c == '1' else 0 for c in row] for row in rows] for ch, rows in FONT.items()}


def glyph_for(ch: str) -> List[List[int]]:
    if ch in BITMAP:
        return BITMAP[ch]
    up = ch.upper()
    if up in BITMAP:
        return BITMAP[up]
    # Fold accents (Ä -> A, é -> E)
    base = "".join(c for c in unicodedata.normalize("NFKD", up) if unicodedata.category(c) != "Mn")
    return BITMAP.get(base[:1], BITMAP[' '])


class MemoryCanvas:
    """In-memory stand-in for an rgbmatrix FrameCanvas (same method names)."""

    def __init__(self, width: int, height: int) -> None:
        self.width = width
        self.height = height
        self.pixels: List[List[Color]] = [[BLACK] * width for _ in range(height)]

    def SetPixel(self, x: int, y: int, r: int, g: int, b: int) -> None:  # noqa: N802
        if 0 <= x < self.width and 0 <= y < self.height:
            self.pixels[y][x] = (r, g, b)

    def Fill(self, r: int, g: int, b: int) -> None:  # noqa: N802
        row = [(r, g, b)] * self.width
        self.pixels = [list(row) for _ in range(self.height)]

    def Clear(self) -> None:  # noqa: N802
        self.Fill(0, 0, 0)

    def snapshot(self) -> List[List[Color]]:
        return [list(row) for row in self.pixels]


class MatrixDisplay:
    def __init__(
        self,
        cols: int = DEFAULT_COLS,
        rows: int = DEFAULT_ROWS,
        fps: float = DEFAULT_FPS,
        matrix: Optional["RGBMatrix"] = None,  # type: ignore[valid-type]
        clock: Optional[Callable[[], float]] = None,
        sleep: Optional[Callable[[float], None]] = None,
        ascii_interval_s: float = 0.0,
        out: Optional[TextIO] = None,
    ) -> None:
        self._matrix = matrix
        if matrix is not None:
            self._canvas = matrix.CreateFrameCanvas()
            self._width = int(self._canvas.width)
            self._height = int(self._canvas.height)
        else:
            self._canvas = MemoryCanvas(cols, rows)
            self._width = cols
            self._height = rows
        self._fg: Color = WHITE
        self._interval_ms = 1000.0 / max(1.0, float(fps))
        self._clock = clock or monotonic_ms
        self._sleep = sleep or time.sleep
        self._next_frame: Optional[float] = None
        self._last_sync: Optional[float] = None
        self._hooks: List[SyncHook] = []
        self._front: Optional[List[List[Color]]] = None
        self._ascii_interval_ms = ascii_interval_s * 1000.0
        self._last_ascii = 0.0
        self._out = out if out is not None else sys.stdout

    @property
    def hardware(self) -> bool:
        return self._matrix is not None

    # Geometry / state ------------------------------------------------------
    def width(self) -> int:
        return self._width

    def height(self) -> int:
        return self._height

    def fg_color(self, color: Optional[Color] = None) -> Color:
        if color is not None:
            self._fg = tuple(color)  # type: ignore[assignment]
        return self._fg

    def brightness(self, value: Optional[int] = None) -> Optional[int]:
        if self._matrix is None:
            return None
        if value is not None:
            self._matrix.brightness = max(0, min(100, int(value)))
        return int(self._matrix.brightness)

    # Drawing ---------------------------------------------------------------
    def clear(self) -> None:
        # Fill is much cheaper than per-pixel clearing on the matrix canvas
        self._canvas.Fill(0, 0, 0)

    def fill(self, color: Optional[Color] = None) -> None:
        self._canvas.Fill(*(color or self._fg))

    def set_pixel(self, x: int, y: int, color: Optional[Color] = None) -> None:
        if 0 <= x < self._width and 0 <= y < self._height:
            self._canvas.SetPixel(x, y, *(color or self._fg))

    def pixel(self, x: int, y: int) -> Color:
        """Read back a pixel (in-memory framebuffer only)."""
        if not isinstance(self._canvas, MemoryCanvas):
            raise RuntimeError("pixel read-back needs the in-memory framebuffer")
        return self._canvas.pixels[y][x]

    def front_buffer(self) -> Optional[List[List[Color]]]:
        """Last frame pushed by sync() (in-memory framebuffer only)."""
        return self._front

    def draw_line(self, x0: int, y0: int, x1: int, y1: int, color: Optional[Color] = None) -> None:
        dx = abs(x1 - x0)
        dy = -abs(y1 - y0)
        sx = 1 if x0 < x1 else -1
        sy = 1 if y0 < y1 else -1
        err = dx + dy
        while True:
            self.set_pixel(x0, y0, color)
            if x0 == x1 and y0 == y1:
                break
            e2 = 2 * err
            if e2 >= dy:
                err += dy
                x0 += sx
            if e2 <= dx:
                err += dx
                y0 += sy

    def draw_rect(self, x: int, y: int, w: int, h: int, color: Optional[Color] = None, filled: bool = False) -> None:
        if w <= 0 or h <= 0:
            return
        if filled:
            for yy in range(y, y + h):
                for xx in range(x, x + w):
                    self.set_pixel(xx, yy, color)
            return
        self.draw_line(x, y, x + w - 1, y, color)
        self.draw_line(x, y + h - 1, x + w - 1, y + h - 1, color)
        self.draw_line(x, y, x, y + h - 1, color)
        self.draw_line(x + w - 1, y, x + w - 1, y + h - 1, color)

    def draw_circle(self, cx: int, cy: int, r: int, color: Optional[Color] = None) -> None:
        x, y, err = r, 0, 1 - r
        while x >= y:
            for px, py in ((x, y), (y, x), (-y, x), (-x, y), (-x, -y), (-y, -x), (y, -x), (x, -y)):
                self.set_pixel(cx + px, cy + py, color)
            y += 1
            if err < 0:
                err += 2 * y + 1
            else:
                x -= 1
                err += 2 * (y - x) + 1

    def measure_text(self, text: str, scale: int = 1) -> int:
        if not text:
            return 0
        return (len(text) * (CHAR_W + CHAR_SPACING) - CHAR_SPACING) * scale

    def truncate_text(self, text: str, max_width: int, scale: int = 1) -> str:
        """Longest prefix of ``text`` that fits into ``max_width`` pixels."""
        if self.measure_text(text, scale) <= max_width:
            return text
        out = text
        while out and self.measure_text(out, scale) > max_width:
            out = out[:-1]
        return out.rstrip()

    def draw_text(self, text: str, x: int, y: int, color: Optional[Color] = None, scale: int = 1) -> int:
        """Draw ``text`` with its top-left corner at (x, y). Returns the drawn width."""
        cur = x
        for i, ch in enumerate(text):
            for dy, brow in enumerate(glyph_for(ch)):
                for dx, bit in enumerate(brow):
                    if not bit:
                        continue
                    for sy in range(scale):
                        for sx in range(scale):
                            self.set_pixel(cur + dx * scale + sx, y + dy * scale + sy, color)
            cur += CHAR_W * scale
            if i != len(text) - 1:
                cur += CHAR_SPACING * scale
        return cur - x

    def draw_bitmap(self, rows: Sequence[str], x: int, y: int, color: Optional[Color] = None) -> None:
        """Draw a 1-bit image given as strings of '0'/'1' (icons)."""
        for dy, row in enumerate(rows):
            for dx, bit in enumerate(row):
                if bit == '1':
                    self.set_pixel(x + dx, y + dy, color)

    # Sync cycle ------------------------------------------------------------
    def after_sync(self, hook: SyncHook) -> None:
        self._hooks.append(hook)

    def sync(self, notify: bool = True) -> None:
        now = self._clock()
        if self._next_frame is None:
            self._next_frame = now
        wait_ms = self._next_frame - now
        if wait_ms > 0:
            self._sleep(wait_ms / 1000.0)
            now = self._clock()
        self._next_frame += self._interval_ms
        # Avoid drift if we fall behind
        if self._next_frame < now:
            self._next_frame = now + self._interval_ms
        self._push(now)
        delta = 0.0 if self._last_sync is None else now - self._last_sync
        self._last_sync = now
        if notify:
            for hook in list(self._hooks):
                hook(delta, now)

    def _push(self, now: float) -> None:
        if self._matrix is not None:
            self._canvas = self._matrix.SwapOnVSync(self._canvas)
            return
        self._front = self._canvas.snapshot()
        if self._ascii_interval_ms > 0 and now - self._last_ascii >= self._ascii_interval_ms:
            self._last_ascii = now
            self._out.write(self.render_ascii(self._front) + "\n")
            self._out.flush()

    @staticmethod
    def render_ascii(frame: List[List[Color]]) -> str:
        return "\n".join("".join('#' if px != BLACK else '.' for px in row) for row in frame)


def build_matrix_options(opts: argparse.Namespace) -> "RGBMatrixOptions":  # type: ignore[valid-type]
    """Translate command line flags into RGBMatrixOptions (only what was asked for)."""
    options = RGBMatrixOptions()
    options.rows = opts.rows
    options.cols = opts.cols
    # The rgbmatrix library uses 'hardware_mapping' (older docs say gpio-mapping)
    try:
        options.hardware_mapping = opts.gpio_mapping  # type: ignore[attr-defined]
    except AttributeError:
        if hasattr(options, 'gpio_mapping'):
            setattr(options, 'gpio_mapping', opts.gpio_mapping)
    options.brightness = opts.brightness
    options.pwm_lsb_nanoseconds = opts.pwm_lsb_ns if opts.pwm_lsb_ns is not None else 130
    options.pwm_dither_bits = opts.dither_bits if opts.dither_bits is not None else 1
    if opts.limit_refresh_hz is not None:
        options.limit_refresh_rate_hz = opts.limit_refresh_hz
    if opts.pwm_bits is not None:
        options.pwm_bits = int(opts.pwm_bits)
    if opts.slowdown_gpio is not None:
        options.gpio_slowdown = opts.slowdown_gpio
    # Multiplexing/scan defaults vary by panel generation; only override on request
    if opts.multiplexing is not None:
        options.multiplexing = int(opts.multiplexing)
    if opts.scan_mode is not None:
        options.scan_mode = int(opts.scan_mode)
    if opts.row_addr_type is not None:
        options.row_address_type = int(opts.row_addr_type)
    if opts.panel_type:
        options.panel_type = opts.panel_type
    if opts.led_rgb_sequence:
        options.led_rgb_sequence = opts.led_rgb_sequence
    if opts.disable_hardware_pulsing:
        options.disable_hardware_pulsing = True
    options.pixel_mapper_config = ""
    if opts.chain > 1:
        options.chain_length = opts.chain
    if opts.parallel > 1:
        options.parallel = opts.parallel
    return options


def open_display(opts: argparse.Namespace, clock: Optional[Callable[[], float]] = None) -> MatrixDisplay:
    """Build the display from CLI options; in-memory framebuffer when rgbmatrix is missing."""
    if MATRIX_AVAILABLE and not opts.no_matrix:
        matrix = RGBMatrix(options=build_matrix_options(opts))
        return MatrixDisplay(fps=opts.fps, matrix=matrix, clock=clock)
    log.warning("rgbmatrix library not available. Falling back to in-memory framebuffer (developer mode).")
    return MatrixDisplay(
        cols=opts.cols * opts.chain,
        rows=opts.rows * opts.parallel,
        fps=opts.fps,
        clock=clock,
        ascii_interval_s=opts.ascii,
    )


__all__ = [
    "BITMAP",
    "FONT",
    "MATRIX_AVAILABLE",
    "MatrixDisplay",
    "MemoryCanvas",
    "build_matrix_options",
    "glyph_for",
    "open_display",
]

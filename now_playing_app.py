"""Now playing app: current Spotify track with a progress bar.

Layout (64x32):
    title                          (truncated)
    artist
    play/pause mark   m:ss / m:ss
    progress bar                   (bottom rows)

The player is any object with spotipy's playback methods
(``current_user_playing_track``, ``start_playback``, ``pause_playback``,
``next_track``, ``previous_track``). ``spotify_client_from_env()`` builds a
``spotipy.Spotify`` from SPOTIFY_CLIENT_ID / SPOTIFY_CLIENT_SECRET /
SPOTIFY_REDIRECT_URI; the OAuth token is cached in ``.spotify_cache``.

Double press toggles play/pause, rotating skips to the next/previous track.
"""
from __future__ import annotations

import logging
import os
from typing import Any, Callable, Dict, Optional

from apps import App

try:
    import spotipy  # type: ignore
    from spotipy.oauth2 import SpotifyOAuth  # type: ignore
    HAVE_SPOTIPY = True
except Exception:  # noqa: BLE001
    spotipy = None  # type: ignore
    SpotifyOAuth = None  # type: ignore
    HAVE_SPOTIPY = False

log = logging.getLogger(__name__)

POLL_MS = 5000
SCOPE = "user-read-currently-playing user-modify-playback-state user-read-playback-state"
DEFAULT_REDIRECT_URI = "http://127.0.0.1:5000"

TITLE_COLOR = (30, 215, 96)
ARTIST_COLOR = (160, 160, 160)
BAR_COLOR = (30, 215, 96)
BAR_BG = (40, 40, 40)
MARK_COLOR = (255, 255, 255)

PLAY_MARK = ["100", "110", "111", "110", "100"]
PAUSE_MARK = ["101", "101", "101", "101", "101"]


def spotify_client_from_env(cache_path: str = ".spotify_cache") -> Optional[Any]:
    """spotipy client from the environment, or None when spotipy or the credentials are missing."""
    if not HAVE_SPOTIPY:
        log.info("spotipy not available; now playing disabled")
        return None
    client_id = os.environ.get("SPOTIFY_CLIENT_ID")
    client_secret = os.environ.get("SPOTIFY_CLIENT_SECRET")
    if not client_id or not client_secret:
        log.info("SPOTIFY_CLIENT_ID / SPOTIFY_CLIENT_SECRET not set; now playing disabled")
        return None
    auth = SpotifyOAuth(
        client_id=client_id,
        client_secret=client_secret,
        redirect_uri=os.environ.get("SPOTIFY_REDIRECT_URI", DEFAULT_REDIRECT_URI),
        scope=SCOPE,
        cache_path=cache_path,
        open_browser=False,
    )
    return spotipy.Spotify(auth_manager=auth)


def parse_track(data: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Reduce a currently-playing payload to title, artists, progress and state."""
    if not data or not data.get('item'):
        return None
    item = data['item']
    artists = [a.get('name', '') for a in item.get('artists') or [] if a.get('name')]
    return {
        'title': item.get('name') or "Unknown Track",
        'artists': ", ".join(artists) if artists else "Unknown Artist",
        'progress_ms': int(data.get('progress_ms') or 0),
        'duration_ms': int(item.get('duration_ms') or 0),
        'is_playing': bool(data.get('is_playing')),
    }


def format_ms(ms: float) -> str:
    seconds = max(0, int(ms // 1000))
    return f"{seconds // 60}:{seconds % 60:02d}"


class NowPlayingApp(App):
    name = "Now Playing"
    background_interval_ms = POLL_MS

    def __init__(self, display, client: Optional[Any] = None) -> None:
        super().__init__(display)
        self.client = client
        self.track: Optional[Dict[str, Any]] = None
        self.fetched_at = 0.0

    def refresh(self) -> None:
        if self.client is None:
            return
        self.fetch_async(self.client.current_user_playing_track, on_result=self._apply)

    def _apply(self, data: Optional[Dict[str, Any]]) -> None:
        self.track = parse_track(data)
        self.fetched_at = self.timeline.now_ms() if self.timeline is not None else 0.0

    def progress_ms(self) -> float:
        t = self.track
        if not t:
            return 0.0
        progress = float(t['progress_ms'])
        if t['is_playing'] and self.timeline is not None:
            progress += self.timeline.now_ms() - self.fetched_at
        if t['duration_ms']:
            progress = min(progress, float(t['duration_ms']))
        return progress

    # Player commands run on a worker; the track is re-read afterwards
    def _command(self, fn: Callable[[], Any], what: str) -> None:
        if self.client is None or self.timeline is None:
            return
        future = self.timeline.submit(fn)

        def _done(fut) -> None:  # noqa: ANN001
            exc = fut.exception()
            if exc is not None:
                log.warning("player %s failed: %s", what, exc)
            self.refresh()

        self.timeline.when_done(future, _done)

    # Hooks -----------------------------------------------------------------
    def on_activate(self) -> None:
        self.refresh()

    def on_background_tick(self) -> None:
        self.refresh()

    def on_double_press(self) -> None:
        if self.client is None:
            return
        if self.track and self.track['is_playing']:
            self.track = dict(self.track, progress_ms=int(self.progress_ms()), is_playing=False)
            self._command(self.client.pause_playback, "pause")
        else:
            self._command(self.client.start_playback, "play")

    def on_rotate_right(self) -> None:
        if self.client is not None:
            self._command(self.client.next_track, "next")

    def on_rotate_left(self) -> None:
        if self.client is not None:
            self._command(self.client.previous_track, "previous")

    # Rendering -------------------------------------------------------------
    def render(self) -> None:
        d = self.display
        w, h = d.width(), d.height()
        if self.client is None:
            d.draw_text("NO PLAYER", 1, 1, ARTIST_COLOR)
            return
        t = self.track
        if not t:
            d.draw_text("NOTHING PLAYING", 1, 1, ARTIST_COLOR)
            return
        d.draw_text(d.truncate_text(t['title'], w - 2), 1, 1, TITLE_COLOR)
        d.draw_text(d.truncate_text(t['artists'], w - 2), 1, 8, ARTIST_COLOR)
        d.draw_bitmap(PLAY_MARK if t['is_playing'] else PAUSE_MARK, 1, 16, MARK_COLOR)
        progress = self.progress_ms()
        times = f"{format_ms(progress)}/{format_ms(t['duration_ms'])}"
        d.draw_text(d.truncate_text(times, w - 7), 6, 16, ARTIST_COLOR)
        bar_y = h - 3
        d.draw_rect(0, bar_y, w, 2, BAR_BG, filled=True)
        if t['duration_ms']:
            filled = int(w * progress / t['duration_ms'])
            if filled > 0:
                d.draw_rect(0, bar_y, filled, 2, BAR_COLOR, filled=True)


__all__ = ["NowPlayingApp", "format_ms", "parse_track", "spotify_client_from_env"]

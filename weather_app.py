"""Weather app: current conditions from Open-Meteo (no API key needed).

Layout (64x32):
    city name                      (top line)
    15x15 icon | current temp (2x)
               | min/max
    description

Refreshes every 5 minutes in the background and whenever the app becomes
current. Rotating cycles through the configured cities.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Tuple

import requests

from apps import App

log = logging.getLogger(__name__)

API_URL = "https://api.open-meteo.com/v1/forecast"
REFRESH_MS = 5 * 60 * 1000

WEATHER_CITIES: List[Dict[str, Any]] = [
    {'city': 'Basel', 'lat': 47.5596, 'lon': 7.5886},
    {'city': 'Zürich', 'lat': 47.3769, 'lon': 8.5417},
]

AMBER = (255, 140, 0)
GREY = (120, 120, 120)
STALE = (200, 0, 0)


def weather_kind(code: int) -> Tuple[str, str]:
    """Map an Open-Meteo weather_code to (icon kind, short description)."""
    # Ref: https://open-meteo.com/en/docs
    if code == 0:
        return 'sunny', 'Sonnig'
    if code in (1, 2):
        return 'partly', 'Wolkig'
    if code == 3:
        return 'cloudy', 'Bedeckt'
    if code in (45, 48):
        return 'fog', 'Nebel'
    if code in (51, 53, 55, 56, 57, 61, 63, 65, 66, 67, 80, 81, 82):
        return 'rain', 'Regen'
    if code in (71, 73, 75, 77, 85, 86):
        return 'snow', 'Schnee'
    if code in (95, 96, 99):
        return 'thunder', 'Gewitter'
    return 'cloudy', 'Wetter'


# 15x15 icons (1 = lit). Keys match weather_kind().
ICON_SIZE = 15
WEATHER_ICONS: Dict[str, List[str]] = {
    'sunny': ["000000000000000","000000010000000","001000010000100","000100000001000","000000111000000","000001000100000","000010000010000","011010000010110","000010000010000","000001000100000","000000111000000","000100000001000","001000010000100","000000010000000","000000000000000"],
    'partly': ["000000000000000","000000010000000","001000010000100","000100000001000","000000111000000","000001000100000","000010000010000","011010000111000","000010011000100","000001100001110","000001000010001","000101000000001","001000100000001","000000011111110","000000000000000"],
    'cloudy': ["000000000000000","000000000000000","000001110000000","000010001100000","001100000010000","010000000111000","100000011000100","100001100001110","100010000010001","010010000010001","001110000000001","000010000000010","000001111111100","000000000000000","000000000000000"],
    'fog': ["000000000000000","000000000000000","000000000000000","000011111111110","000000000000000","011111111111000","000000000000000","000111111111111","000000000000000","111111111110000","000000000000000","001111111111100","000000000000000","000000000000000","000000000000000"],
    'rain': ["000001110000000","000010001100000","001100000010000","010000000111000","100000011000100","100001100001110","100010000010001","010010000010001","001110000000001","000010000000010","000001111111100","000000000000000","000100100100100","001001001001000","010010010010000"],
    'snow': ["000001110000000","000010001100000","001100000010000","010000000111000","100000011000100","100001100001110","100010000010001","010010000010001","001110000000001","000010000000010","010001111111100","000000000000000","000100010000100","100000000100000","000001000000010"],
    'thunder': ["000001110000000","000010001100000","001100000010000","010000000111000","100000011000110","100001100001001","010010000000001","001110000000001","000010000100010","000001101011100","000000010000000","000000111110000","000000000100000","000000001000000","000000010000000"],
}


def _round(value: Any) -> Optional[int]:
    return round(float(value)) if value is not None else None


def fetch_weather(
    lat: float,
    lon: float,
    timeout: float = 6.0,
    session: Optional[requests.Session] = None,
    tz: str = 'Europe/Zurich',
) -> Dict[str, Any]:
    params = {
        'latitude': lat,
        'longitude': lon,
        'current': 'temperature_2m,weather_code,apparent_temperature,wind_speed_10m',
        'daily': 'temperature_2m_max,temperature_2m_min',
        'timezone': tz,
    }
    # Short connect timeout so a dead network does not stall the worker for long
    connect_timeout = min(1.0, max(0.2, timeout / 3.0))
    read_timeout = max(2.5, timeout)
    http = session or requests
    r = http.get(API_URL, params=params, timeout=(connect_timeout, read_timeout))
    r.raise_for_status()
    j = r.json()
    cur = j.get('current') or {}
    daily = j.get('daily') or {}
    code = int(cur.get('weather_code') or 0)
    kind, desc = weather_kind(code)
    tmin = list(daily.get('temperature_2m_min') or [])
    tmax = list(daily.get('temperature_2m_max') or [])
    return {
        'now_temp': _round(cur.get('temperature_2m')),
        'app_temp': _round(cur.get('apparent_temperature')),
        'wind': _round(cur.get('wind_speed_10m')),
        'code': code,
        'kind': kind,
        'desc': desc,
        'tmin': _round(tmin[0]) if tmin else None,
        'tmax': _round(tmax[0]) if tmax else None,
    }


def _deg(value: Optional[int]) -> str:
    return f"{value}°" if value is not None else "--°"


class WeatherApp(App):
    name = "Weather"
    background_interval_ms = REFRESH_MS

    def __init__(
        self,
        display,
        cities: Optional[List[Dict[str, Any]]] = None,
        timeout: float = 4.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        super().__init__(display)
        self.cities = list(cities or WEATHER_CITIES)
        self.timeout = timeout
        self.session = session or requests.Session()
        self.city_index = 0
        self.weather: Dict[str, Dict[str, Any]] = {}
        self.stale = False

    @property
    def city(self) -> Dict[str, Any]:
        return self.cities[self.city_index]

    def fetch_all(self) -> Dict[str, Dict[str, Any]]:
        """Blocking: fetch every city, skipping the ones that fail."""
        out: Dict[str, Dict[str, Any]] = {}
        for c in self.cities:
            try:
                out[c['city']] = fetch_weather(c['lat'], c['lon'], timeout=self.timeout, session=self.session)
            except (requests.RequestException, ValueError) as e:
                log.warning("weather fetch error for %s: %s", c['city'], e)
        return out

    def _apply(self, result: Dict[str, Dict[str, Any]]) -> None:
        self.weather.update(result)
        self.stale = len(result) < len(self.cities)

    def refresh(self) -> None:
        self.fetch_async(self.fetch_all, on_result=self._apply)

    # Hooks -----------------------------------------------------------------
    def initialize(self) -> None:
        # Blocking on purpose: the first frame should already show data
        self._apply(self.fetch_all())

    def on_activate(self) -> None:
        self.refresh()

    def on_background_tick(self) -> None:
        self.refresh()

    def on_exit(self) -> None:
        self.session.close()

    def on_rotate_left(self) -> None:
        self.city_index = (self.city_index - 1) % len(self.cities)

    def on_rotate_right(self) -> None:
        self.city_index = (self.city_index + 1) % len(self.cities)

    # Rendering -------------------------------------------------------------
    def render(self) -> None:
        d = self.display
        w = self.weather.get(self.city['city'])
        d.draw_text(d.truncate_text(self.city['city'], d.width() - 4), 1, 1, GREY)
        if self.stale:
            d.set_pixel(d.width() - 1, 0, STALE)
        kind = w['kind'] if w else 'cloudy'
        d.draw_bitmap(WEATHER_ICONS.get(kind) or WEATHER_ICONS['cloudy'], 1, 8, AMBER)
        text_x = ICON_SIZE + 5
        d.draw_text(_deg(w.get('now_temp') if w else None), text_x, 8, AMBER, scale=2)
        minmax = f"{_deg(w.get('tmin') if w else None)}/{_deg(w.get('tmax') if w else None)}"
        d.draw_text(d.truncate_text(minmax, d.width() - text_x), text_x, 20, GREY)
        if w:
            d.draw_text(d.truncate_text(w['desc'], d.width() - 2), 1, 26, GREY)


__all__ = ["WeatherApp", "WEATHER_CITIES", "fetch_weather", "weather_kind"]

"""Departures app: next public transport departures (transport.opendata.ch).

One line per departure: line id, destination, minutes until departure.
Departures leaving in less than 3 minutes are hidden. Rotating flips between
the first and the second page; a double press moves to the next configured
stop.
"""
from __future__ import annotations

import logging
import re
import unicodedata
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union

import requests

from apps import App

log = logging.getLogger(__name__)

API_URL = "https://transport.opendata.ch/v1/stationboard"
REFRESH_MS = 30 * 1000
MIN_MINUTES = 3

HEADER_COLOR = (255, 140, 0)
ROW_COLOR = (200, 200, 200)
DELAY_COLOR = (255, 40, 0)
RULE_Y = 7
ROW_TOP = 9
ROW_PITCH = 6


def fetch_stationboard(
    station: str,
    limit: int = 8,
    transportations: Optional[List[str]] = None,
    timeout: Union[float, Tuple[float, float]] = 10.0,
    session: Optional[requests.Session] = None,
) -> List[Dict[str, Any]]:
    """Upcoming departures for ``station`` as dicts: line, category, number, dest, mins, delay, plat.

    Over-fetches so that enough rows remain after dropping imminent departures.
    Sorted by minutes plus delay.
    """
    fetch_limit = limit + max(10, limit * 2)
    params: Dict[str, Any] = {"station": station, "limit": fetch_limit}
    if transportations:
        params["transportations[]"] = transportations
    http = session or requests
    r = http.get(API_URL, params=params, timeout=timeout)
    r.raise_for_status()
    rows: List[Dict[str, Any]] = []
    for j in r.json().get("stationboard", []):
        stop = j.get("stop") or {}
        when = (stop.get("prognosis") or {}).get("departure") or stop.get("departure")
        if not when:
            continue
        try:
            dep = datetime.fromisoformat(when.replace("Z", "+00:00"))
        except ValueError:
            continue
        now = datetime.now(dep.tzinfo)
        category = (j.get("category") or "").strip()
        number = (j.get("number") or "").strip()
        rows.append({
            "line": f"{category}{number}".strip(),
            "category": category,
            "number": number,
            "dest": j.get("to") or "",
            "mins": max(0, int((dep - now).total_seconds() // 60)),
            "delay": stop.get("delay") or 0,
            "plat": stop.get("platform") or "",
        })
    rows = [row for row in rows if row["mins"] >= MIN_MINUTES]
    rows.sort(key=lambda row: row["mins"] + (row["delay"] or 0))
    return rows[:limit]


def _fold(s: str) -> str:
    nk = unicodedata.normalize("NFKD", s)
    return "".join(ch for ch in nk if unicodedata.category(ch) != "Mn").lower().strip()


def station_city(station: str) -> str:
    return station.split(",", 1)[0].strip()


BAHNHOF_PATTERN = re.compile(r"bahnhof", re.IGNORECASE)
STRASSE_PATTERN = re.compile(r"strasse", re.IGNORECASE)


def short_destination(dest: str, station: str) -> str:
    """Drop the city prefix when it matches the station's city ('Basel, Bad. Bhf' -> 'Bad. Bhf')."""
    d = dest.replace("\n", " ").strip()
    if "," in d:
        city_part, remainder = d.split(",", 1)
        if _fold(city_part) == _fold(station_city(station)):
            d = remainder.strip()
    d = BAHNHOF_PATTERN.sub("Bhf", d)
    return STRASSE_PATTERN.sub("Str", d)


def line_label(row: Dict[str, Any]) -> str:
    """Trams show just their number; everything else category + number."""
    category = (row.get("category") or "").upper()
    if category in {"T", "TRAM"} and row.get("number"):
        return row["number"]
    return row.get("line") or "?"


class DeparturesApp(App):
    name = "Departures"
    background_interval_ms = REFRESH_MS

    def __init__(
        self,
        display,
        stations: Optional[List[str]] = None,
        limit: int = 8,
        timeout: float = 5.0,
        transportations: Optional[List[str]] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        super().__init__(display)
        self.stations = list(stations or ["Basel SBB"])
        self.limit = limit
        self.timeout = timeout
        self.transportations = transportations
        self.session = session or requests.Session()
        self.station_index = 0
        self.page = 0
        self.rows: Dict[str, List[Dict[str, Any]]] = {}

    @property
    def station(self) -> str:
        return self.stations[self.station_index]

    def rows_per_page(self) -> int:
        return max(1, (self.display.height() - ROW_TOP + 1) // ROW_PITCH)

    def visible_rows(self) -> List[Dict[str, Any]]:
        rows = self.rows.get(self.station, [])
        per_page = self.rows_per_page()
        start = self.page * per_page
        if start >= len(rows):
            start = 0
        return rows[start:start + per_page]

    def _fetch(self, station: str) -> Tuple[str, List[Dict[str, Any]]]:
        connect_timeout = min(1.0, max(0.2, self.timeout / 3.0))
        rows = fetch_stationboard(
            station, self.limit, self.transportations,
            timeout=(connect_timeout, max(2.5, self.timeout)), session=self.session,
        )
        return station, rows

    def _apply(self, result: Tuple[str, List[Dict[str, Any]]]) -> None:
        station, rows = result
        self.rows[station] = rows

    def refresh(self):
        return self.fetch_async(self._fetch, self.station, on_result=self._apply)

    # Hooks -----------------------------------------------------------------
    def initialize(self):
        return self.refresh()

    def on_activate(self) -> None:
        self.page = 0
        self.refresh()

    def on_background_tick(self) -> None:
        self.refresh()

    def on_exit(self) -> None:
        self.session.close()

    def on_double_press(self) -> None:
        self.station_index = (self.station_index + 1) % len(self.stations)
        self.page = 0
        self.refresh()

    def _toggle_page(self) -> None:
        self.page = 0 if self.page == 1 else 1

    on_rotate_left = _toggle_page
    on_rotate_right = _toggle_page

    # Rendering -------------------------------------------------------------
    def render(self) -> None:
        d = self.display
        w = d.width()
        d.draw_text(d.truncate_text(self.station, w - 2), 1, 1, HEADER_COLOR)
        d.draw_line(0, RULE_Y, w - 1, RULE_Y, HEADER_COLOR)
        for i, row in enumerate(self.visible_rows()):
            y = ROW_TOP + i * ROW_PITCH
            mins = f"{row['mins']}'"
            mins_w = d.measure_text(mins)
            label = line_label(row)
            d.draw_text(label, 0, y, ROW_COLOR)
            dest_x = d.measure_text(label) + 2
            dest = d.truncate_text(short_destination(row["dest"], self.station), w - dest_x - mins_w - 2)
            d.draw_text(dest, dest_x, y, ROW_COLOR)
            d.draw_text(mins, w - mins_w, y, DELAY_COLOR if row.get("delay") else ROW_COLOR)


__all__ = ["DeparturesApp", "fetch_stationboard", "line_label", "short_destination"]

from __future__ import annotations

import unittest
from datetime import datetime, timedelta, timezone
from unittest import mock

from departures_app import DeparturesApp, fetch_stationboard, line_label, short_destination
from helpers import InlineTimeline, ManualClock, make_display


def departure(minutes: float, category: str = "T", number: str = "8", to: str = "Basel, Kleinhüningen",
              delay=None, prognosis: bool = False) -> dict:
    when = (datetime.now(timezone.utc) + timedelta(minutes=minutes, seconds=30)).isoformat()
    stop = {"departure": None if prognosis else when, "delay": delay, "platform": "A"}
    if prognosis:
        stop["prognosis"] = {"departure": when}
    return {"category": category, "number": number, "to": to, "stop": stop}


def board_session(entries) -> mock.Mock:
    response = mock.Mock()
    response.json.return_value = {"stationboard": entries}
    response.raise_for_status.return_value = None
    session = mock.Mock()
    session.get.return_value = response
    return session


class StationboardTests(unittest.TestCase):
    def test_imminent_departures_are_dropped_and_sorted(self) -> None:
        session = board_session([
            departure(10, number="2"),
            departure(1, number="3"),
            departure(5, number="6", delay=8),
            departure(7, number="14", prognosis=True),
            {"category": "T", "number": "9", "stop": {}},
        ])
        rows = fetch_stationboard("Basel SBB", limit=8, session=session)
        self.assertEqual([r["number"] for r in rows], ["14", "2", "6"])
        self.assertEqual(rows[0]["mins"], 7)
        self.assertEqual(rows[2]["delay"], 8)
        self.assertEqual(rows[0]["line"], "T14")

    def test_limit_and_query(self) -> None:
        session = board_session([departure(m) for m in range(3, 20)])
        rows = fetch_stationboard("Basel SBB", limit=2, transportations=["tram"], session=session)
        self.assertEqual(len(rows), 2)
        params = session.get.call_args.kwargs["params"]
        self.assertEqual(params["station"], "Basel SBB")
        self.assertGreater(params["limit"], 2)
        self.assertEqual(params["transportations[]"], ["tram"])


class FormattingTests(unittest.TestCase):
    def test_same_city_prefix_is_dropped(self) -> None:
        self.assertEqual(short_destination("Basel, Badischer Bahnhof", "Basel SBB"), "Badischer Bhf")
        self.assertEqual(short_destination("Zürich, Bahnhofstrasse", "Zurich, HB"), "BhfStr")
        self.assertEqual(short_destination("Allschwil, Dorf", "Basel SBB"), "Allschwil, Dorf")

    def test_line_label(self) -> None:
        self.assertEqual(line_label({"category": "T", "number": "8", "line": "T8"}), "8")
        self.assertEqual(line_label({"category": "IR", "number": "36", "line": "IR36"}), "IR36")
        self.assertEqual(line_label({}), "?")


class DeparturesAppTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = ManualClock()
        self.tl = InlineTimeline(clock=self.clock)
        self.session = board_session([departure(m, number=str(m)) for m in range(3, 12)])
        self.app = DeparturesApp(make_display(self.clock), stations=["Basel SBB", "Basel, Bankverein"],
                                 session=self.session)
        self.app.bind(self.tl)

    def tearDown(self) -> None:
        self.tl.close()

    def test_initialize_loads_rows_for_current_station(self) -> None:
        self.assertIsNotNone(self.app.initialize())
        self.tl.run_due()
        self.assertEqual(len(self.app.rows["Basel SBB"]), 8)

    def test_rotation_flips_pages(self) -> None:
        self.app.initialize()
        self.tl.run_due()
        self.assertEqual(self.app.rows_per_page(), 4)
        first = self.app.visible_rows()
        self.app.on_rotate_right()
        self.assertEqual(self.app.page, 1)
        self.assertNotEqual(self.app.visible_rows(), first)
        self.app.on_rotate_left()
        self.assertEqual(self.app.visible_rows(), first)

    def test_double_press_moves_to_next_station(self) -> None:
        self.app.page = 1
        self.app.on_double_press()
        self.tl.run_due()
        self.assertEqual(self.app.station, "Basel, Bankverein")
        self.assertEqual(self.app.page, 0)
        self.assertIn("Basel, Bankverein", self.app.rows)
        self.app.on_double_press()
        self.assertEqual(self.app.station, "Basel SBB")

    def test_render_draws_header_rule(self) -> None:
        self.app.initialize()
        self.tl.run_due()
        self.app.render()
        self.assertNotEqual(self.app.display.pixel(30, 7), (0, 0, 0))


if __name__ == "__main__":  # pragma: no cover
    unittest.main(exit=False)

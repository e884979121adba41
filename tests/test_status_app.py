from __future__ import annotations

import unittest

from gestures import Gesture
from helpers import BareApp, InlineTimeline, ManualClock, advance, make_display
from scheduler import AppScheduler
from status_app import CHECK_MS, StatusApp, format_uptime


class FormatUptimeTests(unittest.TestCase):
    def test_formats(self) -> None:
        self.assertEqual(format_uptime(None), "--")
        self.assertEqual(format_uptime(59), "0h 00m")
        self.assertEqual(format_uptime(3 * 3600 + 7 * 60 + 12), "3h 07m")
        self.assertEqual(format_uptime(2 * 86400 + 5 * 3600), "2d 5h")


class StatusAppTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = ManualClock()
        self.tl = InlineTimeline(clock=self.clock)
        self.display = make_display(self.clock)
        self.checks = 0
        self.app = StatusApp(self.display, collect=self.collect)
        self.other = BareApp(self.display, "Other")
        self.sched = AppScheduler(self.tl, [self.app, self.other], display=self.display)
        self.sched.initialize_all()
        self.tl.run_due()

    def tearDown(self) -> None:
        self.tl.close()

    def collect(self):
        self.checks += 1
        return {"host": "pi", "ip": "10.0.0.7", "load": 0.25, "uptime": 7200.0, "checked_at": "12:00:00"}

    def test_activation_checks_and_background_repeats(self) -> None:
        self.assertEqual(self.checks, 1)
        self.assertEqual(self.app.status["ip"], "10.0.0.7")
        advance(self.tl, self.clock, CHECK_MS * 2)
        self.assertEqual(self.checks, 3)

    def test_long_press_captures_single_press(self) -> None:
        self.sched.dispatch(Gesture.LONG_PRESS)
        self.assertTrue(self.app.capture_default_press)
        with self.assertLogs("status_app", level="INFO"):
            self.sched.dispatch(Gesture.SINGLE_PRESS)
        self.tl.run_due()
        self.assertIs(self.sched.current_app, self.app)
        self.assertEqual(self.checks, 2)

        self.sched.dispatch(Gesture.LONG_PRESS)
        self.sched.dispatch(Gesture.SINGLE_PRESS)
        self.assertIs(self.sched.current_app, self.other)

    def test_double_press_pauses_and_resumes_checks(self) -> None:
        with self.assertLogs("status_app", level="INFO") as cm:
            self.sched.dispatch(Gesture.DOUBLE_PRESS)
        self.assertTrue(self.app.paused)
        self.assertIn("status checks paused", cm.output[0])
        advance(self.tl, self.clock, CHECK_MS * 3)
        self.assertEqual(self.checks, 1)

        self.sched.dispatch(Gesture.DOUBLE_PRESS)
        self.tl.run_due()
        self.assertFalse(self.app.paused)
        self.assertEqual(self.checks, 2)
        advance(self.tl, self.clock, CHECK_MS)
        self.assertEqual(self.checks, 3)

    def test_render(self) -> None:
        self.app.render()
        self.assertEqual(self.display.pixel(62, 2), (0, 255, 0))
        self.app.paused = True
        self.app.render()
        self.assertEqual(self.display.pixel(62, 2), (255, 255, 0))


if __name__ == "__main__":  # pragma: no cover
    unittest.main(exit=False)

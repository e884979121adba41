from __future__ import annotations

import unittest

from control_service import ControlService
from helpers import ManualClock, RecordingApp, make_display
from scheduler import AppScheduler
from timeline import Timeline


class ControlServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = ManualClock()
        self.tl = Timeline(clock=self.clock)
        display = make_display(self.clock)
        self.journal = []
        self.apps = [RecordingApp(display, name, self.journal) for name in ("A", "B")]
        self.sched = AppScheduler(self.tl, self.apps)
        self.control = ControlService(self.tl, self.sched)

    def tearDown(self) -> None:
        self.tl.close()

    def test_trigger_is_applied_on_timeline(self) -> None:
        result = self.control.trigger_single_press()
        self.assertEqual(result, {"success": True, "message": "Single press triggered successfully"})
        self.assertEqual(self.sched.current_index, 0)
        self.tl.run_due()
        self.assertEqual(self.sched.current_index, 1)

    def test_each_trigger_reaches_the_app(self) -> None:
        self.control.trigger_double_press()
        self.control.trigger_triple_press()
        self.control.trigger_long_press()
        self.control.trigger_rotate_left()
        self.control.trigger_rotate_right()
        self.tl.run_due()
        self.assertEqual([w for _, w in self.journal], [
            "double_press", "triple_press", "long_press", "rotate_left", "rotate_right",
        ])

    def test_trigger_refused_while_quitting(self) -> None:
        self.sched.request_quit()
        result = self.control.trigger_rotate_left()
        self.assertFalse(result["success"])
        self.assertIn("shutting down", result["message"])

    def test_current_app_info(self) -> None:
        self.control.trigger_single_press()
        self.tl.run_due()
        self.assertEqual(self.control.get_current_app_info()["app_name"], "B")

    def test_current_app_info_is_the_last_published_snapshot(self) -> None:
        before = self.control.get_current_app_info()
        self.control.trigger_single_press()
        self.assertEqual(self.control.get_current_app_info(), before)
        before["app_name"] = "changed by caller"
        self.tl.run_due()
        info = self.control.get_current_app_info()
        self.assertEqual((info["current_index"], info["app_name"]), (1, "B"))
        self.assertEqual(self.sched.get_current_app_info()["app_name"], "B")


if __name__ == "__main__":  # pragma: no cover
    unittest.main(exit=False)

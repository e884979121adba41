from __future__ import annotations

import unittest

from apps import App
from helpers import BareApp, InlineTimeline, ManualClock, advance, make_display


class TickingApp(BareApp):
    background_interval_ms = 500

    def __init__(self, display) -> None:
        super().__init__(display, "Ticking")
        self.ticks = 0

    def on_background_tick(self) -> None:
        self.ticks += 1
        if self.ticks == 2:
            raise RuntimeError("tick")


class AppBaseTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = ManualClock()
        self.tl = InlineTimeline(clock=self.clock)
        self.display = make_display(self.clock)

    def tearDown(self) -> None:
        self.tl.close()

    def test_name_defaults_to_class_name(self) -> None:
        class Plain(App):
            def render(self) -> None:
                pass

        self.assertEqual(Plain(self.display).name, "Plain")

    def test_render_is_required(self) -> None:
        with self.assertRaises(NotImplementedError):
            App(self.display).render()

    def test_optional_hooks_default_to_none(self) -> None:
        app = BareApp(self.display)
        for hook in ("initialize", "on_activate", "on_deactivate", "on_background_tick", "on_exit",
                     "on_single_press", "on_double_press", "on_triple_press", "on_long_press",
                     "on_rotate_left", "on_rotate_right"):
            self.assertIsNone(getattr(app, hook), hook)

    def test_capture_change_notifies_once_per_change(self) -> None:
        seen = []
        app = BareApp(self.display)
        app.bind(self.tl, seen.append)
        self.assertTrue(app.toggle_capture_default_press())
        app.capture_default_press = True
        self.assertFalse(app.toggle_capture_default_press())
        self.assertEqual(seen, [app, app])

    def test_background_timer_needs_hook_and_interval(self) -> None:
        app = BareApp(self.display)
        app.bind(self.tl)
        self.assertFalse(app.start_background(1000))

    def test_background_tick_errors_are_logged(self) -> None:
        app = TickingApp(self.display)
        app.bind(self.tl)
        self.assertTrue(app.start_background())
        with self.assertLogs("apps", level="ERROR") as cm:
            advance(self.tl, self.clock, 1600)
        self.assertEqual(app.ticks, 3)
        self.assertIn("background tick failed for app Ticking", cm.output[0])
        app.cancel_background()
        advance(self.tl, self.clock, 1000)
        self.assertEqual(app.ticks, 3)

    def test_fetch_async_applies_result_on_timeline(self) -> None:
        app = BareApp(self.display)
        app.bind(self.tl)
        results = []
        app.fetch_async(lambda x: x * 2, 21, on_result=results.append)
        self.assertTrue(app.fetch_in_flight)
        self.assertEqual(results, [])
        self.tl.run_due()
        self.assertEqual(results, [42])
        self.assertFalse(app.fetch_in_flight)

    def test_fetch_async_skips_while_in_flight(self) -> None:
        app = BareApp(self.display)
        app.bind(self.tl)
        results = []
        self.assertIsNotNone(app.fetch_async(lambda: 1, on_result=results.append))
        self.assertIsNone(app.fetch_async(lambda: 2, on_result=results.append))
        self.tl.run_due()
        self.assertEqual(results, [1])

    def test_fetch_async_failure_is_logged(self) -> None:
        app = BareApp(self.display, "Net")
        app.bind(self.tl)

        def fail() -> None:
            raise OSError("offline")

        app.fetch_async(fail, on_result=lambda r: None)
        with self.assertLogs("apps", level="WARNING") as cm:
            self.tl.run_due()
        self.assertIn("fetch failed for app Net: offline", cm.output[0])
        self.assertFalse(app.fetch_in_flight)

    def test_fetch_async_requires_binding(self) -> None:
        with self.assertRaises(RuntimeError):
            BareApp(self.display).fetch_async(lambda: None, on_result=lambda r: None)


if __name__ == "__main__":  # pragma: no cover
    unittest.main(exit=False)

from __future__ import annotations

import threading
import unittest
from concurrent.futures import Future

from helpers import ManualClock, advance
from timeline import Timeline


class TimelineTests(unittest.TestCase):
    def setUp(self) -> None:
        self.clock = ManualClock(1000.0)
        self.tl = Timeline(clock=self.clock)
        self.calls = []

    def tearDown(self) -> None:
        self.tl.close()

    def test_timers_run_in_deadline_then_schedule_order(self) -> None:
        self.tl.call_later(20, self.calls.append, "b")
        self.tl.call_later(10, self.calls.append, "a")
        self.tl.call_later(20, self.calls.append, "c")
        advance(self.tl, self.clock, 50)
        self.assertEqual(self.calls, ["a", "b", "c"])

    def test_timer_not_run_before_deadline(self) -> None:
        self.tl.call_later(100, self.calls.append, "x")
        advance(self.tl, self.clock, 99)
        self.assertEqual(self.calls, [])
        advance(self.tl, self.clock, 1)
        self.assertEqual(self.calls, ["x"])

    def test_cancelled_timer_never_fires(self) -> None:
        timer = self.tl.call_later(10, self.calls.append, "x")
        timer.cancel()
        timer.cancel()
        advance(self.tl, self.clock, 100)
        self.assertEqual(self.calls, [])
        self.assertEqual(self.tl.pending(), 0)

    def test_call_soon_from_callback_waits_for_next_pass(self) -> None:
        def first() -> None:
            self.calls.append("first")
            self.tl.call_soon(self.calls.append, "again")

        self.tl.call_soon(first)
        self.assertEqual(self.tl.run_due(), 1)
        self.assertEqual(self.calls, ["first"])
        self.tl.run_due()
        self.assertEqual(self.calls, ["first", "again"])

    def test_posted_work_runs_before_due_timers(self) -> None:
        self.tl.call_soon(self.calls.append, "timer")
        self.tl.post(self.calls.append, "posted")
        self.tl.run_due()
        self.assertEqual(self.calls, ["posted", "timer"])

    def test_post_from_other_thread(self) -> None:
        t = threading.Thread(target=self.tl.post, args=(self.calls.append, "from-thread"))
        t.start()
        t.join()
        self.assertEqual(self.tl.next_deadline(), self.clock.now)
        self.tl.run_due()
        self.assertEqual(self.calls, ["from-thread"])

    def test_call_every_rearms_from_previous_deadline(self) -> None:
        fired = []
        self.tl.call_every(100, lambda: fired.append(self.clock.now))
        # Run late: the second tick stays on the 100 ms grid
        self.clock.now = 1130.0
        self.tl.run_due()
        advance(self.tl, self.clock, 170)
        self.assertEqual(fired, [1130.0, 1200.0, 1300.0])

    def test_call_every_resyncs_when_far_behind(self) -> None:
        timer = self.tl.call_every(100, lambda: None)
        self.clock.now = 1550.0
        self.tl.run_due()
        self.assertEqual(timer.deadline, 1650.0)

    def test_call_every_rejects_non_positive_interval(self) -> None:
        with self.assertRaises(ValueError):
            self.tl.call_every(0, lambda: None)

    def test_callback_errors_are_logged_and_loop_continues(self) -> None:
        def boom() -> None:
            raise RuntimeError("boom")

        self.tl.call_soon(boom)
        self.tl.call_soon(self.calls.append, "after")
        with self.assertLogs("timeline", level="ERROR"):
            self.tl.run_due()
        self.assertEqual(self.calls, ["after"])

    def test_when_done_delivers_on_timeline(self) -> None:
        fut: Future = Future()
        self.tl.when_done(fut, lambda f: self.calls.append(f.result()))
        fut.set_result(42)
        self.assertEqual(self.calls, [])
        self.tl.run_due()
        self.assertEqual(self.calls, [42])

    def test_submit_runs_on_worker(self) -> None:
        fut = self.tl.submit(lambda a, b: a + b, 2, 3)
        self.assertEqual(fut.result(timeout=5), 5)

    def test_close_cancels_timers(self) -> None:
        timer = self.tl.call_later(10, self.calls.append, "x")
        self.tl.close()
        self.assertTrue(timer.cancelled)
        self.assertIsNone(self.tl.next_deadline())

    def test_run_forever_until_stop(self) -> None:
        tl = Timeline()
        tl.call_later(5, self.calls.append, "tick")
        tl.call_later(10, tl.stop)
        tl.run_forever()
        self.assertEqual(self.calls, ["tick"])
        self.assertFalse(tl.running)
        tl.close()


if __name__ == "__main__":  # pragma: no cover
    unittest.main(exit=False)

"""Remote-control surface: inject gestures without touching the hardware.

Each trigger hands the gesture to the scheduler on the timeline (so it is
safe to call from any thread, e.g. a web handler) and answers with a small
status dict. Gestures injected here skip the decoder entirely.
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict

from gestures import Gesture

if TYPE_CHECKING:  # pragma: no cover
    from scheduler import AppScheduler
    from timeline import Timeline

log = logging.getLogger(__name__)

Result = Dict[str, Any]


class ControlService:
    def __init__(self, timeline: "Timeline", scheduler: "AppScheduler") -> None:
        self.timeline = timeline
        self.scheduler = scheduler

    def trigger(self, gesture: Gesture) -> Result:
        label = gesture.value.replace("_", " ")
        if self.scheduler.quitting:
            return {"success": False, "message": f"Cannot trigger {label}: shutting down"}
        self.timeline.post(self.scheduler.dispatch, gesture)
        log.debug("remote %s queued", gesture.value)
        return {"success": True, "message": f"{label.capitalize()} triggered successfully"}

    def trigger_single_press(self) -> Result:
        return self.trigger(Gesture.SINGLE_PRESS)

    def trigger_double_press(self) -> Result:
        return self.trigger(Gesture.DOUBLE_PRESS)

    def trigger_triple_press(self) -> Result:
        return self.trigger(Gesture.TRIPLE_PRESS)

    def trigger_long_press(self) -> Result:
        return self.trigger(Gesture.LONG_PRESS)

    def trigger_rotate_left(self) -> Result:
        return self.trigger(Gesture.ROTATE_LEFT)

    def trigger_rotate_right(self) -> Result:
        return self.trigger(Gesture.ROTATE_RIGHT)

    def get_current_app_info(self) -> Result:
        """Snapshot published by the scheduler at its last switch; does not wait for queued triggers."""
        return self.scheduler.get_current_app_info()


__all__ = ["ControlService"]

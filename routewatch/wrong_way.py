"""Detects travel against the route's expected direction."""

from dataclasses import dataclass
from typing import Optional

from .geo import angle_difference
from .transport import ModeThresholds


@dataclass(frozen=True)
class WrongWayResult:
    evaluated: bool  # False when too slow or a heading was missing
    angle_difference: Optional[float]
    active: bool
    count: int  # alerts raised in the current episode
    entered: bool = False
    cleared: bool = False
    alert: bool = False  # entry, or a repeat once the cooldown has passed


class WrongWayDetector:
    """Compares movement heading with the route direction.

    Below the mode's minimum speed the heading is noise, so nothing is
    judged and the current episode (if any) is held unchanged.

    Args:
        cooldown_ms: Minimum time between alerts while an episode stays
            active. None disables repeat alerts.
    """

    def __init__(self, cooldown_ms: Optional[float] = None):
        self.cooldown_ms = cooldown_ms
        self.active = False
        self.count = 0
        self.last_alert_ms: Optional[float] = None
        self.entered_at_ms: Optional[float] = None

    def reset(self):
        self.active = False
        self.count = 0
        self.last_alert_ms = None
        self.entered_at_ms = None

    def update(self, speed: float, movement_heading: Optional[float],
               expected_heading: Optional[float], thresholds: ModeThresholds,
               now_ms: float) -> WrongWayResult:
        if (speed < thresholds.min_speed or movement_heading is None
                or expected_heading is None):
            return WrongWayResult(evaluated=False, angle_difference=None,
                                  active=self.active, count=self.count)

        diff = angle_difference(movement_heading, expected_heading)
        wrong_way = diff > thresholds.wrong_way_threshold

        if wrong_way and not self.active:
            self.active = True
            self.count = 1
            self.last_alert_ms = now_ms
            self.entered_at_ms = now_ms
            return WrongWayResult(True, diff, True, self.count, entered=True, alert=True)

        if wrong_way:
            if (self.cooldown_ms is not None and
                    now_ms - self.last_alert_ms >= self.cooldown_ms):
                self.count += 1
                self.last_alert_ms = now_ms
                return WrongWayResult(True, diff, True, self.count, alert=True)
            return WrongWayResult(True, diff, True, self.count)

        if self.active:
            self.reset()
            return WrongWayResult(True, diff, False, 0, cleared=True)

        return WrongWayResult(True, diff, False, 0)

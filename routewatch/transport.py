"""Transport modes, their thresholds, and speed-based mode classification."""

from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .config import CONFIG


class TransportMode(Enum):
    WALKING = "walking"
    CYCLING = "cycling"
    DRIVING = "driving"
    TRANSIT = "transit"


@dataclass(frozen=True)
class ModeThresholds:
    min_speed: float  # m/s - below this, heading is not trusted
    max_speed: float  # m/s - upper plausible speed
    route_deviation_distance: float  # meters from route before off-route
    wrong_way_threshold: float  # degrees between movement and route direction
    recalculate_distance: float  # meters from route before forcing a recalculation


TRANSPORT_THRESHOLDS = {
    TransportMode.WALKING: ModeThresholds(
        min_speed=0.5, max_speed=3.0,
        route_deviation_distance=20, wrong_way_threshold=120, recalculate_distance=50,
    ),
    TransportMode.CYCLING: ModeThresholds(
        min_speed=1.0, max_speed=15.0,
        route_deviation_distance=30, wrong_way_threshold=90, recalculate_distance=100,
    ),
    TransportMode.DRIVING: ModeThresholds(
        min_speed=2.0, max_speed=50.0,
        route_deviation_distance=50, wrong_way_threshold=90, recalculate_distance=200,
    ),
    TransportMode.TRANSIT: ModeThresholds(
        min_speed=0.0, max_speed=30.0,
        route_deviation_distance=100, wrong_way_threshold=180, recalculate_distance=300,
    ),
}


def thresholds_for(mode: TransportMode) -> ModeThresholds:
    return TRANSPORT_THRESHOLDS[mode]


@dataclass(frozen=True)
class Classification:
    """Result of feeding one speed sample to the classifier"""
    mean_speed: Optional[float]  # None until the window is full
    estimate: Optional[TransportMode]  # raw estimate for this window
    stable_mode: Optional[TransportMode]  # estimate after hysteresis


class TransportModeClassifier:
    """Estimates transport mode from a rolling window of speeds.

    The raw estimate is only produced once the window is full. A change of
    stable mode needs ``confirm`` consecutive identical estimates, so a mean
    that oscillates around a band edge never flips the mode. Transit is never
    detected from speed.
    """

    def __init__(self, initial_mode: Optional[TransportMode] = None,
                 window: Optional[int] = None, confirm: Optional[int] = None,
                 config: Optional[dict] = None):
        self.config = config or CONFIG
        self.window = window or self.config["speed_window"]
        self.confirm = confirm or self.config["mode_confirm_samples"]
        self.speeds: deque[float] = deque(maxlen=self.window)
        self.stable_mode = initial_mode
        self._candidate: Optional[TransportMode] = None
        self._candidate_count = 0

    def reset(self, initial_mode: Optional[TransportMode] = None):
        self.speeds.clear()
        self.stable_mode = initial_mode
        self._candidate = None
        self._candidate_count = 0

    def classify_speed(self, mean_speed: float) -> Optional[TransportMode]:
        """Map a mean speed (m/s) to a mode, or None inside the cycling/driving dead band"""
        if mean_speed < self.config["walking_max_speed"]:
            return TransportMode.WALKING
        if mean_speed < self.config["cycling_max_speed"]:
            return TransportMode.CYCLING
        if mean_speed > self.config["driving_min_speed"]:
            return TransportMode.DRIVING
        return None

    def update(self, speed: float) -> Classification:
        self.speeds.append(speed)
        if len(self.speeds) < self.window:
            return Classification(mean_speed=None, estimate=None, stable_mode=self.stable_mode)

        mean_speed = sum(self.speeds) / len(self.speeds)
        estimate = self.classify_speed(mean_speed)

        if estimate is None or estimate == self.stable_mode:
            self._candidate = None
            self._candidate_count = 0
        elif estimate == self._candidate:
            self._candidate_count += 1
        else:
            self._candidate = estimate
            self._candidate_count = 1

        if self._candidate is not None and self._candidate_count >= self.confirm:
            self.stable_mode = self._candidate
            self._candidate = None
            self._candidate_count = 0

        return Classification(mean_speed=mean_speed, estimate=estimate, stable_mode=self.stable_mode)

"""Off-route episode tracking and recovery escalation."""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .config import CONFIG
from .models import SuggestedAction
from .transport import ModeThresholds


class DeviationState(Enum):
    ON_ROUTE = "on_route"
    DEVIATING = "deviating"


@dataclass(frozen=True)
class DeviationResult:
    state: DeviationState
    distance_m: float
    duration_s: float  # 0 while on route
    suggested_action: Optional[SuggestedAction]  # None while on route
    started: bool = False  # episode began with this sample
    escalated: bool = False  # action became more severe with this sample
    returned: bool = False  # episode ended with this sample
    ended_duration_s: float = 0.0  # length of the episode that just ended


class DeviationTracker:
    """Two-state tracker: on route, or deviating since some timestamp.

    Times are sample timestamps in milliseconds, so replayed traces behave
    exactly like live ones.
    """

    def __init__(self, alternative_after: Optional[float] = None,
                 recalculate_after: Optional[float] = None):
        self.alternative_after = (
            alternative_after if alternative_after is not None
            else CONFIG["deviation_alternative_after"]
        )
        self.recalculate_after = (
            recalculate_after if recalculate_after is not None
            else CONFIG["deviation_recalculate_after"]
        )
        self.started_at_ms: Optional[float] = None
        self.last_action: Optional[SuggestedAction] = None

    @property
    def state(self) -> DeviationState:
        return DeviationState.ON_ROUTE if self.started_at_ms is None else DeviationState.DEVIATING

    @property
    def is_deviating(self) -> bool:
        return self.started_at_ms is not None

    def reset(self):
        self.started_at_ms = None
        self.last_action = None

    def suggest_action(self, distance_m: float, duration_s: float,
                       thresholds: ModeThresholds) -> SuggestedAction:
        # Distance short-circuits the duration rules
        if distance_m > thresholds.recalculate_distance or duration_s > self.recalculate_after:
            return SuggestedAction.RECALCULATE
        if duration_s > self.alternative_after:
            return SuggestedAction.ALTERNATIVE
        return SuggestedAction.RETURN

    def update(self, distance_m: float, thresholds: ModeThresholds, now_ms: float) -> DeviationResult:
        if distance_m <= thresholds.route_deviation_distance:
            if self.started_at_ms is None:
                return DeviationResult(DeviationState.ON_ROUTE, distance_m, 0.0, None)
            ended = (now_ms - self.started_at_ms) / 1000
            self.reset()
            return DeviationResult(DeviationState.ON_ROUTE, distance_m, 0.0, None,
                                   returned=True, ended_duration_s=ended)

        started = self.started_at_ms is None
        if started:
            self.started_at_ms = now_ms

        duration_s = (now_ms - self.started_at_ms) / 1000
        action = self.suggest_action(distance_m, duration_s, thresholds)

        # Once escalated, an episode never drops back to a milder action
        escalated = False
        if self.last_action is None:
            self.last_action = action
        elif action.severity > self.last_action.severity:
            self.last_action = action
            escalated = True

        return DeviationResult(
            state=DeviationState.DEVIATING,
            distance_m=distance_m,
            duration_s=duration_s,
            suggested_action=self.last_action,
            started=started,
            escalated=escalated,
        )

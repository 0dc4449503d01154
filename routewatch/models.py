"""Data classes for routewatch."""

import json
import math
from dataclasses import dataclass, asdict, field
from enum import Enum
from typing import Optional

from .transport import TransportMode

LatLng = tuple[float, float]


def _finite(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


@dataclass(frozen=True)
class Position:
    """One raw sample from a position source"""
    lat: float
    lng: float
    accuracy: float  # meters
    timestamp_ms: float
    speed: Optional[float] = None  # m/s, if the source reports it
    heading: Optional[float] = None  # degrees, if the source reports it

    def is_valid(self) -> bool:
        if not all(_finite(v) for v in (self.lat, self.lng, self.accuracy, self.timestamp_ms)):
            return False
        if not (-90 <= self.lat <= 90 and -180 <= self.lng <= 180):
            return False
        if self.accuracy < 0:
            return False
        if self.speed is not None and (not _finite(self.speed) or self.speed < 0):
            return False
        if self.heading is not None and not _finite(self.heading):
            return False
        return True

    @property
    def latlng(self) -> LatLng:
        return (self.lat, self.lng)

    def to_dict(self) -> dict:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: dict) -> "Position":
        return cls(
            lat=d["lat"],
            lng=d["lng"],
            accuracy=d.get("accuracy") or 0.0,
            timestamp_ms=d["timestamp_ms"],
            speed=d.get("speed"),
            heading=d.get("heading"),
        )


@dataclass(frozen=True)
class Route:
    """Planned route geometry for one navigation session"""
    path: tuple[LatLng, ...]
    destination: Optional[LatLng] = None
    distance_m: Optional[float] = None
    duration_s: Optional[float] = None

    def __post_init__(self):
        # Normalise lists from JSON into tuples so the route stays hashable and read-only
        object.__setattr__(self, "path", tuple((float(p[0]), float(p[1])) for p in self.path))
        if self.destination is None and self.path:
            object.__setattr__(self, "destination", self.path[-1])
        elif self.destination is not None:
            object.__setattr__(self, "destination",
                               (float(self.destination[0]), float(self.destination[1])))

    def to_dict(self) -> dict:
        return {
            "path": [list(p) for p in self.path],
            "destination": list(self.destination) if self.destination else None,
            "distance_m": self.distance_m,
            "duration_s": self.duration_s,
        }

    @classmethod
    def from_dict(cls, d: dict) -> "Route":
        return cls(
            path=d["path"],
            destination=d.get("destination"),
            distance_m=d.get("distance_m"),
            duration_s=d.get("duration_s"),
        )

    @classmethod
    def load(cls, path: str) -> "Route":
        """Load a route from a JSON file"""
        with open(path) as f:
            return cls.from_dict(json.load(f))

    def save(self, path: str):
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)


class SuggestedAction(Enum):
    RETURN = "return"
    ALTERNATIVE = "alternative"
    RECALCULATE = "recalculate"

    @property
    def severity(self) -> int:
        return _ACTION_SEVERITY[self]


_ACTION_SEVERITY = {
    SuggestedAction.RETURN: 0,
    SuggestedAction.ALTERNATIVE: 1,
    SuggestedAction.RECALCULATE: 2,
}


def _plain(value):
    """Convert enums, dataclasses and tuples into JSON-safe values"""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (Position, Route)):
        return value.to_dict()
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


@dataclass(frozen=True)
class NavigationState:
    """Snapshot of a navigation session after one processed sample"""
    is_navigating: bool = False
    last_position: Optional[Position] = None
    current_heading: Optional[float] = None  # compass if available, else movement heading
    movement_heading: Optional[float] = None
    speed: float = 0.0
    transport_mode: TransportMode = TransportMode.WALKING
    route_direction: Optional[float] = None  # expected bearing at the closest route point
    is_on_route: bool = True
    distance_from_route: float = 0.0
    heading_difference: Optional[float] = None  # raw |movement - route direction|
    wrong_way_active: bool = False
    wrong_way_count: int = 0
    has_alternatives: bool = False
    accuracy: float = 0.0
    deviation_duration: float = 0.0  # seconds in the current off-route episode

    def to_dict(self) -> dict:
        return {k: _plain(v) for k, v in self.__dict__.items()}


# ---------------------------------------------------------------------------
# Events
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class RouteDeviation:
    distance_m: float
    duration_s: float
    suggested_action: SuggestedAction
    transport_mode: TransportMode
    alternative_routes: tuple[Route, ...] = ()
    kind: str = field(default="route_deviation", init=False)

    def to_dict(self) -> dict:
        return {k: _plain(v) for k, v in self.__dict__.items()}


@dataclass(frozen=True)
class WrongWayEvent:
    movement_heading: float
    expected_heading: float
    angle_difference: float
    count: int  # alerts raised in this episode, starting at 1
    repeat: bool  # True for cooldown re-alerts within an ongoing episode
    timestamp_ms: float
    transport_mode: TransportMode
    kind: str = field(default="wrong_way", init=False)

    def to_dict(self) -> dict:
        return {k: _plain(v) for k, v in self.__dict__.items()}


@dataclass(frozen=True)
class BackOnRouteEvent:
    distance_m: float
    off_route_duration_s: float
    timestamp_ms: float
    kind: str = field(default="back_on_route", init=False)

    def to_dict(self) -> dict:
        return dict(self.__dict__)


@dataclass(frozen=True)
class BackOnCourseEvent:
    """Wrong-way episode ended"""
    timestamp_ms: float
    kind: str = field(default="back_on_course", init=False)

    def to_dict(self) -> dict:
        return dict(self.__dict__)


@dataclass(frozen=True)
class AlternativesFoundEvent:
    routes: tuple[Route, ...]
    kind: str = field(default="alternatives_found", init=False)

    def to_dict(self) -> dict:
        return {"kind": self.kind, "routes": _plain(self.routes)}


@dataclass(frozen=True)
class TransportModeChangedEvent:
    previous: TransportMode
    detected: TransportMode
    mean_speed: float
    applied: bool  # False when the session only reports detected changes
    kind: str = field(default="transport_mode_changed", init=False)

    def to_dict(self) -> dict:
        return {k: _plain(v) for k, v in self.__dict__.items()}


@dataclass(frozen=True)
class PositionWarningEvent:
    error_kind: str
    message: str
    kind: str = field(default="position_warning", init=False)

    def to_dict(self) -> dict:
        return dict(self.__dict__)


@dataclass(frozen=True)
class NavigationErrorEvent:
    """Terminal failure; the session has been stopped"""
    error_kind: str
    message: str
    kind: str = field(default="navigation_error", init=False)

    def to_dict(self) -> dict:
        return dict(self.__dict__)


@dataclass(frozen=True)
class NavigationUpdate:
    """What subscribers receive: the state snapshot plus the events that produced it"""
    state: NavigationState
    events: tuple = ()

    def to_dict(self) -> dict:
        return {
            "state": self.state.to_dict(),
            "events": [e.to_dict() for e in self.events],
        }

    def events_of(self, event_type) -> list:
        return [e for e in self.events if isinstance(e, event_type)]

"""routewatch - Real-time route deviation and wrong-way tracking."""

from .config import CONFIG
from .errors import (
    RoutewatchError,
    InvalidRouteError,
    SessionActiveError,
    PositionError,
    PositionErrorKind,
    RoutingError,
)
from .models import (
    LatLng,
    Position,
    Route,
    SuggestedAction,
    NavigationState,
    NavigationUpdate,
    RouteDeviation,
    WrongWayEvent,
    BackOnRouteEvent,
    BackOnCourseEvent,
    AlternativesFoundEvent,
    TransportModeChangedEvent,
    PositionWarningEvent,
    NavigationErrorEvent,
)
from .transport import TransportMode, ModeThresholds, TRANSPORT_THRESHOLDS, TransportModeClassifier
from .logger import Logger
from .geo import (
    haversine_distance,
    bearing_between,
    angle_difference,
    point_to_segment_distance,
    bearing_to_compass,
    relative_direction,
)
from .route_index import RouteIndex
from .deviation import DeviationTracker
from .wrong_way import WrongWayDetector
from .alternatives import AlternativeRouteRequester
from .navigator import NavigationEngine, NavigationSession, UpdateQueue
from .routing import OSRMRoutingProvider
from .gps import TermuxGPS, GPSRecorder, GPSPlayback
from .session_log import SessionLog, summarize_session
from .debug_gui import DebugServer, WebSocketGPS
from .app import RoutewatchApp
from .__main__ import main

__all__ = [
    "CONFIG",
    "RoutewatchError",
    "InvalidRouteError",
    "SessionActiveError",
    "PositionError",
    "PositionErrorKind",
    "RoutingError",
    "LatLng",
    "Position",
    "Route",
    "SuggestedAction",
    "NavigationState",
    "NavigationUpdate",
    "RouteDeviation",
    "WrongWayEvent",
    "BackOnRouteEvent",
    "BackOnCourseEvent",
    "AlternativesFoundEvent",
    "TransportModeChangedEvent",
    "PositionWarningEvent",
    "NavigationErrorEvent",
    "TransportMode",
    "ModeThresholds",
    "TRANSPORT_THRESHOLDS",
    "TransportModeClassifier",
    "Logger",
    "haversine_distance",
    "bearing_between",
    "angle_difference",
    "point_to_segment_distance",
    "bearing_to_compass",
    "relative_direction",
    "RouteIndex",
    "DeviationTracker",
    "WrongWayDetector",
    "AlternativeRouteRequester",
    "NavigationEngine",
    "NavigationSession",
    "UpdateQueue",
    "OSRMRoutingProvider",
    "TermuxGPS",
    "GPSRecorder",
    "GPSPlayback",
    "SessionLog",
    "summarize_session",
    "DebugServer",
    "WebSocketGPS",
    "RoutewatchApp",
    "main",
]

"""Exception types for routewatch."""

from enum import Enum


class RoutewatchError(Exception):
    """Base class for routewatch errors"""


class InvalidRouteError(RoutewatchError, ValueError):
    """Route cannot be navigated (empty, single point, or all points identical)"""


class SessionActiveError(RoutewatchError, RuntimeError):
    """A navigation session is already running on this engine"""


class RoutingError(RoutewatchError):
    """Routing provider could not produce routes"""


class PositionErrorKind(Enum):
    PERMISSION_DENIED = "permission_denied"
    POSITION_UNAVAILABLE = "position_unavailable"
    TIMEOUT = "timeout"


class PositionError(RoutewatchError):
    """Failure reported by a position source"""

    def __init__(self, kind: PositionErrorKind, message: str = ""):
        super().__init__(message or kind.value)
        self.kind = kind
        self.message = message or kind.value

    @property
    def is_fatal(self) -> bool:
        return self.kind is PositionErrorKind.PERMISSION_DENIED

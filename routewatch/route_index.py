"""Distance-to-route and expected direction lookups against a route's path."""

from dataclasses import dataclass

from .errors import InvalidRouteError
from .geo import bearing_between, haversine_distance, project_onto_segment
from .models import Route


@dataclass(frozen=True)
class RouteMatch:
    distance_m: float  # distance to the nearest point on the route
    expected_bearing: float  # direction of travel expected at that point
    segment_index: int  # index of the closest segment (path[i] -> path[i + 1])
    t: float  # position along that segment, 0 = start, 1 = end


class RouteIndex:
    """Wraps a route's path for per-sample nearest-segment queries.

    Every query scans all segments. Routes are at most a few hundred points
    and samples arrive at about 1 Hz, so the linear scan is cheap; a grid
    bucket of path points would bound the scan for much longer routes.
    """

    def __init__(self, route: Route):
        points = []
        for point in route.path:
            if not points or point != points[-1]:
                points.append(point)
        if len(points) < 2:
            raise InvalidRouteError(
                f"Route needs at least two distinct path points, got {len(points)}"
            )

        self.route = route
        self.points = points
        self.destination = route.destination or points[-1]
        self.segment_bearings = [
            bearing_between(a[0], a[1], b[0], b[1])
            for a, b in zip(points, points[1:])
        ]

    @property
    def segment_count(self) -> int:
        return len(self.points) - 1

    def locate(self, lat: float, lng: float) -> RouteMatch:
        """Find the closest route segment to a position"""
        best_distance = float("inf")
        best_index = 0
        best_t = 0.0

        for i in range(self.segment_count):
            (lat1, lon1), (lat2, lon2) = self.points[i], self.points[i + 1]
            distance, t = project_onto_segment(lat, lng, lat1, lon1, lat2, lon2)
            if distance < best_distance:
                best_distance = distance
                best_index = i
                best_t = t

        expected = self.segment_bearings[best_index]

        # At or past the final path point the only sensible direction is
        # toward the destination itself
        if best_index == self.segment_count - 1 and best_t >= 1.0:
            dest_lat, dest_lng = self.destination
            if haversine_distance(lat, lng, dest_lat, dest_lng) > 0:
                expected = bearing_between(lat, lng, dest_lat, dest_lng)

        return RouteMatch(
            distance_m=best_distance,
            expected_bearing=expected,
            segment_index=best_index,
            t=best_t,
        )

    def distance_to_route(self, lat: float, lng: float) -> float:
        return self.locate(lat, lng).distance_m

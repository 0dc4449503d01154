"""Geographic utility functions."""

import math

EARTH_RADIUS_M = 6371000


def haversine_distance(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate distance between two points in meters using Haversine formula"""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_phi = math.radians(lat2 - lat1)
    delta_lambda = math.radians(lon2 - lon1)

    a = (math.sin(delta_phi / 2) ** 2 +
         math.cos(phi1) * math.cos(phi2) * math.sin(delta_lambda / 2) ** 2)
    # Rounding can push a a hair past 1 for antipodal points
    a = min(1.0, a)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return EARTH_RADIUS_M * c


def bearing_between(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Calculate bearing from point 1 to point 2 in degrees (0-360, 0=North)"""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    delta_lambda = math.radians(lon2 - lon1)

    x = math.sin(delta_lambda) * math.cos(phi2)
    y = (math.cos(phi1) * math.sin(phi2) -
         math.sin(phi1) * math.cos(phi2) * math.cos(delta_lambda))

    bearing = math.degrees(math.atan2(x, y))
    return (bearing + 360) % 360


def angle_difference(a: float, b: float) -> float:
    """Smallest unsigned separation between two bearings (0-180)"""
    diff = abs(a - b) % 360
    if diff > 180:
        diff = 360 - diff
    return diff


def signed_angle_difference(from_bearing: float, to_bearing: float) -> float:
    """Signed turn from one bearing to another in (-180, 180], positive = clockwise"""
    diff = (to_bearing - from_bearing) % 360
    if diff > 180:
        diff -= 360
    return diff


def destination_point(lat: float, lon: float, bearing: float,
                      distance: float) -> tuple[float, float]:
    """Point reached by travelling distance meters from (lat, lon) along bearing"""
    phi1 = math.radians(lat)
    lambda1 = math.radians(lon)
    theta = math.radians(bearing)
    delta = distance / EARTH_RADIUS_M

    phi2 = math.asin(math.sin(phi1) * math.cos(delta) +
                     math.cos(phi1) * math.sin(delta) * math.cos(theta))
    lambda2 = lambda1 + math.atan2(math.sin(theta) * math.sin(delta) * math.cos(phi1),
                                   math.cos(delta) - math.sin(phi1) * math.sin(phi2))

    return math.degrees(phi2), (math.degrees(lambda2) + 540) % 360 - 180


def project_onto_segment(lat: float, lon: float,
                         lat1: float, lon1: float,
                         lat2: float, lon2: float) -> tuple[float, float]:
    """Project a point onto a segment.

    Uses an equirectangular projection centred on the segment, which is
    accurate enough at street and route scale.

    Returns:
        (distance in meters, t) where t in [0, 1] is the position of the
        closest point along the segment (0 = start, 1 = end).
    """
    ref_lat = math.radians((lat1 + lat2) / 2)
    cos_ref = math.cos(ref_lat)

    # Local metric coordinates relative to the segment start
    dx = math.radians(lon2 - lon1) * cos_ref * EARTH_RADIUS_M
    dy = math.radians(lat2 - lat1) * EARTH_RADIUS_M
    px = math.radians(lon - lon1) * cos_ref * EARTH_RADIUS_M
    py = math.radians(lat - lat1) * EARTH_RADIUS_M

    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return math.hypot(px, py), 0.0

    t = (px * dx + py * dy) / length_sq
    t = max(0.0, min(1.0, t))

    return math.hypot(px - t * dx, py - t * dy), t


def point_to_segment_distance(lat: float, lon: float,
                              lat1: float, lon1: float,
                              lat2: float, lon2: float) -> float:
    """Distance in meters from a point to the nearest point of a segment"""
    distance, _ = project_onto_segment(lat, lon, lat1, lon1, lat2, lon2)
    return distance


def bearing_to_compass(bearing: float) -> str:
    """Convert bearing to compass direction"""
    directions = ["north", "northeast", "east", "southeast",
                  "south", "southwest", "west", "northwest"]
    index = round(bearing / 45) % 8
    return directions[index]


def relative_direction(from_bearing: float, to_bearing: float) -> str:
    """Get relative direction (left, right, straight, etc.)"""
    diff = signed_angle_difference(from_bearing, to_bearing)

    if abs(diff) < 30:
        return "straight"
    if abs(diff) >= 150:
        return "u-turn"
    side = "right" if diff > 0 else "left"
    if abs(diff) < 60:
        return f"slight {side}"
    if abs(diff) < 120:
        return side
    return f"sharp {side}"

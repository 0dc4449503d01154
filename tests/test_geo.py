import math

import pytest

from routewatch.geo import (
    angle_difference,
    bearing_between,
    bearing_to_compass,
    destination_point,
    haversine_distance,
    point_to_segment_distance,
    project_onto_segment,
    relative_direction,
    signed_angle_difference,
)


def test_haversine_known_distances():
    # One thousandth of a degree of longitude at the equator
    assert haversine_distance(0, 0, 0, 0.001) == pytest.approx(111.19, abs=0.01)
    assert haversine_distance(0, 0, 0.01, 0) == pytest.approx(1111.95, abs=0.01)
    assert haversine_distance(51.5, -0.12, 51.5, -0.12) == 0


def test_haversine_is_symmetric_and_handles_antipodes():
    assert haversine_distance(10, 20, -30, 40) == pytest.approx(haversine_distance(-30, 40, 10, 20))
    antipodal = haversine_distance(0, 0, 0, 180)
    assert not math.isnan(antipodal)
    assert antipodal == pytest.approx(math.pi * 6371000)


@pytest.mark.parametrize("lat2, lon2, expected", [
    (0.01, 0, 0),
    (0, 0.01, 90),
    (-0.01, 0, 180),
    (0, -0.01, 270),
])
def test_bearing_cardinal_directions(lat2, lon2, expected):
    assert bearing_between(0, 0, lat2, lon2) == pytest.approx(expected, abs=1e-9)


def test_angle_difference_wraps():
    assert angle_difference(350, 10) == 20
    assert angle_difference(10, 350) == 20
    assert angle_difference(0, 180) == 180
    assert angle_difference(90, 90) == 0
    assert angle_difference(720, 0) == 0


def test_signed_angle_difference():
    assert signed_angle_difference(350, 10) == 20
    assert signed_angle_difference(10, 350) == -20
    assert signed_angle_difference(0, 180) == 180


def test_point_to_segment_distance():
    # On the segment
    assert point_to_segment_distance(0.005, 0, 0, 0, 0.01, 0) == pytest.approx(0, abs=1e-6)
    # Beside the middle
    assert point_to_segment_distance(0.005, 0.001, 0, 0, 0.01, 0) == pytest.approx(111.19, abs=0.05)
    # Past the end: distance to the end point
    beyond = point_to_segment_distance(0.012, 0, 0, 0, 0.01, 0)
    assert beyond == pytest.approx(haversine_distance(0.012, 0, 0.01, 0), rel=1e-3)


def test_project_onto_segment_parameter():
    _, t = project_onto_segment(0.0025, 0.0005, 0, 0, 0.01, 0)
    assert t == pytest.approx(0.25)
    _, t = project_onto_segment(-0.01, 0, 0, 0, 0.01, 0)
    assert t == 0.0
    distance, t = project_onto_segment(0.001, 0.001, 0, 0, 0, 0)
    assert t == 0.0
    assert distance == pytest.approx(haversine_distance(0.001, 0.001, 0, 0), rel=1e-3)


def test_destination_point():
    lat, lon = destination_point(0, 0, 90, 111.19493)
    assert lat == pytest.approx(0, abs=1e-9)
    assert lon == pytest.approx(0.001, abs=1e-9)
    lat, lon = destination_point(45, 10, 30, 500)
    assert haversine_distance(45, 10, lat, lon) == pytest.approx(500, abs=0.01)
    assert bearing_between(45, 10, lat, lon) == pytest.approx(30, abs=0.01)


def test_bearing_to_compass():
    assert bearing_to_compass(0) == "north"
    assert bearing_to_compass(359) == "north"
    assert bearing_to_compass(95) == "east"
    assert bearing_to_compass(225) == "southwest"


def test_relative_direction():
    assert relative_direction(0, 10) == "straight"
    assert relative_direction(0, 45) == "slight right"
    assert relative_direction(0, 270) == "left"
    assert relative_direction(0, 220) == "sharp left"
    assert relative_direction(0, 180) == "u-turn"

import math

import pytest

from saleradar.domain.geo import (
    EARTH_RADIUS_MILES,
    Coordinates,
    distance,
    distance_between,
    estimate_bounds,
    estimate_viewport,
    zoom_tier,
)
from saleradar.domain.geo.bounds import MILES_PER_DEGREE_AT_EQUATOR, MIN_OFFSET_DEGREES

SAN_FRANCISCO = Coordinates(lat=37.7749, lon=-122.4194)
LOS_ANGELES = Coordinates(lat=34.0522, lon=-118.2437)


def test_distance_is_symmetric_and_zero_on_identity():
    ab = distance_between(SAN_FRANCISCO, LOS_ANGELES)
    ba = distance_between(LOS_ANGELES, SAN_FRANCISCO)
    assert ab == pytest.approx(ba)
    assert distance(1.5, 2.5, 1.5, 2.5) == 0


def test_san_francisco_to_los_angeles():
    assert distance_between(SAN_FRANCISCO, LOS_ANGELES) == pytest.approx(347, abs=5)


def test_one_degree_of_latitude_uses_single_earth_radius():
    expected = EARTH_RADIUS_MILES * math.radians(1.0)
    assert distance(0.0, 0.0, 1.0, 0.0) == pytest.approx(expected)


def test_antipodal_points_do_not_raise():
    assert distance(0.0, 0.0, 0.0, 180.0) == pytest.approx(math.pi * EARTH_RADIUS_MILES)


def test_coordinates_parse_rejects_unusable_values():
    assert Coordinates.parse("", "1") is None
    assert Coordinates.parse("abc", "1") is None
    assert Coordinates.parse(float("nan"), 1.0) is None
    assert Coordinates.parse("1.5", "-2") == Coordinates(lat=1.5, lon=-2.0)
    assert Coordinates.from_mapping({"latitude": 3, "longitude": 4}) == Coordinates(lat=3.0, lon=4.0)


def test_bounds_are_square_and_sized_from_latitude():
    center = Coordinates(lat=45.0, lon=-73.0)
    bounds = estimate_bounds(center, 10)
    offset = 10 / MILES_PER_DEGREE_AT_EQUATOR
    assert bounds.north - center.lat == pytest.approx(offset)
    assert center.lat - bounds.south == pytest.approx(offset)
    assert bounds.east - center.lon == pytest.approx(offset)
    assert center.lon - bounds.west == pytest.approx(offset)
    assert bounds.contains(center)


def test_bounds_have_a_minimum_offset():
    center = Coordinates(lat=10.0, lon=10.0)
    bounds = estimate_bounds(center, 0.0)
    assert bounds.north - center.lat == pytest.approx(MIN_OFFSET_DEGREES)
    assert center.lon - bounds.west == pytest.approx(MIN_OFFSET_DEGREES)


def test_bounds_at_the_pole_stay_finite():
    bounds = estimate_bounds(Coordinates(lat=90.0, lon=0.0), 10)
    assert all(math.isfinite(value) for value in bounds.to_dict().values())


@pytest.mark.parametrize(
    "radius, tier",
    [(1, 14), (5, 14), (5.01, 13), (10, 13), (25, 12), (50, 11), (51, 10), (100, 10), (1000, 10)],
)
def test_zoom_tiers(radius, tier):
    assert zoom_tier(radius) == tier


def test_viewport_combines_bounds_and_zoom():
    center = Coordinates(lat=40.0, lon=-75.0)
    viewport = estimate_viewport(center, 25)
    assert viewport.zoom == 12
    assert viewport.bounds == estimate_bounds(center, 25)
    assert viewport.center == center

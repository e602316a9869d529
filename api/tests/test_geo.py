import pytest

from hatemates.services.geo import distance_km, distance_miles, miles_to_km


POINTS = [
    (40.7128, -74.0060),
    (34.0522, -118.2437),
    (51.5074, -0.1278),
    (-33.8688, 151.2093),
    (0.0, 0.0),
]


def test_distance_is_symmetric():
    for a in POINTS:
        for b in POINTS:
            assert distance_miles(*a, *b) == distance_miles(*b, *a)


def test_identical_points_are_exactly_zero():
    for p in POINTS:
        assert distance_miles(*p, *p) == 0.0
        assert distance_km(*p, *p) == 0.0


def test_nearly_identical_points_do_not_produce_nan():
    d = distance_miles(33.6846, -117.8265, 33.6846000000001, -117.8265)
    assert d == 0.0


def test_new_york_to_los_angeles_is_about_2450_miles():
    d = distance_miles(40.7128, -74.0060, 34.0522, -118.2437)
    assert 2440 <= d <= 2460
    assert d == round(d, 1)


def test_one_degree_of_latitude_uses_earth_radius_6378():
    assert distance_km(0.0, 0.0, 1.0, 0.0) == pytest.approx(111.319, abs=0.01)


def test_miles_to_km():
    assert miles_to_km(5) == pytest.approx(8.04672)
    assert miles_to_km(0) == 0.0

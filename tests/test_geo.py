import math

import pytest

from campusrun.geo import distance_km, distance_meters
from tests.conftest import ORIGIN, offset_north


def test_same_point_is_zero():
    assert distance_km(52.0, 4.9, 52.0, 4.9) == 0.0


def test_one_degree_of_latitude():
    assert distance_km(0.0, 0.0, 1.0, 0.0) == pytest.approx(111.19493, rel=1e-6)


def test_symmetric():
    a = (52.3676, 4.9041)
    b = (52.3702, 4.8952)
    assert distance_meters(a, b) == pytest.approx(distance_meters(b, a))


def test_offset_helper_matches_haversine():
    assert distance_meters(ORIGIN, offset_north(300)) == pytest.approx(300, abs=0.01)


def test_zero_coordinates_are_a_real_place():
    assert distance_meters((0.0, 0.0), (0.0, 1.0)) == pytest.approx(111194.93, rel=1e-6)


def test_nan_propagates():
    assert math.isnan(distance_km(float("nan"), 0.0, 0.0, 0.0))

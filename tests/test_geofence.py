import pytest

from campusrun.config import settings
from campusrun.geofence import (
    check_location,
    max_vertex_distance,
    point_in_polygon,
    polygon_centroid,
    within_polygon,
)
from tests.conftest import offset_north

# Roughly 1.4 km x 2.2 km box centred on the test origin, closed GeoJSON ring
SQUARE = [[4.89, 51.99], [4.91, 51.99], [4.91, 52.01], [4.89, 52.01], [4.89, 51.99]]


@pytest.fixture
def campus(monkeypatch):
    monkeypatch.setattr(settings, "geofence_enabled", True)
    monkeypatch.setattr(settings, "geofence_polygon", SQUARE)


def test_point_in_polygon():
    assert point_in_polygon(52.0, 4.9, SQUARE)
    assert not point_in_polygon(52.05, 4.9, SQUARE)
    assert not point_in_polygon(52.0, 4.95, SQUARE)


def test_degenerate_ring_contains_nothing():
    assert not point_in_polygon(52.0, 4.9, [[4.89, 51.99], [4.91, 51.99]])


def test_centroid_ignores_closing_vertex():
    lat, lon = polygon_centroid(SQUARE)
    assert lat == pytest.approx(52.0)
    assert lon == pytest.approx(4.9)


def test_near_boundary_accepted_with_buffer():
    # Just east of the box, still inside the circumscribing circle
    assert not point_in_polygon(52.0, 4.915, SQUARE)
    assert within_polygon(52.0, 4.915, SQUARE, buffer_meters=10)
    reach = max_vertex_distance((52.0, 4.9), SQUARE)
    assert 1200 < reach < 1400


def test_disabled_geofence_allows_any_position():
    assert settings.geofence_enabled is False
    assert check_location(0.0, 0.0).allowed


def test_missing_location_refused_even_when_disabled():
    result = check_location(None, 4.9)
    assert not result.allowed
    assert result.reason == "Location not available"


def test_inside_campus_allowed(campus):
    result = check_location(52.0, 4.9)
    assert result.allowed
    assert result.as_response() == {"allowed": True}


def test_outside_campus_refused_with_distance(campus):
    result = check_location(52.05, 4.9)
    assert not result.allowed
    assert "outside the campus geofence" in result.reason
    assert result.center_distance == pytest.approx(5560, rel=0.01)
    assert result.as_response() == {"allowed": False, "reason": result.reason}


def test_radius_check_is_tighter_than_polygon(campus):
    lat, lon = offset_north(890)
    assert check_location(lat, lon, use_polygon=True).allowed
    radius = check_location(lat, lon, use_polygon=False)
    assert not radius.allowed
    assert radius.method == "radius"
    assert check_location(*offset_north(400), use_polygon=False).allowed


def test_enabled_without_polygon_refuses(monkeypatch):
    monkeypatch.setattr(settings, "geofence_enabled", True)
    monkeypatch.setattr(settings, "geofence_polygon", [])
    result = check_location(52.0, 4.9)
    assert not result.allowed
    assert result.reason == "Geofence is not configured"

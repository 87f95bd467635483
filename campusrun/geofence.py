"""Campus geofence: may a runner go online from where they stand?

The boundary is a GeoJSON-style ring of ``(longitude, latitude)`` vertices
from settings. The polygon check is authoritative; the radius check around
the polygon centroid is the cheap approximation clients use before asking.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

from campusrun.config import settings
from campusrun.geo import distance_meters
from campusrun.utils import parse_coordinate

Ring = Sequence[Sequence[float]]


@dataclass(frozen=True)
class GeofenceCheck:
    allowed: bool
    reason: str | None = None
    method: str = "polygon"
    center_distance: float | None = None

    def as_response(self) -> dict:
        if self.allowed:
            return {"allowed": True}
        return {"allowed": False, "reason": self.reason}


def _open_ring(ring: Ring) -> list[tuple[float, float]]:
    coords = [(float(p[0]), float(p[1])) for p in ring]
    if len(coords) > 1 and coords[0] == coords[-1]:
        coords = coords[:-1]
    return coords


def point_in_polygon(latitude: float, longitude: float, ring: Ring) -> bool:
    """Even-odd ray cast with longitude as x and latitude as y."""
    coords = _open_ring(ring)
    if len(coords) < 3:
        return False
    inside = False
    j = len(coords) - 1
    for i in range(len(coords)):
        xi, yi = coords[i]
        xj, yj = coords[j]
        if (yi > latitude) != (yj > latitude):
            x_cross = (xj - xi) * (latitude - yi) / (yj - yi) + xi
            if longitude < x_cross:
                inside = not inside
        j = i
    return inside


def polygon_centroid(ring: Ring) -> tuple[float, float]:
    """Vertex average as ``(latitude, longitude)``."""
    coords = _open_ring(ring)
    if not coords:
        raise ValueError("Empty polygon coordinates")
    lon = sum(c[0] for c in coords) / len(coords)
    lat = sum(c[1] for c in coords) / len(coords)
    return lat, lon


def max_vertex_distance(center: tuple[float, float], ring: Ring) -> float:
    return max((distance_meters(center, (lat, lon)) for lon, lat in _open_ring(ring)), default=0.0)


def within_polygon(latitude: float, longitude: float, ring: Ring, buffer_meters: float) -> bool:
    if point_in_polygon(latitude, longitude, ring):
        return True
    # Near-boundary GPS drift: fall back to the circumscribing circle plus a buffer
    center = polygon_centroid(ring)
    reach = max_vertex_distance(center, ring) + buffer_meters
    return distance_meters((latitude, longitude), center) <= reach


def check_location(latitude, longitude, use_polygon: bool = True, ring: Ring | None = None) -> GeofenceCheck:
    """Decide whether a runner at this position may be marked available."""
    lat = parse_coordinate(latitude)
    lon = parse_coordinate(longitude)
    if lat is None or lon is None:
        return GeofenceCheck(allowed=False, reason="Location not available")

    if not settings.geofence_enabled:
        return GeofenceCheck(allowed=True, method="disabled")

    ring = ring if ring is not None else settings.geofence_polygon
    if len(_open_ring(ring)) < 3:
        return GeofenceCheck(allowed=False, reason="Geofence is not configured")

    center = polygon_centroid(ring)
    center_distance = distance_meters((lat, lon), center)
    if use_polygon:
        ok = within_polygon(lat, lon, ring, settings.geofence_buffer_meters)
        method = "polygon"
    else:
        ok = center_distance <= settings.geofence_radius_meters
        method = "radius"

    if ok:
        return GeofenceCheck(allowed=True, method=method, center_distance=center_distance)
    return GeofenceCheck(
        allowed=False,
        reason=f"Location is outside the campus geofence ({center_distance:.0f}m from center)",
        method=method,
        center_distance=center_distance,
    )

"""Geospatial predicates and measurements (no external dependencies).

All functions are pure. Coordinates are WGS-84 decimal degrees; planar tests
(ray casting, orientation, segment projection) treat longitude as x and
latitude as y, which is adequate for claim-sized polygons far from the poles
and the antimeridian.
"""

from __future__ import annotations

import math
from typing import Iterable, Sequence

from territory_loop.models import GeoPoint

EARTH_RADIUS_M = 6_371_000.0  # mean Earth radius in meters

# Segments shorter than this collapse to point-to-point distance.
_DEGENERATE_SEGMENT_M = 0.001
# Cross products (degrees^2) below this count as collinear.
_COLLINEAR_EPS = 1e-10


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Compute Haversine distance in meters between two lat/lon points.

    Args:
        lat1: Latitude 1 in degrees.
        lon1: Longitude 1 in degrees.
        lat2: Latitude 2 in degrees.
        lon2: Longitude 2 in degrees.

    Returns:
        Distance in meters.
    """

    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    d_phi = math.radians(lat2 - lat1)
    d_lambda = math.radians(lon2 - lon1)

    a = math.sin(d_phi / 2.0) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2.0) ** 2
    c = 2.0 * math.atan2(math.sqrt(a), math.sqrt(1.0 - a))
    return EARTH_RADIUS_M * c


def distance_m(a: GeoPoint, b: GeoPoint) -> float:
    """Great-circle distance in meters between two points."""

    return haversine_m(a.latitude, a.longitude, b.latitude, b.longitude)


def point_in_polygon(p: GeoPoint, polygon: Sequence[GeoPoint]) -> bool:
    """Even-odd ray casting test.

    Points exactly on an edge may be reported either way; callers must not rely
    on boundary behavior. Polygons with fewer than 3 vertices contain nothing.
    """

    n = len(polygon)
    if n < 3:
        return False

    x = p.longitude
    y = p.latitude
    inside = False
    j = n - 1
    for i in range(n):
        xi, yi = polygon[i].longitude, polygon[i].latitude
        xj, yj = polygon[j].longitude, polygon[j].latitude
        if (yi > y) != (yj > y) and x < (xj - xi) * (y - yi) / (yj - yi) + xi:
            inside = not inside
        j = i
    return inside


def distance_point_to_segment(p: GeoPoint, a: GeoPoint, b: GeoPoint) -> float:
    """Shortest distance in meters from ``p`` to the segment ``a -> b``.

    The projection parameter is computed in degree space and clamped to [0, 1];
    the distance to the projected point is then measured with haversine.
    """

    if distance_m(a, b) < _DEGENERATE_SEGMENT_M:
        return distance_m(p, a)

    dx = b.longitude - a.longitude
    dy = b.latitude - a.latitude
    t = ((p.longitude - a.longitude) * dx + (p.latitude - a.latitude) * dy) / (dx * dx + dy * dy)

    if t <= 0.0:
        return distance_m(p, a)
    if t >= 1.0:
        return distance_m(p, b)

    projected = GeoPoint(latitude=a.latitude + t * dy, longitude=a.longitude + t * dx)
    return distance_m(p, projected)


def distance_point_to_polygon(p: GeoPoint, polygon: Sequence[GeoPoint]) -> float:
    """Distance in meters from ``p`` to the polygon (0 when inside, inf when degenerate)."""

    n = len(polygon)
    if n < 3:
        return math.inf
    if point_in_polygon(p, polygon):
        return 0.0

    best = math.inf
    for i in range(n):
        d = distance_point_to_segment(p, polygon[i], polygon[(i + 1) % n])
        if d < best:
            best = d
    return best


def _orientation(a: GeoPoint, b: GeoPoint, c: GeoPoint) -> int:
    cross = (c.latitude - a.latitude) * (b.longitude - a.longitude) - (b.latitude - a.latitude) * (
        c.longitude - a.longitude
    )
    if abs(cross) < _COLLINEAR_EPS:
        return 0
    return 1 if cross > 0 else -1


def segments_intersect(p1: GeoPoint, p2: GeoPoint, p3: GeoPoint, p4: GeoPoint) -> bool:
    """Strict orientation test for segment ``p1p2`` against ``p3p4``.

    Segments intersect only when each segment's endpoints lie strictly on
    opposite sides of the other segment's line. Collinear, overlapping and
    endpoint-touching configurations are reported as non-intersecting. This is
    a simplification, not a robust geometric kernel.
    """

    d1 = _orientation(p1, p3, p4)
    d2 = _orientation(p2, p3, p4)
    d3 = _orientation(p1, p2, p3)
    d4 = _orientation(p1, p2, p4)
    if 0 in (d1, d2, d3, d4):
        return False
    return d1 != d2 and d3 != d4


def line_intersects_polygon(a: GeoPoint, b: GeoPoint, polygon: Sequence[GeoPoint]) -> bool:
    """True if segment ``a -> b`` crosses any edge of the polygon."""

    n = len(polygon)
    if n < 3:
        return False
    return any(segments_intersect(a, b, polygon[i], polygon[(i + 1) % n]) for i in range(n))


def polygon_area_sq_m(polygon: Sequence[GeoPoint]) -> float:
    """Approximate enclosed area in square meters (spherical excess).

    Valid for polygons small relative to the Earth; no datum correction.
    """

    n = len(polygon)
    if n < 3:
        return 0.0

    total = 0.0
    for i in range(n):
        cur = polygon[i]
        nxt = polygon[(i + 1) % n]
        lat1 = math.radians(cur.latitude)
        lat2 = math.radians(nxt.latitude)
        d_lon = math.radians(nxt.longitude) - math.radians(cur.longitude)
        total += d_lon * (2.0 + math.sin(lat1) + math.sin(lat2))
    return abs(total * EARTH_RADIUS_M * EARTH_RADIUS_M / 2.0)


def path_length_m(path: Sequence[GeoPoint]) -> float:
    """Sum of consecutive point-to-point distances (open path, no wrap)."""

    return sum(distance_m(path[i - 1], path[i]) for i in range(1, len(path)))


def midpoint(a: GeoPoint, b: GeoPoint) -> GeoPoint:
    return GeoPoint(latitude=(a.latitude + b.latitude) / 2.0, longitude=(a.longitude + b.longitude) / 2.0)


def bounding_box(points: Iterable[GeoPoint]) -> tuple[float, float, float, float]:
    """Return (min_lat, max_lat, min_lon, max_lon); all zeros for no points."""

    pts = list(points)
    if not pts:
        return 0.0, 0.0, 0.0, 0.0
    lats = [p.latitude for p in pts]
    lons = [p.longitude for p in pts]
    return min(lats), max(lats), min(lons), max(lons)


def offset_m(origin: GeoPoint, east_m: float, north_m: float) -> GeoPoint:
    """Move ``origin`` by a local east/north offset in meters (flat-earth)."""

    meters_per_deg = math.radians(1.0) * EARTH_RADIUS_M
    d_lat = north_m / meters_per_deg
    d_lon = east_m / (meters_per_deg * math.cos(math.radians(origin.latitude)))
    return GeoPoint(latitude=origin.latitude + d_lat, longitude=origin.longitude + d_lon)


def is_inside_circle(p: GeoPoint, center: GeoPoint, radius_m: float) -> bool:
    """Check whether a point is inside or on the boundary of a circle."""

    return distance_m(p, center) <= radius_m

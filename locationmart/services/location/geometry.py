"""
Geometry Math for Location Services

Pure functions over plain numbers and ArcGIS-style coordinate lists.
Coordinates inside geometries are [x, y] = [lon, lat], the order ArcGIS
returns with outSR=4326. Function arguments take lat before lon.

No I/O happens here. Used by the proximity resolver to compute distances
and containment for point, polyline and polygon features.
"""

import math
from typing import Optional, Sequence

EARTH_RADIUS_MILES = 3958.8
EARTH_RADIUS_KM = 6371.0
METERS_PER_MILE = 1609.34
MILES_PER_DEGREE_LAT = 69.0

Coord = Sequence[float]            # [lon, lat]
Ring = Sequence[Coord]
Path = Sequence[Coord]


def _haversine(lat1: float, lon1: float, lat2: float, lon2: float, radius: float) -> float:
    lat1_r = math.radians(lat1)
    lat2_r = math.radians(lat2)
    dlat = math.radians(lat2 - lat1)
    dlon = math.radians(lon2 - lon1)

    a = (math.sin(dlat / 2) ** 2 +
         math.cos(lat1_r) * math.cos(lat2_r) * math.sin(dlon / 2) ** 2)
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))

    return radius * c


def haversine_miles(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """
    Great-circle distance between two points in miles.
    Symmetric; zero only when the points coincide.
    """
    return _haversine(lat1, lon1, lat2, lon2, EARTH_RADIUS_MILES)


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points in kilometers."""
    return _haversine(lat1, lon1, lat2, lon2, EARTH_RADIUS_KM)


def miles_to_meters(miles: float) -> float:
    return miles * METERS_PER_MILE


def distance_to_segment(lat: float, lon: float, seg_start: Coord, seg_end: Coord) -> float:
    """
    Distance in miles from a point to a segment.

    The projection is done in degree space (planar approximation), the
    parameter t is clamped to [0, 1], and the closest point is then measured
    with the great-circle formula. A zero-length segment degrades to the
    point-to-endpoint distance.
    """
    x1, y1 = seg_start[0], seg_start[1]
    x2, y2 = seg_end[0], seg_end[1]
    dx = x2 - x1
    dy = y2 - y1

    len_sq = dx * dx + dy * dy
    if len_sq == 0:
        return haversine_miles(lat, lon, y1, x1)

    t = ((lon - x1) * dx + (lat - y1) * dy) / len_sq
    t = max(0.0, min(1.0, t))

    closest_lon = x1 + t * dx
    closest_lat = y1 + t * dy
    return haversine_miles(lat, lon, closest_lat, closest_lon)


def distance_to_polyline(lat: float, lon: float, paths: Optional[Sequence[Path]]) -> float:
    """
    Minimum distance in miles from a point to any segment of any path.
    Returns +inf for empty geometry.
    """
    best = math.inf
    for path in paths or []:
        if len(path) == 1:
            best = min(best, haversine_miles(lat, lon, path[0][1], path[0][0]))
            continue
        for i in range(len(path) - 1):
            dist = distance_to_segment(lat, lon, path[i], path[i + 1])
            if dist < best:
                best = dist
    return best


def distance_to_polygon_boundary(lat: float, lon: float, rings: Optional[Sequence[Ring]]) -> float:
    """
    Minimum distance in miles from a point to the boundary of a polygon,
    holes included. Rings are treated as closed even when the last vertex
    does not repeat the first. Returns +inf for empty geometry.
    """
    best = math.inf
    for ring in rings or []:
        n = len(ring)
        if n == 0:
            continue
        if n == 1:
            best = min(best, haversine_miles(lat, lon, ring[0][1], ring[0][0]))
            continue
        for i in range(n):
            dist = distance_to_segment(lat, lon, ring[i], ring[(i + 1) % n])
            if dist < best:
                best = dist
    return best


def _point_in_ring(lat: float, lon: float, ring: Ring) -> bool:
    # Ray casting, horizontal ray towards +x
    if len(ring) < 3:
        return False

    inside = False
    j = len(ring) - 1
    for i in range(len(ring)):
        xi, yi = ring[i][0], ring[i][1]
        xj, yj = ring[j][0], ring[j][1]
        if (yi > lat) != (yj > lat):
            x_cross = (xj - xi) * (lat - yi) / (yj - yi) + xi
            if lon < x_cross:
                inside = not inside
        j = i
    return inside


def point_in_polygon(lat: float, lon: float, rings: Optional[Sequence[Ring]]) -> bool:
    """
    Ray-casting containment test.

    Ring 0 is the outer boundary. If the point is inside it, every
    following ring is a hole: a point inside any hole is not contained.
    Rings with fewer than 3 vertices never contain anything.
    """
    if not rings:
        return False

    if not _point_in_ring(lat, lon, rings[0]):
        return False

    for hole in rings[1:]:
        if _point_in_ring(lat, lon, hole):
            return False
    return True


def centroid(rings: Optional[Sequence[Ring]]) -> Optional[tuple]:
    """
    Arithmetic mean of the outer-ring vertices as (lat, lon).
    Cheap proxy only, not an area-weighted centroid. None for empty input.
    """
    if not rings or not rings[0]:
        return None

    outer = rings[0]
    sum_x = sum(c[0] for c in outer)
    sum_y = sum(c[1] for c in outer)
    return (sum_y / len(outer), sum_x / len(outer))


def envelope_for_radius(lat: float, lon: float, radius_miles: float) -> dict:
    """
    Bounding envelope around a point for services without buffered point
    search. Latitude span is radius/69 degrees; longitude span is corrected
    by cos(lat).
    """
    lat_delta = radius_miles / MILES_PER_DEGREE_LAT
    cos_lat = math.cos(math.radians(lat))
    # Guard the poles, where a longitude degree shrinks to nothing
    lon_delta = radius_miles / (MILES_PER_DEGREE_LAT * max(cos_lat, 1e-6))
    lon_delta = min(lon_delta, 180.0)

    return {
        "xmin": lon - lon_delta,
        "ymin": lat - lat_delta,
        "xmax": lon + lon_delta,
        "ymax": lat + lat_delta,
    }

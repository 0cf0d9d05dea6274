"""Point hit testing against single features.

Distances are great-circle kilometres, so coordinates must be lng/lat
degrees. The tolerance shrinks as the scale grows: zoomed-out views accept
clicks farther from the geometry.
"""

import math

from shape_core.types import (
    BBox,
    Feature,
    GeoPoint,
    LineString,
    MultiLineString,
    MultiPoint,
    MultiPolygon,
    Point,
    Polygon,
    Position,
)

EARTH_RADIUS_KM = 6371.0
DEFAULT_THRESHOLD_KM = 10.0


def haversine_distance(p1: GeoPoint, p2: GeoPoint) -> float:
    """Great-circle distance between two lng/lat points in kilometres."""
    d_lat = math.radians(p2.lat - p1.lat)
    d_lng = math.radians(p2.lng - p1.lng)
    lat1 = math.radians(p1.lat)
    lat2 = math.radians(p2.lat)

    a = math.sin(d_lat / 2) ** 2 + math.sin(d_lng / 2) ** 2 * math.cos(lat1) * math.cos(lat2)
    # Rounding can push a past 1 for antipodal points
    a = min(1.0, a)
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def point_to_segment_distance(point: GeoPoint, start: GeoPoint, end: GeoPoint) -> float:
    """Shortest distance in kilometres from a point to a segment.

    The foot of the perpendicular is found in the lng/lat plane; when it
    falls on the segment the distance to it is returned, otherwise the
    distance to the nearer endpoint.
    """
    distance = min(haversine_distance(point, start), haversine_distance(point, end))

    dx = end.lng - start.lng
    dy = end.lat - start.lat
    length_sq = dx * dx + dy * dy
    if length_sq == 0:
        return distance

    t = ((point.lng - start.lng) * dx + (point.lat - start.lat) * dy) / length_sq
    if 0 <= t <= 1:
        foot = GeoPoint(start.lng + t * dx, start.lat + t * dy)
        distance = haversine_distance(point, foot)
    return distance


def point_in_ring(point: GeoPoint, ring: list[Position]) -> bool:
    """Crossing-number test of a point against one ring."""
    inside = False
    j = len(ring) - 1
    for i in range(len(ring)):
        xi, yi = ring[i][0], ring[i][1]
        xj, yj = ring[j][0], ring[j][1]
        if (yi > point.lat) != (yj > point.lat) and point.lng < (xj - xi) * (
            point.lat - yi
        ) / (yj - yi) + xi:
            inside = not inside
        j = i
    return inside


def _outside_bbox(point: GeoPoint, bbox: BBox | None) -> bool:
    return bbox is not None and not bbox.contains(point.lng, point.lat)


def _hits_point(point: GeoPoint, geometry: Point, threshold: float) -> bool:
    x, y = geometry.coordinates
    return haversine_distance(point, GeoPoint(x, y)) <= threshold


def _hits_line(point: GeoPoint, feature: Feature, geometry: LineString, threshold: float) -> bool:
    if _outside_bbox(point, feature.bbox):
        return False
    coords = geometry.coordinates
    for (x1, y1), (x2, y2) in zip(coords, coords[1:]):
        if point_to_segment_distance(point, GeoPoint(x1, y1), GeoPoint(x2, y2)) <= threshold:
            return True
    return False


def _hits_polygon(point: GeoPoint, feature: Feature, geometry: Polygon) -> bool:
    if _outside_bbox(point, feature.bbox):
        return False
    # Every ring counts as filled; inner rings are not subtracted.
    return any(point_in_ring(point, ring) for ring in geometry.coordinates)


def detect_collision(
    point: GeoPoint,
    feature: Feature,
    scale: float,
    threshold_km: float = DEFAULT_THRESHOLD_KM,
) -> bool:
    """Check whether a query point hits a feature.

    Args:
        point: Query position in lng/lat.
        feature: Candidate feature.
        scale: Current zoom factor, > 0. The hit radius is
            ``threshold_km / scale``.
        threshold_km: Hit radius at scale 1.

    Returns:
        True on a hit. Multi-part geometries never hit.
    """
    if scale <= 0:
        raise ValueError(f"scale must be positive, got {scale}")
    threshold = threshold_km / scale
    geometry = feature.geometry

    if isinstance(geometry, Point):
        return _hits_point(point, geometry, threshold)
    if isinstance(geometry, LineString):
        return _hits_line(point, feature, geometry, threshold)
    if isinstance(geometry, Polygon):
        return _hits_polygon(point, feature, geometry)
    if isinstance(geometry, (MultiPoint, MultiLineString, MultiPolygon)):
        return False
    raise TypeError(f"Unsupported geometry: {type(geometry).__name__}")

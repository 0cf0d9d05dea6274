"""Douglas-Peucker line simplification for decoded layers."""

import logging
import math
from dataclasses import replace

from shape_core.types import (
    Feature,
    FeatureCollection,
    Geometry,
    LineString,
    MultiLineString,
    MultiPoint,
    MultiPolygon,
    Point,
    Polygon,
    Position,
)

logger = logging.getLogger(__name__)


def perpendicular_distance(point: Position, start: Position, end: Position) -> float:
    """Planar distance from ``point`` to the segment ``start``-``end``.

    The projection parameter is clamped to the segment. A zero-length
    segment measures the distance to ``start``.
    """
    x, y = point[0], point[1]
    x1, y1 = start[0], start[1]
    dx = end[0] - x1
    dy = end[1] - y1
    length_sq = dx * dx + dy * dy

    t = -1.0
    if length_sq != 0:
        t = ((x - x1) * dx + (y - y1) * dy) / length_sq

    if t < 0:
        px, py = x1, y1
    elif t > 1:
        px, py = end[0], end[1]
    else:
        px, py = x1 + t * dx, y1 + t * dy

    return math.hypot(x - px, y - py)


def douglas_peucker(points: list[Position], epsilon: float) -> list[Position]:
    """Simplify a path with the Douglas-Peucker algorithm.

    Works on an explicit stack of index ranges instead of recursion so very
    long rings cannot hit the interpreter's recursion limit. The output
    equals the recursive definition: a range whose farthest interior point
    lies more than ``epsilon`` from its chord is split at that point,
    otherwise it collapses to its two endpoints.

    Args:
        points: Ordered positions of one path or ring.
        epsilon: Distance tolerance in coordinate units, >= 0.

    Returns:
        The retained positions in original order. The first and last
        positions are always kept.
    """
    if epsilon < 0:
        raise ValueError(f"epsilon must be >= 0, got {epsilon}")
    if len(points) <= 2:
        return list(points)

    keep = [False] * len(points)
    keep[0] = keep[-1] = True
    stack = [(0, len(points) - 1)]

    while stack:
        first, last = stack.pop()
        max_distance = 0.0
        index = first
        for i in range(first + 1, last):
            d = perpendicular_distance(points[i], points[first], points[last])
            if d > max_distance:
                max_distance = d
                index = i

        if max_distance > epsilon:
            keep[index] = True
            stack.append((index, last))
            stack.append((first, index))

    return [p for p, kept in zip(points, keep) if kept]


def simplify_ring(ring: list[Position], epsilon: float) -> list[Position]:
    """Simplify a polygon ring and make sure it is still closed.

    The first point is appended when the ends differ or when the ring
    collapsed below three points, so a fully collapsed ring comes back as
    start, end, start.
    """
    simplified = douglas_peucker(ring, epsilon)
    if simplified and (len(simplified) < 3 or simplified[0] != simplified[-1]):
        simplified.append(simplified[0])
    return simplified


def simplify_geometry(geometry: Geometry, epsilon: float) -> Geometry:
    """Return a simplified copy of a geometry. Point kinds pass through."""
    if isinstance(geometry, (Point, MultiPoint)):
        return geometry
    if isinstance(geometry, LineString):
        return replace(geometry, coordinates=douglas_peucker(geometry.coordinates, epsilon))
    if isinstance(geometry, MultiLineString):
        return replace(
            geometry,
            coordinates=[douglas_peucker(line, epsilon) for line in geometry.coordinates],
        )
    if isinstance(geometry, Polygon):
        return replace(
            geometry,
            coordinates=[simplify_ring(ring, epsilon) for ring in geometry.coordinates],
        )
    if isinstance(geometry, MultiPolygon):
        return replace(
            geometry,
            coordinates=[
                [simplify_ring(ring, epsilon) for ring in polygon]
                for polygon in geometry.coordinates
            ],
        )
    raise TypeError(f"Unsupported geometry: {type(geometry).__name__}")


def simplify(collection: FeatureCollection, epsilon: float) -> FeatureCollection:
    """Build the coarse companion collection, index-aligned with the input."""
    features: list[Feature] = [
        replace(f, geometry=simplify_geometry(f.geometry, epsilon)) for f in collection.features
    ]
    logger.debug("Simplified %d features with epsilon=%g", len(features), epsilon)
    return FeatureCollection(features=features)

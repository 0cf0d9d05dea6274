"""Geometry file (.shp) decoder.

Layout reference: a fixed 100-byte header (big-endian file code and length,
little-endian version, shape type and bounding box) followed by records,
each with an 8-byte big-endian header and a little-endian payload that
starts with its own shape type code.
"""

import logging
import struct
from enum import IntEnum

import numpy as np

from shape_core.errors import FormatError
from shape_core.types import (
    BBox,
    Feature,
    FeatureCollection,
    Geometry,
    LineString,
    MultiLineString,
    MultiPoint,
    Point,
    Polygon,
    Position,
    bbox_of,
)

logger = logging.getLogger(__name__)

FILE_CODE = 9994
SUPPORTED_VERSION = 1000
HEADER_SIZE = 100
RECORD_HEADER_SIZE = 8

# Property seeded on every feature so consumers can look up per-layer styles
FILE_NAME_PROPERTY = "fileName"


class ShapeType(IntEnum):
    """Shape type codes defined by the format."""

    NULL = 0
    POINT = 1
    POLYLINE = 3
    POLYGON = 5
    MULTIPOINT = 8
    POINT_Z = 11
    POLYLINE_Z = 13
    POLYGON_Z = 15
    MULTIPOINT_Z = 18
    POINT_M = 21
    POLYLINE_M = 23
    POLYGON_M = 25
    MULTIPOINT_M = 28
    MULTIPATCH = 31


def shape_type_name(code: int) -> str:
    """Human-readable name for a shape type code."""
    try:
        return ShapeType(code).name
    except ValueError:
        return "UNKNOWN"


def _read_points(record: memoryview, offset: int, count: int) -> list[Position]:
    if count < 0:
        raise ValueError(f"negative point count {count}")
    values = np.frombuffer(record, dtype="<f8", count=count * 2, offset=offset)
    return [(x, y) for x, y in values.reshape(-1, 2).tolist()]


def _read_parts(record: memoryview) -> list[list[Position]]:
    """Read the part index and point tables shared by PolyLine and Polygon.

    Each part runs from its start index up to the next part's start; the
    last part runs to the end of the point table.
    """
    num_parts, num_points = struct.unpack_from("<ii", record, 36)
    if num_parts < 0:
        raise ValueError(f"negative part count {num_parts}")
    starts = np.frombuffer(record, dtype="<i4", count=num_parts, offset=44).tolist()
    points = _read_points(record, 44 + num_parts * 4, num_points)

    ends = starts[1:] + [num_points]
    for start, end in zip(starts, ends):
        if not 0 <= start <= end <= num_points:
            raise ValueError(f"part range {start}..{end} outside {num_points} points")
    return [points[start:end] for start, end in zip(starts, ends)]


def _decode_point(record: memoryview) -> Point:
    x, y = struct.unpack_from("<2d", record, 4)
    return Point(coordinates=(x, y), bbox=BBox(x, y, x, y))


def _decode_polyline(record: memoryview) -> LineString | MultiLineString:
    parts = _read_parts(record)
    bbox = bbox_of([p for part in parts for p in part])
    if len(parts) == 1:
        return LineString(coordinates=parts[0], bbox=bbox)
    return MultiLineString(coordinates=parts, bbox=bbox)


def _decode_polygon(record: memoryview) -> Polygon:
    # Rings stay positional: no winding check, no hole classification.
    rings = _read_parts(record)
    return Polygon(coordinates=rings, bbox=bbox_of([p for ring in rings for p in ring]))


def _decode_multipoint(record: memoryview) -> MultiPoint:
    (num_points,) = struct.unpack_from("<i", record, 36)
    points = _read_points(record, 40, num_points)
    return MultiPoint(coordinates=points, bbox=bbox_of(points))


_DECODERS = {
    ShapeType.POINT: _decode_point,
    ShapeType.POLYLINE: _decode_polyline,
    ShapeType.POLYGON: _decode_polygon,
    ShapeType.MULTIPOINT: _decode_multipoint,
}


def decode_geometry(data: bytes, file_name: str) -> FeatureCollection:
    """Decode a geometry file into a FeatureCollection in record order.

    Args:
        data: Raw bytes of the .shp file.
        file_name: Logical layer name used to namespace feature ids.

    Returns:
        One Feature per supported, well-formed record. Null shapes are
        skipped silently; unsupported or malformed records are logged and
        skipped.

    Raises:
        FormatError: The header is too short, or the file code or version
            does not match.
    """
    if len(data) < HEADER_SIZE:
        raise FormatError(
            f"Invalid shapefile {file_name}: header is {len(data)} bytes, expected {HEADER_SIZE}"
        )

    (file_code,) = struct.unpack_from(">i", data, 0)
    if file_code != FILE_CODE:
        raise FormatError(
            f"Invalid shapefile {file_name}: file code {file_code} is not {FILE_CODE}"
        )

    (length_words,) = struct.unpack_from(">i", data, 24)
    file_length = length_words * 2

    version, header_type = struct.unpack_from("<ii", data, 28)
    if version != SUPPORTED_VERSION:
        raise FormatError(f"Unsupported shapefile version {version} in {file_name}")

    min_x, min_y, max_x, max_y = struct.unpack_from("<4d", data, 36)
    logger.info(
        "Decoding %s: shape type %d (%s), bbox [%f, %f, %f, %f]",
        file_name,
        header_type,
        shape_type_name(header_type),
        min_x,
        min_y,
        max_x,
        max_y,
    )
    if file_length > len(data):
        logger.warning(
            "%s declares %d bytes but only %d are present", file_name, file_length, len(data)
        )

    view = memoryview(data)
    features: list[Feature] = []
    offset = HEADER_SIZE

    while offset < file_length:
        if offset + RECORD_HEADER_SIZE + 4 > len(data):
            logger.warning("Truncated record header at byte %d in %s", offset, file_name)
            break

        record_number, content_words = struct.unpack_from(">ii", data, offset)
        if content_words < 0:
            logger.warning(
                "Record %d in %s has negative length, stopping", record_number, file_name
            )
            break

        content_start = offset + RECORD_HEADER_SIZE
        content_end = content_start + content_words * 2
        record = view[content_start:content_end]
        (record_type,) = struct.unpack_from("<i", data, content_start)

        geometry: Geometry | None = None
        decoder = _DECODERS.get(record_type)
        if record_type == ShapeType.NULL:
            pass
        elif decoder is None:
            logger.warning(
                "Skipping record %d in %s: unsupported shape type %d (%s)",
                record_number,
                file_name,
                record_type,
                shape_type_name(record_type),
            )
        else:
            try:
                geometry = decoder(record)
            except (struct.error, ValueError) as e:
                logger.warning(
                    "Skipping malformed record %d in %s: %s", record_number, file_name, e
                )

        if geometry is not None:
            features.append(
                Feature(
                    id=f"{file_name}-{record_number}",
                    geometry=geometry,
                    properties={FILE_NAME_PROPERTY: file_name},
                    bbox=geometry.bbox,
                )
            )

        offset = content_end

    logger.info("Decoded %d features from %s", len(features), file_name)
    return FeatureCollection(features=features)

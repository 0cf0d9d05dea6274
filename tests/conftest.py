"""Pytest configuration and fixtures for shapefile pipeline tests.

The builders write the binary layouts by hand with ``struct`` so every test
controls the exact bytes the decoders see.
"""

import struct

import pytest

from shape_core.simplify import simplify
from shape_core.types import (
    DEFAULT_STYLES,
    BBox,
    Feature,
    FeatureCollection,
    LineString,
    Point,
    Polygon,
    ShapefileLayer,
    bbox_of,
)


def _bbox(points):
    xs = [p[0] for p in points] or [0.0]
    ys = [p[1] for p in points] or [0.0]
    return min(xs), min(ys), max(xs), max(ys)


def point_record(x, y):
    return struct.pack("<i2d", 1, x, y)


def null_record():
    return struct.pack("<i", 0)


def parts_record(shape_type, parts):
    """PolyLine (3) or Polygon (5) record content."""
    points = [p for part in parts for p in part]
    starts = []
    total = 0
    for part in parts:
        starts.append(total)
        total += len(part)
    content = struct.pack("<i4d", shape_type, *_bbox(points))
    content += struct.pack("<2i", len(parts), len(points))
    content += struct.pack(f"<{len(starts)}i", *starts)
    for x, y in points:
        content += struct.pack("<2d", x, y)
    return content


def multipoint_record(points):
    content = struct.pack("<i4di", 8, *_bbox(points), len(points))
    for x, y in points:
        content += struct.pack("<2d", x, y)
    return content


def build_shp(contents, file_code=9994, version=1000, shape_type=1):
    """Assemble a .shp file from record contents numbered from 1."""
    body = b""
    for number, content in enumerate(contents, start=1):
        body += struct.pack(">2i", number, len(content) // 2) + content
    header = struct.pack(">i", file_code) + b"\x00" * 20
    header += struct.pack(">i", (100 + len(body)) // 2)
    header += struct.pack("<2i", version, shape_type)
    header += struct.pack("<4d", 0.0, 0.0, 0.0, 0.0)
    header += b"\x00" * 32
    return header + body


def build_dbf(fields, rows, deleted=(), encoding="cp949"):
    """Assemble a .dbf file.

    Args:
        fields: ``(name, type, length, decimal)`` tuples.
        rows: One list of raw field strings per record.
        deleted: Indices of rows flagged with the delete marker.
    """
    header_length = 32 + 32 * len(fields) + 1
    record_length = 1 + sum(f[2] for f in fields)
    data = struct.pack("<B3BIHH", 0x03, 124, 1, 1, len(rows), header_length, record_length)
    data += b"\x00" * 20
    for name, kind, length, decimal in fields:
        data += name.encode(encoding).ljust(11, b"\x00")[:11]
        data += kind.encode("ascii")
        data += b"\x00" * 4
        data += struct.pack("<2B", length, decimal)
        data += b"\x00" * 14
    data += b"\x0d"
    for index, row in enumerate(rows):
        data += b"*" if index in deleted else b" "
        for (_, _, length, _), value in zip(fields, row):
            data += value.encode(encoding).ljust(length, b" ")[:length]
    return data + b"\x1a"


@pytest.fixture
def make_shp():
    """Factory fixture for .shp bytes."""
    return build_shp


@pytest.fixture
def make_dbf():
    """Factory fixture for .dbf bytes."""
    return build_dbf


@pytest.fixture
def records():
    """Record content builders keyed by shape kind."""
    return {
        "point": point_record,
        "null": null_record,
        "parts": parts_record,
        "multipoint": multipoint_record,
    }


@pytest.fixture
def make_feature():
    """Factory for already-decoded features in lng/lat."""

    def _make(fid, geometry_type, coordinates, properties=None):
        if geometry_type == "point":
            x, y = coordinates
            geometry = Point(coordinates=(x, y), bbox=BBox(x, y, x, y))
        elif geometry_type == "line":
            geometry = LineString(coordinates=list(coordinates), bbox=bbox_of(list(coordinates)))
        elif geometry_type == "polygon":
            rings = [list(r) for r in coordinates]
            geometry = Polygon(
                coordinates=rings, bbox=bbox_of([p for ring in rings for p in ring])
            )
        else:
            raise ValueError(geometry_type)
        return Feature(
            id=fid,
            geometry=geometry,
            properties=properties or {"fileName": "test"},
            bbox=geometry.bbox,
        )

    return _make


@pytest.fixture
def make_layer():
    """Factory for a visible layer with its simplified companion."""

    def _make(features, name="test", visible=True):
        full = FeatureCollection(features=list(features))
        return ShapefileLayer(
            id=f"layer-{name}",
            name=name,
            full=full,
            simplified=simplify(full, 0.001),
            style=DEFAULT_STYLES["polygon"],
            visible=visible,
        )

    return _make

"""Shapefile ingestion core: decode, reproject, simplify, index and hit-test."""

from shape_core.errors import (
    AlignmentError,
    DispatchError,
    FormatError,
    InvalidCrsError,
    ReprojectionError,
    ShapeCoreError,
)
from shape_core.index import (
    GridIndex,
    build_grid,
    calculate_bounds,
    detect_collision,
    features_in_viewport,
    find_tile_at_point,
    query_hit,
)
from shape_core.loader import combine, load_layer, load_shapefile
from shape_core.parsers import decode_attributes, decode_geometry, decode_projection
from shape_core.reproject import reproject
from shape_core.simplify import douglas_peucker, simplify
from shape_core.types import (
    BBox,
    Bounds,
    Feature,
    FeatureCollection,
    GeoPoint,
    GeometryType,
    ShapefileLayer,
    SpatialGrid,
)

__all__ = [
    "AlignmentError",
    "BBox",
    "Bounds",
    "DispatchError",
    "Feature",
    "FeatureCollection",
    "FormatError",
    "GeoPoint",
    "GeometryType",
    "GridIndex",
    "InvalidCrsError",
    "ReprojectionError",
    "ShapeCoreError",
    "ShapefileLayer",
    "SpatialGrid",
    "build_grid",
    "calculate_bounds",
    "combine",
    "decode_attributes",
    "decode_geometry",
    "decode_projection",
    "detect_collision",
    "douglas_peucker",
    "features_in_viewport",
    "find_tile_at_point",
    "load_layer",
    "load_shapefile",
    "query_hit",
    "reproject",
    "simplify",
]

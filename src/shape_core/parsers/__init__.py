"""Decoders for the shapefile triplet (.shp, .dbf, .prj)."""

from shape_core.parsers.dbf import decode_attributes
from shape_core.parsers.prj import decode_projection
from shape_core.parsers.shp import FILE_NAME_PROPERTY, ShapeType, decode_geometry

__all__ = [
    "FILE_NAME_PROPERTY",
    "ShapeType",
    "decode_attributes",
    "decode_geometry",
    "decode_projection",
]

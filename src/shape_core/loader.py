"""Shapefile loading: decode the triplet, merge attributes, reproject, simplify."""

import logging
import struct
import time
from dataclasses import replace
from pathlib import Path
from typing import Any
from uuid import uuid4

from shape_core.config import settings
from shape_core.errors import AlignmentError
from shape_core.parsers import decode_attributes, decode_geometry, decode_projection
from shape_core.reproject import reproject
from shape_core.simplify import simplify
from shape_core.types import (
    DEFAULT_STYLES,
    FeatureCollection,
    LayerStyle,
    LineString,
    MultiLineString,
    MultiPoint,
    Point,
    ShapefileLayer,
)

logger = logging.getLogger(__name__)


def combine(
    collection: FeatureCollection,
    records: list[dict[str, Any]] | None,
    check_alignment: bool = False,
) -> FeatureCollection:
    """Merge attribute record ``i`` into the properties of feature ``i``.

    Attribute fields win on key collisions. Alignment is positional and,
    by default, unchecked: features beyond the last record keep their
    original properties and a warning is logged.

    Args:
        collection: Decoded geometry features.
        records: Decoded attribute records, possibly empty or None.
        check_alignment: Raise AlignmentError when the counts differ
            instead of merging what lines up.
    """
    if not records:
        logger.info("No attribute records, returning geometry only")
        return collection

    if check_alignment and len(records) != len(collection.features):
        raise AlignmentError(
            f"{len(records)} attribute records for {len(collection.features)} features"
        )

    if len(records) < len(collection.features):
        logger.warning(
            "Only %d attribute records for %d features; the rest keep bare properties",
            len(records),
            len(collection.features),
        )

    features = [
        replace(feature, properties={**feature.properties, **records[index]})
        if index < len(records)
        else feature
        for index, feature in enumerate(collection.features)
    ]
    return FeatureCollection(features=features)


def default_style(collection: FeatureCollection) -> LayerStyle:
    """Pick the default style from the kind of the first feature."""
    if not collection.features:
        return DEFAULT_STYLES["polygon"]
    geometry = collection.features[0].geometry
    if isinstance(geometry, (Point, MultiPoint)):
        return DEFAULT_STYLES["point"]
    if isinstance(geometry, (LineString, MultiLineString)):
        return DEFAULT_STYLES["line"]
    return DEFAULT_STYLES["polygon"]


def _decode_attributes_or_empty(
    name: str, data: bytes | None, encoding: str
) -> list[dict[str, Any]]:
    if data is None:
        logger.warning("No attribute file for %s, continuing without attributes", name)
        return []
    try:
        return decode_attributes(data, encoding=encoding)
    except (struct.error, IndexError, LookupError, ValueError) as e:
        logger.warning("Unreadable attribute file for %s, skipping attributes: %s", name, e)
        return []


def _decode_projection_or_default(name: str, data: bytes | None, default: str) -> str:
    if data is None:
        logger.warning("No projection file for %s, using default coordinate system", name)
        return default
    try:
        text = decode_projection(data)
    except UnicodeDecodeError as e:
        logger.warning("Unreadable projection file for %s, using default: %s", name, e)
        return default
    if not text:
        logger.warning("Empty projection file for %s, coordinates are left as read", name)
    return text


def load_layer(
    name: str,
    shp: bytes,
    dbf: bytes | None = None,
    prj: bytes | None = None,
    target_crs: str | None = None,
    epsilon: float | None = None,
    workers: int | None = None,
) -> ShapefileLayer:
    """Run the full pipeline on the raw bytes of one shapefile triplet.

    Args:
        name: Layer name; also namespaces the feature ids.
        shp: Geometry file bytes (required).
        dbf: Attribute file bytes, or None when absent.
        prj: Projection file bytes, or None when absent.
        target_crs: CRS to reproject into. Defaults to settings.
        epsilon: Simplification tolerance. Defaults to settings.
        workers: Reprojection parallelism. Defaults to settings.

    Raises:
        FormatError: The geometry file header is invalid.
        ReprojectionError: The CRS is unusable or a worker failed.
    """
    t_start = time.perf_counter()
    target_crs = target_crs or settings.target_crs
    epsilon = settings.simplify_epsilon if epsilon is None else epsilon

    collection = decode_geometry(shp, name)
    records = _decode_attributes_or_empty(name, dbf, settings.dbf_encoding)
    source_crs = _decode_projection_or_default(name, prj, settings.default_source_crs)

    combined = combine(collection, records)
    projected = reproject(combined, source_crs, target_crs, workers=workers)
    simplified = simplify(projected, epsilon)

    layer = ShapefileLayer(
        id=str(uuid4()),
        name=name,
        full=projected,
        simplified=simplified,
        style=default_style(projected),
    )
    logger.info(
        "Loaded layer %s: %d features in %.1f ms",
        name,
        len(projected),
        (time.perf_counter() - t_start) * 1000,
    )
    return layer


def _read_optional(path: Path) -> bytes | None:
    try:
        return path.read_bytes()
    except FileNotFoundError:
        return None
    except OSError as e:
        logger.warning("Cannot read %s: %s", path, e)
        return None


def load_shapefile(path: str | Path, **kwargs: Any) -> ShapefileLayer:
    """Load ``path`` and its sibling .dbf and .prj files from disk.

    The layer name is the file stem. Missing sidecars are substituted
    with empty attributes and the default coordinate system.
    """
    shp_path = Path(path)
    shp = shp_path.read_bytes()
    dbf = _read_optional(shp_path.with_suffix(".dbf"))
    prj = _read_optional(shp_path.with_suffix(".prj"))
    return load_layer(shp_path.stem, shp, dbf, prj, **kwargs)

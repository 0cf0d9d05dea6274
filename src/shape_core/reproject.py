"""Parallel coordinate reprojection using pyproj.

The collection is cut into contiguous chunks by feature index, each chunk
is transformed by its own worker thread with its own Transformer, and the
chunk results are merged back in start-index order.
"""

import logging
import math
import os
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, replace
from typing import Any, Callable

from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError, ProjError

from shape_core.config import settings
from shape_core.errors import DispatchError, InvalidCrsError
from shape_core.types import BBox, Feature, FeatureCollection, Geometry

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 4

CoordinateTransform2D = Callable[[float, float], tuple[float, float]]


@dataclass
class ChunkResult:
    """Transformed slice of a collection tagged with its source range."""

    start: int
    end: int
    features: list[Feature]


def default_worker_count() -> int:
    """Available parallelism, or 4 when it cannot be determined."""
    return os.cpu_count() or DEFAULT_WORKERS


def make_xy_transformer(source_crs: str, target_crs: str) -> CoordinateTransform2D:
    """Create a 2D transform function (x, y) -> (X, Y).

    Coordinates are always in (x, y) = (lng, lat) order on both sides.
    A point PROJ cannot transform raises ProjError; a non-finite result
    raises ValueError.
    """
    transformer = Transformer.from_crs(
        CRS.from_user_input(source_crs),
        CRS.from_user_input(target_crs),
        always_xy=True,
    )

    def tx(x: float, y: float) -> tuple[float, float]:
        X, Y = transformer.transform(x, y, errcheck=True)
        if not (math.isfinite(X) and math.isfinite(Y)):
            raise ValueError(f"non-finite result ({X}, {Y})")
        return float(X), float(Y)

    return tx


def _is_position(value: Any) -> bool:
    return (
        isinstance(value, (tuple, list))
        and len(value) == 2
        and all(isinstance(v, (int, float)) for v in value)
    )


def transform_coordinates(coords: Any, tx: CoordinateTransform2D) -> Any:
    """Transform every position inside an arbitrarily nested container.

    A two-number sequence is a leaf; anything else is walked recursively.
    A leaf that fails to transform is kept as-is.
    """
    if _is_position(coords):
        try:
            return tx(coords[0], coords[1])
        except (ProjError, ValueError) as e:
            logger.warning("Coordinate transform failed for %s: %s", coords, e)
            return tuple(coords)
    return [transform_coordinates(c, tx) for c in coords]


def transform_bbox(bbox: BBox | None, tx: CoordinateTransform2D) -> BBox | None:
    """Transform a bbox corner by corner (min corner, then max corner)."""
    if bbox is None:
        return None
    min_x, min_y = transform_coordinates((bbox.min_x, bbox.min_y), tx)
    max_x, max_y = transform_coordinates((bbox.max_x, bbox.max_y), tx)
    return BBox(min_x, min_y, max_x, max_y)


def reproject_geometry(geometry: Geometry, tx: CoordinateTransform2D) -> Geometry:
    return replace(
        geometry,
        coordinates=transform_coordinates(geometry.coordinates, tx),
        bbox=transform_bbox(geometry.bbox, tx),
    )


def reproject_feature(feature: Feature, tx: CoordinateTransform2D) -> Feature:
    return replace(
        feature,
        geometry=reproject_geometry(feature.geometry, tx),
        bbox=transform_bbox(feature.bbox, tx),
    )


def _reproject_chunk(
    features: list[Feature],
    source_crs: str,
    target_crs: str,
    start: int,
    end: int,
) -> ChunkResult:
    # Transformers are not shared between threads.
    tx = make_xy_transformer(source_crs, target_crs)
    return ChunkResult(start=start, end=end, features=[reproject_feature(f, tx) for f in features])


def chunk_ranges(total: int, workers: int) -> list[tuple[int, int]]:
    """Split ``range(total)`` into at most ``workers`` contiguous equal chunks."""
    if total == 0:
        return []
    size = math.ceil(total / workers)
    return [(start, min(start + size, total)) for start in range(0, total, size)]


def _validate_crs(descriptor: str, strict: bool) -> bool:
    """Check that pyproj can parse ``descriptor``.

    Returns False (after logging) when it cannot, or raises InvalidCrsError
    in strict mode.
    """
    try:
        CRS.from_user_input(descriptor)
    except CRSError as e:
        if strict:
            raise InvalidCrsError(f"Cannot parse coordinate system: {descriptor[:80]}") from e
        logger.warning(
            "Cannot parse coordinate system %s, coordinates are left as read: %s",
            descriptor[:80],
            e,
        )
        return False
    return True


def reproject(
    collection: FeatureCollection,
    from_crs: str,
    to_crs: str,
    workers: int | None = None,
    strict: bool = False,
) -> FeatureCollection:
    """Transform every coordinate of a collection from one CRS to another.

    Args:
        collection: Features to transform.
        from_crs: Source CRS (WKT, EPSG code or PROJ string). Empty means
            the collection is returned unchanged.
        to_crs: Target CRS.
        workers: Number of parallel chunks; defaults to the configured
            count, then the CPU count.
        strict: Raise InvalidCrsError for an unparseable descriptor instead
            of returning the collection unchanged.

    Returns:
        A new collection in the same feature order.

    Raises:
        InvalidCrsError: Either descriptor cannot be parsed and ``strict``
            is set.
        DispatchError: A worker failed; no partial result is returned.
    """
    if not from_crs or from_crs == to_crs:
        return collection

    if not (_validate_crs(from_crs, strict) and _validate_crs(to_crs, strict)):
        return collection

    if workers is None:
        workers = settings.reproject_workers or default_worker_count()
    if workers < 1:
        raise ValueError("workers must be at least 1")

    total = len(collection.features)
    ranges = chunk_ranges(total, workers)
    if not ranges:
        return FeatureCollection(features=[])

    logger.info("Reprojecting %d features in %d chunks", total, len(ranges))
    t_start = time.perf_counter()

    results: list[ChunkResult] = []
    with ThreadPoolExecutor(max_workers=len(ranges)) as executor:
        futures = [
            executor.submit(
                _reproject_chunk,
                collection.features[start:end],
                from_crs,
                to_crs,
                start,
                end,
            )
            for start, end in ranges
        ]
        try:
            for future in as_completed(futures):
                results.append(future.result())
        except Exception as e:
            for future in futures:
                future.cancel()
            raise DispatchError(f"Reprojection worker failed: {e}") from e

    results.sort(key=lambda r: r.start)
    features = [f for result in results for f in result.features]
    if len(features) != total:
        raise DispatchError(f"Reprojection returned {len(features)} of {total} features")

    logger.info(
        "Reprojected %d features in %.1f ms", total, (time.perf_counter() - t_start) * 1000
    )
    return FeatureCollection(features=features)

"""Uniform tile index over a fixed geographic domain.

Features are bucketed into every tile their bounding box touches, together
with their index-aligned simplified counterparts. Grids are never updated
in place: any change to the visible layers builds a new grid.
"""

import logging
import math
import threading
from collections.abc import Iterable, Iterator

from shape_core.config import settings
from shape_core.index.collision import DEFAULT_THRESHOLD_KM, detect_collision
from shape_core.parsers.shp import FILE_NAME_PROPERTY
from shape_core.types import (
    Bounds,
    Feature,
    GeoPoint,
    GridTile,
    Point,
    ShapefileLayer,
    SpatialGrid,
    iter_positions,
)

logger = logging.getLogger(__name__)


def default_domain() -> Bounds:
    """The configured indexing domain."""
    return Bounds(
        settings.domain_min_x,
        settings.domain_min_y,
        settings.domain_max_x,
        settings.domain_max_y,
    )


def _cell_count(extent: float, size: float) -> int:
    quotient = extent / size
    nearest = round(quotient)
    # Only float noise (1.1 / 0.1) snaps down; any real remainder gets a cell.
    if math.isclose(quotient, nearest, rel_tol=1e-12, abs_tol=0.0):
        return max(1, nearest)
    return max(1, math.ceil(quotient))


def create_grid(domain: Bounds, tile_width: float, tile_height: float) -> SpatialGrid:
    """Create an empty grid of ``rows x cols`` tiles covering ``domain``.

    Tiles on the last row and column are clipped to the domain edge.
    """
    if tile_width <= 0 or tile_height <= 0:
        raise ValueError("tile width and height must be positive")
    if domain.width <= 0 or domain.height <= 0:
        raise ValueError("domain must have a positive width and height")

    cols = _cell_count(domain.width, tile_width)
    rows = _cell_count(domain.height, tile_height)

    tiles: list[GridTile] = []
    for row in range(rows):
        for col in range(cols):
            min_x = domain.min_x + col * tile_width
            min_y = domain.min_y + row * tile_height
            tiles.append(
                GridTile(
                    id=f"{row}-{col}",
                    bounds=Bounds(
                        min_x,
                        min_y,
                        min(min_x + tile_width, domain.max_x),
                        min(min_y + tile_height, domain.max_y),
                        has_features=False,
                    ),
                )
            )

    return SpatialGrid(
        tiles=tiles,
        rows=rows,
        cols=cols,
        tile_width=tile_width,
        tile_height=tile_height,
    )


def feature_bounds(feature: Feature) -> Bounds | None:
    """Box used for tile assignment, or None when the feature has none.

    Points use their coordinate directly; everything else relies on the
    bbox computed at decode time.
    """
    if isinstance(feature.geometry, Point):
        x, y = feature.geometry.coordinates
        box = Bounds(x, y, x, y)
    elif feature.bbox is None:
        return None
    else:
        box = Bounds.from_bbox(feature.bbox)
    # NaN "no data" coordinates cannot be placed on the grid.
    if not all(math.isfinite(v) for v in (box.min_x, box.min_y, box.max_x, box.max_y)):
        return None
    return box


def _candidate_tiles(grid: SpatialGrid, box: Bounds) -> Iterator[GridTile]:
    """Tiles near ``box`` in row-major order.

    The range is padded by one cell on each side so boxes that only touch
    a tile edge still reach the exact intersection test.
    """
    if not grid.tiles:
        return
    origin = grid.tiles[0].bounds
    col_lo = max(0, math.floor((box.min_x - origin.min_x) / grid.tile_width) - 1)
    col_hi = min(grid.cols - 1, math.floor((box.max_x - origin.min_x) / grid.tile_width) + 1)
    row_lo = max(0, math.floor((box.min_y - origin.min_y) / grid.tile_height) - 1)
    row_hi = min(grid.rows - 1, math.floor((box.max_y - origin.min_y) / grid.tile_height) + 1)

    for row in range(row_lo, row_hi + 1):
        for col in range(col_lo, col_hi + 1):
            yield grid.tiles[row * grid.cols + col]


def build_grid(
    domain: Bounds,
    tile_size: tuple[float, float],
    layers: Iterable[ShapefileLayer],
) -> SpatialGrid:
    """Build a fresh grid from the visible layers.

    Args:
        domain: Extent covered by the tiles.
        tile_size: ``(width, height)`` of a tile in domain units.
        layers: Loaded layers; hidden ones are ignored.

    Returns:
        A new grid. Each feature is appended, with its simplified
        counterpart, to every tile its box intersects.
    """
    grid = create_grid(domain, *tile_size)
    assigned = 0
    skipped = 0

    for layer in layers:
        if not layer.visible:
            continue
        for feature, simplified in zip(
            layer.full.features, layer.simplified.features, strict=True
        ):
            box = feature_bounds(feature)
            if box is None:
                skipped += 1
                continue
            for tile in _candidate_tiles(grid, box):
                if box.intersects(tile.bounds):
                    tile.features.append(feature)
                    tile.simplified_features.append(simplified)
            assigned += 1

    logger.info(
        "Built %dx%d grid: %d features indexed, %d without bounds",
        grid.rows,
        grid.cols,
        assigned,
        skipped,
    )
    return grid


def find_tile_at_point(grid: SpatialGrid, point: GeoPoint) -> GridTile | None:
    """The first tile (row-major) whose closed bounds contain the point."""
    if not (math.isfinite(point.lng) and math.isfinite(point.lat)):
        return None
    box = Bounds(point.lng, point.lat, point.lng, point.lat)
    for tile in _candidate_tiles(grid, box):
        if tile.bounds.contains(point.lng, point.lat):
            return tile
    return None


def tiles_in_viewport(grid: SpatialGrid, viewport: Bounds) -> list[GridTile]:
    """All tiles intersecting a viewport rectangle."""
    return [tile for tile in _candidate_tiles(grid, viewport) if tile.bounds.intersects(viewport)]


def features_in_viewport(
    grid: SpatialGrid,
    viewport: Bounds,
    scale: float,
    layer_name: str | None = None,
    simplified_scale_threshold: float = 3.0,
) -> list[Feature]:
    """Features to draw for a viewport at the given scale.

    Simplified features are returned at or below the threshold scale,
    full-detail ones above it. Features spanning several tiles are
    returned once; the same id from two layers is kept for each layer.
    """
    use_simplified = scale <= simplified_scale_threshold
    # Keyed by object: tiles share one Feature per source record
    seen: set[int] = set()
    result: list[Feature] = []
    for tile in tiles_in_viewport(grid, viewport):
        for feature in tile.simplified_features if use_simplified else tile.features:
            if layer_name is not None and feature.properties.get(FILE_NAME_PROPERTY) != layer_name:
                continue
            if id(feature) in seen:
                continue
            seen.add(id(feature))
            result.append(feature)
    return result


def query_hit(
    grid: SpatialGrid,
    point: GeoPoint,
    scale: float,
    threshold_km: float = DEFAULT_THRESHOLD_KM,
) -> Feature | None:
    """Return the topmost feature hit at ``point``, or None.

    Candidates come from the tile under the point and are tested in reverse
    insertion order, so the last-drawn feature wins.
    """
    tile = find_tile_at_point(grid, point)
    if tile is None:
        return None
    for feature in reversed(tile.features):
        if detect_collision(point, feature, scale, threshold_km):
            return feature
    return None


def calculate_bounds(layers: Iterable[ShapefileLayer]) -> Bounds:
    """Extent of every coordinate in the visible layers.

    Returns the empty sentinel when no visible layer has features.
    """
    min_x = min_y = math.inf
    max_x = max_y = -math.inf
    has_features = False

    for layer in layers:
        if not layer.visible:
            continue
        for feature in layer.full.features:
            has_features = True
            for x, y in iter_positions(feature.geometry):
                min_x = min(min_x, x)
                min_y = min(min_y, y)
                max_x = max(max_x, x)
                max_y = max(max_y, y)

    if not has_features or min_x == math.inf:
        return Bounds.empty()
    return Bounds(min_x, min_y, max_x, max_y)


class GridIndex:
    """Owns the current grid and publishes rebuilt grids atomically.

    Readers always see either the previous grid or the complete new one.
    """

    def __init__(
        self,
        domain: Bounds | None = None,
        tile_size: tuple[float, float] | None = None,
        threshold_km: float | None = None,
    ) -> None:
        self.domain = domain or default_domain()
        self.tile_size = tile_size or (settings.tile_width, settings.tile_height)
        self.threshold_km = threshold_km or settings.hit_threshold_km
        self._lock = threading.Lock()
        self._grid = create_grid(self.domain, *self.tile_size)

    @property
    def grid(self) -> SpatialGrid:
        with self._lock:
            return self._grid

    def rebuild(self, layers: Iterable[ShapefileLayer]) -> SpatialGrid:
        """Build a new grid from ``layers`` and swap it in."""
        grid = build_grid(self.domain, self.tile_size, layers)
        with self._lock:
            self._grid = grid
        return grid

    def query(self, point: GeoPoint, scale: float) -> Feature | None:
        return query_hit(self.grid, point, scale, self.threshold_km)

    def features_in_viewport(
        self, viewport: Bounds, scale: float, layer_name: str | None = None
    ) -> list[Feature]:
        return features_in_viewport(
            self.grid,
            viewport,
            scale,
            layer_name=layer_name,
            simplified_scale_threshold=settings.simplified_scale_threshold,
        )

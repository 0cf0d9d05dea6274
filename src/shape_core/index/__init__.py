"""Spatial grid index and hit testing."""

from shape_core.index.collision import detect_collision, haversine_distance
from shape_core.index.grid import (
    GridIndex,
    build_grid,
    calculate_bounds,
    create_grid,
    features_in_viewport,
    find_tile_at_point,
    query_hit,
    tiles_in_viewport,
)

__all__ = [
    "GridIndex",
    "build_grid",
    "calculate_bounds",
    "create_grid",
    "detect_collision",
    "features_in_viewport",
    "find_tile_at_point",
    "haversine_distance",
    "query_hit",
    "tiles_in_viewport",
]

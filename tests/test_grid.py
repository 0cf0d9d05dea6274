"""Tests for the spatial grid index."""

import threading

import pytest

from shape_core.index.grid import (
    GridIndex,
    build_grid,
    calculate_bounds,
    create_grid,
    default_domain,
    features_in_viewport,
    find_tile_at_point,
    query_hit,
    tiles_in_viewport,
)
from shape_core.types import BBox, Bounds, Feature, GeoPoint, MultiPolygon

SQUARE = [(127.2, 37.2), (127.8, 37.2), (127.8, 37.8), (127.2, 37.8), (127.2, 37.2)]
SMALL_SQUARE = [(127.4, 37.4), (127.6, 37.4), (127.6, 37.6), (127.4, 37.6), (127.4, 37.4)]


@pytest.fixture
def domain():
    return default_domain()


class TestCreateGrid:
    """Tests for empty grid construction."""

    def test_default_domain_dimensions(self, domain):
        """The default domain is 6 rows by 8 columns of 1 degree tiles."""
        grid = create_grid(domain, 1.0, 1.0)
        assert grid.rows == 6
        assert grid.cols == 8
        assert len(grid.tiles) == 48

    def test_tiles_are_row_major_with_ids(self, domain):
        """Tiles are stored row by row with row-col ids."""
        grid = create_grid(domain, 1.0, 1.0)
        assert grid.tiles[0].id == "0-0"
        assert grid.tiles[1].id == "0-1"
        assert grid.tiles[8].id == "1-0"
        assert grid.tiles[-1].id == "5-7"

    def test_edge_tiles_clipped_to_domain(self, domain):
        """The last row and column stop at the domain edge."""
        grid = create_grid(domain, 1.0, 1.0)
        last = grid.tiles[-1].bounds
        assert last.min_x == pytest.approx(131.0)
        assert last.max_x == pytest.approx(132.0)
        assert last.min_y == pytest.approx(38.06)
        assert last.max_y == pytest.approx(38.8)

    def test_tiles_start_empty(self, domain):
        """A new grid has no features."""
        grid = create_grid(domain, 1.0, 1.0)
        assert all(not t.features and not t.bounds.has_features for t in grid.tiles)

    def test_exact_division_has_no_sliver(self):
        """Float noise in the tile count does not add an empty column."""
        grid = create_grid(Bounds(0.0, 0.0, 1.1, 1.1), 0.1, 0.1)
        assert (grid.rows, grid.cols) == (11, 11)

    def test_real_remainder_gets_a_cell(self):
        """A domain slightly wider than a whole number of tiles gets an extra column."""
        domain = Bounds(124.0, 33.06, 132.0000000001, 38.8)
        grid = create_grid(domain, 1.0, 1.0)

        assert grid.cols == 9
        edge = find_tile_at_point(grid, GeoPoint(132.00000000005, 34.0))
        assert edge is not None and edge.id == "0-8"

    @pytest.mark.parametrize("size", [(0.0, 1.0), (1.0, -1.0)])
    def test_invalid_tile_size(self, domain, size):
        """Tile sizes must be positive."""
        with pytest.raises(ValueError):
            create_grid(domain, *size)


class TestBuildGrid:
    """Tests for feature assignment."""

    def test_point_lands_in_its_tile(self, domain, make_feature, make_layer):
        """A point is indexed in the tile under it, with its simplified twin."""
        layer = make_layer([make_feature("p", "point", (127.5, 37.5))])
        grid = build_grid(domain, (1.0, 1.0), [layer])

        tiles = [t for t in grid.tiles if t.features]
        assert [t.id for t in tiles] == ["4-3"]
        assert tiles[0].features[0].id == "p"
        assert tiles[0].simplified_features[0].id == "p"

    def test_spanning_feature_in_every_touched_tile(self, domain, make_feature, make_layer):
        """A line crossing tiles is indexed in each of them."""
        line = make_feature("l", "line", [(125.5, 34.5), (127.5, 34.5)])
        grid = build_grid(domain, (1.0, 1.0), [make_layer([line])])

        assert sorted(t.id for t in grid.tiles if t.features) == ["1-1", "1-2", "1-3"]

    def test_membership_is_exact_intersection(self, domain, make_feature, make_layer):
        """Every indexed feature's box intersects its tile."""
        layer = make_layer(
            [make_feature("poly", "polygon", [SQUARE]), make_feature("p", "point", (130.2, 35.1))]
        )
        grid = build_grid(domain, (1.0, 1.0), [layer])

        for tile in grid.tiles:
            for feature in tile.features:
                bbox = feature.bbox
                assert Bounds(bbox.min_x, bbox.min_y, bbox.max_x, bbox.max_y).intersects(
                    tile.bounds
                )
            assert len(tile.features) == len(tile.simplified_features)

    def test_hidden_layers_ignored(self, domain, make_feature, make_layer):
        """Invisible layers are not indexed."""
        hidden = make_layer([make_feature("p", "point", (127.5, 37.5))], visible=False)
        grid = build_grid(domain, (1.0, 1.0), [hidden])
        assert all(not t.features for t in grid.tiles)

    def test_feature_outside_domain_not_indexed(self, domain, make_feature, make_layer):
        """Features off the domain land in no tile."""
        layer = make_layer([make_feature("far", "point", (10.0, 10.0))])
        grid = build_grid(domain, (1.0, 1.0), [layer])
        assert all(not t.features for t in grid.tiles)

    def test_multi_feature_indexed_by_bbox(self, domain, make_layer):
        """Multi-part features are placed by their bounding box."""
        geometry = MultiPolygon(coordinates=[[SQUARE]], bbox=BBox(127.2, 37.2, 127.8, 37.8))
        feature = Feature(id="mp", geometry=geometry, bbox=geometry.bbox)
        grid = build_grid(domain, (1.0, 1.0), [make_layer([feature])])
        assert [t.id for t in grid.tiles if t.features] == ["4-3"]


class TestQueries:
    """Tests for point and viewport lookups."""

    def test_find_tile_at_point(self, domain):
        """Points outside the domain or non-finite find no tile."""
        grid = create_grid(domain, 1.0, 1.0)
        assert find_tile_at_point(grid, GeoPoint(127.5, 37.5)).id == "4-3"
        assert find_tile_at_point(grid, GeoPoint(100.0, 37.5)) is None
        assert find_tile_at_point(grid, GeoPoint(float("nan"), 37.5)) is None

    def test_shared_edge_goes_to_first_tile(self, domain):
        """A point on a shared edge belongs to the first tile in row-major order."""
        grid = create_grid(domain, 1.0, 1.0)
        assert find_tile_at_point(grid, GeoPoint(125.0, 35.5)).id == "2-0"

    def test_query_exact_point(self, domain, make_feature, make_layer):
        """Querying at a point feature's coordinate hits it."""
        layer = make_layer([make_feature("p", "point", (127.5, 37.5))])
        grid = build_grid(domain, (1.0, 1.0), [layer])
        hit = query_hit(grid, GeoPoint(127.5, 37.5), scale=1.0)
        assert hit is not None and hit.id == "p"

    def test_query_miss(self, domain, make_feature, make_layer):
        """Queries far from every feature, or off the grid, return None."""
        layer = make_layer([make_feature("p", "point", (127.5, 37.5))])
        grid = build_grid(domain, (1.0, 1.0), [layer])
        assert query_hit(grid, GeoPoint(127.9, 37.9), scale=1.0) is None
        assert query_hit(grid, GeoPoint(0.0, 0.0), scale=1.0) is None

    def test_last_inserted_wins(self, domain, make_feature, make_layer):
        """Overlapping features resolve to the topmost one."""
        below = make_layer([make_feature("below", "polygon", [SQUARE])], name="a")
        above = make_layer([make_feature("above", "polygon", [SMALL_SQUARE])], name="b")
        grid = build_grid(domain, (1.0, 1.0), [below, above])

        assert query_hit(grid, GeoPoint(127.5, 37.5), scale=1.0).id == "above"
        assert query_hit(grid, GeoPoint(127.3, 37.3), scale=1.0).id == "below"

    def test_viewport_deduplicates(self, domain, make_feature, make_layer):
        """A feature spanning tiles is returned once."""
        line = make_feature("l", "line", [(125.5, 34.5), (127.5, 34.5)])
        grid = build_grid(domain, (1.0, 1.0), [make_layer([line])])

        viewport = Bounds(125.0, 34.0, 128.0, 35.0)
        assert len(tiles_in_viewport(grid, viewport)) > 1
        assert [f.id for f in features_in_viewport(grid, viewport, scale=5.0)] == ["l"]

    def test_viewport_picks_detail_by_scale(self, domain, make_feature, make_layer):
        """Low scales get simplified features, high scales full detail."""
        wiggly = [(126.0 + i * 0.01, 36.5 + (i % 2) * 0.0001) for i in range(50)]
        layer = make_layer([make_feature("w", "line", wiggly)])
        grid = build_grid(domain, (1.0, 1.0), [layer])
        viewport = Bounds(126.0, 36.0, 127.0, 37.0)

        coarse = features_in_viewport(grid, viewport, scale=1.0)[0]
        detailed = features_in_viewport(grid, viewport, scale=10.0)[0]
        assert len(coarse.geometry.coordinates) == 2
        assert len(detailed.geometry.coordinates) == 50

    def test_viewport_keeps_same_ids_from_different_layers(
        self, domain, make_feature, make_layer
    ):
        """Two layers loaded from files with the same stem both show up."""
        first = make_layer([make_feature("roads-1", "point", (127.5, 37.5))], name="roads")
        second = make_layer([make_feature("roads-1", "point", (127.6, 37.6))], name="roads")
        grid = build_grid(domain, (1.0, 1.0), [first, second])
        viewport = Bounds(127.0, 37.0, 128.0, 38.0)

        result = features_in_viewport(grid, viewport, scale=10.0)
        assert [f.geometry.coordinates for f in result] == [(127.5, 37.5), (127.6, 37.6)]

    def test_viewport_filters_by_layer_name(self, domain, make_feature, make_layer):
        """Viewport queries can be limited to one layer."""
        a = make_feature("a", "point", (127.5, 37.5), {"fileName": "roads"})
        b = make_feature("b", "point", (127.6, 37.6), {"fileName": "rivers"})
        grid = build_grid(domain, (1.0, 1.0), [make_layer([a, b])])
        viewport = Bounds(127.0, 37.0, 128.0, 38.0)

        result = features_in_viewport(grid, viewport, scale=10.0, layer_name="rivers")
        assert [f.id for f in result] == ["b"]


class TestCalculateBounds:
    """Tests for the layer extent."""

    def test_visible_layers_only(self, make_feature, make_layer):
        """Hidden layers do not widen the extent."""
        shown = make_layer([make_feature("l", "line", [(126.0, 35.0), (128.0, 36.5)])])
        hidden = make_layer([make_feature("p", "point", (0.0, 0.0))], visible=False)

        bounds = calculate_bounds([shown, hidden])
        assert (bounds.min_x, bounds.min_y, bounds.max_x, bounds.max_y) == (
            126.0,
            35.0,
            128.0,
            36.5,
        )
        assert bounds.has_features

    def test_empty_sentinel(self, make_layer):
        """No features gives the (0, 0, 1, 1) sentinel."""
        assert calculate_bounds([make_layer([])]) == Bounds(0.0, 0.0, 1.0, 1.0, False)
        assert calculate_bounds([]) == Bounds.empty()


class TestGridIndex:
    """Tests for the owning index object."""

    def test_rebuild_publishes_new_grid(self, make_feature, make_layer):
        """Rebuilding swaps in a new grid and leaves the old one untouched."""
        index = GridIndex()
        before = index.grid
        assert index.query(GeoPoint(127.5, 37.5), 1.0) is None

        index.rebuild([make_layer([make_feature("p", "point", (127.5, 37.5))])])

        assert index.grid is not before
        assert index.query(GeoPoint(127.5, 37.5), 1.0).id == "p"
        assert all(not t.features for t in before.tiles)

    def test_concurrent_readers_see_complete_grids(self, make_feature, make_layer):
        """Readers never see a half-built grid."""
        layer = make_layer([make_feature(f"p{i}", "point", (124.5 + i, 35.5)) for i in range(7)])
        index = GridIndex()
        seen = []

        def reader():
            for _ in range(200):
                grid = index.grid
                seen.append(sum(len(t.features) for t in grid.tiles))

        threads = [threading.Thread(target=reader) for _ in range(4)]
        for t in threads:
            t.start()
        for _ in range(20):
            index.rebuild([layer])
            index.rebuild([])
        for t in threads:
            t.join()

        assert set(seen) <= {0, 7}

    def test_viewport_through_index(self, make_feature, make_layer):
        """The index answers viewport queries with configured thresholds."""
        index = GridIndex()
        index.rebuild([make_layer([make_feature("p", "point", (127.5, 37.5))])])

        result = index.features_in_viewport(Bounds(127.0, 37.0, 128.0, 38.0), scale=1.0)
        assert [f.id for f in result] == ["p"]
        assert index.features_in_viewport(Bounds(130.0, 34.0, 131.0, 35.0), scale=1.0) == []

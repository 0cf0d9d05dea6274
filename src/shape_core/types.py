"""Type definitions for decoded shapefile layers.

Geometries are a closed set of six frozen dataclasses mirroring the GeoJSON
geometry tags. Positions are ``(x, y)`` tuples; the containers around them
follow the GeoJSON nesting for each kind.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, NamedTuple, Union

Position = tuple[float, float]


class GeometryType(str, Enum):
    """GeoJSON geometry tags supported by the decoder."""

    POINT = "Point"
    LINE_STRING = "LineString"
    POLYGON = "Polygon"
    MULTI_POINT = "MultiPoint"
    MULTI_LINE_STRING = "MultiLineString"
    MULTI_POLYGON = "MultiPolygon"


class BBox(NamedTuple):
    """An axis-aligned bounding box."""

    min_x: float
    min_y: float
    max_x: float
    max_y: float

    def contains(self, x: float, y: float) -> bool:
        return self.min_x <= x <= self.max_x and self.min_y <= y <= self.max_y


class GeoPoint(NamedTuple):
    """A geographic query position."""

    lng: float
    lat: float


def bbox_of(positions: list[Position]) -> BBox | None:
    """Bounding box of a flat list of positions, or None when empty."""
    if not positions:
        return None
    xs = [p[0] for p in positions]
    ys = [p[1] for p in positions]
    return BBox(min(xs), min(ys), max(xs), max(ys))


@dataclass(frozen=True)
class Point:
    type: ClassVar[GeometryType] = GeometryType.POINT

    coordinates: Position
    bbox: BBox | None = None


@dataclass(frozen=True)
class LineString:
    type: ClassVar[GeometryType] = GeometryType.LINE_STRING

    coordinates: list[Position]
    bbox: BBox | None = None


@dataclass(frozen=True)
class Polygon:
    """A polygon as a list of rings.

    Rings are kept in file order; the first ring is not treated specially
    and inner rings are not classified as holes.
    """

    type: ClassVar[GeometryType] = GeometryType.POLYGON

    coordinates: list[list[Position]]
    bbox: BBox | None = None


@dataclass(frozen=True)
class MultiPoint:
    type: ClassVar[GeometryType] = GeometryType.MULTI_POINT

    coordinates: list[Position]
    bbox: BBox | None = None


@dataclass(frozen=True)
class MultiLineString:
    type: ClassVar[GeometryType] = GeometryType.MULTI_LINE_STRING

    coordinates: list[list[Position]]
    bbox: BBox | None = None


@dataclass(frozen=True)
class MultiPolygon:
    type: ClassVar[GeometryType] = GeometryType.MULTI_POLYGON

    coordinates: list[list[list[Position]]]
    bbox: BBox | None = None


Geometry = Union[Point, LineString, Polygon, MultiPoint, MultiLineString, MultiPolygon]

GEOMETRY_CLASSES: tuple[type, ...] = (
    Point,
    LineString,
    Polygon,
    MultiPoint,
    MultiLineString,
    MultiPolygon,
)


def iter_positions(geometry: Geometry) -> list[Position]:
    """Flatten every position of a geometry into one list."""
    if isinstance(geometry, Point):
        return [geometry.coordinates]
    if isinstance(geometry, (LineString, MultiPoint)):
        return list(geometry.coordinates)
    if isinstance(geometry, (Polygon, MultiLineString)):
        return [p for part in geometry.coordinates for p in part]
    if isinstance(geometry, MultiPolygon):
        return [p for polygon in geometry.coordinates for ring in polygon for p in ring]
    raise TypeError(f"Unsupported geometry: {type(geometry).__name__}")


def _plain(coords: Any) -> Any:
    """Convert nested position tuples into JSON-friendly lists."""
    if isinstance(coords, tuple):
        return list(coords)
    return [_plain(c) for c in coords]


def geometry_to_geojson(geometry: Geometry) -> dict[str, Any]:
    """Convert a geometry to a GeoJSON geometry dict."""
    if not isinstance(geometry, GEOMETRY_CLASSES):
        raise TypeError(f"Unsupported geometry: {type(geometry).__name__}")
    result: dict[str, Any] = {
        "type": geometry.type.value,
        "coordinates": _plain(geometry.coordinates),
    }
    if geometry.bbox is not None:
        result["bbox"] = list(geometry.bbox)
    return result


@dataclass(frozen=True)
class Feature:
    """A single decoded shape record with its attributes."""

    id: str
    geometry: Geometry
    properties: dict[str, Any] = field(default_factory=dict)
    bbox: BBox | None = None

    def to_geojson(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "type": "Feature",
            "id": self.id,
            "geometry": geometry_to_geojson(self.geometry),
            "properties": {"id": self.id, **self.properties},
        }
        if self.bbox is not None:
            result["bbox"] = list(self.bbox)
        return result


@dataclass(frozen=True)
class FeatureCollection:
    """Ordered features; order always matches the source record order."""

    features: list[Feature] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.features)

    def __iter__(self):
        return iter(self.features)

    def __getitem__(self, index: int) -> Feature:
        return self.features[index]

    def to_geojson(self) -> dict[str, Any]:
        """Convert to a GeoJSON FeatureCollection dict."""
        return {
            "type": "FeatureCollection",
            "features": [f.to_geojson() for f in self.features],
        }


@dataclass(frozen=True)
class Bounds:
    """Rectangular extent used for tiles, domains and viewports."""

    min_x: float
    min_y: float
    max_x: float
    max_y: float
    has_features: bool = True

    @classmethod
    def empty(cls) -> "Bounds":
        """Sentinel bounds for an empty feature set."""
        return cls(0.0, 0.0, 1.0, 1.0, has_features=False)

    @classmethod
    def from_bbox(cls, bbox: BBox) -> "Bounds":
        return cls(bbox.min_x, bbox.min_y, bbox.max_x, bbox.max_y)

    @property
    def width(self) -> float:
        return self.max_x - self.min_x

    @property
    def height(self) -> float:
        return self.max_y - self.min_y

    def intersects(self, other: "Bounds") -> bool:
        """True unless the two rectangles are separated on either axis."""
        return not (
            self.max_x < other.min_x
            or self.min_x > other.max_x
            or self.max_y < other.min_y
            or self.min_y > other.max_y
        )

    def contains(self, x: float, y: float) -> bool:
        """Closed-interval point containment."""
        return self.min_x <= x <= self.max_x and self.min_y <= y <= self.max_y


@dataclass
class GridTile:
    """One fixed-size cell of the spatial grid."""

    id: str
    bounds: Bounds
    features: list[Feature] = field(default_factory=list)
    simplified_features: list[Feature] = field(default_factory=list)


@dataclass
class SpatialGrid:
    """Uniform tile index over a fixed domain. Tiles are stored row-major."""

    tiles: list[GridTile]
    rows: int
    cols: int
    tile_width: float
    tile_height: float


@dataclass(frozen=True)
class LayerStyle:
    """Default drawing hints for a layer. Only carried, never rendered here."""

    color: str
    weight: float
    opacity: float
    fill_opacity: float
    stroke_color: str | None = None


DEFAULT_STYLES: dict[str, LayerStyle] = {
    "point": LayerStyle(color="#FF6B6B", weight=0.5, opacity=1.0, fill_opacity=0.2),
    "line": LayerStyle(color="#3B82F6", weight=2.0, opacity=1.0, fill_opacity=0.2),
    "polygon": LayerStyle(
        color="#E2E8F0",
        stroke_color="#475569",
        weight=1.0,
        opacity=1.0,
        fill_opacity=0.3,
    ),
}


@dataclass
class ShapefileLayer:
    """A loaded shapefile in the viewer session.

    ``simplified`` stays index-aligned with ``full`` for the lifetime of
    the layer.
    """

    id: str
    name: str
    full: FeatureCollection
    simplified: FeatureCollection
    style: LayerStyle
    visible: bool = True

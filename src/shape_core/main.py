"""Command line entry point: load a shapefile and optionally hit-test a point."""

import argparse
import json
import logging
import sys

from shape_core.config import settings
from shape_core.errors import ShapeCoreError
from shape_core.index.grid import GridIndex, calculate_bounds
from shape_core.loader import load_shapefile
from shape_core.types import GeoPoint


def setup_logging() -> None:
    """Configure logging for the CLI."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="shape-core", description=__doc__)
    parser.add_argument("path", help="Path to the .shp file; .dbf and .prj are read beside it")
    parser.add_argument(
        "--query",
        nargs=2,
        type=float,
        metavar=("LNG", "LAT"),
        help="Report the feature hit at this position",
    )
    parser.add_argument("--scale", type=float, default=1.0, help="Zoom factor for the hit radius")
    parser.add_argument("--epsilon", type=float, default=None, help="Simplification tolerance")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    """Run the CLI. Returns the process exit code."""
    setup_logging()
    logger = logging.getLogger(__name__)
    args = _parse_args(argv)

    try:
        layer = load_shapefile(args.path, epsilon=args.epsilon)
    except (ShapeCoreError, OSError):
        logger.exception("Failed to load %s", args.path)
        return 1

    index = GridIndex()
    index.rebuild([layer])
    bounds = calculate_bounds([layer])
    logger.info(
        "Layer %s: %d features, extent [%f, %f, %f, %f]",
        layer.name,
        len(layer.full),
        bounds.min_x,
        bounds.min_y,
        bounds.max_x,
        bounds.max_y,
    )

    if args.query is not None:
        try:
            feature = index.query(GeoPoint(*args.query), args.scale)
        except ValueError as e:
            logger.error("Invalid query: %s", e)
            return 1
        if feature is None:
            print("no hit")
        else:
            print(json.dumps(feature.to_geojson(), ensure_ascii=False, default=str))
    return 0


def run() -> None:
    """Entry point for the console script."""
    sys.exit(main())


if __name__ == "__main__":
    run()

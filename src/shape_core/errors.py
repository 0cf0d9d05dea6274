"""Exceptions raised by the shapefile pipeline.

Only header-level and dispatch-level failures surface as exceptions.
Per-record and per-coordinate problems are logged and skipped.
"""


class ShapeCoreError(Exception):
    """Base class for pipeline errors."""


class FormatError(ShapeCoreError):
    """The geometry file header is not a supported shapefile."""


class AlignmentError(ShapeCoreError):
    """Attribute and geometry record counts do not match."""


class ReprojectionError(ShapeCoreError):
    """Base class for coordinate transformation failures."""


class InvalidCrsError(ReprojectionError):
    """A coordinate system descriptor could not be parsed."""


class DispatchError(ReprojectionError):
    """A reprojection worker failed; partial results were discarded."""

"""Projection sidecar (.prj) decoder."""

from shape_core.config import settings


def decode_projection(data: bytes | None, default: str | None = None) -> str:
    """Return the WKT coordinate system text of a .prj file.

    When the sidecar is absent (``data`` is None) the ``default`` descriptor
    is returned, falling back to the configured source coordinate system.
    """
    if data is None:
        return settings.default_source_crs if default is None else default
    return data.decode("utf-8").strip()

"""Shared constants: single source of truth.

Centralises CRS codes, bundled-dataset file names and artifact suffixes
used across the loader, the layer builder and the renderers.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Coordinate reference systems
# ---------------------------------------------------------------------------

WGS84_CRS: str = "EPSG:4326"
"""Geographic CRS used by web maps for marker positions."""

WEB_MERCATOR_CRS: str = "EPSG:3857"
"""Projected CRS of web basemap tiles; rasters are warped here for overlays."""

# ---------------------------------------------------------------------------
# Bundled dataset layout
# ---------------------------------------------------------------------------

DATASET_MANIFEST: str = "dataset.json"
"""Manifest naming the tables, key columns and CRS of a survey dataset."""

TABLE_KEYS: tuple[str, str, str] = ("points", "grids", "readings")
"""Tables every dataset manifest must declare."""

# ---------------------------------------------------------------------------
# Artifact suffixes
# ---------------------------------------------------------------------------

STATIC_SUFFIXES: frozenset[str] = frozenset({".png", ".jpg", ".jpeg", ".pdf"})
"""File suffixes accepted for static (matplotlib) snapshots."""

INTERACTIVE_SUFFIXES: frozenset[str] = frozenset({".html"})
"""File suffixes accepted for interactive web maps."""

VECTOR_DRIVERS: dict[str, str] = {
    ".geojson": "GeoJSON",
    ".json": "GeoJSON",
    ".gpkg": "GPKG",
    ".kml": "KML",
}
"""OGR driver per vector export suffix."""

RASTER_SUFFIXES: frozenset[str] = frozenset({".tif", ".tiff"})
"""File suffixes accepted for raster (GeoTIFF) exports."""

MANIFEST_FILENAME: str = "manifest.json"
"""Name of the artifact manifest written next to walkthrough outputs."""

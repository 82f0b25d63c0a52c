"""Export activity: write built layers and the run manifest to disk.

- Rasters become multi-band GeoTIFFs through ``rasterio`` (band
  descriptions carry the band names, NaN marks nodata).
- Point layers go through ``geopandas`` with the ``fiona`` engine; the
  driver follows the file suffix (GeoJSON, GeoPackage, KML).  KML is
  always written in WGS 84.
- The walkthrough manifest is written as ``manifest.json``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

import fiona
import numpy as np
import rasterio
from fiona.errors import FionaError
from rasterio.errors import RasterioError

from soil_survey_maps.core.constants import (
    MANIFEST_FILENAME,
    RASTER_SUFFIXES,
    VECTOR_DRIVERS,
    WGS84_CRS,
)
from soil_survey_maps.core.exceptions import PermanentError

if TYPE_CHECKING:
    import geopandas as gpd

    from soil_survey_maps.models.manifest import WalkthroughManifest
    from soil_survey_maps.models.raster import RasterLayer

logger = logging.getLogger("soil_survey_maps.activities.export_layers")

# Lossless compression for exported GeoTIFFs
GEOTIFF_COMPRESSION = "deflate"

# GDAL writes KML, but fiona registers the driver read-only
if "w" not in fiona.drvsupport.supported_drivers.get("KML", ""):
    fiona.drvsupport.supported_drivers["KML"] = "rw"


class ExportError(PermanentError):
    """Raised when a layer or manifest cannot be written."""

    default_stage = "export"
    default_code = "EXPORT_FAILED"


def export_raster(layer: RasterLayer, path: Path | str) -> Path:
    """Write a raster layer as a multi-band GeoTIFF.

    Args:
        layer: Raster to write; one GeoTIFF band per layer band, in order.
        path: Output path ending in ``.tif`` or ``.tiff``.

    Returns:
        The path written.

    Raises:
        ExportError: If the suffix is wrong or rasterio cannot write.
    """
    path = Path(path)
    if path.suffix.lower() not in RASTER_SUFFIXES:
        msg = f"Raster exports must be GeoTIFF (.tif/.tiff), got {path.suffix or '(none)'!r}"
        raise ExportError(msg, code="UNSUPPORTED_FORMAT")

    profile = {
        "driver": "GTiff",
        "height": layer.height,
        "width": layer.width,
        "count": layer.count,
        "dtype": "float64",
        "crs": layer.crs,
        "transform": layer.transform,
        "nodata": np.nan,
        "compress": GEOTIFF_COMPRESSION,
    }
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with rasterio.open(path, "w", **profile) as dst:
            dst.write(layer.data.astype(np.float64, copy=False))
            for index, name in enumerate(layer.band_names, start=1):
                dst.set_band_description(index, name)
    except (OSError, RasterioError) as exc:
        msg = f"Cannot write raster to {path}: {exc}"
        raise ExportError(msg) from exc

    logger.info(
        "Raster exported | path=%s | bands=%d | shape=%dx%d",
        path,
        layer.count,
        layer.height,
        layer.width,
    )
    return path


def export_points(points: gpd.GeoDataFrame, path: Path | str) -> Path:
    """Write a point layer; the driver is chosen from the suffix.

    Supported suffixes: ``.geojson``/``.json`` (GeoJSON), ``.gpkg``
    (GeoPackage), ``.kml`` (KML, reprojected to WGS 84).

    Raises:
        ExportError: If the suffix is unsupported or the write fails.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    driver = VECTOR_DRIVERS.get(suffix)
    if driver is None:
        msg = (
            f"Unsupported vector format {suffix or '(none)'!r}; "
            f"expected one of {', '.join(sorted(VECTOR_DRIVERS))}"
        )
        raise ExportError(msg, code="UNSUPPORTED_FORMAT")

    layer = points.to_crs(WGS84_CRS) if driver == "KML" else points
    # mixed-type object columns are written as text
    for column in layer.columns:
        if column != layer.geometry.name and layer[column].dtype == object:
            layer = layer.assign(**{column: layer[column].astype(str)})

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        if path.exists():
            path.unlink()
        layer.to_file(path, driver=driver, engine="fiona")
    except (OSError, FionaError) as exc:
        msg = f"Cannot write {driver} layer to {path}: {exc}"
        raise ExportError(msg) from exc

    logger.info(
        "Points exported | path=%s | driver=%s | features=%d",
        path,
        driver,
        len(layer),
    )
    return path


def write_manifest(manifest: WalkthroughManifest, output_dir: Path | str) -> Path:
    """Write ``manifest.json`` into ``output_dir`` and return its path.

    Raises:
        ExportError: If the file cannot be written.
    """
    path = Path(output_dir) / MANIFEST_FILENAME
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(manifest.to_json(), encoding="utf-8")
    except OSError as exc:
        msg = f"Cannot write manifest to {path}: {exc}"
        raise ExportError(msg, stage="manifest") from exc

    logger.info(
        "Manifest written | path=%s | walkthrough=%s | artifacts=%d",
        path,
        manifest.walkthrough,
        len(manifest.artifacts),
    )
    return path

"""Layer builder activity.

Turns the tabular sub-tables of a ``SurveyDataset`` into map layers:

- **Point layer**: the points table with its two coordinate columns
  replaced by a point geometry (a geopandas ``GeoDataFrame``).  All other
  columns are kept unchanged and in their original order.
- **Raster layer**: a caller-selected subset of grid columns, coordinate
  columns first, where every remaining column becomes one band on the
  lattice the coordinates describe (a ``RasterLayer``).

Both transformations are pure: same input, bit-identical output.

Lattice rules for the raster:
- Each axis has its own cell size, the smallest step between distinct
  coordinates on that axis, so cells may be rectangular.  Larger steps
  must be whole multiples of it; the skipped cells become NaN.
- A row or column missing from the table entirely widens the derived
  step on that axis instead of leaving a gap; pass ``cell_size`` to keep
  such a gap on the lattice.
- Every ``(x, y)`` pair occurs at most once.
- A single row or column needs an explicit ``cell_size``.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

import geopandas as gpd
import numpy as np
import pandas as pd
from pyproj import CRS
from rasterio.crs import CRS as RasterioCRS
from rasterio.transform import from_origin
from rasterio.warp import Resampling, calculate_default_transform, reproject

from soil_survey_maps.core.constants import WGS84_CRS
from soil_survey_maps.core.exceptions import ValidationError
from soil_survey_maps.models.raster import RasterLayer

logger = logging.getLogger("soil_survey_maps.activities.build_layers")

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# Allowed deviation from a whole number of cells, as a fraction of one cell
DEFAULT_LATTICE_TOLERANCE = 1e-4

# Minimum selected columns for a raster: x, y and one band
MIN_RASTER_COLUMNS = 3

# Geographic coordinate bounds (degrees)
MIN_LONGITUDE = -180.0
MAX_LONGITUDE = 180.0
MIN_LATITUDE = -90.0
MAX_LATITUDE = 90.0

# Row labels quoted in coordinate error messages
MAX_REPORTED_ROWS = 5


# ---------------------------------------------------------------------------
# Exceptions
# ---------------------------------------------------------------------------


class LayerBuildError(ValidationError):
    """Raised when a table cannot be turned into a map layer."""

    default_stage = "build_layers"
    default_code = "LAYER_BUILD_FAILED"


class CoordinateError(LayerBuildError):
    """Raised when coordinate columns are missing, empty or non-numeric."""

    default_code = "COORDINATE_INVALID"


class LatticeError(LayerBuildError):
    """Raised when grid coordinates do not form a regular lattice."""

    default_code = "LATTICE_IRREGULAR"


# ---------------------------------------------------------------------------
# Point layer
# ---------------------------------------------------------------------------


def build_point_layer(
    points: pd.DataFrame,
    crs: str,
    *,
    x_column: str = "Easting",
    y_column: str = "Northing",
) -> gpd.GeoDataFrame:
    """Attach point geometry to a points table.

    Args:
        points: Table with one row per site.
        crs: CRS descriptor of the coordinate columns.
        x_column: Easting / longitude column.
        y_column: Northing / latitude column.

    Returns:
        A ``GeoDataFrame`` with the same rows and index, every
        non-coordinate column in original order, and a ``geometry``
        column built solely from ``x_column`` and ``y_column``.

    Raises:
        CoordinateError: If a coordinate column is missing, or holds
            missing, non-numeric, non-finite or out-of-range values.
    """
    missing = [c for c in (x_column, y_column) if c not in points.columns]
    if missing:
        msg = f"Points table is missing coordinate column(s): {', '.join(missing)}"
        raise CoordinateError(msg)

    xs = _numeric_coordinates(points[x_column], x_column)
    ys = _numeric_coordinates(points[y_column], y_column)
    _check_geographic_range(xs, ys, crs)

    attributes = points.drop(columns=[x_column, y_column])
    layer = gpd.GeoDataFrame(
        attributes.copy(),
        geometry=gpd.points_from_xy(xs, ys),
        crs=crs,
    )

    logger.info(
        "Point layer built | features=%d | attributes=%d | crs=%s",
        len(layer),
        attributes.shape[1],
        crs,
    )
    return layer


def to_geographic(points: gpd.GeoDataFrame) -> gpd.GeoDataFrame:
    """Reproject a point layer to WGS 84 longitude/latitude for web maps.

    Raises:
        CoordinateError: If the layer has no CRS to reproject from.
    """
    if points.crs is None:
        msg = "Point layer has no CRS; cannot reproject to geographic coordinates"
        raise CoordinateError(msg)
    if CRS.from_user_input(points.crs) == CRS.from_user_input(WGS84_CRS):
        return points
    return points.to_crs(WGS84_CRS)


# ---------------------------------------------------------------------------
# Raster layer
# ---------------------------------------------------------------------------


def build_raster_layer(
    grid: pd.DataFrame,
    columns: Sequence[str] | None = None,
    crs: str = "",
    *,
    cell_size: float | tuple[float, float] | None = None,
    tolerance: float = DEFAULT_LATTICE_TOLERANCE,
) -> RasterLayer:
    """Build a multi-band raster from a grid table.

    Args:
        grid: Table with one row per cell.
        columns: Selected columns, the two coordinate columns first.
            ``None`` selects every column of ``grid``.
        crs: CRS descriptor of the coordinates.
        cell_size: Cell size in map units, one value for both axes or
            ``(x_size, y_size)``.  ``None`` derives it from the data.
        tolerance: Allowed deviation from the lattice, as a fraction of
            one cell.

    Returns:
        A north-up ``RasterLayer`` with one band per selected
        non-coordinate column.  Lattice cells absent from ``grid``
        hold NaN.

    Raises:
        LayerBuildError: If fewer than three columns are selected, a
            selected column is missing or repeated, a band column is not
            numeric, or the grid is empty.
        CoordinateError: If coordinates are missing or non-numeric.
        LatticeError: If the coordinates do not form a lattice with a
            single cell size per axis, or an ``(x, y)`` pair repeats.
    """
    selected = list(grid.columns) if columns is None else list(columns)
    if len(selected) < MIN_RASTER_COLUMNS:
        msg = (
            f"Raster needs two coordinate columns and at least one band column, "
            f"got {selected}"
        )
        raise LayerBuildError(msg)

    duplicated = sorted({c for c in selected if selected.count(c) > 1})
    if duplicated:
        msg = f"Column(s) selected more than once: {', '.join(duplicated)}"
        raise LayerBuildError(msg)

    missing = [c for c in selected if c not in grid.columns]
    if missing:
        msg = f"Grid table is missing selected column(s): {', '.join(missing)}"
        raise LayerBuildError(msg)

    if grid.empty:
        msg = "Grid table has no rows"
        raise LayerBuildError(msg)

    x_column, y_column, *band_names = selected
    xs = _numeric_coordinates(grid[x_column], x_column)
    ys = _numeric_coordinates(grid[y_column], y_column)

    for name in band_names:
        if not pd.api.types.is_numeric_dtype(grid[name]) or pd.api.types.is_bool_dtype(grid[name]):
            msg = f"Band column '{name}' is not numeric (dtype {grid[name].dtype})"
            raise LayerBuildError(msg, code="BAND_NOT_NUMERIC")

    x_size, y_size = _split_cell_size(cell_size)
    x_res = _axis_resolution(xs, x_column, x_size, tolerance)
    y_res = _axis_resolution(ys, y_column, y_size, tolerance)

    x_min, y_max = float(xs.min()), float(ys.max())
    col_index = np.rint((xs - x_min) / x_res).astype(np.int64)
    row_index = np.rint((y_max - ys) / y_res).astype(np.int64)
    width = int(col_index.max()) + 1
    height = int(row_index.max()) + 1

    cell_ids = row_index * width + col_index
    unique_ids, counts = np.unique(cell_ids, return_counts=True)
    if len(unique_ids) != len(cell_ids):
        repeated = unique_ids[counts > 1][:MAX_REPORTED_ROWS]
        pairs = [
            (x_min + (i % width) * x_res, y_max - (i // width) * y_res) for i in repeated
        ]
        msg = f"Grid has repeated (x, y) cell(s): {pairs}"
        raise LatticeError(msg)

    data = np.full((len(band_names), height, width), np.nan, dtype=np.float64)
    for band_index, name in enumerate(band_names):
        data[band_index, row_index, col_index] = grid[name].to_numpy(dtype=np.float64)

    transform = from_origin(x_min - x_res / 2, y_max + y_res / 2, x_res, y_res)
    layer = RasterLayer(
        data=data,
        band_names=tuple(band_names),
        transform=transform,
        crs=crs,
    )

    logger.info(
        "Raster layer built | bands=%d | shape=%dx%d | res=(%g, %g) | filled=%d/%d | crs=%s",
        layer.count,
        height,
        width,
        x_res,
        y_res,
        len(cell_ids),
        height * width,
        crs,
    )
    return layer


def reproject_raster(
    layer: RasterLayer,
    dst_crs: str,
    *,
    resampling: str = "nearest",
) -> RasterLayer:
    """Warp a raster layer into another CRS.

    Uses ``rasterio.warp`` on the in-memory bands; NaN cells stay NaN.

    Args:
        layer: Source raster with a CRS.
        dst_crs: Target CRS descriptor (e.g. ``"EPSG:3857"``).
        resampling: Name of a ``rasterio.warp.Resampling`` member.

    Raises:
        LayerBuildError: If the layer has no CRS or the resampling
            method is unknown.
    """
    if not layer.crs:
        msg = "Raster layer has no CRS; cannot reproject"
        raise LayerBuildError(msg)
    try:
        method = Resampling[resampling]
    except KeyError:
        msg = f"Unknown resampling method {resampling!r}"
        raise LayerBuildError(msg) from None

    src_crs = RasterioCRS.from_user_input(layer.crs)
    target = RasterioCRS.from_user_input(dst_crs)
    transform, width, height = calculate_default_transform(
        src_crs, target, layer.width, layer.height, *layer.bounds
    )

    destination = np.full((layer.count, height, width), np.nan, dtype=np.float64)
    reproject(
        source=layer.data,
        destination=destination,
        src_transform=layer.transform,
        src_crs=src_crs,
        src_nodata=np.nan,
        dst_transform=transform,
        dst_crs=target,
        dst_nodata=np.nan,
        resampling=method,
    )

    logger.info(
        "Raster reprojected | %s -> %s | shape=%dx%d | resampling=%s",
        layer.crs,
        dst_crs,
        height,
        width,
        resampling,
    )
    return RasterLayer(
        data=destination,
        band_names=layer.band_names,
        transform=transform,
        crs=dst_crs,
    )


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _numeric_coordinates(series: pd.Series, column: str) -> np.ndarray:
    """Return a coordinate column as finite floats or raise ``CoordinateError``.

    Only real numbers count.  Strings are rejected even when they spell a
    number (``"500000"``), and so are booleans.
    """
    missing = series.isna()
    if missing.any():
        rows = list(series.index[missing][:MAX_REPORTED_ROWS])
        msg = f"Coordinate column '{column}' has {int(missing.sum())} missing value(s) at rows {rows}"
        raise CoordinateError(msg)

    if pd.api.types.is_bool_dtype(series):
        non_numeric = ~missing
    elif pd.api.types.is_numeric_dtype(series):
        non_numeric = missing
    else:
        non_numeric = ~series.map(_is_real_number).astype(bool)
    if non_numeric.any():
        rows = list(series.index[non_numeric][:MAX_REPORTED_ROWS])
        msg = (
            f"Coordinate column '{column}' has {int(non_numeric.sum())} non-numeric "
            f"value(s) at rows {rows}"
        )
        raise CoordinateError(msg)

    array = series.to_numpy(dtype=np.float64)
    infinite = ~np.isfinite(array)
    if infinite.any():
        rows = list(series.index[infinite][:MAX_REPORTED_ROWS])
        msg = f"Coordinate column '{column}' has non-finite value(s) at rows {rows}"
        raise CoordinateError(msg)
    return array


def _is_real_number(value: object) -> bool:
    return isinstance(value, (int, float, np.integer, np.floating)) and not isinstance(
        value, (bool, np.bool_)
    )


def _check_geographic_range(xs: np.ndarray, ys: np.ndarray, crs: str) -> None:
    """For geographic CRSs, require longitude/latitude within WGS 84 bounds."""
    if not crs or not CRS.from_user_input(crs).is_geographic:
        return
    if xs.size and (xs.min() < MIN_LONGITUDE or xs.max() > MAX_LONGITUDE):
        msg = f"Longitude out of range [{MIN_LONGITUDE}, {MAX_LONGITUDE}] for {crs}"
        raise CoordinateError(msg)
    if ys.size and (ys.min() < MIN_LATITUDE or ys.max() > MAX_LATITUDE):
        msg = f"Latitude out of range [{MIN_LATITUDE}, {MAX_LATITUDE}] for {crs}"
        raise CoordinateError(msg)


def _split_cell_size(
    cell_size: float | tuple[float, float] | None,
) -> tuple[float | None, float | None]:
    if cell_size is None:
        return (None, None)
    if isinstance(cell_size, tuple):
        x_size, y_size = cell_size
    else:
        x_size = y_size = cell_size
    for size in (x_size, y_size):
        if size <= 0:
            msg = f"Cell size must be > 0, got {cell_size!r}"
            raise LatticeError(msg)
    return (float(x_size), float(y_size))


def _axis_resolution(
    values: np.ndarray,
    column: str,
    cell_size: float | None,
    tolerance: float,
) -> float:
    """Derive (or check) the cell size along one axis.

    The smallest step between distinct coordinates is the cell size unless
    one is given; every step must then be a whole number of cells.
    """
    distinct = np.unique(values)
    if distinct.size == 1:
        if cell_size is None:
            msg = (
                f"Cannot derive a cell size from a single '{column}' coordinate; "
                "pass cell_size explicitly"
            )
            raise LatticeError(msg)
        return cell_size

    steps = np.diff(distinct)
    resolution = cell_size if cell_size is not None else float(steps.min())
    ratios = steps / resolution
    whole = np.rint(ratios)
    if np.any(whole < 1) or not np.allclose(ratios, whole, rtol=0.0, atol=tolerance):
        irregular = steps[np.abs(ratios - whole) > tolerance][:MAX_REPORTED_ROWS]
        if irregular.size == 0:
            irregular = steps[whole < 1][:MAX_REPORTED_ROWS]
        msg = (
            f"'{column}' coordinates are not on a lattice with cell size {resolution:g}; "
            f"irregular step(s): {[float(s) for s in irregular]}"
        )
        raise LatticeError(msg)
    return resolution

"""Static rendering activity: matplotlib plots of point and raster layers.

Every ``plot_*`` function returns the matplotlib ``Figure`` it drew so the
caller can show it, embed it in a popup, or hand it to ``save_figure``.
Nothing here calls ``plt.show()``.

Plots:
- ``plot_points``: sites coloured by a categorical or continuous attribute
- ``plot_raster``: one band with a colour bar, optional point overlay
- ``plot_raster_bands``: one panel per band
- ``plot_rgb``: three bands as an RGB composite with a contrast stretch
- ``plot_time_series``: one sensor's readings over time
"""

from __future__ import annotations

import logging
import math
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

import matplotlib.pyplot as plt
import pandas as pd

from soil_survey_maps.core.constants import STATIC_SUFFIXES
from soil_survey_maps.core.exceptions import PermanentError
from soil_survey_maps.utils.imaging import rgb_composite

if TYPE_CHECKING:
    import geopandas as gpd
    import numpy as np
    from matplotlib.axes import Axes
    from matplotlib.figure import Figure

    from soil_survey_maps.models.raster import RasterLayer

logger = logging.getLogger("soil_survey_maps.activities.render_static")

DEFAULT_FIGSIZE = (8.0, 6.0)
PANEL_SIZE = (5.0, 4.0)
DEFAULT_DPI = 150
DEFAULT_RASTER_CMAP = "viridis"
DEFAULT_POINT_CMAP = "plasma"
DEFAULT_MARKER_SIZE = 30


class RenderError(PermanentError):
    """Raised when a plot or map cannot be rendered or saved."""

    default_stage = "render"
    default_code = "RENDER_FAILED"


# ---------------------------------------------------------------------------
# Point layers
# ---------------------------------------------------------------------------


def plot_points(
    points: gpd.GeoDataFrame,
    column: str | None = None,
    *,
    ax: Axes | None = None,
    cmap: str = DEFAULT_POINT_CMAP,
    markersize: float = DEFAULT_MARKER_SIZE,
    label_column: str | None = None,
    title: str = "",
) -> Figure:
    """Plot a point layer, optionally coloured by one attribute.

    Object, categorical and boolean columns get a discrete legend; numeric
    columns get a colour bar.

    Raises:
        RenderError: If ``column`` or ``label_column`` is not in the layer.
    """
    for name in (column, label_column):
        if name is not None and name not in points.columns:
            msg = f"Point layer has no column {name!r}"
            raise RenderError(msg, code="COLUMN_NOT_FOUND")

    fig, ax = _figure_and_axes(ax)
    if column is None:
        points.plot(ax=ax, markersize=markersize, color="black")
    else:
        categorical = not pd.api.types.is_numeric_dtype(points[column]) or (
            pd.api.types.is_bool_dtype(points[column])
        )
        points.plot(
            ax=ax,
            column=column,
            categorical=categorical,
            cmap=cmap,
            markersize=markersize,
            edgecolor="black",
            linewidth=0.4,
            legend=True,
            legend_kwds={"title": column} if categorical else {"label": column},
        )

    if label_column is not None:
        for geom, label in zip(points.geometry, points[label_column], strict=True):
            ax.annotate(str(label), (geom.x, geom.y), xytext=(3, 3), textcoords="offset points",
                        fontsize=7)

    _label_map_axes(ax, points.crs.to_string() if points.crs is not None else "")
    ax.set_title(title or (f"Sites by {column}" if column else "Sites"))
    return fig


# ---------------------------------------------------------------------------
# Raster layers
# ---------------------------------------------------------------------------


def plot_raster(
    layer: RasterLayer,
    band: str,
    *,
    ax: Axes | None = None,
    cmap: str = DEFAULT_RASTER_CMAP,
    points: gpd.GeoDataFrame | None = None,
    title: str = "",
) -> Figure:
    """Plot one raster band with a colour bar.

    Args:
        layer: Raster to plot.
        band: Band name.
        ax: Axes to draw into; a new figure is created when ``None``.
        cmap: Matplotlib colormap name.
        points: Optional point layer drawn on top (same CRS as ``layer``).
        title: Axes title; defaults to the band name.

    Raises:
        RenderError: If the band does not exist.
    """
    values = _band_or_error(layer, band)
    fig, ax = _figure_and_axes(ax)
    left, bottom, right, top = layer.bounds
    image = ax.imshow(
        values,
        extent=(left, right, bottom, top),
        origin="upper",
        cmap=cmap,
        interpolation="nearest",
    )
    fig.colorbar(image, ax=ax, fraction=0.046, pad=0.04, label=band)

    if points is not None:
        points.plot(ax=ax, color="white", edgecolor="black", markersize=18, linewidth=0.5)

    _label_map_axes(ax, layer.crs)
    ax.set_title(title or band)
    return fig


def plot_raster_bands(
    layer: RasterLayer,
    *,
    ncols: int = 2,
    cmap: str = DEFAULT_RASTER_CMAP,
) -> Figure:
    """Plot every band in its own panel, each with its own colour bar."""
    ncols = max(1, min(ncols, layer.count))
    nrows = math.ceil(layer.count / ncols)
    fig, axes = plt.subplots(
        nrows,
        ncols,
        figsize=(PANEL_SIZE[0] * ncols, PANEL_SIZE[1] * nrows),
        squeeze=False,
    )
    flat_axes = axes.ravel()
    for ax, band in zip(flat_axes, layer.band_names, strict=False):
        plot_raster(layer, band, ax=ax, cmap=cmap)
    for ax in flat_axes[layer.count :]:
        ax.set_visible(False)
    fig.tight_layout()
    return fig


def plot_rgb(
    layer: RasterLayer,
    red: str,
    green: str,
    blue: str,
    *,
    stretch: str = "lin",
    ax: Axes | None = None,
    title: str = "",
) -> Figure:
    """Plot three bands as an RGB composite.

    Raises:
        RenderError: If a band does not exist or the stretch is unknown.
    """
    for band in (red, green, blue):
        _band_or_error(layer, band)
    try:
        image = rgb_composite(layer, red, green, blue, stretch=stretch)
    except ValueError as exc:
        raise RenderError(str(exc), code="STRETCH_INVALID") from exc

    fig, ax = _figure_and_axes(ax)
    left, bottom, right, top = layer.bounds
    ax.imshow(image, extent=(left, right, bottom, top), origin="upper", interpolation="nearest")
    _label_map_axes(ax, layer.crs)
    ax.set_title(title or f"RGB composite: R={red}, G={green}, B={blue} ({stretch})")
    return fig


# ---------------------------------------------------------------------------
# Time series
# ---------------------------------------------------------------------------


def plot_time_series(
    series: pd.DataFrame,
    variables: Sequence[str] | None = None,
    *,
    ax: Axes | None = None,
    title: str = "",
    ylabel: str = "",
) -> Figure:
    """Plot one sensor's readings, one line per variable.

    Raises:
        RenderError: If a variable is not a column of ``series``.
    """
    columns = list(series.columns) if variables is None else list(variables)
    missing = [c for c in columns if c not in series.columns]
    if missing:
        msg = f"Time series has no column(s): {', '.join(missing)}"
        raise RenderError(msg, code="COLUMN_NOT_FOUND")

    fig, ax = _figure_and_axes(ax)
    for column in columns:
        ax.plot(series.index, series[column], label=column, linewidth=1.4)
    ax.legend(fontsize=8)
    ax.set_xlabel(series.index.name or "time")
    if ylabel:
        ax.set_ylabel(ylabel)
    ax.grid(visible=True, alpha=0.3)
    fig.autofmt_xdate()
    sensor = series.attrs.get("sensor_id", "")
    ax.set_title(title or (f"Sensor {sensor}" if sensor else "Readings"))
    return fig


# ---------------------------------------------------------------------------
# Saving
# ---------------------------------------------------------------------------


def save_figure(fig: Figure, path: Path | str, *, dpi: int = DEFAULT_DPI) -> Path:
    """Save a figure as ``.png``, ``.jpg``/``.jpeg`` or ``.pdf`` and close it.

    Parent directories are created.

    Raises:
        RenderError: If the suffix is unsupported or the file cannot be
            written.
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix not in STATIC_SUFFIXES:
        msg = (
            f"Unsupported static image format {suffix or '(none)'!r}; "
            f"expected one of {', '.join(sorted(STATIC_SUFFIXES))}"
        )
        raise RenderError(msg, code="UNSUPPORTED_FORMAT")

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fig.savefig(path, dpi=dpi, bbox_inches="tight")
    except OSError as exc:
        msg = f"Cannot write figure to {path}: {exc}"
        raise RenderError(msg) from exc
    finally:
        plt.close(fig)

    logger.info("Figure saved | path=%s | dpi=%d", path, dpi)
    return path


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _figure_and_axes(ax: Axes | None) -> tuple[Figure, Axes]:
    if ax is None:
        fig, ax = plt.subplots(figsize=DEFAULT_FIGSIZE)
        return fig, ax
    return ax.get_figure(), ax


def _band_or_error(layer: RasterLayer, band: str) -> np.ndarray:
    try:
        return layer.band(band)
    except KeyError as exc:
        raise RenderError(str(exc.args[0]), code="BAND_NOT_FOUND") from exc


def _label_map_axes(ax: Axes, crs: str) -> None:
    ax.set_xlabel(f"Easting ({crs})" if crs else "x")
    ax.set_ylabel("Northing")
    ax.set_aspect("equal")
    ax.ticklabel_format(useOffset=False, style="plain")

"""Interactive rendering activity: plotly web maps of point and raster layers.

Builds ``plotly.graph_objects.Figure`` objects on a tiled basemap:

- ``point_map`` / ``add_points``: markers, coloured by a categorical
  attribute (discrete legend) or a continuous one (colour bar)
- ``raster_map``: one band as a colour-mapped image overlay
- ``rgb_map``: three bands as an RGB composite overlay
- ``save_map``: standalone ``.html`` with the popup panel script
- ``sync_maps``: several maps on one page with pan/zoom kept in sync

Rasters are warped to Web Mercator before being drawn so the overlay
lines up with the basemap tiles.  Marker popups are HTML strings carried
in each point's ``customdata``; clicking a marker opens them in a panel.
"""

from __future__ import annotations

import html
import json
import logging
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd
import plotly.colors
import plotly.graph_objects as go
from pyproj import Transformer

from soil_survey_maps.activities.build_layers import reproject_raster, to_geographic
from soil_survey_maps.activities.render_static import RenderError
from soil_survey_maps.core.constants import INTERACTIVE_SUFFIXES, WEB_MERCATOR_CRS, WGS84_CRS
from soil_survey_maps.utils.imaging import (
    colorize_band,
    colormap_to_colorscale,
    data_uri,
    encode_png,
    finite_range,
    rgb_composite,
)

if TYPE_CHECKING:
    import geopandas as gpd

    from soil_survey_maps.models.raster import RasterLayer

logger = logging.getLogger("soil_survey_maps.activities.render_web")

DEFAULT_MAP_STYLE = "open-street-map"
DEFAULT_ZOOM = 14.0
DEFAULT_OPACITY = 0.8
DEFAULT_MARKER_SIZE = 10
DEFAULT_POINT_CMAP = "plasma"
DEFAULT_RASTER_CMAP = "viridis"
MAX_HOVER_COLUMNS = 6
CATEGORY_PALETTE = plotly.colors.qualitative.Plotly
MAP_HEIGHT = 600
PANEL_HEIGHT = 420

# Click-to-open popup panel; ``{plot_id}`` is replaced by plotly with the div id.
POPUP_SCRIPT = """
var gd = document.getElementById('{plot_id}');
var box = document.createElement('div');
box.className = 'ssm-popup';
box.style.cssText = 'display:none;position:absolute;top:12px;left:12px;max-width:440px;' +
  'max-height:80%;overflow:auto;background:#fff;border:1px solid #888;border-radius:4px;' +
  'padding:8px;box-shadow:0 2px 8px rgba(0,0,0,.3);z-index:1000;font:12px sans-serif;';
gd.parentNode.style.position = 'relative';
gd.parentNode.appendChild(box);
gd.on('plotly_click', function (event) {
  var point = event.points && event.points[0];
  if (!point || point.customdata === undefined || point.customdata === null) { return; }
  var content = Array.isArray(point.customdata) ? point.customdata[0] : point.customdata;
  if (!content) { return; }
  box.innerHTML = '<div style="text-align:right"><a href="#" class="ssm-close">close</a></div>' +
    content;
  box.style.display = 'block';
  box.querySelector('.ssm-close').onclick = function (e) {
    e.preventDefault();
    box.style.display = 'none';
  };
});
"""

# Copies map.center / map.zoom from the panel being moved to all others.
SYNC_SCRIPT_TEMPLATE = """
window.addEventListener('load', function () {
  var ids = %s;
  var syncing = false;
  ids.forEach(function (id) {
    var gd = document.getElementById(id);
    gd.on('plotly_relayout', function (event) {
      if (syncing) { return; }
      var update = {};
      ['map.center', 'map.zoom', 'map.bearing', 'map.pitch'].forEach(function (key) {
        if (event[key] !== undefined) { update[key] = event[key]; }
      });
      if (Object.keys(update).length === 0) { return; }
      syncing = true;
      var pending = ids.filter(function (other) { return other !== id; })
        .map(function (other) { return Plotly.relayout(other, update); });
      Promise.all(pending).then(
        function () { syncing = false; },
        function () { syncing = false; }
      );
    });
  });
});
"""


# ---------------------------------------------------------------------------
# Point layers
# ---------------------------------------------------------------------------


def point_map(
    points: gpd.GeoDataFrame,
    *,
    color: str | None = None,
    popups: Sequence[str] | None = None,
    hover_columns: Sequence[str] | None = None,
    cmap: str = DEFAULT_POINT_CMAP,
    marker_size: float = DEFAULT_MARKER_SIZE,
    map_style: str = DEFAULT_MAP_STYLE,
    zoom: float = DEFAULT_ZOOM,
    title: str = "",
    name: str = "points",
) -> go.Figure:
    """Build a web map of a point layer.

    Args:
        points: Point layer in any CRS; reprojected to WGS 84.
        color: Attribute to colour by.  Non-numeric columns get one trace
            per category (legend); numeric columns a colour bar.
        popups: One HTML string per point, shown when the marker is
            clicked.  ``None`` disables popups.
        hover_columns: Attributes listed on hover; defaults to the first
            few non-geometry columns.
        cmap: Matplotlib colormap for continuous colouring.
        marker_size: Marker size in pixels.
        map_style: Basemap style.
        zoom: Initial zoom level.
        title: Map title.
        name: Legend name of the layer.

    Raises:
        RenderError: If a named column is missing or ``popups`` has the
            wrong length.
    """
    geographic = to_geographic(points)
    lon, lat = _lonlat(geographic)
    fig = _new_map(
        center=(float(np.mean(lon)), float(np.mean(lat))) if len(lon) else (0.0, 0.0),
        map_style=map_style,
        zoom=zoom,
        title=title or (f"{name} by {color}" if color else name),
    )
    add_points(
        fig,
        geographic,
        color=color,
        popups=popups,
        hover_columns=hover_columns,
        cmap=cmap,
        marker_size=marker_size,
        name=name,
    )
    logger.info(
        "Point map built | features=%d | color=%s | popups=%s",
        len(points),
        color,
        popups is not None,
    )
    return fig


def add_points(
    fig: go.Figure,
    points: gpd.GeoDataFrame,
    *,
    color: str | None = None,
    popups: Sequence[str] | None = None,
    hover_columns: Sequence[str] | None = None,
    cmap: str = DEFAULT_POINT_CMAP,
    marker_size: float = DEFAULT_MARKER_SIZE,
    name: str = "points",
) -> go.Figure:
    """Overlay a point layer onto an existing web map; returns ``fig``."""
    attributes = [c for c in points.columns if c != points.geometry.name]
    for column in [color, *(hover_columns or [])]:
        if column is not None and column not in attributes:
            msg = f"Point layer has no column {column!r}"
            raise RenderError(msg, code="COLUMN_NOT_FOUND")
    if popups is not None and len(popups) != len(points):
        msg = f"Got {len(popups)} popup(s) for {len(points)} point(s)"
        raise RenderError(msg, code="POPUP_COUNT_MISMATCH")

    geographic = to_geographic(points)
    lon, lat = _lonlat(geographic)
    columns = list(hover_columns) if hover_columns is not None else attributes[:MAX_HOVER_COLUMNS]
    hover = _hover_text(geographic, columns)
    custom = np.array(list(popups), dtype=object) if popups is not None else None

    if color is None:
        fig.add_trace(
            _marker_trace(lon, lat, hover, custom, name=name, marker={"size": marker_size})
        )
    elif _is_categorical(geographic[color]):
        values = geographic[color].astype(str).to_numpy()
        for index, category in enumerate(sorted(set(values))):
            mask = values == category
            fig.add_trace(
                _marker_trace(
                    lon[mask],
                    lat[mask],
                    hover[mask],
                    custom[mask] if custom is not None else None,
                    name=f"{color}: {category}",
                    marker={
                        "size": marker_size,
                        "color": CATEGORY_PALETTE[index % len(CATEGORY_PALETTE)],
                    },
                )
            )
    else:
        values = geographic[color].to_numpy(dtype=np.float64)
        vmin, vmax = finite_range(values)
        fig.add_trace(
            _marker_trace(
                lon,
                lat,
                hover,
                custom,
                name=name,
                marker={
                    "size": marker_size,
                    "color": values,
                    "colorscale": colormap_to_colorscale(cmap),
                    "cmin": vmin,
                    "cmax": vmax,
                    "showscale": True,
                    "colorbar": {"title": {"text": color}, "x": 1.0},
                },
            )
        )
    return fig


# ---------------------------------------------------------------------------
# Raster layers
# ---------------------------------------------------------------------------


def raster_map(
    layer: RasterLayer,
    band: str,
    *,
    cmap: str = DEFAULT_RASTER_CMAP,
    opacity: float = DEFAULT_OPACITY,
    hover: bool = True,
    map_style: str = DEFAULT_MAP_STYLE,
    zoom: float = DEFAULT_ZOOM,
    title: str = "",
) -> go.Figure:
    """Build a web map with one raster band as a colour-mapped overlay.

    The colour bar spans the band's finite range in the source layer.
    With ``hover`` on, each cell centre carries an invisible marker that
    reports the band value.

    Raises:
        RenderError: If the band does not exist.
    """
    if band not in layer.band_names:
        msg = f"No band named {band!r}; available: {', '.join(layer.band_names)}"
        raise RenderError(msg, code="BAND_NOT_FOUND")

    vmin, vmax = finite_range(layer.band(band))
    warped = reproject_raster(layer, WEB_MERCATOR_CRS)
    rgba = colorize_band(warped.band(band), cmap, vmin=vmin, vmax=vmax)
    corners = _image_corners(warped)
    centre = _corners_centre(corners)

    fig = _new_map(center=centre, map_style=map_style, zoom=zoom, title=title or band)
    fig.update_layout(map_layers=[_image_layer(rgba, corners, opacity)])
    fig.add_trace(
        go.Scattermap(
            lon=[centre[0]],
            lat=[centre[1]],
            mode="markers",
            marker={
                "size": 0,
                "opacity": 0,
                "color": [vmin],
                "colorscale": colormap_to_colorscale(cmap),
                "cmin": vmin,
                "cmax": vmax,
                "showscale": True,
                "colorbar": {"title": {"text": band}},
            },
            hoverinfo="skip",
            showlegend=False,
            name=f"{band} scale",
        )
    )
    if hover:
        fig.add_trace(_cell_hover_trace(layer, [band]))

    logger.info(
        "Raster map built | band=%s | range=(%g, %g) | shape=%dx%d",
        band,
        vmin,
        vmax,
        *warped.shape,
    )
    return fig


def rgb_map(
    layer: RasterLayer,
    red: str,
    green: str,
    blue: str,
    *,
    stretch: str = "lin",
    opacity: float = 1.0,
    hover: bool = True,
    map_style: str = DEFAULT_MAP_STYLE,
    zoom: float = DEFAULT_ZOOM,
    title: str = "",
) -> go.Figure:
    """Build a web map with three bands drawn as an RGB composite overlay.

    Raises:
        RenderError: If a band does not exist or the stretch is unknown.
    """
    for band in (red, green, blue):
        if band not in layer.band_names:
            msg = f"No band named {band!r}; available: {', '.join(layer.band_names)}"
            raise RenderError(msg, code="BAND_NOT_FOUND")

    warped = reproject_raster(layer, WEB_MERCATOR_CRS)
    try:
        rgba = rgb_composite(warped, red, green, blue, stretch=stretch)
    except ValueError as exc:
        raise RenderError(str(exc), code="STRETCH_INVALID") from exc
    corners = _image_corners(warped)
    centre = _corners_centre(corners)

    fig = _new_map(
        center=centre,
        map_style=map_style,
        zoom=zoom,
        title=title or f"RGB: {red} / {green} / {blue} ({stretch})",
    )
    fig.update_layout(map_layers=[_image_layer(rgba, corners, opacity)])
    if hover:
        fig.add_trace(_cell_hover_trace(layer, [red, green, blue]))
    logger.info("RGB map built | bands=%s/%s/%s | stretch=%s", red, green, blue, stretch)
    return fig


# ---------------------------------------------------------------------------
# Saving
# ---------------------------------------------------------------------------


def save_map(
    fig: go.Figure,
    path: Path | str,
    *,
    include_plotlyjs: bool | str = True,
) -> Path:
    """Write a web map to a standalone ``.html`` file.

    Raises:
        RenderError: If the suffix is not ``.html`` or the file cannot be
            written.
    """
    path = _html_path(path)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        fig.write_html(
            path,
            include_plotlyjs=include_plotlyjs,
            full_html=True,
            config={"scrollZoom": True},
            post_script=POPUP_SCRIPT,
        )
    except OSError as exc:
        msg = f"Cannot write map to {path}: {exc}"
        raise RenderError(msg) from exc

    logger.info("Map saved | path=%s | traces=%d", path, len(fig.data))
    return path


def sync_maps(
    figures: Sequence[go.Figure],
    path: Path | str,
    *,
    ncols: int = 2,
    title: str = "",
    include_plotlyjs: bool | str = True,
) -> Path:
    """Write several web maps to one page with synchronised pan and zoom.

    Every panel starts from the first figure's centre and zoom.  The
    figures passed in are not modified.

    Raises:
        RenderError: If no figures are given, ``ncols`` is not positive,
            the suffix is not ``.html`` or the file cannot be written.
    """
    if not figures:
        msg = "sync_maps needs at least one figure"
        raise RenderError(msg, code="NO_FIGURES")
    if ncols < 1:
        msg = f"ncols must be >= 1, got {ncols}"
        raise RenderError(msg, code="LAYOUT_INVALID")
    path = _html_path(path)

    first = figures[0].layout.map
    view = {"center": first.center.to_plotly_json(), "zoom": first.zoom}
    div_ids = [f"ssm-panel-{index}" for index in range(len(figures))]
    panels = []
    for index, (figure, div_id) in enumerate(zip(figures, div_ids, strict=True)):
        panel = go.Figure(figure)
        panel.update_layout(map=view, height=PANEL_HEIGHT)
        panels.append(
            panel.to_html(
                full_html=False,
                include_plotlyjs=include_plotlyjs if index == 0 else False,
                div_id=div_id,
                config={"scrollZoom": True},
                post_script=POPUP_SCRIPT,
            )
        )

    cells = "\n".join(f'<div class="ssm-cell">{panel}</div>' for panel in panels)
    page = (
        "<!DOCTYPE html>\n<html>\n<head>\n<meta charset=\"utf-8\">\n"
        f"<title>{html.escape(title or 'Synced maps')}</title>\n"
        "<style>"
        f".ssm-grid{{display:grid;grid-template-columns:repeat({ncols},1fr);gap:6px;}}"
        ".ssm-cell{position:relative;}"
        "</style>\n</head>\n<body>\n"
        + (f"<h3>{html.escape(title)}</h3>\n" if title else "")
        + f'<div class="ssm-grid">\n{cells}\n</div>\n'
        + f"<script>{SYNC_SCRIPT_TEMPLATE % json.dumps(div_ids)}</script>\n"
        + "</body>\n</html>\n"
    )

    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(page, encoding="utf-8")
    except OSError as exc:
        msg = f"Cannot write synced maps to {path}: {exc}"
        raise RenderError(msg) from exc

    logger.info("Synced maps saved | path=%s | panels=%d | ncols=%d", path, len(figures), ncols)
    return path


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _new_map(
    *,
    center: tuple[float, float],
    map_style: str,
    zoom: float,
    title: str,
) -> go.Figure:
    fig = go.Figure()
    fig.update_layout(
        title={"text": title},
        map={"style": map_style, "center": {"lon": center[0], "lat": center[1]}, "zoom": zoom},
        margin={"l": 0, "r": 0, "t": 40, "b": 0},
        height=MAP_HEIGHT,
        legend={"x": 0.01, "y": 0.99, "bgcolor": "rgba(255,255,255,0.8)"},
    )
    return fig


def _marker_trace(
    lon: np.ndarray,
    lat: np.ndarray,
    hover: np.ndarray,
    custom: np.ndarray | None,
    *,
    name: str,
    marker: dict[str, object],
) -> go.Scattermap:
    return go.Scattermap(
        lon=lon,
        lat=lat,
        mode="markers",
        marker=marker,
        text=hover,
        hovertemplate="%{text}<extra></extra>",
        customdata=custom,
        name=name,
    )


def _lonlat(points: gpd.GeoDataFrame) -> tuple[np.ndarray, np.ndarray]:
    return (
        points.geometry.x.to_numpy(dtype=np.float64),
        points.geometry.y.to_numpy(dtype=np.float64),
    )


def _is_categorical(series: pd.Series) -> bool:
    return not pd.api.types.is_numeric_dtype(series) or pd.api.types.is_bool_dtype(series)


def _format_value(value: object) -> str:
    if isinstance(value, float):
        return "" if np.isnan(value) else f"{value:.4g}"
    return str(value)


def _hover_text(points: pd.DataFrame, columns: Sequence[str]) -> np.ndarray:
    rows = []
    for _, record in points[list(columns)].iterrows():
        rows.append(
            "<br>".join(
                f"<b>{html.escape(str(c))}</b>: {html.escape(_format_value(record[c]))}"
                for c in columns
            )
        )
    return np.array(rows, dtype=object)


def _image_corners(layer: RasterLayer) -> list[list[float]]:
    """Corner lon/lat of a raster, clockwise from the top-left."""
    left, bottom, right, top = layer.bounds
    to_wgs = Transformer.from_crs(layer.crs, WGS84_CRS, always_xy=True)
    corners = [(left, top), (right, top), (right, bottom), (left, bottom)]
    return [list(to_wgs.transform(x, y)) for x, y in corners]


def _corners_centre(corners: list[list[float]]) -> tuple[float, float]:
    lons = [c[0] for c in corners]
    lats = [c[1] for c in corners]
    return ((min(lons) + max(lons)) / 2, (min(lats) + max(lats)) / 2)


def _image_layer(rgba: np.ndarray, corners: list[list[float]], opacity: float) -> dict[str, object]:
    return {
        "sourcetype": "image",
        "source": data_uri(encode_png(rgba)),
        "coordinates": corners,
        "opacity": opacity,
        "below": "traces",
    }


def _cell_hover_trace(layer: RasterLayer, bands: Sequence[str]) -> go.Scattermap:
    """Invisible markers at cell centres reporting band values on hover."""
    frame = layer.to_frame()
    to_wgs = Transformer.from_crs(layer.crs, WGS84_CRS, always_xy=True)
    lon, lat = to_wgs.transform(frame["x"].to_numpy(), frame["y"].to_numpy())
    hover = _hover_text(frame, list(bands))
    return go.Scattermap(
        lon=lon,
        lat=lat,
        mode="markers",
        marker={"size": 8, "opacity": 0},
        text=hover,
        hovertemplate="%{text}<extra></extra>",
        showlegend=False,
        name="cells",
    )


def _html_path(path: Path | str) -> Path:
    path = Path(path)
    if path.suffix.lower() not in INTERACTIVE_SUFFIXES:
        msg = (
            f"Unsupported web map format {path.suffix or '(none)'!r}; "
            "interactive maps are saved as .html"
        )
        raise RenderError(msg, code="UNSUPPORTED_FORMAT")
    return path

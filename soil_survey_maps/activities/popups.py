"""Popup content for web map markers.

A popup is an HTML fragment stored per point and shown when the marker is
clicked (see ``render_web.POPUP_SCRIPT``).  Three kinds:

- attribute tables (``popup_table``)
- matplotlib graphs embedded as base64 PNG (``popup_graph``)
- images from a local file or a remote URL (``popup_image``)

Remote images are fetched once with ``httpx`` and embedded, so the saved
map keeps working offline.
"""

from __future__ import annotations

import html
import logging
import mimetypes
from collections.abc import Mapping, Sequence
from pathlib import Path
from typing import TYPE_CHECKING

import httpx
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd

from soil_survey_maps.activities.render_static import plot_time_series
from soil_survey_maps.activities.time_series import sensor_time_series
from soil_survey_maps.core.exceptions import PermanentError, TransientError
from soil_survey_maps.utils.imaging import data_uri, figure_png

if TYPE_CHECKING:
    import geopandas as gpd
    from matplotlib.figure import Figure

logger = logging.getLogger("soil_survey_maps.activities.popups")

DEFAULT_POPUP_WIDTH = 300
DEFAULT_IMAGE_TIMEOUT_S = 10.0
POPUP_GRAPH_DPI = 100
POPUP_GRAPH_SIZE = (4.0, 2.6)


class PopupImageError(PermanentError):
    """Raised when a local popup image is missing or a source is not an image."""

    default_stage = "popups"
    default_code = "POPUP_IMAGE_FAILED"


class PopupImageFetchError(TransientError):
    """Raised when a remote popup image cannot be downloaded."""

    default_stage = "popups"
    default_code = "POPUP_IMAGE_FETCH_FAILED"


def popup_table(
    record: Mapping[str, object] | pd.Series,
    *,
    title: str = "",
    exclude: Sequence[str] = ("geometry",),
) -> str:
    """Render one feature's attributes as an HTML table."""
    items = record.items()
    rows = "".join(
        f"<tr><th style=\"text-align:left;padding-right:8px\">{html.escape(str(key))}</th>"
        f"<td>{html.escape(_format_cell(value))}</td></tr>"
        for key, value in items
        if key not in exclude
    )
    heading = f"<b>{html.escape(title)}</b>" if title else ""
    return f'{heading}<table class="ssm-popup-table">{rows}</table>'


def popup_graph(
    fig: Figure,
    *,
    width: int = DEFAULT_POPUP_WIDTH,
    height: int | None = None,
    close: bool = True,
) -> str:
    """Embed a matplotlib figure as a base64 PNG ``<img>``.

    The figure is closed afterwards unless ``close`` is false.
    """
    try:
        content = figure_png(fig, dpi=POPUP_GRAPH_DPI)
    finally:
        if close:
            plt.close(fig)
    return _img_tag(data_uri(content), width=width, height=height)


def popup_image(
    source: Path | str,
    *,
    width: int = DEFAULT_POPUP_WIDTH,
    height: int | None = None,
    timeout: float = DEFAULT_IMAGE_TIMEOUT_S,
) -> str:
    """Embed an image from a local path or an ``http(s)`` URL.

    Raises:
        PopupImageError: If the file is missing or the source is not an
            image.
        PopupImageFetchError: If the remote request fails.
    """
    text = str(source)
    if text.startswith(("http://", "https://")):
        content, mime_type = _fetch_image(text, timeout=timeout)
    else:
        content, mime_type = _read_image(Path(source))
    logger.info("Popup image embedded | source=%s | bytes=%d", text, len(content))
    return _img_tag(data_uri(content, mime_type), width=width, height=height)


def table_popups(points: pd.DataFrame, *, title_column: str | None = None) -> list[str]:
    """One attribute-table popup per row, in row order."""
    return [
        popup_table(record, title=str(record[title_column]) if title_column else "")
        for _, record in points.iterrows()
    ]


def sensor_graph_popups(
    points: gpd.GeoDataFrame,
    readings: pd.DataFrame,
    variables: Sequence[str] | None = None,
    *,
    point_id_column: str = "SOURCEID",
    id_column: str = "SOURCEID",
    time_column: str = "Date",
    width: int = DEFAULT_POPUP_WIDTH,
) -> list[str]:
    """Build one popup per point: a time-series graph where the point has
    readings, its attribute table otherwise.

    The result lines up with the rows of ``points``.
    """
    sensors = set(readings[id_column].astype(str))
    popups: list[str] = []
    graphs = 0
    for _, record in points.iterrows():
        sensor_id = str(record[point_id_column])
        table = popup_table(record, title=sensor_id)
        if sensor_id not in sensors:
            popups.append(table)
            continue
        series = sensor_time_series(
            readings,
            sensor_id,
            variables,
            id_column=id_column,
            time_column=time_column,
        )
        fig, ax = plt.subplots(figsize=POPUP_GRAPH_SIZE)
        plot_time_series(series, ax=ax)
        popups.append(f"{table}{popup_graph(fig, width=width)}")
        graphs += 1

    logger.info("Sensor popups built | points=%d | graphs=%d", len(popups), graphs)
    return popups


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _fetch_image(url: str, *, timeout: float) -> tuple[bytes, str]:
    try:
        with httpx.Client(timeout=timeout, follow_redirects=True) as client:
            response = client.get(url)
            response.raise_for_status()
    except httpx.HTTPError as exc:
        msg = f"Cannot fetch popup image {url}: {exc}"
        raise PopupImageFetchError(msg) from exc

    mime_type = response.headers.get("content-type", "").split(";")[0].strip()
    if not mime_type.startswith("image/"):
        msg = f"Popup image {url} returned {mime_type or 'no content type'!r}, not an image"
        raise PopupImageError(msg, code="POPUP_IMAGE_NOT_IMAGE")
    return response.content, mime_type


def _read_image(path: Path) -> tuple[bytes, str]:
    mime_type, _ = mimetypes.guess_type(path.name)
    if mime_type is None or not mime_type.startswith("image/"):
        msg = f"Popup image {path} is not a recognised image type"
        raise PopupImageError(msg, code="POPUP_IMAGE_NOT_IMAGE")
    try:
        return path.read_bytes(), mime_type
    except OSError as exc:
        msg = f"Cannot read popup image {path}: {exc}"
        raise PopupImageError(msg, code="POPUP_IMAGE_NOT_FOUND") from exc


def _img_tag(src: str, *, width: int, height: int | None) -> str:
    size = f' width="{width}"' + (f' height="{height}"' if height else "")
    return f'<img src="{src}"{size} style="display:block;margin-top:4px"/>'


def _format_cell(value: object) -> str:
    if isinstance(value, (float, np.floating)):
        return "" if np.isnan(value) else f"{value:.4g}"
    if isinstance(value, pd.Timestamp):
        return value.isoformat()
    return str(value)

"""Tests for popup content builders.

Unit tests mock ``httpx.Client`` so no network access is needed.
"""

from __future__ import annotations

import base64
from pathlib import Path
from unittest.mock import MagicMock, patch

import geopandas as gpd
import httpx
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import pytest

from soil_survey_maps.activities.popups import (
    PopupImageError,
    PopupImageFetchError,
    popup_graph,
    popup_image,
    popup_table,
    sensor_graph_popups,
    table_popups,
)

PNG_BYTES = b"\x89PNG\r\n\x1a\nfake-image-body"


def _mock_client(response: MagicMock) -> MagicMock:
    client = MagicMock()
    client.__enter__ = MagicMock(return_value=client)
    client.__exit__ = MagicMock(return_value=False)
    client.get.return_value = response
    return client


def _response(content: bytes = PNG_BYTES, content_type: str = "image/png") -> MagicMock:
    response = MagicMock()
    response.content = content
    response.headers = {"content-type": content_type}
    return response


class TestPopupTable:
    def test_rows_per_attribute(self) -> None:
        html = popup_table({"SOURCEID": "S1", "carbon": 10.5})
        assert html.count("<tr>") == 2
        assert "<th" in html
        assert "10.5" in html

    def test_geometry_excluded(self, small_point_layer: gpd.GeoDataFrame) -> None:
        html = popup_table(small_point_layer.iloc[0])
        assert "geometry" not in html
        assert "S1" in html

    def test_values_escaped(self) -> None:
        html = popup_table({"note": "<script>alert(1)</script>"})
        assert "<script>" not in html
        assert "&lt;script&gt;" in html

    def test_nan_rendered_empty(self) -> None:
        html = popup_table({"value": np.nan})
        assert "<td></td>" in html

    def test_title(self) -> None:
        assert popup_table({"a": 1}, title="Site S1").startswith("<b>Site S1</b>")

    def test_table_popups_one_per_row(self, small_points: pd.DataFrame) -> None:
        popups = table_popups(small_points, title_column="SOURCEID")
        assert len(popups) == 3
        assert popups[1].startswith("<b>S2</b>")


class TestPopupGraph:
    def test_embeds_png(self) -> None:
        fig, ax = plt.subplots()
        ax.plot([1, 2, 3])
        html = popup_graph(fig, width=250, height=120)
        assert html.startswith('<img src="data:image/png;base64,')
        assert 'width="250"' in html
        assert 'height="120"' in html

    def test_closes_figure(self) -> None:
        fig, _ = plt.subplots()
        popup_graph(fig)
        assert not plt.fignum_exists(fig.number)

    def test_keep_open(self) -> None:
        fig, _ = plt.subplots()
        popup_graph(fig, close=False)
        assert plt.fignum_exists(fig.number)


class TestPopupImageLocal:
    def test_local_file(self, tmp_path: Path) -> None:
        path = tmp_path / "site.png"
        path.write_bytes(PNG_BYTES)
        html = popup_image(path)
        encoded = html.split("base64,", 1)[1].split('"', 1)[0]
        assert base64.b64decode(encoded) == PNG_BYTES

    def test_mime_type_from_suffix(self, tmp_path: Path) -> None:
        path = tmp_path / "site.jpg"
        path.write_bytes(b"jpeg")
        assert "data:image/jpeg;base64," in popup_image(path)

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(PopupImageError) as exc_info:
            popup_image(tmp_path / "missing.png")
        assert exc_info.value.code == "POPUP_IMAGE_NOT_FOUND"
        assert exc_info.value.category == "permanent"

    def test_not_an_image(self, tmp_path: Path) -> None:
        path = tmp_path / "notes.txt"
        path.write_text("hello", encoding="utf-8")
        with pytest.raises(PopupImageError) as exc_info:
            popup_image(path)
        assert exc_info.value.code == "POPUP_IMAGE_NOT_IMAGE"


class TestPopupImageRemote:
    @patch("soil_survey_maps.activities.popups.httpx.Client")
    def test_fetches_and_embeds(self, mock_client_cls: MagicMock) -> None:
        mock_client_cls.return_value = _mock_client(_response())
        html = popup_image("https://example.org/site.png", timeout=3.0)
        assert "data:image/png;base64," in html
        mock_client_cls.assert_called_once_with(timeout=3.0, follow_redirects=True)

    @patch("soil_survey_maps.activities.popups.httpx.Client")
    def test_content_type_parameters_ignored(self, mock_client_cls: MagicMock) -> None:
        mock_client_cls.return_value = _mock_client(
            _response(content_type="image/jpeg; charset=binary")
        )
        assert "data:image/jpeg;base64," in popup_image("https://example.org/a")

    @patch("soil_survey_maps.activities.popups.httpx.Client")
    def test_network_failure_is_transient(self, mock_client_cls: MagicMock) -> None:
        client = _mock_client(_response())
        client.get.side_effect = httpx.HTTPError("503 Service Unavailable")
        mock_client_cls.return_value = client
        with pytest.raises(PopupImageFetchError) as exc_info:
            popup_image("https://example.org/site.png")
        assert exc_info.value.code == "POPUP_IMAGE_FETCH_FAILED"
        assert exc_info.value.retryable is True
        assert exc_info.value.category == "transient"
        assert isinstance(exc_info.value.__cause__, httpx.HTTPError)

    @patch("soil_survey_maps.activities.popups.httpx.Client")
    def test_http_status_failure(self, mock_client_cls: MagicMock) -> None:
        response = _response()
        response.raise_for_status.side_effect = httpx.HTTPError("404 Not Found")
        mock_client_cls.return_value = _mock_client(response)
        with pytest.raises(PopupImageFetchError, match="404"):
            popup_image("https://example.org/site.png")

    @patch("soil_survey_maps.activities.popups.httpx.Client")
    def test_non_image_response(self, mock_client_cls: MagicMock) -> None:
        mock_client_cls.return_value = _mock_client(
            _response(content=b"<html/>", content_type="text/html")
        )
        with pytest.raises(PopupImageError) as exc_info:
            popup_image("https://example.org/page")
        assert exc_info.value.retryable is False
        assert exc_info.value.category == "permanent"


class TestSensorGraphPopups:
    def test_graph_for_sensors_table_for_others(
        self, small_point_layer: gpd.GeoDataFrame, small_readings: pd.DataFrame
    ) -> None:
        popups = sensor_graph_popups(small_point_layer, small_readings, ["VW_30cm"])
        assert len(popups) == 3
        assert "<img" in popups[0]
        assert "<img" not in popups[1]
        assert "<img" in popups[2]
        assert all("<table" in p for p in popups)

    def test_figures_closed(
        self, small_point_layer: gpd.GeoDataFrame, small_readings: pd.DataFrame
    ) -> None:
        sensor_graph_popups(small_point_layer, small_readings)
        assert plt.get_fignums() == []

"""Tests for the interactive (plotly) rendering activity."""

from __future__ import annotations

from pathlib import Path

import geopandas as gpd
import plotly.graph_objects as go
import pytest

from soil_survey_maps.activities.render_static import RenderError
from soil_survey_maps.activities.render_web import (
    add_points,
    point_map,
    raster_map,
    rgb_map,
    save_map,
    sync_maps,
)
from soil_survey_maps.models.raster import RasterLayer


class TestPointMap:
    """Marker maps of point layers."""

    def test_plain_markers(self, small_point_layer: gpd.GeoDataFrame) -> None:
        fig = point_map(small_point_layer)
        assert len(fig.data) == 1
        trace = fig.data[0]
        assert isinstance(trace, go.Scattermap)
        assert len(trace.lon) == 3

    def test_positions_are_geographic(self, small_point_layer: gpd.GeoDataFrame) -> None:
        trace = point_map(small_point_layer).data[0]
        assert all(-117.1 < lon < -116.9 for lon in trace.lon)
        assert all(45.0 < lat < 45.2 for lat in trace.lat)

    def test_map_settings(self, small_point_layer: gpd.GeoDataFrame) -> None:
        fig = point_map(small_point_layer, map_style="carto-positron", zoom=11)
        assert fig.layout.map.style == "carto-positron"
        assert fig.layout.map.zoom == 11
        assert -117.1 < fig.layout.map.center.lon < -116.9

    def test_categorical_one_trace_per_category(
        self, small_point_layer: gpd.GeoDataFrame
    ) -> None:
        fig = point_map(small_point_layer, color="soil")
        assert [t.name for t in fig.data] == ["soil: Naff", "soil: Palouse"]
        assert [len(t.lon) for t in fig.data] == [2, 1]
        assert fig.data[0].marker.color != fig.data[1].marker.color

    def test_continuous_has_colorbar(self, small_point_layer: gpd.GeoDataFrame) -> None:
        fig = point_map(small_point_layer, color="carbon")
        marker = fig.data[0].marker
        assert marker.showscale is True
        assert marker.colorbar.title.text == "carbon"
        assert marker.cmin == 8.25
        assert marker.cmax == 12.0

    def test_popups_in_customdata(self, small_point_layer: gpd.GeoDataFrame) -> None:
        popups = ["<b>one</b>", "<b>two</b>", "<b>three</b>"]
        trace = point_map(small_point_layer, popups=popups).data[0]
        assert list(trace.customdata) == popups

    def test_popups_follow_category_split(self, small_point_layer: gpd.GeoDataFrame) -> None:
        fig = point_map(small_point_layer, color="soil", popups=["a", "b", "c"])
        assert list(fig.data[0].customdata) == ["a", "c"]
        assert list(fig.data[1].customdata) == ["b"]

    def test_hover_lists_attributes(self, small_point_layer: gpd.GeoDataFrame) -> None:
        trace = point_map(small_point_layer, hover_columns=["SOURCEID"]).data[0]
        assert trace.text[0] == "<b>SOURCEID</b>: S1"

    def test_popup_count_mismatch(self, small_point_layer: gpd.GeoDataFrame) -> None:
        with pytest.raises(RenderError) as exc_info:
            point_map(small_point_layer, popups=["only one"])
        assert exc_info.value.code == "POPUP_COUNT_MISMATCH"

    def test_unknown_color_column(self, small_point_layer: gpd.GeoDataFrame) -> None:
        with pytest.raises(RenderError) as exc_info:
            point_map(small_point_layer, color="ph")
        assert exc_info.value.code == "COLUMN_NOT_FOUND"


class TestRasterMap:
    """Raster overlays as map image layers."""

    def test_image_layer(self, small_raster: RasterLayer) -> None:
        fig = raster_map(small_raster, "elev", opacity=0.5)
        layer = fig.layout.map.layers[0]
        assert layer.sourcetype == "image"
        assert layer.source.startswith("data:image/png;base64,")
        assert layer.opacity == 0.5

    def test_corner_coordinates(self, small_raster: RasterLayer) -> None:
        corners = raster_map(small_raster, "elev").layout.map.layers[0].coordinates
        assert len(corners) == 4
        (west, north), (east, _), (_, south), _ = corners
        assert west < east
        assert south < north
        assert -117.1 < west < -116.9

    def test_colorbar_range_from_band(self, small_raster: RasterLayer) -> None:
        fig = raster_map(small_raster, "elev", hover=False)
        assert len(fig.data) == 1
        marker = fig.data[0].marker
        assert marker.showscale is True
        assert (marker.cmin, marker.cmax) == (100.0, 105.0)

    def test_hover_trace_per_cell(self, gapped_raster: RasterLayer) -> None:
        fig = raster_map(gapped_raster, "elev")
        hover = fig.data[-1]
        assert len(hover.lon) == 5

    def test_title_defaults_to_band(self, small_raster: RasterLayer) -> None:
        assert raster_map(small_raster, "wet").layout.title.text == "wet"

    def test_unknown_band(self, small_raster: RasterLayer) -> None:
        with pytest.raises(RenderError) as exc_info:
            raster_map(small_raster, "ph")
        assert exc_info.value.code == "BAND_NOT_FOUND"

    def test_add_points_overlays_markers(
        self, small_raster: RasterLayer, small_point_layer: gpd.GeoDataFrame
    ) -> None:
        fig = raster_map(small_raster, "elev", hover=False)
        result = add_points(fig, small_point_layer, name="sites")
        assert result is fig
        assert fig.data[-1].name == "sites"
        assert len(fig.layout.map.layers) == 1


class TestRgbMap:
    def test_image_layer(self, small_raster: RasterLayer) -> None:
        fig = rgb_map(small_raster, "elev", "wet", "elev", stretch="hist")
        assert fig.layout.map.layers[0].sourcetype == "image"
        assert "hist" in fig.layout.title.text

    def test_unknown_stretch(self, small_raster: RasterLayer) -> None:
        with pytest.raises(RenderError) as exc_info:
            rgb_map(small_raster, "elev", "wet", "elev", stretch="gamma")
        assert exc_info.value.code == "STRETCH_INVALID"

    def test_unknown_band(self, small_raster: RasterLayer) -> None:
        with pytest.raises(RenderError):
            rgb_map(small_raster, "elev", "wet", "ph")


class TestSaveMap:
    def test_writes_html_with_popup_script(
        self, small_point_layer: gpd.GeoDataFrame, tmp_path: Path
    ) -> None:
        path = save_map(
            point_map(small_point_layer, popups=["a", "b", "c"]),
            tmp_path / "maps" / "sites.html",
            include_plotlyjs="cdn",
        )
        content = path.read_text(encoding="utf-8")
        assert path.parent.is_dir()
        assert "plotly_click" in content
        assert "ssm-popup" in content

    @pytest.mark.parametrize("suffix", [".png", ".pdf", ""])
    def test_non_html_rejected(
        self, small_point_layer: gpd.GeoDataFrame, tmp_path: Path, suffix: str
    ) -> None:
        with pytest.raises(RenderError) as exc_info:
            save_map(point_map(small_point_layer), tmp_path / f"sites{suffix}")
        assert exc_info.value.code == "UNSUPPORTED_FORMAT"


class TestSyncMaps:
    def test_one_panel_per_figure(self, small_raster: RasterLayer, tmp_path: Path) -> None:
        figures = [raster_map(small_raster, band, hover=False) for band in ("elev", "wet")]
        path = sync_maps(figures, tmp_path / "synced.html", include_plotlyjs="cdn")
        content = path.read_text(encoding="utf-8")
        assert 'id="ssm-panel-0"' in content
        assert 'id="ssm-panel-1"' in content
        assert "plotly_relayout" in content
        assert "repeat(2,1fr)" in content

    def test_figures_not_modified(self, small_raster: RasterLayer, tmp_path: Path) -> None:
        first = raster_map(small_raster, "elev", zoom=10, hover=False)
        second = raster_map(small_raster, "wet", zoom=15, hover=False)
        sync_maps([first, second], tmp_path / "synced.html", include_plotlyjs="cdn")
        assert second.layout.map.zoom == 15

    def test_no_figures(self, tmp_path: Path) -> None:
        with pytest.raises(RenderError) as exc_info:
            sync_maps([], tmp_path / "synced.html")
        assert exc_info.value.code == "NO_FIGURES"

    def test_bad_ncols(self, small_raster: RasterLayer, tmp_path: Path) -> None:
        with pytest.raises(RenderError):
            sync_maps([raster_map(small_raster, "elev")], tmp_path / "s.html", ncols=0)

    def test_non_html_rejected(self, small_raster: RasterLayer, tmp_path: Path) -> None:
        with pytest.raises(RenderError):
            sync_maps([raster_map(small_raster, "elev")], tmp_path / "s.png")

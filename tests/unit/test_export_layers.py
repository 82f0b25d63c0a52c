"""Tests for the export activity (GeoTIFF, vector files, manifest)."""

from __future__ import annotations

import json
from pathlib import Path

import fiona
import geopandas as gpd
import numpy as np
import pytest
import rasterio

from soil_survey_maps.activities.export_layers import (
    ExportError,
    export_points,
    export_raster,
    write_manifest,
)
from soil_survey_maps.models.manifest import ArtifactRecord, WalkthroughManifest
from soil_survey_maps.models.raster import RasterLayer


class TestExportRaster:
    def test_round_trip(self, small_raster: RasterLayer, tmp_path: Path) -> None:
        path = export_raster(small_raster, tmp_path / "layers" / "covariates.tif")
        with rasterio.open(path) as src:
            assert src.count == 2
            assert (src.height, src.width) == (2, 3)
            assert src.crs.to_epsg() == 26911
            assert src.transform == small_raster.transform
            assert src.descriptions == ("elev", "wet")
            np.testing.assert_array_equal(src.read(), small_raster.data)

    def test_nan_nodata(self, gapped_raster: RasterLayer, tmp_path: Path) -> None:
        path = export_raster(gapped_raster, tmp_path / "gapped.tif")
        with rasterio.open(path) as src:
            assert np.isnan(src.nodata)
            assert np.isnan(src.read(1)[0, 0])

    def test_wrong_suffix(self, small_raster: RasterLayer, tmp_path: Path) -> None:
        with pytest.raises(ExportError) as exc_info:
            export_raster(small_raster, tmp_path / "covariates.png")
        assert exc_info.value.code == "UNSUPPORTED_FORMAT"


class TestExportPoints:
    @pytest.mark.parametrize("suffix", [".geojson", ".gpkg"])
    def test_round_trip(
        self, small_point_layer: gpd.GeoDataFrame, tmp_path: Path, suffix: str
    ) -> None:
        path = export_points(small_point_layer, tmp_path / f"sites{suffix}")
        loaded = gpd.read_file(path, engine="fiona")
        assert len(loaded) == 3
        assert list(loaded["SOURCEID"]) == ["S1", "S2", "S3"]
        assert loaded.crs.to_epsg() == 26911

    def test_kml_written_in_wgs84(self, small_point_layer: gpd.GeoDataFrame, tmp_path: Path) -> None:
        path = export_points(small_point_layer, tmp_path / "sites.kml")
        content = path.read_text(encoding="utf-8")
        assert "<kml" in content
        assert "-117.0" in content or "-116.9" in content

    def test_kml_writable_after_import(self) -> None:
        assert "w" in fiona.drvsupport.supported_drivers["KML"]

    def test_overwrites_existing_file(
        self, small_point_layer: gpd.GeoDataFrame, tmp_path: Path
    ) -> None:
        path = tmp_path / "sites.gpkg"
        export_points(small_point_layer, path)
        export_points(small_point_layer.iloc[:1], path)
        assert len(gpd.read_file(path, engine="fiona")) == 1

    def test_unsupported_suffix(self, small_point_layer: gpd.GeoDataFrame, tmp_path: Path) -> None:
        with pytest.raises(ExportError) as exc_info:
            export_points(small_point_layer, tmp_path / "sites.shp")
        assert exc_info.value.code == "UNSUPPORTED_FORMAT"


class TestWriteManifest:
    def test_writes_json(self, tmp_path: Path) -> None:
        manifest = WalkthroughManifest(walkthrough="basics", run_id="run-1")
        manifest.add_artifact(ArtifactRecord(kind="web_map", path="maps/sites.html"))
        path = write_manifest(manifest, tmp_path / "basics")
        assert path.name == "manifest.json"
        data = json.loads(path.read_text(encoding="utf-8"))
        assert data["$schema"] == "walkthrough-manifest-v1"
        assert data["artifacts"][0]["path"] == "maps/sites.html"

    def test_unwritable_directory(self, tmp_path: Path) -> None:
        blocker = tmp_path / "file"
        blocker.write_text("x", encoding="utf-8")
        with pytest.raises(ExportError) as exc_info:
            write_manifest(WalkthroughManifest(walkthrough="basics"), blocker / "sub")
        assert exc_info.value.stage == "manifest"

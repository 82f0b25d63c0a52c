"""Tests for the RasterLayer model."""

from __future__ import annotations

import math

import numpy as np
import pandas as pd
import pytest
from rasterio.transform import from_origin

from soil_survey_maps.models.raster import RasterLayer


def _layer(data: np.ndarray, names: tuple[str, ...]) -> RasterLayer:
    return RasterLayer(
        data=data,
        band_names=names,
        transform=from_origin(0.0, 20.0, 10.0, 10.0),
        crs="EPSG:26911",
    )


class TestRasterLayerConstruction:
    """Shape checks in __post_init__."""

    def test_requires_three_dimensions(self) -> None:
        with pytest.raises(ValueError, match="3-D"):
            _layer(np.zeros((2, 3)), ("a",))

    def test_band_count_must_match_names(self) -> None:
        with pytest.raises(ValueError, match="band name"):
            _layer(np.zeros((2, 2, 3)), ("a",))

    def test_nodata_is_nan(self) -> None:
        assert math.isnan(_layer(np.zeros((1, 2, 3)), ("a",)).nodata)


class TestRasterLayerProperties:
    """Derived geometry of the lattice."""

    def test_dimensions(self, small_raster: RasterLayer) -> None:
        assert small_raster.count == 2
        assert small_raster.height == 2
        assert small_raster.width == 3
        assert small_raster.shape == (2, 3)

    def test_res_positive(self, small_raster: RasterLayer) -> None:
        assert small_raster.res == (10.0, 10.0)

    def test_cell_centres(self, small_raster: RasterLayer) -> None:
        xs, ys = small_raster.cell_centres()
        assert list(xs) == [500005.0, 500015.0, 500025.0]
        assert list(ys) == [5000015.0, 5000005.0]

    def test_summary(self, small_raster: RasterLayer) -> None:
        summary = small_raster.summary()
        assert summary["bands"] == ["elev", "wet"]
        assert summary["shape"] == [2, 3]
        assert summary["crs"] == "EPSG:26911"


class TestRasterLayerAccess:
    """Band lookup, point queries and flattening."""

    def test_band_by_name(self, small_raster: RasterLayer) -> None:
        assert small_raster.band("wet").shape == (2, 3)

    def test_unknown_band(self, small_raster: RasterLayer) -> None:
        with pytest.raises(KeyError, match="available: elev, wet"):
            small_raster.band("ph")

    def test_value_at_inside_cell(self, small_raster: RasterLayer) -> None:
        # any point inside the south-east cell
        assert small_raster.value_at("elev", 500029.0, 5000001.0) == 105.0

    def test_value_at_outside(self, small_raster: RasterLayer) -> None:
        with pytest.raises(IndexError, match="outside"):
            small_raster.value_at("elev", 499990.0, 5000010.0)

    def test_to_frame_round_trips_table(
        self, small_grid: pd.DataFrame, small_raster: RasterLayer
    ) -> None:
        frame = small_raster.to_frame()
        expected = small_grid[["x", "y", "elev", "wet"]]
        pd.testing.assert_frame_equal(frame, expected, check_dtype=False)

    def test_to_frame_drops_empty_cells(self, gapped_raster: RasterLayer) -> None:
        frame = gapped_raster.to_frame()
        assert len(frame) == 5
        assert not ((frame["x"] == 500005.0) & (frame["y"] == 5000015.0)).any()

    def test_to_frame_custom_column_names(self, small_raster: RasterLayer) -> None:
        frame = small_raster.to_frame("Easting", "Northing")
        assert list(frame.columns) == ["Easting", "Northing", "elev", "wet"]

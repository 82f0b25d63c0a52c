"""Shared pytest fixtures for the soil-survey-maps test suite."""

from __future__ import annotations

import shutil
from collections.abc import Iterator
from pathlib import Path
from typing import TYPE_CHECKING

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import numpy as np  # noqa: E402
import pandas as pd  # noqa: E402
import pytest  # noqa: E402

from soil_survey_maps.activities.build_layers import (  # noqa: E402
    build_point_layer,
    build_raster_layer,
)
from soil_survey_maps.activities.load_dataset import (  # noqa: E402
    bundled_data_dir,
    load_dataset,
)

if TYPE_CHECKING:
    import geopandas as gpd

    from soil_survey_maps.models.dataset import SurveyDataset
    from soil_survey_maps.models.raster import RasterLayer

# ---------------------------------------------------------------------------
# Small synthetic layers
# ---------------------------------------------------------------------------

TEST_CRS = "EPSG:26911"

# 3 columns x 2 rows of 10 m cells; outer extent 500000-500030 / 5000000-5000020
SMALL_XS = (500005.0, 500015.0, 500025.0)
SMALL_YS = (5000015.0, 5000005.0)


@pytest.fixture(autouse=True)
def _close_figures() -> Iterator[None]:
    """Close every matplotlib figure a test leaves open."""
    yield
    plt.close("all")


@pytest.fixture()
def small_grid() -> pd.DataFrame:
    """Complete 2x3 lattice with two numeric bands and a text column."""
    rows = []
    index = 0
    for y in SMALL_YS:
        for x in SMALL_XS:
            rows.append(
                {
                    "x": x,
                    "y": y,
                    "elev": 100.0 + index,
                    "wet": index * 0.5,
                    "unit": "A" if index % 2 == 0 else "B",
                }
            )
            index += 1
    return pd.DataFrame(rows)


@pytest.fixture()
def small_points() -> pd.DataFrame:
    """Three sites inside the small lattice."""
    return pd.DataFrame(
        {
            "SOURCEID": ["S1", "S2", "S3"],
            "Easting": [500004.0, 500016.0, 500027.0],
            "Northing": [5000012.0, 5000004.0, 5000018.0],
            "soil": ["Naff", "Palouse", "Naff"],
            "carbon": [10.5, 8.25, 12.0],
        }
    )


@pytest.fixture()
def small_readings() -> pd.DataFrame:
    """Four days of readings for sensors S1 and S3, deliberately unsorted."""
    dates = pd.to_datetime(["2012-05-03", "2012-05-01", "2012-05-02", "2012-05-04"])
    return pd.DataFrame(
        {
            "SOURCEID": ["S1"] * 4 + ["S3"] * 4,
            "Date": list(dates) * 2,
            "VW_30cm": [0.30, 0.10, 0.20, 0.40, 0.5, 0.5, 0.5, 0.5],
            "C_30cm": [10.0, 11.0, 12.0, 13.0, 20.0, 21.0, 22.0, 23.0],
        }
    )


@pytest.fixture()
def small_point_layer(small_points: pd.DataFrame) -> gpd.GeoDataFrame:
    """Point layer built from ``small_points``."""
    return build_point_layer(small_points, TEST_CRS)


@pytest.fixture()
def small_raster(small_grid: pd.DataFrame) -> RasterLayer:
    """Two-band raster (``elev``, ``wet``) built from ``small_grid``."""
    return build_raster_layer(small_grid, ["x", "y", "elev", "wet"], TEST_CRS)


@pytest.fixture()
def gapped_raster(small_grid: pd.DataFrame) -> RasterLayer:
    """Raster from ``small_grid`` with the north-west cell missing."""
    grid = small_grid.iloc[1:].reset_index(drop=True)
    return build_raster_layer(grid, ["x", "y", "elev", "wet"], TEST_CRS)


# ---------------------------------------------------------------------------
# Bundled dataset
# ---------------------------------------------------------------------------


@pytest.fixture(scope="session")
def dataset() -> SurveyDataset:
    """The bundled cookfarm dataset (loaded once per session)."""
    return load_dataset()


@pytest.fixture()
def dataset_copy(tmp_path: Path) -> Path:
    """A writable copy of the bundled dataset directory."""
    target = tmp_path / "dataset"
    shutil.copytree(bundled_data_dir(), target, ignore=shutil.ignore_patterns("__*"))
    return target


@pytest.fixture()
def rgba_image() -> np.ndarray:
    """A 2x2 RGBA float image with one transparent pixel."""
    image = np.zeros((2, 2, 4))
    image[..., 0] = 1.0
    image[..., 3] = 1.0
    image[1, 1, 3] = 0.0
    return image

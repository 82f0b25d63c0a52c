"""Data model for a loaded soil-survey dataset.

A SurveyDataset is the in-memory bundle produced by the ``load_dataset``
activity: three tables plus the CRS descriptor and the names of the key
columns that tie them together.  It is the input to the layer builder.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    import pandas as pd


@dataclass(frozen=True, slots=True, eq=False)
class SurveyDataset:
    """A bundled soil-survey dataset.

    Attributes:
        name: Dataset name from the manifest (e.g. ``"cookfarm"``).
        points: Soil profile table, one row per sampled site.
        grids: Covariate grid table; the first two columns are ``x, y``.
        readings: Sensor readings table, one row per sensor and timestamp.
        crs: CRS descriptor shared by the point and grid coordinates
            (e.g. ``"EPSG:26911"``).
        point_id_column: Column identifying a site / sensor in ``points``.
        point_coordinate_columns: ``(easting, northing)`` column names.
        grid_coordinate_columns: ``(x, y)`` column names in ``grids``.
        reading_id_column: Column holding the sensor id in ``readings``.
        reading_time_column: Column holding the timestamp in ``readings``.
        description: Free-text description from the manifest.
    """

    name: str
    points: pd.DataFrame
    grids: pd.DataFrame
    readings: pd.DataFrame
    crs: str
    point_id_column: str = "SOURCEID"
    point_coordinate_columns: tuple[str, str] = ("Easting", "Northing")
    grid_coordinate_columns: tuple[str, str] = ("x", "y")
    reading_id_column: str = "SOURCEID"
    reading_time_column: str = "Date"
    description: str = ""

    @property
    def sensor_ids(self) -> list[str]:
        """Sorted distinct sensor identifiers present in ``readings``."""
        return sorted(str(v) for v in self.readings[self.reading_id_column].dropna().unique())

    @property
    def grid_attribute_columns(self) -> list[str]:
        """Grid columns other than the two coordinate columns, in order."""
        return [c for c in self.grids.columns if c not in self.grid_coordinate_columns]

    def summary(self) -> dict[str, object]:
        """Row counts and key facts, for logging and manifests."""
        return {
            "name": self.name,
            "crs": self.crs,
            "points": len(self.points),
            "grid_cells": len(self.grids),
            "readings": len(self.readings),
            "sensors": len(self.sensor_ids),
        }

"""Per-sensor time series derived from the readings table.

Readings relate to point records through the shared sensor identifier.
These helpers cut the long readings table into one timestamp-indexed
frame per sensor, and join a per-sensor summary onto the point layer so
sensor markers can be coloured by it.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import TYPE_CHECKING

import pandas as pd

from soil_survey_maps.core.exceptions import ValidationError

if TYPE_CHECKING:
    import geopandas as gpd

logger = logging.getLogger("soil_survey_maps.activities.time_series")


class TimeSeriesError(ValidationError):
    """Raised when a sensor or reading variable is not in the readings table."""

    default_stage = "time_series"
    default_code = "TIME_SERIES_INVALID"


def measurement_columns(
    readings: pd.DataFrame,
    *,
    id_column: str = "SOURCEID",
    time_column: str = "Date",
) -> list[str]:
    """Numeric reading columns, excluding the sensor id and timestamp."""
    return [
        c
        for c in readings.columns
        if c not in (id_column, time_column) and pd.api.types.is_numeric_dtype(readings[c])
    ]


def sensor_time_series(
    readings: pd.DataFrame,
    sensor_id: str,
    variables: Sequence[str] | None = None,
    *,
    id_column: str = "SOURCEID",
    time_column: str = "Date",
) -> pd.DataFrame:
    """Return one sensor's readings indexed by timestamp, oldest first.

    Args:
        readings: Long readings table.
        sensor_id: Sensor to select.
        variables: Measurement columns to keep; ``None`` keeps every
            numeric measurement column.
        id_column: Sensor id column.
        time_column: Timestamp column.

    Raises:
        TimeSeriesError: If the sensor has no readings or a variable is
            not a column of ``readings``.
    """
    columns = _resolve_variables(readings, variables, id_column, time_column)
    subset = readings.loc[readings[id_column].astype(str) == str(sensor_id)]
    if subset.empty:
        msg = f"No readings for sensor {sensor_id!r}"
        raise TimeSeriesError(msg)

    series = (
        subset.set_index(pd.to_datetime(subset[time_column]))[columns]
        .sort_index()
        .rename_axis(time_column)
    )
    series.attrs["sensor_id"] = str(sensor_id)
    return series


def split_time_series(
    readings: pd.DataFrame,
    variables: Sequence[str] | None = None,
    *,
    id_column: str = "SOURCEID",
    time_column: str = "Date",
) -> dict[str, pd.DataFrame]:
    """Return ``{sensor_id: series}`` for every sensor in ``readings``."""
    sensors = sorted(str(v) for v in readings[id_column].dropna().unique())
    result = {
        sensor: sensor_time_series(
            readings,
            sensor,
            variables,
            id_column=id_column,
            time_column=time_column,
        )
        for sensor in sensors
    }
    logger.info("Time series split | sensors=%d | rows=%d", len(result), len(readings))
    return result


def attach_sensor_summary(
    points: gpd.GeoDataFrame,
    readings: pd.DataFrame,
    variable: str,
    *,
    point_id_column: str = "SOURCEID",
    id_column: str = "SOURCEID",
    time_column: str = "Date",
    statistic: str = "mean",
) -> gpd.GeoDataFrame:
    """Add a column with one summary statistic of ``variable`` per sensor.

    The new column is named ``f"{variable}_{statistic}"``.  Points with no
    readings get NaN.  The input layer is not modified.

    Raises:
        TimeSeriesError: If ``variable`` is not a readings column or the
            point layer has no ``point_id_column``.
    """
    _resolve_variables(readings, [variable], id_column, time_column)
    if point_id_column not in points.columns:
        msg = f"Point layer has no id column {point_id_column!r}"
        raise TimeSeriesError(msg)

    summary = readings.groupby(readings[id_column].astype(str))[variable].agg(statistic)
    column = f"{variable}_{statistic}"
    result = points.copy()
    result[column] = points[point_id_column].astype(str).map(summary)
    return result


def _resolve_variables(
    readings: pd.DataFrame,
    variables: Sequence[str] | None,
    id_column: str,
    time_column: str,
) -> list[str]:
    for column in (id_column, time_column):
        if column not in readings.columns:
            msg = f"Readings table has no column {column!r}"
            raise TimeSeriesError(msg)
    if variables is None:
        return measurement_columns(readings, id_column=id_column, time_column=time_column)
    missing = [v for v in variables if v not in readings.columns]
    if missing:
        msg = f"Readings table has no variable(s): {', '.join(missing)}"
        raise TimeSeriesError(msg)
    return list(variables)

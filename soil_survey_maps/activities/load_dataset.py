"""Dataset loader activity.

Reads a dataset manifest (``dataset.json``) and the three tables it
names into a ``SurveyDataset``.  With no ``data_dir`` the copy bundled
inside the package is used, so the walkthroughs run offline.

Manifest layout::

    {
      "name": "cookfarm",
      "crs": "EPSG:26911",
      "tables": {
        "points":   {"file": "...csv", "id_column": "...", "coordinate_columns": [x, y]},
        "grids":    {"file": "...csv", "coordinate_columns": [x, y]},
        "readings": {"file": "...csv", "id_column": "...", "time_column": "..."}
      }
    }

Every declared column is checked for presence and the CRS is parsed with
pyproj before anything is returned.
"""

from __future__ import annotations

import json
import logging
from importlib.resources import files
from pathlib import Path
from typing import Any

import pandas as pd
from pyproj import CRS
from pyproj.exceptions import CRSError

from soil_survey_maps.core.constants import DATASET_MANIFEST, TABLE_KEYS
from soil_survey_maps.core.exceptions import ValidationError
from soil_survey_maps.models.dataset import SurveyDataset

logger = logging.getLogger("soil_survey_maps.activities.load_dataset")

BUNDLED_PACKAGE = "soil_survey_maps.data"
SCHEMA_MISMATCH_CODE = "DATASET_SCHEMA_MISMATCH"


class DatasetLoadError(ValidationError):
    """Raised when a dataset directory, manifest or table cannot be loaded."""

    default_stage = "load_dataset"
    default_code = "DATASET_LOAD_FAILED"


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def bundled_data_dir() -> Path:
    """Return the directory of the dataset shipped with the package."""
    return Path(str(files(BUNDLED_PACKAGE)))


def load_dataset(data_dir: Path | str | None = None) -> SurveyDataset:
    """Load a survey dataset from a manifest directory.

    Args:
        data_dir: Directory containing ``dataset.json`` and its tables.
            ``None`` or empty loads the bundled dataset.

    Returns:
        A ``SurveyDataset`` with the three tables and CRS descriptor.

    Raises:
        DatasetLoadError: If the manifest or a table is missing or
            unreadable, or the CRS cannot be parsed.  A table that lacks
            a declared column raises it with code
            ``DATASET_SCHEMA_MISMATCH``.
    """
    directory = Path(data_dir) if data_dir else bundled_data_dir()
    manifest = _read_manifest(directory)

    crs = _validate_crs(manifest.get("crs"))
    tables = manifest.get("tables")
    if not isinstance(tables, dict):
        msg = f"Manifest in {directory} has no 'tables' mapping"
        raise DatasetLoadError(msg)

    missing_tables = [key for key in TABLE_KEYS if key not in tables]
    if missing_tables:
        msg = f"Manifest in {directory} is missing table(s): {', '.join(missing_tables)}"
        raise DatasetLoadError(msg)

    malformed = [key for key in TABLE_KEYS if not isinstance(tables[key], dict)]
    if malformed:
        msg = f"Manifest in {directory} has non-object table entries: {', '.join(malformed)}"
        raise DatasetLoadError(msg)

    points_spec = tables["points"]
    grids_spec = tables["grids"]
    readings_spec = tables["readings"]

    point_id = str(points_spec.get("id_column", "SOURCEID"))
    point_xy = _coordinate_pair(points_spec, "points")
    grid_xy = _coordinate_pair(grids_spec, "grids")
    reading_id = str(readings_spec.get("id_column", point_id))
    reading_time = str(readings_spec.get("time_column", "Date"))

    points = _read_table(directory, points_spec, "points", required=[point_id, *point_xy])
    grids = _read_table(directory, grids_spec, "grids", required=list(grid_xy))
    readings = _read_table(
        directory, readings_spec, "readings", required=[reading_id, reading_time]
    )

    if list(grids.columns[:2]) != list(grid_xy):
        msg = (
            f"Grid coordinate columns {list(grid_xy)} must be the first two columns, "
            f"got {list(grids.columns[:2])}"
        )
        raise DatasetLoadError(msg, code=SCHEMA_MISMATCH_CODE)

    try:
        readings[reading_time] = pd.to_datetime(readings[reading_time])
    except (ValueError, TypeError) as exc:
        msg = f"Readings column '{reading_time}' holds unparseable timestamps: {exc}"
        raise DatasetLoadError(msg) from exc

    dataset = SurveyDataset(
        name=str(manifest.get("name", directory.name)),
        description=str(manifest.get("description", "")),
        points=points,
        grids=grids,
        readings=readings,
        crs=crs,
        point_id_column=point_id,
        point_coordinate_columns=point_xy,
        grid_coordinate_columns=grid_xy,
        reading_id_column=reading_id,
        reading_time_column=reading_time,
    )

    logger.info(
        "Dataset loaded | name=%s | crs=%s | points=%d | grid_cells=%d | readings=%d | source=%s",
        dataset.name,
        dataset.crs,
        len(points),
        len(grids),
        len(readings),
        directory,
    )
    return dataset


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _read_manifest(directory: Path) -> dict[str, Any]:
    """Read and parse ``dataset.json`` from *directory*."""
    path = directory / DATASET_MANIFEST
    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        msg = f"Cannot read dataset manifest {path}: {exc}"
        raise DatasetLoadError(msg) from exc

    try:
        manifest = json.loads(content)
    except json.JSONDecodeError as exc:
        msg = f"Dataset manifest {path} is not valid JSON: {exc}"
        raise DatasetLoadError(msg) from exc

    if not isinstance(manifest, dict):
        msg = f"Dataset manifest {path} must be a JSON object"
        raise DatasetLoadError(msg)
    return manifest


def _validate_crs(raw: object) -> str:
    """Check the CRS descriptor parses; return it unchanged."""
    if not raw or not isinstance(raw, str):
        msg = f"Dataset manifest has no usable 'crs' entry: {raw!r}"
        raise DatasetLoadError(msg)
    try:
        CRS.from_user_input(raw)
    except CRSError as exc:
        msg = f"Unrecognised CRS {raw!r}: {exc}"
        raise DatasetLoadError(msg) from exc
    return raw


def _coordinate_pair(spec: dict[str, Any], table: str) -> tuple[str, str]:
    columns = spec.get("coordinate_columns")
    if not isinstance(columns, list) or len(columns) != 2:
        msg = f"Table '{table}' must declare exactly two coordinate_columns, got {columns!r}"
        raise DatasetLoadError(msg)
    return (str(columns[0]), str(columns[1]))


def _read_table(
    directory: Path,
    spec: dict[str, Any],
    table: str,
    *,
    required: list[str],
) -> pd.DataFrame:
    """Read one CSV table and check its required columns."""
    filename = spec.get("file")
    if not filename:
        msg = f"Table '{table}' has no 'file' entry in the manifest"
        raise DatasetLoadError(msg)

    path = directory / str(filename)
    try:
        frame = pd.read_csv(path)
    except FileNotFoundError as exc:
        msg = f"Table '{table}' file not found: {path}"
        raise DatasetLoadError(msg) from exc
    except (OSError, pd.errors.ParserError, pd.errors.EmptyDataError) as exc:
        msg = f"Cannot parse table '{table}' from {path}: {exc}"
        raise DatasetLoadError(msg) from exc

    missing = [c for c in required if c not in frame.columns]
    if missing:
        msg = f"Table '{table}' ({path.name}) is missing column(s): {', '.join(missing)}"
        raise DatasetLoadError(msg, code=SCHEMA_MISMATCH_CODE)

    logger.debug("Table read | table=%s | rows=%d | columns=%d", table, len(frame), frame.shape[1])
    return frame

"""Data model for a multi-band raster layer.

A RasterLayer is the output of ``build_raster_layer``: each selected grid
column becomes one band on a regular north-up lattice.  Cells absent from
the source table hold NaN.  The affine ``transform`` maps ``(col, row)``
pixel corners to map coordinates in ``crs``, exactly as rasterio does.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd
from rasterio.transform import array_bounds, rowcol

if TYPE_CHECKING:
    from affine import Affine


@dataclass(frozen=True, slots=True, eq=False)
class RasterLayer:
    """A north-up multi-band raster.

    Attributes:
        data: ``float64`` array shaped ``(bands, rows, cols)``.  Row 0 is
            the northernmost row.
        band_names: One name per band, in band order.
        transform: Affine pixel-to-map transform (rasterio convention).
        crs: CRS descriptor of the map coordinates.
        nodata: Value marking empty cells (always NaN).
    """

    data: np.ndarray
    band_names: tuple[str, ...]
    transform: Affine
    crs: str
    nodata: float = math.nan

    def __post_init__(self) -> None:
        if self.data.ndim != 3:
            msg = f"Raster data must be 3-D (bands, rows, cols), got {self.data.ndim}-D"
            raise ValueError(msg)
        if self.data.shape[0] != len(self.band_names):
            msg = (
                f"Raster has {self.data.shape[0]} band(s) but "
                f"{len(self.band_names)} band name(s)"
            )
            raise ValueError(msg)

    @property
    def count(self) -> int:
        """Number of bands."""
        return int(self.data.shape[0])

    @property
    def height(self) -> int:
        """Number of rows."""
        return int(self.data.shape[1])

    @property
    def width(self) -> int:
        """Number of columns."""
        return int(self.data.shape[2])

    @property
    def shape(self) -> tuple[int, int]:
        """``(rows, cols)``."""
        return (self.height, self.width)

    @property
    def res(self) -> tuple[float, float]:
        """Cell size ``(x_res, y_res)`` in map units, both positive."""
        return (abs(self.transform.a), abs(self.transform.e))

    @property
    def bounds(self) -> tuple[float, float, float, float]:
        """Outer cell-edge extent ``(left, bottom, right, top)``."""
        west, south, east, north = array_bounds(self.height, self.width, self.transform)
        return (west, south, east, north)

    def band(self, name: str) -> np.ndarray:
        """Return the 2-D array for the named band.

        Raises:
            KeyError: If no band has that name.
        """
        try:
            index = self.band_names.index(name)
        except ValueError:
            msg = f"No band named {name!r}; available: {', '.join(self.band_names)}"
            raise KeyError(msg) from None
        return self.data[index]

    def value_at(self, name: str, x: float, y: float) -> float:
        """Return the band value of the cell containing map point ``(x, y)``.

        Raises:
            KeyError: If no band has that name.
            IndexError: If the point lies outside the raster.
        """
        row, col = (int(v) for v in rowcol(self.transform, x, y))
        if not (0 <= row < self.height and 0 <= col < self.width):
            msg = f"Point ({x}, {y}) is outside the raster extent {self.bounds}"
            raise IndexError(msg)
        return float(self.band(name)[row, col])

    def cell_centres(self) -> tuple[np.ndarray, np.ndarray]:
        """Return ``(xs, ys)`` 1-D arrays of column and row centre coordinates."""
        cols = np.arange(self.width) + 0.5
        rows = np.arange(self.height) + 0.5
        xs = self.transform.c + cols * self.transform.a
        ys = self.transform.f + rows * self.transform.e
        return xs, ys

    def to_frame(self, x_column: str = "x", y_column: str = "y") -> pd.DataFrame:
        """Flatten back to one row per non-empty cell: ``x, y, band...``.

        Rows are ordered north to south, then west to east.  Cells where
        every band is NaN are dropped.
        """
        xs, ys = self.cell_centres()
        grid_x, grid_y = np.meshgrid(xs, ys)
        columns: dict[str, np.ndarray] = {
            x_column: grid_x.ravel(),
            y_column: grid_y.ravel(),
        }
        for index, name in enumerate(self.band_names):
            columns[name] = self.data[index].ravel()
        frame = pd.DataFrame(columns)
        return frame.dropna(subset=list(self.band_names), how="all").reset_index(drop=True)

    def summary(self) -> dict[str, object]:
        """Band names, shape, resolution and extent, for logging and manifests."""
        return {
            "bands": list(self.band_names),
            "shape": list(self.shape),
            "res": list(self.res),
            "bounds": list(self.bounds),
            "crs": self.crs,
        }

"""Band stretching and image encoding shared by the static and web renderers.

Both renderers must show the same colours for the same band, so the
colour mapping (matplotlib colormaps) and the RGB contrast stretches live
here once.  NaN cells always come out fully transparent.
"""

from __future__ import annotations

import base64
import io
from typing import TYPE_CHECKING

import matplotlib as mpl
import matplotlib.pyplot as plt
import numpy as np

if TYPE_CHECKING:
    from soil_survey_maps.models.raster import RasterLayer

# Percentiles used by the linear contrast stretch
LINEAR_STRETCH_PERCENTILES = (2.0, 98.0)

# Bins used by histogram equalisation
EQUALIZE_BINS = 256

# Colour stops sampled when converting a colormap to a plotly colorscale
COLORSCALE_STOPS = 11


def get_colormap(name: str) -> mpl.colors.Colormap:
    """Look up a registered matplotlib colormap.

    Raises:
        ValueError: If no colormap has that name.
    """
    try:
        return mpl.colormaps[name]
    except KeyError:
        msg = f"Unknown colormap {name!r}"
        raise ValueError(msg) from None


def finite_range(band: np.ndarray) -> tuple[float, float]:
    """Return ``(min, max)`` of the finite cells, ``(0, 1)`` if there are none."""
    finite = band[np.isfinite(band)]
    if finite.size == 0:
        return (0.0, 1.0)
    return (float(finite.min()), float(finite.max()))


def linear_stretch(
    band: np.ndarray,
    percentiles: tuple[float, float] = LINEAR_STRETCH_PERCENTILES,
) -> np.ndarray:
    """Scale a band to 0-1 between two percentiles, clipping outside them."""
    finite = band[np.isfinite(band)]
    if finite.size == 0:
        return np.full(band.shape, np.nan)
    low, high = np.percentile(finite, percentiles)
    span = high - low
    if span <= 0:
        return np.where(np.isfinite(band), 0.5, np.nan)
    return np.clip((band - low) / span, 0.0, 1.0)


def equalize_histogram(band: np.ndarray, bins: int = EQUALIZE_BINS) -> np.ndarray:
    """Map a band through its cumulative histogram to 0-1."""
    finite_mask = np.isfinite(band)
    finite = band[finite_mask]
    if finite.size == 0:
        return np.full(band.shape, np.nan)
    counts, edges = np.histogram(finite, bins=bins)
    cdf = np.cumsum(counts).astype(np.float64)
    cdf /= cdf[-1]
    result = np.full(band.shape, np.nan)
    result[finite_mask] = np.interp(finite, edges[1:], cdf)
    return result


def minmax_stretch(band: np.ndarray) -> np.ndarray:
    """Scale a band to 0-1 between its own finite minimum and maximum."""
    low, high = finite_range(band)
    span = high - low
    if span <= 0:
        return np.where(np.isfinite(band), 0.5, np.nan)
    return (band - low) / span


def stretch_band(band: np.ndarray, mode: str) -> np.ndarray:
    """Apply the named stretch: ``"lin"``, ``"hist"`` or ``"none"``.

    ``"none"`` still rescales to 0-1 (min/max) so bands with different
    units can share one RGB image.

    Raises:
        ValueError: If ``mode`` is not a known stretch.
    """
    if mode == "lin":
        return linear_stretch(band)
    if mode == "hist":
        return equalize_histogram(band)
    if mode == "none":
        return minmax_stretch(band)
    msg = f"Unknown stretch {mode!r}; expected 'lin', 'hist' or 'none'"
    raise ValueError(msg)


def rgb_composite(
    layer: RasterLayer,
    red: str,
    green: str,
    blue: str,
    *,
    stretch: str = "lin",
) -> np.ndarray:
    """Build an ``(rows, cols, 4)`` RGBA float image from three bands.

    Cells where any of the three bands is NaN are transparent.
    """
    channels = [stretch_band(layer.band(name), stretch) for name in (red, green, blue)]
    stacked = np.dstack(channels)
    valid = np.all(np.isfinite(stacked), axis=2)
    rgba = np.zeros((*stacked.shape[:2], 4), dtype=np.float64)
    rgba[..., :3] = np.where(valid[..., None], stacked, 0.0)
    rgba[..., 3] = valid.astype(np.float64)
    return rgba


def colorize_band(
    band: np.ndarray,
    cmap: str,
    *,
    vmin: float | None = None,
    vmax: float | None = None,
    opacity: float = 1.0,
) -> np.ndarray:
    """Map a band through a colormap to ``(rows, cols, 4)`` RGBA floats."""
    low, high = finite_range(band)
    vmin = low if vmin is None else vmin
    vmax = high if vmax is None else vmax
    norm = mpl.colors.Normalize(vmin=vmin, vmax=vmax)
    rgba = get_colormap(cmap)(norm(np.nan_to_num(band, nan=vmin)))
    rgba[..., 3] = np.where(np.isfinite(band), opacity, 0.0)
    return rgba


def colormap_to_colorscale(cmap: str, stops: int = COLORSCALE_STOPS) -> list[list[object]]:
    """Sample a matplotlib colormap into a plotly ``colorscale`` list."""
    colormap = get_colormap(cmap)
    scale: list[list[object]] = []
    for position in np.linspace(0.0, 1.0, stops):
        r, g, b, _ = colormap(position)
        scale.append([float(position), f"rgb({int(r * 255)},{int(g * 255)},{int(b * 255)})"])
    return scale


def encode_png(rgba: np.ndarray) -> bytes:
    """Encode an RGBA float image as PNG bytes."""
    buffer = io.BytesIO()
    plt.imsave(buffer, np.clip(rgba, 0.0, 1.0), format="png")
    return buffer.getvalue()


def figure_png(fig: mpl.figure.Figure, *, dpi: int = 100) -> bytes:
    """Render a matplotlib figure to PNG bytes."""
    buffer = io.BytesIO()
    fig.savefig(buffer, format="png", dpi=dpi, bbox_inches="tight")
    return buffer.getvalue()


def data_uri(content: bytes, mime_type: str = "image/png") -> str:
    """Return a base64 ``data:`` URI for embedding bytes in HTML."""
    encoded = base64.b64encode(content).decode("ascii")
    return f"data:{mime_type};base64,{encoded}"

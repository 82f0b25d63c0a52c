"""Walkthrough configuration loaded from environment variables.

All configuration values have sensible defaults so the walkthroughs run
against the bundled dataset with no environment set at all.

Fail-fast validation:
    ``from_env()`` raises ``ConfigValidationError`` if any value is out
    of its valid range, before any dataset is loaded or map rendered.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from soil_survey_maps.core.exceptions import ValidationError
from soil_survey_maps.utils.imaging import get_colormap

RGB_STRETCH_MODES = ("lin", "hist", "none")
MAX_MAP_ZOOM = 22


class ConfigValidationError(ValidationError):
    """Raised when configuration values are out of valid range.

    Attributes:
        key: The configuration key that failed validation.
        value: The invalid value.
        message: Human-readable description of the valid range.
    """

    default_stage = "config"
    default_code = "CONFIG_VALIDATION_FAILED"

    def __init__(self, key: str, value: object, message: str) -> None:
        self.key = key
        self.value = value
        super().__init__(f"Invalid configuration {key}={value!r}: {message}")


@dataclass(frozen=True, slots=True)
class MapConfig:
    """Immutable walkthrough configuration.

    Attributes:
        data_dir: Directory holding a dataset manifest and its tables.
            Empty means the dataset bundled with the package.
        output_dir: Directory that saved artifacts are written to.
        map_style: Basemap style name passed to plotly map layouts.
        map_zoom: Initial web map zoom level.
        map_opacity: Opacity of raster overlays on web maps (0-1).
        raster_colorscale: Matplotlib colormap name for single-band rasters.
        rgb_stretch: Contrast stretch for RGB composites.
        figure_dpi: Resolution of saved static figures.
        popup_image_timeout_s: Timeout for fetching remote popup images.
        popup_image_url: Optional remote image shown in a popup.
        log_level: Logging level name for the entry point.
    """

    data_dir: str = ""
    output_dir: str = "output"
    map_style: str = "open-street-map"
    map_zoom: float = 14.0
    map_opacity: float = 0.8
    raster_colorscale: str = "viridis"
    rgb_stretch: str = "lin"
    figure_dpi: int = 150
    popup_image_timeout_s: float = 10.0
    popup_image_url: str = ""
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> MapConfig:
        """Load and validate configuration from environment variables.

        Raises:
            ConfigValidationError: If a value is out of range or a
                required string value is empty.
            ValueError: If a numeric environment variable cannot be
                parsed (e.g. ``MAP_ZOOM=abc``).
        """
        config = cls(
            data_dir=os.getenv("SURVEY_DATA_DIR", ""),
            output_dir=os.getenv("SURVEY_OUTPUT_DIR", "output"),
            map_style=os.getenv("MAP_STYLE", "open-street-map"),
            map_zoom=float(os.getenv("MAP_ZOOM", "14")),
            map_opacity=float(os.getenv("MAP_OPACITY", "0.8")),
            raster_colorscale=os.getenv("RASTER_COLORSCALE", "viridis"),
            rgb_stretch=os.getenv("RGB_STRETCH", "lin").lower(),
            figure_dpi=int(os.getenv("FIGURE_DPI", "150")),
            popup_image_timeout_s=float(os.getenv("POPUP_IMAGE_TIMEOUT_S", "10")),
            popup_image_url=os.getenv("POPUP_IMAGE_URL", ""),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        )
        _validate(config)
        return config

    @property
    def output_path(self) -> Path:
        """Output directory as a ``Path``."""
        return Path(self.output_dir)


def _validate(config: MapConfig) -> None:
    """Validate configuration ranges.  Raises ``ConfigValidationError``."""
    if config.data_dir and not Path(config.data_dir).is_dir():
        raise ConfigValidationError(
            "SURVEY_DATA_DIR",
            config.data_dir,
            "must be an existing directory (or empty for the bundled dataset)",
        )

    if not config.output_dir:
        raise ConfigValidationError("SURVEY_OUTPUT_DIR", config.output_dir, "must not be empty")

    if not config.map_style:
        raise ConfigValidationError("MAP_STYLE", config.map_style, "must not be empty")

    if not 0.0 <= config.map_zoom <= MAX_MAP_ZOOM:
        raise ConfigValidationError(
            "MAP_ZOOM",
            config.map_zoom,
            f"must be between 0 and {MAX_MAP_ZOOM}",
        )

    if not 0.0 <= config.map_opacity <= 1.0:
        raise ConfigValidationError(
            "MAP_OPACITY",
            config.map_opacity,
            "must be between 0 and 1",
        )

    try:
        get_colormap(config.raster_colorscale)
    except ValueError:
        raise ConfigValidationError(
            "RASTER_COLORSCALE",
            config.raster_colorscale,
            "must be a registered matplotlib colormap name",
        ) from None

    if config.rgb_stretch not in RGB_STRETCH_MODES:
        raise ConfigValidationError(
            "RGB_STRETCH",
            config.rgb_stretch,
            f"must be one of {', '.join(RGB_STRETCH_MODES)}",
        )

    if config.figure_dpi <= 0:
        raise ConfigValidationError("FIGURE_DPI", config.figure_dpi, "must be > 0")

    if config.popup_image_timeout_s <= 0:
        raise ConfigValidationError(
            "POPUP_IMAGE_TIMEOUT_S",
            config.popup_image_timeout_s,
            "must be > 0 (seconds)",
        )

    if not isinstance(logging.getLevelName(config.log_level), int):
        raise ConfigValidationError(
            "LOG_LEVEL",
            config.log_level,
            "must be a standard logging level name",
        )

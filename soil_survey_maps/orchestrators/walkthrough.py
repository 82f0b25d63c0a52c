"""Walkthrough orchestrators: the two mapping documents as re-runnable runs.

``run_basics``:
    load -> point layer -> raster of elevation, wetness and conductivity
    -> static plots -> marker, choropleth and raster web maps.

``run_advanced``:
    RGB composite (static and web) -> synced panels, one per raster band
    -> sensor markers with time-series graph popups -> optional remote
    image popup -> GeoTIFF / GeoJSON / GeoPackage / KML exports.

Each run writes its files under ``{output_dir}/{walkthrough}/`` and
returns a ``WalkthroughManifest`` that is also saved as ``manifest.json``
there.  Any ``SurveyMapError`` raised by a step is logged with the run id
and re-raised; the run stops at the failing step.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import TYPE_CHECKING

from soil_survey_maps.activities.build_layers import build_point_layer, build_raster_layer
from soil_survey_maps.activities.export_layers import (
    export_points,
    export_raster,
    write_manifest,
)
from soil_survey_maps.activities.load_dataset import load_dataset
from soil_survey_maps.activities.popups import popup_image, sensor_graph_popups, table_popups
from soil_survey_maps.activities.render_static import (
    plot_points,
    plot_raster,
    plot_raster_bands,
    plot_rgb,
    plot_time_series,
    save_figure,
)
from soil_survey_maps.activities.render_web import (
    add_points,
    point_map,
    raster_map,
    rgb_map,
    save_map,
    sync_maps,
)
from soil_survey_maps.activities.time_series import attach_sensor_summary, sensor_time_series
from soil_survey_maps.core.config import MapConfig
from soil_survey_maps.core.exceptions import SurveyMapError
from soil_survey_maps.models.manifest import ArtifactRecord, LayerSummary, WalkthroughManifest
from soil_survey_maps.utils.artifact_paths import (
    LAYERS_DIR,
    MAPS_DIR,
    PLOTS_DIR,
    build_artifact_path,
    sanitise_slug,
)

if TYPE_CHECKING:
    import geopandas as gpd

    from soil_survey_maps.models.dataset import SurveyDataset
    from soil_survey_maps.models.raster import RasterLayer

logger = logging.getLogger("soil_survey_maps.orchestrators.walkthrough")

BASICS = "basics"
ADVANCED = "advanced"
WALKTHROUGHS = (BASICS, ADVANCED)

# Grid columns rasterised by the basics walkthrough
BASIC_BANDS = ("DEM", "TWI", "Cook_fall_ECa", "Cook_spring_ECa")

# Point attributes used for colouring
SOIL_TYPE_COLUMN = "TAXSUSDA"
CHOROPLETH_COLUMN = "ORCDRC"

# Bands drawn as red, green and blue in the composite
RGB_BANDS = ("Cook_fall_ECa", "Cook_spring_ECa", "TWI")

# Reading variable summarised onto sensor markers
SENSOR_VARIABLE = "VW_30cm"
SENSOR_GRAPH_VARIABLES = ("VW_30cm", "VW_60cm", "VW_90cm")

POINTS_LAYER = "profiles"
RASTER_LAYER = "covariates"
VECTOR_EXPORT_SUFFIXES = (".geojson", ".gpkg", ".kml")


def run_basics(config: MapConfig | None = None, *, run_id: str = "") -> WalkthroughManifest:
    """Run the basics walkthrough and return its manifest."""
    config = config or MapConfig()
    return _run(BASICS, config, run_id or uuid.uuid4().hex, _basics_steps)


def run_advanced(config: MapConfig | None = None, *, run_id: str = "") -> WalkthroughManifest:
    """Run the advanced walkthrough and return its manifest."""
    config = config or MapConfig()
    return _run(ADVANCED, config, run_id or uuid.uuid4().hex, _advanced_steps)


def run_walkthroughs(
    names: Sequence[str] = WALKTHROUGHS,
    config: MapConfig | None = None,
) -> list[WalkthroughManifest]:
    """Run the named walkthroughs in order.

    Raises:
        ValueError: If a name is not a known walkthrough.
    """
    runners = {BASICS: run_basics, ADVANCED: run_advanced}
    unknown = [n for n in names if n not in runners]
    if unknown:
        msg = f"Unknown walkthrough(s): {', '.join(unknown)}; expected {', '.join(WALKTHROUGHS)}"
        raise ValueError(msg)
    return [runners[name](config) for name in names]


# ---------------------------------------------------------------------------
# Run scaffolding
# ---------------------------------------------------------------------------


class _Run:
    """Mutable state of one walkthrough run: config, output paths, manifest."""

    def __init__(self, name: str, config: MapConfig, run_id: str) -> None:
        self.name = name
        self.config = config
        self.manifest = WalkthroughManifest(walkthrough=name, run_id=run_id)

    @property
    def output_dir(self) -> Path:
        return self.config.output_path / sanitise_slug(self.name)

    def path(self, kind: str, name: str, suffix: str) -> Path:
        return build_artifact_path(self.config.output_dir, self.name, kind, name, suffix)

    def record(self, kind: str, path: Path, title: str, layers: Sequence[str]) -> None:
        self.manifest.add_artifact(
            ArtifactRecord.from_path(kind, path, title=title, layers=list(layers))
        )

    def save_plot(self, fig: object, name: str, title: str, layers: Sequence[str]) -> None:
        path = save_figure(fig, self.path(PLOTS_DIR, name, ".png"), dpi=self.config.figure_dpi)
        self.record("static_plot", path, title, layers)

    def save_web_map(self, fig: object, name: str, title: str, layers: Sequence[str]) -> None:
        path = save_map(fig, self.path(MAPS_DIR, name, ".html"))
        self.record("web_map", path, title, layers)


def _run(
    name: str,
    config: MapConfig,
    run_id: str,
    steps: Callable[[_Run, SurveyDataset], None],
) -> WalkthroughManifest:
    run = _Run(name, config, run_id)
    logger.info(
        "Walkthrough started | walkthrough=%s | run_id=%s | output=%s",
        name,
        run_id,
        run.output_dir,
    )
    try:
        dataset = load_dataset(config.data_dir or None)
        run.manifest.dataset = dataset.summary()
        steps(run, dataset)
        write_manifest(run.manifest, run.output_dir)
    except SurveyMapError as exc:
        exc.bind_run(run_id)
        logger.error("Walkthrough failed | walkthrough=%s | error=%s", name, exc.to_error_dict())
        raise

    logger.info(
        "Walkthrough completed | walkthrough=%s | run_id=%s | layers=%d | artifacts=%d",
        name,
        run_id,
        len(run.manifest.layers),
        len(run.manifest.artifacts),
    )
    return run.manifest


def _point_layer(run: _Run, dataset: SurveyDataset) -> gpd.GeoDataFrame:
    x_column, y_column = dataset.point_coordinate_columns
    points = build_point_layer(dataset.points, dataset.crs, x_column=x_column, y_column=y_column)
    run.manifest.layers.append(
        LayerSummary(
            name=POINTS_LAYER,
            kind="points",
            crs=dataset.crs,
            feature_count=len(points),
            bounds=[float(v) for v in points.total_bounds],
        )
    )
    return points


def _raster_layer(run: _Run, dataset: SurveyDataset, bands: Sequence[str]) -> RasterLayer:
    layer = build_raster_layer(
        dataset.grids,
        [*dataset.grid_coordinate_columns, *bands],
        dataset.crs,
    )
    run.manifest.layers.append(
        LayerSummary(
            name=RASTER_LAYER,
            kind="raster",
            crs=layer.crs,
            bands=list(layer.band_names),
            shape=list(layer.shape),
            bounds=list(layer.bounds),
        )
    )
    return layer


def _web_options(config: MapConfig) -> dict[str, object]:
    return {"map_style": config.map_style, "zoom": config.map_zoom}


# ---------------------------------------------------------------------------
# Basics
# ---------------------------------------------------------------------------


def _basics_steps(run: _Run, dataset: SurveyDataset) -> None:
    config = run.config
    points = _point_layer(run, dataset)
    raster = _raster_layer(run, dataset, BASIC_BANDS)
    both = [POINTS_LAYER, RASTER_LAYER]

    # Static plots
    run.save_plot(plot_points(points), "sites", "Sampled sites", [POINTS_LAYER])
    run.save_plot(
        plot_points(points, SOIL_TYPE_COLUMN),
        "sites-by-soil-type",
        "Sites by soil type",
        [POINTS_LAYER],
    )
    run.save_plot(
        plot_points(points, CHOROPLETH_COLUMN),
        "sites-by-organic-carbon",
        "Sites by organic carbon",
        [POINTS_LAYER],
    )
    run.save_plot(
        plot_raster(raster, "DEM", points=points, cmap=config.raster_colorscale),
        "elevation-with-sites",
        "Elevation with sampled sites",
        both,
    )
    run.save_plot(
        plot_raster_bands(raster, cmap=config.raster_colorscale),
        "covariate-bands",
        "All covariate bands",
        [RASTER_LAYER],
    )

    # Web maps
    options = _web_options(config)
    popups = table_popups(points, title_column=dataset.point_id_column)
    run.save_web_map(
        point_map(points, popups=popups, title="Sampled sites", **options),
        "sites",
        "Sampled sites with attribute popups",
        [POINTS_LAYER],
    )
    run.save_web_map(
        point_map(points, color=SOIL_TYPE_COLUMN, popups=popups, **options),
        "sites-by-soil-type",
        "Sites by soil type",
        [POINTS_LAYER],
    )
    run.save_web_map(
        point_map(points, color=CHOROPLETH_COLUMN, popups=popups, **options),
        "sites-by-organic-carbon",
        "Sites coloured by organic carbon",
        [POINTS_LAYER],
    )
    elevation = raster_map(
        raster,
        "DEM",
        cmap=config.raster_colorscale,
        opacity=config.map_opacity,
        title="Elevation",
        **options,
    )
    run.save_web_map(elevation, "elevation", "Elevation overlay", [RASTER_LAYER])
    add_points(elevation, points, popups=popups, name=POINTS_LAYER)
    run.save_web_map(elevation, "elevation-with-sites", "Elevation overlay with sites", both)


# ---------------------------------------------------------------------------
# Advanced
# ---------------------------------------------------------------------------


def _advanced_steps(run: _Run, dataset: SurveyDataset) -> None:
    config = run.config
    options = _web_options(config)
    points = _point_layer(run, dataset)
    grid_bands = [
        c for c in dataset.grid_attribute_columns if dataset.grids[c].dtype.kind in "biuf"
    ]
    raster = _raster_layer(run, dataset, grid_bands)

    # RGB composite
    red, green, blue = RGB_BANDS
    run.save_plot(
        plot_rgb(raster, red, green, blue, stretch=config.rgb_stretch),
        "rgb-composite",
        f"RGB composite ({config.rgb_stretch} stretch)",
        [RASTER_LAYER],
    )
    run.save_web_map(
        rgb_map(raster, red, green, blue, stretch=config.rgb_stretch, **options),
        "rgb-composite",
        f"RGB composite overlay ({config.rgb_stretch} stretch)",
        [RASTER_LAYER],
    )

    # Synced panels, one per band
    panels = [
        raster_map(
            raster,
            band,
            cmap=config.raster_colorscale,
            opacity=config.map_opacity,
            hover=False,
            **options,
        )
        for band in raster.band_names
    ]
    synced = sync_maps(
        panels,
        run.path(MAPS_DIR, "synced-bands", ".html"),
        title="Covariate bands",
    )
    run.record("synced_maps", synced, "Synced covariate panels", [RASTER_LAYER])

    # Sensor markers with time-series popups
    readings = dataset.readings
    summary_column = f"{SENSOR_VARIABLE}_mean"
    with_summary = attach_sensor_summary(
        points,
        readings,
        SENSOR_VARIABLE,
        point_id_column=dataset.point_id_column,
        id_column=dataset.reading_id_column,
        time_column=dataset.reading_time_column,
    )
    sensors = with_summary[
        with_summary[dataset.point_id_column].astype(str).isin(dataset.sensor_ids)
    ]
    sensor_popups = sensor_graph_popups(
        sensors,
        readings,
        SENSOR_GRAPH_VARIABLES,
        point_id_column=dataset.point_id_column,
        id_column=dataset.reading_id_column,
        time_column=dataset.reading_time_column,
    )
    run.save_web_map(
        point_map(
            sensors,
            color=summary_column,
            popups=sensor_popups,
            name="sensors",
            title="Sensors by mean soil moisture (30 cm)",
            **options,
        ),
        "sensors",
        "Sensor sites with reading graphs",
        [POINTS_LAYER],
    )
    first_sensor = dataset.sensor_ids[0]
    series = sensor_time_series(
        readings,
        first_sensor,
        SENSOR_GRAPH_VARIABLES,
        id_column=dataset.reading_id_column,
        time_column=dataset.reading_time_column,
    )
    run.save_plot(
        plot_time_series(series, ylabel="volumetric water content"),
        f"readings-{first_sensor}",
        f"Soil moisture at sensor {first_sensor}",
        [POINTS_LAYER],
    )

    # Remote image popup
    if config.popup_image_url:
        image = popup_image(config.popup_image_url, timeout=config.popup_image_timeout_s)
        popups = table_popups(points, title_column=dataset.point_id_column)
        popups[0] = f"{popups[0]}{image}"
        run.save_web_map(
            point_map(points, popups=popups, title="Sites with image popup", **options),
            "sites-with-image",
            "Sites with a remote image popup",
            [POINTS_LAYER],
        )

    # Exports
    tif = export_raster(raster, run.path(LAYERS_DIR, RASTER_LAYER, ".tif"))
    run.record("raster_export", tif, "Covariate raster (GeoTIFF)", [RASTER_LAYER])
    for suffix in VECTOR_EXPORT_SUFFIXES:
        path = export_points(points, run.path(LAYERS_DIR, POINTS_LAYER, suffix))
        run.record("vector_export", path, f"Sampled sites ({suffix[1:]})", [POINTS_LAYER])

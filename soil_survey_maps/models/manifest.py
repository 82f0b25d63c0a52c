"""Pydantic manifest model for walkthrough artifacts.

Each walkthrough run writes one ``manifest.json`` next to its outputs:
which dataset it read, which layers it built, and which files it saved.
It is the record of what a run produced and from what.

The schema is split into nested sections:
- **dataset**: Name, CRS and row counts of the loaded tables
- **layers**: One summary per point or raster layer built
- **artifacts**: One record per file written
"""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path

from pydantic import BaseModel, Field

# Schema version for forward compatibility
SCHEMA_VERSION = "walkthrough-manifest-v1"


class LayerSummary(BaseModel):
    """Summary of one layer built during a walkthrough.

    Attributes:
        name: Layer name (e.g. ``"profiles"``, ``"covariates"``).
        kind: ``"points"`` or ``"raster"``.
        crs: CRS descriptor of the layer.
        feature_count: Number of point features (points layers only).
        bands: Band names (raster layers only).
        shape: ``[rows, cols]`` (raster layers only).
        bounds: Extent ``[minx, miny, maxx, maxy]`` in ``crs`` units.
    """

    name: str
    kind: str
    crs: str = ""
    feature_count: int = 0
    bands: list[str] = Field(default_factory=list)
    shape: list[int] = Field(default_factory=list)
    bounds: list[float] = Field(default_factory=list)


class ArtifactRecord(BaseModel):
    """One file written by a walkthrough.

    Attributes:
        kind: What the file holds (``"static_plot"``, ``"web_map"``,
            ``"synced_maps"``, ``"raster_export"``, ``"vector_export"``).
        path: Path of the written file.
        title: Human-readable caption.
        layers: Names of the layers rendered or exported into the file.
        size_bytes: File size after writing.
    """

    kind: str
    path: str
    title: str = ""
    layers: list[str] = Field(default_factory=list)
    size_bytes: int = 0

    @classmethod
    def from_path(
        cls,
        kind: str,
        path: Path | str,
        *,
        title: str = "",
        layers: list[str] | None = None,
    ) -> ArtifactRecord:
        """Build a record for a file that has just been written."""
        path = Path(path)
        return cls(
            kind=kind,
            path=str(path),
            title=title,
            layers=list(layers or []),
            size_bytes=path.stat().st_size if path.exists() else 0,
        )


class WalkthroughManifest(BaseModel):
    """Top-level record of one walkthrough run.

    Attributes:
        schema_version: Schema identifier for forward compatibility.
        walkthrough: Walkthrough name (``"basics"`` or ``"advanced"``).
        run_id: Identifier of the run, used as error correlation id.
        timestamp: Run start timestamp (ISO 8601).
        dataset: Dataset summary (name, CRS, row counts).
        layers: Layers built during the run.
        artifacts: Files written during the run.
    """

    schema_version: str = Field(default=SCHEMA_VERSION, alias="$schema")
    walkthrough: str
    run_id: str = ""
    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    dataset: dict[str, object] = Field(default_factory=dict)
    layers: list[LayerSummary] = Field(default_factory=list)
    artifacts: list[ArtifactRecord] = Field(default_factory=list)

    model_config = {"populate_by_name": True}

    def add_artifact(self, record: ArtifactRecord) -> None:
        """Append an artifact record."""
        self.artifacts.append(record)

    def artifact_paths(self, kind: str = "") -> list[str]:
        """Paths of recorded artifacts, optionally filtered by ``kind``."""
        return [a.path for a in self.artifacts if not kind or a.kind == kind]

    def to_json(self, *, indent: int = 2) -> str:
        """Serialise to a JSON string.

        Uses the ``$schema`` alias for the schema version field.
        """
        return self.model_dump_json(indent=indent, by_alias=True)

    def to_dict(self) -> dict[str, object]:
        """Serialise to a plain dict."""
        return self.model_dump(by_alias=True)  # type: ignore[return-value]

"""Data models and schemas.

Defines the data structures used throughout the walkthroughs:
- SurveyDataset: The loaded bundle of points, grids and readings tables
- RasterLayer: Multi-band raster built from the grid table
- WalkthroughManifest: Record of the artifacts a walkthrough produced
"""

from soil_survey_maps.models.dataset import SurveyDataset
from soil_survey_maps.models.manifest import ArtifactRecord, LayerSummary, WalkthroughManifest
from soil_survey_maps.models.raster import RasterLayer

__all__ = [
    "ArtifactRecord",
    "LayerSummary",
    "RasterLayer",
    "SurveyDataset",
    "WalkthroughManifest",
]

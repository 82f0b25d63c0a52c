"""Soil Survey Maps.

Walkthroughs that load a bundled agricultural soil-survey dataset,
reshape its tables into point and raster map layers, and render them
as static plots and interactive web maps.
"""

__version__ = "0.1.0"

"""Walkthrough orchestrators.

Each walkthrough runs its steps in a fixed linear order:
1. Load the dataset
2. Build point and raster layers
3. Render static plots and web maps, export layers
4. Write the run manifest
"""

"""Bundled cookfarm sample dataset (manifest and CSV tables)."""

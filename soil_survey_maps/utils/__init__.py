"""Shared helpers: image encoding and artifact paths."""

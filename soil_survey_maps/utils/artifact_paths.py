"""Deterministic artifact path generation for walkthrough outputs.

Generates output paths of the form::

    {output_dir}/{walkthrough}/{kind}/{name}{suffix}

with ``kind`` one of ``plots``, ``maps`` or ``layers``.  Name segments are
sanitised to lowercase slug form: only ``a-z``, ``0-9`` and ``-`` are
allowed.  Re-running a walkthrough overwrites the same files.
"""

from __future__ import annotations

import re
from pathlib import Path

PLOTS_DIR = "plots"
MAPS_DIR = "maps"
LAYERS_DIR = "layers"

# Regex for sanitising path segments (allow only lowercase alphanumeric + hyphen)
_SLUG_RE = re.compile(r"[^a-z0-9-]+")


def sanitise_slug(value: str) -> str:
    """Convert a string to a path-safe slug.

    - Lowercase
    - Spaces and underscores → hyphens
    - Strips all characters except ``a-z``, ``0-9``, ``-``
    - Collapses consecutive hyphens
    - Falls back to ``"unknown"`` if the result is empty
    """
    slug = value.lower().strip().replace(" ", "-").replace("_", "-")
    slug = _SLUG_RE.sub("", slug)
    slug = re.sub(r"-{2,}", "-", slug).strip("-")
    return slug if slug else "unknown"


def build_artifact_path(
    output_dir: Path | str,
    walkthrough: str,
    kind: str,
    name: str,
    suffix: str,
) -> Path:
    """Build the path for one artifact.

    Args:
        output_dir: Root output directory.
        walkthrough: Walkthrough name (``"basics"`` or ``"advanced"``).
        kind: Sub-directory (``PLOTS_DIR``, ``MAPS_DIR`` or ``LAYERS_DIR``).
        name: Artifact name; sanitised to a slug.
        suffix: File suffix including the dot (e.g. ``".html"``).

    Returns:
        ``{output_dir}/{walkthrough}/{kind}/{slug}{suffix}``
    """
    if not suffix.startswith("."):
        suffix = f".{suffix}"
    return (
        Path(output_dir)
        / sanitise_slug(walkthrough)
        / kind
        / f"{sanitise_slug(name)}{suffix.lower()}"
    )

"""Command-line entry point: soil-survey mapping walkthroughs.

Usage::

    python walkthrough_app.py            # both walkthroughs
    python walkthrough_app.py basics     # one of them

Configuration comes from environment variables (see
``soil_survey_maps.core.config``).  All mapping logic lives in the
soil_survey_maps package; this file only wires config, logging and the
walkthrough runners together.
"""

from __future__ import annotations

import argparse
import logging
import sys

from soil_survey_maps.core.config import ConfigValidationError, MapConfig
from soil_survey_maps.core.exceptions import SurveyMapError
from soil_survey_maps.orchestrators.walkthrough import WALKTHROUGHS, run_walkthroughs

logger = logging.getLogger("soil_survey_maps.walkthrough_app")

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s | %(message)s"


def main(argv: list[str] | None = None) -> int:
    """Run the selected walkthroughs; returns a process exit code."""
    parser = argparse.ArgumentParser(description="Render the soil-survey mapping walkthroughs.")
    parser.add_argument(
        "walkthroughs",
        nargs="*",
        metavar="WALKTHROUGH",
        help=f"walkthroughs to run: {', '.join(WALKTHROUGHS)} (default: all)",
    )
    args = parser.parse_args(argv)
    unknown = [name for name in args.walkthroughs if name not in WALKTHROUGHS]
    if unknown:
        parser.error(f"unknown walkthrough(s): {', '.join(unknown)}")

    try:
        config = MapConfig.from_env()
    except (ConfigValidationError, ValueError) as exc:
        logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)
        logger.error("Configuration invalid | error=%s", exc)
        return 2

    logging.basicConfig(level=config.log_level, format=LOG_FORMAT)
    try:
        manifests = run_walkthroughs(args.walkthroughs or WALKTHROUGHS, config)
    except SurveyMapError as exc:
        logger.error("Walkthrough aborted | %s", exc.to_error_dict())
        return 1

    for manifest in manifests:
        logger.info(
            "Artifacts written | walkthrough=%s | count=%d | output=%s",
            manifest.walkthrough,
            len(manifest.artifacts),
            config.output_path / manifest.walkthrough,
        )
    return 0


if __name__ == "__main__":
    sys.exit(main())

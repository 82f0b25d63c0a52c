"""Exception hierarchy for the soil-survey walkthroughs.

Every error a walkthrough step raises is a ``SurveyMapError`` that names
the step (``stage``), a stable ``code`` and the walkthrough run it
belongs to (``correlation_id``).  Library errors from pandas, rasterio,
fiona, plotly or httpx are wrapped into one of these with ``raise ...
from exc`` so the entry point logs one shape of error.

Three categories, one base class each:

- ``ValidationError``: the input tables, coordinates, config or
  arguments are wrong.  Re-running with the same input fails again.
- ``TransientError``: a network fetch failed (remote popup images).
  Re-running later may succeed.
- ``PermanentError``: a plot, map or export could not be produced or
  written.
"""

from __future__ import annotations

from typing import ClassVar


class SurveyMapError(Exception):
    """Base exception for all soil-survey-maps errors.

    Attributes:
        message: Human-readable error description.
        stage: Walkthrough step that failed (e.g. ``"build_layers"``).
        code: Machine-readable error code (e.g. ``"LATTICE_IRREGULAR"``).
        retryable: Whether re-running the step could succeed.
        correlation_id: Id of the walkthrough run, set by the orchestrator.
    """

    #: Category reported by ``to_error_dict``; empty on the bare base.
    kind: ClassVar[str] = ""
    #: Retry flag used when the caller does not pass ``retryable``.
    default_retryable: ClassVar[bool] = False
    default_stage: ClassVar[str] = ""
    default_code: ClassVar[str] = ""

    def __init__(
        self,
        message: str = "",
        *,
        stage: str = "",
        code: str = "",
        retryable: bool | None = None,
        correlation_id: str = "",
    ) -> None:
        self.message = message
        self.stage = stage or self.default_stage
        self.code = code or self.default_code
        self.retryable = self.default_retryable if retryable is None else retryable
        self.correlation_id = correlation_id
        super().__init__(message)

    @property
    def category(self) -> str:
        """``validation``, ``transient`` or ``permanent``.

        Subclasses of a category base report that category; a bare
        ``SurveyMapError`` falls back to its ``retryable`` flag.
        """
        if self.kind:
            return self.kind
        return "transient" if self.retryable else "permanent"

    def bind_run(self, run_id: str) -> SurveyMapError:
        """Attach the walkthrough run id unless one is already set; returns self."""
        if not self.correlation_id:
            self.correlation_id = run_id
        return self

    def to_error_dict(self) -> dict[str, object]:
        """Structured payload for log lines, with stable keys."""
        return {
            "error": type(self).__name__,
            "category": self.category,
            "stage": self.stage,
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
            "correlation_id": self.correlation_id,
        }


class ValidationError(SurveyMapError):
    """Bad input: dataset tables, coordinates, config values or arguments."""

    kind = "validation"


class TransientError(SurveyMapError):
    """Network failure that may clear up on a later run."""

    kind = "transient"
    default_retryable = True


class PermanentError(SurveyMapError):
    """A figure, map or layer file could not be produced or written."""

    kind = "permanent"

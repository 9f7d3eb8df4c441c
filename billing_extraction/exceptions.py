"""Exception hierarchy for the extraction pipeline.

Lanes raise these internally and convert them into failed
:class:`~billing_extraction.models.ExtractionResult` values at their
boundary; none of them escape the orchestrator.
"""

from __future__ import annotations


class ExtractionError(Exception):
    """Base class for all pipeline errors."""


class PdfValidationError(ExtractionError):
    """Content is empty, undecodable, or lacks the ``%PDF`` signature."""


class DownloadError(ExtractionError):
    """An HTTP download failed (transport error or non-2xx status)."""

    def __init__(self, message: str, *, url: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class GuardrailViolation(ExtractionError):
    """A URL is outside the configured domain allowlist."""


class GoalGenerationError(ExtractionError):
    """The browser goal could not be generated."""


class BrowserTaskError(ExtractionError):
    """The agentic browser task failed, timed out, or produced no PDF."""

"""Error taxonomy for xdrsync reconciliation runs."""

from __future__ import annotations


class ReconciliationError(RuntimeError):
    """Base class for failures that terminate a reconciliation run."""

    def __init__(
        self,
        stage: str,
        detail: str,
        *,
        hint: str | None = None,
        raw_output: str | None = None,
    ) -> None:
        super().__init__(f"{stage}: {detail}")
        self.stage = stage
        self.detail = detail
        self.hint = hint
        self.raw_output = raw_output


class PreconditionViolation(ReconciliationError):
    """Raised when an ecosystem resolved several versions of a singular package."""


class ExtractionFailure(ReconciliationError):
    """Raised when an expected pattern does not match the available text."""


class FetchFailure(ReconciliationError):
    """Raised when a remote or local read does not complete successfully."""


class ConfigError(RuntimeError):
    """Raised when xdrsync configuration cannot be loaded or validated."""

"""Exception hierarchy for the staging and consolidation pipeline.

Errors map onto four categories:
- input errors: a submission payload is malformed (nothing is written)
- missing-resource errors: a table is absent from the store (nothing is written)
- commit failures: an output write failed during consolidation (staging is kept)
- clear failures: every output write succeeded but clearing staging failed

Count mismatches between peers and responses are warnings, never exceptions.
"""

from __future__ import annotations

from collections.abc import Sequence


class SurveyPipelineError(RuntimeError):
    """Base class for all pipeline failures."""


class ConfigurationError(SurveyPipelineError):
    """Raised when runtime settings cannot produce a usable component."""


class StagingInputError(SurveyPipelineError, ValueError):
    """Raised when a submission payload is rejected before any write."""


class StoreError(SurveyPipelineError):
    """Raised for tabular store failures."""


class TableNotFoundError(StoreError):
    """Raised when a named table does not exist in the store."""

    def __init__(self, table: str) -> None:
        super().__init__(f"table not found: {table}")
        self.table = table


class CommitError(SurveyPipelineError):
    """Raised when an output write fails; staging areas are left untouched."""

    def __init__(self, table: str, written: Sequence[str], cause: BaseException) -> None:
        written_csv = ", ".join(written) or "none"
        super().__init__(
            f"output write failed for table {table!r} ({cause}); "
            f"tables already written: {written_csv}; staging left intact"
        )
        self.table = table
        self.written = tuple(written)


class ClearError(SurveyPipelineError):
    """Raised when staging could not be cleared after a complete commit."""

    def __init__(self, table: str, cleared: Sequence[str], cause: BaseException) -> None:
        cleared_csv = ", ".join(cleared) or "none"
        super().__init__(
            f"clearing staging table {table!r} failed ({cause}) after outputs were written; "
            f"already cleared: {cleared_csv}"
        )
        self.table = table
        self.cleared = tuple(cleared)


__all__ = [
    "ClearError",
    "CommitError",
    "ConfigurationError",
    "StagingInputError",
    "StoreError",
    "SurveyPipelineError",
    "TableNotFoundError",
]

"""Contracts and canonical table layout.

The contracts package defines:
- the canonical table names and headers used by the store
- correlation-key ordering/equality helpers
- the error taxonomy shared by pipeline, API and CLI
- Protocol definitions for dependency injection

Main exports:
- TableStore, AvailabilityStatus, ReconcileLease
- SurveyPipelineError and its subclasses
"""

from contracts import errors
from contracts import interfaces

# Explicit re-exports to satisfy ruff F401
__all__ = [
    "AvailabilityStatus",
    "ClearError",
    "CommitError",
    "ReconcileLease",
    "StagingInputError",
    "StoreError",
    "SurveyPipelineError",
    "TableNotFoundError",
    "TableStore",
]

# Re-export for convenience
AvailabilityStatus = interfaces.AvailabilityStatus
ReconcileLease = interfaces.ReconcileLease
TableStore = interfaces.TableStore

ClearError = errors.ClearError
CommitError = errors.CommitError
StagingInputError = errors.StagingInputError
StoreError = errors.StoreError
SurveyPipelineError = errors.SurveyPipelineError
TableNotFoundError = errors.TableNotFoundError

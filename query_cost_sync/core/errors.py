"""
Error taxonomy for the cost sync pipeline.

Per-artifact errors are recovered by the pipeline and the patch applier and
turned into report rows or patch outcomes. Only the batch-fatal errors
(ArtifactSourceError, ReportFormatError) are meant to reach the CLI.
"""

from typing import Sequence


class CostSyncError(Exception):
    """Base class for all cost sync errors."""


class ExtractionError(CostSyncError):
    """Raised when the payload or declared cost literal cannot be found."""


class UnresolvedPlaceholderError(CostSyncError):
    """Raised when a query template still holds unmapped {{Name}} tokens."""

    def __init__(self, tokens: Sequence[str]):
        self.tokens = tuple(tokens)
        super().__init__(f"Unresolved placeholder tokens: {', '.join(self.tokens)}")


class NetworkError(CostSyncError):
    """Raised when the oracle call fails at the transport level."""


class OracleStatusError(NetworkError):
    """Raised when the oracle answers with a non-success status code."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code


class ResponseFormatError(CostSyncError):
    """Raised when the oracle response is malformed or carries no cost."""


class PreconditionMismatchError(CostSyncError):
    """Raised when an artifact no longer holds the cost recorded in the report."""


class WriteVerificationError(CostSyncError):
    """Raised when a patched artifact does not contain the expected new cost."""


class ArtifactSourceError(CostSyncError):
    """Raised when the artifact directory cannot be enumerated (batch-fatal)."""


class ReportFormatError(CostSyncError):
    """Raised when a report file cannot be read back (batch-fatal)."""

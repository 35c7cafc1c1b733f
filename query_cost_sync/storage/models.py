"""
Data models for storage layer.

Defines artifacts, queries, report records and backup records.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union

# Report cells hold either an integer or one of these literal sentinels
NOT_APPLICABLE = "N/A"
ERROR = "Error"

CostValue = Union[int, str]


class Classification(Enum):
    """Outcome of comparing a declared cost against the observed cost."""
    MATCH = "Match"
    UNDERESTIMATED = "Underestimated"
    OVERESTIMATED = "Overestimated"
    EXTRACTION_FAILED = "Query Not Found"
    QUERY_FAILED = "Query Failed"
    PROCESSING_ERROR = "Processing Error"

    @property
    def label(self) -> str:
        """Status string used in report files."""
        return self.value

    @classmethod
    def from_label(cls, label: str) -> "Classification":
        """Parse a report status string.

        Raises:
            ValueError: If the label is not a known status
        """
        for member in cls:
            if member.value == label:
                return member
        valid = [member.value for member in cls]
        raise ValueError(f"Unknown status '{label}', expected one of: {valid}")


@dataclass(frozen=True)
class SourceArtifact:
    """One generated integration file as read at analysis time."""
    path: Path
    text: str
    payload: Optional[str] = None
    declared_cost: Optional[int] = None


@dataclass(frozen=True)
class CostQuery:
    """Normalized, placeholder-free query submitted to the oracle.

    Never persisted.
    """
    query: str
    variables: Dict[str, Any] = field(default_factory=dict)

    def to_body(self) -> Dict[str, Any]:
        """Build the JSON request body."""
        body: Dict[str, Any] = {"query": self.query}
        if self.variables:
            body["variables"] = self.variables
        return body


@dataclass(frozen=True)
class ComparisonRecord:
    """One report row.

    Cost cells keep their sentinel strings so a report read back from disk
    carries exactly what was written.
    """
    file_name: str
    expected_cost: CostValue
    actual_cost: CostValue
    classification: Classification
    difference: CostValue = NOT_APPLICABLE

    @property
    def declared(self) -> Optional[int]:
        return self.expected_cost if isinstance(self.expected_cost, int) else None

    @property
    def observed(self) -> Optional[int]:
        return self.actual_cost if isinstance(self.actual_cost, int) else None

    @property
    def needs_patch(self) -> bool:
        """Only under- and overestimated rows carry a cost to write back."""
        return self.classification in (
            Classification.UNDERESTIMATED,
            Classification.OVERESTIMATED,
        )


@dataclass(frozen=True)
class BackupRecord:
    """Verbatim pre-patch copy of an artifact."""
    artifact: Path
    content: str
    created_at: datetime
    backup_path: Path

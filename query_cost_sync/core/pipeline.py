"""
Analysis pipeline.

Scans the artifact directory, and for each artifact extracts the payload and
declared cost, normalizes placeholders, prices the query with the oracle and
reconciles the result into a report row.

The analysis phase never writes to the artifact set. Every per-artifact
failure becomes a row; only an unreadable artifact directory aborts the run.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Union

from ..client.oracle import CostOracleClient
from ..storage.models import Classification, ComparisonRecord, SourceArtifact
from .errors import ArtifactSourceError, CostSyncError, UnresolvedPlaceholderError
from .parser import ArtifactParser, decode_payload
from .placeholders import DEFAULT_PLACEHOLDERS, PlaceholderTable, normalize
from .reconcile import build_record, processing_error_record

logger = logging.getLogger(__name__)


@dataclass
class AnalysisResult:
    """Report rows of one analysis run, in scan order."""
    records: List[ComparisonRecord] = field(default_factory=list)

    def count(self, classification: Classification) -> int:
        return sum(1 for record in self.records if record.classification == classification)

    def counts(self) -> Dict[Classification, int]:
        return {classification: self.count(classification) for classification in Classification}

    @property
    def has_drift(self) -> bool:
        return any(record.needs_patch for record in self.records)


def scan_artifacts(
    directory: Union[str, Path],
    pattern: str = "*.php",
    recursive: bool = False,
) -> List[Path]:
    """List artifact files in a stable, sorted order.

    Raises:
        ArtifactSourceError: If the directory does not exist or cannot be read
    """
    root = Path(directory)
    if not root.is_dir():
        raise ArtifactSourceError(f"Artifact directory not found: {directory}")

    try:
        candidates = root.rglob(pattern) if recursive else root.glob(pattern)
        files = [path for path in candidates if path.is_file()]
    except OSError as e:
        raise ArtifactSourceError(f"Cannot read artifact directory {directory}: {e}") from e

    return sorted(files, key=lambda path: path.relative_to(root).as_posix())


def load_artifact(path: Path, parser: ArtifactParser) -> SourceArtifact:
    """Read an artifact fresh from disk and run both matchers over it."""
    with open(path, "r", encoding="utf-8", newline="") as f:
        text = f.read()
    parsed = parser.parse(text)
    return SourceArtifact(
        path=path,
        text=text,
        payload=parsed.payload_text,
        declared_cost=parsed.declared_cost,
    )


class CostAnalyzer:
    """Turns artifacts into comparison records."""

    def __init__(
        self,
        oracle: CostOracleClient,
        parser: Optional[ArtifactParser] = None,
        placeholders: PlaceholderTable = DEFAULT_PLACEHOLDERS,
        allow_unresolved: bool = False,
        delay: float = 0.0,
    ):
        """Initialize the analyzer.

        Args:
            oracle: Client used to price queries
            parser: Artifact parser (defaults to the getQueryCost accessor)
            placeholders: Token table used for normalization
            allow_unresolved: Submit queries that still hold unmapped tokens
            delay: Seconds to wait after each oracle call
        """
        self.oracle = oracle
        self.parser = parser or ArtifactParser()
        self.placeholders = placeholders
        self.allow_unresolved = allow_unresolved
        self.delay = delay

    def analyze(self, path: Path, file_name: str) -> ComparisonRecord:
        """Produce the report row for one artifact. Never raises for per-artifact errors."""
        declared = None
        try:
            artifact = load_artifact(path, self.parser)
            declared = artifact.declared_cost

            if artifact.payload is None:
                logger.warning("%s: no exit('...') payload found", file_name)
                return build_record(file_name, declared, None, payload_found=False)
            if declared is None:
                logger.warning("%s: no declared cost literal found", file_name)

            normalized = normalize(artifact.payload, self.placeholders)
            if not normalized.is_complete:
                if not self.allow_unresolved:
                    raise UnresolvedPlaceholderError(normalized.unresolved)
                logger.warning(
                    "%s: submitting with unresolved tokens %s",
                    file_name, ", ".join(normalized.unresolved),
                )

            query = decode_payload(normalized.text)
            result = self.oracle.query_cost(query)
            if self.delay > 0:
                time.sleep(self.delay)

            if not result.ok:
                logger.warning("%s: cost query failed: %s", file_name, result.failure)
            return build_record(file_name, declared, result.cost)

        except (CostSyncError, OSError, UnicodeDecodeError) as e:
            logger.error("%s: processing error: %s", file_name, e)
            return processing_error_record(file_name, declared)


def run_analysis(
    directory: Union[str, Path],
    analyzer: CostAnalyzer,
    pattern: str = "*.php",
    recursive: bool = False,
    workers: int = 1,
) -> AnalysisResult:
    """Analyze every artifact in a directory.

    With ``workers`` > 1, oracle calls run on a bounded thread pool; rows are
    still collected in scan order.

    Raises:
        ArtifactSourceError: If the artifact directory cannot be enumerated
    """
    root = Path(directory)
    paths = scan_artifacts(root, pattern=pattern, recursive=recursive)
    names = [path.relative_to(root).as_posix() for path in paths]
    logger.info("Scanning %d artifacts in %s", len(paths), root)

    if workers > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            records = list(executor.map(analyzer.analyze, paths, names))
    else:
        records = [analyzer.analyze(path, name) for path, name in zip(paths, names)]

    return AnalysisResult(records=records)

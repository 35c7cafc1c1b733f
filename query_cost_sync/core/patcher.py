"""
Patch application.

Writes observed costs back into artifacts for report rows classified as
Underestimated or Overestimated. Each artifact goes through a small
transaction:

    PENDING -> STAGED (backup written) -> WRITTEN -> VERIFIED
                                                  -> ROLLED_BACK

A stale precondition ends the transaction in SKIPPED before anything is
written. Artifacts are patched strictly one after another.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum, auto
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union

from ..storage.backups import BackupStore
from ..storage.models import BackupRecord, ComparisonRecord
from .errors import PreconditionMismatchError, WriteVerificationError
from .parser import DEFAULT_COST_ACCESSOR, CostMatcher

logger = logging.getLogger(__name__)


class PatchState(Enum):
    """States of a single artifact patch transaction."""
    PENDING = auto()
    SKIPPED = auto()
    STAGED = auto()
    WRITTEN = auto()
    VERIFIED = auto()
    ROLLED_BACK = auto()


_TRANSITIONS = {
    PatchState.PENDING: {PatchState.SKIPPED, PatchState.STAGED},
    PatchState.STAGED: {PatchState.WRITTEN, PatchState.ROLLED_BACK},
    PatchState.WRITTEN: {PatchState.VERIFIED, PatchState.ROLLED_BACK},
    PatchState.SKIPPED: set(),
    PatchState.VERIFIED: set(),
    PatchState.ROLLED_BACK: set(),
}


class PatchOutcome(Enum):
    """Per-artifact result of the patch phase."""
    PATCHED = "Patched"
    WOULD_PATCH = "Would Patch"
    ALREADY_APPLIED = "Already Applied"
    NOT_APPLICABLE = "Not Applicable"
    STALE_PRECONDITION = "Stale Precondition"
    PATCH_FAILED = "Patch Failed"


@dataclass
class PatchResult:
    """Outcome of patching one report row."""
    file_name: str
    outcome: PatchOutcome
    message: str = ""
    backup: Optional[BackupRecord] = None
    states: List[PatchState] = field(default_factory=list)


@dataclass
class PatchSummary:
    """Results of a patch run, in report order."""
    results: List[PatchResult] = field(default_factory=list)

    def count(self, outcome: PatchOutcome) -> int:
        return sum(1 for result in self.results if result.outcome == outcome)

    def counts(self) -> Dict[PatchOutcome, int]:
        return {outcome: self.count(outcome) for outcome in PatchOutcome}


def _read_text(path: Path) -> str:
    with open(path, "r", encoding="utf-8", newline="") as f:
        return f.read()


def _write_text(path: Path, content: str) -> None:
    with open(path, "w", encoding="utf-8", newline="") as f:
        f.write(content)


class PatchTransaction:
    """Stage, write, verify, and commit or roll back one artifact."""

    def __init__(
        self,
        record: ComparisonRecord,
        artifact_path: Path,
        cost_matcher: CostMatcher,
        backups: BackupStore,
    ):
        self.record = record
        self.artifact_path = artifact_path
        self.cost_matcher = cost_matcher
        self.backups = backups
        self.state = PatchState.PENDING
        self.history = [PatchState.PENDING]
        self.backup: Optional[BackupRecord] = None

    def _transition(self, new_state: PatchState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid patch transition {self.state.name} -> {new_state.name}")
        self.state = new_state
        self.history.append(new_state)

    def _result(self, outcome: PatchOutcome, message: str) -> PatchResult:
        return PatchResult(
            file_name=self.record.file_name,
            outcome=outcome,
            message=message,
            backup=self.backup,
            states=list(self.history),
        )

    def check_precondition(self) -> str:
        """Return the current content if it still holds the reported cost.

        Raises:
            PreconditionMismatchError: If the file changed since the report
        """
        expected = self.record.declared
        if expected is None or self.record.observed is None:
            raise PreconditionMismatchError("Report row carries no numeric costs")
        if not self.artifact_path.is_file():
            raise PreconditionMismatchError(f"Artifact not found: {self.artifact_path}")

        content = _read_text(self.artifact_path)
        cost = self.cost_matcher.match(content)
        if cost is None:
            raise PreconditionMismatchError("Declared cost literal no longer present")
        if cost.value != expected:
            raise PreconditionMismatchError(
                f"Declared cost is {cost.value}, report expected {expected}"
            )
        return content

    def run(self, dry_run: bool = False) -> PatchResult:
        observed = self.record.observed

        # Rerun after a successful patch: the file already declares the observed cost
        if self.artifact_path.is_file() and observed is not None:
            current = self.cost_matcher.match(_read_text(self.artifact_path))
            if current is not None and current.value == observed:
                self._transition(PatchState.SKIPPED)
                return self._result(PatchOutcome.ALREADY_APPLIED, f"Already declares {observed}")

        try:
            content = self.check_precondition()
        except PreconditionMismatchError as e:
            self._transition(PatchState.SKIPPED)
            logger.warning("Skipping %s: %s", self.record.file_name, e)
            return self._result(PatchOutcome.STALE_PRECONDITION, str(e))

        if dry_run:
            self._transition(PatchState.SKIPPED)
            return self._result(
                PatchOutcome.WOULD_PATCH,
                f"{self.record.declared} -> {observed}",
            )

        self.backup = self.backups.save(self.artifact_path, self.record.file_name, content)
        self._transition(PatchState.STAGED)

        cost = self.cost_matcher.match(content)
        patched = content[:cost.start] + str(observed) + content[cost.end:]

        try:
            _write_text(self.artifact_path, patched)
            self._transition(PatchState.WRITTEN)
            self._verify(patched)
        except (OSError, UnicodeDecodeError, WriteVerificationError) as e:
            return self._rollback(str(e))

        self._transition(PatchState.VERIFIED)
        logger.info("Patched %s: %s -> %s", self.record.file_name, self.record.declared, observed)
        return self._result(PatchOutcome.PATCHED, f"{self.record.declared} -> {observed}")

    def _verify(self, patched: str) -> None:
        """Re-read the artifact and confirm the new literal landed.

        Raises:
            WriteVerificationError: If the content differs from what was written
        """
        written = _read_text(self.artifact_path)
        cost = self.cost_matcher.match(written)
        if cost is None or cost.value != self.record.observed:
            raise WriteVerificationError(
                f"Expected declared cost {self.record.observed} after write"
            )
        if written != patched:
            raise WriteVerificationError("Written content differs from the patched text")

    def _rollback(self, reason: str) -> PatchResult:
        self._transition(PatchState.ROLLED_BACK)
        try:
            self.backups.restore(self.backup)
        except OSError as e:
            logger.error(
                "Rollback of %s failed, backup kept at %s: %s",
                self.record.file_name, self.backup.backup_path, e,
            )
            return self._result(
                PatchOutcome.PATCH_FAILED,
                f"{reason}; restore failed, backup at {self.backup.backup_path}",
            )
        logger.error("Patch of %s rolled back: %s", self.record.file_name, reason)
        return self._result(PatchOutcome.PATCH_FAILED, f"{reason}; restored from backup")


def apply_report(
    records: Iterable[ComparisonRecord],
    artifact_dir: Union[str, Path],
    backups: BackupStore,
    accessor: str = DEFAULT_COST_ACCESSOR,
    dry_run: bool = False,
) -> PatchSummary:
    """Apply every actionable report row to the artifact set, in report order.

    Match and failure rows are left untouched. A failed or stale artifact
    never stops the remaining ones.

    Args:
        records: Report rows as read from the report store
        artifact_dir: Directory the report's file names are relative to
        backups: Backup store for this run
        accessor: Cost accessor name used to locate the literal
        dry_run: Evaluate preconditions without writing anything

    Returns:
        PatchSummary with one result per record
    """
    root = Path(artifact_dir)
    matcher = CostMatcher(accessor)
    summary = PatchSummary()

    for record in records:
        if not record.needs_patch:
            summary.results.append(PatchResult(
                file_name=record.file_name,
                outcome=PatchOutcome.NOT_APPLICABLE,
                message=record.classification.label,
            ))
            continue

        transaction = PatchTransaction(record, root / record.file_name, matcher, backups)
        try:
            result = transaction.run(dry_run=dry_run)
        except (OSError, UnicodeDecodeError) as e:
            # Raised before any write: reading the artifact or writing its backup
            logger.error("Could not patch %s: %s", record.file_name, e)
            result = PatchResult(
                file_name=record.file_name,
                outcome=PatchOutcome.PATCH_FAILED,
                message=str(e),
                states=list(transaction.history),
            )
        summary.results.append(result)

    return summary

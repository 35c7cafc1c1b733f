"""
Backup storage for the patch phase.

Each patch run gets its own timestamped directory holding one verbatim
pre-patch copy per mutated artifact, named after the original artifact.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Union

from .models import BackupRecord

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d_%H%M%S"


class BackupStore:
    """Writes and restores pre-patch copies for one patch run.

    The run directory is created on the first backup, so a run that mutates
    nothing leaves no trace on disk. A run started in the same second as an
    earlier one gets a numbered suffix instead of sharing its directory.
    """

    def __init__(self, root: Union[str, Path], started_at: Optional[datetime] = None):
        """Initialize the store.

        Args:
            root: Directory under which run directories are created
            started_at: Run timestamp (defaults to now)
        """
        self.root = Path(root)
        self.started_at = started_at or datetime.now()
        self.run_dir = self.root / self.started_at.strftime(TIMESTAMP_FORMAT)
        self.records: List[BackupRecord] = []
        self._run_dir_claimed = False

    def save(self, artifact: Path, relative_name: str, content: str) -> BackupRecord:
        """Write a verbatim copy of an artifact's pre-patch content.

        Args:
            artifact: Path of the artifact about to be mutated
            relative_name: Artifact name relative to the artifact directory
            content: Exact pre-patch content

        Returns:
            BackupRecord describing the written copy
        """
        if not self._run_dir_claimed:
            self._claim_run_dir()
        backup_path = self.run_dir / relative_name
        backup_path.parent.mkdir(parents=True, exist_ok=True)
        with open(backup_path, "w", encoding="utf-8", newline="") as f:
            f.write(content)

        record = BackupRecord(
            artifact=artifact,
            content=content,
            created_at=datetime.now(),
            backup_path=backup_path,
        )
        self.records.append(record)
        logger.debug("Backed up %s to %s", artifact, backup_path)
        return record

    def _claim_run_dir(self) -> None:
        base = self.run_dir
        suffix = 0
        while True:
            try:
                self.run_dir.mkdir(parents=True)
                self._run_dir_claimed = True
                return
            except FileExistsError:
                suffix += 1
                self.run_dir = base.with_name(f"{base.name}_{suffix}")

    def restore(self, record: BackupRecord) -> None:
        """Write a backup's content back over its artifact."""
        with open(record.artifact, "w", encoding="utf-8", newline="") as f:
            f.write(record.content)
        logger.info("Restored %s from %s", record.artifact, record.backup_path)

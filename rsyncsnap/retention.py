"""Retention manager for rsyncsnap.

This module provides the RetentionManager class that keeps the newest N
finalized snapshots and deletes the rest.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List
import logging
import shutil

from rsyncsnap.errors import PruneWarning
from rsyncsnap.snapshot import list_finalized_snapshots


# Logger for retention operations
logger = logging.getLogger(__name__)


@dataclass
class RetentionResult:
    """Result of applying retention policy."""
    kept_snapshots: List[Path]
    deleted_snapshots: List[Path]
    warnings: List[PruneWarning] = field(default_factory=list)


class RetentionManager:
    """
    Keeps the ``keep`` most recent finalized snapshots.

    Snapshots are ordered by name. Snapshot names are zero-padded UTC
    timestamps, so name order is age order.
    """

    def __init__(self, destination: Path, keep: int):
        """
        Initialize the retention manager.

        Args:
            destination: Path to the backup destination directory
            keep: Number of finalized snapshots to retain
        """
        self.destination = Path(destination)
        self.keep = keep

    def get_snapshots_to_delete(self, snapshots: List[Path]) -> List[Path]:
        """
        Return the oldest snapshots beyond the retention count.

        Args:
            snapshots: Candidate snapshot paths, any order

        Returns:
            Snapshots to delete, oldest first
        """
        if self.keep <= 0:
            return []
        ordered = sorted(snapshots, key=lambda p: p.name)
        excess = len(ordered) - self.keep
        if excess <= 0:
            return []
        return ordered[:excess]

    def prune(self) -> RetentionResult:
        """
        Delete the oldest finalized snapshots beyond the retention count.

        A snapshot that can't be removed is reported as a PruneWarning and
        the remaining deletions still go ahead.

        Returns:
            RetentionResult with kept and deleted snapshots and any warnings
        """
        snapshots = list_finalized_snapshots(self.destination)
        to_delete = self.get_snapshots_to_delete(snapshots)

        deleted: List[Path] = []
        warnings: List[PruneWarning] = []

        for snapshot in to_delete:
            logger.info(f"Removing old backup: {snapshot.name}")
            try:
                shutil.rmtree(snapshot)
                deleted.append(snapshot)
            except OSError as e:
                warning = PruneWarning(f"Failed to remove {snapshot}: {e}")
                logger.warning(str(warning))
                warnings.append(warning)

        kept = [s for s in snapshots if s not in deleted]
        kept.sort(key=lambda p: p.name, reverse=True)
        deleted.sort(key=lambda p: p.name, reverse=True)

        return RetentionResult(
            kept_snapshots=kept,
            deleted_snapshots=deleted,
            warnings=warnings,
        )

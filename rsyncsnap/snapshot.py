"""Snapshot naming, verification and publication for rsyncsnap.

Snapshot layout under the destination:

    <destination>/<token>              finalized snapshot
    <destination>/<token>_INCOMPLETE   snapshot rsync is still writing
    <destination>/latest               symlink to the newest finalized snapshot

The token is a zero-padded UTC timestamp, so lexical order of snapshot names
is chronological order. Retention and link-dest selection depend on that; a
different naming scheme needs both re-checked.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional
import logging
import os

from rsyncsnap.errors import (
    FinalizeRenameError,
    PublishWarning,
    SnapshotEmpty,
    SnapshotMissing,
)


logger = logging.getLogger(__name__)

# Timestamp format for snapshot directories
TIMESTAMP_FORMAT = "%Y-%m-%d_%H.%M.%S_UTC"

# Suffix for snapshots rsync is still writing
INCOMPLETE_SUFFIX = "_INCOMPLETE"

# Name of the pointer to the newest finalized snapshot
LATEST_LINK_NAME = "latest"


@dataclass
class SnapshotInfo:
    """A finalized snapshot on disk."""
    name: str
    path: Path
    is_latest: bool = False


def generate_timestamp(now: Optional[datetime] = None) -> str:
    """
    Generate the snapshot token for a run.

    Args:
        now: Time of the run, defaults to the current time

    Returns:
        Token like ``2025-01-07_10.30.00_UTC``
    """
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is not None:
        now = now.astimezone(timezone.utc)
    return now.strftime(TIMESTAMP_FORMAT)


def in_progress_name(token: str) -> str:
    return f"{token}{INCOMPLETE_SUFFIX}"


def is_finalized_name(name: str) -> bool:
    """
    Return True if name can be a finalized snapshot.

    Excludes the latest pointer, in-progress snapshots and hidden entries.
    """
    if name == LATEST_LINK_NAME:
        return False
    if name.endswith(INCOMPLETE_SUFFIX):
        return False
    if name.startswith("."):
        return False
    return True


def list_finalized_snapshots(destination: Path) -> List[Path]:
    """
    List finalized snapshot directories, oldest first.

    Only real directories count; symlinks (including the pointer) and files
    such as a run log kept beside the snapshots are skipped.
    """
    destination = Path(destination)
    if not destination.is_dir():
        return []

    snapshots = [
        entry for entry in destination.iterdir()
        if is_finalized_name(entry.name)
        and entry.is_dir()
        and not entry.is_symlink()
    ]
    snapshots.sort(key=lambda p: p.name)
    return snapshots


def list_incomplete_snapshots(destination: Path) -> List[Path]:
    """List ``_INCOMPLETE`` directories left behind by failed runs."""
    destination = Path(destination)
    if not destination.is_dir():
        return []
    return sorted(
        (entry for entry in destination.iterdir()
         if entry.name.endswith(INCOMPLETE_SUFFIX) and entry.is_dir()),
        key=lambda p: p.name,
    )


def read_latest(latest_link: Path) -> Optional[str]:
    """
    Return the snapshot name the latest pointer names, or None if absent.
    """
    try:
        target = os.readlink(latest_link)
    except OSError:
        return None
    return Path(target).name


def find_link_dest(destination: Path) -> Optional[Path]:
    """
    Find the previous finalized snapshot to hard link against.

    Returns:
        Absolute path of the snapshot the latest pointer names, or None when
        the pointer is missing, broken, or names something that isn't a
        finalized snapshot
    """
    destination = Path(destination)
    name = read_latest(destination / LATEST_LINK_NAME)
    if name is None or not is_finalized_name(name):
        return None

    snapshot = destination / name
    if not snapshot.is_dir():
        return None
    return snapshot.resolve()


def list_snapshots(destination: Path) -> List[SnapshotInfo]:
    """
    List finalized snapshots, most recent first, marking the latest one.
    """
    destination = Path(destination)
    latest = read_latest(destination / LATEST_LINK_NAME)
    snapshots = [
        SnapshotInfo(name=path.name, path=path, is_latest=(path.name == latest))
        for path in list_finalized_snapshots(destination)
    ]
    snapshots.reverse()
    return snapshots


def verify_snapshot(snapshot_path: Path, dry_run: bool = False) -> int:
    """
    Check that rsync produced a non-empty snapshot.

    Args:
        snapshot_path: In-progress snapshot directory
        dry_run: Nothing is materialized in a dry run, so nothing is checked

    Returns:
        Number of top-level entries in the snapshot (0 for dry runs)

    Raises:
        SnapshotMissing: If the directory doesn't exist
        SnapshotEmpty: If the directory has no entries
    """
    if dry_run:
        return 0

    if not snapshot_path.exists():
        raise SnapshotMissing(f"Backup directory not created: {snapshot_path}")

    try:
        count = sum(1 for _ in snapshot_path.iterdir())
    except OSError as e:
        raise SnapshotMissing(f"Failed to read backup directory: {e}")

    if count == 0:
        raise SnapshotEmpty(f"Backup directory is empty: {snapshot_path}")

    logger.info(f"Backup verification: {count} items in backup")
    return count


def finalize_snapshot(
    in_progress_path: Path,
    final_path: Path,
    dry_run: bool = False,
) -> None:
    """
    Atomically rename the in-progress snapshot to its final name.

    A failure leaves the ``_INCOMPLETE`` directory in place; it is never
    used as latest or counted by retention.

    Raises:
        FinalizeRenameError: If the target exists or the rename fails
    """
    if dry_run:
        return

    if final_path.exists() or final_path.is_symlink():
        raise FinalizeRenameError(
            f"Failed to rename backup directory: {final_path} already exists"
        )

    try:
        os.rename(in_progress_path, final_path)
    except OSError as e:
        raise FinalizeRenameError(f"Failed to rename backup directory: {e}")

    logger.info(f"Backup finalized: {final_path.name}")


def republish_latest(latest_link: Path, final_name: str) -> None:
    """
    Point the latest symlink at final_name.

    The new link is created beside the old one and renamed over it, so a
    reader never sees the pointer missing.

    Raises:
        PublishWarning: If the pointer can't be rewritten
    """
    tmp_link = latest_link.with_name(f".{latest_link.name}.tmp")
    try:
        tmp_link.unlink(missing_ok=True)
        os.symlink(final_name, tmp_link)
        os.replace(tmp_link, latest_link)
    except OSError as e:
        try:
            tmp_link.unlink(missing_ok=True)
        except OSError:
            pass
        raise PublishWarning(f"Failed to update latest link: {e}")

    logger.debug(f"Latest link now points to {final_name}")

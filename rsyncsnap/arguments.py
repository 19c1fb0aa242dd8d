"""rsync argument assembly for rsyncsnap.

build_rsync_args is a pure function of its inputs plus the existence of the
exclude list: the same configuration, binary and filesystem state always give
the same argument vector in the same order.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union
import logging

from rsyncsnap.binary import is_macos, is_old_version
from rsyncsnap.destination import is_remote_path
from rsyncsnap.errors import ExcludeListWarning


logger = logging.getLogger(__name__)


RSYNC_BASE_ARGS: List[str] = [
    "-a",                 # Archive mode
    "-U",                 # Preserve access times
    "--numeric-ids",      # Don't map uid/gid values by name
    "-H",                 # Preserve hard links
    "-A",                 # Preserve ACLs
    "--partial",          # Keep partially transferred files
    "--itemize-changes",  # Change summary for every update
    "--delete",           # Delete extraneous files from destination
    "--delete-excluded",  # Delete excluded files from destination
    "--stats",            # Transfer statistics
]

# -X is left out: extended attributes bloat incremental snapshots

RSYNC_MACOS_ARGS: List[str] = [
    "-E",           # Preserve executability
    "--fileflags",  # Preserve BSD file flags
]

RSYNC_SSH_ARGS: List[str] = [
    "-z",
    "--compress-level=6",
    "-e", "ssh -o StrictHostKeyChecking=no -o UserKnownHostsFile=/dev/null",
]


@dataclass
class RsyncArguments:
    """Assembled argument vector and any warnings raised while building it."""
    args: List[str]
    warnings: List[ExcludeListWarning] = field(default_factory=list)


def source_argument(source: Union[str, Path]) -> str:
    """Return source with a trailing slash so rsync copies its contents."""
    source_str = str(source)
    if not source_str.endswith("/"):
        source_str += "/"
    return source_str


def build_rsync_args(
    source: Union[str, Path],
    destination: Union[str, Path],
    snapshot_path: Path,
    rsync_version: Optional[str] = None,
    link_dest: Optional[Path] = None,
    exclude_list: Optional[Path] = None,
    show_progress: bool = False,
    dry_run: bool = False,
    platform: Optional[str] = None,
) -> RsyncArguments:
    """
    Build the rsync argument vector for one run.

    Order:
    1. Base flags
    2. SSH transport flags when either endpoint is remote
    3. --progress when enabled
    4. macOS flags for a modern rsync on macOS
    5. --link-dest to the previous snapshot
    6. --exclude-from when the exclude list exists
    7. --dry-run
    8. source (contents) and the in-progress snapshot path

    Args:
        source: Source path, local or ``user@host:path``
        destination: Backup destination root
        snapshot_path: In-progress snapshot directory rsync writes into
        rsync_version: Detected rsync version, None if unknown
        link_dest: Previous finalized snapshot to hard link against
        exclude_list: Optional rsync exclude file
        show_progress: Add --progress
        dry_run: Add --dry-run
        platform: Platform name, defaults to sys.platform

    Returns:
        RsyncArguments with the argument list and warnings
    """
    args = list(RSYNC_BASE_ARGS)
    warnings: List[ExcludeListWarning] = []

    if is_remote_path(source) or is_remote_path(destination):
        args.extend(RSYNC_SSH_ARGS)
        logger.info("SSH transfer detected - added compression and SSH options")

    if show_progress:
        args.append("--progress")

    if is_macos(platform):
        if rsync_version is not None and not is_old_version(rsync_version):
            args.extend(RSYNC_MACOS_ARGS)
            logger.info("Added macOS-specific flags (modern rsync with full macOS support)")
        else:
            logger.warning("Old or unknown rsync version - limited macOS support")

    if link_dest is not None:
        args.append(f"--link-dest={link_dest}")
        logger.info(f"Using link-dest: {link_dest}")
    else:
        logger.info("No previous backup found for hard linking")

    if exclude_list is not None:
        if Path(exclude_list).exists():
            args.append(f"--exclude-from={exclude_list}")
        else:
            warning = ExcludeListWarning(
                f"Exclude list not found at {exclude_list} - continuing without excludes"
            )
            logger.warning(str(warning))
            warnings.append(warning)

    if dry_run:
        args.append("--dry-run")
        logger.info("DRY RUN MODE - no changes will be made")

    args.append(source_argument(source))
    args.append(str(snapshot_path))

    return RsyncArguments(args=args, warnings=warnings)

"""Source and destination validation for rsyncsnap.

This module provides functions to check that both ends of a backup are
reachable before anything is written: the destination tree is created when
missing, the source must exist, and both must resolve through a mount probe.
"""

import subprocess
from pathlib import Path
from typing import Union

from rsyncsnap.errors import DestinationCreateError, PathNotMounted, SourceMissing


PathLike = Union[str, Path]


def is_remote_path(path: PathLike) -> bool:
    """
    Return True if path looks like rsync's ``user@host:path`` syntax.

    The check only looks for both an ``@`` and a ``:`` in the string. A local
    path containing both characters is misclassified as remote, in which case
    local validation and the disk space check are skipped for it.
    """
    path_str = str(path)
    return "@" in path_str and ":" in path_str


def is_path_mounted(path: PathLike) -> bool:
    """
    Probe a path with ``df``.

    Args:
        path: Local path to probe

    Returns:
        True if df can resolve the path to a mounted filesystem
    """
    try:
        result = subprocess.run(
            ["df", str(path)],
            stdout=subprocess.DEVNULL,
            stderr=subprocess.DEVNULL,
        )
    except OSError:
        return False
    return result.returncode == 0


def ensure_destination(destination: PathLike) -> None:
    """
    Create the destination directory tree if it doesn't exist.

    Raises:
        DestinationCreateError: If the directory cannot be created
    """
    try:
        Path(destination).mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise DestinationCreateError(f"Failed to create destination: {e}")


def validate_paths(source: PathLike, destination: PathLike) -> None:
    """
    Validate that source and destination are accessible.

    Checks, in order:
    1. Destination exists (created if missing)
    2. Source exists
    3. Source and destination resolve through the mount probe

    Remote endpoints are left to rsync and skip the local checks.

    Raises:
        DestinationCreateError: If the destination cannot be created
        SourceMissing: If the source does not exist
        PathNotMounted: If either path is not accessible or mounted
    """
    source_remote = is_remote_path(source)
    destination_remote = is_remote_path(destination)

    if not destination_remote:
        ensure_destination(destination)

    if not source_remote and not Path(source).exists():
        raise SourceMissing(f"Source does not exist: {source}")

    if not source_remote and not is_path_mounted(source):
        raise PathNotMounted(f"Source path {source} is not accessible or mounted")

    if not destination_remote and not is_path_mounted(destination):
        raise PathNotMounted(
            f"Destination path {destination} is not accessible or mounted"
        )

"""Disk space guard for rsyncsnap.

This module checks the destination filesystem's usage before a backup run
starts, so a nearly full disk aborts the run before anything is written.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union
import subprocess

from rsyncsnap.destination import is_remote_path
from rsyncsnap.errors import DiskCheckParseError, DiskThresholdExceeded


@dataclass
class DiskUsageResult:
    """Result of a disk space check.

    Attributes:
        skipped: True when the destination is remote and was not probed
        usage_percent: Percentage used reported by df, None when skipped
        threshold_percent: Threshold the usage was compared against
    """
    skipped: bool
    usage_percent: Optional[int]
    threshold_percent: int


def _run_df(path: Union[str, Path]) -> str:
    """Run ``df -P`` against path and return its output."""
    try:
        result = subprocess.run(
            ["df", "-P", str(path)],
            capture_output=True,
            text=True,
        )
    except OSError as e:
        raise DiskCheckParseError(f"Failed to check disk space: {e}")

    if result.returncode != 0:
        detail = result.stderr.strip() or f"df exited with code {result.returncode}"
        raise DiskCheckParseError(f"Failed to check disk space: {detail}")
    return result.stdout


def parse_usage_percent(df_output: str) -> int:
    """
    Parse the percentage-used field from df output.

    The report has a header line followed by one line per filesystem; the
    fifth field of the first data line is the usage, e.g. ``"42%"``.

    Raises:
        DiskCheckParseError: If the output doesn't have the expected shape
    """
    lines = df_output.splitlines()
    if len(lines) < 2:
        raise DiskCheckParseError("Unexpected df output")

    fields = lines[1].split()
    if len(fields) < 5:
        raise DiskCheckParseError("Unexpected df output format")

    usage_str = fields[4]
    if not usage_str.endswith("%"):
        raise DiskCheckParseError(f"Failed to parse disk usage: {usage_str!r}")
    try:
        return int(usage_str[:-1])
    except ValueError:
        raise DiskCheckParseError(f"Failed to parse disk usage: {usage_str!r}")


def check_disk_space(
    destination: Union[str, Path],
    threshold_percent: int,
) -> DiskUsageResult:
    """
    Check that destination usage is below the cleanup threshold.

    Args:
        destination: Backup destination path
        threshold_percent: Usage percentage at which the run is refused

    Returns:
        DiskUsageResult describing what was measured

    Raises:
        DiskThresholdExceeded: If usage is at or above the threshold
        DiskCheckParseError: If df fails or its output can't be parsed
    """
    if is_remote_path(destination):
        return DiskUsageResult(
            skipped=True,
            usage_percent=None,
            threshold_percent=threshold_percent,
        )

    usage = parse_usage_percent(_run_df(destination))
    if usage >= threshold_percent:
        raise DiskThresholdExceeded(usage, threshold_percent)

    return DiskUsageResult(
        skipped=False,
        usage_percent=usage,
        threshold_percent=threshold_percent,
    )

"""rsync binary resolution for rsyncsnap.

Picks the rsync executable to run and works out what it supports. Package
manager builds are preferred over the system copy, which on macOS is too old
to preserve file flags and extended metadata.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple
import logging
import re
import subprocess
import sys

from rsyncsnap.errors import BinaryNotFound, IncompatibleBinary


logger = logging.getLogger(__name__)

SYSTEM_RSYNC = Path("/usr/bin/rsync")

# Probed in order, first existing path wins
RSYNC_CANDIDATES: List[Path] = [
    Path("/opt/homebrew/bin/rsync"),  # Homebrew (Apple Silicon)
    Path("/usr/local/bin/rsync"),     # Homebrew (Intel) / Linux
    SYSTEM_RSYNC,
]

MIN_RSYNC_VERSION: Tuple[int, int, int] = (3, 2, 0)

VERSION_PATTERN = re.compile(r"\d+\.\d+\.\d+")


@dataclass(frozen=True)
class RsyncBinary:
    """The rsync executable selected for a run."""
    path: Path
    version: Optional[str] = None
    forced: bool = False

    @property
    def too_old(self) -> bool:
        """True when the version is unknown or below the minimum."""
        return is_old_version(self.version)


def is_macos(platform: Optional[str] = None) -> bool:
    """Return True when platform (default: the running one) is macOS."""
    return (platform or sys.platform) == "darwin"


def parse_version(text: str) -> Optional[str]:
    """Return the first ``N.N.N`` triple found in text, or None."""
    match = VERSION_PATTERN.search(text)
    return match.group(0) if match else None


def is_old_version(version: Optional[str]) -> bool:
    """
    Return True if version is below MIN_RSYNC_VERSION.

    Anything that isn't three dot-separated integers counts as old.
    """
    if not version:
        return True
    parts = version.split(".")
    if len(parts) < 3:
        return True
    try:
        numbers = tuple(int(part) for part in parts[:3])
    except ValueError:
        return True
    return numbers < MIN_RSYNC_VERSION


def get_rsync_version(binary_path: Path) -> Optional[str]:
    """
    Query an rsync binary for its version.

    Returns:
        The version string, or None when the binary can't be run or its
        output has no version triple. Callers treat None as "capability
        unknown".
    """
    try:
        result = subprocess.run(
            [str(binary_path), "--version"],
            capture_output=True,
            text=True,
            timeout=30,
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.debug(f"Version query failed for {binary_path}: {e}")
        return None
    return parse_version(result.stdout + result.stderr)


def resolve_binary(
    force_system: bool = False,
    platform: Optional[str] = None,
    candidates: Optional[List[Path]] = None,
) -> RsyncBinary:
    """
    Select the rsync binary for this run.

    Args:
        force_system: Pin to the system rsync without probing
        platform: Platform name, defaults to sys.platform
        candidates: Paths to probe, defaults to RSYNC_CANDIDATES

    Returns:
        RsyncBinary with path and detected version

    Raises:
        BinaryNotFound: If no candidate exists
        IncompatibleBinary: If only an outdated system rsync exists on macOS
    """
    if force_system:
        logger.info("Using system rsync (forced by force_system_rsync=true)")
        return RsyncBinary(
            path=SYSTEM_RSYNC,
            version=get_rsync_version(SYSTEM_RSYNC),
            forced=True,
        )

    if candidates is None:
        candidates = RSYNC_CANDIDATES

    selected = next((path for path in candidates if path.exists()), None)
    if selected is None:
        raise BinaryNotFound("No rsync binary found")

    version = get_rsync_version(selected)

    if selected == SYSTEM_RSYNC and is_macos(platform) and is_old_version(version):
        raise IncompatibleBinary(
            "Homebrew rsync not found. The built-in macOS rsync is too old and "
            "lacks proper macOS support. Please install Homebrew rsync with: "
            "brew install rsync"
        )

    logger.info(f"Using rsync: {selected}")
    if version:
        logger.info(f"Detected rsync version: {version}")
    return RsyncBinary(path=selected, version=version)

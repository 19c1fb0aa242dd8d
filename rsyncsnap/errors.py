"""Error taxonomy for rsyncsnap.

Fatal errors derive from BackupError and end the run. Warnings derive from
BackupWarning; they are logged and collected on the run result but never
change its outcome.
"""

from typing import Optional


class BackupError(Exception):
    """Base exception for errors that abort a backup run."""

    #: Short description of the lifecycle step, used in log messages.
    context = "backup"


class BackupWarning(Exception):
    """Base class for non-fatal conditions reported after the fact."""


class ConfigInvalid(BackupError):
    """Raised when configuration values violate their bounds."""
    context = "configuration validation"


class AlreadyRunning(BackupError):
    """Raised when the lock directory already exists."""
    context = "lock acquisition"

    def __init__(self, lock_path):
        super().__init__(
            f"Backup already running (lock: {lock_path}). "
            f"If not, remove the lock directory manually"
        )
        self.lock_path = lock_path


class LockIOError(BackupError):
    """Raised when the lock directory cannot be created for another reason."""
    context = "lock acquisition"


class DestinationCreateError(BackupError):
    """Raised when the destination tree cannot be created."""
    context = "path validation"


class SourceMissing(BackupError):
    """Raised when the source path does not exist."""
    context = "path validation"


class PathNotMounted(BackupError):
    """Raised when a path does not resolve through the mount probe."""
    context = "path validation"


class DiskThresholdExceeded(BackupError):
    """Raised when destination usage is at or above the cleanup threshold."""
    context = "disk space check"

    def __init__(self, usage_percent: int, threshold_percent: int):
        super().__init__(
            f"Disk usage {usage_percent}% exceeds cleanup threshold "
            f"{threshold_percent}%"
        )
        self.usage_percent = usage_percent
        self.threshold_percent = threshold_percent


class DiskCheckParseError(BackupError):
    """Raised when the filesystem usage report cannot be read."""
    context = "disk space check"


class LogOpenError(BackupError):
    """Raised when the run log cannot be opened."""
    context = "log setup"


class BinaryNotFound(BackupError):
    """Raised when no rsync binary exists at any known location."""
    context = "rsync resolution"


class IncompatibleBinary(BackupError):
    """Raised when only an outdated system rsync is available."""
    context = "rsync resolution"


class ProcessExecutionError(BackupError):
    """Raised when rsync exits with a non-zero status."""
    context = "rsync transfer"

    def __init__(self, exit_code: int, detail: Optional[str] = None):
        message = f"rsync exited with code {exit_code}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)
        self.exit_code = exit_code


class SnapshotMissing(BackupError):
    """Raised when rsync produced no snapshot directory."""
    context = "backup verification"


class SnapshotEmpty(BackupError):
    """Raised when the snapshot directory has no entries."""
    context = "backup verification"


class FinalizeRenameError(BackupError):
    """Raised when the in-progress snapshot cannot be renamed."""
    context = "snapshot finalization"


class RunInterrupted(BackupError):
    """Raised at a checkpoint once a termination signal has been received."""
    context = "interruption"

    def __init__(self, signal_name: str = "signal"):
        super().__init__(f"Backup interrupted by {signal_name}")
        self.signal_name = signal_name


class PruneWarning(BackupWarning):
    """A snapshot could not be removed during retention."""


class PublishWarning(BackupWarning):
    """The latest pointer could not be rewritten."""


class RotateWarning(BackupWarning):
    """The run log could not be trimmed."""


class ExcludeListWarning(BackupWarning):
    """The configured exclude list does not exist."""

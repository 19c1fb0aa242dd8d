"""rsyncsnap - Hard-linked rsync snapshot backups."""

__version__ = "0.1.0"

from rsyncsnap.config import (
    Configuration,
    ConfigurationError,
    LoggingConfig,
    ValidationError,
    parse_config,
    format_config,
    create_default_config,
)
from rsyncsnap.errors import (
    BackupError,
    BackupWarning,
    AlreadyRunning,
    DiskThresholdExceeded,
    ProcessExecutionError,
    RunInterrupted,
)
from rsyncsnap.lock import LockManager
from rsyncsnap.snapshot import SnapshotInfo, list_snapshots
from rsyncsnap.retention import RetentionManager, RetentionResult
from rsyncsnap.logger import (
    LoggingError,
    RunLogger,
    setup_logging,
    get_logger,
)
from rsyncsnap.backup import (
    BackupOrchestrator,
    BackupResult,
    BackupRun,
    RunState,
    run_backup,
    EXIT_SUCCESS,
    EXIT_FAILURE,
)

__all__ = [
    "Configuration",
    "ConfigurationError",
    "LoggingConfig",
    "ValidationError",
    "parse_config",
    "format_config",
    "create_default_config",
    "BackupError",
    "BackupWarning",
    "AlreadyRunning",
    "DiskThresholdExceeded",
    "ProcessExecutionError",
    "RunInterrupted",
    "LockManager",
    "SnapshotInfo",
    "list_snapshots",
    "RetentionManager",
    "RetentionResult",
    "LoggingError",
    "RunLogger",
    "setup_logging",
    "get_logger",
    "BackupOrchestrator",
    "BackupResult",
    "BackupRun",
    "RunState",
    "run_backup",
    "EXIT_SUCCESS",
    "EXIT_FAILURE",
]

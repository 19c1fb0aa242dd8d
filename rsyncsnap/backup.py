"""Main backup orchestration for rsyncsnap.

This module provides the BackupOrchestrator that drives one backup run
through its lifecycle:
- Validate configuration
- Install signal handlers
- Validate source and destination
- Check destination disk usage
- Acquire lock
- Open the run log
- Resolve the rsync binary
- Build arguments and run rsync
- Verify and finalize the snapshot
- Republish the latest pointer
- Prune old snapshots
- Release lock

The lock is released exactly once on every exit path. A termination signal
only requests cancellation; the run stops at the next checkpoint and unwinds
through the same cleanup.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import List, Optional
import logging

from rsyncsnap.arguments import build_rsync_args
from rsyncsnap.binary import resolve_binary
from rsyncsnap.config import (
    Configuration,
    ConfigurationError,
    ValidationError,
    parse_config,
    validate_config,
)
from rsyncsnap.destination import validate_paths
from rsyncsnap.errors import (
    BackupError,
    BackupWarning,
    LogOpenError,
    PublishWarning,
    RunInterrupted,
)
from rsyncsnap.lock import LockManager
from rsyncsnap.logger import (
    LoggingError,
    RunLogger,
    get_logger,
    log_backup_completion,
    log_backup_error,
    log_backup_start,
    log_rsync_command,
    setup_logging,
)
from rsyncsnap.process import run_rsync
from rsyncsnap.retention import RetentionManager
from rsyncsnap.signal_handler import SignalHandler
from rsyncsnap.snapshot import (
    LATEST_LINK_NAME,
    find_link_dest,
    finalize_snapshot,
    generate_timestamp,
    in_progress_name,
    republish_latest,
    verify_snapshot,
)
from rsyncsnap.space import check_disk_space


EXIT_SUCCESS = 0
EXIT_FAILURE = 1


class RunState(Enum):
    """Lifecycle states of a backup run, in order."""
    VALIDATING = "validating"
    PATHS_CHECKED = "paths_checked"
    SPACE_CHECKED = "space_checked"
    LOCKED = "locked"
    LOGGING_OPEN = "logging_open"
    BINARY_RESOLVED = "binary_resolved"
    TRANSFERRING = "transferring"
    VERIFIED = "verified"
    FINALIZED = "finalized"
    PUBLISHED = "published"
    PRUNED = "pruned"
    COMPLETED = "completed"
    FAILED = "failed"
    INTERRUPTED = "interrupted"


@dataclass(frozen=True)
class BackupRun:
    """Paths for one run, fixed when the run starts."""
    token: str
    in_progress_path: Path
    final_path: Path
    latest_path: Path

    @classmethod
    def create(cls, destination: str, token: Optional[str] = None) -> "BackupRun":
        if token is None:
            token = generate_timestamp()
        root = Path(destination)
        return cls(
            token=token,
            in_progress_path=root / in_progress_name(token),
            final_path=root / token,
            latest_path=root / LATEST_LINK_NAME,
        )


@dataclass
class BackupResult:
    """Result of a backup operation."""
    success: bool
    exit_code: int
    state: RunState
    snapshot_name: Optional[str] = None
    rsync_args: List[str] = field(default_factory=list)
    transferred_gb: float = 0.0
    warnings: List[BackupWarning] = field(default_factory=list)
    deleted_snapshots: List[Path] = field(default_factory=list)
    error: Optional[Exception] = None
    failed_at: Optional[RunState] = None
    dry_run: bool = False

    @property
    def error_message(self) -> Optional[str]:
        return str(self.error) if self.error is not None else None


class BackupOrchestrator:
    """
    Runs one backup from validation to pruning.

    Usage:
        orchestrator = BackupOrchestrator(config)
        result = orchestrator.execute()

    An orchestrator runs once; create a new one for every run.
    """

    def __init__(
        self,
        config: Configuration,
        logger: Optional[logging.Logger] = None,
        signal_handler: Optional[SignalHandler] = None,
        token: Optional[str] = None,
        platform: Optional[str] = None,
    ):
        """
        Args:
            config: Run configuration, validated again by execute()
            logger: Logger to write to, defaults to the package logger
            signal_handler: Cancellation source, defaults to a new SignalHandler
            token: Snapshot token, defaults to the current UTC time
            platform: Platform name for binary and argument decisions
        """
        self.config = config
        self.logger = logger if logger is not None else get_logger()
        self.signal_handler = signal_handler if signal_handler is not None else SignalHandler()
        self.platform = platform
        self.run = BackupRun.create(config.destination, token)
        self.lock_manager = LockManager(config.lock_path)
        self.run_log = RunLogger(config.logging.log_file, logger=self.logger)
        self.state = RunState.VALIDATING

        self._warnings: List[BackupWarning] = []
        self._rsync_args: List[str] = []
        self._transferred_gb = 0.0
        self._deleted: List[Path] = []

    def execute(self) -> BackupResult:
        """
        Run the backup.

        Never raises for backup failures; they are logged and reported on
        the returned BackupResult.
        """
        try:
            self._run_steps()
        except BackupError as e:
            return self._fail(e, e.context)
        except Exception as e:
            # Anything outside the taxonomy still has to unwind the lock
            return self._fail(e, "unexpected error")
        finally:
            self.signal_handler.unregister()
            self.lock_manager.release()
            self.run_log.close()

        return BackupResult(
            success=True,
            exit_code=EXIT_SUCCESS,
            state=self.state,
            snapshot_name=None if self.config.dry_run else self.run.token,
            rsync_args=list(self._rsync_args),
            transferred_gb=self._transferred_gb,
            warnings=list(self._warnings),
            deleted_snapshots=list(self._deleted),
            dry_run=self.config.dry_run,
        )

    def _advance(self, state: RunState, checkpoint: bool = True) -> None:
        self.state = state
        self.logger.debug(f"Run state: {state.value}")
        if checkpoint:
            self.signal_handler.check()

    def _warn(self, warning: BackupWarning) -> None:
        self.run_log.append(str(warning), logging.WARNING)
        self._warnings.append(warning)

    def _run_steps(self) -> None:
        config = self.config
        run = self.run
        started_at = datetime.now()

        # Nothing on disk may change before this passes
        validate_config(config)

        self.signal_handler.register(lock_manager=self.lock_manager)
        self.signal_handler.check()

        validate_paths(config.source, config.destination)
        self._advance(RunState.PATHS_CHECKED)

        usage = check_disk_space(config.destination, config.cleanup_at_percent)
        if usage.skipped:
            self.logger.info("Remote destination - skipping disk space check")
        else:
            self.logger.info(
                f"Disk usage: {usage.usage_percent}% (threshold: {usage.threshold_percent}%)"
            )
        self._advance(RunState.SPACE_CHECKED)

        self.lock_manager.acquire()
        self.logger.debug(f"Lock acquired: {self.lock_manager.lock_path}")
        self._advance(RunState.LOCKED)

        try:
            rotate_warning = self.run_log.open()
        except LoggingError as e:
            raise LogOpenError(str(e))
        if rotate_warning is not None:
            self._warnings.append(rotate_warning)
        log_backup_start(self.logger, run.token, config.source, config.destination)
        self._advance(RunState.LOGGING_OPEN)

        binary = resolve_binary(
            force_system=config.force_system_rsync,
            platform=self.platform,
        )
        self._advance(RunState.BINARY_RESOLVED)

        link_dest = find_link_dest(Path(config.destination))
        self.run_log.append(f"Last backup: {link_dest.name if link_dest else 'none'}")

        built = build_rsync_args(
            source=config.source,
            destination=config.destination,
            snapshot_path=run.in_progress_path,
            rsync_version=binary.version,
            link_dest=link_dest,
            exclude_list=config.exclude_list,
            show_progress=config.show_progress,
            dry_run=config.dry_run,
            platform=self.platform,
        )
        self._warnings.extend(built.warnings)
        self._rsync_args = built.args
        log_rsync_command(self.logger, binary.path, built.args)

        self._advance(RunState.TRANSFERRING, checkpoint=False)
        try:
            transfer = run_rsync(
                binary.path,
                built.args,
                cancel_event=self.signal_handler.cancel_event,
            )
        except RunInterrupted:
            raise RunInterrupted(self.signal_handler.signal_name or "cancellation request")
        self._transferred_gb = transfer.transferred_gb
        self.signal_handler.check()

        verify_snapshot(run.in_progress_path, dry_run=config.dry_run)
        self._advance(RunState.VERIFIED)

        finalize_snapshot(run.in_progress_path, run.final_path, dry_run=config.dry_run)
        # The snapshot is durable from here on; finish publishing and
        # pruning so the destination is left consistent
        self._advance(RunState.FINALIZED, checkpoint=False)

        if not config.dry_run:
            try:
                republish_latest(run.latest_path, run.token)
            except PublishWarning as w:
                self._warn(w)
        self._advance(RunState.PUBLISHED, checkpoint=False)

        if not config.dry_run:
            retention = RetentionManager(Path(config.destination), config.keep).prune()
            self._warnings.extend(retention.warnings)
            self._deleted = retention.deleted_snapshots
            if retention.deleted_snapshots:
                self.run_log.append(
                    f"Retention applied: removed {len(retention.deleted_snapshots)} snapshot(s)"
                )
        self._advance(RunState.PRUNED, checkpoint=False)

        log_backup_completion(
            self.logger,
            run.token,
            self._transferred_gb,
            started_at,
            dry_run=config.dry_run,
        )
        self._advance(RunState.COMPLETED, checkpoint=False)

    def _fail(self, error: Exception, context: str) -> BackupResult:
        failed_at = self.state
        if isinstance(error, RunInterrupted):
            self.state = RunState.INTERRUPTED
        else:
            self.state = RunState.FAILED
        log_backup_error(self.logger, error, context)

        return BackupResult(
            success=False,
            exit_code=EXIT_FAILURE,
            state=self.state,
            rsync_args=list(self._rsync_args),
            transferred_gb=self._transferred_gb,
            warnings=list(self._warnings),
            deleted_snapshots=list(self._deleted),
            error=error,
            failed_at=failed_at,
            dry_run=self.config.dry_run,
        )


def run_backup(
    config_path: Optional[Path] = None,
    config: Optional[Configuration] = None,
    dry_run: bool = False,
    log_level: Optional[str] = None,
    signal_handler: Optional[SignalHandler] = None,
) -> BackupResult:
    """
    Run a complete backup operation.

    Args:
        config_path: Path to configuration file. If None, uses default path.
        config: Pre-loaded Configuration object. If provided, config_path is ignored.
        dry_run: Force a dry run regardless of the configuration
        log_level: Override the configured log level
        signal_handler: Cancellation source, defaults to a new SignalHandler

    Returns:
        BackupResult with success status, exit code, and operation details.
    """
    if config is None:
        try:
            config = parse_config(config_path)
        except (ConfigurationError, ValidationError) as e:
            get_logger().error(f"Configuration error: {e}")
            return BackupResult(
                success=False,
                exit_code=EXIT_FAILURE,
                state=RunState.FAILED,
                error=e,
                failed_at=RunState.VALIDATING,
                dry_run=dry_run,
            )

    if dry_run and not config.dry_run:
        config = replace(config, dry_run=True)

    try:
        logger = setup_logging(log_level or config.logging.level)
    except LoggingError as e:
        # Fall back to whatever the package logger already has
        logger = get_logger()
        logger.warning(f"Failed to set up logging: {e}")

    orchestrator = BackupOrchestrator(
        config,
        logger=logger,
        signal_handler=signal_handler,
    )
    return orchestrator.execute()

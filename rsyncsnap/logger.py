"""Logging configuration for rsyncsnap.

This module provides logging setup and utility functions for the backup
system. Every line goes to the console; during a run it is also appended to
the persistent run log. The run log is trimmed once it holds too many runs.
"""

import logging
import os
from datetime import datetime
from pathlib import Path
from typing import List, Optional

from rsyncsnap.errors import RotateWarning


# Logger name for the rsyncsnap package
LOGGER_NAME = "rsyncsnap"

# Valid log levels
VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR"}

# Marker written at the start of every run; rotation counts these
RUN_START_MARKER = "Starting backup:"

# Trim the run log once it holds this many runs...
LOG_ROTATE_JOB_THRESHOLD = 30
# ...down to this many trailing lines
LOG_KEEP_LINES = 500

LOG_SEPARATOR = "=" * 80

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class LoggingError(Exception):
    """Raised when logging setup fails."""
    pass


def _get_log_level(level_str: str) -> int:
    """Convert log level string to logging constant."""
    level_str = level_str.upper()
    if level_str not in VALID_LOG_LEVELS:
        raise LoggingError(
            f"Invalid log level '{level_str}'. Must be one of: {', '.join(sorted(VALID_LOG_LEVELS))}"
        )
    return getattr(logging, level_str)


def setup_logging(level: str = "INFO") -> logging.Logger:
    """
    Configure console logging for rsyncsnap.

    The run log file handler is attached separately by RunLogger once the
    run holds its lock.

    Args:
        level: Log level string

    Returns:
        Configured logger instance

    Raises:
        LoggingError: If level is invalid
    """
    log_level = _get_log_level(level)

    logger = logging.getLogger(LOGGER_NAME)

    # Clear any existing handlers to avoid duplicates
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    logger.setLevel(log_level)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
    logger.addHandler(console_handler)

    return logger


def get_logger() -> logging.Logger:
    """
    Get the rsyncsnap logger instance.

    Returns:
        The rsyncsnap logger. If setup_logging hasn't been called,
        returns a logger with default configuration.
    """
    return logging.getLogger(LOGGER_NAME)


def count_run_markers(lines: List[str]) -> int:
    """Count how many runs a log holds."""
    return sum(1 for line in lines if RUN_START_MARKER in line)


class RunLogger:
    """
    Persistent run log.

    Usage:
        run_log = RunLogger(log_file)
        run_log.open()
        run_log.append("message")
        run_log.close()
    """

    def __init__(
        self,
        log_file: Path,
        logger: Optional[logging.Logger] = None,
        job_threshold: int = LOG_ROTATE_JOB_THRESHOLD,
        keep_lines: int = LOG_KEEP_LINES,
    ):
        self.log_file = Path(log_file)
        self.logger = logger if logger is not None else get_logger()
        self.job_threshold = job_threshold
        self.keep_lines = keep_lines
        self._handler: Optional[logging.FileHandler] = None

    @property
    def is_open(self) -> bool:
        return self._handler is not None

    def open(self) -> Optional[RotateWarning]:
        """
        Open the run log for appending.

        Writes a separator, trims the existing log if needed and attaches a
        file handler to the package logger.

        Returns:
            RotateWarning if trimming failed, None otherwise

        Raises:
            LoggingError: If the log directory or file can't be opened
        """
        try:
            self.log_file.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise LoggingError(f"Failed to create log directory {self.log_file.parent}: {e}")

        try:
            with open(self.log_file, "a", encoding="utf-8") as f:
                f.write(f"\n{LOG_SEPARATOR}\n")
        except OSError as e:
            raise LoggingError(f"Failed to open log file {self.log_file}: {e}")

        # Trim before the handler holds the file open, or it would keep
        # writing to the replaced inode
        warning = self.rotate_if_needed()

        handler = logging.FileHandler(self.log_file, mode="a", encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATE_FORMAT))
        handler.setLevel(self.logger.level or logging.DEBUG)
        self.logger.addHandler(handler)
        self._handler = handler

        if warning is not None:
            self.logger.warning(str(warning))
        return warning

    def append(self, message: str, level: int = logging.INFO) -> None:
        """Write a timestamped line to the console and, if open, the run log."""
        self.logger.log(level, message)

    def rotate_if_needed(self) -> Optional[RotateWarning]:
        """
        Trim the run log when it holds job_threshold runs or more.

        Keeps the last keep_lines lines. The trimmed copy is written to a
        temporary file and renamed over the log.

        Returns:
            RotateWarning if trimming failed, None otherwise
        """
        try:
            with open(self.log_file, "r", encoding="utf-8", errors="replace") as f:
                lines = f.readlines()
        except FileNotFoundError:
            return None
        except OSError as e:
            return RotateWarning(f"Failed to read log for cleanup: {e}")

        job_count = count_run_markers(lines)
        if job_count < self.job_threshold:
            return None

        tmp_file = self.log_file.with_name(self.log_file.name + ".tmp")
        try:
            with open(tmp_file, "w", encoding="utf-8") as f:
                f.writelines(lines[-self.keep_lines:])
            os.replace(tmp_file, self.log_file)
        except OSError as e:
            try:
                tmp_file.unlink(missing_ok=True)
            except OSError:
                pass
            return RotateWarning(f"Failed to clean up log: {e}")

        self.logger.info(
            f"Log cleaned up (was {job_count} jobs, kept last {self.keep_lines} lines)"
        )
        return None

    def close(self) -> None:
        """Detach and close the file handler."""
        if self._handler is None:
            return
        self.logger.removeHandler(self._handler)
        self._handler.close()
        self._handler = None


def log_backup_start(
    logger: logging.Logger,
    timestamp: str,
    source: str,
    destination: str,
) -> None:
    """
    Log the start of a backup operation.

    The first line carries RUN_START_MARKER, which log rotation counts.
    """
    logger.info(f"{RUN_START_MARKER} {timestamp}")
    logger.info(f"SRC={source} DST={destination}")


def log_backup_completion(
    logger: logging.Logger,
    snapshot_name: Optional[str],
    transferred_gb: float,
    started_at: datetime,
    dry_run: bool = False,
) -> None:
    """
    Log the completion of a backup operation.
    """
    duration = (datetime.now() - started_at).total_seconds()
    logger.info(f"Data transferred: {transferred_gb:.2f} GB")
    logger.info(f"Duration: {duration:.2f} seconds")
    if dry_run:
        logger.info("Dry run completed successfully")
    else:
        logger.info(f"Backup completed successfully: {snapshot_name}")


def log_backup_error(
    logger: logging.Logger,
    error: Exception,
    context: Optional[str] = None,
) -> None:
    """
    Log a backup error.

    Args:
        logger: Logger instance
        error: The exception that occurred
        context: Additional context about what was happening
    """
    if context:
        logger.error(f"Backup failed during {context}: {error}")
    else:
        logger.error(f"Backup failed: {error}")


def log_rsync_command(logger: logging.Logger, binary: Path, args: List[str]) -> None:
    """Log the full rsync command line."""
    logger.info(f"Running rsync: {binary} {' '.join(args)}")

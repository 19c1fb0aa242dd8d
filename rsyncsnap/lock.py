"""Lock management for rsyncsnap.

This module provides the LockManager class that prevents concurrent backup
runs. The lock is a directory: mkdir is atomic, so its existence is the only
witness that a run is in progress.
"""

import shutil
from pathlib import Path
from typing import Optional

from rsyncsnap.errors import AlreadyRunning, LockIOError


class LockManager:
    """
    Manages the exclusive run lock.

    The lock is advisory. It does not expire: a crashed run leaves the
    directory behind and it has to be removed by hand.

    Implements context manager protocol for safe lock handling.
    """

    DEFAULT_LOCK_PATH = Path.home() / ".cache/rsyncsnap/backup.lock"

    def __init__(self, lock_path: Optional[Path] = None):
        """
        Initialize LockManager.

        Args:
            lock_path: Path of the lock directory.
                Defaults to ~/.cache/rsyncsnap/backup.lock
        """
        self.lock_path = Path(lock_path) if lock_path is not None else self.DEFAULT_LOCK_PATH
        self._acquired = False

    def acquire(self) -> bool:
        """
        Create the lock directory.

        Returns True if lock acquired.

        Raises:
            AlreadyRunning: If the lock directory already exists.
            LockIOError: If the directory cannot be created for any other reason.
        """
        try:
            self.lock_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise LockIOError(f"Failed to create lock: {e}")

        try:
            self.lock_path.mkdir()
        except FileExistsError:
            raise AlreadyRunning(self.lock_path)
        except OSError as e:
            raise LockIOError(f"Failed to create lock: {e}")

        self._acquired = True
        return True

    def release(self) -> None:
        """Remove the lock directory. Never raises; a no-op if not held."""
        if not self._acquired:
            return
        self._acquired = False
        shutil.rmtree(self.lock_path, ignore_errors=True)

    @property
    def acquired(self) -> bool:
        """Return whether this manager currently holds the lock."""
        return self._acquired

    def is_locked(self) -> bool:
        """Check if the lock directory exists (held by any process)."""
        return self.lock_path.is_dir()

    def __enter__(self) -> "LockManager":
        """Context manager entry - acquire lock."""
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        """Context manager exit - release lock."""
        self.release()
        return False  # Don't suppress exceptions

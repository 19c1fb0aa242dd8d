"""Signal handling for interrupting backup runs.

This module provides the SignalHandler class. A SIGINT or SIGTERM does not
stop the process on the spot: it sets a cancellation event that the
orchestrator checks between steps and the process supervisor checks while
rsync runs. The run then unwinds normally and releases its lock once.

A second signal is treated as an emergency stop: the lock is released and
the process exits immediately.
"""

import logging
import os
import signal
import threading
from typing import Any, Dict, Optional

from rsyncsnap.errors import RunInterrupted


class SignalHandler:
    """
    Turns termination signals into a cooperative cancellation request.

    Usage:
        handler = SignalHandler()
        handler.register(lock_manager=lock)
        ...
        handler.check()  # raises RunInterrupted once a signal arrived
        ...
        handler.unregister()
    """

    # Exit status for the emergency stop on a second signal
    FORCED_EXIT_CODE = 1

    def __init__(self):
        """Initialize SignalHandler with empty state."""
        self.cancel_event = threading.Event()
        self._lock_manager: Optional[Any] = None  # LockManager type
        self._signal_name: Optional[str] = None
        self._original_handlers: Dict[int, Any] = {}
        self._registered = False
        self._logger = logging.getLogger(__name__)

    def register(self, lock_manager: Optional[Any] = None) -> None:
        """
        Register signal handlers for SIGTERM and SIGINT.

        Signal handlers can only be installed from the main thread. From any
        other thread registration is skipped with a debug message, and the
        handler still works as a cancellation token via cancel().

        Args:
            lock_manager: Lock manager released on an emergency stop
        """
        self._lock_manager = lock_manager

        if threading.current_thread() is not threading.main_thread():
            self._logger.debug(
                "Signal handlers not registered: not running in main thread"
            )
            self._registered = True
            return

        try:
            for sig in (signal.SIGTERM, signal.SIGINT):
                self._original_handlers[sig] = signal.signal(sig, self._handle_signal)
            self._registered = True
            self._logger.debug("Signal handlers registered")
        except ValueError as e:
            self._logger.debug(f"Signal handlers not registered: {e}")
            self._registered = True

    def set_lock_manager(self, lock_manager: Optional[Any]) -> None:
        """Update the lock released on an emergency stop."""
        self._lock_manager = lock_manager

    def unregister(self) -> None:
        """
        Restore original signal handlers.

        Should be called after the run ends (success or failure).
        """
        if not self._registered:
            return

        if self._original_handlers:
            if threading.current_thread() is threading.main_thread():
                try:
                    for sig, handler in self._original_handlers.items():
                        signal.signal(sig, handler)
                except ValueError:
                    pass

        self._original_handlers.clear()
        self._lock_manager = None
        self._registered = False
        self._logger.debug("Signal handlers unregistered")

    def cancel(self, signal_name: str = "cancellation request") -> None:
        """Request cancellation without a signal."""
        if self._signal_name is None:
            self._signal_name = signal_name
        self.cancel_event.set()

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    @property
    def signal_name(self) -> Optional[str]:
        return self._signal_name

    def check(self) -> None:
        """
        Checkpoint between lifecycle steps.

        Raises:
            RunInterrupted: If cancellation was requested
        """
        if self.cancel_event.is_set():
            raise RunInterrupted(self._signal_name or "cancellation request")

    def _handle_signal(self, signum: int, frame: Any) -> None:
        """
        Handle termination signal.

        The first signal requests cancellation. A second one releases the
        lock and exits without waiting for the run to unwind.
        """
        sig_name = signal.Signals(signum).name

        if not self.cancel_event.is_set():
            self._logger.warning(f"Received {sig_name}, stopping after the current step")
            self.cancel(sig_name)
            return

        self._logger.warning(f"Received {sig_name} again, exiting immediately")
        if self._lock_manager is not None:
            self._lock_manager.release()
        os._exit(self.FORCED_EXIT_CODE)

    @property
    def is_registered(self) -> bool:
        """Return whether signal handlers are currently registered."""
        return self._registered

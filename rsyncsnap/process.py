"""rsync process supervision for rsyncsnap.

Runs rsync as a child process, tees its stdout and stderr to the console
while capturing them, and extracts the transferred byte count from the
captured statistics.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import IO, Callable, List, Optional, Sequence
import codecs
import logging
import re
import subprocess
import sys
import threading

from rsyncsnap.errors import ProcessExecutionError, RunInterrupted


logger = logging.getLogger(__name__)

# Different rsync builds phrase their statistics differently; first match wins
TRANSFER_PATTERNS = [
    re.compile(r"Total transferred file size: ([0-9,]+) bytes"),
    re.compile(r"sent ([0-9,]+) bytes"),
    re.compile(r"total size is ([0-9,]+)"),
]

BYTES_PER_GB = 1024 * 1024 * 1024

# Seconds between cancellation checks while rsync runs
POLL_INTERVAL = 0.2

# Seconds to wait after SIGTERM before killing rsync
TERMINATE_GRACE = 5

# Bytes read from a child pipe at a time
READ_SIZE = 4096


@dataclass
class TransferResult:
    """Outcome of a successful rsync invocation."""
    exit_code: int
    stdout: str
    stderr: str
    transferred_bytes: int

    @property
    def transferred_gb(self) -> float:
        return bytes_to_gb(self.transferred_bytes)


def parse_transferred_bytes(output: str) -> int:
    """
    Extract the transferred byte count from rsync output.

    Returns:
        Byte count from the first matching pattern, 0 if none match
    """
    for pattern in TRANSFER_PATTERNS:
        match = pattern.search(output)
        if match:
            try:
                return int(match.group(1).replace(",", ""))
            except ValueError:
                continue
    return 0


def bytes_to_gb(num_bytes: int) -> float:
    return num_bytes / BYTES_PER_GB


def _drain(
    stream: IO[bytes],
    console: Callable[[], IO[str]],
    captured: List[str],
) -> None:
    """Copy a child pipe to the console and a buffer until EOF.

    Reads whatever is available rather than whole lines, so progress
    redraws that end in a carriage return reach the console immediately.
    """
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
    while True:
        chunk = stream.read1(READ_SIZE)
        text = decoder.decode(chunk, final=not chunk)
        if text:
            captured.append(text)
            out = console()
            out.write(text)
            out.flush()
        if not chunk:
            break
    stream.close()


def _terminate(process: subprocess.Popen) -> None:
    """Stop rsync, escalating to SIGKILL if it ignores SIGTERM."""
    process.terminate()
    try:
        process.wait(timeout=TERMINATE_GRACE)
    except subprocess.TimeoutExpired:
        process.kill()
        process.wait()


def run_rsync(
    binary_path: Path,
    args: Sequence[str],
    cancel_event: Optional[threading.Event] = None,
) -> TransferResult:
    """
    Run rsync and wait for it to finish.

    Both pipes are drained on their own threads so a chatty child never
    blocks on a full pipe. No retry happens here.

    Args:
        binary_path: rsync executable
        args: Argument vector (without the executable)
        cancel_event: Set when the run should stop; rsync is terminated

    Returns:
        TransferResult with captured output and byte count

    Raises:
        ProcessExecutionError: If rsync exits non-zero or can't be started
        RunInterrupted: If cancel_event was set while rsync ran
    """
    cmd = [str(binary_path), *args]

    try:
        process = subprocess.Popen(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except OSError as e:
        raise ProcessExecutionError(-1, f"failed to start {binary_path}: {e}")

    stdout_lines: List[str] = []
    stderr_lines: List[str] = []
    drains = [
        threading.Thread(
            target=_drain,
            args=(process.stdout, lambda: sys.stdout, stdout_lines),
            daemon=True,
        ),
        threading.Thread(
            target=_drain,
            args=(process.stderr, lambda: sys.stderr, stderr_lines),
            daemon=True,
        ),
    ]
    for drain in drains:
        drain.start()

    interrupted = False
    while True:
        try:
            process.wait(timeout=POLL_INTERVAL)
            break
        except subprocess.TimeoutExpired:
            if cancel_event is not None and cancel_event.is_set():
                logger.warning("Cancellation requested, terminating rsync")
                _terminate(process)
                interrupted = True
                break

    for drain in drains:
        drain.join()

    # A terminal Ctrl-C reaches rsync too, which may exit on its own before
    # the next poll
    if interrupted or (cancel_event is not None and cancel_event.is_set()):
        raise RunInterrupted("cancellation request")

    stdout = "".join(stdout_lines)
    stderr = "".join(stderr_lines)

    if process.returncode != 0:
        detail = stderr.strip().splitlines()[-1] if stderr.strip() else None
        raise ProcessExecutionError(process.returncode, detail)

    return TransferResult(
        exit_code=process.returncode,
        stdout=stdout,
        stderr=stderr,
        transferred_bytes=parse_transferred_bytes(stdout + stderr),
    )

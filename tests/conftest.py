"""Pytest configuration and fixtures for rsyncsnap tests."""

import logging
import stat
import sys

import pytest
from hypothesis import settings, Phase

from rsyncsnap.config import Configuration, LoggingConfig
from rsyncsnap.logger import LOGGER_NAME

# Configure hypothesis to use fewer examples for faster test runs
# Disable shrinking phase to speed up tests further
settings.register_profile(
    "fast",
    max_examples=10,
    deadline=10000,
    phases=[Phase.explicit, Phase.reuse, Phase.generate]
)
settings.register_profile("ci", max_examples=50, deadline=10000)
settings.register_profile("dev", max_examples=2, deadline=10000)

# Use the fast profile by default
settings.load_profile("fast")


# Stand-in for rsync: records its argv, copies the source tree into the
# snapshot path unless --dry-run was given, and prints rsync-style stats.
FAKE_RSYNC_SCRIPT = """\
#!{python}
import json
import os
import shutil
import sys

args = sys.argv[1:]
if args == ["--version"]:
    print("rsync  version 3.2.7  protocol version 31")
    sys.exit(0)

with open(os.environ["FAKE_RSYNC_LOG"], "a") as f:
    f.write(json.dumps(args) + "\\n")

exit_code = int(os.environ.get("FAKE_RSYNC_EXIT", "0"))
if exit_code:
    print("rsync error: some files could not be transferred", file=sys.stderr)
    sys.exit(exit_code)

source, target = args[-2], args[-1]
if "--dry-run" not in args and os.environ.get("FAKE_RSYNC_SKIP_COPY") != "1":
    shutil.copytree(source, target, symlinks=True)

print("Number of files: 2")
print("Total transferred file size: 1,073,741,824 bytes")
"""


@pytest.fixture
def fake_rsync(tmp_path, monkeypatch):
    """Install a fake rsync executable and return (path, argv log path)."""
    script = tmp_path / "bin" / "rsync"
    script.parent.mkdir()
    script.write_text(FAKE_RSYNC_SCRIPT.format(python=sys.executable))
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    calls_log = tmp_path / "rsync_calls.jsonl"
    monkeypatch.setenv("FAKE_RSYNC_LOG", str(calls_log))
    return script, calls_log


@pytest.fixture
def backup_config(tmp_path):
    """Configuration with a populated source and an empty destination."""
    source = tmp_path / "source"
    source.mkdir()
    (source / "file.txt").write_text("hello")
    (source / "nested").mkdir()
    (source / "nested" / "data.bin").write_bytes(b"\x00\x01")

    return Configuration(
        source=str(source),
        destination=str(tmp_path / "backups"),
        keep=30,
        cleanup_at_percent=95,
        lock_path=tmp_path / "run" / "backup.lock",
        show_progress=False,
        logging=LoggingConfig(level="INFO", log_file=tmp_path / "logs" / "rsyncsnap.log"),
    )


@pytest.fixture(autouse=True)
def reset_package_logger():
    """Detach handlers added to the package logger by a test."""
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)

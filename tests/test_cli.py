"""Unit tests for CLI commands.

Tests each CLI command with valid inputs and error handling.
"""

import json
import os
from pathlib import Path
from unittest.mock import patch

import pytest

from rsyncsnap import __version__
from rsyncsnap.backup import BackupResult, RunState
from rsyncsnap.binary import RsyncBinary
from rsyncsnap.cli import (
    EXIT_FAILURE,
    EXIT_SUCCESS,
    create_parser,
    main,
)
from rsyncsnap.config import format_config, parse_config
from rsyncsnap.errors import DiskThresholdExceeded, PruneWarning
from rsyncsnap.snapshot import LATEST_LINK_NAME


T1 = "2025-01-01_00.00.00_UTC"
T2 = "2025-01-02_00.00.00_UTC"


@pytest.fixture
def config_file(tmp_path: Path, backup_config) -> Path:
    path = tmp_path / "config.toml"
    path.write_text(format_config(backup_config))
    return path


class TestArgumentParser:
    """Tests for CLI argument parser setup."""

    def test_parser_creation(self):
        parser = create_parser()

        assert parser.prog == 'rsyncsnap'

    def test_global_options(self):
        args = create_parser().parse_args(['--config', '/path/to/config.toml', '-v', 'run'])

        assert args.config == Path('/path/to/config.toml')
        assert args.verbose
        assert args.command == 'run'
        assert not args.dry_run

    def test_run_dry_run(self):
        args = create_parser().parse_args(['run', '--dry-run'])

        assert args.dry_run

    def test_list_json(self):
        args = create_parser().parse_args(['list', '--json'])

        assert args.json

    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc_info:
            main(['--version'])

        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_no_command_prints_help(self, capsys):
        assert main([]) == EXIT_SUCCESS
        assert "usage:" in capsys.readouterr().out


class TestRunCommand:
    """Tests for 'rsyncsnap run'."""

    def test_success(self, config_file, capsys):
        result = BackupResult(
            success=True, exit_code=0, state=RunState.COMPLETED, snapshot_name=T1,
        )
        with patch("rsyncsnap.cli.run_backup", return_value=result) as mock_run:
            assert main(['--config', str(config_file), 'run']) == EXIT_SUCCESS

        assert mock_run.call_args.kwargs["dry_run"] is False
        assert mock_run.call_args.kwargs["log_level"] is None
        assert f"Backup completed: {T1}" in capsys.readouterr().out

    def test_dry_run_and_verbose_forwarded(self, config_file, capsys):
        result = BackupResult(
            success=True, exit_code=0, state=RunState.COMPLETED, dry_run=True,
        )
        with patch("rsyncsnap.cli.run_backup", return_value=result) as mock_run:
            assert main(['-c', str(config_file), '-v', 'run', '--dry-run']) == EXIT_SUCCESS

        assert mock_run.call_args.kwargs["dry_run"] is True
        assert mock_run.call_args.kwargs["log_level"] == "DEBUG"
        assert "Dry run completed" in capsys.readouterr().out

    def test_warnings_printed(self, config_file, capsys):
        result = BackupResult(
            success=True, exit_code=0, state=RunState.COMPLETED, snapshot_name=T1,
            warnings=[PruneWarning("Failed to remove old snapshot")],
        )
        with patch("rsyncsnap.cli.run_backup", return_value=result):
            assert main(['-c', str(config_file), 'run']) == EXIT_SUCCESS

        assert "Warning: Failed to remove old snapshot" in capsys.readouterr().err

    def test_failure(self, config_file, capsys):
        result = BackupResult(
            success=False, exit_code=1, state=RunState.FAILED,
            error=DiskThresholdExceeded(96, 95), failed_at=RunState.PATHS_CHECKED,
        )
        with patch("rsyncsnap.cli.run_backup", return_value=result):
            assert main(['-c', str(config_file), 'run']) == EXIT_FAILURE

        assert "Backup failed: Disk usage 96% exceeds cleanup threshold 95%" in capsys.readouterr().err

    def test_missing_config(self, tmp_path: Path, capsys):
        assert main(['-c', str(tmp_path / "missing.toml"), 'run']) == EXIT_FAILURE
        assert "Configuration error" in capsys.readouterr().err

    def test_end_to_end(self, config_file, backup_config, fake_rsync, capsys):
        script, _ = fake_rsync
        with patch("rsyncsnap.backup.resolve_binary",
                   return_value=RsyncBinary(path=script, version="3.2.7")), \
                patch("rsyncsnap.space._run_df",
                      return_value="Filesystem\n/dev/disk1 100 10 90 10% /\n"):
            assert main(['-c', str(config_file), 'run']) == EXIT_SUCCESS

        destination = Path(backup_config.destination)
        assert os.readlink(destination / LATEST_LINK_NAME).endswith("_UTC")


class TestListCommand:
    """Tests for 'rsyncsnap list'."""

    def test_empty(self, config_file, capsys):
        assert main(['-c', str(config_file), 'list']) == EXIT_SUCCESS
        assert "No snapshots found." in capsys.readouterr().out

    def test_lists_newest_first(self, config_file, backup_config, capsys):
        destination = Path(backup_config.destination)
        for name in (T1, T2):
            (destination / name).mkdir(parents=True)
        os.symlink(T2, destination / LATEST_LINK_NAME)

        assert main(['-c', str(config_file), 'list']) == EXIT_SUCCESS

        out = capsys.readouterr().out
        assert out.index(T2) < out.index(T1)
        assert f"{T2}  (latest)" in out
        assert "Total: 2 snapshot(s)" in out

    def test_json(self, config_file, backup_config, capsys):
        destination = Path(backup_config.destination)
        (destination / T1).mkdir(parents=True)
        os.symlink(T1, destination / LATEST_LINK_NAME)

        assert main(['-c', str(config_file), 'list', '--json']) == EXIT_SUCCESS

        output = json.loads(capsys.readouterr().out)
        assert output == [{"name": T1, "path": str(destination / T1), "latest": True}]

    def test_remote_destination(self, tmp_path: Path, capsys):
        path = tmp_path / "config.toml"
        path.write_text('source = "/data"\ndestination = "nas@backup:/backups"\n')

        assert main(['-c', str(path), 'list']) == EXIT_FAILURE


class TestStatusCommand:
    """Tests for 'rsyncsnap status'."""

    def test_idle_never_run(self, config_file, capsys):
        assert main(['-c', str(config_file), 'status']) == EXIT_SUCCESS

        out = capsys.readouterr().out
        assert "Last backup: Never" in out
        assert "Status: Idle" in out

    def test_running_with_incomplete(self, config_file, backup_config, capsys):
        destination = Path(backup_config.destination)
        (destination / T1).mkdir(parents=True)
        (destination / f"{T2}_INCOMPLETE").mkdir()
        os.symlink(T1, destination / LATEST_LINK_NAME)
        backup_config.lock_path.mkdir(parents=True)

        assert main(['-c', str(config_file), 'status']) == EXIT_SUCCESS

        out = capsys.readouterr().out
        assert f"Last backup: {T1}" in out
        assert "Total snapshots: 1" in out
        assert "Incomplete snapshots: 1" in out
        assert "Status: Backup in progress" in out


class TestInitCommand:
    """Tests for 'rsyncsnap init'."""

    def test_creates_config(self, tmp_path: Path, capsys):
        path = tmp_path / "conf" / "config.toml"

        assert main(['-c', str(path), 'init']) == EXIT_SUCCESS

        assert parse_config(path).keep == 30

    def test_refuses_overwrite(self, tmp_path: Path, capsys):
        path = tmp_path / "config.toml"
        path.write_text("keep = 1\n")

        assert main(['-c', str(path), 'init']) == EXIT_FAILURE
        assert path.read_text() == "keep = 1\n"

    def test_force_overwrites(self, tmp_path: Path):
        path = tmp_path / "config.toml"
        path.write_text("keep = 1\n")

        assert main(['-c', str(path), 'init', '--force']) == EXIT_SUCCESS
        assert "[backup]" in path.read_text()

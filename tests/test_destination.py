"""Unit tests for source and destination validation."""

import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from rsyncsnap.destination import (
    ensure_destination,
    is_path_mounted,
    is_remote_path,
    validate_paths,
)
from rsyncsnap.errors import DestinationCreateError, PathNotMounted, SourceMissing


class TestIsRemotePath:
    """Tests for the user@host:path heuristic."""

    @pytest.mark.parametrize("path", [
        "user@host:/data",
        "backup@nas.local:backups",
        "u@10.0.0.1:~/x",
    ])
    def test_remote(self, path):
        assert is_remote_path(path)

    @pytest.mark.parametrize("path", [
        "/Volumes/backup-0",
        "host:/data",
        "/mail/user@example.com",
        "",
    ])
    def test_local(self, path):
        assert not is_remote_path(path)

    def test_local_path_with_both_markers_is_misclassified(self):
        """Known false positive of the heuristic."""
        assert is_remote_path("/data/user@example.com:2024")

    def test_accepts_path_objects(self):
        assert not is_remote_path(Path("/tmp"))


class TestIsPathMounted:
    """Tests for the df mount probe."""

    def test_existing_path(self, tmp_path: Path):
        assert is_path_mounted(tmp_path)

    def test_nonexistent_path(self, tmp_path: Path):
        assert not is_path_mounted(tmp_path / "missing")

    def test_df_unavailable(self, tmp_path: Path):
        with patch("rsyncsnap.destination.subprocess.run", side_effect=OSError("no df")):
            assert not is_path_mounted(tmp_path)


class TestEnsureDestination:
    """Tests for ensure_destination."""

    def test_creates_tree(self, tmp_path: Path):
        dest = tmp_path / "a" / "b" / "backups"

        ensure_destination(dest)

        assert dest.is_dir()

    def test_existing_directory(self, tmp_path: Path):
        ensure_destination(tmp_path)

    def test_file_in_the_way(self, tmp_path: Path):
        blocker = tmp_path / "blocker"
        blocker.write_text("")

        with pytest.raises(DestinationCreateError):
            ensure_destination(blocker / "backups")


class TestValidatePaths:
    """Tests for validate_paths."""

    def test_valid_paths(self, tmp_path: Path):
        source = tmp_path / "source"
        source.mkdir()
        dest = tmp_path / "backups"

        validate_paths(str(source), str(dest))

        assert dest.is_dir()

    def test_missing_source(self, tmp_path: Path):
        with pytest.raises(SourceMissing):
            validate_paths(str(tmp_path / "missing"), str(tmp_path / "backups"))

    def test_destination_created_before_source_check(self, tmp_path: Path):
        dest = tmp_path / "backups"

        with pytest.raises(SourceMissing):
            validate_paths(str(tmp_path / "missing"), str(dest))

        assert dest.is_dir()

    def test_source_not_mounted(self, tmp_path: Path):
        source = tmp_path / "source"
        source.mkdir()

        with patch("rsyncsnap.destination.is_path_mounted", return_value=False):
            with pytest.raises(PathNotMounted, match="Source path"):
                validate_paths(str(source), str(tmp_path / "backups"))

    def test_destination_not_mounted(self, tmp_path: Path):
        source = tmp_path / "source"
        source.mkdir()
        dest = tmp_path / "backups"

        with patch(
            "rsyncsnap.destination.is_path_mounted",
            side_effect=lambda path: str(path) != str(dest),
        ):
            with pytest.raises(PathNotMounted, match="Destination path"):
                validate_paths(str(source), str(dest))

    def test_remote_source_skips_local_checks(self, tmp_path: Path):
        dest = tmp_path / "backups"

        with patch("rsyncsnap.destination.is_path_mounted", return_value=True) as probe:
            validate_paths("user@host:/data", str(dest))

        probe.assert_called_once_with(str(dest))

    def test_remote_destination_not_created(self, tmp_path: Path):
        source = tmp_path / "source"
        source.mkdir()

        with patch("rsyncsnap.destination.ensure_destination") as ensure:
            validate_paths(str(source), "user@host:/backups")

        ensure.assert_not_called()

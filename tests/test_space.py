"""Unit tests for the disk space guard."""

from pathlib import Path
from unittest.mock import patch

import hypothesis.strategies as st
import pytest
from hypothesis import given

from rsyncsnap.errors import DiskCheckParseError, DiskThresholdExceeded
from rsyncsnap.space import (
    DiskUsageResult,
    _run_df,
    check_disk_space,
    parse_usage_percent,
)


def _df_output(percent: str) -> str:
    return (
        "Filesystem     1024-blocks      Used Available Capacity Mounted on\n"
        f"/dev/disk3s1    976490576 500000000 476490576 {percent} /Volumes/backup-0\n"
    )


class TestParseUsagePercent:
    """Tests for parse_usage_percent."""

    def test_parses_fifth_field(self):
        assert parse_usage_percent(_df_output("42%")) == 42

    def test_zero_and_full(self):
        assert parse_usage_percent(_df_output("0%")) == 0
        assert parse_usage_percent(_df_output("100%")) == 100

    def test_single_line(self):
        with pytest.raises(DiskCheckParseError, match="Unexpected df output"):
            parse_usage_percent("Filesystem Size Used Avail Use% Mounted on\n")

    def test_empty(self):
        with pytest.raises(DiskCheckParseError):
            parse_usage_percent("")

    def test_too_few_fields(self):
        with pytest.raises(DiskCheckParseError, match="format"):
            parse_usage_percent("header\n/dev/disk 100 50\n")

    def test_missing_percent_sign(self):
        with pytest.raises(DiskCheckParseError):
            parse_usage_percent(_df_output("42"))

    def test_non_numeric(self):
        with pytest.raises(DiskCheckParseError):
            parse_usage_percent(_df_output("-%"))

    @given(percent=st.integers(min_value=0, max_value=100))
    def test_any_percentage_parses(self, percent: int):
        assert parse_usage_percent(_df_output(f"{percent}%")) == percent


class TestCheckDiskSpace:
    """Tests for check_disk_space."""

    def test_below_threshold(self):
        with patch("rsyncsnap.space._run_df", return_value=_df_output("42%")):
            result = check_disk_space("/Volumes/backup-0", 95)

        assert result == DiskUsageResult(skipped=False, usage_percent=42, threshold_percent=95)

    def test_at_threshold_fails(self):
        with patch("rsyncsnap.space._run_df", return_value=_df_output("95%")):
            with pytest.raises(DiskThresholdExceeded) as exc_info:
                check_disk_space("/Volumes/backup-0", 95)

        assert exc_info.value.usage_percent == 95
        assert exc_info.value.threshold_percent == 95

    def test_above_threshold_fails(self):
        with patch("rsyncsnap.space._run_df", return_value=_df_output("96%")):
            with pytest.raises(DiskThresholdExceeded, match="96%"):
                check_disk_space("/Volumes/backup-0", 95)

    def test_remote_destination_skipped(self):
        with patch("rsyncsnap.space._run_df") as run_df:
            result = check_disk_space("backup@nas:/backups", 95)

        run_df.assert_not_called()
        assert result.skipped
        assert result.usage_percent is None

    def test_real_df(self, tmp_path: Path):
        """The real df report for a local directory parses."""
        result = check_disk_space(str(tmp_path), 100)

        assert not result.skipped
        assert 0 <= result.usage_percent <= 100

    @given(
        usage=st.integers(min_value=0, max_value=100),
        threshold=st.integers(min_value=50, max_value=95),
    )
    def test_threshold_property(self, usage: int, threshold: int):
        """The run is refused exactly when usage >= threshold."""
        with patch("rsyncsnap.space._run_df", return_value=_df_output(f"{usage}%")):
            if usage >= threshold:
                with pytest.raises(DiskThresholdExceeded):
                    check_disk_space("/data", threshold)
            else:
                assert check_disk_space("/data", threshold).usage_percent == usage


class TestRunDf:
    """Tests for the df invocation."""

    def test_missing_path(self, tmp_path: Path):
        with pytest.raises(DiskCheckParseError):
            _run_df(tmp_path / "missing")

    def test_df_not_runnable(self):
        with patch("rsyncsnap.space.subprocess.run", side_effect=OSError("no df")):
            with pytest.raises(DiskCheckParseError, match="no df"):
                _run_df("/")

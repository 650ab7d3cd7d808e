"""
Tests for the shared exception hierarchy, logging setup and decorators.
"""

import logging
import re
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from common.exceptions import (
    CommandError,
    DriverInstallError,
    InstallFailure,
    InvalidConfigError,
    RollbackError,
    SetupError,
    SnapshotCorruptError,
    SnapshotError,
)


LINE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2} \d{2}:\d{2}:\d{2} - .+$")


class TestExceptions:
    """Tests for the exception hierarchy."""

    @pytest.mark.unit
    def test_base_error_string(self):
        err = SetupError("broke", code="X", details={"a": 1}, cause=ValueError("inner"))
        text = str(err)
        assert text.startswith("[X] broke")
        assert "details" in text
        assert "inner" in text

    @pytest.mark.unit
    def test_default_code_is_class_name(self):
        assert SetupError("msg").code == "SetupError"

    @pytest.mark.unit
    def test_to_dict(self):
        err = InvalidConfigError("packages", [], "empty")
        data = err.to_dict()
        assert data["error"] == "INVALID_CONFIG"
        assert data["details"]["field"] == "packages"
        assert data["recoverable"] is True

    @pytest.mark.unit
    def test_command_error_keeps_argv(self):
        err = CommandError(["apt-get", "update"], 100, "E: lock held\n")
        assert err.returncode == 100
        assert err.argv == ["apt-get", "update"]
        assert err.details["stderr"] == "E: lock held"
        assert "apt-get update" in err.message

    @pytest.mark.unit
    def test_corrupt_snapshot_is_snapshot_error(self):
        err = SnapshotCorruptError("/tmp/snap", "manifest missing")
        assert isinstance(err, SnapshotError)
        assert err.code == "SNAPSHOT_CORRUPT"
        assert not err.recoverable

    @pytest.mark.unit
    def test_rollback_error_names_step(self):
        err = RollbackError("clearing package selections")
        assert err.step == "clearing package selections"
        assert "clearing package selections" in err.message

    @pytest.mark.unit
    def test_install_failure_lists_attempts(self):
        err = InstallFailure("torchvision", ["prebuilt-artifact", "source-build"])
        assert err.attempted == ["prebuilt-artifact", "source-build"]
        assert "attempted: prebuilt-artifact, source-build" in err.message

    @pytest.mark.unit
    def test_driver_install_error_carries_report(self):
        report = object()
        err = DriverInstallError("install_rocm", report=report)
        assert err.step_id == "install_rocm"
        assert err.report is report


class TestLogging:
    """Tests for setup_logging()."""

    @pytest.mark.unit
    def test_file_lines_have_timestamp_format(self, tmp_path):
        from common.logging_config import setup_logging

        log_file = tmp_path / "logs" / "run.log"
        setup_logging(log_file=log_file)
        logging.getLogger("rocm_setup.test").info("Step 1/7: Updating system packages...")
        logging.getLogger("rocm_setup.test").debug("CMD apt-get update")

        lines = log_file.read_text().splitlines()
        assert len(lines) == 2
        for line in lines:
            assert LINE_PATTERN.match(line)
        assert lines[0].endswith(" - Step 1/7: Updating system packages...")

    @pytest.mark.unit
    def test_file_is_appended(self, tmp_path):
        from common.logging_config import setup_logging

        log_file = tmp_path / "run.log"
        log_file.write_text("2024-01-01 00:00:00 - earlier run\n")

        setup_logging(log_file=log_file)
        logging.getLogger("test").info("second run")

        lines = log_file.read_text().splitlines()
        assert lines[0] == "2024-01-01 00:00:00 - earlier run"
        assert lines[1].endswith("second run")

    @pytest.mark.unit
    def test_repeated_setup_does_not_duplicate_handlers(self, tmp_path):
        from common.logging_config import setup_logging

        log_file = tmp_path / "run.log"
        setup_logging(log_file=log_file)
        setup_logging(log_file=log_file)
        logging.getLogger("test").info("once")

        assert log_file.read_text().count("once") == 1

    @pytest.mark.unit
    def test_colored_formatter_wraps_errors(self):
        from common.logging_config import ColoredFormatter, DATE_FORMAT, LOG_FORMAT

        formatter = ColoredFormatter(LOG_FORMAT, datefmt=DATE_FORMAT)
        record = logging.LogRecord("x", logging.ERROR, __file__, 1, "bad", None, None)
        text = formatter.format(record)
        assert text.startswith("\033[31m")
        assert text.endswith("\033[0m")

        record = logging.LogRecord("x", logging.INFO, __file__, 1, "fine", None, None)
        assert "\033[" not in formatter.format(record)


class TestTimed:
    """Tests for the timed decorator."""

    @pytest.mark.unit
    def test_returns_value_and_logs(self, caplog):
        from common.decorators import timed

        @timed
        def work(x):
            return x * 2

        with caplog.at_level(logging.DEBUG, logger="common.decorators"):
            assert work(21) == 42
        assert any("completed in" in r.message for r in caplog.records)

    @pytest.mark.unit
    def test_logs_on_exception(self, caplog):
        from common.decorators import timed

        @timed
        def fail():
            raise RuntimeError("boom")

        with caplog.at_level(logging.DEBUG, logger="common.decorators"):
            with pytest.raises(RuntimeError):
                fail()
        assert any("fail" in r.message for r in caplog.records)

"""Tests for scopedaccess.logging."""

from __future__ import annotations

import json
import logging

import pytest

from scopedaccess import LogLevel, ScopedAccessConfig, get_package_logger, safe_preview, setup_logging
from scopedaccess.logging import ScopedAccessFormatter


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = root.handlers[:], root.level
    yield
    root.handlers[:] = handlers
    root.setLevel(level)


def _record(msg: str = "Test message", **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="",
        lineno=0,
        msg=msg,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestSafePreview:
    """Tests for safe_preview."""

    def test_none_value(self) -> None:
        assert safe_preview(None) == ""

    def test_whitespace_normalized(self) -> None:
        assert safe_preview("hello\n\tworld  test") == "hello world test"

    def test_truncation(self) -> None:
        result = safe_preview("a" * 300, limit=100)
        assert len(result) == 100
        assert result.endswith("…")

    def test_dict_value(self) -> None:
        assert safe_preview({"package": "a"}) == '{"package": "a"}'


class TestFormatter:
    """Tests for ScopedAccessFormatter."""

    def test_json_with_package(self) -> None:
        data = json.loads(ScopedAccessFormatter(json_format=True).format(_record(package="com.example")))
        assert data["level"] == "INFO"
        assert data["message"] == "Test message"
        assert data["package"] == "com.example"

    def test_json_includes_extra_fields(self) -> None:
        data = json.loads(ScopedAccessFormatter(json_format=True).format(_record(error_code="INVALID_REQUEST")))
        assert data["error_code"] == "INVALID_REQUEST"
        assert "package" not in data

    def test_plain_with_package(self) -> None:
        result = ScopedAccessFormatter(json_format=False).format(_record(package="com.example"))
        assert "INFO" in result
        assert "package=com.example" in result
        assert result.endswith(": Test message")


class TestPackageLogger:
    """Tests for the package logger adapter."""

    def test_package_added_to_record(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = get_package_logger("scopedaccess.test", "com.example")
        with caplog.at_level(logging.INFO, logger="scopedaccess.test"):
            logger.info("Merged %d rows", 2)
        assert caplog.records[0].package == "com.example"
        assert caplog.records[0].getMessage() == "Merged 2 rows"

    def test_package_override(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = get_package_logger("scopedaccess.test")
        with caplog.at_level(logging.INFO, logger="scopedaccess.test"):
            logger.info("x", package="other")
            logger.info("y")
        assert caplog.records[0].package == "other"
        assert not hasattr(caplog.records[1], "package")


class TestSetupLogging:
    """Tests for setup_logging."""

    def test_level_from_config(self) -> None:
        setup_logging(ScopedAccessConfig(log_level=LogLevel.DEBUG))
        assert logging.getLogger().level == logging.DEBUG

    def test_json_output(self, capsys: pytest.CaptureFixture) -> None:
        setup_logging(ScopedAccessConfig(log_json=True))
        logging.getLogger("test").info("Test message")
        data = json.loads(capsys.readouterr().err.strip())
        assert data["message"] == "Test message"
        assert data["logger"] == "test"

    def test_plain_output_override(self, capsys: pytest.CaptureFixture) -> None:
        setup_logging(ScopedAccessConfig(log_json=True), json_format=False)
        logging.getLogger("test").warning("Test message")
        output = capsys.readouterr().err.strip()
        assert "WARNING" in output
        assert not output.startswith("{")

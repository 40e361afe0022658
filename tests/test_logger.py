"""Test logging setup"""

import logging

import pytest

from audiomirror.utils.logger import (
    ColoredFormatter,
    ConsoleMessageFilter,
    create_operation_logger,
    log_performance,
    parse_size,
    setup_logging,
)


def record(level, console_output=False):
    rec = logging.LogRecord("audiomirror.test", level, __file__, 1, "message", None, None)
    if console_output:
        rec.console_output = True
    return rec


class TestConsoleFilter:
    """Test which records reach the console"""

    def test_warnings_pass(self):
        assert ConsoleMessageFilter().filter(record(logging.WARNING))

    def test_plain_info_is_file_only(self):
        assert not ConsoleMessageFilter().filter(record(logging.INFO))

    def test_marked_info_passes(self):
        assert ConsoleMessageFilter().filter(record(logging.INFO, console_output=True))


class TestColoredFormatter:
    def test_plain(self):
        formatter = ColoredFormatter(fmt='%(levelname)s: %(message)s', use_colors=False)
        assert formatter.format(record(logging.ERROR)) == "ERROR: message"

    def test_colored_does_not_change_record(self):
        rec = record(logging.ERROR)
        text = ColoredFormatter(fmt='%(levelname)s', use_colors=True).format(rec)

        assert "\x1b[" in text
        assert rec.levelname == "ERROR"


class TestSetupLogging:
    """Test handler configuration"""

    def test_file_logging(self, tmp_path):
        log_file = tmp_path / "logs" / "audiomirror.log"
        setup_logging(level="DEBUG", log_file=str(log_file), console_output=False)

        logging.getLogger("audiomirror.test").debug("written to file")
        for handler in logging.getLogger("audiomirror").handlers:
            handler.flush()

        assert "written to file" in log_file.read_text()
        setup_logging(console_output=False)

    def test_handlers_replaced(self):
        setup_logging(console_output=True)
        setup_logging(console_output=True)
        assert len(logging.getLogger("audiomirror").handlers) == 1

    @pytest.mark.parametrize("text, expected", [
        ("10MB", 10 * 1024 ** 2),
        ("500KB", 500 * 1024),
        ("1.5 GB", int(1.5 * 1024 ** 3)),
        ("12B", 12),
    ])
    def test_parse_size(self, text, expected):
        assert parse_size(text) == expected

    def test_parse_size_invalid(self):
        with pytest.raises(ValueError):
            parse_size("lots")


class TestOperationLogger:
    def test_complete_returns_duration(self):
        operation = create_operation_logger("audiomirror.test", "Sync")
        assert operation.complete() == 0.0

        operation.start()
        assert operation.complete() >= 0.0

    def test_log_performance_passes_through(self):
        @log_performance
        def double(x):
            return x * 2

        @log_performance
        def broken():
            raise KeyError("x")

        assert double(4) == 8
        assert double.__name__ == "double"
        with pytest.raises(KeyError):
            broken()

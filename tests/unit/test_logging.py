"""
Unit tests for the logging and error framework.

Tests cover:
- Logging setup and configuration
- Structured formatter
- Contextual logger functionality
- Audit logging decorator
- Exception taxonomy
"""

import json
import logging
import sys

import pytest

from cc_remote.utils.logging import (
    CCRemoteException,
    CollisionError,
    ContextualLogger,
    DependencyMissingError,
    DiscoveryTimeoutError,
    LogContext,
    LogLevel,
    NameExhaustedError,
    StructuredFormatter,
    audit_log,
    get_logger,
    setup_logging,
)


@pytest.fixture
def reset_logging():
    """Restore root logger handlers and level after a test."""
    root_logger = logging.getLogger()
    handlers = root_logger.handlers[:]
    level = root_logger.level
    yield
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        if handler not in handlers:
            handler.close()
    for handler in handlers:
        root_logger.addHandler(handler)
    root_logger.setLevel(level)


def make_record(message="hello", **extra):
    record = logging.LogRecord(
        name="cc_remote.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestLoggingSetup:
    """Test logging setup and configuration."""

    def test_setup_console_only(self, reset_logging):
        setup_logging(log_level=LogLevel.DEBUG, enable_structured=False)

        root_logger = logging.getLogger()
        assert root_logger.level == logging.DEBUG
        assert len(root_logger.handlers) == 1
        assert isinstance(root_logger.handlers[0], logging.StreamHandler)
        assert not isinstance(root_logger.handlers[0].formatter, StructuredFormatter)

    def test_setup_file_is_structured(self, tmp_path, reset_logging):
        """Test that file logs are JSON and the directory is created."""
        log_file = tmp_path / "logs" / "cc-remote.log"

        setup_logging(log_level="INFO", log_file=log_file, enable_console=False)
        get_logger("cc_remote.test", LogContext.STORE).info("Wrote record", path="x")
        for handler in logging.getLogger().handlers:
            handler.flush()

        entry = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert entry["message"] == "Wrote record"
        assert entry["context"] == "store"
        assert entry["path"] == "x"

    def test_unknown_level_falls_back_to_warning(self, reset_logging):
        setup_logging(log_level="chatty", enable_console=True)
        assert logging.getLogger().level == logging.WARNING

    def test_third_party_loggers_quieted(self, reset_logging):
        setup_logging(log_level=LogLevel.DEBUG)
        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("libtmux").level == logging.WARNING


class TestStructuredFormatter:
    """Test the JSON formatter."""

    def test_basic_fields(self):
        data = json.loads(StructuredFormatter().format(make_record()))
        assert data["message"] == "hello"
        assert data["level"] == "INFO"
        assert data["logger"] == "cc_remote.test"
        assert "timestamp" in data

    def test_context_and_extra_fields(self):
        record = make_record(context="tmux", session_name="demo", window="tunnel")
        data = json.loads(StructuredFormatter().format(record))
        assert data["context"] == "tmux"
        assert data["session_name"] == "demo"
        assert data["window"] == "tunnel"

    def test_exception_info(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = make_record()
            record.exc_info = sys.exc_info()

        data = json.loads(StructuredFormatter().format(record))
        assert data["exception"]["type"] == "ValueError"
        assert data["exception"]["message"] == "boom"


class TestContextualLogger:
    """Test the contextual logger."""

    def test_context_injected(self, caplog):
        logger = ContextualLogger("cc_remote.test.ctx", LogContext.TUNNEL)
        with caplog.at_level(logging.DEBUG, logger="cc_remote.test.ctx"):
            logger.debug("polling", session_name="demo", attempt=2)

        record = caplog.records[-1]
        assert record.context == "tunnel"
        assert record.session_name == "demo"
        assert record.attempt == 2

    def test_error_with_exception(self, caplog):
        logger = get_logger("cc_remote.test.err", LogContext.CLI)
        with caplog.at_level(logging.ERROR, logger="cc_remote.test.err"):
            logger.error("failed", exception=RuntimeError("x"), code=3)

        record = caplog.records[-1]
        assert record.exc_info is not None
        assert record.code == 3

    def test_session_name_only_when_passed(self, caplog):
        """Test that records carry a session name only when one is given."""
        logger = get_logger("cc_remote.test.plain", LogContext.STORE)
        with caplog.at_level(logging.ERROR, logger="cc_remote.test.plain"):
            logger.error("failed", exception=RuntimeError("x"))

        assert not hasattr(caplog.records[-1], "session_name")
        assert not hasattr(logger, "set_session_name")


class TestAuditLog:
    """Test the audit logging decorator."""

    def test_success_is_logged(self, caplog):
        @audit_log("demo-op")
        def operation(value):
            return value * 2

        with caplog.at_level(logging.INFO):
            assert operation(21) == 42

        messages = [r.getMessage() for r in caplog.records]
        assert "Audit: demo-op started" in messages
        assert "Audit: demo-op completed successfully" in messages

    def test_failure_is_logged_and_reraised(self, caplog):
        @audit_log("demo-op")
        def operation():
            raise CCRemoteException("nope")

        with caplog.at_level(logging.INFO):
            with pytest.raises(CCRemoteException):
                operation()

        failed = [r for r in caplog.records if r.getMessage() == "Audit: demo-op failed"]
        assert failed[0].error_type == "CCRemoteException"


class TestExceptions:
    """Test the exception taxonomy."""

    def test_base_exception_context(self):
        error = CCRemoteException("message", {"name": "demo"})
        assert str(error) == "message"
        assert error.context == {"name": "demo"}
        assert error.timestamp is not None

    def test_dependency_missing_guidance(self):
        error = DependencyMissingError("tmux", "Install tmux")
        assert error.binary == "tmux"
        assert "tmux" in error.message
        assert error.message.endswith("Install tmux")

    def test_discovery_timeout_fields(self):
        error = DiscoveryTimeoutError("late", local_port=7681, timeout=30.0, attempts=31)
        assert error.context == {"local_port": 7681, "timeout": 30.0, "attempts": 31}

    def test_name_exhausted_is_collision(self):
        assert issubclass(NameExhaustedError, CollisionError)
        assert NameExhaustedError("full").choices == ()

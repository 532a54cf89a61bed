"""
Logging and error handling framework for cc-remote.

This module provides:
- Structured logging configuration
- The exception taxonomy shared by every component
- Context-aware logging utilities
- Audit logging for lifecycle operations
"""

import functools
import json
import logging
import sys
import traceback
from collections.abc import Callable
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any


class LogLevel(str, Enum):
    """Log level enumeration for type safety."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogContext(str, Enum):
    """Log context categories for structured logging."""

    CLI = "cli"
    CONFIG = "config"
    STORE = "store"
    TMUX = "tmux"
    TUNNEL = "tunnel"
    LIFECYCLE = "lifecycle"
    NOTIFY = "notify"


class CCRemoteException(Exception):
    """Base exception class for all cc-remote errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)


class NotFoundError(CCRemoteException):
    """A session name has neither a record nor a live tmux session."""

    pass


class CollisionError(CCRemoteException):
    """A requested session name is already in use.

    ``choices`` lists the resolutions the caller may offer the user. It is
    empty when the collision is a hard error (rename).
    """

    def __init__(
        self,
        message: str,
        status: Any = None,
        choices: tuple[Any, ...] = (),
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context)
        self.status = status
        self.choices = choices


class NameExhaustedError(CollisionError):
    """No free suffixed name was found below the configured ceiling."""

    pass


class InvalidNameError(CCRemoteException):
    """Session name cannot be used as a tmux target or file name."""

    pass


class AbortedError(CCRemoteException):
    """The caller chose to abort an operation."""

    pass


class DependencyMissingError(CCRemoteException):
    """A required external binary is not installed."""

    def __init__(self, binary: str, guidance: str = ""):
        message = f"Required binary '{binary}' was not found on PATH"
        if guidance:
            message += f". {guidance}"
        super().__init__(message, {"binary": binary})
        self.binary = binary
        self.guidance = guidance


class DiscoveryTimeoutError(CCRemoteException):
    """The tunnel public URL was not observed within the timeout."""

    def __init__(
        self,
        message: str,
        local_port: int | None = None,
        timeout: float | None = None,
        attempts: int = 0,
    ):
        super().__init__(
            message,
            {"local_port": local_port, "timeout": timeout, "attempts": attempts},
        )
        self.local_port = local_port
        self.timeout = timeout
        self.attempts = attempts


class ExternalCommandError(CCRemoteException):
    """tmux or another external binary failed unexpectedly."""

    def __init__(
        self,
        message: str,
        diagnostic: str = "",
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message, context)
        self.diagnostic = diagnostic


class StaleMetadataError(CCRemoteException):
    """On-disk metadata disagrees with the live tmux state."""

    pass


class MetadataError(CCRemoteException):
    """A session record file is unreadable or corrupt."""

    pass


class ConfigurationError(CCRemoteException):
    """Errors related to configuration and setup."""

    pass


class StructuredFormatter(logging.Formatter):
    """Custom formatter for structured JSON logging."""

    # Standard LogRecord attributes that are not copied as extra fields
    standard_fields = {
        "name",
        "msg",
        "args",
        "levelname",
        "levelno",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "getMessage",
        "context",
        "session_name",
    }

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if hasattr(record, "context"):
            log_data["context"] = record.context

        if getattr(record, "session_name", None):
            log_data["session_name"] = record.session_name

        for key, value in record.__dict__.items():
            if key not in self.standard_fields and not key.startswith("_"):
                log_data[key] = value

        if record.exc_info and record.exc_info[0] is not None:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(log_data, default=str)


class ContextualLogger:
    """Logger with context management for structured logging."""

    def __init__(self, name: str, context: LogContext):
        self.logger = logging.getLogger(name)
        self.context = context.value

    def _log(
        self, level: int, message: str, extra_context: dict[str, Any] | None = None
    ) -> None:
        """Internal logging method with context injection."""
        extra: dict[str, Any] = {
            "context": self.context,
        }

        if extra_context:
            extra.update(extra_context)

        self.logger.log(level, message, extra=extra)

    def debug(self, message: str, **kwargs) -> None:
        """Log debug message with context."""
        self._log(logging.DEBUG, message, kwargs)

    def info(self, message: str, **kwargs) -> None:
        """Log info message with context."""
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs) -> None:
        """Log warning message with context."""
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, exception: Exception | None = None, **kwargs) -> None:
        """Log error message with context and optional exception."""
        if exception:
            self.logger.error(
                message,
                exc_info=exception,
                extra={
                    "context": self.context,
                    **kwargs,
                },
            )
        else:
            self._log(logging.ERROR, message, kwargs)


def get_logger(name: str, context: LogContext) -> ContextualLogger:
    """Get a contextual logger instance."""
    return ContextualLogger(name, context)


def setup_logging(
    log_level: str | LogLevel = LogLevel.WARNING,
    log_file: Path | None = None,
    enable_structured: bool = True,
    enable_console: bool = True,
) -> None:
    """
    Setup logging configuration.

    Console output goes to stderr so that it never interleaves with
    command output written to stdout.

    Args:
        log_level: Minimum log level to capture
        log_file: Optional file path for log output
        enable_structured: Use JSON structured logging format
        enable_console: Enable console output
    """
    if isinstance(log_level, LogLevel):
        log_level = log_level.value

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)

    handlers: list[logging.Handler] = []

    if enable_console:
        console_handler = logging.StreamHandler(sys.stderr)
        if enable_structured:
            console_handler.setFormatter(StructuredFormatter())
        else:
            console_handler.setFormatter(
                logging.Formatter(
                    "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
                )
            )
        handlers.append(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(StructuredFormatter())
        handlers.append(file_handler)

    root_logger = logging.getLogger()

    # Clear existing handlers first
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    root_logger.setLevel(getattr(logging, log_level.upper(), logging.WARNING))
    for handler in handlers:
        root_logger.addHandler(handler)

    # Suppress noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("libtmux").setLevel(logging.WARNING)


def audit_log(action: str, log_context: LogContext = LogContext.LIFECYCLE):
    """Decorator for audit logging of lifecycle operations."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger = get_logger(f"{func.__module__}.audit", log_context)

            logger.info(
                f"Audit: {action} started",
                action=action,
                function=func.__name__,
            )

            try:
                result = func(*args, **kwargs)

                logger.info(
                    f"Audit: {action} completed successfully",
                    action=action,
                    function=func.__name__,
                    status="success",
                )

                return result

            except Exception as e:
                logger.warning(
                    f"Audit: {action} failed",
                    action=action,
                    function=func.__name__,
                    status="error",
                    error=str(e),
                    error_type=type(e).__name__,
                )

                raise

        return wrapper

    return decorator

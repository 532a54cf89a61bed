"""Logging utilities for tmux operations."""

from typing import Any

from ..utils.logging import LogContext, get_logger

tmux_logger = get_logger("cc_remote.tmux", LogContext.TMUX)


def log_session_operation(
    operation: str, session_name: str, status: str, context: dict[str, Any] | None = None
) -> None:
    """Log session operation."""
    message = f"Session {operation} {status} - {session_name}"

    if status == "error":
        tmux_logger.error(message, operation=operation, details=context or {})
    else:
        tmux_logger.info(message, operation=operation, details=context or {})


def log_window_operation(
    operation: str, session_name: str, window_label: str, status: str
) -> None:
    """Log a window-level operation inside a session."""
    message = f"Window {operation} {status} - {session_name}:{window_label}"
    if status == "error":
        tmux_logger.error(message, operation=operation, window=window_label)
    else:
        tmux_logger.info(message, operation=operation, window=window_label)


def log_session_attach(session_name: str, switched: bool) -> None:
    """Log session attachment."""
    mode = "switch-client" if switched else "attach-session"
    tmux_logger.info(f"Session attached - {session_name} ({mode})", mode=mode)


def log_layout_setup(session_name: str, windows: list[str]) -> None:
    """Log window layout setup."""
    tmux_logger.info(
        f"Windows created - {session_name} (windows: {windows})", windows=windows
    )

"""
Tmux session management service.

This module is the only place that talks to tmux. Each managed session is
namespaced as ``<prefix>-<name>`` and carries two windows: one running the
assistant process and one running the tunnel process.
"""

import os
import shutil
import subprocess  # nosec B404
from dataclasses import dataclass, field
from pathlib import Path

import libtmux
from libtmux import exc as tmux_exc

from ..utils.logging import (
    CollisionError,
    DependencyMissingError,
    ExternalCommandError,
    NotFoundError,
)
from .logging_utils import (
    log_layout_setup,
    log_session_attach,
    log_session_operation,
    log_window_operation,
    tmux_logger,
)

TMUX_GUIDANCE = "Install tmux (e.g. 'brew install tmux' or 'apt install tmux')"


@dataclass
class LiveWindow:
    """A window observed in a live tmux session."""

    label: str
    command: str | None = None
    path: str | None = None
    dead: bool = False


@dataclass
class LiveSession:
    """Information about a live tmux session."""

    name: str
    tmux_name: str
    windows: list[LiveWindow] = field(default_factory=list)
    attached_clients: int = 0

    def window(self, label: str) -> LiveWindow | None:
        for window in self.windows:
            if window.label == label:
                return window
        return None

    @property
    def window_labels(self) -> list[str]:
        return [w.label for w in self.windows]


class TmuxService:
    """Creates, inspects and tears down namespaced tmux sessions."""

    def __init__(
        self,
        session_prefix: str = "cc-remote",
        assistant_window: str = "assistant",
        tunnel_window: str = "tunnel",
        server: libtmux.Server | None = None,
    ):
        """Initialize tmux service.

        Args:
            session_prefix: Namespace prepended to every session name
            assistant_window: Label of the assistant window
            tunnel_window: Label of the tunnel window
            server: Optional libtmux server (defaults to the user's server)
        """
        self._server = server if server is not None else libtmux.Server()
        self._session_prefix = session_prefix
        self.assistant_window = assistant_window
        self.tunnel_window = tunnel_window

    def tmux_name(self, name: str) -> str:
        """Namespaced tmux session name for a logical session name."""
        return f"{self._session_prefix}-{name}"

    def ensure_available(self) -> None:
        """Raise DependencyMissingError if tmux is not installed."""
        if shutil.which("tmux") is None:
            raise DependencyMissingError("tmux", TMUX_GUIDANCE)

    def session_exists(self, name: str) -> bool:
        """Check if a tmux session exists for the logical name."""
        self.ensure_available()
        try:
            return self._server.has_session(self.tmux_name(name), exact=True)
        except tmux_exc.TmuxCommandNotFound:
            raise DependencyMissingError("tmux", TMUX_GUIDANCE)
        except tmux_exc.LibTmuxException as e:
            # has-session fails with "no server running" when tmux is idle
            tmux_logger.debug("has-session failed", error=str(e))
            return False

    def list_sessions(self) -> list[str]:
        """Logical names of every live session in this namespace."""
        self.ensure_available()
        prefix = f"{self._session_prefix}-"
        try:
            sessions = self._server.sessions
        except tmux_exc.LibTmuxException as e:
            tmux_logger.debug("Could not list sessions", error=str(e))
            return []
        return sorted(
            s.session_name[len(prefix) :]
            for s in sessions
            if s.session_name and s.session_name.startswith(prefix)
        )

    def create_session(
        self,
        name: str,
        working_directory: Path,
        assistant_command: str,
        tunnel_command: str,
    ) -> LiveSession:
        """Create a session with an assistant window and a tunnel window.

        Args:
            name: Logical session name
            working_directory: Directory both windows start in
            assistant_command: Command for the assistant window
            tunnel_command: Command for the tunnel window

        Returns:
            LiveSession describing the new session

        Raises:
            DependencyMissingError: If tmux is not installed
            CollisionError: If the session already exists
            ExternalCommandError: If tmux rejects the session
        """
        self.ensure_available()
        tmux_name = self.tmux_name(name)

        if not working_directory.is_dir():
            raise NotFoundError(
                f"Working directory {working_directory} does not exist",
                {"working_directory": str(working_directory)},
            )

        if self.session_exists(name):
            raise CollisionError(
                f"tmux session {tmux_name} already exists", context={"name": name}
            )

        log_session_operation("create", tmux_name, "starting")

        try:
            session = self._server.new_session(
                session_name=tmux_name,
                start_directory=str(working_directory),
                window_name=self.assistant_window,
                window_command=assistant_command,
                attach=False,
            )
            session.new_window(
                window_name=self.tunnel_window,
                start_directory=str(working_directory),
                attach=False,
                window_shell=tunnel_command,
            )
        except tmux_exc.TmuxSessionExists as e:
            log_session_operation("create", tmux_name, "error", {"error": str(e)})
            raise CollisionError(
                f"tmux session {tmux_name} already exists", context={"name": name}
            )
        except tmux_exc.LibTmuxException as e:
            log_session_operation("create", tmux_name, "error", {"error": str(e)})
            raise ExternalCommandError(
                f"Failed to create tmux session {tmux_name}", diagnostic=str(e)
            )

        log_layout_setup(tmux_name, [self.assistant_window, self.tunnel_window])
        log_session_operation("create", tmux_name, "success")

        live = self.describe(name)
        if live is None:
            raise ExternalCommandError(
                f"tmux session {tmux_name} exited immediately after creation",
                diagnostic="check the assistant command",
            )
        return live

    def create_window(self, name: str, label: str, command: str) -> None:
        """Create a window in an existing session.

        Raises:
            NotFoundError: If the session does not exist
            ExternalCommandError: If tmux rejects the window
        """
        session = self._require_session(name)
        start_directory = self._window_path(session, self.assistant_window)
        try:
            session.new_window(
                window_name=label,
                start_directory=start_directory,
                attach=False,
                window_shell=command,
            )
        except tmux_exc.LibTmuxException as e:
            log_window_operation("create", session.session_name, label, "error")
            raise ExternalCommandError(
                f"Failed to create window {label} in {session.session_name}",
                diagnostic=str(e),
            )
        log_window_operation("create", session.session_name, label, "success")

    def kill_window(self, name: str, label: str) -> bool:
        """Kill a window. Missing sessions and windows are a no-op.

        Returns:
            True if a window was killed
        """
        self.ensure_available()
        session = self._get_session(name)
        if session is None:
            return False

        window = session.windows.get(window_name=label, default=None)
        if window is None:
            tmux_logger.debug(f"Window {label} not present in {session.session_name}")
            return False

        try:
            window.kill()
        except tmux_exc.LibTmuxException as e:
            log_window_operation("kill", session.session_name, label, "error")
            raise ExternalCommandError(
                f"Failed to kill window {label} in {session.session_name}",
                diagnostic=str(e),
            )
        log_window_operation("kill", session.session_name, label, "success")
        return True

    def kill_session(self, name: str) -> bool:
        """Kill a session and all its windows. Missing sessions are a no-op.

        Returns:
            True if a session was killed
        """
        self.ensure_available()
        session = self._get_session(name)
        if session is None:
            tmux_logger.debug(f"Session {self.tmux_name(name)} does not exist")
            return False

        try:
            session.kill()
        except tmux_exc.LibTmuxException as e:
            log_session_operation(
                "kill", self.tmux_name(name), "error", {"error": str(e)}
            )
            raise ExternalCommandError(
                f"Failed to kill tmux session {self.tmux_name(name)}",
                diagnostic=str(e),
            )

        log_session_operation("kill", self.tmux_name(name), "success")
        return True

    def rename_session(self, old_name: str, new_name: str) -> None:
        """Rename a session within the namespace.

        Raises:
            NotFoundError: If the old session does not exist
            CollisionError: If the new name is already live
            ExternalCommandError: If tmux rejects the rename
        """
        session = self._require_session(old_name)
        if self.session_exists(new_name):
            raise CollisionError(
                f"tmux session {self.tmux_name(new_name)} already exists",
                context={"name": new_name},
            )

        try:
            session.rename_session(self.tmux_name(new_name))
        except tmux_exc.LibTmuxException as e:
            log_session_operation(
                "rename", self.tmux_name(old_name), "error", {"error": str(e)}
            )
            raise ExternalCommandError(
                f"Failed to rename tmux session {self.tmux_name(old_name)}",
                diagnostic=str(e),
            )

        log_session_operation(
            "rename",
            self.tmux_name(old_name),
            "success",
            {"new_name": self.tmux_name(new_name)},
        )

    def attach(self, name: str) -> None:
        """Hand the terminal over to a session.

        Inside tmux the current client is switched; otherwise this blocks
        until the user detaches.
        """
        session = self._require_session(name)
        tmux_name = self.tmux_name(name)

        if os.environ.get("TMUX"):
            try:
                session.switch_client()
            except tmux_exc.LibTmuxException as e:
                raise ExternalCommandError(
                    f"Failed to switch to tmux session {tmux_name}", diagnostic=str(e)
                )
            log_session_attach(tmux_name, switched=True)
            return

        log_session_attach(tmux_name, switched=False)
        result = subprocess.run(  # nosec B603 B607
            ["tmux", "attach-session", "-t", f"={tmux_name}"], check=False
        )
        if result.returncode != 0:
            raise ExternalCommandError(
                f"Failed to attach to tmux session {tmux_name}",
                diagnostic=f"tmux attach-session exited with status {result.returncode}",
            )

    def describe(self, name: str) -> LiveSession | None:
        """Inspect a live session.

        Returns:
            LiveSession or None if the session does not exist
        """
        self.ensure_available()
        session = self._get_session(name)
        if session is None:
            return None

        windows = []
        for window in session.windows:
            pane = window.active_pane
            windows.append(
                LiveWindow(
                    label=window.window_name or "",
                    command=getattr(pane, "pane_current_command", None),
                    path=getattr(pane, "pane_current_path", None),
                    dead=getattr(pane, "pane_dead", None) == "1",
                )
            )

        try:
            attached = int(session.session_attached or 0)
        except (TypeError, ValueError):
            attached = 0

        return LiveSession(
            name=name,
            tmux_name=session.session_name,
            windows=windows,
            attached_clients=attached,
        )

    def _get_session(self, name: str) -> libtmux.Session | None:
        if not self.session_exists(name):
            return None
        try:
            return self._server.sessions.get(
                session_name=self.tmux_name(name), default=None
            )
        except tmux_exc.LibTmuxException as e:
            tmux_logger.debug(f"Could not look up session {self.tmux_name(name)}: {e}")
            return None

    def _require_session(self, name: str) -> libtmux.Session:
        session = self._get_session(name)
        if session is None:
            raise NotFoundError(
                f"tmux session {self.tmux_name(name)} is not running", {"name": name}
            )
        return session

    def _window_path(self, session: libtmux.Session, label: str) -> str | None:
        window = session.windows.get(window_name=label, default=None)
        if window is None or window.active_pane is None:
            return None
        return window.active_pane.pane_current_path

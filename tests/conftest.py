"""
Pytest configuration and shared fixtures for cc-remote tests.
"""

import logging
import os
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from cc_remote.config import CCRemoteConfig
from cc_remote.core.lifecycle import SessionManager
from cc_remote.notify import Notifier
from cc_remote.store import SessionStore
from cc_remote.tmux import LiveSession, LiveWindow
from cc_remote.utils.logging import (
    CollisionError,
    DiscoveryTimeoutError,
    ExternalCommandError,
    NotFoundError,
)


class FakeTmuxService:
    """In-memory stand-in for TmuxService.

    Each window gets a unique id so tests can tell a recreated window from
    an untouched one.
    """

    def __init__(self, assistant_window: str = "assistant", tunnel_window: str = "tunnel"):
        self.assistant_window = assistant_window
        self.tunnel_window = tunnel_window
        self.sessions: dict[str, dict] = {}
        self.attached: list[str] = []
        self.kill_error: str | None = None
        self.rename_error: str | None = None
        self._next_window_id = 0

    def _window(self, command: str) -> dict:
        self._next_window_id += 1
        return {"id": self._next_window_id, "command": command, "dead": False}

    def _require(self, name: str) -> dict:
        if name not in self.sessions:
            raise NotFoundError(f"tmux session cc-remote-{name} is not running")
        return self.sessions[name]

    def ensure_available(self) -> None:
        pass

    def session_exists(self, name: str) -> bool:
        return name in self.sessions

    def list_sessions(self) -> list[str]:
        return sorted(self.sessions)

    def create_session(self, name, working_directory, assistant_command, tunnel_command):
        if name in self.sessions:
            raise CollisionError(f"tmux session cc-remote-{name} already exists")
        self.sessions[name] = {
            "dir": str(working_directory),
            "windows": {
                self.assistant_window: self._window(assistant_command),
                self.tunnel_window: self._window(tunnel_command),
            },
        }
        return self.describe(name)

    def create_window(self, name: str, label: str, command: str) -> None:
        self._require(name)["windows"][label] = self._window(command)

    def kill_window(self, name: str, label: str) -> bool:
        session = self.sessions.get(name)
        if session is None:
            return False
        return session["windows"].pop(label, None) is not None

    def kill_session(self, name: str) -> bool:
        if self.kill_error:
            raise ExternalCommandError(
                f"Failed to kill tmux session cc-remote-{name}",
                diagnostic=self.kill_error,
            )
        return self.sessions.pop(name, None) is not None

    def rename_session(self, old_name: str, new_name: str) -> None:
        session = self._require(old_name)
        if new_name in self.sessions:
            raise CollisionError(f"tmux session cc-remote-{new_name} already exists")
        if self.rename_error:
            raise ExternalCommandError("rename failed", diagnostic=self.rename_error)
        self.sessions[new_name] = session
        del self.sessions[old_name]

    def attach(self, name: str) -> None:
        self._require(name)
        self.attached.append(name)

    def describe(self, name: str) -> LiveSession | None:
        session = self.sessions.get(name)
        if session is None:
            return None
        return LiveSession(
            name=name,
            tmux_name=f"cc-remote-{name}",
            windows=[
                LiveWindow(
                    label=label,
                    command=window["command"].split()[0],
                    path=session["dir"],
                    dead=window["dead"],
                )
                for label, window in session["windows"].items()
            ],
        )

    def window_id(self, name: str, label: str) -> int | None:
        window = self.sessions[name]["windows"].get(label)
        return window["id"] if window else None


class ScriptedDiscovery:
    """Tunnel discovery returning queued URLs; None or an empty queue times out."""

    def __init__(self) -> None:
        self.urls: list[str | None] = []
        self.calls: list[dict] = []
        self.closed = False

    def discover_public_url(self, local_port: int, timeout: float, interval: float = 1.0) -> str:
        self.calls.append({"local_port": local_port, "timeout": timeout, "interval": interval})
        url = self.urls.pop(0) if self.urls else None
        if url is None:
            raise DiscoveryTimeoutError(
                f"No public URL for local port {local_port} after {timeout:g}s",
                local_port=local_port,
                timeout=timeout,
                attempts=3,
            )
        return url

    def close(self) -> None:
        self.closed = True


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch, tmp_path):
    """Keep user configuration and environment out of tests."""
    for key in list(os.environ):
        if key.startswith("CC_REMOTE_"):
            monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv("TMUX", raising=False)
    monkeypatch.setattr(
        "cc_remote.config.loader.DEFAULT_CONFIG_DIR", tmp_path / "home-config"
    )
    monkeypatch.setenv("HOME", str(tmp_path / "home"))

    # CLI invocations reconfigure the root logger
    root_logger = logging.getLogger()
    handlers = root_logger.handlers[:]
    level = root_logger.level
    yield
    for handler in root_logger.handlers[:]:
        if handler not in handlers:
            root_logger.removeHandler(handler)
    for handler in handlers:
        if handler not in root_logger.handlers:
            root_logger.addHandler(handler)
    root_logger.setLevel(level)


@pytest.fixture
def workdir(tmp_path) -> Path:
    """A project directory sessions can be rooted at."""
    directory = tmp_path / "project"
    directory.mkdir()
    return directory


@pytest.fixture
def config(tmp_path) -> CCRemoteConfig:
    """Configuration pointing at a temporary state directory."""
    return CCRemoteConfig(
        state_dir=str(tmp_path / "sessions"),
        notify_command=None,
        discovery_timeout=5.0,
        poll_interval=0.5,
    )


@pytest.fixture
def store(config) -> SessionStore:
    session_store = SessionStore(config.state_path)
    session_store.initialize()
    return session_store


@pytest.fixture
def fake_tmux() -> FakeTmuxService:
    return FakeTmuxService()


@pytest.fixture
def discovery() -> ScriptedDiscovery:
    return ScriptedDiscovery()


@pytest.fixture
def notifier():
    return MagicMock(spec=Notifier)


@pytest.fixture
def manager(config, store, fake_tmux, discovery, notifier) -> SessionManager:
    """SessionManager wired to in-memory tmux and scripted discovery."""
    return SessionManager(
        config=config,
        store=store,
        tmux=fake_tmux,
        discovery=discovery,
        notifier=notifier,
    )

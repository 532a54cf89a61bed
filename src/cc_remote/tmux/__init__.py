"""
Tmux session management for cc-remote.

This package provides the process orchestrator:
- Namespaced session creation with assistant and tunnel windows
- Window replacement for tunnel recovery
- Session inspection, rename, attach and teardown
"""

from .service import LiveSession, LiveWindow, TmuxService

__all__ = [
    "LiveSession",
    "LiveWindow",
    "TmuxService",
]

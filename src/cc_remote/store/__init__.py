"""Session metadata persistence."""

from .metadata import SessionStore

__all__ = ["SessionStore"]

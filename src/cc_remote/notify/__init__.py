"""Notification dispatch."""

from .notifier import Notification, Notifier

__all__ = ["Notification", "Notifier"]

"""Shared enums for cc-remote."""

from enum import Enum


class SessionState(Enum):
    """Lifecycle state of a managed session."""

    PROVISIONING = "provisioning"
    ACTIVE = "active"
    DEGRADED = "degraded"


class CollisionChoice(Enum):
    """Resolution offered to the user when a session name is taken."""

    REUSE = "reuse"
    SUFFIX = "suffix"
    ABORT = "abort"


class ResolutionAction(Enum):
    """What the caller should do with a resolved name."""

    CREATE = "create"
    REUSE = "reuse"
    SUFFIX = "suffix"

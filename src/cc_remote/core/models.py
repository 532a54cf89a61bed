"""Session record model persisted by the metadata store."""

import re
from datetime import datetime, timezone
from pathlib import Path

from pydantic import BaseModel, Field, field_validator

from ..utils.logging import InvalidNameError
from .enums import SessionState

NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
MAX_NAME_LENGTH = 64


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_session_name(name: str) -> str:
    """Validate that a session name is usable as a tmux target and file name.

    Args:
        name: Requested session name

    Returns:
        The name, unchanged

    Raises:
        InvalidNameError: If the name is empty, too long or has other characters
    """
    if not name or len(name) > MAX_NAME_LENGTH or not NAME_PATTERN.match(name):
        raise InvalidNameError(
            f"Invalid session name '{name}': use 1-{MAX_NAME_LENGTH} letters, "
            "digits, '-' or '_'",
            {"name": name},
        )
    return name


def default_session_name(directory: Path) -> str:
    """Derive a session name from a directory's basename."""
    candidate = re.sub(r"[^A-Za-z0-9_-]+", "-", directory.name).strip("-")
    return candidate[:MAX_NAME_LENGTH] or "session"


class SessionRecord(BaseModel):
    """Durable projection of a tmux session and its tunnel."""

    name: str
    working_directory: str
    public_url: str | None = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("name")
    @classmethod
    def _check_name(cls, value: str) -> str:
        try:
            return validate_session_name(value)
        except InvalidNameError as e:
            raise ValueError(e.message)

    @field_validator("working_directory")
    @classmethod
    def _check_working_directory(cls, value: str) -> str:
        if not Path(value).is_absolute():
            raise ValueError(f"working_directory must be absolute, got '{value}'")
        return value

    @field_validator("public_url")
    @classmethod
    def _check_public_url(cls, value: str | None) -> str | None:
        if value is None:
            return None
        value = value.strip()
        if not value:
            return None
        if not value.startswith("https://") or len(value) <= len("https://"):
            raise ValueError(f"public_url must be an https URL, got '{value}'")
        return value

    @property
    def state(self) -> SessionState:
        """State derived from the record alone."""
        return SessionState.ACTIVE if self.public_url else SessionState.PROVISIONING

    def with_url(self, public_url: str | None) -> "SessionRecord":
        """Copy with a new public URL and a refreshed update time."""
        return self.model_validate(
            {**self.model_dump(), "public_url": public_url, "updated_at": utcnow()}
        )

    def renamed(self, name: str) -> "SessionRecord":
        """Copy under a new identity, keeping creation data."""
        return self.model_validate(
            {**self.model_dump(), "name": name, "updated_at": utcnow()}
        )

"""Session name resolution and collision handling."""

from dataclasses import dataclass

from ..store import SessionStore
from ..tmux import TmuxService
from ..utils.logging import (
    AbortedError,
    CollisionError,
    LogContext,
    NameExhaustedError,
    StaleMetadataError,
    get_logger,
)
from .enums import CollisionChoice, ResolutionAction
from .models import MAX_NAME_LENGTH, validate_session_name

logger = get_logger(__name__, LogContext.LIFECYCLE)

COLLISION_CHOICES = (
    CollisionChoice.REUSE,
    CollisionChoice.SUFFIX,
    CollisionChoice.ABORT,
)


@dataclass(frozen=True)
class NameStatus:
    """Where a name is already in use."""

    name: str
    has_record: bool
    is_live: bool

    @property
    def collides(self) -> bool:
        return self.has_record or self.is_live

    def describe(self) -> str:
        if self.has_record and self.is_live:
            return "a live session and a record"
        if self.is_live:
            return "a live session"
        return "a record (no live session)"


@dataclass(frozen=True)
class Resolution:
    """Outcome of resolving a requested name."""

    name: str
    action: ResolutionAction


class NameResolver:
    """Decides whether a requested name is used as-is, reused or suffixed."""

    def __init__(self, store: SessionStore, tmux: TmuxService, max_suffix: int = 100):
        self.store = store
        self.tmux = tmux
        self.max_suffix = max_suffix

    def check(self, name: str) -> NameStatus:
        return NameStatus(
            name=name,
            has_record=self.store.exists(name),
            is_live=self.tmux.session_exists(name),
        )

    def resolve(
        self, requested: str, choice: CollisionChoice | None = None
    ) -> Resolution:
        """Resolve a requested session name.

        Args:
            requested: Name the user asked for
            choice: How to handle a collision; None surfaces the collision

        Returns:
            Resolution with the final name and the action to take

        Raises:
            InvalidNameError: If the requested name is not usable
            CollisionError: If the name is taken and no choice was given
            AbortedError: If the caller chose to abort
            StaleMetadataError: If reuse was chosen but nothing is live
            NameExhaustedError: If no suffixed name is free
        """
        validate_session_name(requested)
        status = self.check(requested)

        if not status.collides:
            return Resolution(requested, ResolutionAction.CREATE)

        if choice is None:
            raise CollisionError(
                f"Session name '{requested}' is already used by {status.describe()}",
                status=status,
                choices=COLLISION_CHOICES,
                context={"name": requested},
            )

        if choice is CollisionChoice.ABORT:
            raise AbortedError(f"Aborted: session name '{requested}' is in use")

        if choice is CollisionChoice.REUSE:
            if not status.is_live:
                raise StaleMetadataError(
                    f"Cannot reuse '{requested}': a record exists but no session is "
                    f"running. Run 'stop' to clear the record, or pick a suffixed name",
                    {"name": requested},
                )
            return Resolution(requested, ResolutionAction.REUSE)

        return Resolution(self.next_free_name(requested), ResolutionAction.SUFFIX)

    def next_free_name(self, base: str) -> str:
        """Lowest ``base-N`` (N >= 2) with neither a record nor a live session."""
        for suffix in range(2, self.max_suffix + 1):
            candidate = f"{base}-{suffix}"
            if len(candidate) > MAX_NAME_LENGTH:
                raise NameExhaustedError(
                    f"No free name found for '{base}': '{candidate}' would exceed "
                    f"the {MAX_NAME_LENGTH} characters allowed in a session name",
                    context={"name": base, "max_length": MAX_NAME_LENGTH},
                )
            if not self.check(candidate).collides:
                logger.info(
                    "Disambiguated session name", requested=base, resolved=candidate
                )
                return candidate

        raise NameExhaustedError(
            f"No free name found for '{base}' up to suffix {self.max_suffix}",
            context={"name": base, "max_suffix": self.max_suffix},
        )

    def require_free(self, name: str) -> None:
        """Fail if ``name`` is taken. Used by rename, which never suffixes."""
        validate_session_name(name)
        status = self.check(name)
        if status.collides:
            raise CollisionError(
                f"Cannot use '{name}': already used by {status.describe()}",
                status=status,
                context={"name": name},
            )

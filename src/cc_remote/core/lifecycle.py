"""
Session lifecycle controller.

Composes the metadata store, name resolver, tmux service, tunnel discovery
and notifier into the user-facing operations. The states a session moves
through are:

    absent -> provisioning -> active -> degraded -> provisioning -> active
                                   \\-> absent (stop)

There is no locking between concurrent invocations. Every mutating
operation re-reads live tmux state and the record immediately before acting
and fails loudly when it finds something unexpected.
"""

from dataclasses import dataclass, field
from pathlib import Path

from ..config import CCRemoteConfig
from ..notify import Notifier
from ..store import SessionStore
from ..tmux import LiveSession, TmuxService
from ..tunnel import TunnelDiscovery
from ..utils.logging import (
    CollisionError,
    ConfigurationError,
    DiscoveryTimeoutError,
    ExternalCommandError,
    LogContext,
    MetadataError,
    NotFoundError,
    StaleMetadataError,
    audit_log,
    get_logger,
)
from .enums import CollisionChoice, ResolutionAction, SessionState
from .models import SessionRecord, utcnow, validate_session_name
from .naming import NameResolver

logger = get_logger(__name__, LogContext.LIFECYCLE)


def _check_timeout(timeout: float | None) -> None:
    if timeout is not None and timeout < 0:
        raise ConfigurationError(
            f"Discovery timeout must not be negative, got {timeout:g}",
            {"timeout": timeout},
        )


@dataclass
class InitResult:
    """Outcome of ``init``."""

    name: str
    requested_name: str
    action: ResolutionAction
    record: SessionRecord | None = None


@dataclass
class StopResult:
    """Outcome of ``stop``. A kill failure does not prevent record deletion."""

    name: str
    killed: bool
    record_deleted: bool
    kill_error: str | None = None


@dataclass
class ListResult:
    """Records on disk plus files that could not be read."""

    records: list[SessionRecord]
    skipped: list[tuple[Path, str]] = field(default_factory=list)


@dataclass
class SessionReport:
    """Persisted record merged with a live tmux inspection."""

    name: str
    record: SessionRecord | None
    live: LiveSession | None
    warnings: list[str] = field(default_factory=list)
    tunnel_down: bool = False

    @property
    def state(self) -> SessionState | None:
        """State of the record, degraded when its tunnel window is down."""
        if self.record is None:
            return None
        if self.tunnel_down:
            return SessionState.DEGRADED
        return self.record.state


class SessionManager:
    """Runs the session lifecycle operations."""

    def __init__(
        self,
        config: CCRemoteConfig,
        store: SessionStore,
        tmux: TmuxService,
        discovery: TunnelDiscovery,
        notifier: Notifier,
    ):
        self.config = config
        self.store = store
        self.tmux = tmux
        self.discovery = discovery
        self.notifier = notifier
        self.resolver = NameResolver(store, tmux, max_suffix=config.max_name_suffix)

    @classmethod
    def from_config(cls, config: CCRemoteConfig) -> "SessionManager":
        """Build a manager wired to the real store, tmux server and tunnel API."""
        store = SessionStore(config.state_path)
        store.initialize()
        return cls(
            config=config,
            store=store,
            tmux=TmuxService(
                session_prefix=config.session_prefix,
                assistant_window=config.assistant_window,
                tunnel_window=config.tunnel_window,
            ),
            discovery=TunnelDiscovery(config.tunnel_api_url),
            notifier=Notifier(config.notify_command),
        )

    def close(self) -> None:
        self.discovery.close()
        self.store.teardown()

    @audit_log("init")
    def init(
        self,
        name: str,
        working_directory: Path,
        choice: CollisionChoice | None = None,
        timeout: float | None = None,
    ) -> InitResult:
        """Create a session, discover its public URL and persist it.

        When discovery times out the tmux session and a record without a URL
        are left in place so ``recover`` can retry discovery.

        Raises:
            CollisionError: If the name is in use and no choice was given
            DiscoveryTimeoutError: If the tunnel URL was not observed in time
            ConfigurationError: If the timeout is negative
        """
        _check_timeout(timeout)
        working_directory = Path(working_directory).expanduser().resolve()
        self.tmux.ensure_available()

        resolution = self.resolver.resolve(name, choice)
        if resolution.action is ResolutionAction.REUSE:
            logger.info("Reusing existing session", session_name=resolution.name)
            return InitResult(
                name=resolution.name,
                requested_name=name,
                action=resolution.action,
                record=self.store.get(resolution.name),
            )

        final_name = resolution.name
        self.tmux.create_session(
            final_name,
            working_directory,
            assistant_command=self.config.render_assistant_command(),
            tunnel_command=self.config.render_tunnel_command(),
        )

        if self.store.exists(final_name):
            raise CollisionError(
                f"A record for '{final_name}' appeared while the session was being "
                "created; refusing to overwrite it",
                context={"name": final_name},
            )

        now = utcnow()
        record = SessionRecord(
            name=final_name,
            working_directory=str(working_directory),
            created_at=now,
            updated_at=now,
        )
        self.store.write(record)
        logger.info(
            "Session provisioning",
            session_name=final_name,
            working_directory=str(working_directory),
        )

        record = self._discover_and_store(record, timeout)
        return InitResult(
            name=final_name,
            requested_name=name,
            action=resolution.action,
            record=record,
        )

    @audit_log("attach")
    def attach(self, name: str) -> None:
        """Attach the terminal to a live session.

        Raises:
            NotFoundError: If neither a record nor a live session exists
            StaleMetadataError: If only the record exists
        """
        validate_session_name(name)
        if self.tmux.session_exists(name):
            self.tmux.attach(name)
            return
        if self.store.exists(name):
            raise StaleMetadataError(
                f"Session '{name}' has a record but no running tmux session. "
                f"Run 'stop {name}' to clear it",
                {"name": name},
            )
        raise NotFoundError(f"Session '{name}' not found", {"name": name})

    def sole_session_name(self) -> str | None:
        """Name of the only known session, or None if there are zero or many."""
        records, _ = self.store.list()
        names = {r.name for r in records} | set(self.tmux.list_sessions())
        if len(names) == 1:
            return names.pop()
        return None

    @audit_log("stop")
    def stop(self, name: str) -> StopResult:
        """Kill the session and delete its record.

        The record is deleted even if the kill fails, so metadata never
        outlives an intentional stop. Confirmation is the caller's job.

        Raises:
            NotFoundError: If neither a record nor a live session exists
        """
        validate_session_name(name)
        has_record = self.store.exists(name)
        is_live = self.tmux.session_exists(name)
        if not has_record and not is_live:
            raise NotFoundError(f"Session '{name}' not found", {"name": name})

        killed = False
        kill_error = None
        try:
            killed = self.tmux.kill_session(name)
        except ExternalCommandError as e:
            kill_error = e.diagnostic or e.message
            logger.warning(
                "Kill failed; deleting record anyway",
                session_name=name,
                error=kill_error,
            )

        deleted = self.store.delete(name)
        return StopResult(
            name=name, killed=killed, record_deleted=deleted, kill_error=kill_error
        )

    def list(self) -> ListResult:
        """Records on disk. Live tmux state is not cross-checked."""
        records, skipped = self.store.list()
        return ListResult(records=records, skipped=skipped)

    @audit_log("rename")
    def rename(self, old_name: str, new_name: str) -> SessionRecord:
        """Move a session to a new name. Never auto-suffixes.

        Raises:
            NotFoundError: If the old name has neither record nor live session
            CollisionError: If the new name is taken
        """
        validate_session_name(old_name)
        record = self.store.get(old_name)
        is_live = self.tmux.session_exists(old_name)
        if record is None and not is_live:
            raise NotFoundError(f"Session '{old_name}' not found", {"name": old_name})

        self.resolver.require_free(new_name)

        if record is None:
            record = self._rebuild_record(old_name)

        if is_live:
            self.tmux.rename_session(old_name, new_name)

        new_record = record.renamed(new_name)
        try:
            self.store.write(new_record)
            self.store.delete(old_name)
        except OSError as e:
            self._undo_rename(old_name, new_name, is_live)
            raise MetadataError(
                f"Failed to move record '{old_name}' to '{new_name}': {e}",
                {"old_name": old_name, "new_name": new_name},
            )

        logger.info("Session renamed", session_name=new_name, old_name=old_name)
        return new_record

    @audit_log("recover")
    def recover(self, name: str, timeout: float | None = None) -> SessionRecord:
        """Replace the tunnel window and rediscover the public URL.

        The assistant window, working directory and creation time are left
        untouched. On timeout the record is left without a URL.

        Raises:
            NotFoundError: If neither a record nor a live session exists
            StaleMetadataError: If the record exists but tmux is not running it
            DiscoveryTimeoutError: If the new URL was not observed in time
        """
        validate_session_name(name)
        _check_timeout(timeout)
        record = self.store.get(name)
        if not self.tmux.session_exists(name):
            if record is None:
                raise NotFoundError(f"Session '{name}' not found", {"name": name})
            raise StaleMetadataError(
                f"Session '{name}' has a record but no running tmux session; "
                f"nothing to recover. Run 'stop {name}' and then 'init {name}'",
                {"name": name},
            )

        if record is None:
            record = self._rebuild_record(name)

        record = record.with_url(None)
        self.store.write(record)
        logger.info("Session degraded; replacing tunnel", session_name=name)

        self.tmux.kill_window(name, self.tmux.tunnel_window)
        self.tmux.create_window(
            name, self.tmux.tunnel_window, self.config.render_tunnel_command()
        )

        return self._discover_and_store(record, timeout)

    def info(self, name: str) -> SessionReport:
        """Merge the record on disk with what tmux reports.

        Raises:
            NotFoundError: If neither a record nor a live session exists
        """
        validate_session_name(name)
        warnings: list[str] = []
        tunnel_down = False

        try:
            record = self.store.get(name)
        except MetadataError as e:
            record = None
            warnings.append(e.message)

        live = self.tmux.describe(name)
        if record is None and live is None:
            if warnings:
                raise MetadataError(warnings[0], {"name": name})
            raise NotFoundError(f"Session '{name}' not found", {"name": name})

        if record is not None and live is None:
            warnings.append("Record exists but no tmux session is running (stale)")
        if live is not None and record is None and not warnings:
            warnings.append(
                "tmux session is running without a record; run 'recover' to rebuild it"
            )
        if record is not None and not record.public_url:
            warnings.append("No public URL recorded; run 'recover' to rediscover it")

        if live is not None:
            tunnel = live.window(self.tmux.tunnel_window)
            tunnel_down = tunnel is None or tunnel.dead
            if tunnel is None:
                warnings.append("Tunnel window is not running; run 'recover'")
            elif tunnel.dead:
                warnings.append("Tunnel window process has exited; run 'recover'")

            assistant = live.window(self.tmux.assistant_window)
            if assistant is None:
                warnings.append("Assistant window is not running")
            elif (
                record is not None
                and assistant.path
                and assistant.path != record.working_directory
            ):
                warnings.append(
                    f"Assistant window is in {assistant.path}, record says "
                    f"{record.working_directory}"
                )

        for warning in warnings:
            logger.warning("Stale metadata", session_name=name, detail=warning)

        return SessionReport(
            name=name,
            record=record,
            live=live,
            warnings=warnings,
            tunnel_down=tunnel_down,
        )

    def _discover_and_store(
        self, record: SessionRecord, timeout: float | None
    ) -> SessionRecord:
        try:
            public_url = self.discovery.discover_public_url(
                self.config.local_port,
                timeout=timeout if timeout is not None else self.config.discovery_timeout,
                interval=self.config.poll_interval,
            )
        except DiscoveryTimeoutError as e:
            e.context["name"] = record.name
            raise
        record = record.with_url(public_url)
        self.store.write(record)
        logger.info("Session active", session_name=record.name, public_url=public_url)
        self.notifier.notify(record.name, public_url)
        return record

    def _rebuild_record(self, name: str) -> SessionRecord:
        live = self.tmux.describe(name)
        assistant = live.window(self.tmux.assistant_window) if live else None
        path = assistant.path if assistant and assistant.path else None
        working_directory = Path(path) if path else Path.cwd()
        logger.warning(
            "Rebuilding missing record from live session",
            session_name=name,
            working_directory=str(working_directory),
        )
        return SessionRecord(name=name, working_directory=str(working_directory))

    def _undo_rename(self, old_name: str, new_name: str, was_live: bool) -> None:
        try:
            if self.store.exists(old_name):
                self.store.delete(new_name)
        except OSError as e:
            logger.error(
                "Could not remove new record during rename rollback",
                session_name=new_name,
                error=str(e),
            )
        if was_live:
            try:
                self.tmux.rename_session(new_name, old_name)
            except (ExternalCommandError, CollisionError, NotFoundError) as e:
                logger.error(
                    "Could not restore tmux session name",
                    session_name=new_name,
                    error=e.message,
                )

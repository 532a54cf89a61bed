"""CLI commands for the session lifecycle."""

from pathlib import Path
from typing import Any

import click

from ..core.enums import CollisionChoice, ResolutionAction
from ..core.lifecycle import SessionManager, SessionReport
from ..core.models import SessionRecord, default_session_name
from ..utils.logging import CollisionError, DiscoveryTimeoutError
from .utils import (
    CliError,
    error_handler,
    get_manager,
    output_json,
    output_table,
    quiet_echo,
    success_message,
    verbose_echo,
    wants_json,
    warning_message,
)

COLLISION_PROMPT_CHOICES = [c.value for c in CollisionChoice]


def record_to_dict(record: SessionRecord) -> dict[str, Any]:
    data = record.model_dump(mode="json")
    data["state"] = record.state.value
    return data


def _prompt_collision(ctx: click.Context, error: CollisionError) -> CollisionChoice:
    """Ask the user how to handle a taken session name."""
    if wants_json(ctx):
        raise CliError(
            f"{error.message}. Pass --on-collision {'|'.join(COLLISION_PROMPT_CHOICES)}"
        )
    click.echo(click.style(error.message, fg="yellow"), err=True)
    answer = click.prompt(
        "Reuse it, create a suffixed name, or abort?",
        type=click.Choice([c.value for c in error.choices]),
        default=CollisionChoice.ABORT.value,
        err=True,
    )
    return CollisionChoice(answer)


def _run_init(
    ctx: click.Context,
    manager: SessionManager,
    name: str,
    directory: Path,
    choice: CollisionChoice | None,
    timeout: float | None,
):
    try:
        return manager.init(name, directory, choice=choice, timeout=timeout)
    except CollisionError as e:
        if choice is not None or not e.choices:
            raise
        choice = _prompt_collision(ctx, e)
        return manager.init(name, directory, choice=choice, timeout=timeout)


@click.command()
@click.argument("name", required=False)
@click.option(
    "--dir",
    "directory",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    help="Working directory for the session (default: current directory)",
)
@click.option(
    "--on-collision",
    type=click.Choice(COLLISION_PROMPT_CHOICES),
    help="What to do if NAME is already in use (default: ask)",
)
@click.option("--no-attach", is_flag=True, help="Do not attach after creation")
@click.option(
    "--timeout",
    type=click.FloatRange(min=0),
    help="Seconds to wait for the public URL",
)
@click.pass_context
@error_handler
def init(
    ctx: click.Context,
    name: str | None,
    directory: Path | None,
    on_collision: str | None,
    no_attach: bool,
    timeout: float | None,
) -> None:
    """Create a session with an assistant window and a public tunnel.

    NAME defaults to the working directory's name.
    """
    manager = get_manager(ctx)
    directory = (directory or Path.cwd()).resolve()
    name = name or default_session_name(directory)
    choice = CollisionChoice(on_collision) if on_collision else None

    verbose_echo(ctx, f"Initializing session '{name}' in {directory}")
    try:
        result = _run_init(ctx, manager, name, directory, choice, timeout)
    except DiscoveryTimeoutError as e:
        session_name = e.context.get("name", name)
        raise CliError(
            f"{e.message}. The session is still running; "
            f"run 'cc-remote recover {session_name}' to retry"
        )

    if wants_json(ctx):
        output_json(
            {
                "name": result.name,
                "requested_name": result.requested_name,
                "action": result.action.value,
                "record": record_to_dict(result.record) if result.record else None,
            }
        )
        return

    if result.action is ResolutionAction.REUSE:
        quiet_echo(ctx, f"Reusing running session '{result.name}'")
    else:
        record = result.record
        success_message(f"Session '{result.name}' is live")
        click.echo(f"URL: {record.public_url}")
        click.echo(f"Directory: {record.working_directory}")
        quiet_echo(ctx, f"Attach: cc-remote attach {result.name}")
        quiet_echo(ctx, f"Stop:   cc-remote stop {result.name}")

    if not no_attach:
        manager.attach(result.name)


@click.command()
@click.argument("name", required=False)
@click.pass_context
@error_handler
def attach(ctx: click.Context, name: str | None) -> None:
    """Attach to a running session.

    NAME may be omitted when exactly one session exists.
    """
    manager = get_manager(ctx)
    if name is None:
        name = manager.sole_session_name()
        if name is None:
            raise CliError("Specify a session name (zero or several sessions exist)")
    manager.attach(name)


@click.command()
@click.argument("name")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
@error_handler
def stop(ctx: click.Context, name: str, yes: bool) -> None:
    """Kill a session and delete its record.

    The record is deleted even if killing the tmux session fails.
    """
    manager = get_manager(ctx)
    if not yes:
        click.confirm(
            f"Stop session '{name}'? This kills its tmux session and tunnel",
            abort=True,
            err=True,
        )

    result = manager.stop(name)

    if wants_json(ctx):
        output_json(
            {
                "name": result.name,
                "killed": result.killed,
                "record_deleted": result.record_deleted,
                "kill_error": result.kill_error,
            }
        )
    elif result.kill_error is None:
        success_message(f"Stopped session '{name}'")
        if not result.killed:
            quiet_echo(ctx, "No tmux session was running")

    if result.kill_error is not None:
        raise CliError(
            f"Record for '{name}' deleted, but killing the tmux session failed: "
            f"{result.kill_error}"
        )


@click.command(name="list")
@click.pass_context
@error_handler
def list_sessions(ctx: click.Context) -> None:
    """List session records.

    Records are read from disk and are not checked against running tmux
    sessions; use 'info' to see live state.
    """
    manager = get_manager(ctx)
    result = manager.list()

    for path, reason in result.skipped:
        warning_message(f"Skipped {path}: {reason}")

    if wants_json(ctx):
        output_json([record_to_dict(r) for r in result.records])
        return

    if not result.records:
        click.echo("No sessions found")
        return

    output_table(
        ["NAME", "STATE", "URL", "DIRECTORY", "CREATED"],
        [
            [
                r.name,
                r.state.value,
                r.public_url or "-",
                r.working_directory,
                r.created_at.strftime("%Y-%m-%d %H:%M"),
            ]
            for r in result.records
        ],
    )


@click.command()
@click.argument("old_name")
@click.argument("new_name")
@click.pass_context
@error_handler
def rename(ctx: click.Context, old_name: str, new_name: str) -> None:
    """Rename a session. Fails if NEW_NAME is taken."""
    manager = get_manager(ctx)
    record = manager.rename(old_name, new_name)

    if wants_json(ctx):
        output_json(record_to_dict(record))
    else:
        success_message(f"Renamed '{old_name}' to '{new_name}'")


def _report_to_dict(report: SessionReport) -> dict[str, Any]:
    live = report.live
    return {
        "name": report.name,
        "state": report.state.value if report.state else None,
        "disk": record_to_dict(report.record) if report.record else None,
        "live": (
            {
                "tmux_session": live.tmux_name,
                "attached_clients": live.attached_clients,
                "windows": [
                    {
                        "label": w.label,
                        "command": w.command,
                        "path": w.path,
                        "dead": w.dead,
                    }
                    for w in live.windows
                ],
            }
            if live
            else None
        ),
        "warnings": report.warnings,
    }


def _print_report(report: SessionReport) -> None:
    click.echo(f"Session: {report.name}")
    if report.state is not None:
        click.echo(f"State: {report.state.value}")

    record = report.record
    if record is None:
        click.echo("  [disk] no record")
    else:
        click.echo(f"  [disk] State: {record.state.value}")
        click.echo(f"  [disk] URL: {record.public_url or '-'}")
        click.echo(f"  [disk] Directory: {record.working_directory}")
        click.echo(f"  [disk] Created: {record.created_at.isoformat()}")
        click.echo(f"  [disk] Updated: {record.updated_at.isoformat()}")

    live = report.live
    if live is None:
        click.echo("  [live] no tmux session")
    else:
        click.echo(f"  [live] tmux session: {live.tmux_name}")
        click.echo(f"  [live] Attached clients: {live.attached_clients}")
        for window in live.windows:
            status = "dead" if window.dead else (window.command or "?")
            click.echo(f"  [live] Window {window.label}: {status} ({window.path or '-'})")

    for warning in report.warnings:
        warning_message(warning)


@click.command()
@click.argument("name")
@click.pass_context
@error_handler
def info(ctx: click.Context, name: str) -> None:
    """Show a session's record next to its live tmux state."""
    manager = get_manager(ctx)
    report = manager.info(name)

    if wants_json(ctx):
        output_json(_report_to_dict(report))
    else:
        _print_report(report)


@click.command()
@click.argument("name")
@click.option(
    "--timeout",
    type=click.FloatRange(min=0),
    help="Seconds to wait for the public URL",
)
@click.pass_context
@error_handler
def recover(ctx: click.Context, name: str, timeout: float | None) -> None:
    """Restart a session's tunnel and rediscover its public URL.

    The assistant window is left running.
    """
    manager = get_manager(ctx)
    try:
        record = manager.recover(name, timeout=timeout)
    except DiscoveryTimeoutError as e:
        raise CliError(
            f"{e.message}. The tunnel window was restarted; "
            f"run 'cc-remote recover {name}' again to retry"
        )

    if wants_json(ctx):
        output_json(record_to_dict(record))
    else:
        success_message(f"Session '{name}' recovered")
        click.echo(f"URL: {record.public_url}")

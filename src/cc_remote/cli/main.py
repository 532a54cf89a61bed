"""Main CLI entry point for cc-remote."""

from pathlib import Path

import click

from .. import __version__
from ..utils.logging import setup_logging
from .config import config
from .doctor import doctor
from .sessions import attach, info, init, list_sessions, recover, rename, stop
from .utils import CliError, get_config


@click.group()
@click.version_option(version=__version__, prog_name="cc-remote")
@click.option("--config", "-c", help="Configuration file path")
@click.option("--profile", "-p", help="Configuration profile to use")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
# Configuration override flags
@click.option("--state-dir", help="Override state_dir setting")
@click.option("--log-level", help="Override log_level setting")
@click.pass_context
def main(
    ctx: click.Context,
    config: str | None,
    profile: str | None,
    verbose: bool,
    quiet: bool,
    json: bool,
    state_dir: str | None,
    log_level: str | None,
) -> None:
    """Manage durable remote sessions: a tmux session plus a public tunnel.

    Each session runs an assistant window and a tunnel window inside a
    namespaced tmux session. The tunnel's public URL is discovered from the
    tunnel provider's local API and stored with the session record.
    """
    if verbose and quiet:
        raise click.UsageError("Cannot use both --verbose and --quiet options")

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["profile"] = profile
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["json"] = json

    cli_overrides = {"state_dir": state_dir, "log_level": log_level}
    ctx.obj["cli_overrides"] = {k: v for k, v in cli_overrides.items() if v is not None}

    try:
        settings = get_config(ctx)
    except CliError as e:
        raise click.ClickException(e.message)

    setup_logging(
        log_level="DEBUG" if verbose else settings.log_level,
        log_file=Path(settings.log_file).expanduser() if settings.log_file else None,
        enable_structured=False,
    )


main.add_command(init)
main.add_command(attach)
main.add_command(stop)
main.add_command(list_sessions)
main.add_command(rename)
main.add_command(info)
main.add_command(recover)
main.add_command(doctor)
main.add_command(config)


if __name__ == "__main__":
    main()

"""Configuration management commands."""

import click

from ..config import find_config_file
from ..utils.logging import ConfigurationError
from .utils import CliError, error_handler, format_output, get_config, quiet_echo


@click.group()
def config() -> None:
    """Inspect configuration settings."""
    pass


@config.command()
@click.pass_context
@error_handler
def show(ctx: click.Context) -> None:
    """Show the effective configuration."""
    config_obj = get_config(ctx)
    format_output(ctx, {"configuration": config_obj.model_dump()})


@config.command()
@click.pass_context
@error_handler
def path(ctx: click.Context) -> None:
    """Show which configuration file is in use."""
    try:
        config_file = find_config_file(ctx.obj.get("config") if ctx.obj else None)
    except ConfigurationError as e:
        raise CliError(e.message)

    if config_file is None:
        quiet_echo(ctx, "No configuration file found; using defaults")
        return
    format_output(ctx, {"config_file": str(config_file)})

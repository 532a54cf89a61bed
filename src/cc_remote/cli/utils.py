"""CLI utilities for output formatting and common functionality."""

import json
import sys
from collections.abc import Callable
from functools import wraps
from typing import Any

import click

from ..config import CCRemoteConfig, load_config
from ..core.lifecycle import SessionManager
from ..utils.logging import (
    CCRemoteException,
    ConfigurationError,
    ExternalCommandError,
    LogContext,
    get_logger,
)

logger = get_logger(__name__, LogContext.CLI)


class CliError(Exception):
    """Exception for CLI errors."""

    def __init__(self, message: str, exit_code: int = 1):
        """Initialize CLI error.

        Args:
            message: Error message
            exit_code: Exit code for the CLI
        """
        super().__init__(message)
        self.message = message
        self.exit_code = exit_code


def error_handler(func: Callable[..., Any]) -> Callable[..., Any]:
    """Decorator rendering expected errors as a single message and exit code."""

    @wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return func(*args, **kwargs)
        except (click.exceptions.Exit, click.ClickException, click.Abort):
            raise
        except CliError as e:
            click.echo(click.style(f"Error: {e.message}", fg="red"), err=True)
            sys.exit(e.exit_code)
        except ExternalCommandError as e:
            click.echo(click.style(f"Error: {e.message}", fg="red"), err=True)
            if e.diagnostic:
                click.echo(e.diagnostic, err=True)
            sys.exit(1)
        except CCRemoteException as e:
            click.echo(click.style(f"Error: {e.message}", fg="red"), err=True)
            sys.exit(1)
        except Exception as e:
            logger.error("Unexpected error", exception=e)
            click.echo(click.style(f"Unexpected error: {e}", fg="red"), err=True)
            sys.exit(1)

    return wrapper


def success_message(message: str) -> None:
    """Display a success message."""
    click.echo(click.style(f"✓ {message}", fg="green"))


def warning_message(message: str) -> None:
    """Display a warning on stderr."""
    click.echo(click.style(f"! {message}", fg="yellow"), err=True)


def output_json(data: Any) -> None:
    """Output data as JSON."""
    click.echo(json.dumps(data, indent=2, default=str))


def output_table(headers: list[str], rows: list[list[str]]) -> None:
    """Output data as a formatted table."""
    if not rows:
        click.echo("No data to display")
        return

    col_widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            if i < len(col_widths):
                col_widths[i] = max(col_widths[i], len(str(cell)))

    header_row = " | ".join(
        h.ljust(w) for h, w in zip(headers, col_widths, strict=False)
    )
    click.echo(header_row)
    click.echo("-" * len(header_row))

    for row in rows:
        formatted_row = " | ".join(
            str(cell).ljust(w) for cell, w in zip(row, col_widths, strict=False)
        )
        click.echo(formatted_row)


def verbose_echo(ctx: click.Context, message: str) -> None:
    """Echo message only if verbose mode is enabled."""
    if ctx.obj and ctx.obj.get("verbose"):
        click.echo(click.style(f"[VERBOSE] {message}", fg="blue"), err=True)


def quiet_echo(ctx: click.Context, message: str) -> None:
    """Echo message only if not in quiet mode."""
    if not (ctx.obj and ctx.obj.get("quiet")):
        click.echo(message)


def wants_json(ctx: click.Context) -> bool:
    return bool(ctx.obj and ctx.obj.get("json"))


def format_output(
    ctx: click.Context, data: dict[str, Any], human_format_func: Any = None
) -> None:
    """Format output based on context (JSON or human-readable)."""
    if wants_json(ctx):
        output_json(data)
    elif human_format_func:
        human_format_func(data)
    else:
        for key, value in data.items():
            click.echo(f"{key}: {value}")


def get_config(ctx: click.Context) -> CCRemoteConfig:
    """Load (once per invocation) the configuration for this context."""
    obj = ctx.ensure_object(dict)
    if obj.get("loaded_config") is None:
        try:
            obj["loaded_config"] = load_config(
                obj.get("config"), obj.get("profile"), obj.get("cli_overrides")
            )
        except ConfigurationError as e:
            raise CliError(e.message)
    return obj["loaded_config"]


def get_manager(ctx: click.Context) -> SessionManager:
    """Session manager for this invocation; tests may preset ``ctx.obj['manager']``."""
    obj = ctx.ensure_object(dict)
    if obj.get("manager") is None:
        manager = SessionManager.from_config(get_config(ctx))
        ctx.call_on_close(manager.close)
        obj["manager"] = manager
    return obj["manager"]

"""Environment verification command."""

import sys
from dataclasses import asdict

import click

from ..core.doctor import run_checks
from .utils import error_handler, get_config, output_json, wants_json


@click.command()
@click.pass_context
@error_handler
def doctor(ctx: click.Context) -> None:
    """Check that tmux, the assistant, the tunnel and the notifier are available."""
    results = run_checks(get_config(ctx))
    failed = [r for r in results if r.required and not r.ok]

    if wants_json(ctx):
        output_json({"ok": not failed, "checks": [asdict(r) for r in results]})
    else:
        for result in results:
            if result.ok:
                marker = click.style("✓", fg="green")
            elif result.required:
                marker = click.style("✗", fg="red")
            else:
                marker = click.style("-", fg="yellow")
            click.echo(f"{marker} {result.name}: {result.detail}")

    if failed:
        sys.exit(1)

"""Environment verification for cc-remote."""

import os
import shlex
import shutil
from dataclasses import dataclass
from pathlib import Path

import httpx

from ..config import CCRemoteConfig


@dataclass
class CheckResult:
    """Outcome of a single environment check."""

    name: str
    ok: bool
    detail: str
    required: bool = True


def _binary_check(name: str, command: str | None, required: bool) -> CheckResult:
    if not command:
        return CheckResult(name, not required, "not configured", required)
    binary = shlex.split(command)[0]
    location = shutil.which(binary)
    if location is None:
        return CheckResult(name, False, f"'{binary}' not found on PATH", required)
    return CheckResult(name, True, location, required)


def _state_dir_check(state_dir: Path) -> CheckResult:
    existing = state_dir
    while not existing.exists() and existing != existing.parent:
        existing = existing.parent
    if os.access(existing, os.W_OK):
        return CheckResult("state directory", True, str(state_dir))
    return CheckResult("state directory", False, f"{existing} is not writable")


def _tunnel_api_check(api_url: str, client: httpx.Client | None) -> CheckResult:
    owns_client = client is None
    client = client or httpx.Client(timeout=2.0)
    try:
        response = client.get(api_url)
        response.raise_for_status()
        tunnels = response.json().get("tunnels", [])
        return CheckResult(
            "tunnel API", True, f"{len(tunnels)} active tunnel(s)", required=False
        )
    except (httpx.HTTPError, ValueError, AttributeError) as e:
        return CheckResult(
            "tunnel API",
            False,
            f"{api_url} not reachable ({type(e).__name__}); normal when no tunnel runs",
            required=False,
        )
    finally:
        if owns_client:
            client.close()


def run_checks(
    config: CCRemoteConfig, client: httpx.Client | None = None
) -> list[CheckResult]:
    """Run every environment check."""
    return [
        _binary_check("tmux", "tmux", required=True),
        _binary_check("terminal server", config.assistant_command, required=True),
        _binary_check("assistant", config.assistant_program, required=True),
        _binary_check("tunnel", config.tunnel_command, required=True),
        _binary_check("notifier", config.notify_command, required=False),
        _state_dir_check(config.state_path),
        _tunnel_api_check(config.tunnel_api_url, client),
    ]

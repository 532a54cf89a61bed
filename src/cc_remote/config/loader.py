"""Configuration loading and management."""

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from ..utils.logging import ConfigurationError, LogContext, get_logger

logger = get_logger(__name__, LogContext.CONFIG)

DEFAULT_CONFIG_DIR = Path.home() / ".config" / "cc-remote"


class CCRemoteConfig(BaseModel):
    """Configuration model for cc-remote."""

    # Metadata store
    state_dir: str = Field(
        default=str(DEFAULT_CONFIG_DIR / "sessions"),
        description="Directory holding one JSON record per session",
    )

    # Tmux layout
    session_prefix: str = Field(
        default="cc-remote", description="Namespace prefix for tmux sessions"
    )
    assistant_window: str = Field(
        default="assistant", description="Label of the assistant window"
    )
    tunnel_window: str = Field(default="tunnel", description="Label of the tunnel window")
    assistant_program: str = Field(
        default="claude", description="Assistant executable served by the terminal server"
    )
    assistant_command: str = Field(
        default="ttyd -W -p {port} {program}",
        description=(
            "Command run in the assistant window "
            "({port} and {program} are substituted)"
        ),
    )
    tunnel_command: str = Field(
        default="ngrok http {port}",
        description="Command run in the tunnel window ({port} is substituted)",
    )
    local_port: int = Field(
        default=7681, description="Local port shared by assistant and tunnel"
    )

    # Tunnel discovery
    tunnel_api_url: str = Field(
        default="http://127.0.0.1:4040/api/tunnels",
        description="Tunnel provider local status endpoint",
    )
    discovery_timeout: float = Field(
        default=30.0, description="Seconds to wait for the public URL"
    )
    poll_interval: float = Field(
        default=1.0, description="Seconds between status endpoint polls"
    )

    # Notifications
    notify_command: str | None = Field(
        default="cc-remote-notify",
        description="External notification command (skipped when not installed)",
    )

    # Naming
    max_name_suffix: int = Field(
        default=100, description="Highest numeric suffix tried on collision"
    )

    # Logging
    log_level: str = Field(default="WARNING", description="Logging level")
    log_file: str | None = Field(default=None, description="Log file path")

    @field_validator("local_port")
    @classmethod
    def _check_port(cls, value: int) -> int:
        if not 0 < value < 65536:
            raise ValueError(f"local_port must be between 1 and 65535, got {value}")
        return value

    @field_validator("discovery_timeout", "poll_interval")
    @classmethod
    def _check_positive(cls, value: float) -> float:
        if value <= 0:
            raise ValueError("must be greater than zero")
        return value

    @field_validator("max_name_suffix")
    @classmethod
    def _check_suffix_ceiling(cls, value: int) -> int:
        if value < 2:
            raise ValueError("max_name_suffix must be at least 2")
        return value

    @property
    def state_path(self) -> Path:
        """Expanded metadata directory."""
        return Path(self.state_dir).expanduser()

    def render_assistant_command(self) -> str:
        return self.assistant_command.format(
            port=self.local_port, program=self.assistant_program
        )

    def render_tunnel_command(self) -> str:
        return self.tunnel_command.format(port=self.local_port)


def find_config_file(custom_path: str | None = None) -> Path | None:
    """Find configuration file in standard locations."""
    if custom_path:
        path = Path(custom_path).expanduser()
        if path.exists():
            return path
        raise ConfigurationError(f"Config file not found: {custom_path}")

    search_paths = [
        Path.cwd() / "cc-remote.yaml",
        Path.cwd() / "cc-remote.yml",
        DEFAULT_CONFIG_DIR / "config.yaml",
        Path.home() / ".cc-remote.yaml",
    ]

    for path in search_paths:
        if path.exists():
            return path

    return None


def load_config_file(config_path: Path) -> dict[str, Any]:
    """Load configuration from YAML file."""
    try:
        with open(config_path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in config file {config_path}: {e}")
    except OSError as e:
        raise ConfigurationError(f"Failed to read config file {config_path}: {e}")

    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Config file {config_path} must contain a mapping at the top level"
        )
    return data


def load_env_vars() -> dict[str, Any]:
    """Load configuration from environment variables.

    Values are passed through as strings; pydantic coerces numeric fields.
    """
    config: dict[str, Any] = {}
    prefix = "CC_REMOTE_"

    for field_name in CCRemoteConfig.model_fields:
        env_var = f"{prefix}{field_name.upper()}"
        if env_var in os.environ:
            config[field_name] = os.environ[env_var]

    return config


def load_config(
    config_path: str | None = None,
    profile: str | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> CCRemoteConfig:
    """Load configuration from file and environment variables.

    Precedence order (highest to lowest):
    1. CLI flag overrides
    2. Environment variables
    3. Configuration file (with profile support)
    4. Default values
    """
    config_data: dict[str, Any] = {}

    config_file = find_config_file(config_path)
    if config_file:
        file_data = load_config_file(config_file)
        logger.debug("Loaded config file", path=str(config_file))

        base_data = {k: v for k, v in file_data.items() if k != "profiles"}
        config_data.update(base_data)

        profiles = file_data.get("profiles") or {}
        if profile:
            if profile not in profiles:
                raise ConfigurationError(
                    f"Profile '{profile}' not found in {config_file}"
                )
            config_data.update(profiles[profile])

    config_data.update(load_env_vars())

    if cli_overrides:
        config_data.update(cli_overrides)

    try:
        return CCRemoteConfig(**config_data)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}")


def save_config(config: CCRemoteConfig, config_path: str | None = None) -> Path:
    """Save configuration to file."""
    if config_path:
        path = Path(config_path).expanduser()
    else:
        DEFAULT_CONFIG_DIR.mkdir(parents=True, exist_ok=True)
        path = DEFAULT_CONFIG_DIR / "config.yaml"

    config_dict = config.model_dump()
    with open(path, "w") as f:
        yaml.dump(config_dict, f, default_flow_style=False, sort_keys=True)

    return path

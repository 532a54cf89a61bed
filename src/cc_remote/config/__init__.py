"""Configuration management module."""

from .loader import CCRemoteConfig, find_config_file, load_config, save_config

__all__ = ["CCRemoteConfig", "load_config", "save_config", "find_config_file"]

"""Configuration file support for gemrelay."""

from gemrelay.config.loader import (
    CLIOverrides,
    ConfigLoader,
    FileConfig,
    is_google_auth_enabled,
    load_config,
)

__all__ = [
    "CLIOverrides",
    "ConfigLoader",
    "FileConfig",
    "is_google_auth_enabled",
    "load_config",
]

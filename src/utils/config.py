"""Configuration utility for gitpress.

This module provides centralized configuration management with:
- Environment variables as primary source
- Type-safe access to configuration values
"""

import os
from typing import Any

DEFAULT_CONFIG_PATH = "gitpress.json"
DEFAULT_TIMEOUT_SECONDS = 30


def parse_config_value(value: str) -> str | bool | int | float:
    if value.lower() == "true":
        return True
    elif value.lower() == "false":
        return False
    else:
        # Try to parse as a number
        try:
            return int(value)
        except ValueError:
            try:
                return float(value)
            except ValueError:
                # Return as string
                return value


def get_config_value(key: str, default: Any = None) -> Any:
    """Get a configuration value from environment variables.

    Args:
        key: Configuration key name (e.g., "GITHUB_USERNAME")
        default: Default value if key not found

    Returns:
        Configuration value or default
    """
    env_value = os.environ.get(key)
    if env_value is not None:
        return parse_config_value(env_value)

    return default


def get_config_value_str(key: str) -> str | None:
    """
    Get a configuration value from environment variables. But sometimes you just want a string.
    """
    return os.environ.get(key)


def get_gitpress_environment() -> str:
    """Get gitpress environment from env var."""
    return get_config_value("GITPRESS_ENVIRONMENT", "local")


def get_config_path() -> str:
    """Path of the JSON file holding repository configurations and general settings."""
    return get_config_value_str("GITPRESS_CONFIG_PATH") or DEFAULT_CONFIG_PATH


def get_github_webhook_secret() -> str | None:
    """Shared secret for GitHub webhook signatures. Overrides the settings file when set."""
    return get_config_value_str("GITHUB_WEBHOOK_SECRET")


def get_github_username() -> str | None:
    return get_config_value_str("GITHUB_USERNAME")


def get_github_access_token() -> str | None:
    return get_config_value_str("GITHUB_ACCESS_TOKEN")


def get_github_timeout_seconds() -> float:
    return float(get_config_value("GITHUB_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS))


def get_wordpress_url() -> str | None:
    """Base URL of the WordPress site (e.g., https://blog.example.com).

    Returns:
        The site URL, or None when no WordPress store is configured
    """
    return get_config_value_str("WORDPRESS_URL")


def get_wordpress_username() -> str | None:
    return get_config_value_str("WORDPRESS_USERNAME")


def get_wordpress_application_password() -> str | None:
    return get_config_value_str("WORDPRESS_APPLICATION_PASSWORD")


def get_content_store_timeout_seconds() -> float:
    return float(get_config_value("CONTENT_STORE_TIMEOUT_SECONDS", DEFAULT_TIMEOUT_SECONDS))


def get_sync_max_workers() -> int:
    """Number of files reconciled concurrently within one run. 1 means sequential."""
    value = get_config_value("SYNC_MAX_WORKERS", 1)
    try:
        return max(1, int(value))
    except (TypeError, ValueError):
        return 1

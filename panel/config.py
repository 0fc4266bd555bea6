"""
Panel - Configuration Manager
===============================
Handles loading of application configuration from two sources:

1. config.yaml  - Non-sensitive settings (bind address, shell, locale, etc.)
2. .env         - Secrets (JWT_SECRET), loaded into the environment by app.py

The signing secret is resolved once at startup and handed explicitly to the
token validator. Nothing in this module holds it as global state.

Usage:
    config = ConfigManager(project_dir="/opt/panel").load()
    secret, generated = resolve_jwt_secret(config)
"""

import os
import secrets
import yaml
from typing import Any


# Default configuration values used when config.yaml is missing or incomplete.
DEFAULTS = {
    "web": {
        "port": 8888,
        "host": "0.0.0.0",
    },
    "auth": {
        "jwt_secret": "",
        "token_hours": 24,
    },
    "terminal": {
        "shell": "/bin/bash",
        "term": "xterm-256color",
        "locale": "en_US.UTF-8",
    },
    "executor": {
        "shell": "bash",
        # 0 means requests may ask for any timeout (or none at all)
        "max_timeout": 0,
    },
}

JWT_SECRET_ENV = "JWT_SECRET"


class ConfigManager:
    """
    Reads config.yaml and merges it over DEFAULTS.

    Attributes:
        project_dir: Root directory of the panel installation.
        config_path: Full path to config.yaml.
        env_path:    Full path to .env file.
        data_dir:    Directory for runtime data (logs).
    """

    def __init__(self, project_dir: str):
        """
        Initialize the config manager.

        Args:
            project_dir: Absolute path to the panel project root directory.
        """
        self.project_dir = project_dir
        self.config_path = os.path.join(project_dir, "config.yaml")
        self.env_path = os.path.join(project_dir, ".env")
        self.data_dir = os.path.join(project_dir, "data")

    def load(self) -> dict:
        """
        Load and merge configuration from config.yaml with defaults.

        Missing values are filled from DEFAULTS. A corrupted file does not
        stop startup: defaults are used and the parse error is kept under
        the "_config_error" key for the caller to report.

        Returns:
            A dictionary containing the full configuration.
        """
        config = _deep_copy(DEFAULTS)

        if os.path.exists(self.config_path):
            try:
                with open(self.config_path, "r", encoding="utf-8") as f:
                    user_config = yaml.safe_load(f) or {}
                if not isinstance(user_config, dict):
                    raise yaml.YAMLError("top level of config.yaml must be a mapping")
                _deep_merge(config, user_config)
            except (yaml.YAMLError, OSError) as e:
                config["_config_error"] = str(e)

        return config


def resolve_jwt_secret(config: dict, environ: dict | None = None) -> tuple[str, bool]:
    """
    Pick the token signing secret.

    Order: JWT_SECRET environment variable, then auth.jwt_secret from
    config.yaml. When neither is set a random secret is generated; tokens
    signed with it stop validating once the process restarts.

    Args:
        config:  Configuration dict from ConfigManager.load().
        environ: Environment mapping (defaults to os.environ).

    Returns:
        (secret, generated) where generated is True for a random secret.
    """
    if environ is None:
        environ = os.environ

    secret = environ.get(JWT_SECRET_ENV, "")
    if secret:
        return secret, False

    secret = str(config.get("auth", {}).get("jwt_secret") or "")
    if secret:
        return secret, False

    return secrets.token_hex(32), True


def cors_origins(environ: dict | None = None) -> list[str]:
    """Allowed CORS origins from CORS_ORIGINS (comma separated), default '*'."""
    if environ is None:
        environ = os.environ
    raw = environ.get("CORS_ORIGINS", "").strip()
    if not raw:
        return ["*"]
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


# -- Helper Functions ---------------------------------------------------------

def _deep_copy(d: dict) -> dict:
    """Create a deep copy of a nested dictionary."""
    result = {}
    for key, value in d.items():
        if isinstance(value, dict):
            result[key] = _deep_copy(value)
        elif isinstance(value, list):
            result[key] = list(value)
        else:
            result[key] = value
    return result


def _deep_merge(base: dict, override: dict[str, Any]) -> None:
    """
    Recursively merge 'override' into 'base' (in-place).

    For nested dicts, values are merged recursively.
    For all other types, override replaces base.
    """
    for key, value in override.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value

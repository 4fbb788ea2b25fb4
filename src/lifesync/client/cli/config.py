"""Configuration utilities for the lifesync CLI.

This module provides shared configuration functions used across CLI commands.
Tokens are not stored here; they live in the OS keyring.
"""

from __future__ import annotations

import json
import sys
from pathlib import Path
from typing import Any

import click

from lifesync.core.config import ClientConfig


def get_config_dir() -> Path:
    """Get the configuration directory for lifesync.

    Returns:
        Path to ~/.lifesync or equivalent.
    """
    return Path.home() / ".lifesync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def get_state_db_path() -> Path:
    """Get the path to the local sync state database."""
    return get_config_dir() / "state.db"


def load_config() -> dict[str, Any]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def build_client_config(config: dict[str, Any]) -> ClientConfig | None:
    """Build a ClientConfig from the saved configuration.

    Returns:
        The client configuration, or None if no server is configured.
    """
    server_url = config.get("server_url")
    if not server_url:
        return None
    return ClientConfig(
        server_url=server_url,
        verify_ssl=bool(config.get("verify_ssl", True)),
        throttle_interval=float(config.get("throttle_interval", 300.0)),
        background_interval=float(config.get("background_interval", 4 * 3600.0)),
    )


def require_client_config() -> ClientConfig:
    """Load the client configuration or exit with an error."""
    client_config = build_client_config(load_config())
    if client_config is None:
        click.echo("Error: No server configured. Run 'lifesync configure' first.", err=True)
        sys.exit(1)
    return client_config

"""Command-line interface for lifesync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- configure: Set the server URL
- login: Store tokens from an OAuth sign-in
- logout: Sign out and wipe local credentials
- status: Show auth and sync status
- sync: Run one incremental sync cycle
- sync-all: Run (or resume) a full-history sync
- daemon: Keep syncing in the background
- progress: Show full-history progress
- sources: List or toggle data sources
- reset-watermarks: Force every file to be uploaded again
- clear-full-sync: Forget full-history progress
"""

from __future__ import annotations

import logging

import click

from lifesync.client.cli.auth import configure, login, logout, status
from lifesync.client.cli.config import (
    get_config_dir,
    get_config_file,
    get_state_db_path,
    load_config,
    save_config,
)
from lifesync.client.cli.sync import (
    clear_full_sync,
    daemon,
    progress,
    reset_watermarks,
    sources,
    sync,
    sync_all,
)


def _configure_logging(verbose: bool) -> None:
    """Send lifesync log records to stderr (DEBUG when verbose)."""
    lifesync_logger = logging.getLogger("lifesync")
    lifesync_logger.handlers.clear()
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(name)s: %(message)s"))
    lifesync_logger.addHandler(handler)
    lifesync_logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


@click.group()
@click.version_option(package_name="lifesync")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """lifesync - sync locally collected data to your lifesync server."""
    _configure_logging(verbose)


# Account commands
cli.add_command(configure)
cli.add_command(login)
cli.add_command(logout)
cli.add_command(status)

# Sync commands
cli.add_command(sync)
cli.add_command(sync_all)
cli.add_command(daemon)
cli.add_command(progress)
cli.add_command(sources)
cli.add_command(reset_watermarks)
cli.add_command(clear_full_sync)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    # Config utilities
    "get_config_dir",
    "get_config_file",
    "get_state_db_path",
    "load_config",
    "save_config",
]

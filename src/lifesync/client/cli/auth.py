"""Account commands for the lifesync CLI.

Commands:
- configure: Set the server URL
- login: Store tokens from an OAuth sign-in
- logout: Sign out and wipe local credentials
- status: Show auth and sync status
"""

from __future__ import annotations

import asyncio
import sys

import click

from lifesync.client.cli.config import (
    load_config,
    require_client_config,
    save_config,
)
from lifesync.client.cli.services import open_services
from lifesync.client.keystore import KeyStoreError
from lifesync.core.config import ClientConfig


@click.command()
@click.option(
    "--server",
    required=True,
    help="Server URL (e.g., https://life.example.com).",
)
@click.option(
    "--verify-ssl/--no-verify-ssl",
    default=True,
    show_default=True,
    help="Verify the server's TLS certificate.",
)
def configure(server: str, verify_ssl: bool) -> None:
    """Configure the lifesync server."""
    if not server.startswith(("http://", "https://")):
        click.echo("Error: Server URL must start with http:// or https://", err=True)
        sys.exit(1)

    config = load_config()
    config["server_url"] = server.rstrip("/")
    config["verify_ssl"] = verify_ssl
    save_config(config)

    click.echo(f"Server set to {config['server_url']}")
    if not ClientConfig(server_url=config["server_url"]).is_secure:
        click.echo("Warning: connection is not encrypted (http://).", err=True)


@click.command()
@click.option("--access-token", prompt=True, hide_input=True, help="OAuth access token.")
@click.option(
    "--refresh-token",
    default="",
    prompt=True,
    hide_input=True,
    help="OAuth refresh token (optional).",
)
def login(access_token: str, refresh_token: str) -> None:
    """Sign in with tokens issued by the server's OAuth flow."""
    client_config = require_client_config()

    async def _login() -> str:
        async with open_services(client_config) as services:
            state = await services.auth.handle_oauth_completion(
                access_token.strip(), refresh_token.strip() or None
            )
            return state.username or ""

    try:
        username = asyncio.run(_login())
    except KeyStoreError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo(f"Signed in as {username}")


@click.command()
def logout() -> None:
    """Sign out and delete the stored tokens."""
    client_config = require_client_config()

    async def _logout() -> None:
        async with open_services(client_config) as services:
            await services.auth.logout()

    try:
        asyncio.run(_logout())
    except KeyStoreError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    click.echo("Signed out.")


@click.command()
def status() -> None:
    """Show authentication and sync status."""
    client_config = require_client_config()

    async def _status() -> list[str]:
        async with open_services(client_config) as services:
            auth_state = await services.auth.check_auth()
            orchestrator = services.orchestrator

            reachable = await services.http.health_check()
            lines = [
                f"Server: {client_config.server_url} "
                f"({'reachable' if reachable else 'unreachable'})"
            ]
            if not client_config.is_secure:
                lines.append("Warning: connection is not encrypted (http://)")
            if auth_state.is_authenticated:
                lines.append(f"Signed in as: {auth_state.username}")
                expiry = services.auth.access_token_expiry
                if expiry is not None:
                    lines.append(f"Token expires: {expiry.isoformat(timespec='seconds')}")
            else:
                lines.append("Not signed in")

            last = orchestrator.last_sync_date
            lines.append(
                f"Last sync: {last.isoformat(timespec='seconds') if last else 'never'}"
            )
            lines.append(f"Tracked uploads: {services.state.count_watermarks()}")

            collectors = orchestrator.collectors
            if not collectors:
                lines.append("Collectors: none installed")
            for collector in collectors:
                enabled = ", ".join(collector.enabled_source_ids) or "no sources enabled"
                lines.append(f"Collector {collector.display_name}: {enabled}")

            if orchestrator.has_resumable_full_sync:
                lines.append("Full sync: resumable")
            return lines

    try:
        lines = asyncio.run(_status())
    except KeyStoreError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    for line in lines:
        click.echo(line)

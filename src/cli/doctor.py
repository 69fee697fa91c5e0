"""Doctor command for environment diagnostics."""

from __future__ import annotations

import asyncio

import typer
from rich.console import Console
from rich.table import Table

from adapters.http_client import build_async_client
from core.config import AppSettings, write_user_env_vars

app = typer.Typer(no_args_is_help=True, help="Environment diagnostics and configuration checks.")

_console = Console()

TOKEN_ENV_VAR = "GRAPH_BATCH_ACCESS_TOKEN"


async def _check_http(url: str, settings: AppSettings) -> tuple[bool, str]:
    try:
        async with build_async_client(settings) as client:
            response = await client.get(url)
        return True, f"HTTP {response.status_code}"
    except Exception as exc:
        return False, str(exc) or type(exc).__name__


@app.command()
def run() -> None:
    """Show the effective configuration and check connectivity to the API host."""

    settings = AppSettings()

    table = Table(title="graph-batch Doctor")
    table.add_column("Check", style="bright_green", no_wrap=True)
    table.add_column("Status", style="white")
    table.add_column("Details", style="dim")

    table.add_row("Base URL", "OK", settings.base_url)
    table.add_row("API version", "OK", settings.api_version)
    if settings.access_token:
        table.add_row("Access token", "OK", "Shared token configured")
    else:
        table.add_row("Access token", "OPTIONAL", "No token set -> only public calls succeed")
    table.add_row("Gzip requests", "OK", "on" if settings.gzip_requests else "off")
    table.add_row("Worker pool", "OK", f"{settings.max_workers} workers")

    ok_http, detail_http = asyncio.run(_check_http(settings.base_url, settings))
    table.add_row("HTTP connectivity", "OK" if ok_http else "FAIL", detail_http)

    _console.print(table)
    if not ok_http:
        raise typer.Exit(code=1)


@app.command(name="set-token")
def set_token(
    clear: bool = typer.Option(False, "--clear", help="Remove the stored token instead of setting one."),
) -> None:
    """Store (or remove) the shared access token in the user config .env."""

    if clear:
        env_path = write_user_env_vars({TOKEN_ENV_VAR: None})
        _console.print(f"[yellow]Removed access token from:[/yellow] {env_path}")
        return

    token = typer.prompt("Access token", hide_input=True, confirmation_prompt=False).strip()
    if not token:
        raise typer.BadParameter("access token is required")

    env_path = write_user_env_vars({TOKEN_ENV_VAR: token})
    _console.print(f"[green]Saved access token to:[/green] {env_path}")

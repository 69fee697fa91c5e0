"""CLI principal (Typer).

Comandos:
- `get`: ejecuta un único request (con paginación opcional).
- `batch`: ejecuta un archivo JSON de requests como un único batch.
- `doctor`: diagnóstico de configuración y conectividad.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional

import typer
from pydantic import ValidationError
from rich.console import Console

from adapters.batch_file import load_batch_file
from adapters.json_exporter import export_envelopes_json
from cli.doctor import app as doctor_app
from cli.ui_components import build_body_panel, build_results_table, print_banner
from core.config import AppSettings
from core.domain.errors import InvalidTimeoutError
from core.domain.models import HttpMethod, ResultEnvelope, blob_parameter
from core.logging_setup import setup_logging
from core.services.graph_client import GraphClient

app = typer.Typer(no_args_is_help=True, help="Batch requests against a graph-style HTTP API.")
app.add_typer(doctor_app, name="doctor")

_console = Console()


def _parse_params(values: List[str]) -> dict[str, Any]:
    """Parse `key=value` pairs; `key=@path` attaches the file as binary."""

    out: dict[str, Any] = {}
    for item in values:
        if "=" not in item:
            raise typer.BadParameter(f"expected key=value, got {item!r}", param_hint="--param")
        key, value = item.split("=", 1)
        key = key.strip()
        if not key:
            raise typer.BadParameter(f"empty key in {item!r}", param_hint="--param")
        if value.startswith("@"):
            path = Path(value[1:])
            if not path.is_file():
                raise typer.BadParameter(f"file not found: {path}", param_hint="--param")
            out[key] = blob_parameter(path.read_bytes(), filename=path.name)
        else:
            out[key] = value
    return out


def _build_client(*, token: Optional[str], version: Optional[str]) -> GraphClient:
    overrides: dict[str, Any] = {}
    if token:
        overrides["access_token"] = token
    if version:
        overrides["api_version"] = version
    return GraphClient(AppSettings(**overrides))


def _parse_method(value: str) -> HttpMethod:
    try:
        return HttpMethod(value.upper())
    except ValueError:
        allowed = ", ".join(m.value for m in HttpMethod)
        raise typer.BadParameter(f"unsupported method {value!r} (use {allowed})", param_hint="--method")


def _finish(envelopes: List[ResultEnvelope], output: Optional[Path]) -> None:
    if output is not None:
        path = export_envelopes_json(envelopes=envelopes, output_path=output)
        _console.print(f"[green]Saved results to:[/green] {path}")
    if any(envelope.error is not None for envelope in envelopes):
        raise typer.Exit(code=1)


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging (wire exchanges)."),
) -> None:
    setup_logging(logging.DEBUG if verbose else AppSettings().log_level)


@app.command()
def get(
    endpoint: str = typer.Argument(..., help="Relative path or object id, e.g. 'me/friends'."),
    param: List[str] = typer.Option([], "--param", "-p", help="key=value (key=@file for binary)."),
    method: str = typer.Option("GET", "--method", "-X", help="GET, POST or DELETE."),
    token: Optional[str] = typer.Option(None, "--token", help="Access token (overrides config)."),
    version: Optional[str] = typer.Option(None, "--api-version", help="API version tag, e.g. v2.3."),
    public: bool = typer.Option(False, "--public", help="Send without any access token."),
    timeout: int = typer.Option(0, "--timeout", help="Time budget in milliseconds (0 = transport default)."),
    pages: int = typer.Option(1, "--pages", min=1, help="Follow paging.next up to N pages."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write results as JSON."),
) -> None:
    """Execute one request and print its response."""

    client = _build_client(token=token, version=version)
    request = client.new_request(endpoint, _parse_params(param), method=_parse_method(method), public=public)

    try:
        envelope = client.execute_request(request, timeout_millis=timeout)
    except InvalidTimeoutError as exc:
        raise typer.BadParameter(str(exc), param_hint="--timeout")

    envelopes = [envelope]
    while len(envelopes) < pages:
        following = client.next_page(envelope)
        if following is None:
            break
        envelope = client.execute_request(following, timeout_millis=timeout)
        envelopes.append(envelope)

    for item in envelopes:
        _console.print(build_body_panel(item))
    _finish(envelopes, output)


@app.command()
def batch(
    path: Path = typer.Argument(..., exists=True, dir_okay=False, help="JSON file with the requests."),
    token: Optional[str] = typer.Option(None, "--token", help="Access token (overrides config)."),
    version: Optional[str] = typer.Option(None, "--api-version", help="API version tag, e.g. v2.3."),
    timeout: Optional[int] = typer.Option(None, "--timeout", help="Time budget in milliseconds."),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Write results as JSON."),
    banner: bool = typer.Option(False, "--banner", help="Print the banner first."),
) -> None:
    """Execute every request of a batch file in a single HTTP exchange."""

    try:
        batch_file = load_batch_file(path)
    except (ValidationError, json.JSONDecodeError) as exc:
        raise typer.BadParameter(f"invalid batch file: {exc}", param_hint="PATH")
    if not batch_file.requests:
        raise typer.BadParameter("batch file has no requests", param_hint="PATH")

    if banner:
        print_banner(_console)

    client = _build_client(token=token, version=version)
    requests = [
        client.new_request(
            entry.endpoint,
            entry.params,
            method=entry.method,
            public=entry.public,
            tag=entry.tag,
            depends_on=entry.depends_on,
        )
        for entry in batch_file.requests
    ]
    try:
        descriptor = client.new_batch(
            *requests,
            timeout_millis=batch_file.timeout_millis if timeout is None else timeout,
            force_batch=True,
        )
    except InvalidTimeoutError as exc:
        raise typer.BadParameter(str(exc), param_hint="--timeout")

    envelopes = client.execute_batch(descriptor)
    _console.print(build_results_table(envelopes))
    _finish(envelopes, output)


def run() -> None:
    # Consolas de Windows (cp1252) no pueden imprimir la salida de Rich.
    if sys.platform == "win32":
        sys.stdout.reconfigure(encoding="utf-8")
        sys.stderr.reconfigure(encoding="utf-8")
    app()


if __name__ == "__main__":
    run()

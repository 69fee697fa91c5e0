"""Componentes de UI para CLI (Rich).

Tablas y paneles reutilizables por los comandos `get`, `batch` y `doctor`.
"""

from __future__ import annotations

import json
from typing import Sequence

from rich.align import Align
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from core.domain.models import ResultEnvelope

_MAX_CELL_CHARS = 80


def print_banner(console: Console) -> None:
    title = Text("graph-batch", style="bold cyan")
    subtitle = Text("Batching • Demultiplexing • Error classification", style="dim")
    body = Align.center(Text.assemble(title, "\n", subtitle), vertical="middle")
    console.print(Panel(body, border_style="cyan", padding=(1, 4)))


def _truncate(text: str | None) -> str:
    if not text:
        return ""
    text = text.strip().replace("\n", " ")
    if len(text) <= _MAX_CELL_CHARS:
        return text
    return text[: _MAX_CELL_CHARS - 1].rstrip() + "…"


def build_results_table(envelopes: Sequence[ResultEnvelope]) -> Table:
    """Una fila por envelope, en el orden del batch."""

    table = Table(title="Results")
    table.add_column("#", style="dim", no_wrap=True)
    table.add_column("Request", style="cyan")
    table.add_column("HTTP", style="white", no_wrap=True)
    table.add_column("Status", no_wrap=True)
    table.add_column("Paging", style="magenta", no_wrap=True)
    table.add_column("Body / Error", style="white")

    for index, envelope in enumerate(envelopes):
        request = envelope.request
        label = f"{request.method.value} {request.endpoint}" if request is not None else "?"
        http = str(envelope.http_status) if envelope.http_status is not None else "-"
        if envelope.error is None:
            status = Text("ok", style="green")
            detail = _truncate(envelope.raw_body)
        else:
            status = Text(envelope.error.category.value, style="red")
            detail = _truncate(str(envelope.error))
        paging = ""
        if envelope.paging is not None:
            directions = []
            if envelope.paging.next_url or envelope.paging.after:
                directions.append("next")
            if envelope.paging.previous_url or envelope.paging.before:
                directions.append("prev")
            paging = ",".join(directions)
        table.add_row(str(index), label, http, status, paging, detail)
    return table


def build_body_panel(envelope: ResultEnvelope) -> Panel:
    """Panel con el cuerpo decodificado (o crudo) de un único envelope."""

    if envelope.parsed_body is not None:
        text = json.dumps(envelope.parsed_body, ensure_ascii=False, indent=2)
    else:
        text = envelope.raw_body or ""
    style = "green" if envelope.error is None else "red"
    title = "Response" if envelope.error is None else f"Error: {envelope.error.category.value}"
    return Panel(Text(text), title=title, border_style=style)

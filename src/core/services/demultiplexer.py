"""Split one `WireResponse` into ordered per-request sub-responses.

Batch responses are a JSON array whose n-th element belongs to the n-th
request; each element carries its own `code`, `headers` and a `body` string
holding nested JSON. Positional order is the only correlation key.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from core.domain.models import WireResponse

logger = logging.getLogger(__name__)

MISSING_BATCH_ENTRY = "missing_batch_entry"
SUCCESS_KEY = "success"
NON_JSON_RESULT_KEY = "non_json_result"


@dataclass
class SubResponse:
    """One logical response before classification."""

    http_status: int | None
    raw_body: str | None
    parsed_body: dict[str, Any] | list[Any] | None = None
    headers: dict[str, str] = field(default_factory=dict)
    decode_failed: bool = False
    failure: str | None = None
    failure_detail: str | None = None


def _normalize_json(value: Any) -> dict[str, Any] | list[Any] | None:
    if value is None:
        return None
    if isinstance(value, (dict, list)):
        return value
    # DELETE y algunos POST devuelven `true`/`false` sin objeto.
    if isinstance(value, bool):
        return {SUCCESS_KEY: value}
    return {NON_JSON_RESULT_KEY: value}


def decode_body(raw: str | None) -> tuple[dict[str, Any] | list[Any] | None, bool]:
    """Decode a response body; returns `(parsed, decode_failed)`.

    Empty bodies are not decode failures: they simply carry no structure.
    """

    if raw is None or not raw.strip():
        return None, False
    try:
        return _normalize_json(json.loads(raw)), False
    except json.JSONDecodeError:
        return None, True


class ResponseDemultiplexer:
    """Turns one wire response into `request_count` ordered sub-responses."""

    def split(self, wire: WireResponse, request_count: int, *, is_batch: bool) -> list[SubResponse]:
        if wire.transport_failed:
            return [
                SubResponse(
                    http_status=None,
                    raw_body=wire.body,
                    headers=dict(wire.headers),
                    failure=wire.failure or "network_error",
                    failure_detail=wire.failure_detail,
                )
                for _ in range(request_count)
            ]

        if not is_batch:
            parsed, failed = decode_body(wire.body)
            return [
                SubResponse(
                    http_status=wire.http_status,
                    raw_body=wire.body,
                    parsed_body=parsed,
                    headers=dict(wire.headers),
                    decode_failed=failed,
                )
            ]

        try:
            document = json.loads(wire.body) if wire.body and wire.body.strip() else None
        except json.JSONDecodeError:
            logger.warning("Batch response body is not valid JSON (status=%s)", wire.http_status)
            return [
                SubResponse(
                    http_status=wire.http_status,
                    raw_body=wire.body,
                    headers=dict(wire.headers),
                    decode_failed=True,
                )
                for _ in range(request_count)
            ]

        if not isinstance(document, list):
            # Error de todo el batch (token inválido, batch demasiado grande...):
            # el mismo cuerpo aplica a cada posición.
            parsed = _normalize_json(document)
            return [
                SubResponse(
                    http_status=wire.http_status,
                    raw_body=wire.body,
                    parsed_body=parsed,
                    headers=dict(wire.headers),
                )
                for _ in range(request_count)
            ]

        if len(document) != request_count:
            logger.warning(
                "Batch response has %d entries for %d requests", len(document), request_count
            )

        out: list[SubResponse] = []
        for index in range(request_count):
            entry = document[index] if index < len(document) else None
            out.append(self._split_entry(entry, index))
        return out

    def _split_entry(self, entry: Any, index: int) -> SubResponse:
        if not isinstance(entry, dict):
            return SubResponse(
                http_status=None,
                raw_body=None,
                failure=MISSING_BATCH_ENTRY,
                failure_detail=f"No batch response entry at position {index}.",
            )

        headers: dict[str, str] = {}
        for header in entry.get("headers") or []:
            if isinstance(header, dict) and isinstance(header.get("name"), str):
                headers[header["name"].lower()] = str(header.get("value", ""))

        code = entry.get("code")
        status = code if isinstance(code, int) and not isinstance(code, bool) else None
        body = entry.get("body")
        if body is not None and not isinstance(body, str):
            body = json.dumps(body)
        parsed, failed = decode_body(body)
        return SubResponse(
            http_status=status,
            raw_body=body,
            parsed_body=parsed,
            headers=headers,
            decode_failed=failed,
            failure=None if status is not None else MISSING_BATCH_ENTRY,
            failure_detail=None if status is not None else f"Batch entry {index} has no status code.",
        )

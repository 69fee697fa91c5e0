"""Serialización de descriptores a un payload de wire.

Dos caminos:
- Single: un descriptor se envía como request directo contra
  `<base_url>/<version>/<endpoint>`.
- Batch: N descriptores se codifican como un array JSON ordenado bajo el
  campo `batch` de un único POST. El orden del array es la clave de
  correlación que usa el demultiplexor.

Los parámetros binarios se extraen como adjuntos multipart
(`attachment-<n>`) y se referencian desde el sub-request por nombre.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Sequence
from urllib.parse import urlencode

from core.config import AppSettings
from core.domain.models import BlobParameter, HttpMethod, RequestDescriptor

ACCESS_TOKEN_PARAM = "access_token"
BATCH_PARAM = "batch"
FORMAT_PARAM = "format"
FORMAT_JSON = "json"
ATTACHMENT_PREFIX = "attachment-"


@dataclass(frozen=True)
class Attachment:
    name: str
    data: bytes
    content_type: str = "application/octet-stream"
    filename: str | None = None


@dataclass
class WirePayload:
    """Un intercambio físico listo para el transporte."""

    method: HttpMethod
    url: str
    query: list[tuple[str, str]] = field(default_factory=list)
    form_fields: list[tuple[str, str]] = field(default_factory=list)
    attachments: list[Attachment] = field(default_factory=list)
    is_batch: bool = False
    request_count: int = 1

    @property
    def has_attachments(self) -> bool:
        return bool(self.attachments)

    def form_value(self, name: str) -> str | None:
        for key, value in self.form_fields:
            if key == name:
                return value
        return None

    def batch_entries(self) -> list[dict[str, Any]]:
        raw = self.form_value(BATCH_PARAM)
        return json.loads(raw) if raw else []

    def encoded_form(self) -> bytes:
        return urlencode(self.form_fields).encode("utf-8")


class BatchSerializer:
    """Convierte descriptores validados en un `WirePayload`."""

    def __init__(self, settings: AppSettings) -> None:
        self._settings = settings

    def serialize(self, requests: Sequence[RequestDescriptor], *, force_batch: bool = False) -> WirePayload:
        if not requests:
            raise ValueError("Cannot serialize an empty request list.")
        if len(requests) == 1 and not force_batch:
            return self._serialize_single(requests[0])
        return self._serialize_batch(requests)

    def _serialize_single(self, request: RequestDescriptor) -> WirePayload:
        version = request.effective_version(self._settings.api_version)
        url = f"{self._settings.graph_url(version)}/{request.path}"

        fields: list[tuple[str, str]] = []
        attachments: list[Attachment] = []
        for key, value in request.parameters.items():
            if isinstance(value, BlobParameter):
                attachments.append(
                    Attachment(
                        name=key,
                        data=value.data,
                        content_type=value.content_type,
                        filename=value.filename,
                    )
                )
            else:
                fields.append((key, value.render()))
        if request.credential and ACCESS_TOKEN_PARAM not in request.parameters:
            fields.append((ACCESS_TOKEN_PARAM, request.credential))
        fields.append((FORMAT_PARAM, FORMAT_JSON))

        if request.method is HttpMethod.POST:
            return WirePayload(method=request.method, url=url, form_fields=fields, attachments=attachments)
        return WirePayload(method=request.method, url=url, query=fields)

    def _serialize_batch(self, requests: Sequence[RequestDescriptor]) -> WirePayload:
        batch_version = requests[0].effective_version(self._settings.api_version)
        shared_token = next((r.credential for r in requests if r.credential), None)

        attachments: list[Attachment] = []
        entries = [
            self._batch_entry(request, batch_version=batch_version, shared_token=shared_token, attachments=attachments)
            for request in requests
        ]

        fields: list[tuple[str, str]] = []
        if shared_token:
            fields.append((ACCESS_TOKEN_PARAM, shared_token))
        fields.append((BATCH_PARAM, json.dumps(entries, separators=(",", ":"), ensure_ascii=False)))
        fields.append((FORMAT_PARAM, FORMAT_JSON))

        return WirePayload(
            method=HttpMethod.POST,
            url=self._settings.graph_url(batch_version),
            form_fields=fields,
            attachments=attachments,
            is_batch=True,
            request_count=len(requests),
        )

    def _batch_entry(
        self,
        request: RequestDescriptor,
        *,
        batch_version: str,
        shared_token: str | None,
        attachments: list[Attachment],
    ) -> dict[str, Any]:
        params: list[tuple[str, str]] = []
        attached: list[str] = []
        for key, value in request.parameters.items():
            if isinstance(value, BlobParameter):
                name = f"{ATTACHMENT_PREFIX}{len(attachments)}"
                attachments.append(
                    Attachment(
                        name=name,
                        data=value.data,
                        content_type=value.content_type,
                        filename=value.filename,
                    )
                )
                attached.append(name)
                params.append((key, name))
            else:
                params.append((key, value.render()))

        if (
            request.credential
            and request.credential != shared_token
            and ACCESS_TOKEN_PARAM not in request.parameters
        ):
            params.append((ACCESS_TOKEN_PARAM, request.credential))

        path = request.path
        version = request.effective_version(self._settings.api_version)
        if version != batch_version:
            path = f"{version}/{path}"

        entry: dict[str, Any] = {"method": request.method.value}
        if request.method is HttpMethod.POST:
            entry["relative_url"] = path
            if params:
                entry["body"] = urlencode(params)
        else:
            entry["relative_url"] = f"{path}?{urlencode(params)}" if params else path
        if request.tag:
            entry["name"] = request.tag
        if request.depends_on:
            entry["depends_on"] = request.depends_on
        if attached:
            entry["attached_files"] = ",".join(attached)
        return entry

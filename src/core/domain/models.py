"""Modelos del dominio.

Qué describen:
- `RequestDescriptor`: una llamada lógica a la API antes de combinarse en un
  intercambio físico.
- `BatchDescriptor`: una secuencia ordenada de descriptores que se ejecuta una
  sola vez.
- `WireResponse`: el resultado crudo del transporte, previo a la clasificación.
- `ResultEnvelope`: el resultado clasificado de un descriptor.

Los parámetros se modelan como una unión etiquetada (Pydantic v2,
discriminador `kind`), de modo que la distinción binario/escalar se resuelve al
construir el descriptor y no en el serializador.
"""

from __future__ import annotations

import array
import json
import mimetypes
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any, Callable, Iterable, Iterator, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, InstanceOf

from core.domain.errors import (
    BatchConsumedError,
    ErrorCategory,
    GraphError,
    InvalidTimeoutError,
)


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    DELETE = "DELETE"


class TextParameter(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["text"] = "text"
    value: str

    def render(self) -> str:
        return self.value


class NumberParameter(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["number"] = "number"
    value: int | float | Decimal

    def render(self) -> str:
        return str(self.value)


class BooleanParameter(BaseModel):
    model_config = ConfigDict(frozen=True)

    kind: Literal["boolean"] = "boolean"
    value: bool

    def render(self) -> str:
        return "true" if self.value else "false"


class JsonParameter(BaseModel):
    """Estructura JSON anidada; viaja serializada como texto compacto."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["json"] = "json"
    value: Any
    type_name: str = "dict"

    def render(self) -> str:
        return json.dumps(self.value, separators=(",", ":"), ensure_ascii=False)


class BlobParameter(BaseModel):
    """Contenido binario; se envía como campo multipart (adjunto)."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["blob"] = "blob"
    data: bytes
    type_name: str = Field(default="bytes", description="Tipo concreto en runtime (p.ej. 'short[]').")
    content_type: str = Field(default="application/octet-stream")
    filename: str | None = None


ParameterValue = Annotated[
    Union[TextParameter, NumberParameter, BooleanParameter, JsonParameter, BlobParameter],
    Field(discriminator="kind"),
]

_PARAMETER_TYPES = (TextParameter, NumberParameter, BooleanParameter, JsonParameter, BlobParameter)

# array.array typecodes -> nombre de tipo legible en mensajes de error.
_ARRAY_TYPE_NAMES: dict[str, str] = {
    "b": "byte[]",
    "B": "byte[]",
    "u": "char[]",
    "h": "short[]",
    "H": "short[]",
    "i": "int[]",
    "I": "int[]",
    "l": "long[]",
    "L": "long[]",
    "q": "long[]",
    "Q": "long[]",
    "f": "float[]",
    "d": "double[]",
}

_MAGIC_CONTENT_TYPES: tuple[tuple[bytes, str], ...] = (
    (b"\x89PNG\r\n\x1a\n", "image/png"),
    (b"\xff\xd8\xff", "image/jpeg"),
    (b"GIF87a", "image/gif"),
    (b"GIF89a", "image/gif"),
    (b"%PDF-", "application/pdf"),
)


def describe_type(value: object) -> str:
    """Concrete runtime type description used in validation messages."""

    if isinstance(value, array.array):
        return _ARRAY_TYPE_NAMES.get(value.typecode, f"array('{value.typecode}')")
    return type(value).__name__


def guess_content_type(data: bytes, filename: str | None = None) -> str:
    for magic, content_type in _MAGIC_CONTENT_TYPES:
        if data.startswith(magic):
            return content_type
    if filename:
        guessed, _ = mimetypes.guess_type(filename)
        if guessed:
            return guessed
    return "application/octet-stream"


def blob_parameter(
    data: bytes | bytearray | memoryview | array.array,
    *,
    content_type: str | None = None,
    filename: str | None = None,
) -> BlobParameter:
    raw = data.tobytes() if isinstance(data, (array.array, memoryview)) else bytes(data)
    return BlobParameter(
        data=raw,
        type_name=describe_type(data),
        content_type=content_type or guess_content_type(raw, filename),
        filename=filename,
    )


def to_parameter(value: Any) -> ParameterValue:
    """Tag a plain Python value as one of the parameter variants.

    Raises:
        TypeError: the value has no wire representation.
    """

    if isinstance(value, _PARAMETER_TYPES):
        return value
    # bool antes que int: bool es subclase de int.
    if isinstance(value, bool):
        return BooleanParameter(value=value)
    if isinstance(value, str):
        return TextParameter(value=value)
    if isinstance(value, (int, float, Decimal)):
        return NumberParameter(value=value)
    if isinstance(value, (datetime, date)):
        return TextParameter(value=value.isoformat())
    if isinstance(value, (bytes, bytearray, memoryview, array.array)):
        return blob_parameter(value)
    if isinstance(value, (dict, list, tuple)):
        payload = list(value) if isinstance(value, tuple) else value
        return JsonParameter(value=payload, type_name=describe_type(value))
    raise TypeError(f"Unsupported parameter type: {describe_type(value)}")


RequestCallback = Callable[["ResultEnvelope", "RequestDescriptor"], None]
BatchCallback = Callable[[list["ResultEnvelope"]], None]


@dataclass
class RequestDescriptor:
    """Una llamada lógica a la API.

    `parameters` acepta valores Python planos; se etiquetan al construir.
    `credential=None` implica una llamada pública (sin token).
    """

    endpoint: str
    parameters: dict[str, Any] = field(default_factory=dict)
    method: HttpMethod = HttpMethod.GET
    version: str | None = None
    credential: str | None = None
    tag: str | None = None
    depends_on: str | None = None
    callback: RequestCallback | None = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.method, HttpMethod):
            self.method = HttpMethod(str(self.method).upper())
        self.parameters = {str(key): to_parameter(value) for key, value in self.parameters.items()}

    @property
    def path(self) -> str:
        return self.endpoint.strip().strip("/")

    def set_parameter(self, key: str, value: Any) -> None:
        self.parameters[key] = to_parameter(value)

    def effective_version(self, default: str) -> str:
        return self.version or default

    def with_changes(self, **changes: Any) -> RequestDescriptor:
        """Copy with the given fields replaced; parameters are never shared."""

        changes.setdefault("parameters", dict(self.parameters))
        return replace(self, **changes)

    def validate(self) -> GraphError | None:
        """Check the descriptor before serialization.

        Returns a `MALFORMED_REQUEST` error naming the offending parameter and
        its concrete type, or None when the descriptor can be sent.
        """

        if not self.path:
            return GraphError(
                category=ErrorCategory.MALFORMED_REQUEST,
                message="Request endpoint must not be empty.",
            )
        if any(char.isspace() or not char.isprintable() for char in self.path):
            return GraphError(
                category=ErrorCategory.MALFORMED_REQUEST,
                message=f"Request endpoint contains whitespace or control characters: {self.path!r}",
            )
        if self.method is HttpMethod.POST:
            return None
        # Solo POST admite adjuntos; GET además rechaza estructuras JSON.
        rejected: tuple[type, ...] = (BlobParameter, JsonParameter) if self.method is HttpMethod.GET else (BlobParameter,)
        for key, value in self.parameters.items():
            if isinstance(value, rejected):
                return GraphError(
                    category=ErrorCategory.MALFORMED_REQUEST,
                    message=f"Unsupported parameter type for {self.method.value} request: {value.type_name}",
                    parameter_name=key,
                    parameter_type=value.type_name,
                )
        return None


class BatchDescriptor:
    """Secuencia ordenada de descriptores que se ejecuta exactamente una vez."""

    def __init__(
        self,
        requests: Iterable[RequestDescriptor] = (),
        *,
        timeout_millis: int = 0,
        batch_callback: BatchCallback | None = None,
        force_batch: bool = False,
    ) -> None:
        self.requests: list[RequestDescriptor] = list(requests)
        self.timeout_millis = timeout_millis
        self.batch_callback = batch_callback
        self.force_batch = force_batch
        self._consumed = False

    @property
    def timeout_millis(self) -> int:
        return self._timeout_millis

    @timeout_millis.setter
    def timeout_millis(self, value: int) -> None:
        if isinstance(value, bool) or not isinstance(value, int):
            raise TypeError(f"Batch timeout must be an int, got {describe_type(value)}")
        if value < 0:
            raise InvalidTimeoutError(f"Batch timeout cannot be negative: {value}")
        self._timeout_millis = value

    @property
    def consumed(self) -> bool:
        return self._consumed

    def mark_consumed(self) -> None:
        if self._consumed:
            raise BatchConsumedError("Batch has already been executed; build a new BatchDescriptor.")
        self._consumed = True

    def add(self, request: RequestDescriptor) -> BatchDescriptor:
        self.requests.append(request)
        return self

    def __len__(self) -> int:
        return len(self.requests)

    def __iter__(self) -> Iterator[RequestDescriptor]:
        return iter(self.requests)

    def __getitem__(self, index: int) -> RequestDescriptor:
        return self.requests[index]


@dataclass
class WireResponse:
    """Resultado crudo de un intercambio HTTP.

    `http_status is None` significa que no se completó ningún intercambio;
    `failure` indica el motivo (timeout, connect_error, ...).
    """

    http_status: int | None = None
    body: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    failure: str | None = None
    failure_detail: str | None = None

    def __post_init__(self) -> None:
        self.headers = {str(k).lower(): v for k, v in self.headers.items()}

    @classmethod
    def transport_failure(cls, failure: str, detail: str | None = None) -> WireResponse:
        return cls(http_status=None, failure=failure, failure_detail=detail)

    @property
    def transport_failed(self) -> bool:
        return self.http_status is None

    def header(self, name: str, default: str | None = None) -> str | None:
        return self.headers.get(name.lower(), default)


class PagingLinks(BaseModel):
    """Metadatos de paginación extraídos de `paging`."""

    after: str | None = None
    before: str | None = None
    next_url: str | None = None
    previous_url: str | None = None

    @property
    def has_links(self) -> bool:
        return self.next_url is not None or self.previous_url is not None


class ResultEnvelope(BaseModel):
    """Resultado clasificado de un descriptor.

    `raw_body` se conserva siempre que exista texto, incluso en error.
    """

    parsed_body: dict[str, Any] | list[Any] | None = None
    raw_body: str | None = None
    error: GraphError | None = None
    paging: PagingLinks | None = None
    http_status: int | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    request: InstanceOf[RequestDescriptor] | None = Field(default=None, exclude=True, repr=False)

    @property
    def ok(self) -> bool:
        return self.error is None

    @property
    def data(self) -> list[Any] | None:
        """The `data` list of a collection response, if any."""

        if isinstance(self.parsed_body, dict) and isinstance(self.parsed_body.get("data"), list):
            return self.parsed_body["data"]
        return None

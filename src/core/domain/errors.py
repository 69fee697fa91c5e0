"""Error taxonomy for executed requests.

Failures reach the caller as data: every `ResultEnvelope` carries at most one
`GraphError`, whose `category` is one of the mutually exclusive
`ErrorCategory` values. Exceptions are reserved for programmer errors
(negative timeouts, re-executing a batch, unsupported parameter types).
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class ErrorCategory(str, Enum):
    """Classification attached to a failed envelope."""

    NETWORK_FAILURE = "network_failure"
    TRANSPORT_FAILURE = "transport_failure"
    PARSE_FAILURE = "parse_failure"
    AUTH_EXPIRED = "auth_expired"
    PERMISSION_DENIED = "permission_denied"
    THROTTLED = "throttled"
    SERVICE_ERROR = "service_error"
    MALFORMED_REQUEST = "malformed_request"

    @property
    def retryable(self) -> bool:
        """Whether a caller-driven retry (after backoff) can succeed."""

        return self in (ErrorCategory.NETWORK_FAILURE, ErrorCategory.THROTTLED)


class GraphError(BaseModel):
    """A classified failure for one logical request."""

    category: ErrorCategory = Field(..., description="Clasificación del fallo.")
    message: str = Field(default="", description="Mensaje legible del fallo.")
    code: int | None = Field(default=None, description="`code` del objeto de error de la API.")
    subcode: int | None = Field(default=None, description="`error_subcode` de la API.")
    error_type: str | None = Field(default=None, description="`type` de la API (p.ej. OAuthException).")
    user_title: str | None = Field(default=None, description="`error_user_title` si existe.")
    user_message: str | None = Field(default=None, description="`error_user_msg` si existe.")
    is_transient: bool = Field(default=False, description="Marcado como transitorio por la API.")
    http_status: int | None = Field(default=None, description="Status HTTP del sub-response.")
    parameter_name: str | None = Field(default=None, description="Parámetro rechazado (MALFORMED_REQUEST).")
    parameter_type: str | None = Field(default=None, description="Tipo concreto del parámetro rechazado.")
    body: dict[str, Any] | None = Field(default=None, description="Cuerpo decodificado del error.")

    def __str__(self) -> str:
        parts = [self.category.value]
        if self.code is not None:
            parts.append(f"code={self.code}")
        if self.subcode is not None:
            parts.append(f"subcode={self.subcode}")
        if self.http_status is not None:
            parts.append(f"http={self.http_status}")
        head = " ".join(parts)
        return f"{head}: {self.message}" if self.message else head


class GraphBatchError(Exception):
    """Base class for programmer errors raised by the engine."""


class InvalidTimeoutError(GraphBatchError, ValueError):
    """Raised when a batch timeout is set to a negative value."""


class BatchConsumedError(GraphBatchError, RuntimeError):
    """Raised when a batch is executed a second time."""


class MalformedRequestError(GraphBatchError, ValueError):
    """Raised by the live-connection path, which cannot report errors as envelopes."""

    def __init__(self, error: GraphError) -> None:
        super().__init__(error.message)
        self.error = error

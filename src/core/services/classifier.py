"""Clasificación de sub-responses en la taxonomía de errores.

Regla central: el éxito lo decide el contenido del cuerpo, nunca el status
HTTP por sí solo. Un 200 con `{"error": {...}}` es un error.
"""

from __future__ import annotations

import logging
from typing import Any

from core.domain.errors import ErrorCategory, GraphError
from core.services.demultiplexer import SubResponse

logger = logging.getLogger(__name__)

AUTH_ERROR_CODES = frozenset({102, 190})
AUTH_ERROR_SUBCODES = frozenset({458, 459, 460, 463, 464, 467})
PERMISSION_ERROR_CODES = frozenset({10, *range(200, 300)})
THROTTLING_ERROR_CODES = frozenset({4, 17, 32, 341, 613})


def _as_int(value: Any) -> int | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def _as_str(value: Any) -> str | None:
    return value if isinstance(value, str) else None


def find_error_object(body: Any) -> dict[str, Any] | None:
    """Return the API error object of a decoded body, if it carries one.

    Supports `{"error": {...}}` and the legacy flat `error_code`/`error_msg`.
    """

    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if isinstance(error, dict):
        return error
    if "error_code" in body:
        return {
            "code": body.get("error_code"),
            "message": body.get("error_msg") or body.get("error_message"),
        }
    return None


class ErrorClassifier:
    """Produce at most one `GraphError` per sub-response."""

    def classify(self, sub: SubResponse) -> GraphError | None:
        if sub.failure is not None or sub.http_status is None:
            detail = sub.failure_detail or f"No HTTP exchange completed ({sub.failure or 'unknown'})."
            return GraphError(category=ErrorCategory.NETWORK_FAILURE, message=detail)

        status = sub.http_status
        success_status = 200 <= status < 300

        if sub.decode_failed:
            if success_status:
                return GraphError(
                    category=ErrorCategory.PARSE_FAILURE,
                    message="Response body is not valid JSON.",
                    http_status=status,
                )
            return GraphError(
                category=ErrorCategory.TRANSPORT_FAILURE,
                message=f"HTTP {status} response without structured content.",
                http_status=status,
            )

        body = sub.parsed_body
        if body is None:
            return GraphError(
                category=ErrorCategory.TRANSPORT_FAILURE,
                message=f"HTTP {status} response has no body.",
                http_status=status,
            )

        error = find_error_object(body)
        if error is not None:
            return self._from_error_object(error, body=body, status=status)

        if not success_status:
            return GraphError(
                category=ErrorCategory.SERVICE_ERROR,
                message=f"HTTP {status} response without an error object.",
                http_status=status,
                body=body if isinstance(body, dict) else None,
            )
        return None

    def _from_error_object(self, error: dict[str, Any], *, body: Any, status: int) -> GraphError:
        code = _as_int(error.get("code"))
        subcode = _as_int(error.get("error_subcode"))

        if code in AUTH_ERROR_CODES or subcode in AUTH_ERROR_SUBCODES:
            category = ErrorCategory.AUTH_EXPIRED
        elif code in PERMISSION_ERROR_CODES:
            category = ErrorCategory.PERMISSION_DENIED
        elif code in THROTTLING_ERROR_CODES:
            category = ErrorCategory.THROTTLED
        else:
            category = ErrorCategory.SERVICE_ERROR

        logger.debug("Classified API error code=%s subcode=%s as %s", code, subcode, category.value)
        return GraphError(
            category=category,
            message=_as_str(error.get("message")) or "",
            code=code,
            subcode=subcode,
            error_type=_as_str(error.get("type")),
            user_title=_as_str(error.get("error_user_title")),
            user_message=_as_str(error.get("error_user_msg")),
            is_transient=bool(error.get("is_transient", False)),
            http_status=status,
            body=body if isinstance(body, dict) else None,
        )

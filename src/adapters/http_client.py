"""Wrapper de httpx.

Estandariza timeouts, headers (User-Agent, Accept) y redirects para los
clientes síncrono y asíncrono que usa el transporte. Ambos builders aceptan un
`transport` de httpx inyectable (p.ej. `httpx.MockTransport` en tests).
"""

from __future__ import annotations

import httpx

from core.config import AppSettings


def _default_headers(settings: AppSettings, extra_headers: dict[str, str] | None) -> dict[str, str]:
    headers: dict[str, str] = {
        "User-Agent": settings.user_agent,
        "Accept": "application/json",
    }
    if extra_headers:
        headers.update(extra_headers)
    return headers


def _timeout(settings: AppSettings, timeout_seconds: float | None) -> httpx.Timeout:
    return httpx.Timeout(timeout_seconds if timeout_seconds else settings.http_timeout_seconds)


def build_client(
    settings: AppSettings | None = None,
    *,
    timeout_seconds: float | None = None,
    transport: httpx.BaseTransport | None = None,
    extra_headers: dict[str, str] | None = None,
) -> httpx.Client:
    """Crea un `httpx.Client` con defaults seguros para un único intercambio."""

    settings = settings or AppSettings()
    return httpx.Client(
        timeout=_timeout(settings, timeout_seconds),
        follow_redirects=True,
        headers=_default_headers(settings, extra_headers),
        transport=transport,
    )


def build_async_client(
    settings: AppSettings | None = None,
    *,
    timeout_seconds: float | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
    extra_headers: dict[str, str] | None = None,
) -> httpx.AsyncClient:
    """Variante asíncrona de `build_client`."""

    settings = settings or AppSettings()
    return httpx.AsyncClient(
        timeout=_timeout(settings, timeout_seconds),
        follow_redirects=True,
        headers=_default_headers(settings, extra_headers),
        transport=transport,
    )

"""Transporte HTTP (httpx) para payloads de batch.

Responsabilidad:
- Un intercambio físico por invocación, sin reintentos.
- Codificación: form-urlencoded (gzip opcional) o multipart cuando hay
  adjuntos.
- Presupuesto de tiempo del batch: al vencer, se libera la conexión y se
  sintetiza un `WireResponse` sin status.
- Los fallos de red se devuelven como datos, nunca como excepciones.
"""

from __future__ import annotations

import asyncio
import gzip
import logging
import threading
import time
from concurrent.futures import Future
from typing import Callable

import httpx

from adapters.http_client import build_async_client, build_client
from core.config import AppSettings
from core.domain.models import WireResponse
from core.services.serializer import WirePayload
from core.services.worker_pool import get_worker_pool

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"


def _failure_from_exception(exc: Exception) -> WireResponse:
    if isinstance(exc, httpx.TimeoutException):
        return WireResponse.transport_failure("timeout", str(exc) or type(exc).__name__)
    if isinstance(exc, httpx.ConnectError):
        return WireResponse.transport_failure("connect_error", str(exc))
    if isinstance(exc, (httpx.StreamError, RuntimeError)):
        # El cliente fue cerrado (disconnect) mientras el intercambio seguía en vuelo.
        return WireResponse.transport_failure("connection_released", str(exc))
    return WireResponse.transport_failure("network_error", str(exc) or type(exc).__name__)


class GraphConnection:
    """Conexión viva para un único intercambio.

    `request` puede modificarse antes de `send()`. Tras `send()` el status y
    los headers son legibles antes de consumir el cuerpo. `disconnect()` es
    idempotente y puede llamarse desde otro hilo.
    """

    def __init__(self, client: httpx.Client, request: httpx.Request, payload: WirePayload) -> None:
        self._client = client
        self.request = request
        self.payload = payload
        self._response: httpx.Response | None = None
        self._body: str | None = None
        self._closed = False
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def response(self) -> httpx.Response | None:
        return self._response

    @property
    def status_code(self) -> int:
        return self.send().status_code

    @property
    def headers(self) -> httpx.Headers:
        return self.send().headers

    def send(self) -> httpx.Response:
        """Start the exchange (once) and return the streaming response."""

        with self._lock:
            if self._response is not None:
                return self._response
            if self._closed:
                raise RuntimeError("Connection has already been released.")
        response = self._client.send(self.request, stream=True)
        with self._lock:
            if not self._closed:
                self._response = response
                return response
        # disconnect() ganó la carrera: nadie más cerrará esta respuesta.
        response.close()
        raise RuntimeError("Connection was released during the exchange.")

    def read_body(self) -> str:
        if self._body is None:
            response = self.send()
            try:
                response.read()
            finally:
                response.close()
            self._body = response.text
        return self._body

    def execute(self) -> WireResponse:
        """Run the exchange and return it as a `WireResponse`; never raises."""

        try:
            body = self.read_body()
            response = self.send()
        except (httpx.HTTPError, httpx.StreamError, RuntimeError) as exc:
            logger.debug("Exchange to %s failed: %s", self.request.url, exc)
            return _failure_from_exception(exc)
        except Exception as exc:
            logger.exception("Unexpected error during exchange to %s", self.request.url)
            return _failure_from_exception(exc)
        return WireResponse(http_status=response.status_code, body=body, headers=dict(response.headers))

    def disconnect(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            response = self._response
        if response is not None:
            response.close()
        self._client.close()

    def __enter__(self) -> GraphConnection:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.disconnect()


class TransportAdapter:
    """Ejecuta `WirePayload`s sobre httpx.

    Cada ejecución usa su propio cliente: ninguna conexión física se comparte
    entre ejecuciones.
    """

    def __init__(
        self,
        settings: AppSettings | None = None,
        *,
        transport: httpx.BaseTransport | None = None,
        async_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._settings = settings or AppSettings()
        self._transport = transport
        self._async_transport = async_transport

    def build_request(self, client: httpx.Client | httpx.AsyncClient, payload: WirePayload) -> httpx.Request:
        params = payload.query or None
        if payload.has_attachments:
            files = [
                (attachment.name, (attachment.filename or attachment.name, attachment.data, attachment.content_type))
                for attachment in payload.attachments
            ]
            return client.build_request(
                payload.method.value,
                payload.url,
                params=params,
                data=dict(payload.form_fields),
                files=files,
            )

        headers = {"Content-Type": FORM_CONTENT_TYPE}
        content = payload.encoded_form() if payload.form_fields else b""
        if self._settings.gzip_requests:
            headers["Content-Encoding"] = "gzip"
            if content:
                content = gzip.compress(content)
        return client.build_request(
            payload.method.value,
            payload.url,
            params=params,
            content=content or None,
            headers=headers,
        )

    def open_connection(self, payload: WirePayload, timeout_millis: int = 0) -> GraphConnection:
        client = build_client(
            self._settings,
            timeout_seconds=timeout_millis / 1000 if timeout_millis > 0 else None,
            transport=self._transport,
        )
        try:
            request = self.build_request(client, payload)
        except Exception:
            client.close()
            raise
        return GraphConnection(client, request, payload)

    def execute(self, payload: WirePayload, timeout_millis: int = 0) -> WireResponse:
        started = time.monotonic()
        try:
            connection = self.open_connection(payload, timeout_millis)
        except Exception as exc:
            logger.warning("Could not build request for %s: %s", payload.url, exc)
            wire = _failure_from_exception(exc)
            self._log_exchange(payload, wire, started)
            return wire
        try:
            if timeout_millis > 0:
                wire = self._execute_with_deadline(connection, timeout_millis)
            else:
                wire = connection.execute()
        finally:
            connection.disconnect()
        self._log_exchange(payload, wire, started)
        return wire

    def _execute_with_deadline(self, connection: GraphConnection, timeout_millis: int) -> WireResponse:
        done = threading.Event()
        outcome: list[WireResponse] = []

        def run() -> None:
            try:
                outcome.append(connection.execute())
            except Exception as exc:
                logger.exception("Unexpected transport error")
                outcome.append(WireResponse.transport_failure("network_error", str(exc)))
            finally:
                done.set()

        worker = threading.Thread(target=run, name="graph-batch-exchange", daemon=True)
        worker.start()
        if done.wait(timeout_millis / 1000) and outcome:
            return outcome[0]

        logger.warning("Exchange to %s exceeded %d ms; releasing connection", connection.request.url, timeout_millis)
        connection.disconnect()
        return WireResponse.transport_failure("timeout", f"No response within {timeout_millis} ms.")

    async def execute_async(self, payload: WirePayload, timeout_millis: int = 0) -> WireResponse:
        started = time.monotonic()
        async with build_async_client(
            self._settings,
            timeout_seconds=timeout_millis / 1000 if timeout_millis > 0 else None,
            transport=self._async_transport,
        ) as client:
            try:
                request = self.build_request(client, payload)
                if timeout_millis > 0:
                    wire = await asyncio.wait_for(self._send_async(client, request), timeout_millis / 1000)
                else:
                    wire = await self._send_async(client, request)
            except asyncio.TimeoutError:
                logger.warning("Exchange to %s exceeded %d ms; cancelled", payload.url, timeout_millis)
                wire = WireResponse.transport_failure("timeout", f"No response within {timeout_millis} ms.")
            except (httpx.HTTPError, httpx.StreamError) as exc:
                wire = _failure_from_exception(exc)
            except Exception as exc:
                logger.exception("Unexpected error during exchange to %s", payload.url)
                wire = _failure_from_exception(exc)
        self._log_exchange(payload, wire, started)
        return wire

    @staticmethod
    async def _send_async(client: httpx.AsyncClient, request: httpx.Request) -> WireResponse:
        response = await client.send(request)
        return WireResponse(http_status=response.status_code, body=response.text, headers=dict(response.headers))

    def submit(
        self,
        payload: WirePayload,
        timeout_millis: int,
        on_complete: Callable[[WireResponse], None],
    ) -> Future[WireResponse]:
        """Run `execute` on the shared worker pool and hand the result to `on_complete`."""

        def run() -> WireResponse:
            wire = self.execute(payload, timeout_millis)
            on_complete(wire)
            return wire

        return get_worker_pool(self._settings.max_workers).submit(run)

    @staticmethod
    def _log_exchange(payload: WirePayload, wire: WireResponse, started: float) -> None:
        elapsed_ms = (time.monotonic() - started) * 1000
        if wire.transport_failed:
            logger.warning(
                "%s %s failed after %.0f ms: %s", payload.method.value, payload.url, elapsed_ms, wire.failure
            )
        else:
            logger.debug(
                "%s %s -> %s in %.0f ms", payload.method.value, payload.url, wire.http_status, elapsed_ms
            )

"""Batch execution pipeline.

validate → serialize → transport → demultiplex → classify → deliver.

Three execution modes share the same stages and the same callback contract:
- `execute`: blocking; callbacks run on the calling thread before returning.
- `execute_async`: asyncio; callbacks run on the event loop.
- `submit`: non-blocking on the shared worker pool; callbacks run on the
  worker that completed the exchange.

Per-request callbacks fire in input order, then the batch callback fires
exactly once.
"""

from __future__ import annotations

import logging
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Sequence

from core.config import AppSettings
from core.domain.errors import GraphError
from core.domain.models import BatchDescriptor, RequestDescriptor, ResultEnvelope, WireResponse
from core.interfaces.transport import Transport
from core.services.classifier import ErrorClassifier
from core.services.demultiplexer import ResponseDemultiplexer, SubResponse
from core.services.paging import PagingNavigator
from core.services.serializer import BatchSerializer, WirePayload
from core.services.worker_pool import get_worker_pool

if TYPE_CHECKING:
    from adapters.transport import GraphConnection

logger = logging.getLogger(__name__)


@dataclass
class _ExecutionPlan:
    requests: list[RequestDescriptor]
    rejected: dict[int, GraphError] = field(default_factory=dict)
    sendable: list[int] = field(default_factory=list)
    payload: WirePayload | None = None


class BatchPipeline:
    def __init__(
        self,
        settings: AppSettings,
        transport: Transport,
        *,
        serializer: BatchSerializer | None = None,
        demultiplexer: ResponseDemultiplexer | None = None,
        classifier: ErrorClassifier | None = None,
        navigator: PagingNavigator | None = None,
    ) -> None:
        self._settings = settings
        self._transport = transport
        self._serializer = serializer or BatchSerializer(settings)
        self._demultiplexer = demultiplexer or ResponseDemultiplexer()
        self._classifier = classifier or ErrorClassifier()
        self._navigator = navigator or PagingNavigator()

    @property
    def serializer(self) -> BatchSerializer:
        return self._serializer

    def execute(self, batch: BatchDescriptor) -> list[ResultEnvelope]:
        plan = self._prepare(batch)
        wire = self._transport.execute(plan.payload, batch.timeout_millis) if plan.payload else None
        return self._finish(batch, plan, wire)

    async def execute_async(self, batch: BatchDescriptor) -> list[ResultEnvelope]:
        plan = self._prepare(batch)
        wire = await self._transport.execute_async(plan.payload, batch.timeout_millis) if plan.payload else None
        return self._finish(batch, plan, wire)

    def submit(self, batch: BatchDescriptor) -> Future[list[ResultEnvelope]]:
        """Execute in the background; the returned future resolves after all callbacks ran."""

        plan = self._prepare(batch)
        result: Future[list[ResultEnvelope]] = Future()

        def on_complete(wire: WireResponse | None) -> None:
            try:
                envelopes = self._finish(batch, plan, wire)
            except Exception as exc:
                result.set_exception(exc)
            else:
                result.set_result(envelopes)

        def on_transport_done(exchange: Future[WireResponse]) -> None:
            exc = exchange.exception()
            if exc is None or result.done():
                return
            logger.error("Background exchange failed before delivering a response: %r", exc)
            on_complete(WireResponse.transport_failure("network_error", str(exc) or type(exc).__name__))

        if plan.payload is None:
            get_worker_pool(self._settings.max_workers).submit(on_complete, None)
        else:
            exchange = self._transport.submit(plan.payload, batch.timeout_millis, on_complete)
            exchange.add_done_callback(on_transport_done)
        return result

    def execute_connection(
        self, connection: GraphConnection, requests: Sequence[RequestDescriptor]
    ) -> list[ResultEnvelope]:
        """Run an already opened connection and demultiplex its response.

        The connection is left open: status and headers stay readable and the
        caller releases it with `disconnect()`.
        """

        plan = _ExecutionPlan(
            requests=list(requests),
            sendable=list(range(len(requests))),
            payload=connection.payload,
        )
        envelopes = self._assemble(plan, connection.execute())
        self._deliver_each(envelopes)
        return envelopes

    def _prepare(self, batch: BatchDescriptor) -> _ExecutionPlan:
        batch.mark_consumed()
        plan = _ExecutionPlan(requests=list(batch.requests))
        for index, request in enumerate(plan.requests):
            error = request.validate()
            if error is None:
                plan.sendable.append(index)
            else:
                logger.info("Request %d (%s) rejected before sending: %s", index, request.endpoint, error.message)
                plan.rejected[index] = error
        if plan.sendable:
            plan.payload = self._serializer.serialize(
                [plan.requests[i] for i in plan.sendable],
                force_batch=batch.force_batch,
            )
        return plan

    def _finish(self, batch: BatchDescriptor, plan: _ExecutionPlan, wire: WireResponse | None) -> list[ResultEnvelope]:
        envelopes = self._assemble(plan, wire)
        failed = sum(1 for envelope in envelopes if envelope.error is not None)
        logger.info("Batch of %d requests finished: %d ok, %d failed", len(envelopes), len(envelopes) - failed, failed)
        self._deliver_each(envelopes)
        if batch.batch_callback is not None:
            self._invoke(batch.batch_callback, envelopes)
        return envelopes

    def _assemble(self, plan: _ExecutionPlan, wire: WireResponse | None) -> list[ResultEnvelope]:
        envelopes = {
            index: ResultEnvelope(error=error, request=plan.requests[index]) for index, error in plan.rejected.items()
        }
        if plan.payload is not None:
            if wire is None:
                raise RuntimeError("Sendable requests finished without a wire response.")
            subs = self._demultiplexer.split(wire, len(plan.sendable), is_batch=plan.payload.is_batch)
            for index, sub in zip(plan.sendable, subs):
                envelopes[index] = self._envelope(sub, plan.requests[index])
        return [envelopes[index] for index in range(len(plan.requests))]

    def _envelope(self, sub: SubResponse, request: RequestDescriptor) -> ResultEnvelope:
        error = self._classifier.classify(sub)
        return ResultEnvelope(
            parsed_body=sub.parsed_body,
            raw_body=sub.raw_body,
            error=error,
            paging=self._navigator.extract(sub.parsed_body) if error is None else None,
            http_status=sub.http_status,
            headers=sub.headers,
            request=request,
        )

    def _deliver_each(self, envelopes: list[ResultEnvelope]) -> None:
        for envelope in envelopes:
            request = envelope.request
            if request is not None and request.callback is not None:
                self._invoke(request.callback, envelope, request)

    @staticmethod
    def _invoke(callback: Callable[..., Any], *args: Any) -> None:
        try:
            callback(*args)
        except Exception:
            logger.exception("Result callback %r raised", callback)

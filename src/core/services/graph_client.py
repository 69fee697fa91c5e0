"""High-level entry point bundling settings, transport and pipeline.

The CLI and library callers go through `GraphClient`; the pipeline stages
stay individually usable for tests and custom flows.
"""

from __future__ import annotations

from concurrent.futures import Future
from typing import Any, Sequence

from adapters.transport import GraphConnection, TransportAdapter
from core.config import AppSettings
from core.domain.errors import MalformedRequestError
from core.domain.models import (
    BatchCallback,
    BatchDescriptor,
    HttpMethod,
    RequestCallback,
    RequestDescriptor,
    ResultEnvelope,
)
from core.interfaces.transport import Transport
from core.services.batch_pipeline import BatchPipeline
from core.services.paging import PagingNavigator


class GraphClient:
    def __init__(self, settings: AppSettings | None = None, *, transport: Transport | None = None) -> None:
        self.settings = settings or AppSettings()
        self.transport = transport or TransportAdapter(self.settings)
        self.pipeline = BatchPipeline(self.settings, self.transport)
        self.navigator = PagingNavigator()

    def new_request(
        self,
        endpoint: str,
        parameters: dict[str, Any] | None = None,
        *,
        method: HttpMethod | str = HttpMethod.GET,
        version: str | None = None,
        credential: str | None = None,
        public: bool = False,
        tag: str | None = None,
        depends_on: str | None = None,
        callback: RequestCallback | None = None,
    ) -> RequestDescriptor:
        """Build a descriptor; the configured token is used unless `public=True`."""

        if credential is None and not public:
            credential = self.settings.access_token
        return RequestDescriptor(
            endpoint=endpoint,
            parameters=dict(parameters or {}),
            method=method,  # type: ignore[arg-type]
            version=version,
            credential=credential,
            tag=tag,
            depends_on=depends_on,
            callback=callback,
        )

    @staticmethod
    def new_batch(
        *requests: RequestDescriptor,
        timeout_millis: int = 0,
        batch_callback: BatchCallback | None = None,
        force_batch: bool = False,
    ) -> BatchDescriptor:
        return BatchDescriptor(
            requests,
            timeout_millis=timeout_millis,
            batch_callback=batch_callback,
            force_batch=force_batch,
        )

    def execute_batch(self, batch: BatchDescriptor) -> list[ResultEnvelope]:
        return self.pipeline.execute(batch)

    async def execute_batch_async(self, batch: BatchDescriptor) -> list[ResultEnvelope]:
        return await self.pipeline.execute_async(batch)

    def submit_batch(self, batch: BatchDescriptor) -> Future[list[ResultEnvelope]]:
        return self.pipeline.submit(batch)

    def execute_request(self, request: RequestDescriptor, *, timeout_millis: int = 0) -> ResultEnvelope:
        """Execute one descriptor and wait for its envelope."""

        return self.pipeline.execute(BatchDescriptor([request], timeout_millis=timeout_millis))[0]

    async def execute_request_async(self, request: RequestDescriptor, *, timeout_millis: int = 0) -> ResultEnvelope:
        envelopes = await self.pipeline.execute_async(BatchDescriptor([request], timeout_millis=timeout_millis))
        return envelopes[0]

    def open_connection(self, requests: Sequence[RequestDescriptor], *, force_batch: bool = False) -> GraphConnection:
        """Serialize `requests` and return the unsent live connection.

        Raises:
            MalformedRequestError: a descriptor fails validation.
        """

        if not isinstance(self.transport, TransportAdapter):
            raise TypeError("Live connections require the httpx TransportAdapter.")
        for request in requests:
            error = request.validate()
            if error is not None:
                raise MalformedRequestError(error)
        payload = self.pipeline.serializer.serialize(list(requests), force_batch=force_batch)
        return self.transport.open_connection(payload)

    def execute_connection(
        self, connection: GraphConnection, requests: Sequence[RequestDescriptor]
    ) -> list[ResultEnvelope]:
        return self.pipeline.execute_connection(connection, requests)

    def next_page(self, envelope: ResultEnvelope) -> RequestDescriptor | None:
        return self.navigator.next(envelope)

    def previous_page(self, envelope: ResultEnvelope) -> RequestDescriptor | None:
        return self.navigator.previous(envelope)

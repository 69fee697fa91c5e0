import json
import os
from concurrent.futures import Future
from typing import Any, Callable, List, Optional

import httpx
import pytest

from adapters.transport import TransportAdapter
from core.config import AppSettings
from core.domain.models import WireResponse
from core.services.graph_client import GraphClient
from core.services.worker_pool import shutdown_worker_pool

BASE_URL = "https://graph.example.com"


@pytest.fixture(autouse=True)
def isolate_environment(monkeypatch):
    """Keep real GRAPH_BATCH_* variables out of the tests."""
    for name in list(os.environ):
        if name.upper().startswith("GRAPH_BATCH_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture(autouse=True)
def fresh_worker_pool():
    yield
    shutdown_worker_pool(wait=True)


@pytest.fixture
def settings():
    return AppSettings(
        _env_file=None,
        base_url=BASE_URL,
        api_version="v2.3",
        access_token="TOKEN",
        gzip_requests=True,
        max_workers=2,
    )


def _batch_body(*bodies: Any, code: int = 200) -> str:
    return json.dumps([{"code": code, "body": json.dumps(body)} for body in bodies])


@pytest.fixture
def batch_body():
    """Batch wire body builder: one `{code, body}` entry per sub-response."""
    return _batch_body


class RecordingTransport:
    """Transport double: returns canned WireResponses and records payloads."""

    def __init__(self, wire: "WireResponse | Callable[..., WireResponse]"):
        self._wire = wire
        self.payloads: List[Any] = []
        self.timeouts: List[int] = []

    def _respond(self, payload) -> WireResponse:
        self.payloads.append(payload)
        return self._wire(payload) if callable(self._wire) else self._wire

    def execute(self, payload, timeout_millis: int = 0) -> WireResponse:
        self.timeouts.append(timeout_millis)
        return self._respond(payload)

    async def execute_async(self, payload, timeout_millis: int = 0) -> WireResponse:
        self.timeouts.append(timeout_millis)
        return self._respond(payload)

    def submit(self, payload, timeout_millis, on_complete) -> Future:
        future: Future = Future()
        wire = self.execute(payload, timeout_millis)
        on_complete(wire)
        future.set_result(wire)
        return future


@pytest.fixture
def make_mock_client(settings):
    """Build a GraphClient whose httpx layer is an `httpx.MockTransport`."""

    def factory(handler: Callable[[httpx.Request], httpx.Response], app_settings: Optional[AppSettings] = None):
        app_settings = app_settings or settings
        transport = TransportAdapter(
            app_settings,
            transport=httpx.MockTransport(handler),
            async_transport=httpx.MockTransport(handler),
        )
        return GraphClient(app_settings, transport=transport)

    return factory


@pytest.fixture
def recording_transport():
    return RecordingTransport

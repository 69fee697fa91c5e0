import asyncio
import gzip
import json
import threading
import time
from urllib.parse import parse_qs

import httpx

from adapters.transport import GraphConnection, TransportAdapter
from core.config import AppSettings
from core.domain.models import HttpMethod, RequestDescriptor
from core.services.serializer import BatchSerializer

PNG = b"\x89PNG\r\n\x1a\n" + b"\x02" * 4


def _payload(settings, *requests, force_batch=False):
    return BatchSerializer(settings).serialize(list(requests), force_batch=force_batch)


def _adapter(settings, handler):
    return TransportAdapter(settings, transport=httpx.MockTransport(handler))


def test_batch_post_is_gzipped_form(settings):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["method"] = request.method
        seen["url"] = str(request.url)
        seen["headers"] = request.headers
        seen["form"] = parse_qs(gzip.decompress(request.content).decode("utf-8"))
        return httpx.Response(200, text="[]")

    payload = _payload(settings, RequestDescriptor("a", credential="TOKEN"), RequestDescriptor("b", credential="TOKEN"))
    wire = _adapter(settings, handler).execute(payload)

    assert wire.http_status == 200
    assert seen["method"] == "POST"
    assert seen["url"] == "https://graph.example.com/v2.3"
    assert seen["headers"]["content-encoding"] == "gzip"
    assert seen["headers"]["content-type"] == "application/x-www-form-urlencoded"
    assert seen["headers"]["accept"] == "application/json"
    assert seen["form"]["access_token"] == ["TOKEN"]
    assert seen["form"]["format"] == ["json"]
    assert '"relative_url":"a"' in seen["form"]["batch"][0]


def test_gzip_can_be_disabled():
    settings = AppSettings(_env_file=None, base_url="https://graph.example.com", gzip_requests=False)
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["encoding"] = request.headers.get("content-encoding")
        seen["body"] = request.content
        return httpx.Response(200, json={"id": "1"})

    payload = _payload(settings, RequestDescriptor("me/feed", {"message": "hi"}, method=HttpMethod.POST))
    _adapter(settings, handler).execute(payload)

    assert seen["encoding"] is None
    assert seen["body"] == b"message=hi&format=json"


def test_single_get_sends_query_string(settings):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        seen["path"] = request.url.path
        return httpx.Response(200, json={"id": "4"}, headers={"X-App-Usage": "{}"})

    payload = _payload(settings, RequestDescriptor("4", {"fields": "id"}, credential="TOKEN"))
    wire = _adapter(settings, handler).execute(payload)

    assert seen["path"] == "/v2.3/4"
    assert seen["params"] == {"fields": "id", "access_token": "TOKEN", "format": "json"}
    assert wire.header("X-App-Usage") == "{}"


def test_attachments_switch_to_multipart(settings):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["content_type"] = request.headers["content-type"]
        seen["body"] = request.content
        return httpx.Response(200, text="[]")

    payload = _payload(
        settings,
        RequestDescriptor("me/photos", {"source": PNG, "message": "m"}, method=HttpMethod.POST),
        RequestDescriptor("me"),
    )
    _adapter(settings, handler).execute(payload)

    assert seen["content_type"].startswith("multipart/form-data")
    assert b'name="attachment-0"' in seen["body"]
    assert PNG in seen["body"]
    assert b'name="batch"' in seen["body"]


def test_deadline_releases_slow_exchange(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        time.sleep(0.5)
        return httpx.Response(200, json={})

    payload = _payload(settings, RequestDescriptor("me"))
    started = time.monotonic()

    wire = _adapter(settings, handler).execute(payload, timeout_millis=1)

    assert time.monotonic() - started < 0.4
    assert wire.transport_failed
    assert wire.failure == "timeout"


def test_connect_error_becomes_failure(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    wire = _adapter(settings, handler).execute(_payload(settings, RequestDescriptor("me")), timeout_millis=1000)

    assert wire.http_status is None
    assert wire.failure == "connect_error"
    assert "refused" in wire.failure_detail


def test_connection_exposes_status_and_headers(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(201, json={"id": "9"}, headers={"ETag": "abc"})

    adapter = _adapter(settings, handler)
    connection = adapter.open_connection(_payload(settings, RequestDescriptor("me/feed", method=HttpMethod.POST)))

    assert isinstance(connection, GraphConnection)
    assert connection.response is None
    assert connection.status_code == 201
    assert connection.headers["etag"] == "abc"

    wire = connection.execute()
    assert json.loads(wire.body) == {"id": "9"}

    connection.disconnect()
    connection.disconnect()
    assert connection.closed


def test_released_connection_cannot_send(settings):
    adapter = _adapter(settings, lambda request: httpx.Response(200, json={}))
    with adapter.open_connection(_payload(settings, RequestDescriptor("me"))) as connection:
        pass

    wire = connection.execute()

    assert wire.failure == "connection_released"


def test_request_can_be_modified_before_send(settings):
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["trace"] = request.headers.get("x-trace")
        return httpx.Response(200, json={})

    connection = _adapter(settings, handler).open_connection(_payload(settings, RequestDescriptor("me")))
    connection.request.headers["X-Trace"] = "t-1"
    connection.execute()
    connection.disconnect()

    assert seen["trace"] == "t-1"


async def test_execute_async_round_trip(settings):
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"id": "me"})

    adapter = TransportAdapter(settings, async_transport=httpx.MockTransport(handler))

    wire = await adapter.execute_async(_payload(settings, RequestDescriptor("me")))

    assert wire.http_status == 200
    assert wire.body is not None and '"me"' in wire.body


async def test_execute_async_deadline(settings):
    async def handler(request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(0.5)
        return httpx.Response(200, json={})

    adapter = TransportAdapter(settings, async_transport=httpx.MockTransport(handler))

    wire = await adapter.execute_async(_payload(settings, RequestDescriptor("me")), timeout_millis=5)

    assert wire.failure == "timeout"


def test_submit_calls_back_on_worker_thread(settings):
    threads = []
    adapter = _adapter(settings, lambda request: httpx.Response(200, json={"id": "1"}))

    future = adapter.submit(
        _payload(settings, RequestDescriptor("1")),
        0,
        lambda wire: threads.append((threading.current_thread(), wire.http_status)),
    )

    assert future.result(timeout=5).http_status == 200
    assert threads[0][0] is not threading.main_thread()
    assert threads[0][1] == 200


def test_unexpected_handler_error_becomes_failure_without_deadline(settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise ValueError("handler blew up")

    adapter = _adapter(settings, handler)
    payload = _payload(settings, RequestDescriptor("me"))

    for timeout_millis in (0, 1000):
        wire = adapter.execute(payload, timeout_millis=timeout_millis)
        assert wire.transport_failed
        assert wire.failure == "network_error"
        assert "blew up" in wire.failure_detail


def test_unbuildable_url_becomes_failure(settings):
    adapter = _adapter(settings, lambda request: httpx.Response(200, json={}))

    wire = adapter.execute(_payload(settings, RequestDescriptor("me\nfoo")))

    assert wire.http_status is None
    assert wire.failure == "network_error"


async def test_unbuildable_url_becomes_failure_async(settings):
    async def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={})

    adapter = TransportAdapter(settings, async_transport=httpx.MockTransport(handler))

    wire = await adapter.execute_async(_payload(settings, RequestDescriptor("me\x01")))

    assert wire.failure == "network_error"


def test_disconnect_during_send_closes_late_response(settings):
    holder = {}

    def handler(request: httpx.Request) -> httpx.Response:
        holder["connection"].disconnect()
        return httpx.Response(200, json={"id": "1"})

    connection = _adapter(settings, handler).open_connection(_payload(settings, RequestDescriptor("me")))
    holder["connection"] = connection

    wire = connection.execute()

    assert wire.failure == "connection_released"
    assert connection.response is None
    assert connection.closed

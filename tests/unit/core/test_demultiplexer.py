import json

import pytest

from core.domain.models import WireResponse
from core.services.demultiplexer import MISSING_BATCH_ENTRY, ResponseDemultiplexer, decode_body


@pytest.fixture
def demux():
    return ResponseDemultiplexer()


def test_decode_body_wraps_scalars():
    assert decode_body("true") == ({"success": True}, False)
    assert decode_body('"done"') == ({"non_json_result": "done"}, False)
    assert decode_body("  ") == (None, False)
    assert decode_body("<html>") == (None, True)


def test_single_path_yields_one_sub_response(demux):
    wire = WireResponse(http_status=200, body='{"id": "4"}', headers={"X-FB-Debug": "abc"})

    [sub] = demux.split(wire, 1, is_batch=False)

    assert sub.http_status == 200
    assert sub.parsed_body == {"id": "4"}
    assert sub.raw_body == '{"id": "4"}'
    assert sub.headers == {"x-fb-debug": "abc"}


def test_batch_entries_are_split_in_order(demux, batch_body):
    wire = WireResponse(http_status=200, body=batch_body({"id": "1"}, {"id": "2"}, {"id": "3"}))

    subs = demux.split(wire, 3, is_batch=True)

    assert [s.parsed_body["id"] for s in subs] == ["1", "2", "3"]
    assert all(s.http_status == 200 for s in subs)


def test_batch_entry_headers_and_status_are_kept(demux):
    body = json.dumps(
        [
            {
                "code": 400,
                "headers": [{"name": "Content-Type", "value": "text/javascript"}],
                "body": json.dumps({"error": {"code": 100, "message": "bad"}}),
            }
        ]
    )

    [sub] = demux.split(WireResponse(http_status=200, body=body), 1, is_batch=True)

    assert sub.http_status == 400
    assert sub.headers == {"content-type": "text/javascript"}
    assert sub.parsed_body["error"]["code"] == 100


def test_short_batch_array_marks_missing_positions(demux, batch_body):
    wire = WireResponse(http_status=200, body=batch_body({"id": "1"}))

    subs = demux.split(wire, 3, is_batch=True)

    assert subs[0].parsed_body == {"id": "1"}
    assert subs[1].failure == MISSING_BATCH_ENTRY
    assert subs[2].failure == MISSING_BATCH_ENTRY
    assert subs[2].http_status is None


def test_null_batch_entry_is_missing(demux):
    body = json.dumps([None, {"code": 200, "body": "true"}])

    subs = demux.split(WireResponse(http_status=200, body=body), 2, is_batch=True)

    assert subs[0].failure == MISSING_BATCH_ENTRY
    assert subs[1].parsed_body == {"success": True}


def test_whole_batch_error_applies_to_every_position(demux):
    body = json.dumps({"error": {"code": 190, "message": "expired"}})

    subs = demux.split(WireResponse(http_status=400, body=body), 2, is_batch=True)

    assert len(subs) == 2
    assert all(s.parsed_body["error"]["code"] == 190 for s in subs)
    assert all(s.http_status == 400 for s in subs)


def test_invalid_batch_json_marks_every_position(demux):
    subs = demux.split(WireResponse(http_status=502, body="<html>Bad Gateway</html>"), 2, is_batch=True)

    assert [s.decode_failed for s in subs] == [True, True]
    assert subs[0].raw_body == "<html>Bad Gateway</html>"


def test_transport_failure_fans_out(demux):
    wire = WireResponse.transport_failure("timeout", "Deadline of 5 ms exceeded.")

    subs = demux.split(wire, 2, is_batch=True)

    assert [s.failure for s in subs] == ["timeout", "timeout"]
    assert subs[1].failure_detail == "Deadline of 5 ms exceeded."

import hashlib
import hmac
import json
from datetime import datetime, timezone

import pytest

from src.attendance.errors import InvalidSignatureError, MalformedPayloadError, StaleRequestError
from src.attendance.webhook import WebhookVerifier, parse_delivery, sign, url_validation_response
from tests.support import signed

NOW = datetime(2026, 10, 19, 6, 0, tzinfo=timezone.utc)
TS = str(int(NOW.timestamp()))


def _verifier(max_age: int = 300, now: datetime = NOW) -> WebhookVerifier:
    return WebhookVerifier("test-secret", max_age, clock=lambda: now)


def test_valid_signature_passes():
    raw, headers = signed({"event": "meeting.started"}, "test-secret", TS)

    _verifier().verify(raw, headers["x-zm-request-timestamp"], headers["x-zm-signature"])


def test_signature_is_over_raw_body():
    raw, headers = signed({"event": "meeting.started"}, "test-secret", TS)
    reformatted = json.dumps(json.loads(raw), indent=2).encode()

    with pytest.raises(InvalidSignatureError):
        _verifier().verify(reformatted, headers["x-zm-request-timestamp"], headers["x-zm-signature"])


def test_wrong_secret_rejected():
    raw, headers = signed({"event": "meeting.started"}, "other-secret", TS)

    with pytest.raises(InvalidSignatureError):
        _verifier().verify(raw, headers["x-zm-request-timestamp"], headers["x-zm-signature"])


def test_missing_headers_rejected():
    with pytest.raises(InvalidSignatureError):
        _verifier().verify(b"{}", None, None)


def test_unconfigured_secret_rejects_everything():
    raw = b"{}"
    with pytest.raises(InvalidSignatureError):
        WebhookVerifier("").verify(raw, TS, sign("", TS, raw))


def test_staleness_window_boundary():
    raw = b"{}"
    signature = sign("test-secret", TS, raw)

    _verifier(now=NOW.replace(minute=5)).verify(raw, TS, signature)
    with pytest.raises(StaleRequestError):
        _verifier(now=NOW.replace(minute=5, second=1)).verify(raw, TS, signature)


def test_staleness_check_can_be_disabled():
    raw = b"{}"
    _verifier(max_age=0, now=NOW.replace(hour=9)).verify(raw, TS, sign("test-secret", TS, raw))


def test_millisecond_timestamps_accepted():
    raw = b"{}"
    ts_ms = TS + "123"
    _verifier().verify(raw, ts_ms, sign("test-secret", ts_ms, raw))


def test_url_validation_response():
    response = url_validation_response("test-secret", "abc123")

    expected = hmac.new(b"test-secret", b"abc123", hashlib.sha256).hexdigest()
    assert response == {"plainToken": "abc123", "encryptedToken": expected}


def test_parse_started_event():
    delivery = parse_delivery(
        json.dumps(
            {
                "event": "meeting.started",
                "payload": {
                    "account_id": "acc",
                    "object": {
                        "id": 85746065,
                        "uuid": "4444AAAiAAAAAiAiAiiAii==",
                        "topic": "Algebra 1",
                        "start_time": "2026-10-19T07:58:00Z",
                        "host_id": "z8yCxjabcdEFGHfp8uQ",
                    },
                },
            }
        ).encode()
    )

    meeting = delivery.started()
    assert meeting.id == "85746065"
    assert meeting.host == "z8yCxjabcdEFGHfp8uQ"
    assert meeting.start_time == datetime(2026, 10, 19, 7, 58, tzinfo=timezone.utc)


def test_host_email_preferred_over_host_id():
    delivery = parse_delivery(
        json.dumps(
            {
                "event": "meeting.started",
                "payload": {
                    "object": {
                        "id": "1",
                        "topic": "Algebra 1",
                        "start_time": "2026-10-19T07:58:00Z",
                        "host_id": "abc",
                        "host_email": "ann@example.com",
                    }
                },
            }
        ).encode()
    )

    assert delivery.started().host == "ann@example.com"


@pytest.mark.parametrize(
    "obj",
    [
        {"id": "1", "start_time": "2026-10-19T07:58:00Z", "host_id": "h"},
        {"id": "1", "topic": "Algebra 1", "host_id": "h"},
        {"id": "1", "topic": "Algebra 1", "start_time": "2026-10-19T07:58:00Z"},
        {"id": "1", "topic": "Algebra 1", "start_time": "yesterday", "host_id": "h"},
        {"id": "1", "topic": "Algebra 1", "start_time": "2026-10-19T07:58:00", "host_id": "h"},
    ],
)
def test_incomplete_started_event_is_malformed(obj):
    delivery = parse_delivery(json.dumps({"event": "meeting.started", "payload": {"object": obj}}).encode())

    with pytest.raises(MalformedPayloadError):
        delivery.started()


def test_ended_event_needs_end_time():
    delivery = parse_delivery(json.dumps({"event": "meeting.ended", "payload": {"object": {"id": "1"}}}).encode())

    with pytest.raises(MalformedPayloadError):
        delivery.ended()


@pytest.mark.parametrize("raw", [b"not json", b"[1, 2]", b'{"payload": {}}', b"\xff\xfe"])
def test_unparseable_bodies(raw):
    with pytest.raises(MalformedPayloadError):
        parse_delivery(raw)


def test_missing_object_is_malformed():
    delivery = parse_delivery(b'{"event": "meeting.ended", "payload": {}}')

    with pytest.raises(MalformedPayloadError):
        delivery.ended()

from __future__ import annotations

import json
from typing import Any, Callable, List

import httpx
import pytest

from content_portal.automation import AutomationClient, parse_response_payload
from content_portal.errors import (
    AutomationError,
    AutomationTimeoutError,
    ConfigurationError,
    TransportError,
)
from content_portal.models.automation import AutomationPayload

WEBHOOK = "https://n8n.example.com/webhook/content"


class _FakeTime:
    """Monotonic clock that only moves when the client sleeps."""

    def __init__(self) -> None:
        self.now = 0.0
        self.sleeps: List[float] = []

    def clock(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


class _Recorder:
    def __init__(self, respond: Callable[[httpx.Request, int], httpx.Response]):
        self.respond = respond
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return self.respond(request, len(self.requests))

    @property
    def polls(self) -> List[httpx.Request]:
        return [r for r in self.requests if r.method == "GET"]


def _client(recorder: _Recorder, fake: _FakeTime, **kwargs: Any) -> AutomationClient:
    http = httpx.AsyncClient(transport=httpx.MockTransport(recorder))
    return AutomationClient(
        kwargs.pop("webhook", WEBHOOK),
        poll_interval_ms=kwargs.pop("poll_interval_ms", 1000),
        poll_timeout_ms=kwargs.pop("poll_timeout_ms", 3500),
        http_client=http,
        sleep=fake.sleep,
        clock=fake.clock,
    )


def _json(body: Any, status: int = 200) -> httpx.Response:
    return httpx.Response(status, json=body)


def _payload() -> AutomationPayload:
    return AutomationPayload(type="script", prompt="Write something")


async def test_completed_envelope_returns_normalized_result():
    rec = _Recorder(lambda req, n: _json({"status": "completed", "result": {"output": {"text": "done"}}}))
    fake = _FakeTime()
    result = await _client(rec, fake).trigger(_payload())
    assert result.status == "completed"
    assert result.result == {"text": "done"}
    assert rec.polls == []
    assert json.loads(rec.requests[0].content) == {"type": "script", "prompt": "Write something"}


async def test_completed_with_null_result_uses_envelope():
    rec = _Recorder(lambda req, n: _json({"status": "completed", "result": None, "text": "hi"}))
    result = await _client(rec, _FakeTime()).trigger(_payload())
    assert result.result["text"] == "hi"


async def test_payload_without_status_is_the_result():
    rec = _Recorder(lambda req, n: _json({"foo": "bar"}))
    fake = _FakeTime()
    result = await _client(rec, fake).trigger(_payload())
    assert result.result == {"foo": "bar"}
    assert result.task_id is None
    assert rec.polls == []
    assert fake.sleeps == []


async def test_item_list_envelope_is_unwrapped():
    body = [{"json": {"status": "completed", "taskId": "abc", "result": {"text": "x"}}}]
    rec = _Recorder(lambda req, n: _json(body))
    result = await _client(rec, _FakeTime()).trigger(_payload())
    assert result.result == {"text": "x"}
    assert result.task_id == "abc"


@pytest.mark.parametrize(
    "body,message",
    [
        ({"status": "error", "message": "boom"}, "boom"),
        ({"status": "error", "error": "bad input"}, "bad input"),
        ({"status": "error"}, "automation error"),
        ({"status": "error", "message": {"code": 7}}, "automation error"),
        ({"status": "error", "message": ["a"], "error": "bad input"}, "bad input"),
        ({"status": "error", "message": 42, "error": {"detail": "x"}}, "automation error"),
    ],
)
async def test_error_status_raises_with_message(body, message):
    rec = _Recorder(lambda req, n: _json(body))
    with pytest.raises(AutomationError) as exc:
        await _client(rec, _FakeTime()).trigger(_payload())
    assert exc.value.message == message


async def test_pending_then_completed_after_one_poll():
    def respond(req: httpx.Request, n: int) -> httpx.Response:
        if req.method == "POST":
            return _json({"status": "pending", "taskId": "t1"})
        return _json({"status": "completed", "result": {"text": "finished"}})

    rec = _Recorder(respond)
    fake = _FakeTime()
    result = await _client(rec, fake).trigger(_payload())
    assert result.result == {"text": "finished"}
    assert result.task_id == "t1"
    assert len(rec.polls) == 1
    assert rec.polls[0].url.params["taskId"] == "t1"
    assert fake.sleeps == [1.0]


async def test_poll_error_status_aborts():
    def respond(req: httpx.Request, n: int) -> httpx.Response:
        if req.method == "POST":
            return _json({"status": "queued", "taskId": "t2"})
        if n == 2:
            return _json({"status": "running", "taskId": "t2"})
        return _json({"status": "error", "message": "workflow crashed"})

    rec = _Recorder(respond)
    with pytest.raises(AutomationError, match="workflow crashed"):
        await _client(rec, _FakeTime()).trigger(_payload())
    assert len(rec.polls) == 2


async def test_poll_timeout_issues_no_request_after_deadline():
    def respond(req: httpx.Request, n: int) -> httpx.Response:
        return _json({"status": "pending", "taskId": "t3"})

    rec = _Recorder(respond)
    fake = _FakeTime()
    with pytest.raises(AutomationTimeoutError, match="timed out waiting for automation response"):
        await _client(rec, fake, poll_interval_ms=1000, poll_timeout_ms=3500).trigger(_payload())
    # polls at t=1, 2, 3; the wake-up at t=4 is past the 3.5s deadline
    assert len(rec.polls) == 3
    assert fake.now == 4.0


async def test_pending_without_task_id_fails():
    rec = _Recorder(lambda req, n: _json({"status": "pending"}))
    with pytest.raises(AutomationError, match="no task id"):
        await _client(rec, _FakeTime()).trigger(_payload())
    assert rec.polls == []


@pytest.mark.parametrize("state", ["ready", "processing"])
async def test_video_status_is_returned_without_polling(state):
    rec = _Recorder(lambda req, n: _json({"status": state, "videoId": "vid-9", "extra": 1}))
    fake = _FakeTime()
    result = await _client(rec, fake).trigger(_payload())
    assert result.result == {"videoId": "vid-9", "videoStatus": state}
    assert rec.polls == []
    assert fake.sleeps == []


async def test_non_success_status_raises_transport_error():
    rec = _Recorder(lambda req, n: httpx.Response(500, text="upstream broke"))
    with pytest.raises(TransportError) as exc:
        await _client(rec, _FakeTime()).trigger(_payload())
    assert exc.value.http_status == 500


async def test_connection_failure_raises_transport_error():
    def respond(req: httpx.Request, n: int) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=req)

    with pytest.raises(TransportError) as exc:
        await _client(_Recorder(respond), _FakeTime()).trigger(_payload())
    assert exc.value.http_status is None


async def test_missing_webhook_url_fails_fast():
    rec = _Recorder(lambda req, n: _json({}))
    with pytest.raises(ConfigurationError):
        await _client(rec, _FakeTime(), webhook="").trigger(_payload())
    assert rec.requests == []


async def test_binary_image_response_becomes_data_uri():
    png = b"\x89PNG\r\n\x1a\n" + b"\x00" * 64
    rec = _Recorder(lambda req, n: httpx.Response(200, content=png, headers={"content-type": "image/png"}))
    result = await _client(rec, _FakeTime()).trigger(_payload())
    assert result.result["imageData"].startswith("data:image/png;base64,")
    assert result.result["imageMimeType"] == "image/png"


def test_parse_plain_text_and_json_text():
    text = httpx.Response(200, text="just a caption", headers={"content-type": "text/plain"})
    assert parse_response_payload(text) == {"output": "just a caption"}
    embedded = httpx.Response(200, text='{"text": "hi"}', headers={"content-type": "text/plain"})
    assert parse_response_payload(embedded) == {"text": "hi"}
    data_uri = httpx.Response(200, text="data:image/gif;base64,R0lG", headers={"content-type": "text/plain"})
    assert parse_response_payload(data_uri) == {"imageData": "data:image/gif;base64,R0lG"}


def test_parse_invalid_json_raises():
    bad = httpx.Response(200, text="{not json", headers={"content-type": "application/json"})
    with pytest.raises(TransportError):
        parse_response_payload(bad)

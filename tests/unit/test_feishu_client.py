from __future__ import annotations

import asyncio
import base64
import hashlib
import hmac
import json
import logging
from contextlib import suppress
from typing import Any

import pytest
import requests

from config import FeishuBotConfig
from feishu.card import CardBuilder, Markdown
from feishu.client import FeishuBot, gen_signature, parse_access_token
from feishu.errors import AdmissionError, FeishuApiError, FeishuError, FeishuHttpError, MessageBuildError
from feishu.i18n import EN_US
from feishu.rich_text import RichTextBuilder
from observability import InMemoryObservabilitySink, ObservabilityRecorder

WEBHOOK = "https://open.feishu.cn/open-apis/bot/v2/hook/abc-token"


class _FakeResponse:
    def __init__(self, payload: dict[str, Any] | None, *, status_code: int, content: bytes | None = None) -> None:
        self._payload = payload
        self.status_code = status_code
        self.content = content if content is not None else (json.dumps(payload).encode() if payload is not None else b"")

    def json(self) -> dict[str, Any]:
        if self._payload is None:
            raise ValueError("no json payload")
        return self._payload


_OK = {"code": 0, "msg": "success", "data": {}}


def _make_config(**overrides: Any) -> FeishuBotConfig:
    fields: dict[str, Any] = {
        "webhook": WEBHOOK,
        "limiter_per_second": -1,
        "limiter_per_minute": -1,
        "max_attempt": 3,
        "base_delay": 0.5,
        "backoff_multiplier": 2.0,
        "max_delay": 30.0,
    }
    fields.update(overrides)
    return FeishuBotConfig(**fields)


async def _close(bot: FeishuBot) -> None:
    if bot._request_worker_task is not None:
        bot._request_worker_task.cancel()
        with suppress(asyncio.CancelledError):
            await bot._request_worker_task


class _Poster:
    """Fake `requests.post` that records bodies and replays canned responses."""

    def __init__(self, *responses: _FakeResponse | Exception) -> None:
        self._responses = list(responses) or [_FakeResponse(_OK, status_code=200)]
        self.calls: list[dict[str, Any]] = []

    def __call__(self, url: str, *, data: bytes, headers: dict[str, str], timeout: float) -> _FakeResponse:
        self.calls.append({"url": url, "body": json.loads(data), "headers": headers, "timeout": timeout})
        item = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(item, Exception):
            raise item
        return item


@pytest.fixture
def no_backoff(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    monkeypatch.setattr("feishu.client.random.uniform", lambda _a, _b: 0.0)
    slept: list[float] = []

    async def fake_sleep(seconds: float) -> None:
        slept.append(seconds)

    monkeypatch.setattr("feishu.client.asyncio.sleep", fake_sleep)
    return slept


@pytest.mark.parametrize(
    ("webhook", "token"),
    [
        (WEBHOOK, "abc-token"),
        ("https://open.feishu.cn/open-apis/bot/v2/hook/abc-token/", "abc-token"),
        ("abc-token", "abc-token"),
        ("  abc-token ", "abc-token"),
    ],
)
def test_parse_access_token(webhook: str, token: str) -> None:
    assert parse_access_token(webhook) == token


def test_url_uses_base_url_and_token() -> None:
    bot = FeishuBot(_make_config(webhook="tok", base_url="https://open.larksuite.com/"))
    assert bot.url == "https://open.larksuite.com/open-apis/bot/v2/hook/tok"


def test_gen_signature_matches_hmac_of_empty_message() -> None:
    key = b"1599360473\ns3cret"
    expected = base64.b64encode(hmac.new(key, b"", hashlib.sha256).digest()).decode()
    assert gen_signature(1599360473, "s3cret") == expected


@pytest.mark.asyncio
async def test_send_text_posts_json_body(monkeypatch: pytest.MonkeyPatch) -> None:
    poster = _Poster()
    monkeypatch.setattr("feishu.client.requests.post", poster)

    bot = FeishuBot(_make_config(request_timeout=4.0))
    try:
        result = await bot.send_text("hello")
        assert result.ok
        assert result.msg == "success"
        assert poster.calls == [
            {
                "url": WEBHOOK,
                "body": {"msg_type": "text", "content": {"text": "hello"}},
                "headers": {"Content-Type": "application/json; charset=utf-8"},
                "timeout": 4.0,
            }
        ]
    finally:
        await _close(bot)


@pytest.mark.asyncio
async def test_signed_requests_carry_timestamp_and_sign(monkeypatch: pytest.MonkeyPatch) -> None:
    poster = _Poster()
    monkeypatch.setattr("feishu.client.requests.post", poster)
    monkeypatch.setattr("feishu.client.time.time", lambda: 1599360473.9)

    bot = FeishuBot(_make_config(secret_key="s3cret"))
    try:
        await bot.send_image("img_v2_1")
        body = poster.calls[0]["body"]
        assert body["msg_type"] == "image"
        assert body["timestamp"] == 1599360473
        assert body["sign"] == gen_signature(1599360473, "s3cret")
    finally:
        await _close(bot)


@pytest.mark.asyncio
async def test_every_message_kind_is_delivered(monkeypatch: pytest.MonkeyPatch) -> None:
    poster = _Poster()
    monkeypatch.setattr("feishu.client.requests.post", poster)

    bot = FeishuBot(_make_config())
    try:
        await bot.send_rich_text(RichTextBuilder(EN_US, "t").text("x"))
        await bot.send_share_chat("oc_1")
        await bot.send_card(None, CardBuilder(EN_US, "Title").add_elements([Markdown(content="m")]))
        await bot.send_card_via_template("ctp_1", {"a": 1})
        sent = [c["body"]["msg_type"] for c in poster.calls]
        assert sent == ["post", "share_chat", "interactive", "interactive"]
        assert "timestamp" not in poster.calls[0]["body"]
        assert poster.calls[2]["body"]["card"]["i18n_elements"] == {EN_US: [{"tag": "markdown", "content": "m"}]}
    finally:
        await _close(bot)


@pytest.mark.asyncio
async def test_non_zero_code_raises_api_error_without_retry(monkeypatch: pytest.MonkeyPatch) -> None:
    poster = _Poster(_FakeResponse({"code": 19021, "msg": "sign match fail", "data": {}}, status_code=200))
    monkeypatch.setattr("feishu.client.requests.post", poster)

    bot = FeishuBot(_make_config())
    try:
        with pytest.raises(FeishuApiError) as excinfo:
            await bot.send_text("x")
        assert excinfo.value.code == 19021
        assert excinfo.value.msg == "sign match fail"
        assert len(poster.calls) == 1
    finally:
        await _close(bot)


@pytest.mark.asyncio
async def test_retries_on_http_500_then_succeeds(monkeypatch: pytest.MonkeyPatch, no_backoff: list[float]) -> None:
    poster = _Poster(
        _FakeResponse({"message": "oops"}, status_code=500),
        _FakeResponse(None, status_code=502),
        _FakeResponse(_OK, status_code=200),
    )
    monkeypatch.setattr("feishu.client.requests.post", poster)

    bot = FeishuBot(_make_config())
    try:
        result = await bot.send_text("x")
        assert result.ok
        assert len(poster.calls) == 3
        assert no_backoff == [0.5, 1.0]
    finally:
        await _close(bot)


@pytest.mark.asyncio
async def test_no_retry_on_http_400(monkeypatch: pytest.MonkeyPatch, no_backoff: list[float]) -> None:
    poster = _Poster(_FakeResponse({"code": 9499, "msg": "Bad Request"}, status_code=400))
    monkeypatch.setattr("feishu.client.requests.post", poster)

    bot = FeishuBot(_make_config())
    try:
        with pytest.raises(FeishuHttpError) as excinfo:
            await bot.send_text("x")
        assert excinfo.value.status_code == 400
        assert len(poster.calls) == 1
        assert no_backoff == []
    finally:
        await _close(bot)


@pytest.mark.asyncio
async def test_retries_on_transport_error(monkeypatch: pytest.MonkeyPatch, no_backoff: list[float]) -> None:
    poster = _Poster(requests.ConnectionError("network down"), _FakeResponse(_OK, status_code=200))
    monkeypatch.setattr("feishu.client.requests.post", poster)

    bot = FeishuBot(_make_config())
    try:
        assert (await bot.send_text("x")).ok
        assert len(poster.calls) == 2
        assert no_backoff == [0.5]
    finally:
        await _close(bot)


@pytest.mark.asyncio
async def test_gives_up_after_max_attempt(monkeypatch: pytest.MonkeyPatch, no_backoff: list[float]) -> None:
    poster = _Poster(_FakeResponse(None, status_code=429))
    monkeypatch.setattr("feishu.client.requests.post", poster)

    bot = FeishuBot(_make_config(max_attempt=3))
    try:
        with pytest.raises(FeishuHttpError):
            await bot.send_text("x")
        assert len(poster.calls) == 3
        assert no_backoff == [0.5, 1.0]
    finally:
        await _close(bot)


class _CountingAdmission:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls = 0
        self._error = error

    async def acquire_async(self, timeout: float | None = None) -> float:
        self.calls += 1
        if self._error is not None:
            raise self._error
        return 0.0


@pytest.mark.asyncio
async def test_each_attempt_is_admitted(monkeypatch: pytest.MonkeyPatch, no_backoff: list[float]) -> None:
    poster = _Poster(_FakeResponse(None, status_code=503), _FakeResponse(_OK, status_code=200))
    monkeypatch.setattr("feishu.client.requests.post", poster)
    admission = _CountingAdmission()

    bot = FeishuBot(_make_config(), admission=admission)  # type: ignore[arg-type]
    try:
        await bot.send_text("x")
        assert admission.calls == 2
    finally:
        await _close(bot)


@pytest.mark.asyncio
async def test_admission_error_is_not_retried(monkeypatch: pytest.MonkeyPatch) -> None:
    poster = _Poster()
    monkeypatch.setattr("feishu.client.requests.post", poster)
    admission = _CountingAdmission(AdmissionError("second-window: cannot grant token"))

    bot = FeishuBot(_make_config(), admission=admission)  # type: ignore[arg-type]
    try:
        with pytest.raises(AdmissionError):
            await bot.send_text("x")
        assert admission.calls == 1
        assert poster.calls == []
    finally:
        await _close(bot)


@pytest.mark.asyncio
async def test_after_apply_hook_sees_body_before_signing(monkeypatch: pytest.MonkeyPatch) -> None:
    poster = _Poster()
    monkeypatch.setattr("feishu.client.requests.post", poster)
    seen: list[dict[str, Any]] = []

    def hook(body: dict[str, Any]) -> None:
        seen.append(json.loads(json.dumps(body)))
        body["content"]["text"] += " (via hook)"

    bot = FeishuBot(_make_config(secret_key="s3cret"), after_apply=hook)
    try:
        await bot.send_text("x")
        assert seen == [{"msg_type": "text", "content": {"text": "x"}}]
        assert poster.calls[0]["body"]["content"] == {"text": "x (via hook)"}
        assert "sign" in poster.calls[0]["body"]
    finally:
        await _close(bot)


@pytest.mark.asyncio
async def test_failing_hook_raises_build_error(monkeypatch: pytest.MonkeyPatch) -> None:
    poster = _Poster()
    monkeypatch.setattr("feishu.client.requests.post", poster)

    def hook(body: dict[str, Any]) -> None:
        raise KeyError("boom")

    bot = FeishuBot(_make_config(), after_apply=hook)
    try:
        with pytest.raises(MessageBuildError, match="after_apply"):
            await bot.send_text("x")
        assert poster.calls == []
    finally:
        await _close(bot)


@pytest.mark.asyncio
async def test_concurrent_sends_are_serialized_by_one_worker(monkeypatch: pytest.MonkeyPatch) -> None:
    poster = _Poster()
    monkeypatch.setattr("feishu.client.requests.post", poster)

    bot = FeishuBot(_make_config())
    try:
        results = await asyncio.gather(*(bot.send_text(str(i)) for i in range(5)))
        worker = bot._request_worker_task
        await bot.send_text("again")
        assert bot._request_worker_task is worker
        assert all(r.ok for r in results)
        assert [c["body"]["content"]["text"] for c in poster.calls] == ["0", "1", "2", "3", "4", "again"]
    finally:
        await _close(bot)


@pytest.mark.asyncio
async def test_deliveries_are_recorded(monkeypatch: pytest.MonkeyPatch) -> None:
    poster = _Poster(_FakeResponse(None, status_code=500), _FakeResponse(_OK, status_code=200))
    monkeypatch.setattr("feishu.client.requests.post", poster)
    monkeypatch.setattr("feishu.client.random.uniform", lambda _a, _b: 0.0)

    async def fake_sleep(seconds: float) -> None:
        return None

    monkeypatch.setattr("feishu.client.asyncio.sleep", fake_sleep)

    sink = InMemoryObservabilitySink()
    recorder = ObservabilityRecorder(sink=sink, max_queue_size=100)
    bot = FeishuBot(_make_config(secret_key="s3cret"), recorder=recorder)
    try:
        await bot.send_text("x")
    finally:
        await _close(bot)
        await recorder.aclose()

    records = sink.snapshot()
    assert [(r.kind, r.attempt) for r in records] == [("request", 1), ("error", 1), ("request", 2), ("response", 2)]
    assert len({r.delivery_id for r in records}) == 1
    assert all(r.msg_type == "text" and r.stage == "transport" for r in records)
    assert records[0].summary["signed"] is True
    assert records[1].summary["error"] == "FeishuHttpError"
    assert records[-1].summary["code"] == 0


@pytest.mark.asyncio
async def test_debug_logs_bodies_without_the_token(
    monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture
) -> None:
    poster = _Poster()
    monkeypatch.setattr("feishu.client.requests.post", poster)

    bot = FeishuBot(_make_config(debug=True))
    try:
        with caplog.at_level(logging.DEBUG, logger="feishu.client"):
            await bot.send_text("debug me")
    finally:
        await _close(bot)

    assert "--> POST" in caplog.text
    assert "debug me" in caplog.text
    assert "<-- 200" in caplog.text
    assert "abc-token" not in caplog.text


@pytest.mark.asyncio
async def test_aclose_stops_the_worker(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr("feishu.client.requests.post", _Poster())

    async with FeishuBot(_make_config()) as bot:
        await bot.send_text("x")
        worker = bot._request_worker_task
        assert worker is not None and not worker.done()

    assert worker.cancelled()
    assert bot._request_worker_task is None
    await bot.aclose()


@pytest.mark.asyncio
async def test_aclose_fails_in_flight_and_queued_sends(monkeypatch: pytest.MonkeyPatch) -> None:
    poster = _Poster()
    monkeypatch.setattr("feishu.client.requests.post", poster)

    bot = FeishuBot(_make_config())
    started = asyncio.Event()

    async def stuck_deliver(message: Any) -> Any:
        started.set()
        await asyncio.Event().wait()

    monkeypatch.setattr(bot, "_deliver", stuck_deliver)

    in_flight = asyncio.create_task(bot.send_text("first"))
    queued = asyncio.create_task(bot.send_text("second"))
    await asyncio.wait_for(started.wait(), timeout=1.0)
    assert bot.request_queue.qsize() == 1

    await bot.aclose()

    results = await asyncio.wait_for(asyncio.gather(in_flight, queued, return_exceptions=True), timeout=1.0)
    assert all(isinstance(r, FeishuError) and "closed" in str(r) for r in results)
    assert bot.request_queue.qsize() == 0

    with pytest.raises(FeishuError, match="closed"):
        await bot.send_text("third")
    assert bot._request_worker_task is None
    assert poster.calls == []

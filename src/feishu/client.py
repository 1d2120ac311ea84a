"""Async client for a Feishu/Lark group custom bot webhook.

This client implements a small async utility framework:

- Public methods create an `asyncio.Future`, enqueue `(message, future)`,
  and await the future's result.
- A single background worker consumes the queue serially.
- An `AdmissionController` gates every outbound request against the
  per-second and per-minute budgets.

The HTTP call uses `requests` executed in a thread.
"""

from __future__ import annotations

import asyncio
import base64
import logging
import random
import time
import uuid
from collections.abc import Callable
from contextlib import suppress
from typing import TYPE_CHECKING, Any

import requests  # type: ignore
from cryptography.hazmat.primitives import hashes, hmac  # type: ignore

from config import FeishuBotConfig

from .card import CardBuilder, CardGlobalConfig
from .errors import AdmissionError, FeishuApiError, FeishuError, FeishuHttpError, MessageBuildError
from .i18n import encode_json
from .messages import (
    CardMessage,
    CardTemplateMessage,
    ImageMessage,
    Message,
    RichTextMessage,
    ShareChatMessage,
    TextMessage,
)
from .models import WebhookResponse
from .rate_limit import AdmissionController
from .rich_text import RichTextBuilder

if TYPE_CHECKING:
    from observability import ObservabilityRecorder
    from observability.models import RecordKind

logger = logging.getLogger(__name__)

HOOK_PATH = "/open-apis/bot/v2/hook"

BodyHook = Callable[[dict[str, Any]], None]


class FeishuBot:
    """Webhook client for one group custom bot.

    Members:
    - Config: `config`
    - Access token: `access_token` (parsed from the webhook URL)
    - Request Queue: `request_queue` (single asyncio.Queue)
    - Dedicated Worker Task: `_request_worker_task` (single background task)
    - Admission: `admission` (dual-window token buckets)
    - Recorder: `recorder` (optional delivery records)
    """

    def __init__(
        self,
        config: FeishuBotConfig,
        *,
        admission: AdmissionController | None = None,
        recorder: ObservabilityRecorder | None = None,
        after_apply: BodyHook | None = None,
    ):
        """Create a bot client; `admission` defaults to the configured budgets."""
        self.config = config
        self.access_token: str = parse_access_token(config.webhook)
        self.base_url: str = config.base_url
        self.url: str = f"{self.base_url}{HOOK_PATH}/{self.access_token}"

        # Central request queue: (message, future)
        self.request_queue: asyncio.Queue[tuple[Message, asyncio.Future[WebhookResponse]]] = asyncio.Queue()

        self.admission = admission or AdmissionController(config.limiter_per_second, config.limiter_per_minute)
        self.recorder = recorder
        self.after_apply = after_apply
        self._request_worker_task: asyncio.Task[None] | None = None
        self._closed = False

    async def __aenter__(self) -> "FeishuBot":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Stop the background worker and refuse further sends.

        The in-flight send and every queued send fail with `FeishuError`.
        Safe to call multiple times.
        """
        self._closed = True
        task = self._request_worker_task
        self._request_worker_task = None
        if task is not None and not task.done():
            task.cancel()
            with suppress(asyncio.CancelledError):
                await task

        while True:
            try:
                _message, fut = self.request_queue.get_nowait()
            except asyncio.QueueEmpty:
                break
            self.request_queue.task_done()
            if not fut.done():
                fut.set_exception(FeishuError("bot closed"))

    # ------------------------------------------------------------------
    # Public API

    async def send_text(self, content: str) -> WebhookResponse:
        """Send a plain text message (see `markdown.text_at_person` for mentions)."""
        return await self.send_message(TextMessage(content))

    async def send_rich_text(self, rich_text: RichTextBuilder, *more: RichTextBuilder | None) -> WebhookResponse:
        """Send a rich text post, optionally in several languages."""
        return await self.send_message(RichTextMessage((rich_text, *more)))

    async def send_share_chat(self, chat_id: str) -> WebhookResponse:
        """Send a group business card for `chat_id`."""
        return await self.send_message(ShareChatMessage(chat_id))

    async def send_image(self, image_key: str) -> WebhookResponse:
        """Send an image previously uploaded to the platform."""
        return await self.send_message(ImageMessage(image_key))

    async def send_card(
        self,
        global_config: CardGlobalConfig | None,
        card: CardBuilder,
        *more: CardBuilder | None,
    ) -> WebhookResponse:
        """Send an interactive card, optionally in several languages."""
        return await self.send_message(CardMessage(global_config, (card, *more)))

    async def send_card_via_template(self, template_id: str, variables: Any = None) -> WebhookResponse:
        """Send a card built from a template id."""
        return await self.send_message(CardTemplateMessage(template_id, variables))

    async def send_message(self, message: Message) -> WebhookResponse:
        """Enqueue any message and await its delivery."""
        return await self._enqueue_request(message)

    # ------------------------------------------------------------------
    # Worker

    def _ensure_worker_started(self) -> None:
        """Start the single background worker task (lazily)."""
        if self._request_worker_task is not None and not self._request_worker_task.done():
            return
        loop = asyncio.get_running_loop()
        self._request_worker_task = loop.create_task(self._request_worker(), name="feishu-request-worker")

    async def _enqueue_request(self, message: Message) -> WebhookResponse:
        """Enqueue a message and await its result."""
        if self._closed:
            raise FeishuError("bot closed")
        self._ensure_worker_started()
        fut: asyncio.Future[WebhookResponse] = asyncio.get_running_loop().create_future()
        await self.request_queue.put((message, fut))
        return await fut

    async def _request_worker(self) -> None:
        """Consume the queue serially, resolve futures with results/errors."""
        while True:
            message, fut = await self.request_queue.get()
            try:
                result = await self._deliver(message)
            except asyncio.CancelledError:
                if not fut.done():
                    fut.set_exception(FeishuError("bot closed"))
                raise
            except Exception as exc:  # noqa: BLE001 - propagate into awaiting task
                if not fut.done():
                    fut.set_exception(exc)
            else:
                if not fut.done():
                    fut.set_result(result)
            finally:
                self.request_queue.task_done()

    # ------------------------------------------------------------------
    # Delivery

    def build_payload(self, message: Message) -> dict[str, Any]:
        """Render a message into the request body (without signing fields)."""
        body = message.to_body()
        payload = body.to_payload()
        if self.after_apply is not None:
            try:
                self.after_apply(payload)
            except Exception as exc:  # noqa: BLE001 - surface hook failures uniformly
                raise MessageBuildError(f"hook(after_apply): {exc}") from exc
        return payload

    async def _deliver(self, message: Message) -> WebhookResponse:
        delivery_id = uuid.uuid4().hex
        payload = self.build_payload(message)
        return await self._send_with_retries(payload, delivery_id)

    def _sign(self, payload: dict[str, Any]) -> dict[str, Any]:
        """Add `timestamp` and `sign` when a secret key is configured."""
        if not self.config.secret_key:
            return payload
        signed = dict(payload)
        timestamp = int(time.time())
        signed["timestamp"] = timestamp
        signed["sign"] = gen_signature(timestamp, self.config.secret_key)
        return signed

    async def _send_request(self, payload: dict[str, Any], delivery_id: str, attempt: int) -> WebhookResponse:
        """Sign and POST the payload, returning the parsed envelope.

        Raises:
        - `FeishuHttpError` for non-2xx responses
        - `FeishuApiError` for a non-zero envelope `code`
        - `requests.RequestException` for transport errors
        """
        msg_type = str(payload.get("msg_type", ""))
        data = encode_json(self._sign(payload))
        headers = {"Content-Type": "application/json; charset=utf-8"}

        if self.config.debug:
            logger.debug("--> POST %s/%s\n%s", HOOK_PATH, "***", data.decode("utf-8"))
        await self._record(
            "request",
            msg_type,
            "transport",
            delivery_id,
            attempt,
            {"bytes": len(data), "signed": bool(self.config.secret_key)},
        )

        def _do_request() -> tuple[int, dict[str, Any] | None, bytes]:
            """Execute the HTTP request synchronously (runs in a worker thread)."""
            resp = requests.post(self.url, data=data, headers=headers, timeout=self.config.request_timeout)
            body: dict[str, Any] | None
            try:
                body = resp.json() if resp.content else None
            except ValueError:
                body = None
            return resp.status_code, body, resp.content

        start = time.monotonic()
        status_code, body, raw = await asyncio.to_thread(_do_request)
        elapsed_ms = round((time.monotonic() - start) * 1000, 1)

        if self.config.debug:
            logger.debug("<-- %d %.1fms\n%s", status_code, elapsed_ms, raw.decode("utf-8", errors="replace"))

        if not 200 <= status_code < 300:
            raise FeishuHttpError(status_code=status_code, payload=body)

        response = WebhookResponse.from_api(body)
        await self._record(
            "response",
            msg_type,
            "transport",
            delivery_id,
            attempt,
            {"status_code": status_code, "code": response.code, "msg": response.msg, "elapsed_ms": elapsed_ms},
        )
        if not response.ok:
            raise FeishuApiError(code=response.code, msg=response.msg or "", payload=body)
        return response

    async def _send_with_retries(self, payload: dict[str, Any], delivery_id: str) -> WebhookResponse:
        """Send with exponential backoff on transient failures."""
        msg_type = str(payload.get("msg_type", ""))
        attempt = 0
        start = time.monotonic()

        while True:
            try:
                await self.admission.acquire_async()
                return await self._send_request(payload, delivery_id, attempt + 1)
            except Exception as exc:  # noqa: BLE001 - classify and retry/raise
                attempt += 1
                await self._record(
                    "error",
                    msg_type,
                    "admission" if isinstance(exc, AdmissionError) else "transport",
                    delivery_id,
                    attempt,
                    {"error": type(exc).__name__, "message": str(exc)},
                )
                if not _is_retryable_error(exc):
                    raise
                if attempt >= self.config.max_attempt:
                    raise

                delay = self.config.base_delay * (self.config.backoff_multiplier ** (attempt - 1))
                delay += random.uniform(0.0, delay * 0.1)  # small jitter

                if (time.monotonic() - start) + delay > self.config.max_delay:
                    raise
                logger.warning("Send attempt %d failed (%s); retrying in %.2fs", attempt, exc, delay)
                await asyncio.sleep(delay)

    async def _record(
        self,
        kind: RecordKind,
        msg_type: str,
        stage: str,
        delivery_id: str,
        attempt: int,
        summary: dict[str, Any],
    ) -> None:
        if self.recorder is None:
            return
        await self.recorder.record(
            kind=kind,
            msg_type=msg_type,
            stage=stage,
            delivery_id=delivery_id,
            attempt=attempt,
            summary=summary,
        )


def parse_access_token(webhook: str) -> str:
    """Accept either a full webhook URL or the bare access token."""
    s = webhook.strip()
    if "/open-apis/bot" in s:
        return s.rstrip("/").rsplit("/", 1)[-1]
    return s


def gen_signature(timestamp: int, secret_key: str) -> str:
    """Signature for signed webhooks.

    HMAC-SHA256 keyed with `"{timestamp}\\n{secret_key}"` over an empty
    message, base64 encoded.
    """
    key = f"{timestamp}\n{secret_key}".encode("utf-8")
    mac = hmac.HMAC(key, hashes.SHA256())
    mac.update(b"")
    return base64.b64encode(mac.finalize()).decode("utf-8")


def _is_retryable_error(exc: BaseException) -> bool:
    """Return True if the error is transient."""
    if isinstance(exc, FeishuHttpError):
        # Retry 429 and all 5xx.
        return exc.status_code == 429 or exc.status_code >= 500

    # Network/transport errors.
    return isinstance(exc, requests.RequestException)

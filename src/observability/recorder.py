"""Async recorder that writes delivery records without blocking the event loop."""

from __future__ import annotations

import asyncio
from datetime import datetime
from typing import Any

from .models import DeliveryRecord, RecordKind, utc_now
from .sinks import ObservabilitySink

_REDACTED_KEYS = ("sign", "secret_key", "webhook", "access_token", "token")


def _redact(summary: dict[str, Any]) -> dict[str, Any]:
    """Copy `summary`, masking obvious secret-like fields."""
    data = dict(summary)
    for key in _REDACTED_KEYS:
        if key in data:
            data[key] = "[REDACTED]"
    return data


class ObservabilityRecorder:
    """Queues records and writes them in a background task."""

    def __init__(self, *, sink: ObservabilitySink, max_queue_size: int = 10000) -> None:
        """Create a recorder backed by a synchronous sink.

        Args:
            sink: Storage backend used by the background writer.
            max_queue_size: Bound for in-memory buffering; records may be dropped
                when full to avoid delaying sends.
        """
        self._sink = sink
        self._queue: asyncio.Queue[DeliveryRecord | None] = asyncio.Queue(maxsize=max_queue_size)
        self._worker: asyncio.Task[None] | None = None
        self._closed = False

        self._write_failures = 0
        self._first_failure_at: datetime | None = None
        self._last_failure_at: datetime | None = None

    def _ensure_started(self) -> None:
        """Start the background writer task if it hasn't been started yet."""
        if self._worker is not None:
            return
        self._worker = asyncio.create_task(self._run_worker(), name="observability-writer")

    def _note_failure(self) -> None:
        now = utc_now()
        self._write_failures += 1
        self._first_failure_at = self._first_failure_at or now
        self._last_failure_at = now

    async def record(
        self,
        *,
        kind: RecordKind,
        msg_type: str,
        stage: str,
        delivery_id: str,
        attempt: int = 1,
        occurred_at: datetime | None = None,
        summary: dict[str, Any] | None = None,
    ) -> None:
        """Enqueue a `DeliveryRecord` (non-blocking)."""
        if self._closed:
            return

        self._ensure_started()

        record = DeliveryRecord(
            kind=kind,
            msg_type=msg_type,
            stage=stage,
            delivery_id=delivery_id,
            attempt=attempt,
            occurred_at=occurred_at or utc_now(),
            logged_at=utc_now(),
            summary=_redact(summary or {}),
        )

        # Under overload, drop records rather than hold up delivery.
        try:
            self._queue.put_nowait(record)
        except asyncio.QueueFull:
            self._note_failure()

    async def aclose(self) -> None:
        """Flush and close the recorder.

        Safe to call multiple times.
        """
        if self._closed:
            return
        self._closed = True
        if self._worker is not None:
            await self._queue.put(None)
            await self._worker
        await asyncio.to_thread(self._sink.close)

    async def _run_worker(self) -> None:
        """Background loop that drains the queue and writes to the sink."""
        while True:
            item = await self._queue.get()
            try:
                if item is None:
                    return
                await asyncio.to_thread(self._sink.write, item)
            except Exception:  # noqa: BLE001 - observability must not break delivery
                self._note_failure()
            finally:
                self._queue.task_done()

    def degraded_status(self) -> dict[str, Any]:
        """Return a minimal degraded-status snapshot."""
        return {
            "write_failures": self._write_failures,
            "first_failure_at": self._first_failure_at,
            "last_failure_at": self._last_failure_at,
        }

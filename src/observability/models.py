"""Observability record models.

Records are designed to be:
- Durable and append-only (sink decides storage).
- Easy to link across one delivery via its `delivery_id`.
- Safe by default (store summaries + selected fields, not full message bodies).
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(tz=timezone.utc)


RecordKind = Literal["request", "response", "error"]


class DeliveryRecord(BaseModel):
    """A durable, structured record of one step of a webhook delivery."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    kind: RecordKind

    # Message kind being delivered (e.g., "text", "interactive").
    msg_type: str

    # Where the record was produced (e.g., "admission", "transport").
    stage: str

    # Links request/response/error records of one send.
    delivery_id: str

    # 1-based attempt number within the retry loop.
    attempt: int = 1

    occurred_at: datetime
    logged_at: datetime = Field(default_factory=utc_now)

    # Selected fields only; never the signature.
    summary: dict[str, Any] = Field(default_factory=dict)

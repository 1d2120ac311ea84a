"""Response models for the bot webhook."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict


class WebhookResponse(BaseModel):
    """The `{code, msg, data}` envelope returned by the webhook."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    code: int = 0
    msg: str | None = None
    data: Any = None

    @property
    def ok(self) -> bool:
        return self.code == 0

    @classmethod
    def from_api(cls, payload: dict[str, Any] | None) -> "WebhookResponse":
        """Parse the webhook envelope (an empty body counts as success)."""
        return cls.model_validate(payload or {})

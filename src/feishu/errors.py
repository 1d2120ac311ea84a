"""Error types raised by the Feishu webhook client."""

from __future__ import annotations

from typing import Any


class FeishuError(RuntimeError):
    """Base class for every error raised by this package."""


class AdmissionError(FeishuError):
    """The rate limiter cannot grant a permit for this call."""


class AdmissionTimeout(AdmissionError):
    """Waiting for a permit would exceed the caller's deadline."""


class I18nSerializationError(FeishuError):
    """A language fragment could not be encoded as JSON."""

    def __init__(self, language: str, cause: BaseException):
        """Create an error naming the language whose content failed to encode."""
        self.language = language
        self.cause = cause
        super().__init__(f"{language}: {cause}")


class MessageBuildError(FeishuError):
    """Building the message body (or a body hook) failed."""


class FeishuHttpError(FeishuError):
    """HTTP-level error returned by the webhook endpoint."""

    def __init__(self, *, status_code: int, payload: dict[str, Any] | None):
        """Create an error capturing HTTP status code and parsed payload (if any)."""
        self.status_code = status_code
        self.payload = payload
        super().__init__(f"Feishu webhook HTTP {status_code}: {payload}")


class FeishuApiError(FeishuError):
    """The webhook answered with a non-zero `code` in its envelope."""

    def __init__(self, *, code: int, msg: str, payload: dict[str, Any] | None = None):
        self.code = code
        self.msg = msg
        self.payload = payload
        super().__init__(f"Feishu webhook api error {code}: {msg}")

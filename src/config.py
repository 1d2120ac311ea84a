"""Configuration loading and validation.

This module is responsible for:

- Loading `.env` into the process environment (without overriding existing vars).
- Converting environment variables into strongly-typed Pydantic models.
- Validating required fields and providing actionable error messages.
"""

import os
from typing import TypeVar

import dotenv
from pydantic import BaseModel, Field, field_validator

_T = TypeVar("_T", int, float)

DEFAULT_BASE_URL = "https://open.feishu.cn"
DEFAULT_LIMITER_PER_SECOND = 5
DEFAULT_LIMITER_PER_MINUTE = 100


def _get_required_env(name: str) -> str:
    """Read a required env var or raise a helpful error."""
    value = os.getenv(name, "").strip()
    if not value:
        raise ValueError(f"{name} is required. Please set it in your .env file.")
    if value.startswith("your_") and value.endswith("_here"):
        raise ValueError(f"{name} is required. Please replace the placeholder value in your .env file.")
    return value


def _get_env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip()


def _get_env_bool(name: str, default: bool) -> bool:
    """Read a boolean env var with a default."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    normalized = raw.strip().lower()
    if normalized in {"true", "1", "yes", "y", "on"}:
        return True
    if normalized in {"false", "0", "no", "n", "off"}:
        return False
    raise ValueError(f"{name} must be a boolean (true/false). Got: {raw!r}")


def _get_env_number(name: str, default: _T, cast: type[_T]) -> _T:
    """Read an int/float env var with a default."""
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{name} must be a {cast.__name__}. Got: {raw!r}") from exc


class FeishuBotConfig(BaseModel):
    """Configuration for a group custom bot webhook."""

    webhook: str = Field(..., description="Webhook URL or its access token")
    secret_key: str = Field(default="", description="Signing secret (empty disables signing)")
    base_url: str = Field(default=DEFAULT_BASE_URL, description="Open platform base URL")

    # Rate limiting; 0 means "use the default", <= -1 on either disables limiting.
    limiter_per_second: int = Field(default=DEFAULT_LIMITER_PER_SECOND, description="Max sends per second")
    limiter_per_minute: int = Field(default=DEFAULT_LIMITER_PER_MINUTE, description="Max sends per minute")

    # Optional tuning knobs (see env_example.env)
    max_attempt: int = Field(default=3, description="Max attempts per send")
    base_delay: float = Field(default=0.5, description="Initial retry delay (seconds)")
    backoff_multiplier: float = Field(default=2.0, description="Exponential backoff multiplier")
    max_delay: float = Field(default=30.0, description="Max total delay before failing (seconds)")
    request_timeout: float = Field(default=10.0, description="HTTP timeout per request (seconds)")
    debug: bool = Field(default=False, description="Log request and response bodies")

    @property
    def limiter_enabled(self) -> bool:
        """Limiting is off when either window is configured <= -1."""
        return self.limiter_per_second > -1 and self.limiter_per_minute > -1

    @field_validator("webhook")
    def validate_webhook(cls, v: str) -> str:
        """Validate the webhook is set (not empty/placeholder)."""
        v = v.strip()
        if not v or v == "your_feishu_webhook_here":
            raise ValueError("FEISHU_WEBHOOK is required. Please set it in your .env file.")
        return v

    @field_validator("secret_key")
    def validate_secret_key(cls, v: str) -> str:
        return v.strip()

    @field_validator("base_url")
    def validate_base_url(cls, v: str) -> str:
        """Fall back to the public endpoint; drop trailing slashes."""
        v = v.strip().rstrip("/")
        return v or DEFAULT_BASE_URL

    @field_validator("limiter_per_second")
    def default_limiter_per_second(cls, v: int) -> int:
        return DEFAULT_LIMITER_PER_SECOND if v == 0 else v

    @field_validator("limiter_per_minute")
    def default_limiter_per_minute(cls, v: int) -> int:
        return DEFAULT_LIMITER_PER_MINUTE if v == 0 else v

    @field_validator("max_attempt")
    def validate_max_attempt(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_attempt must be >= 1. Got: {v}")
        return v


class Config(BaseModel):
    """Top-level application configuration."""

    feishu: FeishuBotConfig = Field(..., description="Feishu bot configuration")


def load_config() -> Config:
    """Load application configuration from environment variables.

    Notes:
    - Calls `dotenv.load_dotenv()` so local `.env` values are visible to the process.
    - Raises `ValueError` with actionable messages when required configuration is
      missing or still contains placeholder values.
    """
    dotenv.load_dotenv()

    feishu = FeishuBotConfig(
        webhook=_get_required_env("FEISHU_WEBHOOK"),
        secret_key=_get_env_str("FEISHU_SECRET_KEY", ""),
        base_url=_get_env_str("FEISHU_BASE_URL", DEFAULT_BASE_URL),
        limiter_per_second=_get_env_number("FEISHU_LIMITER_PER_SECOND", DEFAULT_LIMITER_PER_SECOND, int),
        limiter_per_minute=_get_env_number("FEISHU_LIMITER_PER_MINUTE", DEFAULT_LIMITER_PER_MINUTE, int),
        max_attempt=_get_env_number("FEISHU_MAX_ATTEMPT", 3, int),
        base_delay=_get_env_number("FEISHU_BASE_DELAY", 0.5, float),
        backoff_multiplier=_get_env_number("FEISHU_BACKOFF_MULTIPLIER", 2.0, float),
        max_delay=_get_env_number("FEISHU_MAX_DELAY", 30.0, float),
        request_timeout=_get_env_number("FEISHU_REQUEST_TIMEOUT", 10.0, float),
        debug=_get_env_bool("FEISHU_DEBUG", False),
    )
    return Config(feishu=feishu)

"""Feishu/Lark group custom bot webhook client.

Messages are composed with the builders in `card`, `rich_text` and
`messages`, and delivered by `FeishuBot` under the platform's per-second and
per-minute call budgets.
"""

from .card import CardBuilder, CardGlobalConfig
from .client import FeishuBot, gen_signature, parse_access_token
from .errors import (
    AdmissionError,
    AdmissionTimeout,
    FeishuApiError,
    FeishuError,
    FeishuHttpError,
    I18nSerializationError,
    MessageBuildError,
)
from .i18n import EN_US, JA_JP, ZH_CN, LanguageFragment, assemble, merge_fragments
from .messages import (
    card_message,
    card_template_message,
    image_message,
    rich_text_message,
    share_chat_message,
    text_message,
)
from .models import WebhookResponse
from .rate_limit import AdmissionController
from .rich_text import RichTextBuilder

__all__ = [
    "EN_US",
    "JA_JP",
    "ZH_CN",
    "AdmissionController",
    "AdmissionError",
    "AdmissionTimeout",
    "CardBuilder",
    "CardGlobalConfig",
    "FeishuApiError",
    "FeishuBot",
    "FeishuError",
    "FeishuHttpError",
    "I18nSerializationError",
    "LanguageFragment",
    "MessageBuildError",
    "RichTextBuilder",
    "WebhookResponse",
    "assemble",
    "card_message",
    "card_template_message",
    "gen_signature",
    "image_message",
    "merge_fragments",
    "parse_access_token",
    "rich_text_message",
    "share_chat_message",
    "text_message",
]

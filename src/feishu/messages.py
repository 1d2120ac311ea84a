"""Message kinds accepted by the group bot webhook.

Each message renders to a `MessageBody`:

- text:        {"msg_type": "text", "content": {"text": ...}}
- post:        {"msg_type": "post", "content": {"post": {lang: {...}}}}
- share_chat:  {"msg_type": "share_chat", "content": {"share_chat_id": ...}}
- image:       {"msg_type": "image", "content": {"image_key": ...}}
- interactive: {"msg_type": "interactive", "card": {...}}
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict

from .card import CardBuilder, CardGlobalConfig, build_card
from .errors import MessageBuildError
from .i18n import merge_fragments, to_jsonable
from .rich_text import RichTextBuilder


class MessageBody(BaseModel):
    """The message part of a webhook request (signing fields are added by the client)."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    msg_type: str
    content: dict[str, Any] | None = None
    card: dict[str, Any] | None = None

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"msg_type": self.msg_type}
        if self.content is not None:
            payload["content"] = self.content
        if self.card is not None:
            payload["card"] = self.card
        return payload


class Message(Protocol):
    def to_body(self) -> MessageBody:
        """Render the message."""


@dataclass(frozen=True)
class TextMessage:
    text: str

    def to_body(self) -> MessageBody:
        return MessageBody(msg_type="text", content={"text": self.text})


@dataclass(frozen=True)
class RichTextMessage:
    """A post written in one or more languages; the first builder per language wins."""

    builders: Sequence[RichTextBuilder | None]

    def to_body(self) -> MessageBody:
        post = merge_fragments(b.fragment() for b in self.builders if b is not None)
        return MessageBody(msg_type="post", content={"post": post.to_dict()})


@dataclass(frozen=True)
class ShareChatMessage:
    """Group business card for `chat_id`."""

    chat_id: str

    def to_body(self) -> MessageBody:
        return MessageBody(msg_type="share_chat", content={"share_chat_id": self.chat_id})


@dataclass(frozen=True)
class ImageMessage:
    image_key: str

    def to_body(self) -> MessageBody:
        return MessageBody(msg_type="image", content={"image_key": self.image_key})


@dataclass(frozen=True)
class CardMessage:
    global_config: CardGlobalConfig | None
    builders: Sequence[CardBuilder | None] = field(default_factory=tuple)

    def to_body(self) -> MessageBody:
        return MessageBody(msg_type="interactive", card=build_card(self.global_config, self.builders))


@dataclass(frozen=True)
class CardTemplateMessage:
    """Card rendered server-side from a template id and its variables."""

    template_id: str
    variables: Any = None

    def to_body(self) -> MessageBody:
        data: dict[str, Any] = {"template_id": self.template_id}
        if self.variables is not None:
            try:
                data["template_variable"] = to_jsonable(self.variables)
            except TypeError as exc:
                raise MessageBuildError(f"card template {self.template_id}: variables: {exc}") from exc
        return MessageBody(msg_type="interactive", card={"type": "template", "data": data})


def text_message(text: str) -> TextMessage:
    return TextMessage(text)


def rich_text_message(builder: RichTextBuilder, *more: RichTextBuilder | None) -> RichTextMessage:
    return RichTextMessage((builder, *more))


def share_chat_message(chat_id: str) -> ShareChatMessage:
    return ShareChatMessage(chat_id)


def image_message(image_key: str) -> ImageMessage:
    return ImageMessage(image_key)


def card_message(
    global_config: CardGlobalConfig | None, card: CardBuilder, *more: CardBuilder | None
) -> CardMessage:
    return CardMessage(global_config, (card, *more))


def card_template_message(template_id: str, variables: Any = None) -> CardTemplateMessage:
    return CardTemplateMessage(template_id, variables)

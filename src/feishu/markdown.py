"""String helpers for text messages and card markdown (`lark_md` / `markdown`)."""

from __future__ import annotations

from .card import TextTagColor


# Plain text messages


def text_at_person(user_id: str, name: str) -> str:
    """Mention a group member in a text message; falls back to `name` for an unknown id."""
    return f'<at user_id="{user_id}">{name}</at>'


def text_at_everyone() -> str:
    """Mention everyone; the group must allow @all."""
    return '<at user_id="all">everyone</at>'


# Card markdown


def line_break() -> str:
    return "\n"


def italic(s: str) -> str:
    return f"*{s}*"


def bold(s: str) -> str:
    return f"**{s}**"


def strikethrough(s: str) -> str:
    return f"~~{s}~~"


def at_person(user_id: str, name: str) -> str:
    return f"<at id={user_id}>{name}</at>"


def at_everyone() -> str:
    return "<at id=all></at>"


def hyperlink(url: str) -> str:
    return f"<a href='{url}'></a>"


def text_link(text: str, link: str) -> str:
    return f"[{text}]({link})"


def image(img_key: str, hover_text: str = "") -> str:
    """Inline image; only the `markdown` element renders it."""
    return f"![{hover_text}]({img_key})"


def horizontal_rule() -> str:
    return "\n ---\n"


def emoji(emoji_key: str) -> str:
    return f":{emoji_key}:"


def green_text(s: str) -> str:
    return f"<font color='green'>{s}</font>"


def red_text(s: str) -> str:
    return f"<font color='red'>{s}</font>"


def grey_text(s: str) -> str:
    return f"<font color='grey'>{s}</font>"


def text_tag(color: TextTagColor, s: str) -> str:
    return f"<text_tag color='{color}'>{s}</text_tag>"

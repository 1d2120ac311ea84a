"""Multi-language document assembly.

Card headers, card bodies and rich-text posts are built once per language
and merged into a single JSON object keyed by language tag:

    {"zh_cn": ..., "en_us": ...}

Clients display languages in the order the keys appear, so the merge keeps
first-seen order. A language that shows up twice keeps its first fragment;
`None` fragments are skipped.
"""

from __future__ import annotations

import json
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel

from .errors import I18nSerializationError

ZH_CN = "zh_cn"
EN_US = "en_us"
JA_JP = "ja_jp"


def encode_json(value: Any) -> bytes:
    """Encode a JSON-compatible value the way it goes on the wire (compact UTF-8)."""
    return json.dumps(value, ensure_ascii=False, separators=(",", ":"), allow_nan=False).encode("utf-8")


def to_jsonable(value: Any) -> Any:
    """Render typed content (pydantic models, tuples, nested containers) to plain JSON values.

    Raises `TypeError` for values that have no JSON representation.
    """
    if isinstance(value, BaseModel):
        return value.model_dump(mode="json", exclude_none=True, by_alias=True)
    if value is None or isinstance(value, (str, bool, int, float)):
        return value
    if isinstance(value, dict):
        rendered: dict[str, Any] = {}
        for key, item in value.items():
            if not isinstance(key, str):
                raise TypeError(f"keys must be str, got {type(key).__name__}")
            rendered[key] = to_jsonable(item)
        return rendered
    if isinstance(value, (list, tuple)):
        return [to_jsonable(item) for item in value]
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


@dataclass(frozen=True)
class LanguageFragment:
    """One language's worth of content, produced by a single-language builder."""

    language: str
    content: Any


@dataclass(frozen=True)
class I18nDocument:
    """Ordered `(language, content)` entries with one entry per language."""

    entries: tuple[tuple[str, Any], ...] = ()

    def __len__(self) -> int:
        return len(self.entries)

    def __bool__(self) -> bool:
        return bool(self.entries)

    @property
    def languages(self) -> list[str]:
        return [language for language, _ in self.entries]

    def to_dict(self) -> dict[str, Any]:
        """Render every entry to JSON values, keeping language order.

        Raises `I18nSerializationError` naming the first language whose
        content cannot be rendered.
        """
        rendered: dict[str, Any] = {}
        for language, content in self.entries:
            try:
                value = to_jsonable(content)
                # Reject NaN/Infinity and anything else json refuses.
                encode_json(value)
            except (TypeError, ValueError) as exc:
                raise I18nSerializationError(language, exc) from exc
            rendered[language] = value
        return rendered

    def to_json(self) -> bytes:
        """Serialize to compact UTF-8 JSON bytes."""
        return encode_json(self.to_dict())


def merge_fragments(fragments: Iterable[LanguageFragment | None]) -> I18nDocument:
    """Merge fragments: first-seen language order, first occurrence wins."""
    seen: set[str] = set()
    entries: list[tuple[str, Any]] = []
    for fragment in fragments:
        if fragment is None or not fragment.language:
            continue
        if fragment.language in seen:
            continue
        seen.add(fragment.language)
        entries.append((fragment.language, fragment.content))
    return I18nDocument(entries=tuple(entries))


def group_fragments(fragments: Iterable[LanguageFragment | None]) -> I18nDocument:
    """Merge list-valued fragments, concatenating repeated languages.

    Ordering follows first-seen language order, like `merge_fragments`.
    Content must be a list or tuple; anything else raises
    `I18nSerializationError` naming the language.
    """
    order: list[str] = []
    grouped: dict[str, list[Any]] = {}
    for fragment in fragments:
        if fragment is None or not fragment.language:
            continue
        if not isinstance(fragment.content, (list, tuple)):
            raise I18nSerializationError(
                fragment.language,
                TypeError(f"expected a list, got {type(fragment.content).__name__}"),
            )
        if fragment.language not in grouped:
            order.append(fragment.language)
            grouped[fragment.language] = []
        grouped[fragment.language].extend(fragment.content)
    return I18nDocument(entries=tuple((language, grouped[language]) for language in order))


def assemble(fragments: Iterable[LanguageFragment | None]) -> bytes:
    """Merge fragments and serialize the result in one step."""
    return merge_fragments(fragments).to_json()

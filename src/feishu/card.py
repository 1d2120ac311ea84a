"""Interactive card models and builders.

Card elements are typed pydantic models discriminated by their `tag`; they
render to the wire format with `model_dump(exclude_none=True)`, so optional
fields left as None are omitted.

A card is written once per language with `CardBuilder`; the builders'
titles, subtitles, header tags and element lists are merged per language
when the card is rendered (see `build_card`).
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from .i18n import LanguageFragment, group_fragments, merge_fragments, to_jsonable

TextMode = Literal["plain_text", "lark_md"]

HeaderTemplate = Literal[
    "blue",
    "wathet",
    "turquoise",
    "green",
    "yellow",
    "orange",
    "red",
    "carmine",
    "violet",
    "purple",
    "indigo",
    "grey",
    "default",
]

TextTagColor = Literal[
    "neutral",
    "blue",
    "turquoise",
    "lime",
    "orange",
    "violet",
    "indigo",
    "wathet",
    "green",
    "yellow",
    "red",
    "purple",
    "carmine",
]

ImageMode = Literal["crop_center", "fit_horizontal", "stretch", "large", "medium", "small", "tiny"]
ButtonType = Literal["default", "primary", "danger"]
ActionLayout = Literal["bisected", "trisection", "flow"]
FlexMode = Literal["none", "stretch", "flow", "bisect", "trisect"]
BackgroundStyle = Literal["default", "grey"]
HorizontalSpacing = Literal["default", "small"]
ColumnWidth = Literal["auto", "weighted"]
VerticalAlign = Literal["top", "center", "bottom"]
TextAlign = Literal["left", "center", "right"]


class _Model(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True, populate_by_name=True)


# ----------------------------------------------------------------------------
# Shared building blocks


class Text(_Model):
    """Text component (`plain_text` or `lark_md`)."""

    tag: TextMode = "plain_text"
    content: str
    # Only honoured in plain_text mode.
    lines: int | None = None

    @classmethod
    def plain(cls, content: str, lines: int | None = None) -> "Text":
        return cls(tag="plain_text", content=content, lines=lines or None)

    @classmethod
    def lark_md(cls, content: str) -> "Text":
        return cls(tag="lark_md", content=content)


class MultiUrl(_Model):
    """Per-platform jump links; `url` is the fallback."""

    url: str
    pc_url: str | None = None
    ios_url: str | None = None
    android_url: str | None = None

    @classmethod
    def of(cls, default_url: str, pc: str = "", ios: str = "", android: str = "") -> "MultiUrl":
        return cls(url=default_url, pc_url=pc or None, ios_url=ios or None, android_url=android or None)


class Confirm(_Model):
    """Second-confirmation dialog shown before an action fires."""

    title: Text
    text: Text

    @classmethod
    def of(cls, title: str, text: str) -> "Confirm":
        return cls(title=Text.plain(title), text=Text.plain(text))


class ExtraImage(_Model):
    """Small image used as a div extra or inside a note."""

    tag: Literal["img"] = "img"
    img_key: str
    alt: Text
    preview: bool | None = None

    @classmethod
    def of(cls, img_key: str, preview: bool, alt: str = "") -> "ExtraImage":
        return cls(img_key=img_key, alt=Text.plain(alt), preview=preview)


# ----------------------------------------------------------------------------
# Interactive components


class Button(_Model):
    tag: Literal["button"] = "button"
    text: Text
    # `url` and `multi_url` are mutually exclusive.
    url: str | None = None
    multi_url: MultiUrl | None = None
    type: ButtonType | None = None
    confirm: Confirm | None = None


class OverflowOption(_Model):
    text: Text
    url: str | None = None
    multi_url: MultiUrl | None = None

    @classmethod
    def with_url(cls, text: str, url: str) -> "OverflowOption":
        return cls(text=Text.plain(text), url=url)

    @classmethod
    def with_multi_url(cls, text: str, default_url: str, pc: str = "", ios: str = "", android: str = "") -> "OverflowOption":
        return cls(text=Text.plain(text), multi_url=MultiUrl.of(default_url, pc, ios, android))


class Overflow(_Model):
    """Folded button group."""

    tag: Literal["overflow"] = "overflow"
    options: list[OverflowOption] = Field(default_factory=list)
    confirm: Confirm | None = None


ActionComponent = Annotated[Union[Button, Overflow], Field(discriminator="tag")]


# ----------------------------------------------------------------------------
# Card elements


class DivField(_Model):
    is_short: bool = False
    text: Text


class Div(_Model):
    """Content block with text, two-column fields and an optional extra on the right."""

    tag: Literal["div"] = "div"
    text: Text | None = None
    fields: list[DivField] | None = None
    extra: ExtraImage | Button | Overflow | None = None


class MarkdownHref(_Model):
    url_val: MultiUrl = Field(alias="urlVal")


class Markdown(_Model):
    tag: Literal["markdown"] = "markdown"
    content: str
    text_align: TextAlign | None = None
    href: MarkdownHref | None = None


class HorizontalRule(_Model):
    tag: Literal["hr"] = "hr"


class Image(_Model):
    """Image module."""

    tag: Literal["img"] = "img"
    img_key: str
    alt: Text = Field(default_factory=lambda: Text.plain(""))
    title: Text | None = None
    # 278px ~ 580px
    custom_width: int | None = None
    compact_width: bool | None = None
    # Overrides custom_width when set.
    mode: ImageMode | None = None
    preview: bool | None = None


class Note(_Model):
    tag: Literal["note"] = "note"
    elements: list[Text | ExtraImage] = Field(default_factory=list)


class Action(_Model):
    tag: Literal["action"] = "action"
    actions: list[ActionComponent] = Field(default_factory=list)
    layout: ActionLayout | None = None


class ColumnSetAction(_Model):
    multi_url: MultiUrl


class Column(_Model):
    tag: Literal["column"] = "column"
    width: ColumnWidth | None = None
    # 1 ~ 5, only used with width="weighted".
    weight: int | None = None
    vertical_align: VerticalAlign | None = None
    elements: list["CardElement"] | None = None


class ColumnSet(_Model):
    """Multi-column layout."""

    tag: Literal["column_set"] = "column_set"
    flex_mode: FlexMode = "none"
    background_style: BackgroundStyle | None = None
    horizontal_spacing: HorizontalSpacing | None = None
    columns: list[Column] | None = None
    action: ColumnSetAction | None = None


CardElement = Annotated[
    Union[Div, Markdown, HorizontalRule, Image, Note, Action, ColumnSet],
    Field(discriminator="tag"),
]

Column.model_rebuild()
ColumnSet.model_rebuild()


# ----------------------------------------------------------------------------
# Header / global configuration


class HeaderIcon(_Model):
    img_key: str


class HeaderText(_Model):
    tag: Literal["plain_text"] = "plain_text"
    content: str


class HeaderTextTag(_Model):
    tag: Literal["text_tag"] = "text_tag"
    text: HeaderText
    color: TextTagColor | None = None

    @classmethod
    def of(cls, content: str, color: TextTagColor | None = None) -> "HeaderTextTag":
        return cls(text=HeaderText(content=content), color=color)


class HeaderTitle(_Model):
    tag: Literal["plain_text"] = "plain_text"
    i18n: dict[str, str]


class CardHeader(_Model):
    title: HeaderTitle
    subtitle: HeaderTitle | None = None
    icon: HeaderIcon | None = None
    template: HeaderTemplate | None = None
    i18n_text_tag_list: dict[str, list[dict[str, Any]]] | None = None


class CardConfig(_Model):
    enable_forward: bool = False
    update_multi: bool = False


class CardGlobalConfig:
    """Language-independent card settings (header style, config, card link)."""

    def __init__(self) -> None:
        self.header_icon: HeaderIcon | None = None
        self.header_template: HeaderTemplate | None = None
        self.config: CardConfig | None = None
        self.link: MultiUrl | None = None

    def with_header_icon(self, img_key: str) -> "CardGlobalConfig":
        self.header_icon = HeaderIcon(img_key=img_key)
        return self

    def with_header_template(self, template: HeaderTemplate) -> "CardGlobalConfig":
        self.header_template = template
        return self

    def with_enable_forward(self, enabled: bool) -> "CardGlobalConfig":
        """Whether the card may be forwarded."""
        current = self.config or CardConfig()
        self.config = current.model_copy(update={"enable_forward": enabled})
        return self

    def with_update_multi(self, shared: bool) -> "CardGlobalConfig":
        """Whether updates to the card are visible to every recipient."""
        current = self.config or CardConfig()
        self.config = current.model_copy(update={"update_multi": shared})
        return self

    def with_card_link(self, default_url: str, pc: str = "", ios: str = "", android: str = "") -> "CardGlobalConfig":
        """Jump link for a click anywhere on the card."""
        self.link = MultiUrl.of(default_url, pc, ios, android)
        return self


class CardBuilder:
    """Builds the content of a card for one language."""

    def __init__(self, language: str, title: str):
        self.language = language
        self.title = title
        self.subtitle: str = ""
        self.text_tags: list[HeaderTextTag] | None = None
        self.elements: list[Any] = []

    def with_subtitle(self, subtitle: str) -> "CardBuilder":
        self.subtitle = subtitle
        return self

    def with_text_tags(self, tags: Sequence[HeaderTextTag]) -> "CardBuilder":
        """Header tags; the client shows at most the first three."""
        self.text_tags = list(tags)
        return self

    def add_elements(self, elements: Iterable[Any]) -> "CardBuilder":
        """Append body elements; None entries are skipped."""
        self.elements.extend(element for element in elements if element is not None)
        return self

    def title_fragment(self) -> LanguageFragment:
        return LanguageFragment(self.language, self.title)

    def subtitle_fragment(self) -> LanguageFragment:
        return LanguageFragment(self.language, self.subtitle)

    def elements_fragment(self) -> LanguageFragment:
        return LanguageFragment(self.language, list(self.elements))

    def text_tags_fragment(self) -> LanguageFragment | None:
        if self.text_tags is None:
            return None
        return LanguageFragment(self.language, list(self.text_tags))


def build_header(global_config: CardGlobalConfig | None, builders: Sequence[CardBuilder]) -> CardHeader:
    """Merge the builders' header parts into one header."""
    title = HeaderTitle(i18n=merge_fragments(b.title_fragment() for b in builders).to_dict())

    subtitle = None
    if any(b.subtitle for b in builders):
        subtitle = HeaderTitle(i18n=merge_fragments(b.subtitle_fragment() for b in builders).to_dict())

    tags = group_fragments(b.text_tags_fragment() for b in builders)

    return CardHeader(
        title=title,
        subtitle=subtitle,
        icon=global_config.header_icon if global_config else None,
        template=global_config.header_template if global_config else None,
        i18n_text_tag_list=tags.to_dict() if tags else None,
    )


def build_card(global_config: CardGlobalConfig | None, builders: Iterable[CardBuilder | None]) -> dict[str, Any]:
    """Render a card to its wire representation.

    `i18n_elements` is null when no builder is given.
    """
    present = [b for b in builders if b is not None]

    card: dict[str, Any] = {
        "header": to_jsonable(build_header(global_config, present)),
        "i18n_elements": merge_fragments(b.elements_fragment() for b in present).to_dict() if present else None,
    }
    if global_config is not None and global_config.config is not None:
        card["config"] = to_jsonable(global_config.config)
    if global_config is not None and global_config.link is not None:
        card["card_link"] = to_jsonable(global_config.link)
    return card

"""Rich text ("post") models and builder."""

from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from .i18n import LanguageFragment


class _Label(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)


class TextLabel(_Label):
    tag: Literal["text"] = "text"
    text: str
    un_escape: bool = False


class LinkLabel(_Label):
    tag: Literal["a"] = "a"
    text: str
    href: str


class AtLabel(_Label):
    tag: Literal["at"] = "at"
    # Open ID / User ID, or "all".
    user_id: str
    user_name: str | None = None


class ImageLabel(_Label):
    tag: Literal["img"] = "img"
    image_key: str


Label = Annotated[Union[TextLabel, LinkLabel, AtLabel, ImageLabel], Field(discriminator="tag")]


class RichTextBody(BaseModel):
    """One language's post: a title and a list of paragraphs."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    title: str | None = None
    content: list[list[Label]] | None = None


class RichTextBuilder:
    """Builds the rich text of one language, paragraph by paragraph.

    Labels are appended to the current paragraph; `paragraph()` starts a new one.
    """

    def __init__(self, language: str, title: str = ""):
        self.language = language
        self.title = title
        self._paragraphs: list[list[Label]] = [[]]

    def _append(self, label: Label) -> "RichTextBuilder":
        self._paragraphs[-1].append(label)
        return self

    def text(self, text: str, un_escape: bool = False) -> "RichTextBuilder":
        return self._append(TextLabel(text=text, un_escape=un_escape))

    def hyperlink(self, text: str, href: str) -> "RichTextBuilder":
        return self._append(LinkLabel(text=text, href=href))

    def at(self, user_id: str, name: str = "") -> "RichTextBuilder":
        """Mention a group member; the id must be valid for the mention to notify."""
        return self._append(AtLabel(user_id=user_id, user_name=name or None))

    def at_everyone(self) -> "RichTextBuilder":
        return self._append(AtLabel(user_id="all"))

    def image(self, image_key: str) -> "RichTextBuilder":
        return self._append(ImageLabel(image_key=image_key))

    def paragraph(self) -> "RichTextBuilder":
        if self._paragraphs[-1]:
            self._paragraphs.append([])
        return self

    def body(self) -> RichTextBody:
        paragraphs = [list(p) for p in self._paragraphs if p]
        return RichTextBody(title=self.title or None, content=paragraphs or None)

    def fragment(self) -> LanguageFragment:
        return LanguageFragment(self.language, self.body())

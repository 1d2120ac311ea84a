"""Demo entrypoint that sends one message of every kind.

This module contains a small, end-to-end "smoke test" that:

- Loads configuration from environment.
- Instantiates the bot client with a DuckDB-backed delivery recorder.
- Sends text, rich text, card and template messages to the configured group.

It is **not** intended to be production orchestration logic; it is a
convenient manual harness for checking a webhook and its signing secret.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path

from config import load_config
from feishu import markdown as md
from feishu.card import (
    Action,
    Button,
    CardBuilder,
    CardGlobalConfig,
    Column,
    ColumnSet,
    Div,
    DivField,
    HeaderTextTag,
    HorizontalRule,
    Markdown,
    Note,
    Text,
)
from feishu.client import FeishuBot
from feishu.i18n import EN_US, ZH_CN
from feishu.rich_text import RichTextBuilder
from observability import DuckDBObservabilitySink, ObservabilityRecorder


def _demo_card(language: str, title: str, body: str) -> CardBuilder:
    """A card exercising the common element kinds."""
    return (
        CardBuilder(language, title)
        .with_subtitle("feishu-bot demo")
        .with_text_tags([HeaderTextTag.of("demo", "blue")])
        .add_elements(
            [
                Markdown(content=f"{md.bold(body)}{md.line_break()}{md.green_text('ok')}"),
                HorizontalRule(),
                Div(
                    fields=[
                        DivField(is_short=True, text=Text.lark_md(f"{md.bold('language')}\n{language}")),
                        DivField(is_short=True, text=Text.lark_md(f"{md.bold('kind')}\ninteractive")),
                    ]
                ),
                ColumnSet(
                    columns=[
                        Column(width="weighted", weight=1, elements=[Markdown(content=md.at_everyone())]),
                        Column(width="weighted", weight=1, elements=[Markdown(content=md.emoji("THUMBSUP"))]),
                    ]
                ),
                Action(actions=[Button(text=Text.plain("open"), url="https://open.feishu.cn", type="primary")]),
                Note(elements=[Text.plain("sent by main.py")]),
            ]
        )
    )


async def run_demo() -> None:
    """Send one message of each kind and print the envelope results."""
    cfg = load_config()

    obs_path = Path(os.getenv("OBSERVABILITY_DB_PATH", "data/observability.duckdb"))
    obs_path.parent.mkdir(parents=True, exist_ok=True)
    recorder = ObservabilityRecorder(sink=DuckDBObservabilitySink(path=obs_path))

    bot = FeishuBot(cfg.feishu, recorder=recorder)
    try:
        result = await bot.send_text(f"hello {md.text_at_everyone()}")
        print(f"[text] {result}")

        post_zh = RichTextBuilder(ZH_CN, "通知").text("你好，").hyperlink("飞书", "https://open.feishu.cn").paragraph().at_everyone()
        post_en = RichTextBuilder(EN_US, "Notice").text("Hello, ").hyperlink("Lark", "https://open.larksuite.com").paragraph().at_everyone()
        result = await bot.send_rich_text(post_zh, post_en)
        print(f"[post] {result}")

        global_config = CardGlobalConfig().with_header_template("blue").with_enable_forward(True)
        result = await bot.send_card(
            global_config,
            _demo_card(ZH_CN, "这是主标题！", "卡片内容"),
            _demo_card(EN_US, "It is the title!", "Card body"),
        )
        print(f"[card] {result}")

        template_id = os.getenv("FEISHU_DEMO_TEMPLATE_ID", "")
        if template_id:
            result = await bot.send_card_via_template(template_id, {"title": "demo"})
            print(f"[template] {result}")

        chat_id = os.getenv("FEISHU_DEMO_CHAT_ID", "")
        if chat_id:
            result = await bot.send_share_chat(chat_id)
            print(f"[share_chat] {result}")

        image_key = os.getenv("FEISHU_DEMO_IMAGE_KEY", "")
        if image_key:
            result = await bot.send_image(image_key)
            print(f"[image] {result}")
    finally:
        await bot.aclose()
        await recorder.aclose()


def main() -> None:
    """CLI entrypoint for running the demo with `python src/main.py`."""
    logging.basicConfig(level=logging.DEBUG if os.getenv("FEISHU_DEBUG") else logging.INFO)
    asyncio.run(run_demo())


if __name__ == "__main__":
    main()

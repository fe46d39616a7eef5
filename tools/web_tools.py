#!/usr/bin/env python3
"""
Web Content Tools Module

Helpers that turn rendered pages into text the conversation model can use:

- extract_readable_text: pull the main article (title + body text) out of a
  full HTML document with readability-lxml
- format_search_results: flatten DuckDuckGo result entries into plain text
- PageSummarizer: send collected text to an LLM with the
  "Evaluate the following web page content" prompt

The summarizer goes through the shared OpenRouter client so the model can be
swapped (default: anthropic/claude-3.5-sonnet) without touching callers.
"""

import logging
import re
from typing import Any, Dict, List, Optional

import lxml.html
from openai import AsyncOpenAI
from readability import Document

from tools.openrouter_client import get_async_client

logger = logging.getLogger(__name__)

DEFAULT_SUMMARIZER_MODEL = "anthropic/claude-3.5-sonnet"
DEFAULT_SUMMARY_MAX_TOKENS = 2000

# Hard cap on text sent for summarization; long articles are cut, not rejected
MAX_SUMMARY_INPUT_CHARS = 100_000

SUMMARY_PROMPT_TEMPLATE = "Evaluate the following web page content: {content}"

# Runs in the page: one {title, description} entry per DuckDuckGo HTML result
SEARCH_RESULTS_JS = """() => {
    const items = document.querySelectorAll('div.result');
    return Array.from(items).map((item) => {
        const title = item.querySelector('a.result__a')?.innerText || '';
        const description = item.querySelector('a.result__snippet')?.innerText || '';
        return { title, description };
    });
}"""


def _collapse_whitespace(text: str) -> str:
    text = re.sub(r"[ \t\r\f\v]+", " ", text)
    text = re.sub(r"\n\s*\n+", "\n\n", text)
    return text.strip()


def extract_readable_text(html: str) -> str:
    """Return ``"{title}\\n{body text}"`` for the main article in ``html``.

    Empty documents yield an empty string.
    """
    if not html or not html.strip():
        return ""

    doc = Document(html)
    title = doc.title() or ""
    if title == "[no-title]":
        title = ""

    summary_html = doc.summary(html_partial=True)
    body = ""
    if summary_html and summary_html.strip():
        body = lxml.html.fromstring(summary_html).text_content()

    return f"{title}\n{_collapse_whitespace(body)}"


def format_search_results(results: Optional[List[Dict[str, Any]]]) -> str:
    """Join result entries as ``title\\ndescription`` blocks separated by blank lines."""
    blocks = []
    for item in results or []:
        if not isinstance(item, dict):
            continue
        title = str(item.get("title") or "").strip()
        description = str(item.get("description") or "").strip()
        blocks.append(f"{title}\n{description}")
    return "\n\n".join(blocks)


class PageSummarizer:
    """Async callable: page text in, natural-language evaluation out."""

    def __init__(
        self,
        model: str = DEFAULT_SUMMARIZER_MODEL,
        max_tokens: int = DEFAULT_SUMMARY_MAX_TOKENS,
        client: Optional[AsyncOpenAI] = None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self._client = client

    @classmethod
    def from_config(cls, config: dict) -> "PageSummarizer":
        summary_cfg = config.get("summary", {})
        return cls(
            model=summary_cfg.get("model", DEFAULT_SUMMARIZER_MODEL),
            max_tokens=int(summary_cfg.get("max_tokens", DEFAULT_SUMMARY_MAX_TOKENS)),
        )

    @property
    def client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = get_async_client()
        return self._client

    async def __call__(self, content: str) -> str:
        if len(content) > MAX_SUMMARY_INPUT_CHARS:
            logger.info("Truncating %s chars of page content to %s for summarization",
                        len(content), MAX_SUMMARY_INPUT_CHARS)
            content = content[:MAX_SUMMARY_INPUT_CHARS]

        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "user", "content": SUMMARY_PROMPT_TEMPLATE.format(content=content)}],
            max_tokens=self.max_tokens,
        )
        summary = (response.choices[0].message.content or "").strip()
        logger.debug("Summarized %s chars into %s chars with %s", len(content), len(summary), self.model)
        return summary

"""Tests for tools.web_tools -- readable text extraction, search formatting, summarizer."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from tools.web_tools import (
    MAX_SUMMARY_INPUT_CHARS,
    PageSummarizer,
    extract_readable_text,
    format_search_results,
)

ARTICLE_HTML = """
<html>
  <head><title>Rust vs Go in 2024</title></head>
  <body>
    <nav><a href="/">Home</a> <a href="/about">About</a></nav>
    <div id="content">
      <article>
        <h1>Rust vs Go in 2024</h1>
        <p>Rust and Go are both modern systems languages, but they make very different
        trade-offs. Rust focuses on memory safety without a garbage collector, using an
        ownership model that is checked at compile time.</p>
        <p>Go favours simplicity and fast compilation. Its garbage collector and goroutines
        make it easy to write network services, and its standard library covers most of
        what a backend developer needs day to day.</p>
        <p>Choosing between them usually depends on the team and the workload rather than
        on benchmarks alone, since both produce fast native binaries.</p>
      </article>
    </div>
    <footer>Copyright 2024</footer>
  </body>
</html>
"""


class TestExtractReadableText:
    def test_title_then_body(self):
        text = extract_readable_text(ARTICLE_HTML)
        title, _, body = text.partition("\n")
        assert title == "Rust vs Go in 2024"
        assert "ownership model" in body
        assert "goroutines" in body

    def test_empty_document(self):
        assert extract_readable_text("") == ""
        assert extract_readable_text("   ") == ""


class TestFormatSearchResults:
    def test_title_and_description_blocks(self):
        results = [
            {"title": "Rust", "description": "Fast and safe"},
            {"title": "Go", "description": "Simple"},
        ]
        assert format_search_results(results) == "Rust\nFast and safe\n\nGo\nSimple"

    def test_missing_fields_are_empty(self):
        assert format_search_results([{"title": "Only title"}]) == "Only title\n"

    def test_no_results(self):
        assert format_search_results([]) == ""
        assert format_search_results(None) == ""

    def test_non_dict_entries_skipped(self):
        assert format_search_results(["junk", {"title": "A", "description": "B"}]) == "A\nB"


def _client(reply="Summary."):
    client = MagicMock()
    client.chat.completions.create = AsyncMock(
        return_value=SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=reply))]))
    return client


class TestPageSummarizer:
    @pytest.mark.asyncio
    async def test_uses_evaluation_prompt(self):
        client = _client("  It is a comparison.  ")
        summarizer = PageSummarizer(model="anthropic/claude-3.5-sonnet", max_tokens=500, client=client)
        assert await summarizer("page text") == "It is a comparison."
        kwargs = client.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "anthropic/claude-3.5-sonnet"
        assert kwargs["max_tokens"] == 500
        assert kwargs["messages"] == [
            {"role": "user", "content": "Evaluate the following web page content: page text"}]

    @pytest.mark.asyncio
    async def test_truncates_long_input(self):
        client = _client()
        await PageSummarizer(client=client)("x" * (MAX_SUMMARY_INPUT_CHARS + 500))
        prompt = client.chat.completions.create.call_args.kwargs["messages"][0]["content"]
        assert prompt.count("x") == MAX_SUMMARY_INPUT_CHARS

    @pytest.mark.asyncio
    async def test_braces_in_content_are_literal(self):
        client = _client()
        await PageSummarizer(client=client)("function() { return {a: 1}; }")
        prompt = client.chat.completions.create.call_args.kwargs["messages"][0]["content"]
        assert prompt.endswith("function() { return {a: 1}; }")

    @pytest.mark.asyncio
    async def test_empty_reply(self):
        assert await PageSummarizer(client=_client(None))("text") == ""

    def test_from_config(self):
        summarizer = PageSummarizer.from_config({"summary": {"model": "openai/gpt-4o-mini", "max_tokens": 800}})
        assert summarizer.model == "openai/gpt-4o-mini"
        assert summarizer.max_tokens == 800

    def test_missing_key_raises_on_first_use(self, monkeypatch):
        monkeypatch.delenv("OPENROUTER_API_KEY", raising=False)
        monkeypatch.setattr("tools.openrouter_client._client", None)
        with pytest.raises(ValueError):
            PageSummarizer().client

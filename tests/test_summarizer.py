"""Tests for the LLM-backed summarizer."""

import pytest

from conftest import MockLLMProvider, make_config, make_conversation
from convo_memory.core.optimizer import build_summary_snapshot
from convo_memory.core.summarizer import (
    SYSTEM_PROMPT,
    LLMSummarizer,
    build_provider,
    build_summarizer,
    format_transcript,
    parse_summary_response,
)
from convo_memory.core.conversation import get_messages
from convo_memory.providers import AnthropicProvider, GenericOpenAIProvider
from convo_memory.types import (
    LLMProviderError,
    MessageKind,
    MessageRole,
    SummarizationConfig,
    SummarizationError,
)


class TestParseResponse:
    def test_json(self):
        assert parse_summary_response('{"summary": "done"}') == "done"

    def test_fenced_json(self):
        assert parse_summary_response('```json\n{"summary": "fenced"}\n```') == "fenced"

    def test_think_block_stripped(self):
        text = '<think>pondering {"summary": "no"}</think>\n{"summary": "yes"}'
        assert parse_summary_response(text) == "yes"

    def test_json_embedded_in_text(self):
        assert parse_summary_response('Here you go: {"summary": "inner"} thanks') == "inner"

    def test_plain_text_fallback(self):
        assert parse_summary_response("  just prose  ") == "just prose"


def test_format_transcript():
    conv = make_conversation(
        (MessageRole.USER, "fix it"),
        (MessageRole.TOOL_RESULT, "ok", MessageKind.TOOL_RESULT),
    )
    text = format_transcript(get_messages(conv))
    assert text == "User: fix it\n\nTool result [tool_result]: ok"


@pytest.mark.asyncio
async def test_summarizer_calls_provider():
    provider = MockLLMProvider()
    summarizer = LLMSummarizer(provider, max_tokens=321)
    conv = make_conversation((MessageRole.USER, "hello"))

    summary = await summarizer(build_summary_snapshot(conv, "run-1"), make_config())

    assert summary == "Test summary"
    assert provider.calls[0]["system"] == SYSTEM_PROMPT
    assert provider.calls[0]["user"] == "User: hello"
    assert provider.calls[0]["max_tokens"] == 321


@pytest.mark.asyncio
async def test_empty_summary_raises():
    summarizer = LLMSummarizer(MockLLMProvider(response='{"summary": "   "}'))
    conv = make_conversation((MessageRole.USER, "hello"))
    with pytest.raises(SummarizationError):
        await summarizer(build_summary_snapshot(conv, "run-1"), make_config())


class TestBuildProvider:
    def test_generic_openai(self):
        provider = build_provider(
            "local",
            {"type": "generic_openai", "base_url": "http://host:1234/v1/", "model": "m"},
            SummarizationConfig(temperature=0.1),
        )
        assert isinstance(provider, GenericOpenAIProvider)
        assert provider.base_url == "http://host:1234/v1"
        assert provider.model == "m"
        assert provider.temperature == 0.1

    def test_anthropic_from_env(self, monkeypatch):
        monkeypatch.setenv("MY_KEY", "sk-test")
        provider = build_provider("anthropic", {"api_key_env": "MY_KEY"}, SummarizationConfig())
        assert isinstance(provider, AnthropicProvider)
        assert provider.api_key == "sk-test"
        assert provider.model == "claude-haiku-4-5"

    def test_anthropic_without_key(self, monkeypatch):
        monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
        with pytest.raises(LLMProviderError):
            build_provider("anthropic", {}, SummarizationConfig())

    def test_unknown_type(self):
        with pytest.raises(SummarizationError):
            build_provider("mystery", {}, SummarizationConfig())

    def test_build_summarizer_uses_named_provider(self):
        config = make_config(
            summarization={"provider": "local", "max_tokens": 222},
            providers={"local": {"type": "generic_openai"}},
        )
        summarizer = build_summarizer(config)
        assert isinstance(summarizer.provider, GenericOpenAIProvider)
        assert summarizer.max_tokens == 222

"""Tests for httpx-backed LLM providers."""

import json

import httpx
import pytest

from convo_memory.providers import AnthropicProvider, GenericOpenAIProvider
from convo_memory.providers import base
from convo_memory.types import LLMProviderError


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch):
    monkeypatch.setattr(base, "RETRY_BACKOFF", [0.0, 0.0, 0.0])


def _transport(responses, seen):
    queue = list(responses)

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    return httpx.MockTransport(handler)


@pytest.mark.asyncio
async def test_anthropic_request_and_response():
    seen = []
    transport = _transport([
        httpx.Response(200, json={
            "content": [{"type": "text", "text": "one"}, {"type": "text", "text": "two"}],
            "usage": {"input_tokens": 5},
        }),
    ], seen)
    provider = AnthropicProvider(api_key="sk-test", model="m1", transport=transport)

    text = await provider.complete(system="sys", user="hello", max_tokens=50)

    assert text == "one\ntwo"
    assert provider.last_usage == {"input_tokens": 5}
    request = seen[0]
    assert request.headers["x-api-key"] == "sk-test"
    body = json.loads(request.content)
    assert body["model"] == "m1"
    assert body["system"] == "sys"
    assert body["messages"] == [{"role": "user", "content": "hello"}]
    assert body["max_tokens"] == 50


@pytest.mark.asyncio
async def test_openai_request_and_response():
    seen = []
    transport = _transport([
        httpx.Response(200, json={"choices": [{"message": {"content": "answer"}}]}),
    ], seen)
    provider = GenericOpenAIProvider(base_url="http://llm.local/v1", model="q", transport=transport)

    text = await provider.complete(system="sys", user="hello", max_tokens=10)

    assert text == "answer"
    assert str(seen[0].url) == "http://llm.local/v1/chat/completions"
    body = json.loads(seen[0].content)
    assert body["messages"][0] == {"role": "system", "content": "sys"}


@pytest.mark.asyncio
async def test_retries_transient_errors():
    seen = []
    transport = _transport([
        httpx.Response(503, text="busy"),
        httpx.ConnectError("refused"),
        httpx.Response(200, json={"choices": [{"message": {"content": "finally"}}]}),
    ], seen)
    provider = GenericOpenAIProvider(transport=transport)

    assert await provider.complete(system="s", user="u", max_tokens=5) == "finally"
    assert len(seen) == 3


@pytest.mark.asyncio
async def test_gives_up_after_max_retries():
    seen = []
    transport = _transport([httpx.Response(429, text="slow down")] * base.MAX_RETRIES, seen)
    provider = GenericOpenAIProvider(transport=transport)

    with pytest.raises(LLMProviderError) as exc:
        await provider.complete(system="s", user="u", max_tokens=5)
    assert exc.value.status_code == 429
    assert exc.value.provider == "generic_openai"
    assert len(seen) == base.MAX_RETRIES


@pytest.mark.asyncio
async def test_client_error_not_retried():
    seen = []
    transport = _transport([httpx.Response(401, text="bad key")], seen)
    provider = AnthropicProvider(api_key="sk-test", transport=transport)

    with pytest.raises(LLMProviderError) as exc:
        await provider.complete(system="s", user="u", max_tokens=5)
    assert exc.value.status_code == 401
    assert len(seen) == 1


def test_anthropic_requires_key(monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    with pytest.raises(LLMProviderError, match="ANTHROPIC_API_KEY"):
        AnthropicProvider()

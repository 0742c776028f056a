"""LLMSummarizer: turns a conversation snapshot into a compact summary string."""

from __future__ import annotations

import json
import logging
import os
import re

from ..types import (
    ConversationSnapshot,
    ConvoMemoryConfig,
    EventContext,
    EventSink,
    LLMProvider,
    Message,
    SummarizationConfig,
    SummarizationError,
)
from .conversation import get_messages, normalize_content

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a conversation summarizer for a coding agent. Output valid JSON only. "
    "No markdown fences, no extra text."
)

ROLE_LABELS = {
    "system": "System",
    "user": "User",
    "assistant": "Assistant",
    "tool-use": "Tool call",
    "tool-result": "Tool result",
}


def format_transcript(messages: list[Message]) -> str:
    """Format messages as 'Role [kind]: content' blocks."""
    lines: list[str] = []
    for m in messages:
        label = ROLE_LABELS[m.role.value]
        if m.kind is not None:
            label = f"{label} [{m.kind.value}]"
        lines.append(f"{label}: {normalize_content(m.content)}")
    return "\n\n".join(lines)


def parse_summary_response(response: str) -> str:
    """Pull the summary out of an LLM reply, tolerating fences and stray text."""
    text = response.strip()

    # Strip markdown fences if present
    if text.startswith("```"):
        lines = text.split("\n")[1:]
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        text = "\n".join(lines).strip()

    # Strip thinking tags
    if "<think>" in text:
        text = re.sub(r"<think>.*?</think>", "", text, flags=re.DOTALL).strip()

    candidates = [text]
    start = text.find("{")
    end = text.rfind("}") + 1
    if start >= 0 and end > start:
        candidates.append(text[start:end])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict) and isinstance(parsed.get("summary"), str):
            return parsed["summary"].strip()

    return text


class LLMSummarizer:
    """Summarizer backed by an LLMProvider.

    Provider errors propagate unchanged; retrying is the caller's business.
    """

    def __init__(self, provider: LLMProvider, max_tokens: int = 1000) -> None:
        self.provider = provider
        self.max_tokens = max_tokens

    async def __call__(
        self,
        snapshot: ConversationSnapshot,
        config: ConvoMemoryConfig,
        sink: EventSink | None = None,
        context: EventContext | None = None,
    ) -> str:
        transcript = format_transcript(get_messages(snapshot.conversation))
        response = await self.provider.complete(
            system=SYSTEM_PROMPT,
            user=transcript,
            max_tokens=self.max_tokens,
        )
        summary = parse_summary_response(response)
        if not summary:
            raise SummarizationError(f"Empty summary for {snapshot.path}")
        logger.debug(f"Summarized {len(snapshot.conversation.ids)} messages into {len(summary)} chars")
        return summary


def build_provider(name: str, provider_config: dict, summarization: SummarizationConfig):
    """Build an LLM provider from config."""
    ptype = provider_config.get("type", name)

    if ptype == "generic_openai":
        from ..providers.generic_openai import GenericOpenAIProvider
        return GenericOpenAIProvider(
            base_url=provider_config.get("base_url", "http://127.0.0.1:11434/v1"),
            model=provider_config.get("model", summarization.model),
            temperature=summarization.temperature,
            api_key=provider_config.get("api_key", "not-needed"),
        )

    if ptype == "anthropic":
        from ..providers.anthropic import AnthropicProvider
        api_key_env = provider_config.get("api_key_env", "ANTHROPIC_API_KEY")
        return AnthropicProvider(
            api_key=provider_config.get("api_key") or os.environ.get(api_key_env, ""),
            api_key_env=api_key_env,
            model=provider_config.get("model", summarization.model),
            temperature=summarization.temperature,
        )

    raise SummarizationError(f"Unknown summarization provider type: {ptype}")


def build_summarizer(config: ConvoMemoryConfig) -> LLMSummarizer:
    name = config.summarization.provider
    provider = build_provider(name, config.providers.get(name, {}), config.summarization)
    return LLMSummarizer(provider, max_tokens=config.summarization.max_tokens)

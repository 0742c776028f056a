"""Anthropic Messages API summarization backend over httpx."""

from __future__ import annotations

import logging
import os

import httpx

from ..types import LLMProviderError
from .base import BaseProvider

logger = logging.getLogger(__name__)

API_URL = "https://api.anthropic.com/v1/messages"
API_VERSION = "2023-06-01"


class AnthropicProvider(BaseProvider):
    def __init__(
        self,
        api_key: str | None = None,
        api_key_env: str = "ANTHROPIC_API_KEY",
        model: str = "claude-haiku-4-5",
        temperature: float = 0.3,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        super().__init__(transport=transport)
        self.api_key = api_key or os.environ.get(api_key_env, "")
        if not self.api_key:
            raise LLMProviderError(
                f"Summarizer needs an Anthropic key: set {api_key_env} or providers.<name>.api_key",
                provider="anthropic",
            )
        self.model = model
        self.temperature = temperature

    def _provider_name(self) -> str:
        return "anthropic"

    def _get_url(self) -> str:
        return API_URL

    def _get_headers(self) -> dict:
        return {
            "x-api-key": self.api_key,
            "anthropic-version": API_VERSION,
            "content-type": "application/json",
        }

    def _build_payload(self, system: str, user: str, max_tokens: int) -> dict:
        return {
            "model": self.model,
            "system": system,
            "messages": [{"role": "user", "content": user}],
            "max_tokens": max_tokens,
            "temperature": self.temperature,
        }

    def _extract_text(self, data: dict) -> str:
        if data.get("stop_reason") == "max_tokens":
            logger.warning(f"Summary from {self.model} hit max_tokens and may be cut short")
        blocks = data.get("content") or []
        return "\n".join(b["text"] for b in blocks if b.get("type") == "text")

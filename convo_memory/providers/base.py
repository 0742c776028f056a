"""Async HTTP base for summarization providers."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod

import httpx

from ..types import LLMProviderError

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRY_BACKOFF = [1.0, 2.0, 4.0]


def is_transient_status(status_code: int) -> bool:
    return status_code == 429 or status_code >= 500


class BaseProvider(ABC):
    """One JSON POST per completion, retried on rate limits, 5xx and transport errors.

    Subclasses describe the endpoint through the hook methods below.
    """

    _timeout: float = 60.0

    def __init__(self, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self.last_usage: dict = {}
        self._transport = transport

    @abstractmethod
    def _provider_name(self) -> str: ...

    @abstractmethod
    def _get_url(self) -> str: ...

    @abstractmethod
    def _get_headers(self) -> dict: ...

    @abstractmethod
    def _build_payload(self, system: str, user: str, max_tokens: int) -> dict: ...

    @abstractmethod
    def _extract_text(self, data: dict) -> str: ...

    def _status_error(self, response: httpx.Response) -> LLMProviderError:
        return LLMProviderError(
            f"HTTP {response.status_code}: {response.text}",
            provider=self._provider_name(),
            status_code=response.status_code,
        )

    async def _post(self, payload: dict) -> httpx.Response:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            return await client.post(self._get_url(), headers=self._get_headers(), json=payload)

    async def complete(self, system: str, user: str, max_tokens: int) -> str:
        payload = self._build_payload(system, user, max_tokens)
        last_error: LLMProviderError | None = None

        for attempt in range(MAX_RETRIES):
            if attempt:
                await asyncio.sleep(RETRY_BACKOFF[attempt - 1])
            try:
                response = await self._post(payload)
            except httpx.HTTPError as e:
                last_error = LLMProviderError(f"HTTP error: {e}", provider=self._provider_name())
                logger.debug(f"{self._provider_name()} attempt {attempt + 1} failed: {e}")
                continue

            if response.status_code == 200:
                data = response.json()
                self.last_usage = data.get("usage", {})
                return self._extract_text(data)

            last_error = self._status_error(response)
            if not is_transient_status(response.status_code):
                raise last_error
            logger.debug(f"{self._provider_name()} attempt {attempt + 1} got HTTP {response.status_code}")

        raise last_error or LLMProviderError("Max retries exceeded", provider=self._provider_name())

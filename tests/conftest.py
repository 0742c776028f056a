"""Shared fixtures for convo-memory tests."""

from __future__ import annotations

import pytest

from convo_memory.config import load_config
from convo_memory.core.conversation import append_messages, create_conversation
from convo_memory.storage.run_state import RunStateStore
from convo_memory.types import (
    Conversation,
    ConversationSnapshot,
    ConvoMemoryConfig,
    MessageInput,
    MessageKind,
    MessageRole,
    RunEvent,
)


class StubSummarizer:
    """Summarizer double that records the snapshots it was handed."""

    def __init__(self, summary: str = "summary text", error: Exception | None = None):
        self.summary = summary
        self.error = error
        self.snapshots: list[ConversationSnapshot] = []

    async def __call__(self, snapshot, config, sink=None, context=None) -> str:
        self.snapshots.append(snapshot)
        if self.error is not None:
            raise self.error
        return self.summary

    @property
    def calls(self) -> int:
        return len(self.snapshots)


class RecordingSink:
    """Event sink that keeps every emitted event in memory."""

    def __init__(self, fail: bool = False):
        self.events: list[RunEvent] = []
        self.fail = fail

    async def emit(self, event: RunEvent) -> None:
        if self.fail:
            raise RuntimeError("sink offline")
        self.events.append(event)

    @property
    def step_ids(self) -> list[str]:
        return [e.payload.get("step_id") for e in self.events]


class MockLLMProvider:
    """Mock LLM provider for testing summarization."""

    def __init__(self, response: str | None = None):
        self.calls: list[dict] = []
        self.response = response if response is not None else '{"summary": "Test summary"}'

    async def complete(self, system: str, user: str, max_tokens: int) -> str:
        self.calls.append({"system": system, "user": user, "max_tokens": max_tokens})
        return self.response


def make_config(
    max_turns: int = 1000,
    max_bytes: int = 1_000_000,
    summarize_after_turns: int = 1000,
    keep_last_turns: int = 20,
    enabled: bool = True,
    retention: dict | None = None,
    correction_patterns: list[str] | None = None,
    **extra,
) -> ConvoMemoryConfig:
    optimization: dict = {"enabled": enabled}
    if retention is not None:
        optimization["retention"] = retention
    if correction_patterns is not None:
        optimization["correction_patterns"] = correction_patterns
    return load_config(config_dict={
        "conversation": {
            "pruning": {
                "max_turns": max_turns,
                "max_bytes": max_bytes,
                "summarize_after_turns": summarize_after_turns,
                "keep_last_turns": keep_last_turns,
            },
            "optimization": optimization,
        },
        **extra,
    })


def make_conversation(*items: tuple, title: str = "test") -> Conversation:
    """Build a conversation from (role, content[, kind[, protected]]) tuples."""
    inputs = []
    for item in items:
        role, content = item[0], item[1]
        kind = item[2] if len(item) > 2 else None
        protected = item[3] if len(item) > 3 else False
        inputs.append(MessageInput(role=role, content=content, kind=kind, protected=protected))
    return append_messages(create_conversation(title=title), *inputs)


def contents(conversation: Conversation) -> list:
    return [conversation.messages[mid].content for mid in conversation.ids]


@pytest.fixture
def state(tmp_path) -> RunStateStore:
    return RunStateStore(root=tmp_path / "state", repo_root=tmp_path)


@pytest.fixture
def summarizer() -> StubSummarizer:
    return StubSummarizer()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


@pytest.fixture
def scenario_conversation() -> Conversation:
    return make_conversation(
        (MessageRole.USER, "start"),
        (MessageRole.ASSISTANT, "ok"),
        (MessageRole.ASSISTANT, "failure", MessageKind.ERROR),
        (MessageRole.ASSISTANT, "tool output", MessageKind.TOOL_RESULT),
        (MessageRole.USER, "actually do X"),
        (MessageRole.ASSISTANT, "final"),
    )


@pytest.fixture
def scenario_config() -> ConvoMemoryConfig:
    return make_config(
        max_turns=2,
        max_bytes=1000,
        summarize_after_turns=1,
        keep_last_turns=1,
        retention={"system": 1, "user": 1, "assistant": 1, "tool": 1, "error": 1, "correction": 1},
        correction_patterns=["actually"],
    )

"""Legacy trim: summarize-then-keep-tail, used when optimization is disabled."""

from __future__ import annotations

import logging
from typing import Awaitable, Callable

from ..token_counter import estimate_tokens
from ..types import (
    Conversation,
    ConversationSnapshot,
    ConvoMemoryConfig,
    EventContext,
    EventSink,
    MessageInput,
    MessageKind,
    MessageRole,
    OptimizationResult,
    PruningPolicy,
    Summarizer,
)
from .conversation import append_messages, append_system_message, filter_conversation, get_messages
from .optimizer import build_metrics
from .policy import should_summarize

logger = logging.getLogger(__name__)

LEGACY_SUMMARY_REQUEST = """\
Summarize the conversation so far into a compact, factual summary.
Return JSON only with: {"summary": "..."}."""


def legacy_keep_ids(conversation: Conversation, keep_last_turns: int) -> set[str]:
    """Last ``keep_last_turns`` messages plus every protected or system message."""
    messages = get_messages(conversation)
    keep = {m.id for m in messages[-keep_last_turns:]} if keep_last_turns > 0 else set()
    keep.update(m.id for m in messages if m.protected or m.role is MessageRole.SYSTEM)
    return keep


async def legacy_trim(
    conversation: Conversation,
    policy: PruningPolicy,
    config: ConvoMemoryConfig,
    summarize: Summarizer,
    checkpoint: Callable[[Conversation], Awaitable[ConversationSnapshot]],
    sink: EventSink | None = None,
    context: EventContext | None = None,
    token_counter: Callable[[str], int] = estimate_tokens,
) -> OptimizationResult:
    """Trim without role quotas or trackers.

    When the conversation is past ``summarize_after_turns`` the summary
    request is appended and persisted through ``checkpoint`` before the
    summarizer runs, so the exact request survives a crash mid-call. The
    summarizer sees the whole conversation here, not just the evicted part.
    """
    before = get_messages(conversation)
    nxt = conversation
    summary_added = False
    if should_summarize(len(conversation.ids), policy.summarize_after_turns):
        requested = append_messages(
            nxt,
            MessageInput(role=MessageRole.USER, content=LEGACY_SUMMARY_REQUEST, kind=MessageKind.SUMMARY),
        )
        snapshot = await checkpoint(requested)
        summary = await summarize(snapshot, config, sink=sink, context=context)
        nxt = append_system_message(requested, summary, kind=MessageKind.SUMMARY, protected=True)
        summary_added = True

    trimmed = filter_conversation(nxt, legacy_keep_ids(nxt, policy.keep_last_turns))
    logger.info(f"Legacy trim kept {len(trimmed.ids)} of {len(nxt.ids)} messages")
    metrics = build_metrics(before, get_messages(trimmed), summary_added, token_counter)
    return OptimizationResult(conversation=trimmed, metrics=metrics)

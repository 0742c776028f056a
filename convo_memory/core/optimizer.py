"""Conversation optimizer: retention-driven eviction with candidate summarization.

One newest-to-oldest pass decides which messages survive:

- protected messages and the last ``keep_last_turns`` messages always stay;
- each role bucket (system / user / assistant / tool) keeps its most recent
  ``retention.<role>`` messages;
- error and correction trackers keep their most recent matches on top of the
  role quotas.

Everything else is a candidate. Candidates are summarized in a throwaway
side conversation and replaced by a single protected system message.
"""

from __future__ import annotations

import json
import logging
import re
from datetime import datetime, timezone
from typing import Callable

from ..token_counter import estimate_tokens
from ..types import (
    Conversation,
    ConversationSnapshot,
    ConvoMemoryConfig,
    EventContext,
    EventSink,
    Message,
    MessageInput,
    MessageKind,
    MessageRole,
    OptimizationMetrics,
    OptimizationResult,
    PruningPolicy,
    RetentionConfig,
    RetentionRole,
    Summarizer,
)
from ..storage.helpers import digest_text
from .conversation import (
    append_messages,
    append_system_message,
    create_conversation,
    filter_conversation,
    get_messages,
    normalize_content,
)

logger = logging.getLogger(__name__)

SUMMARY_PROMPT = """\
Summarize the conversation context into a compact, factual summary.
Preserve key decisions, constraints, errors, and unresolved items.
Include user corrections and tool outcomes when relevant.
Return JSON only with: {"summary": "..."}."""

TOOL_ROLES = (MessageRole.TOOL_USE, MessageRole.TOOL_RESULT)


# ---------------------------------------------------------------------------
# Classification
# ---------------------------------------------------------------------------

def is_tool_message(message: Message) -> bool:
    return message.role in TOOL_ROLES or message.kind is MessageKind.TOOL_RESULT


def retention_role(message: Message) -> RetentionRole:
    if is_tool_message(message):
        return RetentionRole.TOOL
    if message.role is MessageRole.SYSTEM:
        return RetentionRole.SYSTEM
    if message.role is MessageRole.USER:
        return RetentionRole.USER
    return RetentionRole.ASSISTANT


def is_error_message(message: Message) -> bool:
    if message.kind is MessageKind.ERROR:
        return True
    if message.tool_result is not None and message.tool_result.outcome == "error":
        return True
    if message.kind is not MessageKind.TOOL_RESULT and message.role is not MessageRole.TOOL_RESULT:
        return False
    text = normalize_content(message.content).lower()
    return "error" in text or "exception" in text


def compile_correction_patterns(patterns: list[str]) -> list[re.Pattern]:
    compiled: list[re.Pattern] = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern, re.IGNORECASE))
        except re.error as e:
            logger.debug(f"Skipping invalid correction pattern {pattern!r}: {e}")
    return compiled


def is_correction_message(message: Message, patterns: list[re.Pattern]) -> bool:
    if message.role is not MessageRole.USER or not patterns:
        return False
    text = normalize_content(message.content)
    return any(p.search(text) for p in patterns)


# ---------------------------------------------------------------------------
# Selection
# ---------------------------------------------------------------------------

def select_retention_ids(
    messages: list[Message],
    retention: RetentionConfig,
    keep_last_turns: int,
    correction_patterns: list[re.Pattern],
) -> set[str]:
    """Ids kept by protection, recency, role quotas, and the error/correction trackers."""
    keep_ids = {m.id for m in messages if m.protected}

    if keep_last_turns > 0:
        keep_ids.update(m.id for m in messages[-keep_last_turns:])

    counts = {role: 0 for role in RetentionRole}
    error_count = 0
    correction_count = 0

    for message in reversed(messages):
        role = retention_role(message)
        if counts[role] < retention.quota(role):
            keep_ids.add(message.id)
            counts[role] += 1

        if error_count < retention.error and is_error_message(message):
            keep_ids.add(message.id)
            error_count += 1

        if correction_count < retention.correction and is_correction_message(message, correction_patterns):
            keep_ids.add(message.id)
            correction_count += 1

    return keep_ids


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------

def count_message_tokens(
    messages: list[Message],
    token_counter: Callable[[str], int] = estimate_tokens,
) -> int:
    return sum(token_counter(normalize_content(m.content)) for m in messages)


def build_metrics(
    before: list[Message],
    after: list[Message],
    summary_added: bool,
    token_counter: Callable[[str], int] = estimate_tokens,
) -> OptimizationMetrics:
    before_tokens = count_message_tokens(before, token_counter)
    after_tokens = count_message_tokens(after, token_counter)
    # Unclamped: a summary on a tiny conversation can push the ratio above 1.
    ratio = 1.0 if before_tokens == 0 else after_tokens / before_tokens
    return OptimizationMetrics(
        before_messages=len(before),
        after_messages=len(after),
        before_tokens=before_tokens,
        after_tokens=after_tokens,
        tokens_saved=max(0, before_tokens - after_tokens),
        compression_ratio=ratio,
        summary_added=summary_added,
        changed=len(before) != len(after) or summary_added,
    )


# ---------------------------------------------------------------------------
# Optimization
# ---------------------------------------------------------------------------

def _to_input(message: Message) -> MessageInput:
    return MessageInput(
        role=message.role,
        content=message.content if isinstance(message.content, str) else list(message.content),
        kind=message.kind,
        protected=message.protected,
        metadata=dict(message.metadata),
        tool_call=message.tool_call,
        tool_result=message.tool_result,
    )


def build_summary_snapshot(conversation: Conversation, run_id: str) -> ConversationSnapshot:
    """In-memory snapshot handed to the summarizer; never written to disk."""
    payload = json.dumps(conversation.to_dict(), ensure_ascii=False)
    return ConversationSnapshot(
        conversation=conversation,
        digest=digest_text(payload),
        updated_at=datetime.now(timezone.utc).isoformat(),
        path=f"memory:{run_id}",
    )


def build_candidate_conversation(
    conversation: Conversation,
    candidates: list[Message],
    run_id: str,
) -> Conversation:
    side = create_conversation(
        title=f"convo:{run_id}:optimize",
        metadata=dict(conversation.metadata),
    )
    side = append_messages(side, *(_to_input(m) for m in candidates))
    return append_messages(
        side,
        MessageInput(role=MessageRole.USER, content=SUMMARY_PROMPT, kind=MessageKind.SUMMARY),
    )


async def optimize_conversation(
    conversation: Conversation,
    policy: PruningPolicy,
    config: ConvoMemoryConfig,
    run_id: str,
    summarize: Summarizer,
    force: bool = False,
    sink: EventSink | None = None,
    context: EventContext | None = None,
    token_counter: Callable[[str], int] = estimate_tokens,
) -> OptimizationResult:
    """Evict non-retained messages, folding them into one protected summary.

    The input conversation is never mutated. The summarizer sees only the
    candidates plus an instruction, so retained content is not duplicated
    into the summary.
    """
    messages = get_messages(conversation)
    patterns = compile_correction_patterns(policy.optimization.correction_patterns)
    keep_ids = select_retention_ids(
        messages,
        policy.optimization.retention,
        policy.keep_last_turns,
        patterns,
    )

    candidates = [m for m in messages if m.id not in keep_ids]
    summary_added = False
    nxt = conversation

    gate_open = force or len(messages) > policy.summarize_after_turns
    if candidates and gate_open:
        side = build_candidate_conversation(conversation, candidates, run_id)
        snapshot = build_summary_snapshot(side, run_id)
        logger.info(f"Summarizing {len(candidates)} of {len(messages)} messages for run {run_id}")
        summary = await summarize(snapshot, config, sink=sink, context=context)
        nxt = append_system_message(nxt, summary, kind=MessageKind.SUMMARY, protected=True)
        keep_ids.add(nxt.ids[-1])
        summary_added = True

    optimized = filter_conversation(nxt, keep_ids)
    metrics = build_metrics(messages, get_messages(optimized), summary_added, token_counter)
    optimized.metadata = {
        **optimized.metadata,
        "optimization": {
            "updated_at": datetime.now(timezone.utc).isoformat(),
            **metrics.to_dict(),
        },
    }
    return OptimizationResult(conversation=optimized, metrics=metrics)

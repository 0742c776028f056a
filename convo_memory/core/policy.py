"""Pruning trigger policy: size/turn ceilings that decide when a conversation shrinks."""

from __future__ import annotations

from ..types import ConvoMemoryConfig, PruningPolicy


def pruning_policy(config: ConvoMemoryConfig) -> PruningPolicy:
    return config.pruning


def should_prune(turn_count: int, byte_size: int, policy: PruningPolicy) -> bool:
    """Content-blind check against the configured ceilings."""
    return turn_count > policy.max_turns or byte_size > policy.max_bytes


def should_summarize(turn_count: int, summarize_after_turns: int) -> bool:
    return turn_count > summarize_after_turns

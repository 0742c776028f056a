"""Tests for the pruning trigger policy."""

from conftest import make_config
from convo_memory.core.policy import pruning_policy, should_prune, should_summarize
from convo_memory.types import PruningPolicy


def test_under_both_ceilings():
    policy = PruningPolicy(max_turns=10, max_bytes=1000)
    assert not should_prune(10, 1000, policy)


def test_turn_ceiling():
    policy = PruningPolicy(max_turns=10, max_bytes=1000)
    assert should_prune(11, 10, policy)


def test_byte_ceiling():
    policy = PruningPolicy(max_turns=10, max_bytes=1000)
    assert should_prune(1, 1001, policy)


def test_should_summarize_is_strict():
    assert not should_summarize(30, 30)
    assert should_summarize(31, 30)


def test_defaults():
    policy = PruningPolicy()
    assert policy.max_turns == 80
    assert policy.max_bytes == 200_000
    assert policy.summarize_after_turns == 30
    assert policy.keep_last_turns == 20
    assert policy.optimization.enabled is True


def test_policy_from_config():
    config = make_config(max_turns=5, max_bytes=500, keep_last_turns=2, enabled=False)
    policy = pruning_policy(config)
    assert policy.max_turns == 5
    assert policy.max_bytes == 500
    assert policy.keep_last_turns == 2
    assert policy.optimization.enabled is False

"""Token counters used for optimization metrics."""

from __future__ import annotations

import importlib
import math
from typing import Callable

TokenCounter = Callable[[str], int]


def estimate_tokens(text: str) -> int:
    """~4 characters per token, rounded up; empty text is zero tokens."""
    if not text:
        return 0
    return math.ceil(len(text) / 4)


def _tiktoken_counter() -> TokenCounter:
    try:
        import tiktoken
    except ImportError:
        raise ImportError(
            "token_counter: tiktoken needs the extra: pip install convo-memory[tiktoken]"
        )
    enc = tiktoken.get_encoding("cl100k_base")
    return lambda text: len(enc.encode(text)) if text else 0


def _load_callable(target: str) -> TokenCounter:
    module_path, sep, func_name = target.rpartition(":")
    if not sep or not module_path or not func_name:
        raise ValueError(f"Invalid callable spec: callable:{target}. Expected callable:module:func")
    return getattr(importlib.import_module(module_path), func_name)


def create_token_counter(mode: str = "estimate") -> TokenCounter:
    """Resolve the ``token_counter`` config value.

    Modes:
        "estimate" - ceil(len(text) / 4), no dependencies
        "tiktoken" - cl100k_base encoding, needs the tiktoken extra
        "callable:module.path:func" - any importable ``str -> int`` callable
    """
    if mode == "estimate":
        return estimate_tokens
    if mode == "tiktoken":
        return _tiktoken_counter()
    if mode.startswith("callable:"):
        return _load_callable(mode[len("callable:"):])
    raise ValueError(f"Unknown token counter mode: {mode}")

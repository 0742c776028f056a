"""Configuration loading, validation, and defaults."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import Any

import yaml

from .patterns import DEFAULT_CORRECTION_PATTERNS
from .types import (
    ConvoMemoryConfig,
    LoggingConfig,
    OptimizationConfig,
    PruningPolicy,
    RetentionConfig,
    StateConfig,
    SummarizationConfig,
)

CONFIG_FILENAMES = [
    "convo-memory.yaml",
    "convo-memory.yml",
    "convo-memory.json",
]

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _discover_config() -> Path | None:
    """Search CWD then parent dirs up to home for a config file."""
    cwd = Path.cwd()
    home = Path.home()
    search = cwd
    while True:
        for name in CONFIG_FILENAMES:
            candidate = search / name
            if candidate.is_file():
                return candidate
        if search == home or search == search.parent:
            break
        search = search.parent
    return None


def _parse_retention(raw: dict[str, Any]) -> RetentionConfig:
    defaults = RetentionConfig()
    return RetentionConfig(
        system=raw.get("system", defaults.system),
        user=raw.get("user", defaults.user),
        assistant=raw.get("assistant", defaults.assistant),
        tool=raw.get("tool", defaults.tool),
        error=raw.get("error", defaults.error),
        correction=raw.get("correction", defaults.correction),
    )


def _parse_pruning(conversation: dict[str, Any]) -> PruningPolicy:
    pruning = conversation.get("pruning", {})
    opt_raw = conversation.get("optimization", {})
    optimization = OptimizationConfig(
        enabled=opt_raw.get("enabled", True),
        retention=_parse_retention(opt_raw.get("retention", {})),
        correction_patterns=list(
            opt_raw.get("correction_patterns", DEFAULT_CORRECTION_PATTERNS)
        ),
    )
    return PruningPolicy(
        max_turns=pruning.get("max_turns", 80),
        max_bytes=pruning.get("max_bytes", 200_000),
        summarize_after_turns=pruning.get("summarize_after_turns", 30),
        keep_last_turns=pruning.get("keep_last_turns", 20),
        optimization=optimization,
    )


def _build_config(raw: dict[str, Any]) -> ConvoMemoryConfig:
    """Build a ConvoMemoryConfig from a raw dict."""
    state_raw = raw.get("state", {})
    summ_raw = raw.get("summarization", {})
    logging_raw = raw.get("logging", {})

    summarization = SummarizationConfig(
        provider=summ_raw.get("provider", "anthropic"),
        model=summ_raw.get("model", "claude-haiku-4-5"),
        max_tokens=summ_raw.get("max_tokens", 1000),
        temperature=summ_raw.get("temperature", 0.3),
    )

    return ConvoMemoryConfig(
        version=raw.get("version", "1.0"),
        repo_root=raw.get("repo_root", "."),
        token_counter=raw.get("token_counter", "estimate"),
        state=StateConfig(root=state_raw.get("root", ".convo-memory")),
        pruning=_parse_pruning(raw.get("conversation", {})),
        summarization=summarization,
        logging=LoggingConfig(level=str(logging_raw.get("level", "WARNING")).upper()),
        providers=raw.get("providers", {}),
    )


def validate_config(config: ConvoMemoryConfig) -> list[str]:
    """Validate a config. Returns list of error strings (empty = valid)."""
    errors: list[str] = []
    pruning = config.pruning

    for name in ("max_turns", "max_bytes", "summarize_after_turns", "keep_last_turns"):
        value = getattr(pruning, name)
        if not isinstance(value, int) or value < 1:
            errors.append(f"conversation.pruning.{name} must be a positive integer (got {value!r})")

    if isinstance(pruning.keep_last_turns, int) and isinstance(pruning.max_turns, int):
        if pruning.keep_last_turns > pruning.max_turns:
            errors.append(
                f"keep_last_turns ({pruning.keep_last_turns}) must be <= "
                f"max_turns ({pruning.max_turns})"
            )

    retention = pruning.optimization.retention
    for name in ("system", "user", "assistant", "tool", "error", "correction"):
        value = getattr(retention, name)
        if not isinstance(value, int) or value < 0:
            errors.append(
                f"conversation.optimization.retention.{name} must be >= 0 (got {value!r})"
            )

    for pattern in pruning.optimization.correction_patterns:
        try:
            re.compile(pattern)
        except re.error as e:
            errors.append(f"Invalid correction pattern {pattern!r} (ignored at runtime): {e}")

    # Check that summarization provider exists in providers
    if config.providers and config.summarization.provider not in config.providers:
        errors.append(
            f"Summarization provider '{config.summarization.provider}' "
            f"not found in providers section"
        )

    if config.logging.level not in LOG_LEVELS:
        errors.append(f"logging.level must be one of {', '.join(LOG_LEVELS)}")

    return errors


def configure_logging(config: ConvoMemoryConfig, verbose: bool = False) -> None:
    """Apply the configured log level to the root logger."""
    level = "DEBUG" if verbose else config.logging.level
    logging.basicConfig(
        level=getattr(logging, level, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def load_config(
    config_path: str | Path | None = None,
    config_dict: dict | None = None,
) -> ConvoMemoryConfig:
    """Load config from dict, explicit path, or auto-discover."""
    if config_dict is not None:
        return _build_config(config_dict)

    if config_path is not None:
        path = Path(config_path)
    else:
        path = _discover_config()

    if path is None:
        # Return defaults
        return _build_config({})

    if not path.is_file():
        raise FileNotFoundError(f"Config file not found: {path}")

    text = path.read_text()
    if path.suffix == ".json":
        raw = json.loads(text)
    else:
        raw = yaml.safe_load(text) or {}

    return _build_config(raw)

"""CLI: convo-memory show, export, optimize, append, config validate."""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from dataclasses import asdict

import yaml

from ..config import configure_logging, load_config, validate_config
from ..core.events import JsonlEventSink
from ..inspection import (
    export_conversation_snapshot,
    load_conversation_snapshot,
    render_conversation_summary,
    summarize_conversation_snapshot,
)
from ..storage.run_state import RunStateStore
from ..store import ConversationStore
from ..types import EventContext, MessageInput, MessageKind, MessageRole


def _get_state(args):
    config = load_config(args.config)
    root = args.state_root or config.state.root
    return RunStateStore(root=root, repo_root=config.repo_root), config


def _fail(message: str) -> None:
    print(message, file=sys.stderr)
    sys.exit(1)


def _build_store(args, run_id: str) -> ConversationStore:
    state, config = _get_state(args)
    sink = JsonlEventSink(state.audit_dir / f"{run_id}.jsonl")
    context = EventContext(run_id=run_id, repo_root=str(state.repo_root), mode="headless")
    return ConversationStore(run_id=run_id, state=state, config=config, sink=sink, context=context)


def cmd_show(args):
    """Show a stored conversation's summary and latest messages."""
    state, _ = _get_state(args)
    snapshot = load_conversation_snapshot(state, args.run_id)
    if snapshot is None:
        _fail(f"No conversation found for run {args.run_id}")

    summary = summarize_conversation_snapshot(snapshot, limit=max(1, args.limit))
    if args.json:
        print(json.dumps({"run_id": args.run_id, "summary": asdict(summary)}, indent=2))
        return

    print("Conversation summary")
    print("=" * 60)
    print(render_conversation_summary(summary))
    print()
    print("Next steps:")
    print(f"  convo-memory export {args.run_id} --format md")
    print(f"  convo-memory optimize {args.run_id}")


def cmd_export(args):
    """Export a stored conversation as JSON or markdown."""
    state, _ = _get_state(args)
    snapshot = load_conversation_snapshot(state, args.run_id)
    if snapshot is None:
        _fail(f"No conversation found for run {args.run_id}")
    print(export_conversation_snapshot(snapshot, format=args.format))


def cmd_optimize(args):
    """Optimize a stored conversation."""
    store = _build_store(args, args.run_id)
    try:
        result = asyncio.run(store.optimize(force=args.force))
    except Exception as e:
        _fail(f"Optimization failed: {e}")

    m = result.metrics
    if args.json:
        print(json.dumps({
            "run_id": args.run_id,
            "metrics": m.to_dict(),
            "backup_path": str(result.backup_path) if result.backup_path else None,
        }, indent=2))
        return

    print(f"Run ID:      {args.run_id}")
    print(f"Messages:    {m.before_messages} -> {m.after_messages}")
    print(f"Tokens:      {m.before_tokens:,} -> {m.after_tokens:,} ({m.tokens_saved:,} saved)")
    print(f"Compression: {round(m.compression_ratio * 100)}%")
    print(f"Summary:     {'added' if m.summary_added else 'none'}")
    if result.backup_path:
        print(f"Backup:      {result.backup_path}")
    if not m.changed:
        print("Conversation already within retention limits.")


def cmd_append(args):
    """Append a message to a run's conversation."""
    content = args.content if args.content is not None else sys.stdin.read()
    if not content.strip():
        _fail("Message content is empty")

    message = MessageInput(
        role=MessageRole(args.role),
        content=content,
        kind=MessageKind(args.kind) if args.kind else None,
        protected=args.protected,
    )
    store = _build_store(args, args.run_id)
    try:
        snapshot = asyncio.run(store.append(message, prune=not args.no_prune))
    except Exception as e:
        _fail(f"Append failed: {e}")

    print(f"Saved {len(snapshot.conversation.ids)} messages to {snapshot.path}")
    print(f"Digest: {snapshot.digest}")


def cmd_config_validate(args):
    """Validate config file."""
    try:
        config = load_config(args.config)
    except Exception as e:
        _fail(f"Error loading config: {e}")

    errors = validate_config(config)
    if errors:
        print("Config validation errors:")
        for err in errors:
            print(f"  - {err}")
        sys.exit(1)

    pruning = config.pruning
    print("Config is valid.")
    print(f"  State root: {config.state.root}")
    print(f"  Max turns / bytes: {pruning.max_turns} / {pruning.max_bytes:,}")
    print(f"  Keep last turns: {pruning.keep_last_turns}")
    print(f"  Optimization: {'enabled' if pruning.optimization.enabled else 'disabled'}")
    print(f"  Summarizer: {config.summarization.provider} ({config.summarization.model})")


def main():
    parser = argparse.ArgumentParser(
        prog="convo-memory",
        description="Persisted, self-pruning conversation memory for agent runs",
    )
    parser.add_argument("--config", "-c", help="Path to config file")
    parser.add_argument("--state-root", help="Override the state directory")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command")

    # show
    show_parser = subparsers.add_parser("show", help="Show conversation context")
    show_parser.add_argument("run_id")
    show_parser.add_argument("--limit", type=int, default=20, help="Number of messages to show")
    show_parser.add_argument("--json", action="store_true", help="Emit JSON")

    # export
    export_parser = subparsers.add_parser("export", help="Export conversation snapshot")
    export_parser.add_argument("run_id")
    export_parser.add_argument("--format", choices=["json", "md"], default="json")

    # optimize
    optimize_parser = subparsers.add_parser("optimize", help="Optimize conversation context")
    optimize_parser.add_argument("run_id")
    optimize_parser.add_argument(
        "--force", action="store_true", help="Summarize even if below thresholds",
    )
    optimize_parser.add_argument("--json", action="store_true", help="Emit JSON")

    # append
    append_parser = subparsers.add_parser("append", help="Append a message to a conversation")
    append_parser.add_argument("run_id")
    append_parser.add_argument("--role", choices=[r.value for r in MessageRole], default="user")
    append_parser.add_argument("--content", "-m", help="Message text (default: read stdin)")
    append_parser.add_argument("--kind", choices=[k.value for k in MessageKind])
    append_parser.add_argument("--protected", action="store_true", help="Never evict this message")
    append_parser.add_argument("--no-prune", action="store_true", help="Skip the pruning check")

    # config validate
    config_parser = subparsers.add_parser("config", help="Config operations")
    config_sub = config_parser.add_subparsers(dest="config_command")
    config_sub.add_parser("validate", help="Validate config file")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        configure_logging(load_config(args.config), verbose=args.verbose)
    except (OSError, ValueError, yaml.YAMLError):
        # broken config is reported by the command itself
        configure_logging(load_config(config_dict={}), verbose=args.verbose)

    if args.command == "show":
        cmd_show(args)
    elif args.command == "export":
        cmd_export(args)
    elif args.command == "optimize":
        cmd_optimize(args)
    elif args.command == "append":
        cmd_append(args)
    elif args.command == "config":
        if args.config_command == "validate":
            cmd_config_validate(args)
        else:
            print("Usage: convo-memory config validate")
            sys.exit(1)


if __name__ == "__main__":
    main()

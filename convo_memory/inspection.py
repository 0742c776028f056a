"""Read-only views over stored conversations: summaries, markdown, JSON export."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal

from .core.conversation import get_messages, normalize_content
from .storage.conversation_file import read_envelope_conversation
from .storage.helpers import digest_text
from .storage.run_state import RunStateStore
from .types import (
    ConversationEnvelope,
    ConversationSnapshot,
    ConversationSummary,
    MessageKind,
)

ExportFormat = Literal["json", "md"]

MAX_PREVIEW_CHARS = 200


def _run_id(snapshot: ConversationSnapshot) -> str:
    value = snapshot.conversation.metadata.get("run_id")
    return value if isinstance(value, str) else "unknown"


def load_conversation_snapshot(state: RunStateStore, run_id: str) -> ConversationSnapshot | None:
    """Snapshot of the conversation file recorded in the run's state, if any."""
    envelope = state.read_run_state(run_id)
    meta = (envelope.data if envelope else {}).get("conversation") or {}
    path = meta.get("path")
    if not path:
        return None

    path = Path(path)
    conversation = read_envelope_conversation(path)
    if conversation is None:
        return None

    text = path.read_text(encoding="utf-8")
    raw = json.loads(text)
    updated_at = raw.get("updated_at") or meta.get("updated_at") or datetime.now(timezone.utc).isoformat()
    return ConversationSnapshot(
        conversation=conversation,
        digest=digest_text(text),
        updated_at=updated_at,
        path=str(path),
    )


def summarize_conversation_snapshot(snapshot: ConversationSnapshot, limit: int = 20) -> ConversationSummary:
    messages = get_messages(snapshot.conversation)
    last = [
        {"role": m.role.value, "content": normalize_content(m.content)}
        for m in messages[-limit:]
    ] if limit > 0 else []
    return ConversationSummary(
        run_id=_run_id(snapshot),
        path=snapshot.path,
        updated_at=snapshot.updated_at,
        message_count=len(messages),
        summary_count=sum(1 for m in messages if m.kind is MessageKind.SUMMARY),
        last_messages=last,
    )


def render_conversation_summary(summary: ConversationSummary) -> str:
    lines = [
        f"Run: {summary.run_id}",
        f"Path: {summary.path}",
        f"Updated: {summary.updated_at}",
        f"Messages: {summary.message_count} (summaries: {summary.summary_count})",
        "---",
    ]
    for entry in summary.last_messages:
        content = entry["content"]
        if len(content) > MAX_PREVIEW_CHARS:
            content = content[:MAX_PREVIEW_CHARS] + "…"
        lines.append(f"{entry['role']}: {content}")
    return "\n".join(lines)


def render_conversation_markdown(snapshot: ConversationSnapshot) -> str:
    """Markdown transcript, one section per message."""
    conversation = snapshot.conversation
    lines = [f"# {conversation.title or _run_id(snapshot)}", ""]
    for m in get_messages(conversation):
        heading = m.role.value.capitalize()
        if m.kind is not None:
            heading += f" ({m.kind.value})"
        lines.append(f"### {heading}")
        lines.append("")
        lines.append(normalize_content(m.content))
        lines.append("")
    return "\n".join(lines).rstrip()


def export_conversation_snapshot(snapshot: ConversationSnapshot, format: ExportFormat = "json") -> str:
    if format == "md":
        return render_conversation_markdown(snapshot)
    if format != "json":
        raise ValueError(f"Format must be json or md (got {format!r})")
    envelope = ConversationEnvelope(
        run_id=_run_id(snapshot),
        updated_at=snapshot.updated_at,
        conversation=snapshot.conversation,
    )
    return json.dumps(envelope.to_dict(), indent=2, ensure_ascii=False)

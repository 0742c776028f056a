"""Conversation model operations: append, lookup, (de)serialization, validation."""

from __future__ import annotations

import json
from datetime import datetime, timezone

from ..types import (
    Conversation,
    ConversationSchemaError,
    Message,
    MessageInput,
    MessageKind,
    MessageRole,
    ToolCall,
    ToolResult,
)


def create_conversation(title: str = "", metadata: dict | None = None) -> Conversation:
    return Conversation(title=title, metadata=dict(metadata or {}))


def _coerce_role(value) -> MessageRole:
    if isinstance(value, MessageRole):
        return value
    try:
        return MessageRole(value)
    except ValueError:
        raise ConversationSchemaError(f"Unknown message role: {value!r}")


def _coerce_kind(value) -> MessageKind | None:
    if value is None or isinstance(value, MessageKind):
        return value
    try:
        return MessageKind(value)
    except ValueError:
        raise ConversationSchemaError(f"Unknown message kind: {value!r}")


def _message_from_input(item: MessageInput) -> Message:
    # kind/protected given through metadata become the typed fields
    meta = dict(item.metadata)
    meta_kind = _coerce_kind(meta.pop("kind", None))
    meta_protected = meta.pop("protected", False)
    if not isinstance(meta_protected, bool):
        raise ConversationSchemaError(f"metadata protected flag must be a boolean (got {meta_protected!r})")
    kind = _coerce_kind(item.kind)
    return Message(
        role=_coerce_role(item.role),
        content=item.content,
        kind=kind if kind is not None else meta_kind,
        protected=item.protected or meta_protected,
        metadata=meta,
        tool_call=item.tool_call,
        tool_result=item.tool_result,
    )


def append_messages(conversation: Conversation, *items: MessageInput) -> Conversation:
    """Return a copy of ``conversation`` with ``items`` appended in order."""
    nxt = conversation.copy()
    for item in items:
        message = _message_from_input(item)
        nxt.ids.append(message.id)
        nxt.messages[message.id] = message
    if items:
        nxt.updated_at = datetime.now(timezone.utc)
    return nxt


def append_system_message(
    conversation: Conversation,
    content: str,
    kind: MessageKind | None = None,
    protected: bool = False,
) -> Conversation:
    return append_messages(
        conversation,
        MessageInput(role=MessageRole.SYSTEM, content=content, kind=kind, protected=protected),
    )


def get_messages(conversation: Conversation) -> list[Message]:
    """Messages in chronological order."""
    return [conversation.messages[mid] for mid in conversation.ids]


def filter_conversation(conversation: Conversation, keep_ids: set[str]) -> Conversation:
    """Restrict ``conversation`` to ``keep_ids``, preserving relative order."""
    nxt = conversation.copy()
    nxt.ids = [mid for mid in conversation.ids if mid in keep_ids]
    nxt.messages = {mid: conversation.messages[mid] for mid in nxt.ids}
    return nxt


def normalize_content(content) -> str:
    if isinstance(content, str):
        return content
    try:
        return json.dumps(content, ensure_ascii=False)
    except (TypeError, ValueError):
        return str(content)


def serialized_size(conversation: Conversation) -> int:
    """UTF-8 byte length of the compact JSON form."""
    payload = json.dumps(conversation.to_dict(), separators=(",", ":"), ensure_ascii=False)
    return len(payload.encode("utf-8"))


# ---------------------------------------------------------------------------
# Deserialization with validation
# ---------------------------------------------------------------------------

def _require(condition: bool, message: str) -> None:
    if not condition:
        raise ConversationSchemaError(message)


def _parse_dt(value, field_name: str) -> datetime:
    _require(isinstance(value, str), f"{field_name} must be an ISO-8601 string")
    try:
        dt = datetime.fromisoformat(value)
    except ValueError:
        raise ConversationSchemaError(f"{field_name} is not a valid timestamp: {value!r}")
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def message_from_dict(raw) -> Message:
    _require(isinstance(raw, dict), "message must be an object")
    _require(isinstance(raw.get("id"), str) and raw["id"] != "", "message.id must be a non-empty string")

    content = raw.get("content")
    _require(
        isinstance(content, str)
        or (isinstance(content, list) and all(isinstance(b, dict) for b in content)),
        f"message {raw['id']} content must be text or a list of blocks",
    )

    meta = raw.get("metadata") or {}
    _require(isinstance(meta, dict), f"message {raw['id']} metadata must be an object")
    meta = dict(meta)
    kind = _coerce_kind(meta.pop("kind", None))
    protected = meta.pop("protected", False)
    _require(isinstance(protected, bool), f"message {raw['id']} protected flag must be a boolean")

    tool_call = None
    if raw.get("tool_call") is not None:
        tc = raw["tool_call"]
        _require(isinstance(tc, dict) and "id" in tc and "name" in tc, "tool_call needs id and name")
        tool_call = ToolCall(id=tc["id"], name=tc["name"], arguments=tc.get("arguments", {}))

    tool_result = None
    if raw.get("tool_result") is not None:
        tr = raw["tool_result"]
        _require(isinstance(tr, dict) and "call_id" in tr, "tool_result needs call_id")
        outcome = tr.get("outcome", "success")
        _require(outcome in ("success", "error"), f"Unknown tool outcome: {outcome!r}")
        tool_result = ToolResult(call_id=tr["call_id"], outcome=outcome, content=tr.get("content", ""))

    return Message(
        id=raw["id"],
        role=_coerce_role(raw.get("role")),
        content=content,
        kind=kind,
        protected=protected,
        metadata=meta,
        created_at=_parse_dt(raw.get("created_at"), "message.created_at"),
        tool_call=tool_call,
        tool_result=tool_result,
    )


def conversation_from_dict(raw) -> Conversation:
    """Build a Conversation from stored data, raising ConversationSchemaError on mismatch."""
    _require(isinstance(raw, dict), "conversation must be an object")

    ids = raw.get("ids")
    _require(isinstance(ids, list) and all(isinstance(i, str) for i in ids), "ids must be a list of strings")
    _require(len(set(ids)) == len(ids), "ids must not contain duplicates")

    raw_messages = raw.get("messages")
    _require(isinstance(raw_messages, dict), "messages must be an object keyed by id")
    _require(set(raw_messages) == set(ids), "ids and messages must reference the same message ids")

    messages: dict[str, Message] = {}
    for mid in ids:
        message = message_from_dict(raw_messages[mid])
        _require(message.id == mid, f"message keyed {mid} carries id {message.id}")
        messages[mid] = message

    metadata = raw.get("metadata") or {}
    _require(isinstance(metadata, dict), "conversation metadata must be an object")
    _require(isinstance(raw.get("id"), str), "conversation.id must be a string")

    return Conversation(
        id=raw["id"],
        title=raw.get("title", "") or "",
        ids=list(ids),
        messages=messages,
        metadata=metadata,
        created_at=_parse_dt(raw.get("created_at"), "conversation.created_at"),
        updated_at=_parse_dt(raw.get("updated_at"), "conversation.updated_at"),
    )

"""All dataclasses, Protocols, and error types for convo-memory."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Literal, Protocol, runtime_checkable

CONVERSATION_VERSION = "1.0.0"


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Roles & classification
# ---------------------------------------------------------------------------

class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL_USE = "tool-use"
    TOOL_RESULT = "tool-result"


class MessageKind(str, Enum):
    """Classification tag carried in message metadata."""
    TASK = "task"
    PLAN = "plan"
    KICKOFF = "kickoff"
    REVIEW = "review"
    CI = "ci"
    VERIFICATION = "verification"
    RECOVERY = "recovery"
    PR = "pr"
    LEARNING = "learning"
    ERROR = "error"
    TOOL_RESULT = "tool_result"
    SUMMARY = "summary"


class RetentionRole(str, Enum):
    """Quota bucket a message is counted against during eviction."""
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


# ---------------------------------------------------------------------------
# Messages & conversations
# ---------------------------------------------------------------------------

@dataclass
class ToolCall:
    id: str
    name: str
    arguments: dict = field(default_factory=dict)


@dataclass
class ToolResult:
    call_id: str
    outcome: Literal["success", "error"] = "success"
    content: str = ""


@dataclass
class Message:
    role: MessageRole
    content: str | list[dict]
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    kind: MessageKind | None = None
    protected: bool = False
    metadata: dict = field(default_factory=dict)  # extra keys beyond kind/protected
    created_at: datetime = field(default_factory=_now)
    tool_call: ToolCall | None = None
    tool_result: ToolResult | None = None

    def to_dict(self) -> dict:
        meta = {k: v for k, v in self.metadata.items() if k not in ("kind", "protected")}
        if self.kind is not None:
            meta["kind"] = self.kind.value
        if self.protected:
            meta["protected"] = True
        data: dict = {
            "id": self.id,
            "role": self.role.value,
            "content": self.content,
            "metadata": meta,
            "created_at": self.created_at.isoformat(),
        }
        if self.tool_call is not None:
            data["tool_call"] = {
                "id": self.tool_call.id,
                "name": self.tool_call.name,
                "arguments": self.tool_call.arguments,
            }
        if self.tool_result is not None:
            data["tool_result"] = {
                "call_id": self.tool_result.call_id,
                "outcome": self.tool_result.outcome,
                "content": self.tool_result.content,
            }
        return data


@dataclass
class MessageInput:
    """What callers hand to ``append``; ids and timestamps are assigned on append."""
    role: MessageRole | str
    content: str | list[dict]
    kind: MessageKind | str | None = None
    protected: bool = False
    metadata: dict = field(default_factory=dict)
    tool_call: ToolCall | None = None
    tool_result: ToolResult | None = None


@dataclass
class Conversation:
    """Ordered, uniquely keyed message log for one run.

    ``ids`` carries chronology; ``messages`` is keyed by id. Both always hold
    the same set of ids.
    """
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    title: str = ""
    ids: list[str] = field(default_factory=list)
    messages: dict[str, Message] = field(default_factory=dict)
    metadata: dict = field(default_factory=dict)
    created_at: datetime = field(default_factory=_now)
    updated_at: datetime = field(default_factory=_now)

    def __len__(self) -> int:
        return len(self.ids)

    def copy(self) -> Conversation:
        """Shallow copy: new containers, shared Message objects."""
        return Conversation(
            id=self.id,
            title=self.title,
            ids=list(self.ids),
            messages=dict(self.messages),
            metadata=dict(self.metadata),
            created_at=self.created_at,
            updated_at=self.updated_at,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "title": self.title,
            "ids": list(self.ids),
            "messages": {mid: self.messages[mid].to_dict() for mid in self.ids},
            "metadata": self.metadata,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class ConversationEnvelope:
    run_id: str
    updated_at: str
    conversation: Conversation
    version: str = CONVERSATION_VERSION

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "run_id": self.run_id,
            "updated_at": self.updated_at,
            "conversation": self.conversation.to_dict(),
        }


@dataclass
class ConversationSnapshot:
    conversation: Conversation
    digest: str
    updated_at: str
    path: str


# ---------------------------------------------------------------------------
# Pruning & optimization
# ---------------------------------------------------------------------------

@dataclass
class RetentionConfig:
    system: int = 2
    user: int = 4
    assistant: int = 4
    tool: int = 4
    error: int = 3
    correction: int = 3

    def quota(self, role: RetentionRole) -> int:
        return getattr(self, role.value)


@dataclass
class OptimizationConfig:
    enabled: bool = True
    retention: RetentionConfig = field(default_factory=RetentionConfig)
    correction_patterns: list[str] = field(default_factory=list)


@dataclass
class PruningPolicy:
    max_turns: int = 80
    max_bytes: int = 200_000
    summarize_after_turns: int = 30
    keep_last_turns: int = 20
    optimization: OptimizationConfig = field(default_factory=OptimizationConfig)


@dataclass
class OptimizationMetrics:
    before_messages: int
    after_messages: int
    before_tokens: int
    after_tokens: int
    tokens_saved: int
    compression_ratio: float
    summary_added: bool
    changed: bool

    def to_dict(self) -> dict:
        return {
            "before_messages": self.before_messages,
            "after_messages": self.after_messages,
            "before_tokens": self.before_tokens,
            "after_tokens": self.after_tokens,
            "tokens_saved": self.tokens_saved,
            "compression_ratio": self.compression_ratio,
            "summary_added": self.summary_added,
            "changed": self.changed,
        }


@dataclass
class OptimizationResult:
    conversation: Conversation
    metrics: OptimizationMetrics
    snapshot: ConversationSnapshot | None = None
    backup_path: Path | None = None


@dataclass
class ConversationSummary:
    """Human-facing digest of a stored conversation."""
    run_id: str
    path: str
    updated_at: str
    message_count: int
    summary_count: int
    last_messages: list[dict] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Run state & events
# ---------------------------------------------------------------------------

@dataclass
class RunStateEnvelope:
    run_id: str
    data: dict = field(default_factory=dict)
    version: str = CONVERSATION_VERSION


@dataclass
class EventContext:
    run_id: str
    repo_root: str = ""
    mode: str | None = None
    worktree_path: str | None = None
    task_id: str | None = None
    pr_id: str | None = None


@dataclass
class RunEvent:
    type: str
    source: str
    level: Literal["debug", "info", "warn", "error"]
    context: EventContext
    payload: dict = field(default_factory=dict)
    message: str | None = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    ts: str = field(default_factory=lambda: _now().isoformat())


@runtime_checkable
class EventSink(Protocol):
    async def emit(self, event: RunEvent) -> None: ...


class StateStore(Protocol):
    conversations_dir: Path
    repo_id: str

    def update_run_state(self, run_id: str, updater) -> str: ...


class Summarizer(Protocol):
    async def __call__(
        self,
        snapshot: ConversationSnapshot,
        config: ConvoMemoryConfig,
        sink: EventSink | None = None,
        context: EventContext | None = None,
    ) -> str: ...


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class ConversationMemoryError(Exception):
    """Base class for convo-memory errors."""


class ConversationSchemaError(ConversationMemoryError, ValueError):
    """Stored conversation data does not match the expected shape."""


class SummarizationError(ConversationMemoryError):
    """The summarizer could not produce a summary."""


class LLMProviderError(SummarizationError):
    def __init__(self, message: str, provider: str, status_code: int | None = None):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


@runtime_checkable
class LLMProvider(Protocol):
    async def complete(self, system: str, user: str, max_tokens: int) -> str: ...


# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------

@dataclass
class StateConfig:
    root: str = ".convo-memory"


@dataclass
class SummarizationConfig:
    provider: str = "anthropic"
    model: str = "claude-haiku-4-5"
    max_tokens: int = 1000
    temperature: float = 0.3


@dataclass
class LoggingConfig:
    level: str = "WARNING"


@dataclass
class ConvoMemoryConfig:
    version: str = "1.0"
    repo_root: str = "."
    token_counter: str = "estimate"
    state: StateConfig = field(default_factory=StateConfig)
    pruning: PruningPolicy = field(default_factory=PruningPolicy)
    summarization: SummarizationConfig = field(default_factory=SummarizationConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    providers: dict[str, dict] = field(default_factory=dict)

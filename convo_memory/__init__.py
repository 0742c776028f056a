"""convo-memory: persisted, self-pruning conversation memory for agent runs."""

from .config import load_config
from .storage.run_state import RunStateStore
from .store import ConversationStore
from .types import (
    Conversation,
    ConversationSnapshot,
    ConvoMemoryConfig,
    Message,
    MessageInput,
    MessageKind,
    MessageRole,
    OptimizationMetrics,
    OptimizationResult,
    PruningPolicy,
)

__version__ = "0.1.0"

__all__ = [
    "ConversationStore",
    "RunStateStore",
    "load_config",
    "Conversation",
    "ConversationSnapshot",
    "ConvoMemoryConfig",
    "Message",
    "MessageInput",
    "MessageKind",
    "MessageRole",
    "OptimizationMetrics",
    "OptimizationResult",
    "PruningPolicy",
]

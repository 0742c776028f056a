from .conversation_file import ConversationFile
from .run_state import RunStateStore

__all__ = ["ConversationFile", "RunStateStore"]

"""ConversationFile: one versioned JSON envelope per run, replaced atomically."""

from __future__ import annotations

import json
import logging
import shutil
import time
from datetime import datetime, timezone
from pathlib import Path

from ..core.conversation import conversation_from_dict, create_conversation
from ..core.events import STEP_SNAPSHOT, emit_step
from ..types import (
    CONVERSATION_VERSION,
    Conversation,
    ConversationEnvelope,
    ConversationSnapshot,
    EventContext,
    EventSink,
    StateStore,
)
from .helpers import atomic_write_text, digest_text, dt_to_str

logger = logging.getLogger(__name__)


def conversation_path(conversations_dir: str | Path, run_id: str) -> Path:
    return Path(conversations_dir) / f"{run_id}.json"


def read_envelope_conversation(path: Path) -> Conversation | None:
    """Parse and validate a stored envelope.

    Returns None for any storage read fault: missing file, unreadable bytes,
    malformed JSON, missing envelope keys, or schema mismatch. Callers decide
    what an absent conversation means.
    """
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as e:
        logger.warning(f"Ignoring unreadable conversation file {path}: {e}")
        return None

    if not isinstance(raw, dict) or not raw.get("version") or "conversation" not in raw:
        logger.warning(f"Ignoring conversation file {path}: not a conversation envelope")
        return None

    try:
        return conversation_from_dict(raw["conversation"])
    except ValueError as e:
        logger.warning(f"Ignoring conversation file {path}: {e}")
        return None


class ConversationFile:
    """Read, atomically write, and back up the conversation file of one run."""

    def __init__(
        self,
        run_id: str,
        state: StateStore,
        sink: EventSink | None = None,
        context: EventContext | None = None,
    ) -> None:
        self.run_id = run_id
        self.state = state
        self.sink = sink
        self.context = context
        self.path = conversation_path(state.conversations_dir, run_id)

    def empty(self) -> Conversation:
        return create_conversation(
            title=f"convo:{self.run_id}",
            metadata={"run_id": self.run_id, "repo_id": self.state.repo_id},
        )

    def load(self) -> Conversation:
        """Stored conversation, or a fresh empty one when storage is absent or damaged."""
        conversation = read_envelope_conversation(self.path)
        if conversation is None:
            return self.empty()
        return conversation

    async def write(self, conversation: Conversation) -> ConversationSnapshot:
        updated_at = dt_to_str(datetime.now(timezone.utc))
        envelope = ConversationEnvelope(
            run_id=self.run_id,
            updated_at=updated_at,
            conversation=conversation,
        )
        payload = json.dumps(envelope.to_dict(), indent=2, ensure_ascii=False)
        atomic_write_text(self.path, payload, stem=self.run_id)

        digest = digest_text(payload)
        path = str(self.path)

        def _record(data: dict) -> dict:
            return {
                **data,
                "conversation": {
                    "path": path,
                    "digest": digest,
                    "updated_at": updated_at,
                    "version": CONVERSATION_VERSION,
                },
            }

        self.state.update_run_state(self.run_id, _record)
        await emit_step(self.sink, self.context, STEP_SNAPSHOT, "Conversation snapshot saved")

        return ConversationSnapshot(
            conversation=conversation,
            digest=digest,
            updated_at=updated_at,
            path=path,
        )

    def backup(self) -> Path | None:
        if not self.path.is_file():
            return None
        backup_path = self.path.parent / f"{self.run_id}.backup.{int(time.time() * 1000)}.json"
        shutil.copyfile(self.path, backup_path)
        logger.info(f"Backed up conversation for run {self.run_id} to {backup_path}")
        return backup_path

"""ConversationStore: the load/save/append/snapshot/optimize facade for one run."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from pathlib import Path

from .core.conversation import append_messages, serialized_size
from .core.events import STEP_OPTIMIZED, STEP_PRUNED, emit_step
from .core.optimizer import optimize_conversation
from .core.policy import pruning_policy, should_prune
from .core.trimmer import legacy_trim
from .storage.conversation_file import ConversationFile
from .token_counter import create_token_counter
from .types import (
    Conversation,
    ConversationSnapshot,
    ConvoMemoryConfig,
    EventContext,
    EventSink,
    MessageInput,
    OptimizationMetrics,
    OptimizationResult,
    StateStore,
    Summarizer,
)

logger = logging.getLogger(__name__)


class ConversationStore:
    """Persisted conversation of a single run.

    Assumes one writer per run id; nothing here locks the file. Every
    prune/optimize computes its result in memory before anything is
    written, so a failing summarizer leaves the stored file as it was.
    """

    def __init__(
        self,
        run_id: str,
        state: StateStore,
        config: ConvoMemoryConfig,
        summarizer: Summarizer | None = None,
        sink: EventSink | None = None,
        context: EventContext | None = None,
    ) -> None:
        self.run_id = run_id
        self.state = state
        self.config = config
        self.policy = pruning_policy(config)
        self.sink = sink
        self.context = context or (EventContext(run_id=run_id) if sink is not None else None)
        self.token_counter = create_token_counter(config.token_counter)
        self._summarizer = summarizer
        self._file = ConversationFile(run_id, state, sink=self.sink, context=self.context)

    @property
    def path(self) -> Path:
        return self._file.path

    def _get_summarizer(self) -> Summarizer:
        if self._summarizer is None:
            from .core.summarizer import build_summarizer
            self._summarizer = build_summarizer(self.config)
        return self._summarizer

    async def _summarize(
        self,
        snapshot: ConversationSnapshot,
        config: ConvoMemoryConfig,
        sink: EventSink | None = None,
        context: EventContext | None = None,
    ) -> str:
        summarizer = self._get_summarizer()
        return await summarizer(snapshot, config, sink=sink, context=context)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _record_optimization(self, metrics: OptimizationMetrics, backup_path: Path | None) -> None:
        record = {"updated_at": datetime.now(timezone.utc).isoformat()}
        if backup_path is not None:
            record["backup_path"] = str(backup_path)
        record.update(metrics.to_dict())
        self.state.update_run_state(
            self.run_id,
            lambda data: {**data, "conversation_optimization": record},
        )

    def _backup_if_changed(self, result: OptimizationResult) -> Path | None:
        if not result.metrics.changed:
            return None
        backup_path = self._file.backup()
        self._record_optimization(result.metrics, backup_path)
        return backup_path

    async def _run_optimizer(self, conversation: Conversation, force: bool) -> OptimizationResult:
        result = await optimize_conversation(
            conversation,
            self.policy,
            self.config,
            self.run_id,
            summarize=self._summarize,
            force=force,
            sink=self.sink,
            context=self.context,
            token_counter=self.token_counter,
        )
        result.backup_path = self._backup_if_changed(result)
        await emit_step(
            self.sink,
            self.context,
            STEP_OPTIMIZED,
            "Conversation optimized" if result.metrics.changed else "Conversation checked",
        )
        return result

    async def prune(self, conversation: Conversation) -> Conversation:
        """Shrink ``conversation`` if it is over the turn or byte ceiling."""
        turn_count = len(conversation.ids)
        byte_size = serialized_size(conversation)
        if not should_prune(turn_count, byte_size, self.policy):
            logger.debug(f"Run {self.run_id}: {turn_count} turns / {byte_size} bytes, under thresholds")
            return conversation

        if self.policy.optimization.enabled:
            result = await self._run_optimizer(conversation, force=False)
            return result.conversation

        backups: list[Path | None] = []

        async def checkpoint(requested: Conversation) -> ConversationSnapshot:
            # back up the pre-prune file before the checkpoint replaces it
            backups.append(self._file.backup())
            return await self._file.write(requested)

        result = await legacy_trim(
            conversation,
            self.policy,
            self.config,
            summarize=self._summarize,
            checkpoint=checkpoint,
            sink=self.sink,
            context=self.context,
            token_counter=self.token_counter,
        )
        if backups:
            self._record_optimization(result.metrics, backups[0])
        else:
            self._backup_if_changed(result)
        await emit_step(self.sink, self.context, STEP_PRUNED, "Conversation pruned")
        return result.conversation

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def load(self) -> Conversation:
        return self._file.load()

    async def save(self, conversation: Conversation, prune: bool = True) -> ConversationSnapshot:
        nxt = await self.prune(conversation) if prune else conversation
        return await self._file.write(nxt)

    async def append(
        self,
        messages: MessageInput | list[MessageInput],
        prune: bool = True,
    ) -> ConversationSnapshot:
        current = await self.load()
        items = messages if isinstance(messages, list) else [messages]
        return await self.save(append_messages(current, *items), prune=prune)

    async def snapshot(self, conversation: Conversation | None = None) -> ConversationSnapshot:
        """Persist as-is, no pruning."""
        current = conversation if conversation is not None else await self.load()
        return await self._file.write(current)

    async def optimize(self, force: bool = False) -> OptimizationResult:
        """Run the optimizer on the stored conversation, bypassing the trigger check."""
        current = await self.load()
        result = await self._run_optimizer(current, force=force)
        result.snapshot = await self._file.write(result.conversation)
        if result.metrics.changed:
            logger.info(
                f"Optimized run {self.run_id}: {result.metrics.before_messages} -> "
                f"{result.metrics.after_messages} messages, {result.metrics.tokens_saved} tokens saved"
            )
        return result

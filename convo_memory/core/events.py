"""Audit events: envelope construction, best-effort emission, JSONL sink."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from pathlib import Path

from ..types import EventContext, EventSink, RunEvent

logger = logging.getLogger(__name__)

STEP_SNAPSHOT = "ai.conversation.snapshot"
STEP_OPTIMIZED = "ai.conversation.optimized"
STEP_PRUNED = "ai.conversation.pruned"


def create_event(
    type: str,
    source: str,
    level: str,
    context: EventContext,
    payload: dict,
    message: str | None = None,
) -> RunEvent:
    return RunEvent(
        type=type,
        source=source,
        level=level,  # type: ignore[arg-type]
        context=context,
        payload=payload,
        message=message,
    )


async def emit_step(
    sink: EventSink | None,
    context: EventContext | None,
    step_id: str,
    title: str,
) -> None:
    """Emit a succeeded ``run.step`` event. No sink means nothing to do."""
    if sink is None or context is None:
        return
    event = create_event(
        type="run.step",
        source="ai",
        level="info",
        context=context,
        payload={"step_id": step_id, "title": title, "status": "succeeded"},
    )
    try:
        await sink.emit(event)
    except Exception as e:
        logger.warning(f"Audit event {step_id} for run {context.run_id} not delivered: {e}")


class JsonlEventSink:
    """Append events as JSON lines to an audit log file."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    async def emit(self, event: RunEvent) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with self.path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(asdict(event), ensure_ascii=False) + "\n")

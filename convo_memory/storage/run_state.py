"""RunStateStore: per-run JSON metadata records under a state root."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Callable

from ..types import CONVERSATION_VERSION, RunStateEnvelope
from .helpers import atomic_write_text, digest_text

logger = logging.getLogger(__name__)


class RunStateStore:
    """Directory layout and run metadata for one repository.

    ``<root>/runs/<run_id>.json`` holds the run record, conversations and
    audit logs live in sibling directories.
    """

    def __init__(self, root: str | Path, repo_root: str | Path = ".") -> None:
        self.root = Path(root)
        self.repo_root = Path(repo_root).resolve()
        self.repo_id = digest_text(str(self.repo_root))[:16]
        self.runs_dir = self.root / "runs"
        self.conversations_dir = self.root / "conversations"
        self.audit_dir = self.root / "audit"
        self._ensure_dirs()

    def _ensure_dirs(self) -> None:
        for path in (self.runs_dir, self.conversations_dir, self.audit_dir):
            path.mkdir(parents=True, exist_ok=True)

    def _run_path(self, run_id: str) -> Path:
        return self.runs_dir / f"{run_id}.json"

    def write_run_state(self, run_id: str, data: dict) -> str:
        """Atomically replace the run record. Returns the payload digest."""
        envelope = {"version": CONVERSATION_VERSION, "run_id": run_id, "data": data}
        payload = json.dumps(envelope, indent=2, default=str)
        atomic_write_text(self._run_path(run_id), payload, stem=run_id)
        return digest_text(payload)

    def read_run_state(self, run_id: str) -> RunStateEnvelope | None:
        path = self._run_path(run_id)
        if not path.is_file():
            return None
        try:
            raw = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.debug(f"Unreadable run state for {run_id}: {e}")
            return None
        if not isinstance(raw, dict) or not raw.get("run_id") or not isinstance(raw.get("data"), dict):
            return None
        return RunStateEnvelope(
            run_id=raw["run_id"],
            data=raw["data"],
            version=raw.get("version", CONVERSATION_VERSION),
        )

    def update_run_state(self, run_id: str, updater: Callable[[dict], dict]) -> str:
        """Read-modify-write of the run's ``data`` dict."""
        current = self.read_run_state(run_id)
        nxt = updater(dict(current.data) if current else {})
        return self.write_run_state(run_id, nxt)

"""Shared helpers for storage backends."""

from __future__ import annotations

import hashlib
import os
import uuid
from datetime import datetime
from pathlib import Path


def dt_to_str(dt: datetime) -> str:
    return dt.isoformat()


def digest_text(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def atomic_write_text(path: Path, text: str, stem: str | None = None) -> None:
    """Write ``text`` to a temp file beside ``path`` and rename it into place.

    Readers see either the old file or the complete new one.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    temp = path.parent / f"{stem or path.stem}.{uuid.uuid4()}.tmp"
    try:
        temp.write_text(text, encoding="utf-8")
        os.replace(temp, path)
    except BaseException:
        temp.unlink(missing_ok=True)
        raise

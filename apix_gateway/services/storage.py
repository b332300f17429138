"""Append-only file store backing the storage extension service."""

from __future__ import annotations

import os
import tempfile
import threading
from datetime import datetime, timezone
from pathlib import Path


def default_storage_path() -> Path:
    return Path(os.getenv("TMPDIR") or tempfile.gettempdir()) / "apix_poc.storage.out"


class FileStore:
    """Write every payload it receives to a single file, one entry per line."""

    def __init__(self, path: str | Path | None = None) -> None:
        self.path = Path(path) if path else default_storage_path()
        self._lock = threading.Lock()

    def append(self, payload: bytes | None) -> None:
        """Append ``payload``; raises :class:`OSError` when the write fails."""

        text = (payload or b"").decode("utf-8", errors="replace")
        entry = f"\n{datetime.now(timezone.utc).isoformat()} - {text}"
        with self._lock:
            with self.path.open("a", encoding="utf-8") as handle:
                handle.write(entry)

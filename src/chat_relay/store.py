"""Whole-document JSON store for the conversation transcript (atomic writes)."""
from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .models import Message, Transcript

logger = logging.getLogger(__name__)


class StorageError(RuntimeError):
    """Raised when the transcript document cannot be read or written."""


# -----------------------------
# Helpers
# -----------------------------
def _atomic_write_text(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = tempfile.NamedTemporaryFile("w", encoding="utf-8", delete=False, dir=str(path.parent))
    try:
        with tmp:
            tmp.write(text)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.replace(tmp.name, path)
    except OSError:
        os.unlink(tmp.name)
        raise


def _read_json(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def _parse_transcript(raw: Any) -> Transcript:
    if not isinstance(raw, list):
        raise ValueError(f"expected a JSON array, got {type(raw).__name__}")
    return [Message.model_validate(item) for item in raw]


# -----------------------------
# TranscriptStore
# -----------------------------
class TranscriptStore:
    """Single JSON document holding the transcript as an array of messages.

    Layout:
        data/
          messages.json          # list[{id, role, text, timestamp}]
          messages.corrupt.json  # previous document, if it ever failed to parse

    ``load`` bootstraps an empty document when none exists. ``save`` replaces
    the whole document; it never appends.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.RLock()

    def load(self) -> Transcript:
        """Return the full persisted transcript, creating an empty one if missing."""
        with self._lock:
            if not self.path.exists():
                logger.info("No transcript at %s; initializing empty document", self.path)
                self.save([])
                return []
            try:
                raw = _read_json(self.path)
            except json.JSONDecodeError as e:
                return self._quarantine(e)
            except OSError as e:
                raise StorageError(f"Failed to read {self.path}: {e}") from e

            try:
                return _parse_transcript(raw)
            except (ValueError, ValidationError) as e:
                return self._quarantine(e)

    def save(self, transcript: Transcript) -> None:
        """Replace the durable document with ``transcript``."""
        payload = [m.model_dump() for m in transcript]
        text = json.dumps(payload, ensure_ascii=False, indent=2)
        with self._lock:
            try:
                _atomic_write_text(self.path, text)
            except OSError as e:
                raise StorageError(f"Failed to write {self.path}: {e}") from e

    # --------- internals ----------
    def _quarantine(self, err: Exception) -> Transcript:
        """Move an unreadable document aside and start from an empty transcript."""
        bad = self.path.with_suffix(".corrupt.json")
        logger.error("Transcript %s is corrupt (%s); moving it to %s", self.path, err, bad)
        try:
            os.replace(self.path, bad)
        except OSError as e:
            raise StorageError(f"Failed to move corrupt transcript {self.path}: {e}") from e
        return []

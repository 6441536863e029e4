"""Transcript records and the id/clock sequence that stamps them."""
from __future__ import annotations

import threading
import time
from datetime import datetime, timezone
from typing import Callable, List, Literal, Optional

from pydantic import BaseModel, Field

Role = Literal["user", "assistant"]


class Message(BaseModel):
    """One stored transcript entry."""

    id: int
    role: Role
    text: str = Field(..., min_length=1)
    timestamp: str


class Turn(BaseModel):
    """One role-tagged unit sent to the completion provider."""

    role: Literal["system", "user", "assistant"]
    content: str


Transcript = List[Message]


def utc_timestamp(now: Optional[datetime] = None) -> str:
    """Return a sortable ISO-8601 UTC timestamp with millisecond precision."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class IdSequence:
    """Time-derived message ids that never repeat within a process.

    ``next()`` returns ``max(now_ms, last + 1)``, so two messages created in
    the same millisecond still get distinct, increasing ids.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._last = 0
        self._lock = threading.Lock()

    def observe(self, value: int) -> None:
        """Advance past an id that already exists (e.g. from a loaded transcript)."""
        with self._lock:
            self._last = max(self._last, int(value))

    def next(self) -> int:
        with self._lock:
            self._last = max(int(self._clock() * 1000), self._last + 1)
            return self._last


class MessageFactory:
    """Builds messages whose id and timestamp respect the transcript ordering."""

    def __init__(
        self,
        ids: Optional[IdSequence] = None,
        now: Callable[[], str] = utc_timestamp,
    ) -> None:
        self.ids = ids or IdSequence()
        self._now = now

    def create(self, role: Role, text: str, transcript: Transcript) -> Message:
        if transcript:
            self.ids.observe(max(m.id for m in transcript))
        timestamp = self._now()
        # Clock may step backwards; never go below the last stored timestamp.
        if transcript and timestamp < transcript[-1].timestamp:
            timestamp = transcript[-1].timestamp
        return Message(id=self.ids.next(), role=role, text=text, timestamp=timestamp)

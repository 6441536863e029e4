"""Turn orchestration: validate, persist the user turn, complete, persist the reply."""
from __future__ import annotations

import contextlib
import logging
import threading
import time
from typing import Any, Callable, Optional

from .context import ContextBuilder
from .fallback import synthesize
from .models import MessageFactory, Transcript
from .provider import ProviderError
from .store import StorageError, TranscriptStore

logger = logging.getLogger(__name__)


class TurnRejected(ValueError):
    """The request was refused before any message was created."""


def clean_text(text: Any) -> str:
    """Return the trimmed message text or raise :class:`TurnRejected`."""
    if not isinstance(text, str) or not text.strip():
        raise TurnRejected("Message text is required")
    try:
        text.encode("utf-8")
    except UnicodeEncodeError:
        # Lone surrogates are valid JSON escapes but not storable text
        raise TurnRejected("Message text must be valid Unicode")
    return text.strip()


class TurnOrchestrator:
    """Runs one chat turn end to end and always yields an assistant reply.

    ``provider`` is anything with ``complete(turns) -> str`` that raises
    :class:`ProviderError` on failure. Storage failures are logged and the
    turn continues on the in-memory transcript, so the returned transcript may
    be ahead of what is on disk.

    With ``serialize_turns`` the whole load-mutate-save cycle of a turn runs
    under one lock, keeping concurrent turns from overwriting each other.
    """

    def __init__(
        self,
        store: TranscriptStore,
        provider: Any,
        context: Optional[ContextBuilder] = None,
        *,
        fallback: Callable[[str], str] = synthesize,
        messages: Optional[MessageFactory] = None,
        max_retries: int = 0,
        retry_backoff: float = 0.5,
        serialize_turns: bool = True,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.store = store
        self.provider = provider
        self.context = context or ContextBuilder()
        self.fallback = fallback
        self.messages = messages or MessageFactory()
        self.max_retries = max_retries
        self.retry_backoff = retry_backoff
        self.serialize_turns = serialize_turns
        self._sleep = sleep
        self._turn_lock = threading.Lock()

    # --------- public API ----------
    def history(self) -> Transcript:
        """Return the persisted transcript (empty if the store is unreadable)."""
        return self._load()

    def send(self, text: Any) -> Transcript:
        """Append a user message and its assistant reply; return the transcript."""
        user_text = clean_text(text)

        guard = self._turn_lock if self.serialize_turns else contextlib.nullcontext()
        with guard:
            transcript = self._load()

            user_msg = self.messages.create("user", user_text, transcript)
            transcript.append(user_msg)
            self._save(transcript)

            turns = self.context.build(transcript)
            reply = self._complete(turns, user_text)

            assistant_msg = self.messages.create("assistant", reply, transcript)
            transcript.append(assistant_msg)
            self._save(transcript)

        logger.info("Turn stored: user=%s assistant=%s (%d messages)", user_msg.id, assistant_msg.id, len(transcript))
        return transcript

    # --------- internals ----------
    def _complete(self, turns, user_text: str) -> str:
        attempts = self.max_retries + 1
        last_err: ProviderError | None = None
        for attempt in range(1, attempts + 1):
            try:
                return self.provider.complete(turns)
            except ProviderError as e:
                last_err = e
                logger.warning(
                    "Provider attempt %d/%d failed: %s (status=%s body=%s)",
                    attempt, attempts, e, e.status_code, e.body,
                )
                if attempt < attempts:
                    delay = self.retry_backoff * attempt
                    self._sleep(delay)
        logger.error("Provider unavailable, using fallback reply: %s", last_err)
        return self.fallback(user_text)

    def _load(self) -> Transcript:
        try:
            return self.store.load()
        except StorageError:
            logger.exception("Transcript load failed; continuing with an empty transcript")
            return []

    def _save(self, transcript: Transcript) -> None:
        try:
            self.store.save(transcript)
        except StorageError:
            logger.exception("Transcript save failed; in-memory transcript is ahead of disk")

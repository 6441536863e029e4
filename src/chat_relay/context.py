"""Maps the stored transcript onto the turn sequence the provider expects."""
from __future__ import annotations

from typing import List, Optional

from .models import Transcript, Turn

DEFAULT_SYSTEM_PROMPT = "You are a concise, friendly AI assistant in a demo chat app."


class ContextBuilder:
    """Prepends the system directive and forwards the transcript as turns.

    Parameters
    ----------
    system_prompt : str
        Fixed directive sent as the first turn of every request.
    max_messages : int | None
        Keep only the most recent N stored messages. ``None`` forwards the
        whole history.
    """

    def __init__(self, system_prompt: str = DEFAULT_SYSTEM_PROMPT, max_messages: Optional[int] = None) -> None:
        if max_messages is not None and max_messages < 1:
            raise ValueError("max_messages must be >= 1 or None")
        self.system_prompt = system_prompt.strip()
        self.max_messages = max_messages

    def build(self, transcript: Transcript) -> List[Turn]:
        history = transcript
        if self.max_messages is not None:
            history = transcript[-self.max_messages:]

        turns: List[Turn] = [Turn(role="system", content=self.system_prompt)]
        for m in history:
            role = "user" if m.role == "user" else "assistant"
            turns.append(Turn(role=role, content=m.text))
        return turns

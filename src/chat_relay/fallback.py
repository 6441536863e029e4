"""Deterministic stand-in reply used when the completion provider fails."""
from __future__ import annotations

FALLBACK_TEMPLATE = (
    "I'm a demo AI running in offline mode. The external AI service is currently "
    'unavailable, but I received your message: "{text}". I can\'t access live '
    "external data like real-time weather, but I can still respond and keep the "
    "conversation going."
)


def synthesize(user_text: str) -> str:
    """Acknowledge ``user_text`` verbatim; depends on nothing else."""
    return FALLBACK_TEMPLATE.format(text=user_text)

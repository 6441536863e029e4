"""Client for an OpenAI-compatible chat-completions endpoint."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Sequence

import httpx

from .models import Turn

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4.1-mini"
DEFAULT_BASE_URL = "https://api.openai.com/v1"
EMPTY_REPLY = "I'm sorry, I couldn't generate a response."


class ProviderError(RuntimeError):
    """A completion call failed; carries the upstream status/body when known."""

    def __init__(self, message: str, *, status_code: Optional[int] = None, body: Any = None) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


def _response_body(r: httpx.Response) -> Any:
    try:
        return r.json()
    except ValueError:
        return r.text


def _first_choice_text(data: Any) -> Optional[str]:
    """Pull ``choices[0].message.content`` out of a completion payload."""
    if not isinstance(data, dict):
        raise ProviderError("Malformed completion response: expected a JSON object", body=data)
    choices = data.get("choices")
    if choices is None:
        return None
    if not isinstance(choices, list):
        raise ProviderError("Malformed completion response: 'choices' is not a list", body=data)
    if not choices:
        return None
    first = choices[0]
    message = first.get("message") if isinstance(first, dict) else None
    content = message.get("content") if isinstance(message, dict) else None
    return content if isinstance(content, str) else None


class CompletionClient:
    """One synchronous completion request per call, no internal retries.

    Parameters
    ----------
    api_key : str | None
        Bearer credential. A missing key fails the call without any network I/O.
    model : str
        Model identifier sent with every request.
    base_url : str
        API root; ``/chat/completions`` is appended.
    timeout : float | None
        Seconds before the request is abandoned. ``None`` waits indefinitely.
    transport : httpx.BaseTransport | None
        Optional transport override (e.g. ``httpx.MockTransport`` in tests).
    """

    def __init__(
        self,
        api_key: Optional[str],
        *,
        model: str = DEFAULT_MODEL,
        base_url: str = DEFAULT_BASE_URL,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.api_key = (api_key or "").strip()
        self.model = model
        self.url = base_url.rstrip("/") + "/chat/completions"
        self.timeout = timeout
        self._transport = transport

    def complete(self, turns: Sequence[Turn]) -> str:
        """Return the trimmed text of the first candidate reply."""
        if not self.api_key:
            raise ProviderError("No provider credential configured")
        if not self.api_key.isascii():
            # HTTP headers are ASCII; a pasted smart quote would fail inside httpx
            raise ProviderError("Provider credential contains non-ASCII characters")

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": [t.model_dump() for t in turns],
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }

        logger.info("Calling %s with model=%s turns=%d", self.url, self.model, len(turns))
        try:
            with httpx.Client(timeout=self.timeout, headers=headers, transport=self._transport) as client:
                r = client.post(self.url, json=payload)
        except (httpx.HTTPError, httpx.InvalidURL, UnicodeEncodeError) as e:
            raise ProviderError(f"Request to completion provider failed: {e}") from e

        if not r.is_success:
            raise ProviderError(
                f"Completion provider returned HTTP {r.status_code}",
                status_code=r.status_code,
                body=_response_body(r),
            )

        try:
            data = r.json()
        except ValueError as e:
            raise ProviderError(
                "Completion provider returned a non-JSON body",
                status_code=r.status_code,
                body=r.text,
            ) from e

        try:
            text = (_first_choice_text(data) or "").strip()
        except ProviderError as e:
            e.status_code = r.status_code
            raise
        return text or EMPTY_REPLY

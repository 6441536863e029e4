"""Pytest configuration and shared fixtures."""
from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import List, Optional

import pytest

# Ensure src/ is on the import path (for local imports without installing as package)
SRC_PATH = Path(__file__).resolve().parent.parent / "src"
if str(SRC_PATH) not in sys.path:
    sys.path.insert(0, str(SRC_PATH))

from chat_relay.provider import ProviderError  # noqa: E402


@pytest.fixture(scope="function")
def tmp_data_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for the transcript document during tests."""
    d = tmp_path / "data"
    d.mkdir(parents=True, exist_ok=True)
    return d


@pytest.fixture(scope="function")
def clean_env(monkeypatch: pytest.MonkeyPatch):
    """Ensure tests run with a clean environment (no leftover vars)."""
    for var in ["CHAT_RELAY_CONFIG", "OPENAI_API_KEY", "PORT"]:
        monkeypatch.delenv(var, raising=False)
    for var in list(os.environ):
        if var.startswith("CHAT_RELAY__"):
            monkeypatch.delenv(var, raising=False)
    yield


class EchoProvider:
    """Spy provider that records the turns it received and replies with a fixed text."""

    def __init__(self, reply: str = "ok"):
        self.reply = reply
        self.calls: List[list] = []

    def complete(self, turns) -> str:
        self.calls.append(list(turns))
        return self.reply


class FailingProvider:
    """Provider that always fails, like an exhausted quota."""

    def __init__(self, status_code: Optional[int] = 429):
        self.status_code = status_code
        self.calls = 0

    def complete(self, turns) -> str:
        self.calls += 1
        raise ProviderError("quota exceeded", status_code=self.status_code, body={"error": "insufficient_quota"})


@pytest.fixture
def echo_provider() -> EchoProvider:
    return EchoProvider()


@pytest.fixture
def failing_provider() -> FailingProvider:
    return FailingProvider()

"""Configuration loading utilities for the chat relay.

This module handles layered configuration:
1. Explicit path argument (highest precedence)
2. Environment variable CHAT_RELAY_CONFIG
3. Fallback to "config/default.yaml"

It also supports optional overrides from environment variables with prefix
``CHAT_RELAY__`` (e.g., CHAT_RELAY__PROVIDER__MODEL=gpt-4o). A ``.env`` file
in the working directory is read first, without replacing variables that are
already set.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from dotenv import load_dotenv

from .context import DEFAULT_SYSTEM_PROMPT
from .provider import DEFAULT_BASE_URL, DEFAULT_MODEL

logger = logging.getLogger(__name__)

DEFAULT_PORT = 5000


def _default_config() -> Dict[str, Any]:
    return {
        "server": {"host": "127.0.0.1", "cors_origins": ["*"], "static_dir": "client/dist"},
        "store": {"path": "data/messages.json", "serialize_turns": True},
        "context": {"system_prompt": DEFAULT_SYSTEM_PROMPT, "max_messages": None},
        "provider": {
            "api_key_env": "OPENAI_API_KEY",
            "model": DEFAULT_MODEL,
            "base_url": DEFAULT_BASE_URL,
            "timeout": None,
            "max_retries": 0,
            "retry_backoff": 0.5,
        },
        "logging": {"level": "INFO"},
    }


def _apply_env_overrides(cfg: Dict[str, Any]) -> Dict[str, Any]:
    """Apply environment variable overrides with prefix CHAT_RELAY__."""
    prefix = "CHAT_RELAY__"
    for key, value in os.environ.items():
        if not key.startswith(prefix):
            continue
        # e.g., CHAT_RELAY__STORE__PATH -> cfg["store"]["path"]
        parts = key[len(prefix):].lower().split("__")
        sub = cfg
        for p in parts[:-1]:
            if p not in sub or not isinstance(sub[p], dict):
                sub[p] = {}
            sub = sub[p]
        leaf = parts[-1]
        # Attempt to parse simple types (bool, int, float)
        if value.lower() in {"true", "false"}:
            sub[leaf] = value.lower() == "true"
        else:
            try:
                if "." in value:
                    sub[leaf] = float(value)
                else:
                    sub[leaf] = int(value)
            except ValueError:
                sub[leaf] = value
    return cfg


def _merge(base: Dict[str, Any], extra: Dict[str, Any]) -> Dict[str, Any]:
    for k, v in extra.items():
        if isinstance(v, dict) and isinstance(base.get(k), dict):
            _merge(base[k], v)
        else:
            base[k] = v
    return base


def load_config(path: str | None = None) -> Dict[str, Any]:
    """Load YAML configuration for the chat relay.

    Parameters
    ----------
    path : str | None
        Optional path to a configuration file. If not provided, the
        environment variable ``CHAT_RELAY_CONFIG`` is consulted. As a
        last resort ``config/default.yaml`` is used.

    Returns
    -------
    Dict[str, Any]
        Built-in defaults, overlaid with the file and then with environment
        overrides.
    """
    env_file = Path.cwd() / ".env"
    if env_file.exists():
        load_dotenv(env_file, override=False)

    # Resolve path precedence
    if path is None:
        path = os.environ.get("CHAT_RELAY_CONFIG", "config/default.yaml")

    cfg = _default_config()
    path_obj = Path(path)
    if not path_obj.exists():
        logger.warning("Config file not found at %s. Using defaults.", path_obj)
        return _apply_env_overrides(cfg)

    with path_obj.open("r", encoding="utf-8") as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise RuntimeError(f"Failed to parse config file {path_obj}: {e}")

    if not isinstance(data, dict):
        raise RuntimeError(f"Invalid config format in {path_obj}, expected dict.")

    return _apply_env_overrides(_merge(cfg, data))


def _optional_float(v: Any) -> Optional[float]:
    return None if v is None or v == "" else float(v)


def _optional_int(v: Any) -> Optional[int]:
    return None if v is None or v == "" else int(v)


@dataclass
class Settings:
    """Resolved process settings, built once at startup."""

    host: str = "127.0.0.1"
    port: int = DEFAULT_PORT
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    static_dir: str = "client/dist"
    store_path: str = "data/messages.json"
    serialize_turns: bool = True
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    max_context_messages: Optional[int] = None
    api_key: Optional[str] = None
    model: str = DEFAULT_MODEL
    base_url: str = DEFAULT_BASE_URL
    timeout: Optional[float] = None
    max_retries: int = 0
    retry_backoff: float = 0.5
    log_level: str = "INFO"

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "Settings":
        server = cfg.get("server", {}) or {}
        store = cfg.get("store", {}) or {}
        ctx = cfg.get("context", {}) or {}
        prov = cfg.get("provider", {}) or {}
        log_cfg = cfg.get("logging", {}) or {}

        # Credential: explicit key wins, else the named environment variable
        api_key = prov.get("api_key") or os.environ.get(str(prov.get("api_key_env") or "OPENAI_API_KEY"))
        port = server.get("port") or os.environ.get("PORT") or DEFAULT_PORT

        return cls(
            host=str(server.get("host", "127.0.0.1")),
            port=int(port),
            cors_origins=list(server.get("cors_origins") or ["*"]),
            static_dir=str(server.get("static_dir", "client/dist")),
            store_path=str(store.get("path", "data/messages.json")),
            serialize_turns=bool(store.get("serialize_turns", True)),
            system_prompt=str(ctx.get("system_prompt") or DEFAULT_SYSTEM_PROMPT).strip(),
            max_context_messages=_optional_int(ctx.get("max_messages")),
            # Env overrides may coerce an all-digit key to int
            api_key=str(api_key) if api_key else None,
            model=str(prov.get("model") or DEFAULT_MODEL),
            base_url=str(prov.get("base_url") or DEFAULT_BASE_URL),
            timeout=_optional_float(prov.get("timeout")),
            max_retries=int(prov.get("max_retries", 0)),
            retry_backoff=float(prov.get("retry_backoff", 0.5)),
            log_level=str(log_cfg.get("level", "INFO")).upper(),
        )


def load_settings(path: str | None = None) -> Settings:
    return Settings.from_config(load_config(path))

"""FastAPI application exposing the chat transcript and turn endpoints."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import FileResponse, JSONResponse
from pydantic import BaseModel

from .config import Settings, load_settings
from .context import ContextBuilder
from .models import Message, utc_timestamp
from .orchestrator import TurnOrchestrator, TurnRejected
from .provider import CompletionClient
from .store import TranscriptStore

logger = logging.getLogger(__name__)


# -----------------------------
# Pydantic request
# -----------------------------
class SendRequest(BaseModel):
    # Left untyped so blank/missing/non-string text is rejected by the orchestrator
    text: Any = None


# -----------------------------
# Utilities
# -----------------------------
def _make_orchestrator(
    settings: Settings,
    provider: Any = None,
    store: Optional[TranscriptStore] = None,
) -> TurnOrchestrator:
    provider = provider or CompletionClient(
        settings.api_key,
        model=settings.model,
        base_url=settings.base_url,
        timeout=settings.timeout,
    )
    store = store or TranscriptStore(settings.store_path)
    context = ContextBuilder(settings.system_prompt, max_messages=settings.max_context_messages)
    return TurnOrchestrator(
        store,
        provider,
        context,
        max_retries=settings.max_retries,
        retry_backoff=settings.retry_backoff,
        serialize_turns=settings.serialize_turns,
    )


def _static_file(root: Path, rel_path: str) -> Optional[Path]:
    """Resolve ``rel_path`` under ``root``; None if missing or outside it."""
    candidate = (root / rel_path).resolve()
    try:
        candidate.relative_to(root)
    except ValueError:
        return None
    return candidate if candidate.is_file() else None


# -----------------------------
# App factory
# -----------------------------
def create_app(
    config_path: Optional[str] = None,
    provider: Any = None,
    store: Optional[TranscriptStore] = None,
    orchestrator: Optional[TurnOrchestrator] = None,
    settings: Optional[Settings] = None,
) -> FastAPI:
    settings = settings or load_settings(config_path)
    orchestrator = orchestrator or _make_orchestrator(settings, provider=provider, store=store)
    static_root = Path(settings.static_dir).resolve()
    logger.info(
        "Chat relay using store=%s model=%s serialize_turns=%s",
        orchestrator.store.path, settings.model, settings.serialize_turns,
    )

    app = FastAPI(title="Chat Relay", version="0.1.0")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins or ["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.state.orchestrator = orchestrator

    @app.exception_handler(TurnRejected)
    async def turn_rejected(_: Request, exc: TurnRejected) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": str(exc)})

    @app.exception_handler(RequestValidationError)
    async def bad_request(_: Request, exc: RequestValidationError) -> JSONResponse:
        return JSONResponse(status_code=400, content={"error": "Message text is required"})

    @app.get("/api/health")
    def health() -> Dict[str, Any]:
        return {"status": "ok", "time": utc_timestamp()}

    @app.get("/api/messages", response_model=List[Message])
    def messages() -> List[Message]:
        return orchestrator.history()

    @app.post("/api/send", response_model=List[Message])
    def send(req: SendRequest) -> List[Message]:
        return orchestrator.send(req.text)

    @app.api_route("/api/{rest:path}", methods=["GET", "POST", "PUT", "PATCH", "DELETE"])
    def api_not_found(rest: str) -> JSONResponse:
        return JSONResponse(status_code=404, content={"error": "API route not found"})

    # UI bundle with single-page-app fallback to index.html
    @app.get("/{full_path:path}", include_in_schema=False)
    def ui(full_path: str):
        if full_path == "api":
            return JSONResponse(status_code=404, content={"error": "API route not found"})
        index = static_root / "index.html"
        if not index.is_file():
            return JSONResponse(status_code=404, content={"error": "Not found"})
        target = _static_file(static_root, full_path) if full_path else None
        return FileResponse(str(target or index))

    return app

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from dataclasses import asdict
from typing import Any, Optional

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, ConfigDict, Field

from notescope.app.autocomplete import (
    BlockSuggestion,
    ContentSuggestion,
    HeadingSuggestion,
    Position,
    Suggestion,
    detect_trigger,
    insertion_text,
    query_is_valid,
)
from notescope.app.search import SearchOptions, SearchResult
from .state import VaultState, open_vault, vault_state

logger = logging.getLogger(__name__)

_STARTUP_VAULT: Optional[str] = None
_SCHEDULE_SETTINGS = {"cache_update_interval", "auto_update_index"}


def set_startup_vault(path: Optional[str]) -> None:
    """Vault to open when the app starts (also read from NOTESCOPE_VAULT)."""
    global _STARTUP_VAULT
    _STARTUP_VAULT = path or None


class VaultSelectPayload(BaseModel):
    path: str


class AutocompletePayload(BaseModel):
    text: str = Field(description="Line text preceding the cursor")
    line: int = 0
    ch: Optional[int] = None


class SettingsPatchPayload(BaseModel):
    """Partial settings update. Unknown keys are a 422; bad values are dropped by the store."""

    model_config = ConfigDict(extra="forbid")

    file_name_weight: Any = None
    directory_weight: Any = None
    tag_weight: Any = None
    heading1_weight: Any = None
    heading2_weight: Any = None
    heading3_weight: Any = None
    heading4_weight: Any = None
    content_weight: Any = None
    quote_weight: Any = None
    excluded_folders: Any = None
    cache_update_interval: Any = None
    auto_update_index: Any = None
    autocomplete_enabled: Any = None
    autocomplete_folders: Any = None
    min_chinese_length: Any = None
    min_english_length: Any = None
    write_block_anchors: Any = None


def _get_state() -> VaultState:
    try:
        return vault_state.get()
    except RuntimeError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc


async def _select_vault(path: str) -> VaultState:
    state = vault_state.set_vault(open_vault(path))
    await state.index.rebuild()
    state.scheduler.start()
    return state


def _serialize_result(result: SearchResult) -> dict:
    doc = result.document
    return {
        "path": doc.path,
        "file_name": doc.file_name,
        "directory": doc.directory,
        "score": result.score,
        "line": result.first_line(),
        "matches": [
            {"type": match.type.value, "text": match.matched_text, "line": match.line}
            for match in result.matches
        ],
    }


def _suggestion_kind(suggestion: Suggestion) -> str:
    if isinstance(suggestion, ContentSuggestion):
        return "content"
    if isinstance(suggestion, HeadingSuggestion):
        return "heading"
    if isinstance(suggestion, BlockSuggestion):
        return "block"
    raise TypeError(f"Unknown suggestion type: {type(suggestion).__name__}")


def _serialize_suggestion(suggestion: Suggestion) -> dict:
    payload = asdict(suggestion)
    payload["kind"] = _suggestion_kind(suggestion)
    payload["insert_text"] = insertion_text(suggestion)
    return payload


@asynccontextmanager
async def _lifespan(_app: FastAPI):
    startup = _STARTUP_VAULT or os.getenv("NOTESCOPE_VAULT")
    if startup:
        try:
            await _select_vault(startup)
        except ValueError as exc:
            logger.error("Could not open startup vault: %s", exc)
    yield
    vault_state.clear()


app = FastAPI(title="notescope", version="0.1.0", lifespan=_lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origin_regex=r"^https?://(127\.0\.0\.1|localhost)(:\d+)?$",
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_app() -> FastAPI:
    return app


@app.get("/api/health")
async def health() -> dict:
    return {"ok": True}


@app.post("/api/vault/select")
async def select_vault(payload: VaultSelectPayload) -> dict:
    try:
        state = await _select_vault(payload.path)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return {"root": str(state.root), "documents": len(state.index)}


@app.post("/api/index/rebuild")
async def rebuild_index() -> dict:
    state = _get_state()
    await state.index.rebuild()
    return {"documents": len(state.index), "indexed_at": state.index.last_index_time}


@app.get("/api/index/status")
async def index_status() -> dict:
    state = _get_state()
    return {
        "root": str(state.root),
        "documents": len(state.index),
        "indexed_at": state.index.last_index_time,
        "auto_update": state.scheduler.running,
        "notifications": list(state.notifications),
    }


@app.get("/api/search")
async def api_search(
    q: Optional[str] = None,
    file_name: bool = True,
    directory: bool = True,
    tags: bool = True,
    headings: bool = True,
    content: bool = True,
    quotes: bool = True,
    limit: int = 50,
) -> dict:
    """Weighted search across the indexed vault."""
    state = _get_state()
    logger.debug("GET /api/search q=%r limit=%d", q, limit)
    options = SearchOptions(
        file_name=file_name,
        directory=directory,
        tags=tags,
        headings=headings,
        content=content,
        quotes=quotes,
    )
    results = state.search.search(q or "", options)
    return {"total": len(results), "results": [_serialize_result(r) for r in results[: max(0, limit)]]}


@app.post("/api/autocomplete")
async def api_autocomplete(payload: AutocompletePayload) -> dict:
    state = _get_state()
    settings = state.store.settings
    if not settings.autocomplete_enabled:
        return {"trigger": None, "qualified": False, "suggestions": []}
    ch = len(payload.text) if payload.ch is None else payload.ch
    cursor = Position(payload.line, ch)
    event = detect_trigger(payload.text[:ch], cursor)
    if event is None:
        return {"trigger": None, "qualified": False, "suggestions": []}
    trigger = {
        "kind": event.kind.value,
        "query": event.query,
        "span_text": event.span_text,
        "start": asdict(event.start),
        "cursor": asdict(event.cursor),
    }
    if not query_is_valid(event.query, settings):
        return {"trigger": trigger, "qualified": False, "suggestions": []}
    suggestions = await state.autocomplete.search(event.kind, event.query)
    return {
        "trigger": trigger,
        "qualified": True,
        "suggestions": [_serialize_suggestion(s) for s in suggestions],
    }


@app.get("/api/settings")
async def get_settings() -> dict:
    return {"settings": _get_state().store.settings.to_dict()}


@app.patch("/api/settings")
async def patch_settings(payload: SettingsPatchPayload) -> dict:
    state = _get_state()
    accepted = state.store.update(**payload.model_dump(exclude_unset=True))
    if _SCHEDULE_SETTINGS & accepted.keys():
        state.scheduler.restart()
    return {"settings": state.store.settings.to_dict(), "accepted": sorted(accepted)}

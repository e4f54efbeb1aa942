"""FastAPI application exposing the SermonFinder corpus over HTTP."""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from dataclasses import asdict
from pathlib import Path
from typing import Any, List, Literal, Optional

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from sermonfinder import __version__
from sermonfinder.chat import (
    ChatClient,
    ChatError,
    ChatTurn,
    CredentialsMissingError,
    CredentialStore,
    InvalidCredentialsError,
    RateLimitedError,
    ServiceError,
    answer,
)
from sermonfinder.config import AppConfig
from sermonfinder.context import AppContext
from sermonfinder.index.indexer import IndexingInProgressError
from sermonfinder.index.search import MAX_QUERY_LENGTH
from sermonfinder.models import Document

LOGGER = logging.getLogger(__name__)

SUMMARY_CHARS = 200

app = FastAPI(title="SermonFinder API", version=__version__)
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

_config = AppConfig()
_context: AppContext | None = None
_context_lock = threading.Lock()
_chat_client: Optional[ChatClient] = None
_credentials: Optional[CredentialStore] = None


class SearchPayload(BaseModel):
    query: str
    limit: int | None = None
    reference: bool = False


class IndexPayload(BaseModel):
    folder: str | None = None
    force: bool = False


class ChatTurnPayload(BaseModel):
    role: Literal["user", "assistant"]
    content: str


class ChatPayload(BaseModel):
    message: str
    history: List[ChatTurnPayload] = []


def configure(config: AppConfig) -> None:
    """Use ``config`` for the context created on the next request."""
    global _config
    reset_context()
    _config = config


def get_context() -> AppContext:
    global _context
    with _context_lock:
        if _context is None:
            _context = AppContext.create(_config, base_dir=Path.cwd())
        return _context


def reset_context() -> None:
    global _context
    with _context_lock:
        if _context is not None:
            _context.close()
        _context = None


def configure_chat(
    client: Optional[ChatClient], credentials: Optional[CredentialStore] = None
) -> None:
    """Install the LLM client (and its credential store) used by ``POST /chat``."""
    global _chat_client, _credentials
    _chat_client = client
    _credentials = credentials


def get_chat_client() -> ChatClient:
    if _chat_client is None:
        raise HTTPException(status_code=503, detail="Chat is not configured")
    return _chat_client


def get_credentials() -> Optional[CredentialStore]:
    return _credentials


def _summary(document: Document) -> dict[str, Any]:
    data = asdict(document)
    content = data.pop("content")
    data["excerpt"] = content[:SUMMARY_CHARS]
    return data


def _checked_query(payload: SearchPayload) -> str:
    query = payload.query.strip()
    if not query:
        raise HTTPException(status_code=400, detail="Empty query")
    if len(query) > MAX_QUERY_LENGTH:
        raise HTTPException(
            status_code=400, detail=f"Query too long (max {MAX_QUERY_LENGTH} characters)"
        )
    return query


def _resolve_folder(raw: str) -> Path:
    clean = raw.strip().replace("\r", "").replace("\n", "")
    if not clean:
        raise HTTPException(status_code=400, detail="No folder provided")
    if "\0" in clean:
        raise HTTPException(status_code=400, detail="Invalid path: contains null byte")
    folder = Path(os.path.realpath(os.path.expanduser(clean)))
    if not folder.exists():
        raise HTTPException(status_code=404, detail=f"Folder not found: {clean}")
    if not folder.is_dir():
        raise HTTPException(status_code=400, detail=f"Path must be a directory: {clean}")
    return folder


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO, format="[%(levelname)s] %(message)s")
    try:
        await asyncio.to_thread(get_context().startup)
    except Exception as exc:  # pragma: no cover
        LOGGER.exception("Watcher auto-start failed: %s", exc)


@app.on_event("shutdown")
async def shutdown_event() -> None:
    reset_context()


# ------------------------------------------------------------------- search


@app.post("/search")
async def search_full_text(
    payload: SearchPayload, ctx: AppContext = Depends(get_context)
) -> dict[str, List[dict[str, Any]]]:
    query = _checked_query(payload)
    if payload.reference:
        documents = await asyncio.to_thread(ctx.searcher.by_reference, query)
        return {"results": [{"document": _summary(doc)} for doc in documents]}

    hits = await asyncio.to_thread(ctx.searcher.full_text, query, limit=payload.limit)
    return {
        "results": [
            {"document": _summary(hit.document), "rank": hit.rank, "snippet": hit.snippet}
            for hit in hits
        ]
    }


@app.post("/search/semantic")
async def search_semantic(
    payload: SearchPayload, ctx: AppContext = Depends(get_context)
) -> dict[str, List[dict[str, Any]]]:
    query = _checked_query(payload)
    hits = await asyncio.to_thread(ctx.searcher.semantic, query, limit=payload.limit)
    return {
        "results": [
            {
                "document": _summary(hit.document),
                "distance": hit.distance,
                "score": 1 - hit.distance,
            }
            for hit in hits
        ]
    }


@app.post("/search/hybrid")
async def search_hybrid(
    payload: SearchPayload, ctx: AppContext = Depends(get_context)
) -> dict[str, List[dict[str, Any]]]:
    query = _checked_query(payload)
    results = await asyncio.to_thread(ctx.searcher.hybrid, query, limit=payload.limit)
    return {
        "results": [
            {
                "document": _summary(result.document),
                "score": result.score,
                "match_type": result.match_type,
                "snippet": result.snippet,
            }
            for result in results
        ]
    }


# --------------------------------------------------------------------- chat


@app.post("/chat")
async def chat(
    payload: ChatPayload,
    ctx: AppContext = Depends(get_context),
    client: ChatClient = Depends(get_chat_client),
    credentials: Optional[CredentialStore] = Depends(get_credentials),
) -> dict[str, Any]:
    """Answer a question grounded in the best matching sermons."""
    history = [ChatTurn(role=turn.role, content=turn.content) for turn in payload.history]
    try:
        reply = await asyncio.to_thread(
            answer,
            payload.message,
            ctx.searcher,
            client,
            history=history,
            credentials=credentials,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except (CredentialsMissingError, InvalidCredentialsError) as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
    except RateLimitedError as exc:
        raise HTTPException(status_code=429, detail=str(exc)) from exc
    except ServiceError as exc:
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    except ChatError as exc:
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    return {
        "text": reply.text,
        "tokens_used": reply.tokens_used,
        "sources": [asdict(source) for source in reply.sources],
    }


# ---------------------------------------------------------------- documents


def _documents_page(store, limit: int | None) -> dict[str, Any]:
    return {
        "documents": [_summary(doc) for doc in store.list_documents(limit=limit)],
        "stats": asdict(store.corpus_stats()),
    }


@app.get("/documents")
async def list_documents(
    limit: int | None = None, ctx: AppContext = Depends(get_context)
) -> dict[str, Any]:
    """List indexed documents, newest first."""
    return await asyncio.to_thread(_documents_page, ctx.store, limit)


@app.get("/documents/{doc_id}")
async def get_document(doc_id: int, ctx: AppContext = Depends(get_context)) -> dict[str, Any]:
    document = await asyncio.to_thread(ctx.store.get_document, doc_id)
    if document is None:
        raise HTTPException(status_code=404, detail=f"Document with ID {doc_id} not found")
    return asdict(document)


@app.delete("/documents/{doc_id}")
async def delete_document(doc_id: int, ctx: AppContext = Depends(get_context)) -> dict[str, Any]:
    """Delete a document and its embedding."""
    if not await asyncio.to_thread(ctx.store.delete_document, doc_id):
        raise HTTPException(status_code=404, detail=f"Document with ID {doc_id} not found")
    return {"status": "ok", "deleted_id": doc_id}


# ----------------------------------------------------------------- indexing


@app.post("/index")
async def index_folder(
    payload: IndexPayload, ctx: AppContext = Depends(get_context)
) -> dict[str, Any]:
    """Index a folder; without ``force`` the folder is also remembered and watched."""
    raw = payload.folder
    if raw is None:
        configured = await asyncio.to_thread(lambda: ctx.folder)
        if configured is None:
            raise HTTPException(status_code=400, detail="No folder provided or configured")
        raw = str(configured)
    folder = _resolve_folder(raw)

    try:
        if payload.force:
            result = await asyncio.to_thread(ctx.indexer.force_reindex_folder, folder)
        else:
            result = await asyncio.to_thread(ctx.watch_folder, folder)
    except IndexingInProgressError as exc:
        raise HTTPException(status_code=409, detail=str(exc)) from exc
    except Exception as exc:  # pragma: no cover
        LOGGER.exception("Indexing failed: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    return {"status": "ok", "folder": str(folder), "result": result.as_dict()}


@app.post("/index/cancel")
async def cancel_indexing(ctx: AppContext = Depends(get_context)) -> dict[str, bool]:
    return {"cancelled": ctx.indexer.cancel()}


@app.post("/embeddings/index-missing")
async def index_missing_embeddings(ctx: AppContext = Depends(get_context)) -> dict[str, Any]:
    try:
        outcome = await asyncio.to_thread(ctx.indexer.index_missing_embeddings)
    except Exception as exc:  # pragma: no cover
        LOGGER.exception("Embedding failed: %s", exc)
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return {"status": "ok", **outcome}


@app.get("/embeddings/stats")
async def embedding_stats(ctx: AppContext = Depends(get_context)) -> dict[str, int]:
    return await asyncio.to_thread(ctx.store.embedding_stats)


def _corpus_stats(ctx: AppContext) -> dict[str, Any]:
    stats = asdict(ctx.store.corpus_stats())
    stats["embeddings"] = ctx.store.embedding_stats()
    folder = ctx.folder
    stats["folder"] = str(folder) if folder else None
    stats["indexing"] = ctx.indexer.is_running
    return stats


@app.get("/stats")
async def corpus_stats(ctx: AppContext = Depends(get_context)) -> dict[str, Any]:
    return await asyncio.to_thread(_corpus_stats, ctx)

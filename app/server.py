"""
DocVault - Web API Server
--------------------------
FastAPI server that wraps the VaultAssistant.

Endpoints:
  GET  /api/health     -> pipeline status and configured models
  POST /api/chat       -> answer the latest user message (JSON or streamed text)
  POST /api/ingest     -> multipart upload of one file into the vault
  GET  /api/documents  -> file names currently in the vault

Run from the project root:
    uvicorn app.server:app --reload --port 8000
"""
from __future__ import annotations

import asyncio
import sys
from contextlib import asynccontextmanager
from functools import partial
from typing import Optional

# Windows cp1252 terminal fix
if sys.platform == "win32":
    sys.stdout.reconfigure(encoding="utf-8", errors="replace")
    sys.stderr.reconfigure(encoding="utf-8", errors="replace")

from fastapi import FastAPI, File, HTTPException, UploadFile
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field

from docvault.errors import (
    INPUT_ERROR_CATEGORY,
    ConfigurationError,
    DocVaultError,
    InputError,
    ProviderError,
    ProviderErrorCategory,
)

# ---------------------------------------------------------------------------
# Assistant singleton
# ---------------------------------------------------------------------------

_assistant = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the assistant once at startup unless one was injected."""
    global _assistant
    if _assistant is None:
        from docvault.config import load_settings
        from docvault.serving.pipeline import build_assistant
        from docvault.utils.logger import setup_logger

        settings = load_settings()
        setup_logger(settings.logging.level, settings.logging.file)
        logger.info("[Server] Building DocVault assistant...")
        _assistant = build_assistant(settings)
    yield
    logger.info("[Server] Shutting down.")


def set_assistant(assistant) -> None:
    """Inject a pre-built assistant (used by tests and embedding apps)."""
    global _assistant
    _assistant = assistant


# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------

app = FastAPI(
    title="DocVault API",
    description="Retrieval-augmented question answering over a private document vault",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Request / Response models
# ---------------------------------------------------------------------------

class MessageModel(BaseModel):
    role: str
    content: str = ""


class ChatRequest(BaseModel):
    # Browser clients send camelCase "selectedFile"
    model_config = ConfigDict(populate_by_name=True)

    messages: list[MessageModel] = Field(default_factory=list)
    selected_file: Optional[str] = Field(default=None, alias="selectedFile")
    stream: bool = False


class SourceModel(BaseModel):
    file_name: str
    page: Optional[int] = None


class ChatResponse(BaseModel):
    answer: str
    sources: list[SourceModel]
    search_query: str
    used_keyword_fallback: bool
    top_score: float


class IngestResponse(BaseModel):
    success: bool
    chunks_count: int


# ---------------------------------------------------------------------------
# Error mapping
# ---------------------------------------------------------------------------

def _status_for_category(category: Optional[str]) -> int:
    """HTTP status for an error category: caller fault, throttled, or upstream."""
    if category == INPUT_ERROR_CATEGORY:
        return 400
    if category == ProviderErrorCategory.RATE_LIMITED.value:
        return 429
    return 502


@app.exception_handler(DocVaultError)
async def docvault_error_handler(request, exc: DocVaultError):
    if isinstance(exc, InputError):
        status = 400
    elif isinstance(exc, ProviderError):
        status = _status_for_category(exc.category.value)
    else:
        status = 500
    if isinstance(exc, ConfigurationError):
        logger.error(f"[Server] Configuration error: {exc}")
    return JSONResponse(status_code=status, content={"error": exc.user_message})


def _require_assistant():
    if _assistant is None:
        raise HTTPException(status_code=503, detail="Assistant not ready")
    return _assistant


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------

@app.get("/api/health")
async def health():
    assistant = _require_assistant()
    return {
        "status": "ok",
        "generation_model": assistant.generator.model,
        "embedding_dimensions": assistant.embedder.dimensions,
        "final_top_k": assistant.orchestrator.settings.final_top_k,
        "similarity_threshold": assistant.orchestrator.settings.similarity_threshold,
    }


@app.post("/api/chat", response_model=ChatResponse)
async def chat(request: ChatRequest):
    """
    Answer the latest user message using the whole conversation as context.

    The blocking pipeline runs in a thread-pool executor to avoid stalling
    FastAPI's event loop.  With stream=true the answer is returned as a
    plain-text stream once retrieval has succeeded.
    """
    assistant = _require_assistant()
    turns = [m.model_dump() for m in request.messages]
    loop = asyncio.get_running_loop()

    logger.info(
        f"[API] Chat | {len(turns)} turn(s) | scope={request.selected_file or 'all'} | "
        f"stream={request.stream}"
    )

    if request.stream:
        _, chunks = await loop.run_in_executor(
            None, partial(assistant.stream_answer, turns, request.selected_file)
        )
        return StreamingResponse(chunks, media_type="text/plain; charset=utf-8")

    result = await loop.run_in_executor(
        None, partial(assistant.answer, turns, request.selected_file)
    )
    return ChatResponse(
        answer=result.answer,
        sources=[SourceModel(file_name=s.file_name, page=s.page) for s in result.sources],
        search_query=result.search_query,
        used_keyword_fallback=result.used_keyword_fallback,
        top_score=round(result.top_score, 4),
    )


@app.post("/api/ingest", response_model=IngestResponse)
async def ingest(file: UploadFile = File(...)):
    assistant = _require_assistant()
    data = await file.read()
    name = file.filename or "upload"

    loop = asyncio.get_running_loop()
    result = await loop.run_in_executor(None, partial(assistant.ingest, data, name))
    if not result.success:
        return JSONResponse(
            status_code=_status_for_category(result.error_category),
            content={"error": result.error},
        )
    return IngestResponse(success=True, chunks_count=result.chunks_count)


@app.get("/api/documents")
async def documents():
    assistant = _require_assistant()
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, assistant.list_documents)

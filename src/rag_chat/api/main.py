"""FastAPI entrypoint for ingest, conversational query and agent endpoints."""

from __future__ import annotations

import logging
from typing import Any

from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import BaseModel, Field

from rag_chat.api.deps import Services, get_services
from rag_chat.errors import MalformedRequestError, RagChatError
from rag_chat.logging_config import setup_logging
from rag_chat.settings import Settings, get_settings
from rag_chat.types import Turn

logger = logging.getLogger(__name__)

_TEXT_STREAM = "text/plain; charset=utf-8"


class ChatMessageIn(BaseModel):
    role: str
    content: str


class IngestRequest(BaseModel):
    text: str


class ChatRequest(BaseModel):
    messages: list[ChatMessageIn] = Field(default_factory=list)


class AgentChatRequest(ChatRequest):
    show_intermediate_steps: bool = False


class SourceSearchRequest(BaseModel):
    query: str = Field(min_length=1)
    k: int = Field(default=4, ge=1, le=20)
    fetch_k: int = Field(default=20, ge=1, le=100)
    threshold: float = Field(default=0.0, ge=-1.0, le=1.0)


_settings = get_settings()
setup_logging(_settings.log_level, json_format=_settings.log_json)

app = FastAPI(title="Conversational RAG Service", version="0.1.0")


@app.exception_handler(RagChatError)
async def rag_chat_error_handler(request: Request, exc: RagChatError) -> JSONResponse:
    logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(exc.to_dict(), status_code=exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    details = "; ".join(
        f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg', '')}"
        for error in exc.errors()
    )
    return await rag_chat_error_handler(
        request, MalformedRequestError(f"Invalid request body: {details}")
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("%s %s failed", request.method, request.url.path)
    return JSONResponse({"error": str(exc)}, status_code=getattr(exc, "status_code", 500))


def _to_turns(messages: list[ChatMessageIn]) -> list[Turn]:
    return [Turn(role=message.role, content=message.content) for message in messages]


@app.get("/health")
def health(settings: Settings = Depends(get_settings)) -> dict[str, Any]:
    return {
        "status": "ok",
        "demo_mode": settings.demo_mode,
        "chat_model": settings.chat_model,
        "embedding_model": settings.embedding_model,
    }


@app.post("/api/retrieval/ingest")
async def ingest(
    request: IngestRequest, services: Services = Depends(get_services)
) -> dict[str, Any]:
    await services.indexer.ingest(request.text)
    return {"ok": True}


@app.post("/api/chat/retrieval")
async def chat_retrieval(
    request: ChatRequest, services: Services = Depends(get_services)
) -> StreamingResponse:
    response = await services.pipeline.run(_to_turns(request.messages))
    return StreamingResponse(
        response.tokens, media_type=_TEXT_STREAM, headers=response.headers()
    )


@app.post("/api/chat/retrieval_agents", response_model=None)
async def chat_retrieval_agents(
    request: AgentChatRequest, services: Services = Depends(get_services)
) -> StreamingResponse | dict[str, Any]:
    turns = _to_turns(request.messages)
    if not request.show_intermediate_steps:
        tokens = await services.agent.start_stream(turns)
        return StreamingResponse(tokens, media_type=_TEXT_STREAM)
    return {"messages": await services.agent.invoke(turns)}


@app.post("/api/retrieval/search")
async def source_search(
    request: SourceSearchRequest, services: Services = Depends(get_services)
) -> dict[str, Any]:
    matches = await services.retriever.retrieve(
        request.query, k=request.k, fetch_k=request.fetch_k, threshold=request.threshold
    )
    return {
        "items": [
            {
                "content": match.segment.text,
                "metadata": match.segment.metadata,
                "similarity": match.similarity,
            }
            for match in matches
        ]
    }

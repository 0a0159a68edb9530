"""Error taxonomy shared by ingestion, retrieval, generation and the agent loop.

Every error carries the HTTP status it maps to at the request boundary and,
optionally, the underlying exception that caused it. Nothing in the core
retries: callers re-submit.
"""

from __future__ import annotations

from typing import Any


class RagChatError(Exception):
    """Base class for all service errors."""

    error_code = "RAG_ERR"
    status_code = 500

    def __init__(
        self,
        message: str,
        *,
        cause: BaseException | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.cause = cause
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message}

    def __str__(self) -> str:
        if self.cause is not None:
            return f"[{self.error_code}] {self.message} (caused by {type(self.cause).__name__}: {self.cause})"
        return f"[{self.error_code}] {self.message}"


class ModeDisabledError(RagChatError):
    """Ingestion was attempted while the deployment runs in demo mode."""

    error_code = "RAG_MODE_DISABLED"
    status_code = 403


class MalformedRequestError(RagChatError):
    """The request is empty or misses required fields."""

    error_code = "RAG_MALFORMED_REQUEST"
    status_code = 400


class IngestError(RagChatError):
    """Chunking, embedding or storing failed during ingestion.

    Records written before the failure are not rolled back.
    """

    error_code = "RAG_INGEST"


class RetrievalError(RagChatError):
    """Query embedding or similarity search failed."""

    error_code = "RAG_RETRIEVAL"


class GenerationError(RagChatError):
    """A model call failed or its stream broke mid-flight."""

    error_code = "RAG_GENERATION"


class AgentLoopExhaustedError(RagChatError):
    """The agent loop ended without producing a final answer."""

    error_code = "RAG_AGENT_EXHAUSTED"

"""Configuration models for the conversational RAG service."""

from __future__ import annotations

from pydantic import BaseModel, Field, model_validator


class ChunkingConfig(BaseModel):
    """Configures markdown-aware recursive chunking."""

    chunk_size: int = Field(default=256, ge=1)
    chunk_overlap: int = Field(default=20, ge=0)

    @model_validator(mode="after")
    def _overlap_below_size(self) -> "ChunkingConfig":
        if self.chunk_overlap >= self.chunk_size:
            raise ValueError("chunk_overlap must be less than chunk_size")
        return self


class RetrievalConfig(BaseModel):
    """Configures the conversational pipeline's retrieval step."""

    k: int = Field(default=4, ge=1)
    fetch_k: int = Field(default=20, ge=1)
    similarity_threshold: float = Field(default=0.0, ge=-1.0, le=1.0)
    preview_chars: int = Field(default=50, ge=1)


class AgentConfig(BaseModel):
    """Configures the tool-calling agent loop and its retrieval tool."""

    max_iterations: int = Field(default=6, ge=1)
    tool_k: int = Field(default=3, ge=1)
    tool_fetch_k: int = Field(default=20, ge=1)
    tool_threshold: float = Field(default=0.0, ge=-1.0, le=1.0)

    @property
    def recursion_limit(self) -> int:
        # One model step and one tool step per iteration, plus the final answer.
        return 2 * self.max_iterations + 1

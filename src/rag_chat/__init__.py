"""Conversational retrieval-augmented chat service."""

from .config import AgentConfig, ChunkingConfig, RetrievalConfig

__all__ = ["AgentConfig", "ChunkingConfig", "RetrievalConfig"]

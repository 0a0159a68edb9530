"""Shared domain models."""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field
from typing import Any, Literal

AgentEventKind = Literal["model_token", "tool_call", "tool_result"]


@dataclass(frozen=True, slots=True)
class Segment:
    """A bounded slice of source text prepared for embedding."""

    text: str
    metadata: dict[str, Any] = field(default_factory=dict)

    def copy(self) -> "Segment":
        return Segment(text=self.text, metadata=deepcopy(self.metadata))

    @property
    def novel_text(self) -> str:
        """Text not shared with the previous segment of the same split."""
        return self.text[int(self.metadata.get("overlap", 0)) :]


@dataclass(frozen=True, slots=True)
class RetrievalMatch:
    """A stored segment returned by similarity search."""

    segment: Segment
    similarity: float


@dataclass(frozen=True, slots=True)
class Turn:
    """One dialogue turn as sent by the caller."""

    role: str
    content: str


@dataclass(frozen=True, slots=True)
class ConversationContext:
    """Request-scoped state for one conversational answer."""

    standalone_question: str
    history_transcript: str
    retrieved_matches: tuple[RetrievalMatch, ...]


@dataclass(frozen=True, slots=True)
class AgentEvent:
    """One entry of the agent trace."""

    kind: AgentEventKind
    payload: Any


@dataclass(slots=True)
class ToolTrace:
    """Trace record for an executed tool call."""

    name: str
    input_payload: dict[str, Any]
    output_preview: str
    latency_ms: float

"""Context assembly and source provenance encoding."""

from __future__ import annotations

import base64
import json
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from rag_chat.types import RetrievalMatch

CONTEXT_SEPARATOR = "\n\n"
PREVIEW_SUFFIX = "..."


@dataclass(frozen=True, slots=True)
class AssembledContext:
    """Prompt-ready context plus the matches it was built from, in order."""

    context_block: str
    provenance: tuple[RetrievalMatch, ...]


def assemble_context(matches: Sequence[RetrievalMatch]) -> AssembledContext:
    """Join segment texts with blank lines, keeping retrieval order.

    Earlier matches come first because the answer prompt favours earlier context.
    """

    provenance = tuple(matches)
    return AssembledContext(
        context_block=CONTEXT_SEPARATOR.join(match.segment.text for match in provenance),
        provenance=provenance,
    )


def source_previews(
    provenance: Sequence[RetrievalMatch], *, preview_chars: int = 50
) -> list[dict[str, Any]]:
    return [
        {
            "pageContentPreview": match.segment.text[:preview_chars] + PREVIEW_SUFFIX,
            "metadata": match.segment.metadata,
        }
        for match in provenance
    ]


def encode_sources(previews: list[dict[str, Any]]) -> str:
    """Base64 of the UTF-8 JSON array, safe to carry in a response header."""
    payload = json.dumps(previews, ensure_ascii=False).encode("utf-8")
    return base64.b64encode(payload).decode("ascii")

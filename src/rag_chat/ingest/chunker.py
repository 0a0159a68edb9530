"""Markdown-aware recursive chunking with exact character offsets."""

from __future__ import annotations

import re
from collections import deque
from typing import Any

from rag_chat.config import ChunkingConfig
from rag_chat.types import Segment

# Boundary priority: headers, code fences, horizontal rules, paragraphs,
# lines, sentence ends, words, characters.
MARKDOWN_SEPARATORS: tuple[str, ...] = (
    r"\n#{1,6} ",
    r"```\n",
    r"\n\*\*\*+\n",
    r"\n---+\n",
    r"\n___+\n",
    r"\n\n",
    r"\n",
    r"(?<=[.!?;。！？；])",
    r" ",
    "",
)

_Span = tuple[int, int]


class MarkdownChunker:
    """Splits raw text into overlapping segments bounded by `chunk_size` characters.

    Design notes:
    1. Recursive boundary search.
       A span longer than `chunk_size` is cut at every match of the highest
       priority separator that occurs inside it. Separators stay attached to
       the piece that follows them, so no character is ever discarded. Pieces
       that are still too long are cut again with the remaining, finer
       separators; the empty separator finally cuts single characters.

    2. Greedy packing with tail overlap.
       Pieces are packed left to right into windows of at most `chunk_size`
       characters. When a window is emitted, its trailing pieces totalling at
       most `chunk_overlap` characters are carried into the next window.

    3. Offsets instead of copies.
       All work is done on `(start, end)` spans of the input, and every segment
       records `start_index`, `end_index` and `overlap` (characters shared with
       the previous segment) in its metadata. Dropping each segment's leading
       `overlap` characters and concatenating reconstructs the input exactly.
    """

    def __init__(
        self,
        config: ChunkingConfig | None = None,
        *,
        separators: tuple[str, ...] = MARKDOWN_SEPARATORS,
    ) -> None:
        self.config = config or ChunkingConfig()
        self._separators = tuple(re.compile(sep) if sep else None for sep in separators)

    def split_text(
        self, text: str, metadata: dict[str, Any] | None = None
    ) -> list[Segment]:
        """Split `text` into ordered segments.

        Text no longer than `chunk_size` yields exactly one segment; empty text
        yields none.
        """

        if not text:
            return []

        pieces = self._split_span(text, 0, len(text), self._separators)
        windows = self._pack(pieces)

        segments: list[Segment] = []
        previous_end = 0
        for index, (start, end) in enumerate(windows):
            segments.append(
                Segment(
                    text=text[start:end],
                    metadata={
                        **(metadata or {}),
                        "chunk_index": index,
                        "start_index": start,
                        "end_index": end,
                        "overlap": max(0, previous_end - start),
                    },
                )
            )
            previous_end = end
        return segments

    def _split_span(
        self,
        text: str,
        start: int,
        end: int,
        separators: tuple[re.Pattern[str] | None, ...],
    ) -> list[_Span]:
        if end - start <= self.config.chunk_size:
            return [(start, end)]

        for position, separator in enumerate(separators):
            if separator is None:
                return [(i, i + 1) for i in range(start, end)]

            cuts = sorted(
                {
                    match.start()
                    for match in separator.finditer(text, start, end)
                    if start < match.start() < end
                }
            )
            if not cuts:
                continue

            bounds = [start, *cuts, end]
            spans: list[_Span] = []
            for left, right in zip(bounds, bounds[1:]):
                if right - left <= self.config.chunk_size:
                    spans.append((left, right))
                else:
                    spans.extend(
                        self._split_span(text, left, right, separators[position + 1 :])
                    )
            return spans

        # No separator applies; keep the oversized span whole.
        return [(start, end)]

    def _pack(self, pieces: list[_Span]) -> list[_Span]:
        size = self.config.chunk_size
        overlap = self.config.chunk_overlap
        windows: list[_Span] = []
        current: deque[_Span] = deque()
        total = 0

        for piece in pieces:
            length = piece[1] - piece[0]
            if current and total + length > size:
                windows.append((current[0][0], current[-1][1]))
                while current and (total > overlap or total + length > size):
                    head = current.popleft()
                    total -= head[1] - head[0]
            current.append(piece)
            total += length

        if current:
            windows.append((current[0][0], current[-1][1]))
        return windows


def reconstruct(segments: list[Segment]) -> str:
    """Rebuild the original text from segments produced by one split."""
    return "".join(segment.novel_text for segment in segments)

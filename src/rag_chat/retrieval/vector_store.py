"""Vector store contract and concrete adapters."""

from __future__ import annotations

import asyncio
import itertools
import logging
from dataclasses import dataclass
from math import sqrt
from typing import Any, Protocol

from rag_chat.types import RetrievalMatch, Segment

logger = logging.getLogger(__name__)


class VectorStore(Protocol):
    """Minimal similarity-search contract used by ingestion and retrieval."""

    async def add_records(
        self, segments: list[Segment], embeddings: list[list[float]]
    ) -> list[int]:
        """Persist one record per segment and return the new record ids."""

    async def similarity_search(
        self,
        query_embedding: list[float],
        *,
        match_count: int,
        match_threshold: float,
        metadata_filter: dict[str, Any] | None = None,
    ) -> list[RetrievalMatch]:
        """Return up to `match_count` records with similarity above the threshold."""


@dataclass(slots=True)
class _StoredRecord:
    id: int
    content: str
    metadata: dict[str, Any]
    embedding: list[float]


class InMemoryVectorStore:
    """Deterministic vector store used for tests and local prototyping.

    Mirrors the external store's behaviour: auto-increment ids, a fixed vector
    width that rejects mismatched writes, and results ordered by descending
    cosine similarity with insertion order kept for ties.
    """

    def __init__(self, dimension: int = 1024) -> None:
        self.dimension = dimension
        self._records: list[_StoredRecord] = []
        self._ids = itertools.count(1)

    def __len__(self) -> int:
        return len(self._records)

    async def add_records(
        self, segments: list[Segment], embeddings: list[list[float]]
    ) -> list[int]:
        if len(segments) != len(embeddings):
            raise ValueError("segments and embeddings must have the same length")
        ids: list[int] = []
        for segment, embedding in zip(segments, embeddings, strict=True):
            if len(embedding) != self.dimension:
                raise ValueError(
                    f"expected {self.dimension} dimensions, got {len(embedding)}"
                )
            record = _StoredRecord(
                id=next(self._ids),
                content=segment.text,
                metadata=segment.copy().metadata,
                embedding=list(embedding),
            )
            self._records.append(record)
            ids.append(record.id)
        return ids

    async def similarity_search(
        self,
        query_embedding: list[float],
        *,
        match_count: int,
        match_threshold: float,
        metadata_filter: dict[str, Any] | None = None,
    ) -> list[RetrievalMatch]:
        scored = [
            (record, _cosine_similarity(query_embedding, record.embedding))
            for record in self._records
            if _metadata_contains(record.metadata, metadata_filter)
        ]
        ranked = sorted(
            (item for item in scored if item[1] > match_threshold),
            key=lambda item: item[1],
            reverse=True,
        )
        return [
            RetrievalMatch(
                segment=Segment(text=record.content, metadata=record.metadata).copy(),
                similarity=similarity,
            )
            for record, similarity in ranked[:match_count]
        ]


class SupabaseVectorStore:
    """Adapter for a Supabase (pgvector) table plus its match function.

    The table needs `id`, `content`, `metadata` and `embedding` columns and the
    match function takes `query_embedding`, `filter`, `match_count` and
    `match_threshold`; see `supabase/schema.sql`.
    """

    def __init__(
        self,
        url: str,
        key: str,
        *,
        table_name: str = "documents",
        query_name: str = "match_documents",
        batch_size: int = 500,
        client: Any | None = None,
    ) -> None:
        self._url = url
        self._key = key
        self.table_name = table_name
        self.query_name = query_name
        self.batch_size = batch_size
        self._client = client
        self._client_lock = asyncio.Lock()

    async def _get_client(self) -> Any:
        if self._client is not None:
            return self._client
        async with self._client_lock:
            if self._client is None:
                from supabase import acreate_client

                self._client = await acreate_client(self._url, self._key)
        return self._client

    async def add_records(
        self, segments: list[Segment], embeddings: list[list[float]]
    ) -> list[int]:
        if len(segments) != len(embeddings):
            raise ValueError("segments and embeddings must have the same length")
        client = await self._get_client()
        rows = [
            {"content": segment.text, "metadata": segment.metadata, "embedding": embedding}
            for segment, embedding in zip(segments, embeddings, strict=True)
        ]

        ids: list[int] = []
        for offset in range(0, len(rows), self.batch_size):
            batch = rows[offset : offset + self.batch_size]
            response = await client.table(self.table_name).insert(batch).execute()
            ids.extend(int(row["id"]) for row in response.data)
            logger.debug("Inserted %d rows into %s", len(batch), self.table_name)
        return ids

    async def similarity_search(
        self,
        query_embedding: list[float],
        *,
        match_count: int,
        match_threshold: float,
        metadata_filter: dict[str, Any] | None = None,
    ) -> list[RetrievalMatch]:
        client = await self._get_client()
        response = await client.rpc(
            self.query_name,
            {
                "query_embedding": query_embedding,
                "filter": metadata_filter or {},
                "match_count": match_count,
                "match_threshold": match_threshold,
            },
        ).execute()
        return [
            RetrievalMatch(
                segment=Segment(
                    text=str(row.get("content", "")),
                    metadata=dict(row.get("metadata") or {}),
                ),
                similarity=float(row["similarity"]),
            )
            for row in response.data or []
        ]


def _metadata_contains(
    metadata: dict[str, Any], metadata_filter: dict[str, Any] | None
) -> bool:
    if not metadata_filter:
        return True
    for key, value in metadata_filter.items():
        if metadata.get(key) != value:
            return False
    return True


def _cosine_similarity(a: list[float], b: list[float]) -> float:
    if not a or not b or len(a) != len(b):
        return 0.0
    numerator = sum(x * y for x, y in zip(a, b, strict=True))
    norm_a = sqrt(sum(x * x for x in a))
    norm_b = sqrt(sum(y * y for y in b))
    if norm_a == 0 or norm_b == 0:
        return 0.0
    return numerator / (norm_a * norm_b)

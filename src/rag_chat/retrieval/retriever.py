"""Thresholded top-K similarity retriever."""

from __future__ import annotations

import logging
from typing import Any

from langchain_core.embeddings import Embeddings

from rag_chat.errors import RetrievalError
from rag_chat.retrieval.vector_store import VectorStore
from rag_chat.types import RetrievalMatch

logger = logging.getLogger(__name__)


class SimilarityRetriever:
    """Embeds a query and returns the best stored segments above a threshold.

    The store is asked for `fetch_k` candidates; the retriever re-applies the
    threshold, orders by descending similarity (a stable sort, so equal scores
    keep the store's order) and keeps at most `k`. An empty result is data,
    not an error.
    """

    def __init__(self, vector_store: VectorStore, embeddings: Embeddings) -> None:
        self.vector_store = vector_store
        self.embeddings = embeddings

    async def retrieve(
        self,
        query: str,
        *,
        k: int,
        fetch_k: int,
        threshold: float,
        metadata_filter: dict[str, Any] | None = None,
    ) -> list[RetrievalMatch]:
        try:
            query_embedding = await self.embeddings.aembed_query(query)
            candidates = await self.vector_store.similarity_search(
                query_embedding,
                match_count=max(fetch_k, k),
                match_threshold=threshold,
                metadata_filter=metadata_filter,
            )
        except Exception as exc:
            raise RetrievalError("Similarity search failed", cause=exc) from exc

        kept = [match for match in candidates if match.similarity > threshold]
        kept.sort(key=lambda match: match.similarity, reverse=True)
        logger.info(
            "Retrieved %d/%d candidates above threshold %.3f",
            min(len(kept), k),
            len(candidates),
            threshold,
        )
        return [
            RetrievalMatch(segment=match.segment.copy(), similarity=match.similarity)
            for match in kept[:k]
        ]

"""Ingestion path: chunk -> embed -> store."""

from __future__ import annotations

import logging
from typing import Any

from langchain_core.embeddings import Embeddings

from rag_chat.config import ChunkingConfig
from rag_chat.errors import IngestError, MalformedRequestError, ModeDisabledError
from rag_chat.ingest.chunker import MarkdownChunker
from rag_chat.retrieval.vector_store import VectorStore

logger = logging.getLogger(__name__)

DEMO_MODE_MESSAGE = "\n".join(
    [
        "演示模式不支持文档入库。",
        "请参考 https://github.com/langchain-ai/langchain-nextjs-template 搭建自己的环境",
    ]
)


class Indexer:
    """Coordinates chunker/embeddings/vector store for raw text ingestion.

    The demo flag is fixed at construction; a demo deployment rejects every
    ingest before touching any collaborator. Ingestion is not idempotent:
    the same text ingested twice is stored twice.
    """

    def __init__(
        self,
        embeddings: Embeddings,
        vector_store: VectorStore,
        *,
        chunker: MarkdownChunker | None = None,
        demo_mode: bool = False,
    ) -> None:
        self._embeddings = embeddings
        self._vector_store = vector_store
        self._chunker = chunker or MarkdownChunker(
            ChunkingConfig(chunk_size=256, chunk_overlap=20)
        )
        self.demo_mode = demo_mode

    async def ingest(
        self, raw_text: str, *, metadata: dict[str, Any] | None = None
    ) -> list[int]:
        """Ingest one text and return the ids of the stored records.

        Raises:
            ModeDisabledError: the deployment is in demo mode.
            MalformedRequestError: the text is empty.
            IngestError: chunking, embedding or storing failed. Records already
                written stay in the store.
        """

        if self.demo_mode:
            raise ModeDisabledError(DEMO_MODE_MESSAGE)
        if not raw_text:
            raise MalformedRequestError("text must not be empty")

        try:
            segments = self._chunker.split_text(raw_text, metadata)
            if not segments:
                return []
            vectors = await self._embeddings.aembed_documents(
                [segment.text for segment in segments]
            )
            ids = await self._vector_store.add_records(segments, vectors)
        except Exception as exc:
            logger.exception("Ingestion failed")
            raise IngestError(str(exc) or type(exc).__name__, cause=exc) from exc

        logger.info("Ingested %d segments (%d characters)", len(segments), len(raw_text))
        return ids

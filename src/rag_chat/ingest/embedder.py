"""Embedding collaborators: production factory and deterministic baseline."""

from __future__ import annotations

import re
from hashlib import blake2b
from math import sqrt

from langchain_core.embeddings import Embeddings

from rag_chat.settings import Settings

# CJK ideographs are hashed one by one; other scripts by word.
_TOKEN_PATTERN = re.compile(r"[\u3400-\u9fff]|\w+", flags=re.UNICODE)


def create_embeddings(settings: Settings) -> Embeddings:
    """Build the OpenAI-compatible embedding client for this deployment."""

    from langchain_openai import OpenAIEmbeddings

    return OpenAIEmbeddings(
        model=settings.embedding_model,
        api_key=settings.openai_api_key,
        base_url=settings.openai_api_base,
        # Non-OpenAI models behind a compatible API expect raw strings, not tiktoken ids.
        check_embedding_ctx_length=False,
    )


class HashingEmbeddings(Embeddings):
    """Deterministic embedding without external model calls.

    Used by tests and offline runs. Tokens are hashed into a fixed number of
    signed buckets and the result is L2-normalised, so identical texts have
    cosine similarity 1.0 and texts sharing no token have similarity 0.0.
    """

    def __init__(self, dimension: int = 1024) -> None:
        self.dimension = dimension

    def embed_documents(self, texts: list[str]) -> list[list[float]]:
        return [self._embed(text) for text in texts]

    def embed_query(self, text: str) -> list[float]:
        return self._embed(text)

    async def aembed_documents(self, texts: list[str]) -> list[list[float]]:
        return self.embed_documents(texts)

    async def aembed_query(self, text: str) -> list[float]:
        return self.embed_query(text)

    def _embed(self, text: str) -> list[float]:
        vector = [0.0 for _ in range(self.dimension)]
        tokens = _TOKEN_PATTERN.findall(text.lower())
        if not tokens:
            return vector

        for token in tokens:
            digest = blake2b(token.encode("utf-8"), digest_size=8).digest()
            idx = int.from_bytes(digest[:4], "little") % self.dimension
            sign = -1.0 if digest[4] % 2 else 1.0
            vector[idx] += sign

        norm = sqrt(sum(value * value for value in vector))
        if norm == 0:
            return vector
        return [value / norm for value in vector]

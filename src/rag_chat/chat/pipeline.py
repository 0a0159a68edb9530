"""Conversational retrieval orchestration.

One request runs condense -> retrieve -> assemble -> generate in a producer
task. The producer resolves a one-shot "documents ready" future as soon as
retrieval finishes and then pushes answer tokens into a queue. The caller
gets control back once the future resolves, so provenance can travel as
response metadata while tokens are still being produced.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Sequence
from contextlib import suppress
from dataclasses import dataclass
from typing import Any

from rag_chat.chat.condenser import QuestionCondenser
from rag_chat.chat.context import assemble_context, encode_sources, source_previews
from rag_chat.chat.generator import AnswerGenerator
from rag_chat.chat.history import format_history
from rag_chat.config import RetrievalConfig
from rag_chat.errors import GenerationError, MalformedRequestError
from rag_chat.retrieval.retriever import SimilarityRetriever
from rag_chat.types import ConversationContext, Turn

logger = logging.getLogger(__name__)

_END = object()


@dataclass(slots=True)
class ConversationResponse:
    """Token stream plus the out-of-band metadata for one answer."""

    tokens: AsyncIterator[str]
    message_index: int
    sources: list[dict[str, Any]]
    context: ConversationContext

    def headers(self) -> dict[str, str]:
        return {
            "x-message-index": str(self.message_index),
            "x-sources": encode_sources(self.sources),
        }


class ConversationalRetrievalPipeline:
    """Turns a dialogue into a streamed, context-grounded answer."""

    def __init__(
        self,
        *,
        condenser: QuestionCondenser,
        retriever: SimilarityRetriever,
        generator: AnswerGenerator,
        config: RetrievalConfig | None = None,
    ) -> None:
        self.condenser = condenser
        self.retriever = retriever
        self.generator = generator
        self.config = config or RetrievalConfig()

    async def run(self, turns: Sequence[Turn]) -> ConversationResponse:
        """Start answering the last turn and return once sources are known.

        Errors raised before retrieval completes propagate from this call;
        later ones surface while the token stream is consumed. Closing the
        stream early cancels the in-flight model call.
        """

        if not turns:
            raise MalformedRequestError("messages must contain at least one turn")

        history = list(turns[:-1])
        question = turns[-1].content
        transcript = format_history(history)

        documents_ready: asyncio.Future[ConversationContext] = (
            asyncio.get_running_loop().create_future()
        )
        queue: asyncio.Queue[object] = asyncio.Queue()
        producer = asyncio.create_task(
            self._produce(question, transcript, documents_ready, queue)
        )
        producer.add_done_callback(_log_producer_failure)

        try:
            await asyncio.wait(
                {documents_ready, producer}, return_when=asyncio.FIRST_COMPLETED
            )
        except BaseException:
            producer.cancel()
            raise

        if not documents_ready.done():
            await producer
            raise GenerationError("Pipeline finished without retrieving documents")

        context = documents_ready.result()
        return ConversationResponse(
            tokens=_drain(queue, producer),
            message_index=len(history) + 1,
            sources=source_previews(
                context.retrieved_matches, preview_chars=self.config.preview_chars
            ),
            context=context,
        )

    async def _produce(
        self,
        question: str,
        transcript: str,
        documents_ready: asyncio.Future[ConversationContext],
        queue: asyncio.Queue[object],
    ) -> None:
        try:
            standalone = await self.condenser.condense(question, transcript)
            matches = await self.retriever.retrieve(
                standalone,
                k=self.config.k,
                fetch_k=self.config.fetch_k,
                threshold=self.config.similarity_threshold,
            )
            context = ConversationContext(
                standalone_question=standalone,
                history_transcript=transcript,
                retrieved_matches=tuple(matches),
            )
            documents_ready.set_result(context)

            assembled = assemble_context(context.retrieved_matches)
            async for token in self.generator.generate(
                assembled.context_block, transcript, standalone
            ):
                queue.put_nowait(token)
        finally:
            queue.put_nowait(_END)


def _log_producer_failure(producer: asyncio.Task[None]) -> None:
    # Also runs when the token stream is dropped without being consumed.
    if producer.cancelled():
        return
    exc = producer.exception()
    if exc is not None:
        logger.error("Answer producer failed: %s", exc, exc_info=exc)


async def _drain(queue: asyncio.Queue[object], producer: asyncio.Task[None]) -> AsyncIterator[str]:
    try:
        while True:
            item = await queue.get()
            if item is _END:
                break
            yield str(item)
        await producer
    finally:
        if not producer.done():
            producer.cancel()
            with suppress(asyncio.CancelledError):
                await producer

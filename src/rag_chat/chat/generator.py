"""Streamed, context-grounded answer generation."""

from __future__ import annotations

from collections.abc import AsyncIterator

from langchain_core.language_models import BaseChatModel
from langchain_core.output_parsers import StrOutputParser

from rag_chat.chat.prompts import answer_prompt
from rag_chat.errors import GenerationError


class AnswerGenerator:
    """Streams the persona answer for a question, its context and history.

    Each call to `generate` starts a fresh model stream; chunks are passed
    through untouched.
    """

    def __init__(self, llm: BaseChatModel) -> None:
        self.chain = answer_prompt | llm | StrOutputParser()

    async def generate(
        self, context_block: str, history_transcript: str, question: str
    ) -> AsyncIterator[str]:
        try:
            async for token in self.chain.astream(
                {
                    "context": context_block,
                    "chat_history": history_transcript,
                    "question": question,
                }
            ):
                yield token
        except Exception as exc:
            raise GenerationError("Answer generation failed", cause=exc) from exc

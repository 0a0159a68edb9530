"""Follow-up question condensation."""

from __future__ import annotations

import logging

from langchain_core.language_models import BaseChatModel
from langchain_core.output_parsers import StrOutputParser

from rag_chat.chat.prompts import condense_question_prompt
from rag_chat.errors import GenerationError

logger = logging.getLogger(__name__)


class QuestionCondenser:
    """Rewrites a follow-up question as a standalone question with one model call.

    The model output is returned trimmed but otherwise unchecked: an empty or
    echoed answer is passed through as-is.
    """

    def __init__(self, llm: BaseChatModel) -> None:
        self.chain = condense_question_prompt | llm | StrOutputParser()

    async def condense(self, question: str, history_transcript: str) -> str:
        try:
            standalone = await self.chain.ainvoke(
                {"chat_history": history_transcript, "question": question}
            )
        except Exception as exc:
            raise GenerationError("Question condensation failed", cause=exc) from exc

        standalone = standalone.strip()
        logger.debug("Condensed %r -> %r", question, standalone)
        return standalone

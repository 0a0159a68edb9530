import base64
import json
import re
from collections.abc import Iterator
from typing import Any

import pytest
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import AIMessage, AIMessageChunk, BaseMessage
from langchain_core.outputs import ChatGeneration, ChatGenerationChunk, ChatResult

from rag_chat.ingest.embedder import HashingEmbeddings
from rag_chat.retrieval.vector_store import InMemoryVectorStore

DIMENSION = 64


class ScriptedChatModel(BaseChatModel):
    """Replays scripted AI messages, tool calls included, in order.

    The last message repeats once the script runs out.
    """

    responses: list[AIMessage]
    calls: int = 0

    @property
    def _llm_type(self) -> str:
        return "scripted"

    def bind_tools(self, tools: Any, **kwargs: Any) -> "ScriptedChatModel":
        return self

    def _next(self) -> AIMessage:
        message = self.responses[min(self.calls, len(self.responses) - 1)]
        self.calls += 1
        return message.model_copy()

    def _generate(
        self,
        messages: list[BaseMessage],
        stop: list[str] | None = None,
        run_manager: Any = None,
        **kwargs: Any,
    ) -> ChatResult:
        return ChatResult(generations=[ChatGeneration(message=self._next())])

    def _stream(
        self,
        messages: list[BaseMessage],
        stop: list[str] | None = None,
        run_manager: Any = None,
        **kwargs: Any,
    ) -> Iterator[ChatGenerationChunk]:
        message = self._next()
        for token in re.findall(r"\s*\S+", str(message.content)):
            yield ChatGenerationChunk(message=AIMessageChunk(content=token))
        if message.tool_calls:
            yield ChatGenerationChunk(
                message=AIMessageChunk(
                    content="",
                    tool_call_chunks=[
                        {
                            "name": call["name"],
                            "args": json.dumps(call["args"], ensure_ascii=False),
                            "id": call["id"],
                            "index": index,
                        }
                        for index, call in enumerate(message.tool_calls)
                    ],
                )
            )


@pytest.fixture
def embeddings() -> HashingEmbeddings:
    return HashingEmbeddings(dimension=DIMENSION)


@pytest.fixture
def vector_store() -> InMemoryVectorStore:
    return InMemoryVectorStore(dimension=DIMENSION)


@pytest.fixture
def scripted_model():
    def _build(*responses: AIMessage) -> ScriptedChatModel:
        return ScriptedChatModel(responses=list(responses))

    return _build


@pytest.fixture
def decode_sources():
    def _decode(header_value: str) -> list[dict[str, Any]]:
        return json.loads(base64.b64decode(header_value).decode("utf-8"))

    return _decode

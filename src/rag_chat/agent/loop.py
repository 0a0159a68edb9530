"""Tool-calling agent loop over the retrieval tool."""

from __future__ import annotations

import logging
from collections.abc import AsyncGenerator, AsyncIterator, Sequence
from typing import Any

from langchain.agents import create_agent
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import (
    AIMessage,
    BaseMessage,
    ChatMessage,
    HumanMessage,
)
from langgraph.errors import GraphRecursionError

from rag_chat.agent.registry import ToolRegistry
from rag_chat.config import AgentConfig
from rag_chat.errors import (
    AgentLoopExhaustedError,
    GenerationError,
    MalformedRequestError,
    RagChatError,
)
from rag_chat.types import AgentEvent, Turn

logger = logging.getLogger(__name__)

AGENT_SYSTEM_PROMPT = """你是一个专业的助手。当用户提问时，请按照以下步骤操作：
1. 仔细分析用户问题
2. 使用search_latest_knowledge工具检索相关信息
3. 在回答开始时，先用【检索内容】开头的部分展示检索到的原始内容
4. 然后基于检索到的信息和你的知识提供准确的回答
5. 如果检索结果相关性不高，告知用户并基于你的基础知识回答
6. 如果无法回答，请使用search_latest_knowledge工具重新检索相关信息
在回答时保持专业性，确保信息的准确性。"""

_EXHAUSTED_MESSAGE = "The agent could not produce an answer. Please try again."


class RetrievalAgent:
    """Model-driven loop: reason, optionally call retrieval, repeat, answer.

    `stream_answer` yields only non-empty model tokens; `invoke` blocks until
    the loop ends and returns the whole conversation including tool turns.
    """

    def __init__(
        self,
        *,
        llm: BaseChatModel,
        tool_registry: ToolRegistry,
        config: AgentConfig | None = None,
        executor: Any | None = None,
    ) -> None:
        self.llm = llm
        self.tool_registry = tool_registry
        self.config = config or AgentConfig()
        self.tools = self.tool_registry.as_langchain_tools()
        self.executor = executor or create_agent(
            model=self.llm,
            tools=self.tools,
            system_prompt=AGENT_SYSTEM_PROMPT,
        )

    def _run_config(self) -> dict[str, Any]:
        return {"recursion_limit": self.config.recursion_limit}

    async def stream_events(self, turns: Sequence[Turn]) -> AsyncIterator[AgentEvent]:
        """Yield the full agent trace as tagged events."""

        messages = to_langchain_messages(turns)
        try:
            async for event in self.executor.astream_events(
                {"messages": messages}, config=self._run_config(), version="v2"
            ):
                mapped = _map_event(event)
                if mapped is not None:
                    yield mapped
        except GraphRecursionError as exc:
            logger.warning("Agent loop hit recursion limit %d", self.config.recursion_limit)
            raise AgentLoopExhaustedError(_EXHAUSTED_MESSAGE, cause=exc) from exc
        except RagChatError:
            raise
        except Exception as exc:
            raise GenerationError("Agent model call failed", cause=exc) from exc

    async def stream_answer(self, turns: Sequence[Turn]) -> AsyncIterator[str]:
        """Yield visible answer tokens, hiding tool activity."""

        emitted = False
        async for event in self.stream_events(turns):
            if is_visible_token(event):
                emitted = True
                yield event.payload
        if not emitted:
            raise AgentLoopExhaustedError(_EXHAUSTED_MESSAGE)

    async def start_stream(self, turns: Sequence[Turn]) -> AsyncIterator[str]:
        """Wait for the first visible token, then return the whole token stream.

        Failures before the first token (malformed dialogue, model errors,
        an exhausted loop) raise here, before any response has started.
        """

        tokens = self.stream_answer(turns)
        first = await anext(tokens)
        return _prepend(first, tokens)

    async def invoke(self, turns: Sequence[Turn]) -> list[dict[str, Any]]:
        """Run the loop to completion and return every message it produced."""

        messages = to_langchain_messages(turns)
        try:
            result = await self.executor.ainvoke(
                {"messages": messages}, config=self._run_config()
            )
        except GraphRecursionError as exc:
            logger.warning("Agent loop hit recursion limit %d", self.config.recursion_limit)
            raise AgentLoopExhaustedError(_EXHAUSTED_MESSAGE, cause=exc) from exc
        except RagChatError:
            raise
        except Exception as exc:
            raise GenerationError("Agent model call failed", cause=exc) from exc

        trace: list[BaseMessage] = list(result.get("messages", []))
        if not _is_final_answer(trace[-1] if trace else None):
            raise AgentLoopExhaustedError(_EXHAUSTED_MESSAGE)
        return [to_wire_message(message) for message in trace]


async def _prepend(first: str, rest: AsyncGenerator[str, None]) -> AsyncIterator[str]:
    try:
        yield first
        async for token in rest:
            yield token
    finally:
        await rest.aclose()


def is_visible_token(event: AgentEvent) -> bool:
    return event.kind == "model_token" and bool(event.payload)


def to_langchain_messages(turns: Sequence[Turn]) -> list[BaseMessage]:
    """Keep user/assistant turns and convert them to LangChain messages."""

    if not turns:
        raise MalformedRequestError("messages must contain at least one turn")
    messages: list[BaseMessage] = []
    for turn in turns:
        if turn.role == "user":
            messages.append(HumanMessage(content=turn.content))
        elif turn.role == "assistant":
            messages.append(AIMessage(content=turn.content))
    if not messages:
        raise MalformedRequestError("messages must contain a user or assistant turn")
    return messages


def to_wire_message(message: BaseMessage) -> dict[str, Any]:
    if message.type == "human":
        return {"content": message.content, "role": "user"}
    if isinstance(message, AIMessage):
        return {
            "content": message.content,
            "role": "assistant",
            "tool_calls": message.tool_calls,
        }
    if isinstance(message, ChatMessage):
        return {"content": message.content, "role": message.role}
    return {"content": message.content, "role": message.type}


def _map_event(event: dict[str, Any]) -> AgentEvent | None:
    kind = event.get("event")
    data = event.get("data", {})
    if kind == "on_chat_model_stream":
        chunk = data.get("chunk")
        return AgentEvent(kind="model_token", payload=_content_text(getattr(chunk, "content", "")))
    if kind == "on_tool_start":
        return AgentEvent(
            kind="tool_call", payload={"name": event.get("name"), "input": data.get("input")}
        )
    if kind == "on_tool_end":
        output = data.get("output")
        text = _content_text(getattr(output, "content", output))
        return AgentEvent(kind="tool_result", payload={"name": event.get("name"), "output": text})
    return None


def _is_final_answer(message: BaseMessage | None) -> bool:
    return (
        isinstance(message, AIMessage)
        and not message.tool_calls
        and bool(_content_text(message.content).strip())
    )


def _content_text(content: Any) -> str:
    if content is None:
        return ""
    if isinstance(content, list):
        parts: list[str] = []
        for item in content:
            if isinstance(item, dict):
                if item.get("type", "text") == "text" and "text" in item:
                    parts.append(str(item["text"]))
            else:
                parts.append(str(item))
        return "".join(parts)
    return str(content)

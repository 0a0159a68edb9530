"""Retrieval tool exposed to the agent loop."""

from __future__ import annotations

import logging

from pydantic import BaseModel, Field

from rag_chat.agent.registry import ToolRegistry, ToolSpec
from rag_chat.chat.context import assemble_context
from rag_chat.config import AgentConfig
from rag_chat.retrieval.retriever import SimilarityRetriever
from rag_chat.types import ToolTrace

logger = logging.getLogger(__name__)

SEARCH_TOOL_NAME = "search_latest_knowledge"
SEARCH_TOOL_DESCRIPTION = (
    "使用这个工具来检索知识库中的相关信息。输入应该是对用户问题的关键信息提取。"
    "对于每个问题，都应该优先使用这个工具来检索相关内容。"
)
NO_RESULTS = "NO_RESULTS"


class SearchToolInput(BaseModel):
    query: str = Field(min_length=1)


def register_retrieval_tool(
    registry: ToolRegistry,
    retriever: SimilarityRetriever,
    config: AgentConfig | None = None,
) -> None:
    """Register `search_latest_knowledge` with the agent's fixed k/fetch_k."""

    config = config or AgentConfig()

    async def _search(input_data: SearchToolInput) -> str:
        matches = await retriever.retrieve(
            input_data.query,
            k=config.tool_k,
            fetch_k=config.tool_fetch_k,
            threshold=config.tool_threshold,
        )
        if not matches:
            return NO_RESULTS
        return assemble_context(matches).context_block

    registry.register(
        ToolSpec(
            name=SEARCH_TOOL_NAME,
            description=SEARCH_TOOL_DESCRIPTION,
            args_schema=SearchToolInput,
            handler=_search,
            tags=["retrieval", "rag"],
        )
    )


def log_tool_trace(trace: ToolTrace) -> None:
    logger.info(
        "Tool %s ran in %.1f ms with %s", trace.name, trace.latency_ms, trace.input_payload
    )

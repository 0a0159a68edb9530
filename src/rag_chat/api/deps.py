"""Composition root: builds the service graph once per process."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from functools import lru_cache

from langchain_core.language_models import BaseChatModel

from rag_chat.agent.loop import RetrievalAgent
from rag_chat.agent.registry import ToolRegistry
from rag_chat.agent.tools import log_tool_trace, register_retrieval_tool
from rag_chat.chat.condenser import QuestionCondenser
from rag_chat.chat.generator import AnswerGenerator
from rag_chat.chat.pipeline import ConversationalRetrievalPipeline
from rag_chat.config import AgentConfig, RetrievalConfig
from rag_chat.ingest.embedder import create_embeddings
from rag_chat.ingest.indexer import Indexer
from rag_chat.retrieval.retriever import SimilarityRetriever
from rag_chat.retrieval.vector_store import SupabaseVectorStore
from rag_chat.settings import Settings, get_settings

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class Services:
    indexer: Indexer
    retriever: SimilarityRetriever
    pipeline: ConversationalRetrievalPipeline
    agent: RetrievalAgent


def create_chat_model(settings: Settings) -> BaseChatModel:
    from langchain_openai import ChatOpenAI

    return ChatOpenAI(
        model=settings.chat_model,
        temperature=settings.chat_temperature,
        api_key=settings.openai_api_key,
        base_url=settings.openai_api_base,
        streaming=True,
    )


def build_services(
    settings: Settings,
    *,
    retrieval_config: RetrievalConfig | None = None,
    agent_config: AgentConfig | None = None,
) -> Services:
    embeddings = create_embeddings(settings)
    llm = create_chat_model(settings)
    vector_store = SupabaseVectorStore(
        settings.supabase_url,
        settings.supabase_private_key,
        table_name=settings.vector_table,
        query_name=settings.vector_query,
    )
    retriever = SimilarityRetriever(vector_store, embeddings)

    registry = ToolRegistry(observer=log_tool_trace)
    register_retrieval_tool(registry, retriever, agent_config)

    return Services(
        indexer=Indexer(embeddings, vector_store, demo_mode=settings.demo_mode),
        retriever=retriever,
        pipeline=ConversationalRetrievalPipeline(
            condenser=QuestionCondenser(llm),
            retriever=retriever,
            generator=AnswerGenerator(llm),
            config=retrieval_config,
        ),
        agent=RetrievalAgent(llm=llm, tool_registry=registry, config=agent_config),
    )


@lru_cache
def get_services() -> Services:
    """Get or create the process-wide service container."""
    settings = get_settings()
    logger.info(
        "Initializing services (chat=%s, embeddings=%s, demo=%s)",
        settings.chat_model,
        settings.embedding_model,
        settings.demo_mode,
    )
    return build_services(settings)

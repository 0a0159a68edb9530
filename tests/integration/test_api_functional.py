import pytest
from fastapi.testclient import TestClient
from langchain_core.language_models.fake_chat_models import FakeListChatModel
from langchain_core.messages import AIMessage

from rag_chat.agent.loop import RetrievalAgent
from rag_chat.agent.registry import ToolRegistry
from rag_chat.agent.tools import SEARCH_TOOL_NAME, register_retrieval_tool
from rag_chat.api.deps import Services, get_services
from rag_chat.chat.condenser import QuestionCondenser
from rag_chat.chat.generator import AnswerGenerator
from rag_chat.chat.pipeline import ConversationalRetrievalPipeline
from rag_chat.ingest.indexer import DEMO_MODE_MESSAGE, Indexer
from rag_chat.retrieval.retriever import SimilarityRetriever

POLICY = "退货政策：商品签收后七天内可以无理由退货，运费由买家承担。"
AGENT_ANSWER = "【检索内容】签收后七天内可以退货。\n汪汪，七天内都能退！"


class _UnreachableModelExecutor:
    async def astream_events(self, payload, config=None, version="v2"):
        raise ConnectionError("model endpoint unreachable")
        yield  # pragma: no cover


class _ToolOnlyExecutor:
    async def astream_events(self, payload, config=None, version="v2"):
        yield {"event": "on_tool_start", "name": SEARCH_TOOL_NAME, "data": {"input": {"query": "q"}}}
        yield {"event": "on_tool_end", "name": SEARCH_TOOL_NAME, "data": {"output": "NO_RESULTS"}}


def _build_services(
    embeddings, vector_store, scripted_model, *, demo_mode: bool = False, agent_executor=None
) -> Services:
    retriever = SimilarityRetriever(vector_store, embeddings)
    chat_model = FakeListChatModel(responses=["退货政策是什么？", "汪汪！七天内可以退货！"])

    registry = ToolRegistry()
    register_retrieval_tool(registry, retriever)
    agent_model = scripted_model(
        AIMessage(
            content="",
            tool_calls=[{"name": SEARCH_TOOL_NAME, "args": {"query": "退货政策"}, "id": "call_1"}],
        ),
        AIMessage(content=AGENT_ANSWER),
    )

    return Services(
        indexer=Indexer(embeddings, vector_store, demo_mode=demo_mode),
        retriever=retriever,
        pipeline=ConversationalRetrievalPipeline(
            condenser=QuestionCondenser(chat_model),
            retriever=retriever,
            generator=AnswerGenerator(chat_model),
        ),
        agent=RetrievalAgent(llm=agent_model, tool_registry=registry, executor=agent_executor),
    )


@pytest.fixture
def make_client(embeddings, vector_store, scripted_model):
    from rag_chat.api.main import app

    def _make(*, demo_mode: bool = False, agent_executor=None) -> TestClient:
        services = _build_services(
            embeddings,
            vector_store,
            scripted_model,
            demo_mode=demo_mode,
            agent_executor=agent_executor,
        )
        app.dependency_overrides[get_services] = lambda: services
        return TestClient(app)

    yield _make
    app.dependency_overrides.clear()


def test_health(make_client) -> None:
    response = make_client().get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_ingest_then_chat_streams_answer_with_sources(make_client, decode_sources) -> None:
    client = make_client()

    ingest_resp = client.post("/api/retrieval/ingest", json={"text": POLICY})
    assert ingest_resp.status_code == 200
    assert ingest_resp.json() == {"ok": True}

    chat_resp = client.post(
        "/api/chat/retrieval",
        json={
            "messages": [
                {"role": "user", "content": "你们支持退货吗？"},
                {"role": "assistant", "content": "汪！支持的！"},
                {"role": "user", "content": "具体政策呢？"},
            ]
        },
    )
    assert chat_resp.status_code == 200
    assert chat_resp.text == "汪汪！七天内可以退货！"
    assert chat_resp.headers["x-message-index"] == "3"

    sources = decode_sources(chat_resp.headers["x-sources"])
    assert sources[0]["pageContentPreview"] == POLICY[:50] + "..."
    assert sources[0]["metadata"]["start_index"] == 0


def test_chat_without_matches_still_answers(make_client, decode_sources) -> None:
    chat_resp = make_client().post(
        "/api/chat/retrieval", json={"messages": [{"role": "user", "content": "退货政策？"}]}
    )

    assert chat_resp.status_code == 200
    assert chat_resp.headers["x-message-index"] == "1"
    assert decode_sources(chat_resp.headers["x-sources"]) == []
    assert chat_resp.text


def test_demo_mode_rejects_ingest(make_client) -> None:
    response = make_client(demo_mode=True).post("/api/retrieval/ingest", json={"text": POLICY})

    assert response.status_code == 403
    assert response.json() == {"error": DEMO_MODE_MESSAGE}


def test_malformed_requests_are_rejected(make_client) -> None:
    client = make_client()

    assert client.post("/api/retrieval/ingest", json={}).status_code == 400
    assert client.post("/api/retrieval/ingest", json={"text": ""}).status_code == 400

    empty_chat = client.post("/api/chat/retrieval", json={"messages": []})
    assert empty_chat.status_code == 400
    assert "error" in empty_chat.json()

    system_only = client.post(
        "/api/chat/retrieval_agents",
        json={"messages": [{"role": "system", "content": "be brief"}]},
    )
    assert system_only.status_code == 400


def test_agent_streams_only_answer_tokens(make_client) -> None:
    client = make_client()
    client.post("/api/retrieval/ingest", json={"text": POLICY})

    response = client.post(
        "/api/chat/retrieval_agents",
        json={"messages": [{"role": "user", "content": "退货政策是什么？"}]},
    )

    assert response.status_code == 200
    assert response.text == AGENT_ANSWER


def test_agent_returns_intermediate_steps(make_client) -> None:
    client = make_client()
    client.post("/api/retrieval/ingest", json={"text": POLICY})

    response = client.post(
        "/api/chat/retrieval_agents",
        json={
            "messages": [{"role": "user", "content": "退货政策是什么？"}],
            "show_intermediate_steps": True,
        },
    )

    assert response.status_code == 200
    messages = response.json()["messages"]
    assert messages[0] == {"content": "退货政策是什么？", "role": "user"}
    assert any(message["role"] == "tool" and POLICY in message["content"] for message in messages)
    assert messages[-1]["content"] == AGENT_ANSWER


def test_source_search(make_client) -> None:
    client = make_client()
    client.post("/api/retrieval/ingest", json={"text": POLICY})

    response = client.post("/api/retrieval/search", json={"query": "退货政策", "k": 2})

    assert response.status_code == 200
    items = response.json()["items"]
    assert items[0]["content"] == POLICY
    assert items[0]["similarity"] > 0.0


def test_demo_mode_rejects_empty_ingest_before_validation(make_client) -> None:
    response = make_client(demo_mode=True).post("/api/retrieval/ingest", json={"text": ""})

    assert response.status_code == 403
    assert response.json() == {"error": DEMO_MODE_MESSAGE}


def test_agent_stream_failing_before_first_token_returns_error(make_client) -> None:
    client = make_client(agent_executor=_UnreachableModelExecutor())

    response = client.post(
        "/api/chat/retrieval_agents",
        json={"messages": [{"role": "user", "content": "退货政策是什么？"}]},
    )

    assert response.status_code == 500
    assert response.json() == {"error": "Agent model call failed"}


def test_agent_stream_without_answer_tokens_returns_error(make_client) -> None:
    client = make_client(agent_executor=_ToolOnlyExecutor())

    response = client.post(
        "/api/chat/retrieval_agents",
        json={"messages": [{"role": "user", "content": "退货政策是什么？"}]},
    )

    assert response.status_code == 500
    assert "error" in response.json()

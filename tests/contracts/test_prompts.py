from rag_chat.agent.loop import AGENT_SYSTEM_PROMPT
from rag_chat.agent.tools import SEARCH_TOOL_NAME
from rag_chat.chat.prompts import answer_prompt, condense_question_prompt


def test_condense_prompt_inputs() -> None:
    assert set(condense_question_prompt.input_variables) == {"chat_history", "question"}
    rendered = condense_question_prompt.format(chat_history="Human: hi", question="what?")
    assert "standalone question" in rendered
    assert "in its original language" in rendered


def test_answer_prompt_is_grounded_in_context_and_history() -> None:
    assert set(answer_prompt.input_variables) == {"context", "chat_history", "question"}
    rendered = answer_prompt.format(context="CTX", chat_history="HIST", question="Q")
    assert "based only on the following context and chat history" in rendered
    assert rendered.index("CTX") < rendered.index("HIST") < rendered.index("Question: Q")


def test_agent_prompt_directs_retrieval_tool() -> None:
    assert SEARCH_TOOL_NAME in AGENT_SYSTEM_PROMPT
    assert "【检索内容】" in AGENT_SYSTEM_PROMPT

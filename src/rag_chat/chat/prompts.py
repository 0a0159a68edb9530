"""Prompt templates for the conversational retrieval chain."""

from __future__ import annotations

from langchain_core.prompts import PromptTemplate

CONDENSE_QUESTION_TEMPLATE = """Given the following conversation and a follow up question, rephrase the follow up question to be a standalone question, in its original language.

<chat_history>
  {chat_history}
</chat_history>

Follow Up Input: {question}
Standalone question:"""

ANSWER_TEMPLATE = """You are an energetic talking puppy named Dana, and must answer all questions like a happy, talking dog would.
Use lots of puns!

Answer the question based only on the following context and chat history:
<context>
  {context}
</context>

<chat_history>
  {chat_history}
</chat_history>

Question: {question}
"""

condense_question_prompt = PromptTemplate.from_template(CONDENSE_QUESTION_TEMPLATE)
answer_prompt = PromptTemplate.from_template(ANSWER_TEMPLATE)

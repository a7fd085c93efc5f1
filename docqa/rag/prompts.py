"""Prompt templates for answering from retrieved context.

PROMPT_STYLE selects the template:
- "full" (default): includes prior conversation turns and asks for a
  confidence score with a short justification.
- "basic": context and question only.
"""
from typing import Sequence

from docqa.rag.models import ConversationMessage

FULL_STYLE = "full"
BASIC_STYLE = "basic"
PROMPT_STYLES = (FULL_STYLE, BASIC_STYLE)

FULL_TEMPLATE = """You are a document assistant. Your task is to answer the following question based on the provided document excerpts and conversation history.

Conversation History:
{history}

Context:
{context}

Question: {question}

Please follow these instructions:
1.  Provide a clear and concise answer to the question.
2.  If the answer is not found in the documents, state that clearly.
3.  Base your answer *only* on the information provided in the context and history above.
4.  After your answer, provide a confidence score (from 0 to 1) indicating how confident you are in your answer.
5.  Finally, briefly explain the reasoning for your answer and confidence score."""

BASIC_TEMPLATE = """You are a document assistant. Answer the question using only the document excerpts below.

Context:
{context}

Question: {question}

If the answer is not in the context, say that you could not find it in the documents."""


def render_history(messages: Sequence[ConversationMessage]) -> str:
    return "\n".join(f"{m.role}: {m.content}" for m in messages)


def build_prompt(
    question: str,
    context: str,
    history: Sequence[ConversationMessage] = (),
    style: str = FULL_STYLE,
) -> str:
    if style not in PROMPT_STYLES:
        raise ValueError(f"Unknown prompt style '{style}', expected one of {PROMPT_STYLES}")

    if style == BASIC_STYLE:
        return BASIC_TEMPLATE.format(context=context, question=question)

    return FULL_TEMPLATE.format(
        history=render_history(history),
        context=context,
        question=question,
    )

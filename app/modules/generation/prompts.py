"""Prompt text shared by the generation backends."""

from __future__ import annotations

from typing import Optional

from app.modules.study.models import Flashcard

SUMMARY_SYSTEM_PROMPT = (
    "You are a knowledgeable tutor. Summarize what you know about the topic in "
    "one short paragraph of plain text. No markdown, no lists."
)

QUERY_SYSTEM_PROMPT = (
    "You turn study topics into precise web search queries. Reply with the "
    "query only: one line, no quotes, no explanation."
)

SUBTOPICS_SYSTEM_PROMPT = (
    "You are a curriculum designer. List 3 to 5 advanced sub-topics that a "
    "student should study after mastering the basics of the topic. Return ONLY "
    "a JSON array of short strings."
)

FLASHCARDS_SYSTEM_PROMPT = (
    "You are a helpful study assistant that writes focused, accurate "
    "flashcards. Each question is clear and atomic; each answer is concise "
    "plain text. No markdown, no code."
)

QUIZ_SYSTEM_PROMPT = (
    "You are an expert quiz author. Generate high-quality multiple-choice "
    "questions. Each question has EXACTLY 4 distinct, plausible options and "
    "the correct answer MUST be one of the options. Do not reuse the same set "
    "of options for two questions."
)

BRIEF_ANSWER_SYSTEM_PROMPT = "You are a concise tutor. Explain the answer simply."

CARD_FORMAT = (
    "Return ONLY a valid JSON array. Each object must have exactly these fields:\n"
    '- "question": the front of the flashcard\n'
    '- "answer": the back of the flashcard\n'
    'Example: [{"question": "What is mitosis?", "answer": "Cell division that '
    'produces two identical daughter cells"}]\n'
    "No markdown, no explanation, no code fences."
)

QUIZ_FORMAT = (
    "Return ONLY a JSON array. Each object has: "
    '"question", "options" (array of 4 strings), "correctAnswer" (one of the '
    'options), "explanation", "difficulty" ("easy" | "medium" | "hard").'
)

STRICT_SUFFIX = (
    "\n\nYour previous reply could not be parsed. Reply with the JSON array only."
)


def summary_prompt(topic: str) -> str:
    return f"Topic: {topic}"


def query_prompt(topic: str, parent_topic: Optional[str] = None) -> str:
    if parent_topic:
        return (
            f"Topic: {topic}\nContext: this is a sub-topic of {parent_topic}. "
            "Write a search query that finds in-depth explanations of the topic "
            "in that context."
        )
    return f"Topic: {topic}\nWrite a search query that finds clear explanations."


def sub_topics_prompt(topic: str) -> str:
    return f"Topic: {topic}"


def cards_from_text_prompt(context: str, topic: str, count: int) -> str:
    return (
        f"Create exactly {int(count)} flashcards about \"{topic}\" using the "
        f"text below as the source of facts.\n\nText:\n{context[:10000]}\n\n"
        f"{CARD_FORMAT}"
    )


def repair_prompt(raw: str, topic: str, count: int) -> str:
    return (
        f"Fix and return EXACTLY {int(count)} flashcards in JSON. Each object "
        f"must have 'question' and 'answer'. Topic: {topic}. Here is possibly "
        f"malformed data:\n{raw}"
    )


def quiz_from_cards_prompt(cards: list[Flashcard], count: int) -> str:
    cards_text = "\n\n".join(f"Q: {c.front}\nA: {c.back}" for c in cards)
    return (
        f"Here are the flashcards to test:\n{cards_text}\n\n"
        f"Create {int(count)} multiple-choice questions based ONLY on these "
        "flashcards. Mix easy (recall), medium (application) and hard "
        f"(synthesis) questions.\n{QUIZ_FORMAT}"
    )


def quiz_from_topic_prompt(topic: str, count: int, context: Optional[str] = None) -> str:
    base = f"Create {int(count)} challenging multiple-choice questions about: {topic}."
    if context:
        base += f"\n\nUse this reference material:\n{context[:6000]}"
    return f"{base}\n{QUIZ_FORMAT}"


def brief_answer_prompt(question: str, context: str) -> str:
    return (
        f"Question: {question}\nContext: {context}\n\n"
        "Provide a brief, 2-sentence explanation."
    )

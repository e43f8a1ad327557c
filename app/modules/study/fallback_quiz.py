"""Quiz questions built locally, without any model call."""

from __future__ import annotations

import random
from typing import Optional

from app.modules.study.models import Flashcard, QuizQuestion
from app.modules.study.validation import FILLER_OPTIONS, OPTION_COUNT, diversify_option_sets

CARD_EXPLANATION = "Based on your existing flashcard content."
TOPIC_EXPLANATION = "Fallback question generated without AI service."
MIN_TOPIC_QUESTIONS = 3


def _as_question(front: str) -> str:
    front = front.strip()
    return front if front.endswith("?") else f"{front}?"


def quiz_from_cards(
    cards: list[Flashcard], count: int, rng: Optional[random.Random] = None
) -> list[QuizQuestion]:
    """One question per requested slot, cycling through ``cards`` when needed."""
    usable = [c for c in cards or [] if c.front.strip() and c.back.strip()]
    if not usable or count < 1:
        return []
    rng = rng or random.Random()

    questions: list[QuizQuestion] = []
    for i in range(count):
        card = usable[i % len(usable)]
        correct = card.back.strip()

        others: list[str] = []
        for other in usable:
            back = other.back.strip()
            if back.lower() != correct.lower() and back.lower() not in {o.lower() for o in others}:
                others.append(back)
        rng.shuffle(others)
        distractors = others[: OPTION_COUNT - 1]
        for filler in FILLER_OPTIONS:
            if len(distractors) >= OPTION_COUNT - 1:
                break
            taken = {d.lower() for d in distractors} | {correct.lower()}
            if filler.lower() not in taken:
                distractors.append(filler)

        options = [correct] + distractors
        rng.shuffle(options)
        questions.append(
            QuizQuestion(
                question=_as_question(card.front),
                options=options,
                correct_answer=correct,
                explanation=CARD_EXPLANATION,
            )
        )
    return diversify_option_sets(questions)


def quiz_from_topic(topic: str, count: int) -> list[QuizQuestion]:
    """Generic questions for when no backend answered; at least three of them."""
    correct = f"{topic} is an important concept in its field."
    options = [
        correct,
        f"{topic} is a random string.",
        f"{topic} refers to a historical place.",
        f"{topic} is unrelated to learning.",
    ]
    questions = [
        QuizQuestion(
            question=f"What is a key fact about {topic}?",
            options=list(options),
            correct_answer=correct,
            explanation=TOPIC_EXPLANATION,
        )
        for _ in range(max(count, MIN_TOPIC_QUESTIONS))
    ]
    return diversify_option_sets(questions)

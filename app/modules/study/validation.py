"""Normalization, filtering and repair of model-produced study material.

Flashcards: normalize field names, drop cards that are too short or look like
code, repair once through the backend, then force the exact count.

Quiz questions: normalize field variants, force four options (or a True/False
pair), and make sure no two non-binary questions share an option set.
"""

from __future__ import annotations

import json
import re
from typing import Any, Iterable, Optional

from app.core.logging import get_logger
from app.modules.generation import prompts
from app.modules.generation.base import GenerationBackend
from app.modules.study.models import Flashcard, QuizQuestion
from app.modules.study.outcome import soft

logger = get_logger(__name__)

MIN_QUESTION_CHARS = 4
MIN_ANSWER_CHARS = 3
OPTION_COUNT = 4

FILLER_OPTIONS = (
    "None of the above",
    "All of the above",
    "Depends on the context",
    "Not applicable",
)

FALLBACK_SOURCE = "fallback"

_CODE_RE = re.compile(
    r"```"
    r"|json\.dumps"
    r"|JSON_START|JSON_END"
    r"|\{\s*\""
    r"|\bdef\s+\w+\s*\("
    r"|\bclass\s+\w+\s*[:(]"
    r"|\bfunction\s*\w*\s*\("
    r"|^\s*(?:import|from)\s+[\w.]+(?:\s+import\b|\s*$|\s*;)",
    re.MULTILINE,
)


def _text(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


# -- flashcards --------------------------------------------------------------


def normalize_cards(raw: Iterable[Any], topic: str) -> list[Flashcard]:
    cards: list[Flashcard] = []
    for item in raw or []:
        if isinstance(item, Flashcard):
            cards.append(item)
            continue
        if not isinstance(item, dict):
            continue
        front = _text(item.get("question") or item.get("front"))
        back = _text(item.get("answer") or item.get("back"))
        cards.append(
            Flashcard(
                front=front,
                back=back,
                topic=_text(item.get("topic")) or topic,
                source_type=item.get("source_type"),
            )
        )
    return cards


def looks_like_code(text: str) -> bool:
    return bool(_CODE_RE.search(text or ""))


def is_card_valid(card: Flashcard) -> bool:
    front, back = card.front.strip(), card.back.strip()
    if len(front) < MIN_QUESTION_CHARS or len(back) < MIN_ANSWER_CHARS:
        return False
    return not (looks_like_code(front) or looks_like_code(back))


def filter_valid_cards(cards: Iterable[Flashcard]) -> list[Flashcard]:
    seen: set[str] = set()
    out: list[Flashcard] = []
    for card in cards:
        key = card.front.strip().lower()
        if not is_card_valid(card) or key in seen:
            continue
        seen.add(key)
        out.append(card)
    return out


def fallback_card(topic: str) -> Flashcard:
    return Flashcard(
        front=f"What is a key fact about {topic}?",
        back=f"{topic} is an important concept to understand.",
        topic=topic,
        source_type=FALLBACK_SOURCE,
    )


def enforce_card_count(cards: list[Flashcard], topic: str, count: int) -> list[Flashcard]:
    desired = max(1, int(count))
    out = list(cards[:desired])
    if len(out) < desired:
        logger.warning("padding %d fallback cards for %r", desired - len(out), topic)
        out.extend(fallback_card(topic) for _ in range(desired - len(out)))
    return out


async def validate_and_repair_cards(
    raw: list[Any],
    *,
    topic: str,
    count: int,
    backend: Optional[GenerationBackend],
) -> list[Flashcard]:
    """Return exactly ``count`` valid cards, issuing at most one repair call."""
    cards = filter_valid_cards(normalize_cards(raw, topic))
    if len(cards) < count and backend is not None:
        malformed = json.dumps(
            [c.model_dump() if isinstance(c, Flashcard) else c for c in raw or []],
            default=str,
        )
        repaired = await soft(
            "repair",
            backend.generate_from_text(
                prompts.repair_prompt(malformed, topic, count), topic, count
            ),
        )
        if repaired.ok:
            cards = filter_valid_cards(cards + normalize_cards(repaired.value or [], topic))
    return enforce_card_count(cards, topic, count)


# -- quiz questions ----------------------------------------------------------


def _is_binary_options(options: list[str]) -> bool:
    lowered = {o.strip().lower() for o in options}
    return bool(lowered) and lowered <= {"true", "false"}


def _resolve_correct(item: dict[str, Any], options: list[str]) -> str:
    for key in ("correct_index", "correctIndex"):
        idx = item.get(key)
        if isinstance(idx, int) and 0 <= idx < len(options):
            return options[idx]

    value = item.get("correctAnswer")
    if value is None:
        value = item.get("correct_answer", item.get("answer"))
    if isinstance(value, bool):
        return "True" if value else "False"
    if isinstance(value, int) and 0 <= value < len(options):
        return options[value]

    answer = _text(value)
    if not answer:
        return ""
    for opt in options:
        if opt.lower() == answer.lower():
            return opt
    # Letter answers ("B") refer to option positions
    if len(answer) == 1 and answer.upper() in "ABCD":
        idx = "ABCD".index(answer.upper())
        if idx < len(options):
            return options[idx]
    return answer


def ensure_option_count(options: list[str], correct: str) -> list[str]:
    """Exactly four options that include ``correct``."""
    out: list[str] = []
    for opt in [correct] + list(options):
        if opt and opt.lower() not in {o.lower() for o in out}:
            out.append(opt)
    others = [o for o in out if o != correct][: OPTION_COUNT - 1]
    for filler in FILLER_OPTIONS:
        if len(others) >= OPTION_COUNT - 1:
            break
        if filler.lower() not in {o.lower() for o in others + [correct]}:
            others.append(filler)
    # Keep the correct answer where the model put it when possible
    position = next((i for i, o in enumerate(options) if o == correct), 0)
    position = min(position, len(others))
    return others[:position] + [correct] + others[position:]


def normalize_questions(raw: Iterable[Any]) -> list[QuizQuestion]:
    questions: list[QuizQuestion] = []
    for item in raw or []:
        if isinstance(item, QuizQuestion):
            item = item.model_dump()
        if not isinstance(item, dict):
            continue
        text = _text(item.get("question") or item.get("text") or item.get("prompt"))
        if not text:
            continue
        raw_options = item.get("options") or item.get("choices") or []
        if isinstance(raw_options, dict):
            raw_options = list(raw_options.values())
        options = [_text(o) for o in raw_options if _text(o)]
        correct = _resolve_correct(item, options)
        if not correct:
            continue

        if _is_binary_options(options) or (
            correct.lower() in ("true", "false") and len(options) <= 2
        ):
            options = ["True", "False"]
            correct = "True" if correct.lower() == "true" else "False"
        else:
            options = ensure_option_count(options, correct)

        questions.append(
            QuizQuestion(
                question=text,
                options=options,
                correct_answer=correct,
                explanation=_text(item.get("explanation")) or None,
                difficulty=_text(item.get("difficulty")) or None,
            )
        )
    return questions


def _option_key(question: QuizQuestion) -> frozenset[str]:
    return frozenset(o.strip().lower() for o in question.options)


def has_duplicate_option_sets(questions: Iterable[QuizQuestion]) -> bool:
    seen: set[frozenset[str]] = set()
    for q in questions:
        if q.is_binary:
            continue
        key = _option_key(q)
        if key in seen:
            return True
        seen.add(key)
    return False


def _replacement_candidates() -> Iterable[str]:
    yield from FILLER_OPTIONS
    n = 1
    while True:
        yield f"None of these ({n})"
        n += 1


def diversify_option_sets(questions: list[QuizQuestion]) -> list[QuizQuestion]:
    """Replace one distractor of each repeated option set until every set is unique."""
    seen: set[frozenset[str]] = set()
    out: list[QuizQuestion] = []
    for q in questions:
        if q.is_binary:
            out.append(q)
            continue
        key = _option_key(q)
        if key in seen:
            slot = max(i for i, o in enumerate(q.options) if o != q.correct_answer)
            current = {o.lower() for o in q.options}
            for candidate in _replacement_candidates():
                if candidate.lower() in current:
                    continue
                options = list(q.options)
                options[slot] = candidate
                new_key = frozenset(o.strip().lower() for o in options)
                if new_key not in seen:
                    q = q.model_copy(update={"options": options})
                    key = new_key
                    break
        seen.add(key)
        out.append(q)
    return out

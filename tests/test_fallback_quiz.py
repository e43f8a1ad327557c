import random

from app.modules.study.fallback_quiz import quiz_from_cards, quiz_from_topic
from app.modules.study.models import Flashcard
from app.modules.study.validation import has_duplicate_option_sets


def _cards(n):
    return [
        Flashcard(front=f"Term {i}", back=f"Definition {i}", topic="Vocab") for i in range(n)
    ]


def test_one_question_per_card_with_backs_as_options():
    cards = _cards(5)
    questions = quiz_from_cards(cards, 5, random.Random(1))
    assert len(questions) == 5
    for card, q in zip(cards, questions):
        assert q.question == f"{card.front}?"
        assert q.correct_answer == card.back
        assert len(q.options) == 4
        assert q.correct_answer in q.options
        assert len(set(q.options)) == 4
    assert not has_duplicate_option_sets(questions)


def test_cycles_cards_when_count_exceeds_them():
    questions = quiz_from_cards(_cards(2), 6, random.Random(3))
    assert len(questions) == 6
    assert all(len(q.options) == 4 and q.correct_answer in q.options for q in questions)
    assert not has_duplicate_option_sets(questions)


def test_single_card_padded_with_fillers():
    [q] = quiz_from_cards(_cards(1), 1, random.Random(0))
    assert set(q.options) == {
        "Definition 0",
        "None of the above",
        "All of the above",
        "Depends on the context",
    }


def test_no_usable_cards_yields_nothing():
    blank = [Flashcard(front=" ", back="", topic="x")]
    assert quiz_from_cards(blank, 3) == []
    assert quiz_from_cards([], 3) == []


def test_question_mark_not_doubled():
    card = Flashcard(front="What is ATP?", back="Energy currency", topic="Bio")
    assert quiz_from_cards([card], 1)[0].question == "What is ATP?"


def test_topic_fallback_has_at_least_three_questions():
    questions = quiz_from_topic("Osmosis", 1)
    assert len(questions) == 3
    assert all(q.correct_answer == "Osmosis is an important concept in its field." for q in questions)
    assert all(q.correct_answer in q.options and len(q.options) == 4 for q in questions)
    assert not has_duplicate_option_sets(questions)
    assert len(quiz_from_topic("Osmosis", 7)) == 7

"""Study module exports."""

from .models import (
    Deck,
    Flashcard,
    GenerationMode,
    GenerationRequest,
    GenerationResult,
    KnowledgeSource,
    QuizAttempt,
    QuizQuestion,
    QuizRequest,
    Runtime,
)

__all__ = [
    "Deck",
    "Flashcard",
    "GenerationMode",
    "GenerationRequest",
    "GenerationResult",
    "KnowledgeSource",
    "QuizAttempt",
    "QuizQuestion",
    "QuizRequest",
    "Runtime",
]

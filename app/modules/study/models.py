"""Pydantic models for flashcard and quiz generation.

These are the shapes that flow between the job queue, the study service and
the API layer. Flashcards and quiz questions are frozen once produced; the
validators in ``app.modules.study.validation`` build new instances instead of
mutating them.
"""

from __future__ import annotations

import time
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field


def new_id(prefix: str) -> str:
    return f"{prefix}-{uuid4().hex[:12]}"


class Runtime(str, Enum):
    OLLAMA = "ollama"
    HOSTED = "hosted"


class KnowledgeSource(str, Enum):
    AI_ONLY = "ai-only"
    WEB_ONLY = "web-only"
    AI_WEB = "ai-web"


class GenerationMode(str, Enum):
    STANDARD = "standard"
    DEEP_DIVE = "deep-dive"


class Flashcard(BaseModel):
    """A single front/back card."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: new_id("card"))
    front: str
    back: str
    topic: str
    source_type: Optional[str] = None


class QuizQuestion(BaseModel):
    """A single multiple-choice (or True/False) question."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: new_id("q"))
    question: str
    options: list[str] = Field(default_factory=list)
    correct_answer: str
    explanation: Optional[str] = None
    difficulty: Optional[str] = None

    @property
    def is_binary(self) -> bool:
        return {o.strip().lower() for o in self.options} == {"true", "false"}


class GenerationRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    topic: str = Field(..., min_length=1)
    count: int = Field(default=10, ge=1, le=100)
    mode: GenerationMode = GenerationMode.STANDARD
    knowledge_source: KnowledgeSource = KnowledgeSource.AI_WEB
    runtime: Runtime = Runtime.OLLAMA
    parent_topic: Optional[str] = None


class GenerationResult(BaseModel):
    cards: list[Flashcard] = Field(default_factory=list)
    recommended_topics: Optional[list[str]] = None


class QuizRequest(BaseModel):
    model_config = ConfigDict(frozen=True)

    topic: Optional[str] = None
    cards: Optional[list[Flashcard]] = None
    count: int = Field(default=5, ge=1, le=50)
    preferred_runtime: Runtime = Runtime.OLLAMA


class QuizResult(BaseModel):
    topic: str
    questions: list[QuizQuestion] = Field(default_factory=list)


class SearchResult(BaseModel):
    title: str = ""
    link: str
    snippet: str = ""


class Deck(BaseModel):
    id: str = Field(default_factory=lambda: new_id("deck"))
    topic: str
    timestamp: float = Field(default_factory=time.time)
    cards: list[Flashcard] = Field(default_factory=list)


class AnswerRecord(BaseModel):
    card_id: str
    question: str
    user_answer: str
    correct_answer: str
    correct: bool


class QuizAttempt(BaseModel):
    id: str = Field(default_factory=lambda: new_id("attempt"))
    timestamp: float = Field(default_factory=time.time)
    topic: str
    score: int
    total: int
    results: list[AnswerRecord] = Field(default_factory=list)

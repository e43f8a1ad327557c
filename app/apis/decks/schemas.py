from __future__ import annotations

from pydantic import BaseModel, Field

from app.modules.study.models import AnswerRecord, Flashcard


class SaveDeckRequest(BaseModel):
    topic: str = Field(..., min_length=1)
    cards: list[Flashcard] = Field(default_factory=list)


class SaveQuizResultRequest(BaseModel):
    topic: str = Field(..., min_length=1)
    score: int = Field(..., ge=0)
    total: int = Field(..., ge=0)
    results: list[AnswerRecord] = Field(default_factory=list)


class SavedResponse(BaseModel):
    id: str

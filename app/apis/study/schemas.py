from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, Field

from app.modules.study.models import GenerationResult, QuizQuestion


class JobAccepted(BaseModel):
    job_id: str
    status: str
    status_url: str


class CachedGeneration(BaseModel):
    cached: bool = True
    result: GenerationResult


class QuizResponse(BaseModel):
    topic: str
    questions: list[QuizQuestion]


class BriefAnswerRequest(BaseModel):
    question: str = Field(..., min_length=1)
    context: str = ""
    runtime: Optional[str] = None


class BriefAnswerResponse(BaseModel):
    answer: str


class MetricsSummary(BaseModel):
    enabled: bool
    summary: dict[str, Any] = Field(default_factory=dict)

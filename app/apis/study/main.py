from __future__ import annotations

from typing import Optional

from cachetools import TTLCache
from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import JSONResponse

from app.apis.deps import get_metrics, get_queue, get_result_cache, get_study_service
from app.core.config import settings
from app.core.job_store import JobKind
from app.core.metrics import MetricsRecorder
from app.core.task_queue import BackgroundQueue
from app.modules.generation.base import GenerationError, UnknownBackendError
from app.modules.study.jobs import result_cache_key
from app.modules.study.models import GenerationRequest, QuizRequest
from app.modules.study.service import StudyService
from .schemas import (
    BriefAnswerRequest,
    BriefAnswerResponse,
    CachedGeneration,
    JobAccepted,
    MetricsSummary,
    QuizResponse,
)


router = APIRouter()

PREFIX = f"/{settings.app.version}"


def _accepted(job_id: str) -> JobAccepted:
    return JobAccepted(
        job_id=job_id, status="queued", status_url=f"{PREFIX}/jobs/{job_id}"
    )


@router.post(
    f"{PREFIX}/flashcards/generate",
    response_model=JobAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    responses={200: {"model": CachedGeneration}},
    tags=["flashcards"],
)
async def generate_flashcards(
    req: GenerationRequest,
    service: StudyService = Depends(get_study_service),
    queue: BackgroundQueue = Depends(get_queue),
    result_cache: Optional[TTLCache] = Depends(get_result_cache),
):
    try:
        service.registry.resolve(req.runtime)
    except UnknownBackendError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))

    if result_cache is not None:
        cached = result_cache.get(result_cache_key(req))
        if cached is not None:
            return JSONResponse(
                status_code=status.HTTP_200_OK,
                content={"cached": True, "result": cached},
            )

    job_id = await queue.enqueue(JobKind.FLASHCARDS, req.model_dump(mode="json"))
    return _accepted(job_id)


@router.post(
    f"{PREFIX}/quiz",
    response_model=JobAccepted,
    status_code=status.HTTP_202_ACCEPTED,
    responses={200: {"model": QuizResponse}},
    tags=["quiz"],
)
async def generate_quiz(
    req: QuizRequest,
    service: StudyService = Depends(get_study_service),
    queue: BackgroundQueue = Depends(get_queue),
):
    if not req.topic and not req.cards:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Provide a topic or a list of cards",
        )

    if req.cards:
        questions = service.local_quiz(req.cards, req.count)
        if questions:
            body = QuizResponse(topic=req.topic or req.cards[0].topic, questions=questions)
            return JSONResponse(status_code=status.HTTP_200_OK, content=body.model_dump(mode="json"))

    job_id = await queue.enqueue(JobKind.QUIZ, req.model_dump(mode="json"))
    return _accepted(job_id)


@router.post(
    f"{PREFIX}/brief-answer",
    response_model=BriefAnswerResponse,
    tags=["study"],
)
async def brief_answer(
    req: BriefAnswerRequest, service: StudyService = Depends(get_study_service)
) -> BriefAnswerResponse:
    try:
        answer = await service.brief_answer(req.question, req.context, req.runtime)
    except UnknownBackendError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except GenerationError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return BriefAnswerResponse(answer=answer)


@router.get(
    f"{PREFIX}/metrics/summary",
    response_model=MetricsSummary,
    tags=["metrics"],
)
async def metrics_summary(
    metrics: Optional[MetricsRecorder] = Depends(get_metrics),
) -> MetricsSummary:
    if metrics is None:
        return MetricsSummary(enabled=False)
    return MetricsSummary(enabled=True, summary=metrics.get_summary())

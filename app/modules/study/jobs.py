"""Queue handlers for flashcard and quiz jobs."""

from __future__ import annotations

from typing import Any, Optional

from cachetools import TTLCache

from app.core.cache import hash_key
from app.core.job_store import Job, JobKind
from app.core.logging import get_logger
from app.core.task_queue import BackgroundQueue, ProgressCallback
from app.modules.study.models import (
    GenerationMode,
    GenerationRequest,
    QuizRequest,
    QuizResult,
)
from app.modules.study.service import StudyService

logger = get_logger(__name__)

GENERATED_PROGRESS = 70
MAX_FOLLOW_UPS = 3
FOLLOW_UP_COUNT = 5


def result_cache_key(request: GenerationRequest) -> str:
    return hash_key("flashcards", request.model_dump(mode="json"))


def register_study_handlers(
    queue: BackgroundQueue,
    service: StudyService,
    *,
    result_cache: Optional[TTLCache] = None,
    enqueue_recommended: bool = False,
) -> None:
    async def flashcards(job: Job, progress: ProgressCallback) -> dict[str, Any]:
        request = GenerationRequest.model_validate(job.data)
        result = await service.generate_flashcards(
            request.topic,
            request.count,
            mode=request.mode,
            knowledge_source=request.knowledge_source,
            runtime=request.runtime,
            parent_topic=request.parent_topic,
        )
        await progress(GENERATED_PROGRESS)
        payload = result.model_dump(mode="json")
        if result_cache is not None:
            result_cache[result_cache_key(request)] = payload

        if (
            enqueue_recommended
            and request.mode == GenerationMode.DEEP_DIVE
            and result.recommended_topics
        ):
            for topic in result.recommended_topics[:MAX_FOLLOW_UPS]:
                follow_up = GenerationRequest(
                    topic=topic,
                    count=FOLLOW_UP_COUNT,
                    mode=GenerationMode.STANDARD,
                    knowledge_source=request.knowledge_source,
                    runtime=request.runtime,
                    parent_topic=request.topic,
                )
                job_id = await queue.enqueue(JobKind.FLASHCARDS, follow_up.model_dump(mode="json"))
                logger.info("queued follow-up %s for recommended topic %r", job_id, topic)
        return payload

    async def quiz(job: Job, progress: ProgressCallback) -> dict[str, Any]:
        request = QuizRequest.model_validate(job.data)
        questions = await service.generate_quiz(
            request.topic,
            request.count,
            cards=request.cards,
            preferred_runtime=request.preferred_runtime,
        )
        await progress(GENERATED_PROGRESS)
        topic = request.topic or (request.cards[0].topic if request.cards else "")
        return QuizResult(topic=topic, questions=questions).model_dump(mode="json")

    queue.register(JobKind.FLASHCARDS, flashcards)
    queue.register(JobKind.QUIZ, quiz)

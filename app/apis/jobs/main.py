from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends

from app.apis.deps import get_queue
from app.core.config import settings
from app.core.task_queue import BackgroundQueue
from .schemas import JobStatusResponse, QueueStats


router = APIRouter()


@router.get(
    f"/{settings.app.version}/jobs/{{job_id}}",
    response_model=JobStatusResponse,
    response_model_exclude_none=True,
    tags=["jobs"],
)
async def get_job_status(
    job_id: str, queue: BackgroundQueue = Depends(get_queue)
) -> JobStatusResponse:
    return JobStatusResponse(**await queue.get_status(job_id))


@router.get(
    f"/{settings.app.version}/queue/stats",
    response_model=QueueStats,
    tags=["jobs"],
)
async def queue_stats(queue: BackgroundQueue = Depends(get_queue)) -> QueueStats:
    return QueueStats(**await queue.stats())


@router.get(f"/{settings.app.version}/queue/dead-letters", tags=["jobs"])
async def dead_letters(queue: BackgroundQueue = Depends(get_queue)) -> list[dict[str, Any]]:
    return await queue.dead_letters()

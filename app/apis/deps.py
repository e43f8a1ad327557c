from __future__ import annotations

from typing import Optional

from cachetools import TTLCache
from fastapi import Request

from app.core.metrics import MetricsRecorder
from app.core.task_queue import BackgroundQueue
from app.modules.study.service import StudyService


def get_study_service(request: Request) -> StudyService:
    return request.app.state.study_service


def get_queue(request: Request) -> BackgroundQueue:
    return request.app.state.queue


def get_result_cache(request: Request) -> Optional[TTLCache]:
    return getattr(request.app.state, "result_cache", None)


def get_metrics(request: Request) -> Optional[MetricsRecorder]:
    return getattr(request.app.state, "metrics", None)

"""Wiring of the study service, job queue and their collaborators from settings."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from cachetools import TTLCache

from app.core.cache import build_ttl_cache
from app.core.config import Settings, settings
from app.core.metrics import MetricsRecorder
from app.core.storage import InMemoryStorage
from app.core.task_queue import BackgroundQueue
from app.modules.generation import build_registry, build_search
from app.modules.search.fetcher import SiteFetcher
from app.modules.study.jobs import register_study_handlers
from app.modules.study.retrieval import WebContextBuilder
from app.modules.study.service import StudyService


@dataclass
class Services:
    """Wired collaborators. Metrics live on ``study_service.metrics`` only."""

    study_service: StudyService
    queue: BackgroundQueue
    result_cache: Optional[TTLCache] = None
    uses_database: bool = False


def build_services(config: Settings = settings) -> Services:
    uses_database = config.app.storage_backend.lower() == "postgres"
    if uses_database:
        from app.core.db.base import get_session_maker
        from app.core.db_services import SqlJobStore, SqlStorage

        session_maker = get_session_maker()
        store, storage = SqlJobStore(session_maker), SqlStorage(session_maker)
    else:
        store, storage = None, InMemoryStorage()

    metrics = None
    if config.metrics.enabled:
        metrics = MetricsRecorder(
            config.metrics.directory, max_in_memory=config.metrics.max_in_memory
        )

    retrieval = WebContextBuilder(
        build_search(config), SiteFetcher(config.retrieval), config.retrieval
    )
    service = StudyService(
        build_registry(config),
        retrieval,
        storage=storage,
        metrics=metrics,
        web_cache=build_ttl_cache(
            ttl_seconds=config.retrieval.web_context_ttl,
            max_entries=config.retrieval.web_context_max_entries,
        ),
        config=config.retrieval,
        default_runtime=config.default_runtime,
    )

    queue = BackgroundQueue(
        store,
        concurrency=config.queue.concurrency,
        max_attempts=config.queue.max_attempts,
        backoff_base=config.queue.backoff_base,
    )
    result_cache = build_ttl_cache(
        ttl_seconds=config.queue.result_cache_ttl, max_entries=500
    )
    register_study_handlers(
        queue,
        service,
        result_cache=result_cache,
        enqueue_recommended=config.queue.enqueue_recommended,
    )
    return Services(service, queue, result_cache, uses_database)

"""Retrieval-and-generation pipeline for flashcards and quizzes.

``StudyService`` resolves a backend for the requested runtime, gathers
context (model summary and/or web pages), asks the backend for cards and
hands the raw output to the validator. Steps that may fail without failing
the request (summary, query refinement, sub-topic discovery, search, repair)
go through ``outcome.soft``; card generation itself propagates.
"""

from __future__ import annotations

import random
import time
from typing import Any, Awaitable, Callable, Optional, Union

from cachetools import TTLCache

from app.core.cache import hash_key
from app.core.config import RetrievalSettings
from app.core.logging import get_logger
from app.core.metrics import MetricsRecorder
from app.core.storage import InMemoryStorage, StoragePort
from app.modules.generation.base import GenerationBackend, GenerationError
from app.modules.generation.resolver import BackendRegistry
from app.modules.study import fallback_quiz
from app.modules.study.models import (
    Deck,
    Flashcard,
    GenerationMode,
    GenerationResult,
    KnowledgeSource,
    QuizAttempt,
    QuizQuestion,
    Runtime,
)
from app.modules.study.outcome import soft
from app.modules.study.retrieval import WebContextBuilder, combine_context
from app.modules.study.validation import (
    diversify_option_sets,
    has_duplicate_option_sets,
    normalize_questions,
    validate_and_repair_cards,
)

logger = get_logger(__name__)

QUIZ_ATTEMPTS = 3
MAX_SUB_TOPICS = 5


class StudyService:
    def __init__(
        self,
        registry: BackendRegistry,
        retrieval: WebContextBuilder,
        *,
        storage: Optional[StoragePort] = None,
        metrics: Optional[MetricsRecorder] = None,
        web_cache: Optional[TTLCache] = None,
        config: Optional[RetrievalSettings] = None,
        default_runtime: Union[Runtime, str] = Runtime.OLLAMA,
        rng: Optional[random.Random] = None,
    ) -> None:
        self.registry = registry
        self.retrieval = retrieval
        self.storage = storage if storage is not None else InMemoryStorage()
        self.metrics = metrics
        self.web_cache = web_cache
        self.config = config or retrieval.config
        self.default_runtime = Runtime(default_runtime)
        self.rng = rng or random.Random()

    # -- flashcards ----------------------------------------------------------

    async def generate_flashcards(
        self,
        topic: str,
        count: int,
        mode: GenerationMode = GenerationMode.STANDARD,
        knowledge_source: KnowledgeSource = KnowledgeSource.AI_WEB,
        runtime: Union[Runtime, str, None] = None,
        parent_topic: Optional[str] = None,
    ) -> GenerationResult:
        backend = self.registry.resolve(runtime or self.default_runtime)
        runtime = Runtime(runtime or self.default_runtime)
        mode = GenerationMode(mode)
        knowledge_source = KnowledgeSource(knowledge_source)
        count = max(1, int(count))

        started = time.monotonic()
        logger.info(
            "generating %d cards for %r (mode=%s, source=%s, runtime=%s)",
            count,
            topic,
            mode.value,
            knowledge_source.value,
            runtime.value,
        )
        try:
            if mode == GenerationMode.DEEP_DIVE:
                result = await self._deep_dive(backend, runtime, topic, count, knowledge_source)
            else:
                result = await self._standard(
                    backend, runtime, topic, count, knowledge_source, parent_topic
                )
        except Exception as e:
            logger.error("generation failed for %r: %s", topic, e)
            self._record(runtime, knowledge_source, mode, topic, 0, started, error=e)
            raise

        self._record(runtime, knowledge_source, mode, topic, len(result.cards), started)
        return result

    async def _standard(
        self,
        backend: GenerationBackend,
        runtime: Runtime,
        topic: str,
        count: int,
        knowledge_source: KnowledgeSource,
        parent_topic: Optional[str],
    ) -> GenerationResult:
        summary = ""
        if knowledge_source != KnowledgeSource.WEB_ONLY:
            summary = (await soft("summary", backend.summarize(topic))).value_or("") or ""

        web = ""
        if knowledge_source != KnowledgeSource.AI_ONLY:
            web = await self._web_context(
                backend, topic, parent_topic, self.config.max_sources
            )

        context = combine_context(summary, web)
        if not context:
            logger.info("no context available for %r; generating from topic alone", topic)
        cards = await self._generate_cards(backend, runtime, context or topic, topic, count)
        return GenerationResult(cards=cards)

    async def _deep_dive(
        self,
        backend: GenerationBackend,
        runtime: Runtime,
        topic: str,
        count: int,
        knowledge_source: KnowledgeSource,
    ) -> GenerationResult:
        discovered = await soft("sub-topic discovery", backend.list_sub_topics(topic))
        sub_topics = _unique(discovered.value_or([]) or [])[:MAX_SUB_TOPICS]
        if not sub_topics:
            logger.warning("no sub-topics for %r; using standard mode", topic)
            return await self._standard(backend, runtime, topic, count, knowledge_source, None)

        current, remaining = sub_topics[0], sub_topics[1:]
        logger.info(
            "deep dive into %r (parent %r), %d topics recommended",
            current,
            topic,
            len(remaining),
        )
        web = await self._web_context(backend, current, topic, self.config.deep_dive_sources)
        context = f"DEEP DIVE TOPIC: {current} (Parent: {topic})\n{web}\n---\n"
        cards = await self._generate_cards(backend, runtime, context, current, count)
        return GenerationResult(cards=cards, recommended_topics=remaining)

    async def _generate_cards(
        self,
        backend: GenerationBackend,
        runtime: Runtime,
        context: str,
        topic: str,
        count: int,
    ) -> list[Flashcard]:
        """Ask the resolved backend for cards, then each other registered runtime in turn.

        The last error propagates once every runtime has failed.
        """
        candidates = [backend] + [b for b in self.registry.ordered(runtime) if b is not backend]
        error: Optional[GenerationError] = None
        for candidate in candidates:
            try:
                raw = await candidate.generate_from_text(context, topic, count)
            except GenerationError as e:
                logger.warning("%s card generation failed: %s", candidate.name, e)
                error = e
                continue
            if candidate is not backend:
                logger.info("cards for %r generated by %s", topic, candidate.name)
            return await validate_and_repair_cards(
                raw, topic=topic, count=count, backend=candidate
            )
        raise error

    async def _web_context(
        self,
        backend: GenerationBackend,
        topic: str,
        parent_topic: Optional[str],
        max_sources: int,
    ) -> str:
        key = hash_key("web-context", topic, parent_topic or "")
        if self.web_cache is not None:
            cached = self.web_cache.get(key)
            if cached:
                logger.info("web context cache hit for %r", topic)
                return cached

        refined = await soft("query refinement", backend.refine_query(topic, parent_topic))
        query = refined.value_or(topic) or topic
        searched = await soft("search", self.retrieval.build(query, max_sources))
        web = searched.value_or("") or ""
        if web and self.web_cache is not None:
            self.web_cache[key] = web
        return web

    def _record(
        self,
        runtime: Runtime,
        knowledge_source: KnowledgeSource,
        mode: GenerationMode,
        topic: str,
        card_count: int,
        started: float,
        error: Optional[Exception] = None,
    ) -> None:
        if self.metrics is None:
            return
        self.metrics.record_generation(
            runtime=runtime.value,
            knowledge_source=knowledge_source.value,
            mode=mode.value,
            topic=topic,
            card_count=card_count,
            duration_ms=int((time.monotonic() - started) * 1000),
            success=error is None,
            error_message=str(error) if error is not None else None,
        )

    # -- quiz ----------------------------------------------------------------

    async def generate_quiz(
        self,
        topic: Optional[str],
        count: int,
        cards: Optional[list[Flashcard]] = None,
        preferred_runtime: Union[Runtime, str, None] = None,
    ) -> list[QuizQuestion]:
        preferred = preferred_runtime or self.default_runtime
        topic = topic or (cards[0].topic if cards else "") or "General knowledge"

        if cards:
            local = self.local_quiz(cards, count)
            if local:
                return local
            questions = await self._quiz_from_backends(
                lambda b: b.generate_quiz_from_cards(cards, count), preferred
            )
        else:
            questions = await self._quiz_from_backends(
                lambda b: b.generate_quiz_from_topic(topic, count), preferred
            )

        if not questions:
            logger.warning("no backend produced a quiz for %r; using local fallback", topic)
            return fallback_quiz.quiz_from_topic(topic, count)
        return self._fit_quiz(questions, topic, count)

    def local_quiz(self, cards: list[Flashcard], count: int) -> list[QuizQuestion]:
        """Quiz built from the cards without a model call; empty if the cards are unusable."""
        return fallback_quiz.quiz_from_cards(cards, count, self.rng)

    async def _quiz_from_backends(
        self,
        call: Callable[[GenerationBackend], Awaitable[list[Any]]],
        preferred: Union[Runtime, str],
    ) -> list[QuizQuestion]:
        for backend in self.registry.ordered(preferred):
            best: list[QuizQuestion] = []
            for attempt in range(1, QUIZ_ATTEMPTS + 1):
                try:
                    raw = await call(backend)
                except Exception as e:  # noqa: BLE001
                    logger.warning("%s quiz generation failed: %s", backend.name, e)
                    break
                questions = normalize_questions(raw)
                if questions and not has_duplicate_option_sets(questions):
                    return questions
                if len(questions) > len(best):
                    best = questions
                logger.info(
                    "%s quiz attempt %d/%d rejected (%d questions, duplicate option sets)",
                    backend.name,
                    attempt,
                    QUIZ_ATTEMPTS,
                    len(questions),
                )
            if best:
                return best
        return []

    def _fit_quiz(self, questions: list[QuizQuestion], topic: str, count: int) -> list[QuizQuestion]:
        questions = list(questions[:count])
        if len(questions) < count:
            questions += fallback_quiz.quiz_from_topic(topic, count - len(questions))
        return diversify_option_sets(questions[:count])

    # -- misc ----------------------------------------------------------------

    async def brief_answer(
        self, question: str, context: str, runtime: Union[Runtime, str, None] = None
    ) -> str:
        backend = self.registry.resolve(runtime or self.default_runtime)
        return await backend.brief_answer(question, context)

    async def save_deck(self, deck: Deck) -> str:
        await self.storage.save_deck(deck)
        return deck.id

    async def get_deck_history(self) -> list[Deck]:
        return await self.storage.get_deck_history()

    async def get_deck(self, deck_id: str) -> Optional[Deck]:
        return await self.storage.get_deck(deck_id)

    async def save_quiz_result(self, attempt: QuizAttempt) -> str:
        await self.storage.save_quiz_result(attempt)
        return attempt.id

    async def get_quiz_history(self) -> list[QuizAttempt]:
        return await self.storage.get_quiz_history()


def _unique(items: list[str]) -> list[str]:
    seen: set[str] = set()
    out: list[str] = []
    for item in items:
        s = str(item).strip()
        if s and s not in seen:
            seen.add(s)
            out.append(s)
    return out

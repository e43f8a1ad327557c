"""Runtime registry and the preferred/direct fallback wrappers."""

from __future__ import annotations

from typing import Any, Optional, Union

from app.core.config import Settings
from app.core.logging import get_logger
from app.modules.generation.base import (
    GenerationBackend,
    RawCard,
    RawQuestion,
    SearchProvider,
    UnknownBackendError,
)
from app.modules.study.models import Flashcard, Runtime, SearchResult

logger = get_logger(__name__)


class FallbackBackend:
    """Try ``preferred`` once; on any error repeat the same call on ``direct``."""

    def __init__(self, preferred: GenerationBackend, direct: GenerationBackend) -> None:
        self.preferred = preferred
        self.direct = direct
        self.name = direct.name

    async def _attempt(self, capability: str, *args: Any, **kwargs: Any) -> Any:
        try:
            return await getattr(self.preferred, capability)(*args, **kwargs)
        except Exception as e:  # noqa: BLE001
            logger.warning(
                "%s via %s failed, falling back to %s: %s",
                capability,
                self.preferred.name,
                self.direct.name,
                e,
            )
        return await getattr(self.direct, capability)(*args, **kwargs)

    async def summarize(self, topic: str) -> str:
        return await self._attempt("summarize", topic)

    async def refine_query(self, topic: str, parent_topic: Optional[str] = None) -> str:
        return await self._attempt("refine_query", topic, parent_topic)

    async def list_sub_topics(self, topic: str) -> list[str]:
        return await self._attempt("list_sub_topics", topic)

    async def generate_from_text(self, context: str, topic: str, count: int) -> list[RawCard]:
        return await self._attempt("generate_from_text", context, topic, count)

    async def generate_quiz_from_cards(
        self, cards: list[Flashcard], count: int
    ) -> list[RawQuestion]:
        return await self._attempt("generate_quiz_from_cards", cards, count)

    async def generate_quiz_from_topic(
        self, topic: str, count: int, context: Optional[str] = None
    ) -> list[RawQuestion]:
        return await self._attempt("generate_quiz_from_topic", topic, count, context)

    async def brief_answer(self, question: str, context: str) -> str:
        return await self._attempt("brief_answer", question, context)


class FallbackSearch:
    def __init__(self, preferred: SearchProvider, direct: SearchProvider) -> None:
        self.preferred = preferred
        self.direct = direct

    async def search(self, query: str) -> list[SearchResult]:
        try:
            return await self.preferred.search(query)
        except Exception as e:  # noqa: BLE001
            logger.warning("remote search failed, falling back to direct: %s", e)
        return await self.direct.search(query)


class BackendRegistry:
    """Maps runtime identifiers to backends. Lookups never construct anything."""

    def __init__(self) -> None:
        self._backends: dict[Runtime, GenerationBackend] = {}

    def register(self, runtime: Runtime, backend: GenerationBackend) -> None:
        self._backends[Runtime(runtime)] = backend

    def resolve(self, runtime: Union[Runtime, str]) -> GenerationBackend:
        try:
            key = Runtime(runtime)
        except ValueError as e:
            raise UnknownBackendError(f"unknown runtime: {runtime}") from e
        backend = self._backends.get(key)
        if backend is None:
            raise UnknownBackendError(f"runtime not registered: {key.value}")
        return backend

    def runtimes(self) -> list[Runtime]:
        return list(self._backends)

    def ordered(self, preferred: Union[Runtime, str, None]) -> list[GenerationBackend]:
        """Preferred backend first (when registered), then the others in registration order."""
        out: list[GenerationBackend] = []
        if preferred is not None:
            try:
                out.append(self.resolve(preferred))
            except UnknownBackendError:
                logger.warning("preferred runtime %s not registered", preferred)
        for backend in self._backends.values():
            if backend not in out:
                out.append(backend)
        return out


def build_registry(config: Settings) -> BackendRegistry:
    from app.modules.generation.hosted import HostedBackend
    from app.modules.generation.ollama import OllamaBackend
    from app.modules.generation.remote import RemoteBackend, RemoteToolClient

    registry = BackendRegistry()
    ollama: GenerationBackend = OllamaBackend(config.ollama)
    if config.coordinator.enabled:
        tools = RemoteToolClient(config.coordinator)
        ollama = FallbackBackend(RemoteBackend(tools, config.ollama), ollama)
    registry.register(Runtime.OLLAMA, ollama)

    if config.hosted_enabled:
        registry.register(Runtime.HOSTED, HostedBackend(config))
    else:
        logger.info("hosted runtime disabled: no API key for %s", config.model_provider)
    return registry


def build_search(config: Settings) -> SearchProvider:
    from app.modules.generation.remote import RemoteSearch, RemoteToolClient
    from app.modules.search.serper import SerperClient

    direct = SerperClient(config.search)
    if config.coordinator.enabled:
        return FallbackSearch(RemoteSearch(RemoteToolClient(config.coordinator)), direct)
    return direct

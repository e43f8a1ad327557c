"""Backend contract shared by every generation runtime.

A backend turns prompts into raw study material. It never validates counts or
shapes beyond parsing; ``app.modules.study.validation`` owns that. Every
method is async and may raise any ``GenerationError``.
"""

from __future__ import annotations

from typing import Any, Optional, Protocol, runtime_checkable

from app.modules.study.models import Flashcard, SearchResult

RawCard = dict[str, Any]
RawQuestion = dict[str, Any]


class GenerationError(Exception):
    """Base class for backend failures."""


class BackendUnavailableError(GenerationError):
    """Transport failure, timeout or non-2xx response from a backend."""


class MalformedOutputError(GenerationError):
    """The backend answered but nothing usable could be parsed."""


class UnknownBackendError(GenerationError):
    """Requested runtime is not registered."""


@runtime_checkable
class GenerationBackend(Protocol):
    name: str

    async def summarize(self, topic: str) -> str: ...

    async def refine_query(self, topic: str, parent_topic: Optional[str] = None) -> str: ...

    async def list_sub_topics(self, topic: str) -> list[str]: ...

    async def generate_from_text(
        self, context: str, topic: str, count: int
    ) -> list[RawCard]: ...

    async def generate_quiz_from_cards(
        self, cards: list[Flashcard], count: int
    ) -> list[RawQuestion]: ...

    async def generate_quiz_from_topic(
        self, topic: str, count: int, context: Optional[str] = None
    ) -> list[RawQuestion]: ...

    async def brief_answer(self, question: str, context: str) -> str: ...


@runtime_checkable
class SearchProvider(Protocol):
    async def search(self, query: str) -> list[SearchResult]: ...

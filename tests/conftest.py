import asyncio
import os
import random
from typing import Any, Optional

import pytest

os.environ.setdefault("MODE", "test")
os.environ.setdefault("METRICS_ENABLED", "false")

from app.core.config import RetrievalSettings  # noqa: E402
from app.modules.generation.resolver import BackendRegistry  # noqa: E402
from app.modules.study.models import Runtime, SearchResult  # noqa: E402
from app.modules.study.retrieval import WebContextBuilder  # noqa: E402
from app.modules.study.service import StudyService  # noqa: E402


def numbered_cards(context: str, topic: str, count: int) -> list[dict[str, str]]:
    return [
        {"question": f"What is fact {i} of {topic}?", "answer": f"Fact number {i} about {topic}."}
        for i in range(count)
    ]


def numbered_questions(topic: str, count: int) -> list[dict[str, Any]]:
    return [
        {
            "question": f"Question {i} about {topic}?",
            "options": [f"right {i}", f"wrong a{i}", f"wrong b{i}", f"wrong c{i}"],
            "correctAnswer": f"right {i}",
        }
        for i in range(count)
    ]


class Script:
    """Successive results for successive calls; the last step repeats."""

    def __init__(self, *steps: Any) -> None:
        self.steps = list(steps)

    def next(self) -> Any:
        return self.steps.pop(0) if len(self.steps) > 1 else self.steps[0]


class FakeBackend:
    """Scriptable backend. Values may be plain results, callables or exceptions."""

    def __init__(
        self,
        name: str = "ollama",
        *,
        summary: Any = "A short summary of the topic.",
        query: Any = None,
        sub_topics: Any = None,
        cards: Any = numbered_cards,
        quiz: Any = None,
        brief: Any = "A brief answer.",
    ) -> None:
        self.name = name
        self.summary = summary
        self.query = query
        self.sub_topics = sub_topics if sub_topics is not None else []
        self.cards = cards
        self.quiz = quiz
        self.brief = brief
        self.calls: list[tuple[str, tuple]] = []

    def _resolve(self, capability: str, value: Any, *args: Any) -> Any:
        self.calls.append((capability, args))
        if isinstance(value, BaseException):
            raise value
        if isinstance(value, Script):
            value = value.next()
            if isinstance(value, BaseException):
                raise value
        if callable(value):
            return value(*args)
        return value

    def called(self, capability: str) -> int:
        return sum(1 for name, _ in self.calls if name == capability)

    async def summarize(self, topic: str) -> str:
        return self._resolve("summarize", self.summary, topic)

    async def refine_query(self, topic: str, parent_topic: Optional[str] = None) -> str:
        value = self.query if self.query is not None else f"{topic} explained"
        return self._resolve("refine_query", value, topic, parent_topic)

    async def list_sub_topics(self, topic: str) -> list[str]:
        return self._resolve("list_sub_topics", self.sub_topics, topic)

    async def generate_from_text(self, context: str, topic: str, count: int):
        return self._resolve("generate_from_text", self.cards, context, topic, count)

    async def generate_quiz_from_cards(self, cards, count):
        value = self.quiz if self.quiz is not None else (lambda c, n: numbered_questions("cards", n))
        return self._resolve("generate_quiz_from_cards", value, cards, count)

    async def generate_quiz_from_topic(self, topic, count, context=None):
        value = self.quiz if self.quiz is not None else (lambda t, n, c: numbered_questions(t, n))
        return self._resolve("generate_quiz_from_topic", value, topic, count, context)

    async def brief_answer(self, question: str, context: str) -> str:
        return self._resolve("brief_answer", self.brief, question, context)


class FakeSearch:
    def __init__(self, results: Any = None) -> None:
        self.results = results if results is not None else []
        self.queries: list[str] = []

    async def search(self, query: str) -> list[SearchResult]:
        self.queries.append(query)
        if isinstance(self.results, BaseException):
            raise self.results
        return list(self.results)


class FakeFetcher:
    def __init__(self, pages: Optional[dict[str, Any]] = None, default: str = "Page text.") -> None:
        self.pages = pages or {}
        self.default = default
        self.urls: list[str] = []

    async def fetch(self, url: str) -> str:
        self.urls.append(url)
        value = self.pages.get(url, self.default)
        if isinstance(value, BaseException):
            raise value
        if isinstance(value, (int, float)):
            await asyncio.sleep(value)
            return "slow page"
        return value


def results_for(*links: str) -> list[SearchResult]:
    return [SearchResult(title=f"Result {i}", link=link) for i, link in enumerate(links)]


def make_service(
    backend: Optional[FakeBackend] = None,
    *,
    search: Optional[FakeSearch] = None,
    fetcher: Optional[FakeFetcher] = None,
    extra: Optional[dict[Runtime, FakeBackend]] = None,
    metrics=None,
    web_cache=None,
    config: Optional[RetrievalSettings] = None,
) -> StudyService:
    registry = BackendRegistry()
    registry.register(Runtime.OLLAMA, backend or FakeBackend())
    for runtime, other in (extra or {}).items():
        registry.register(runtime, other)
    config = config or RetrievalSettings(FETCH_TIMEOUT=0.5)
    retrieval = WebContextBuilder(search or FakeSearch(), fetcher or FakeFetcher(), config)
    return StudyService(
        registry,
        retrieval,
        metrics=metrics,
        web_cache=web_cache,
        config=config,
        rng=random.Random(7),
    )


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def search() -> FakeSearch:
    return FakeSearch(
        results_for(
            "https://a.example.com/1",
            "https://a.example.com/2",
            "https://b.example.com/1",
            "https://c.example.com/1",
        )
    )


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher()

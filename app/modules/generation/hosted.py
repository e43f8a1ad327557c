"""Hosted-API backend built on pydantic-ai agents.

The model provider (Google Gemini or OpenRouter) is chosen from settings and
built lazily so that importing this module never needs credentials. Cards and
quiz questions use structured outputs; free-text capabilities use plain
string agents.
"""

from __future__ import annotations

from typing import Any, Optional, TypeVar

from pydantic import BaseModel, Field
from pydantic_ai import Agent
from pydantic_ai.exceptions import UnexpectedModelBehavior

from app.core.config import Settings
from app.core.logging import get_logger
from app.modules.generation import parsing, prompts
from app.modules.generation.base import (
    BackendUnavailableError,
    MalformedOutputError,
    RawCard,
    RawQuestion,
)
from app.modules.study.models import Flashcard

logger = get_logger(__name__)

T = TypeVar("T")


class HostedCard(BaseModel):
    question: str
    answer: str


class HostedCardSet(BaseModel):
    flashcards: list[HostedCard] = Field(default_factory=list)


class HostedQuestion(BaseModel):
    question: str
    options: list[str] = Field(default_factory=list)
    correct_answer: str
    explanation: Optional[str] = None
    difficulty: Optional[str] = None


class HostedQuestionSet(BaseModel):
    questions: list[HostedQuestion] = Field(default_factory=list)


class HostedTopicList(BaseModel):
    topics: list[str] = Field(default_factory=list)


def _build_google_model(config: Settings):
    """Build Google Gemini model for pydantic-ai (lazy import)."""
    from pydantic_ai.models.google import GoogleModel
    from pydantic_ai.providers.google import GoogleProvider

    if not config.gemini_api_key:
        raise BackendUnavailableError(
            "Gemini API key not configured. Set GEMINI_API_KEY in your environment."
        )
    provider = GoogleProvider(api_key=config.gemini_api_key)
    return GoogleModel(config.hosted_model, provider=provider)


def _build_openrouter_model(config: Settings):
    """Build OpenRouter model via OpenAI-compatible provider (lazy import)."""
    from pydantic_ai.models.openai import OpenAIChatModel
    from pydantic_ai.providers.openai import OpenAIProvider

    if not config.openrouter_api_key:
        raise BackendUnavailableError(
            "OpenRouter API key not configured. Set OPENROUTER_API_KEY in your environment."
        )

    provider = OpenAIProvider(
        api_key=config.openrouter_api_key,
        base_url="https://openrouter.ai/api/v1",
    )
    return OpenAIChatModel(config.openrouter_model, provider=provider)


def _build_model_by_settings(config: Settings):
    provider = (config.model_provider or "google").lower()
    if provider == "openrouter":
        return _build_openrouter_model(config)
    return _build_google_model(config)


class HostedBackend:
    name = "hosted"

    def __init__(self, config: Settings, *, model: Any = None, retries: int = 2) -> None:
        self._config = config
        self._model = model
        self.retries = retries

    def _get_model(self):
        if self._model is None:
            self._model = _build_model_by_settings(self._config)
        return self._model

    async def _run(self, output_type: type[T], system_prompt: str, instruction: str) -> T:
        agent: Agent[None, Any] = Agent(
            model=self._get_model(),
            output_type=output_type,
            system_prompt=system_prompt,
            retries=self.retries,
        )
        try:
            res = await agent.run(instruction)
        except UnexpectedModelBehavior as e:
            raise MalformedOutputError(f"hosted model output rejected: {e}") from e
        except Exception as e:
            raise BackendUnavailableError(f"hosted model call failed: {e}") from e
        return res.output

    async def summarize(self, topic: str) -> str:
        text = (await self._run(str, prompts.SUMMARY_SYSTEM_PROMPT, prompts.summary_prompt(topic))).strip()
        if not text:
            raise MalformedOutputError("empty summary")
        return text

    async def refine_query(self, topic: str, parent_topic: Optional[str] = None) -> str:
        text = await self._run(
            str, prompts.QUERY_SYSTEM_PROMPT, prompts.query_prompt(topic, parent_topic)
        )
        query = parsing.first_line(text)
        if not query:
            raise MalformedOutputError("empty search query")
        return query

    async def list_sub_topics(self, topic: str) -> list[str]:
        out = await self._run(
            HostedTopicList, prompts.SUBTOPICS_SYSTEM_PROMPT, prompts.sub_topics_prompt(topic)
        )
        return [t.strip() for t in out.topics if t and t.strip()]

    async def generate_from_text(self, context: str, topic: str, count: int) -> list[RawCard]:
        out = await self._run(
            HostedCardSet,
            prompts.FLASHCARDS_SYSTEM_PROMPT,
            prompts.cards_from_text_prompt(context, topic, count),
        )
        return [c.model_dump() for c in out.flashcards]

    async def generate_quiz_from_cards(
        self, cards: list[Flashcard], count: int
    ) -> list[RawQuestion]:
        out = await self._run(
            HostedQuestionSet,
            prompts.QUIZ_SYSTEM_PROMPT,
            prompts.quiz_from_cards_prompt(cards, count),
        )
        return [q.model_dump() for q in out.questions]

    async def generate_quiz_from_topic(
        self, topic: str, count: int, context: Optional[str] = None
    ) -> list[RawQuestion]:
        out = await self._run(
            HostedQuestionSet,
            prompts.QUIZ_SYSTEM_PROMPT,
            prompts.quiz_from_topic_prompt(topic, count, context),
        )
        return [q.model_dump() for q in out.questions]

    async def brief_answer(self, question: str, context: str) -> str:
        return (
            await self._run(
                str,
                prompts.BRIEF_ANSWER_SYSTEM_PROMPT,
                prompts.brief_answer_prompt(question, context),
            )
        ).strip()

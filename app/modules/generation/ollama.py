"""Local-runtime backend talking to an Ollama server over HTTP.

Replies are free text, so every structured capability goes through
``app.modules.generation.parsing``. When a reply cannot be parsed the prompt
is re-sent with a stricter suffix, up to ``parse_retries`` extra times.
Replies that parse (or pass the text checks) are cached by prompt hash;
quiz replies are not cached.
"""

from __future__ import annotations

from typing import Callable, Optional

import httpx
from cachetools import TTLCache

from app.core.cache import build_ttl_cache, hash_key
from app.core.config import OllamaSettings
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


class OllamaBackend:
    name = "ollama"

    def __init__(
        self,
        config: OllamaSettings,
        *,
        client: Optional[httpx.AsyncClient] = None,
        cache: Optional[TTLCache] = None,
    ) -> None:
        self.base_url = config.base_url.rstrip("/")
        self.model = config.model
        self.timeout = config.timeout
        self.parse_retries = max(0, int(config.parse_retries))
        self._client = client
        self._cache = cache if cache is not None else build_ttl_cache(
            ttl_seconds=config.cache_ttl, max_entries=256
        )

    def _lookup(self, prompt: str, system: str) -> Optional[str]:
        key = hash_key(self.model, system, prompt)
        cached = self._cache.get(key)
        if cached is not None:
            logger.debug("Ollama cache hit %s", key)
        return cached

    def _remember(self, prompt: str, system: str, text: str) -> None:
        self._cache[hash_key(self.model, system, prompt)] = text

    async def _call(self, prompt: str, system: str) -> str:
        payload = {
            "model": self.model,
            "prompt": f"{system}\n\n{prompt}",
            "stream": False,
        }
        url = f"{self.base_url}/api/generate"
        try:
            if self._client is not None:
                res = await self._client.post(url, json=payload, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    res = await client.post(url, json=payload)
            res.raise_for_status()
            body = res.json()
        except httpx.HTTPError as e:
            raise BackendUnavailableError(f"Ollama call failed: {e}") from e
        except ValueError as e:
            raise BackendUnavailableError(f"Ollama returned invalid JSON: {e}") from e

        if not isinstance(body, dict):
            raise BackendUnavailableError(
                f"Ollama returned {type(body).__name__} instead of an object"
            )
        return str(body.get("response") or "").strip()

    async def _call_text(
        self, prompt: str, system: str, accept: Callable[[str], str] = str
    ) -> str:
        cached = self._lookup(prompt, system)
        if cached is not None:
            return cached
        value = accept(await self._call(prompt, system))
        if value:
            self._remember(prompt, system, value)
        return value

    async def _call_parsed(
        self,
        prompt: str,
        system: str,
        parse: Callable[[str], list],
        *,
        cacheable: bool = True,
    ) -> list:
        cached = self._lookup(prompt, system) if cacheable else None
        if cached is not None:
            items = parse(cached)
            if items:
                return items

        attempt_prompt = prompt
        for attempt in range(self.parse_retries + 1):
            text = await self._call(attempt_prompt, system)
            items = parse(text)
            if items:
                if cacheable:
                    self._remember(prompt, system, text)
                return items
            logger.warning(
                "Ollama reply not parseable (attempt %d/%d)",
                attempt + 1,
                self.parse_retries + 1,
            )
            attempt_prompt = prompt + prompts.STRICT_SUFFIX
        raise MalformedOutputError("Ollama reply contained no parseable items")

    async def summarize(self, topic: str) -> str:
        return await self._call_text(
            prompts.summary_prompt(topic), prompts.SUMMARY_SYSTEM_PROMPT, _require("summary")
        )

    async def refine_query(self, topic: str, parent_topic: Optional[str] = None) -> str:
        return await self._call_text(
            prompts.query_prompt(topic, parent_topic),
            prompts.QUERY_SYSTEM_PROMPT,
            lambda text: _require("search query")(parsing.first_line(text)),
        )

    async def list_sub_topics(self, topic: str) -> list[str]:
        return await self._call_parsed(
            prompts.sub_topics_prompt(topic),
            prompts.SUBTOPICS_SYSTEM_PROMPT,
            parsing.parse_string_list,
        )

    async def generate_from_text(self, context: str, topic: str, count: int) -> list[RawCard]:
        return await self._call_parsed(
            prompts.cards_from_text_prompt(context, topic, count),
            prompts.FLASHCARDS_SYSTEM_PROMPT,
            parsing.parse_cards,
        )

    # Quiz replies are never cached: a repeated call is a request for new options.
    async def generate_quiz_from_cards(
        self, cards: list[Flashcard], count: int
    ) -> list[RawQuestion]:
        return await self._call_parsed(
            prompts.quiz_from_cards_prompt(cards, count),
            prompts.QUIZ_SYSTEM_PROMPT,
            parsing.parse_questions,
            cacheable=False,
        )

    async def generate_quiz_from_topic(
        self, topic: str, count: int, context: Optional[str] = None
    ) -> list[RawQuestion]:
        return await self._call_parsed(
            prompts.quiz_from_topic_prompt(topic, count, context),
            prompts.QUIZ_SYSTEM_PROMPT,
            parsing.parse_questions,
            cacheable=False,
        )

    async def brief_answer(self, question: str, context: str) -> str:
        return await self._call_text(
            prompts.brief_answer_prompt(question, context),
            prompts.BRIEF_ANSWER_SYSTEM_PROMPT,
        )


def _require(what: str) -> Callable[[str], str]:
    def accept(text: str) -> str:
        if not text:
            raise MalformedOutputError(f"empty {what}")
        return text

    return accept

"""Web context assembly: search, pick diverse sources, fetch them concurrently."""

from __future__ import annotations

import asyncio
from typing import Optional, Protocol
from urllib.parse import urlparse

from app.core.config import RetrievalSettings
from app.core.logging import get_logger
from app.modules.generation.base import SearchProvider
from app.modules.study.models import SearchResult

logger = get_logger(__name__)


class PageFetcher(Protocol):
    async def fetch(self, url: str) -> str: ...


def dedupe_by_host(results: list[SearchResult], limit: int) -> list[SearchResult]:
    """First result per hostname wins; results with unparsable links are dropped."""
    seen: set[str] = set()
    out: list[SearchResult] = []
    for r in results:
        host = urlparse(r.link).hostname
        if not host or host in seen:
            continue
        seen.add(host)
        out.append(r)
        if len(out) >= limit:
            break
    return out


def format_source(url: str, text: str, limit: int) -> str:
    return f"SOURCE ({url}):\n{text[:limit]}\n---\n"


def combine_context(summary: str, web: str) -> str:
    parts = []
    if summary:
        parts.append(f"AI KNOWLEDGE SUMMARY:\n{summary}")
    if web:
        parts.append(f"WEB CONTENT:\n{web}")
    return "\n\n".join(parts)


class WebContextBuilder:
    def __init__(
        self,
        search: SearchProvider,
        fetcher: PageFetcher,
        config: Optional[RetrievalSettings] = None,
    ) -> None:
        self.search = search
        self.fetcher = fetcher
        self.config = config or RetrievalSettings()

    async def _fetch_one(self, url: str) -> str:
        try:
            text = await asyncio.wait_for(
                self.fetcher.fetch(url), timeout=self.config.fetch_timeout
            )
        except asyncio.TimeoutError:
            logger.warning("fetch %s timed out after %ss", url, self.config.fetch_timeout)
            return ""
        except Exception as e:  # noqa: BLE001
            logger.warning("fetch %s failed: %s", url, e)
            return ""
        if not text:
            return ""
        return format_source(url, text, self.config.site_char_limit)

    async def fetch_sources(self, sources: list[SearchResult]) -> str:
        pages = await asyncio.gather(*(self._fetch_one(s.link) for s in sources))
        return "\n".join(p for p in pages if p)

    async def build(self, query: str, max_sources: int) -> str:
        """Search and fetch; search errors propagate, fetch errors are absorbed per site."""
        results = await self.search.search(query)
        sources = dedupe_by_host(results, max_sources)
        logger.info(
            "query %r: %d results, %d unique-host sources", query, len(results), len(sources)
        )
        if not sources:
            return ""
        context = await self.fetch_sources(sources)
        logger.info("web context: %d chars", len(context))
        return context

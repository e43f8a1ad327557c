"""Direct client for the Serper web search API."""

from __future__ import annotations

from typing import Optional

import httpx

from app.core.config import SearchSettings
from app.core.logging import get_logger
from app.modules.study.models import SearchResult

logger = get_logger(__name__)


class SearchError(Exception):
    """Search provider call failed (transport, HTTP status or payload)."""


class SerperClient:
    def __init__(
        self, config: SearchSettings, *, client: Optional[httpx.AsyncClient] = None
    ) -> None:
        self.api_key = config.serper_api_key
        self.url = config.serper_url
        self.timeout = config.timeout
        self._client = client

    async def search(self, query: str) -> list[SearchResult]:
        if not self.api_key:
            logger.warning("SERPER_API_KEY not set; skipping web search")
            return []

        headers = {"X-API-KEY": self.api_key, "Content-Type": "application/json"}
        try:
            if self._client is not None:
                res = await self._client.post(
                    self.url, json={"q": query}, headers=headers, timeout=self.timeout
                )
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    res = await client.post(self.url, json={"q": query}, headers=headers)
            res.raise_for_status()
            data = res.json()
        except httpx.HTTPError as e:
            raise SearchError(f"Serper search failed: {e}") from e
        except ValueError as e:
            raise SearchError(f"Serper returned invalid JSON: {e}") from e

        out: list[SearchResult] = []
        for item in data.get("organic") or []:
            link = item.get("link")
            if not link:
                continue
            out.append(
                SearchResult(
                    title=item.get("title") or "",
                    link=link,
                    snippet=item.get("snippet") or "",
                )
            )
        logger.info("Serper returned %d results for %r", len(out), query)
        return out

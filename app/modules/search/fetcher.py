"""Fetch a web page and reduce it to readable text."""

from __future__ import annotations

import re
from typing import Optional

import httpx
from bs4 import BeautifulSoup

from app.core.config import RetrievalSettings
from app.core.logging import get_logger

logger = get_logger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; studygen/1.0)"
_WS_RE = re.compile(r"\s+")


class FetchError(Exception):
    """Site could not be fetched or yielded no text."""


def html_to_text(html: str) -> str:
    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "nav", "footer", "header", "noscript", "iframe"]):
        tag.decompose()
    root = soup.body or soup
    return _WS_RE.sub(" ", root.get_text(separator=" ")).strip()


class SiteFetcher:
    """Downloads at most ``fetch_max_bytes`` of a page and strips it to text.

    The per-site time limit is applied by the caller with ``asyncio.wait_for``
    so one slow site never delays the others beyond their own limit.
    """

    def __init__(
        self, config: RetrievalSettings, *, client: Optional[httpx.AsyncClient] = None
    ) -> None:
        self.timeout = config.fetch_timeout
        self.max_bytes = config.fetch_max_bytes
        self._client = client

    async def _read(self, client: httpx.AsyncClient, url: str) -> str:
        async with client.stream("GET", url, headers={"User-Agent": USER_AGENT}) as res:
            res.raise_for_status()
            chunks: list[bytes] = []
            size = 0
            async for chunk in res.aiter_bytes():
                chunks.append(chunk)
                size += len(chunk)
                if size >= self.max_bytes:
                    break
            encoding = res.encoding or "utf-8"
        return b"".join(chunks)[: self.max_bytes].decode(encoding, errors="ignore")

    async def fetch(self, url: str) -> str:
        try:
            if self._client is not None:
                html = await self._read(self._client, url)
            else:
                async with httpx.AsyncClient(
                    timeout=self.timeout, follow_redirects=True
                ) as client:
                    html = await self._read(client, url)
        except httpx.HTTPError as e:
            raise FetchError(f"fetch {url} failed: {e}") from e

        text = html_to_text(html)
        if not text:
            raise FetchError(f"no text extracted from {url}")
        return text

"""Remote tool service client.

The coordination service exposes named tools over HTTP
(``POST {url}/tools/call`` with ``{"tool": ..., "arguments": {...}}``). It is
tried before the direct backends when ``COORDINATOR_ENABLED`` is set; any
failure here makes the resolver fall through to the direct path.
"""

from __future__ import annotations

from typing import Any, Optional

import httpx

from app.core.config import CoordinatorSettings, OllamaSettings
from app.core.logging import get_logger
from app.modules.generation.base import BackendUnavailableError, MalformedOutputError
from app.modules.generation.ollama import OllamaBackend
from app.modules.study.models import SearchResult

logger = get_logger(__name__)

TEXT_TOOL = "generate_with_ollama"
SEARCH_TOOL = "search_web"


class RemoteToolClient:
    def __init__(
        self, config: CoordinatorSettings, *, client: Optional[httpx.AsyncClient] = None
    ) -> None:
        self.url = config.url.rstrip("/")
        self.timeout = config.timeout
        self._client = client

    async def call_tool(self, name: str, arguments: dict[str, Any]) -> Any:
        payload = {"tool": name, "arguments": arguments}
        url = f"{self.url}/tools/call"
        try:
            if self._client is not None:
                res = await self._client.post(url, json=payload, timeout=self.timeout)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    res = await client.post(url, json=payload)
            res.raise_for_status()
            body = res.json()
        except httpx.HTTPError as e:
            raise BackendUnavailableError(f"tool {name} failed: {e}") from e
        except ValueError as e:
            raise MalformedOutputError(f"tool {name} returned invalid JSON: {e}") from e

        if isinstance(body, dict) and body.get("isError"):
            raise BackendUnavailableError(f"tool {name} reported an error: {body.get('content')}")
        return body.get("result") if isinstance(body, dict) else body


class RemoteBackend(OllamaBackend):
    """Local-runtime prompts executed through the coordination service."""

    name = "remote"

    def __init__(self, tools: RemoteToolClient, config: OllamaSettings) -> None:
        super().__init__(config)
        self.tools = tools

    async def _call(self, prompt: str, system: str) -> str:
        result = await self.tools.call_tool(
            TEXT_TOOL, {"model": self.model, "prompt": f"{system}\n\n{prompt}"}
        )
        if isinstance(result, dict):
            result = result.get("response") or result.get("text") or ""
        return str(result or "").strip()


class RemoteSearch:
    def __init__(self, tools: RemoteToolClient) -> None:
        self.tools = tools

    async def search(self, query: str) -> list[SearchResult]:
        result = await self.tools.call_tool(SEARCH_TOOL, {"query": query})
        items = result.get("results", []) if isinstance(result, dict) else result
        out = []
        for item in items or []:
            if isinstance(item, dict) and item.get("link"):
                out.append(
                    SearchResult(
                        title=str(item.get("title") or ""),
                        link=str(item["link"]),
                        snippet=str(item.get("snippet") or ""),
                    )
                )
        return out

import asyncio
import json

import httpx
import pytest

from app.core.config import (
    CoordinatorSettings,
    OllamaSettings,
    RetrievalSettings,
    SearchSettings,
)
from app.modules.generation import prompts
from app.modules.generation.base import BackendUnavailableError, MalformedOutputError
from app.modules.generation.ollama import OllamaBackend
from app.modules.generation.remote import RemoteBackend, RemoteSearch, RemoteToolClient
from app.modules.search.fetcher import FetchError, SiteFetcher, html_to_text
from app.modules.search.serper import SearchError, SerperClient

from conftest import make_service, numbered_questions

CARDS_REPLY = 'JSON_START [{"question": "What is osmosis?", "answer": "Water diffusion"}] JSON_END'


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class Recorder:
    """Mock transport handler replaying canned ``/api/generate`` replies."""

    def __init__(self, *replies):
        self.replies = list(replies)
        self.requests: list[dict] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(json.loads(request.content))
        reply = self.replies.pop(0) if len(self.replies) > 1 else self.replies[0]
        if isinstance(reply, httpx.Response):
            return reply
        return httpx.Response(200, json={"response": reply})


def _ollama(recorder, **overrides) -> OllamaBackend:
    config = OllamaSettings(OLLAMA_BASE_URL="http://ollama:11434/", **overrides)
    return OllamaBackend(config, client=_client(recorder))


def test_ollama_sends_non_streaming_prompt_with_system_text():
    recorder = Recorder(CARDS_REPLY)
    backend = _ollama(recorder)
    cards = asyncio.run(backend.generate_from_text("ctx", "Osmosis", 1))

    assert cards == [{"question": "What is osmosis?", "answer": "Water diffusion"}]
    [payload] = recorder.requests
    assert payload["stream"] is False
    assert payload["model"] == "llama3.2:latest"
    assert payload["prompt"].startswith(prompts.FLASHCARDS_SYSTEM_PROMPT)


def test_ollama_replies_are_cached_by_prompt():
    recorder = Recorder("Osmosis is the movement of water.")
    backend = _ollama(recorder)

    async def twice():
        return await backend.summarize("Osmosis"), await backend.summarize("Osmosis")

    first, second = asyncio.run(twice())
    assert first == second
    assert len(recorder.requests) == 1


def test_ollama_retries_unparseable_reply_with_strict_suffix():
    recorder = Recorder("I cannot format that.", CARDS_REPLY)
    backend = _ollama(recorder)
    cards = asyncio.run(backend.generate_from_text("ctx", "Osmosis", 1))

    assert len(cards) == 1
    assert len(recorder.requests) == 2
    assert recorder.requests[1]["prompt"].endswith(prompts.STRICT_SUFFIX)


def test_ollama_gives_up_after_parse_retries():
    recorder = Recorder("still prose")
    backend = _ollama(recorder, OLLAMA_PARSE_RETRIES=1)
    with pytest.raises(MalformedOutputError):
        asyncio.run(backend.generate_from_text("ctx", "Osmosis", 3))
    assert len(recorder.requests) == 2


def test_ollama_default_retries_reach_the_model_each_time():
    recorder = Recorder("prose", "more prose", CARDS_REPLY)
    backend = _ollama(recorder)
    cards = asyncio.run(backend.generate_from_text("ctx", "Osmosis", 1))

    assert len(cards) == 1
    assert len(recorder.requests) == 3


def test_ollama_unparseable_reply_is_not_cached():
    recorder = Recorder("prose", "prose", CARDS_REPLY)
    backend = _ollama(recorder, OLLAMA_PARSE_RETRIES=1)

    async def twice():
        with pytest.raises(MalformedOutputError):
            await backend.generate_from_text("ctx", "Osmosis", 1)
        return await backend.generate_from_text("ctx", "Osmosis", 1)

    cards = asyncio.run(twice())
    assert len(cards) == 1
    assert len(recorder.requests) == 3


def test_ollama_parsed_cards_are_cached():
    recorder = Recorder(CARDS_REPLY)
    backend = _ollama(recorder)

    async def twice():
        await backend.generate_from_text("ctx", "Osmosis", 1)
        return await backend.generate_from_text("ctx", "Osmosis", 1)

    assert len(asyncio.run(twice())) == 1
    assert len(recorder.requests) == 1


def test_ollama_quiz_calls_always_reach_the_model():
    question = {"question": "Q?", "options": ["a", "b", "c", "d"], "correctAnswer": "a"}
    recorder = Recorder(f"JSON_START {json.dumps([question])} JSON_END")
    backend = _ollama(recorder)

    async def twice():
        await backend.generate_quiz_from_topic("Osmosis", 1)
        return await backend.generate_quiz_from_topic("Osmosis", 1)

    asyncio.run(twice())
    assert len(recorder.requests) == 2


def test_quiz_diversity_retry_reaches_ollama():
    repeated = [
        {"question": f"Q{i}?", "options": ["a", "b", "c", "d"], "correctAnswer": "a"} for i in range(3)
    ]
    recorder = Recorder(
        f"JSON_START {json.dumps(repeated)} JSON_END",
        f"JSON_START {json.dumps(numbered_questions('Osmosis', 3))} JSON_END",
    )
    service = make_service(_ollama(recorder))
    questions = asyncio.run(service.generate_quiz("Osmosis", 3))

    assert len(recorder.requests) == 2
    assert [q.correct_answer for q in questions] == ["right 0", "right 1", "right 2"]


@pytest.mark.parametrize("body", [["x"], "plain", 42])
def test_ollama_non_object_body_is_backend_unavailable(body):
    backend = _ollama(Recorder(httpx.Response(200, json=body)))
    with pytest.raises(BackendUnavailableError):
        asyncio.run(backend.summarize("Osmosis"))


def test_ollama_http_error_is_backend_unavailable():
    backend = _ollama(Recorder(httpx.Response(500, text="boom")))
    with pytest.raises(BackendUnavailableError):
        asyncio.run(backend.brief_answer("Why?", "ctx"))


def test_ollama_refine_query_takes_first_line():
    backend = _ollama(Recorder('"osmosis water potential"\nExplanation: ...'))
    assert asyncio.run(backend.refine_query("Osmosis")) == "osmosis water potential"


def test_serper_without_key_returns_nothing():
    calls = []
    client = SerperClient(
        SearchSettings(SERPER_API_KEY=None),
        client=_client(lambda r: calls.append(r) or httpx.Response(200, json={})),
    )
    assert asyncio.run(client.search("osmosis")) == []
    assert calls == []


def test_serper_parses_organic_results():
    def handler(request):
        assert request.headers["X-API-KEY"] == "k"
        assert json.loads(request.content) == {"q": "osmosis"}
        return httpx.Response(
            200,
            json={
                "organic": [
                    {"title": "Osmosis", "link": "https://a.org/o", "snippet": "water"},
                    {"title": "No link"},
                ]
            },
        )

    client = SerperClient(SearchSettings(SERPER_API_KEY="k"), client=_client(handler))
    [result] = asyncio.run(client.search("osmosis"))
    assert result.link == "https://a.org/o"
    assert result.snippet == "water"


def test_serper_http_error():
    client = SerperClient(
        SearchSettings(SERPER_API_KEY="k"),
        client=_client(lambda r: httpx.Response(403, json={"message": "quota"})),
    )
    with pytest.raises(SearchError):
        asyncio.run(client.search("osmosis"))


def test_html_to_text_drops_page_chrome():
    html = """
    <html><head><style>p {color: red}</style></head>
    <body><nav>Home | About</nav><h1>Osmosis</h1>
    <p>Water   moves
    across membranes.</p><script>track()</script><footer>(c) 2024</footer></body></html>
    """
    assert html_to_text(html) == "Osmosis Water moves across membranes."


def test_fetcher_truncates_and_extracts():
    body = "<html><body><p>" + "a" * 100 + "</p></body></html>"
    fetcher = SiteFetcher(
        RetrievalSettings(FETCH_MAX_BYTES=40),
        client=_client(lambda r: httpx.Response(200, text=body)),
    )
    text = asyncio.run(fetcher.fetch("https://a.org"))
    assert set(text) == {"a"}
    assert len(text) < 40


def test_fetcher_errors():
    broken = SiteFetcher(
        RetrievalSettings(), client=_client(lambda r: httpx.Response(404))
    )
    with pytest.raises(FetchError):
        asyncio.run(broken.fetch("https://a.org"))

    empty = SiteFetcher(
        RetrievalSettings(),
        client=_client(lambda r: httpx.Response(200, text="<script>x()</script>")),
    )
    with pytest.raises(FetchError):
        asyncio.run(empty.fetch("https://a.org"))


def test_remote_tool_client_and_search():
    def handler(request):
        body = json.loads(request.content)
        assert request.url.path == "/tools/call"
        if body["tool"] == "search_web":
            return httpx.Response(
                200, json={"result": {"results": [{"title": "T", "link": "https://x.org"}]}}
            )
        return httpx.Response(200, json={"isError": True, "content": "model missing"})

    tools = RemoteToolClient(CoordinatorSettings(COORDINATOR_URL="http://coord/"), client=_client(handler))
    [result] = asyncio.run(RemoteSearch(tools).search("osmosis"))
    assert result.link == "https://x.org"

    backend = RemoteBackend(tools, OllamaSettings())
    with pytest.raises(BackendUnavailableError):
        asyncio.run(backend.summarize("Osmosis"))
